"""
Endpoint data models.

Models representing request-handler endpoints and their identity.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from endpoint_flow_diff.models.flow import FlowGraph


class EndpointMethod(str, Enum):
    """HTTP methods a handler can be routed on."""
    
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"
    TRACE = "TRACE"


class EndpointIdentity(BaseModel):
    """Logical identity of an endpoint: route path plus HTTP method."""
    
    path: str = Field(description="Normalized route path")
    method: EndpointMethod = Field(description="HTTP method")
    
    class Config:
        frozen = True
    
    @property
    def sort_key(self) -> tuple[str, str]:
        """Key used to order endpoints deterministically."""
        return (self.path, self.method.value)
    
    def __str__(self) -> str:
        return f"{self.method.value} {self.path}"


class HandlerInfo(BaseModel):
    """Information about an endpoint handler method."""
    
    name: str = Field(description="Name of the handler function or method")
    module: str = Field(description="Owning class or module name")
    file_path: Path = Field(description="Path to the file containing the handler")
    line_number: int = Field(description="Line number where the handler is defined")
    end_line_number: Optional[int] = Field(
        default=None,
        description="End line number of the handler",
    )
    
    class Config:
        frozen = True
    
    @property
    def location(self) -> str:
        """File and line of the handler, for error reports."""
        return f"{self.file_path}:{self.line_number}"
    
    @property
    def qualified_name(self) -> str:
        """Owner-qualified handler name."""
        return f"{self.module}.{self.name}"


class ExtractedEndpoint(BaseModel):
    """An endpoint together with the flow graph extracted from its handler."""
    
    identity: EndpointIdentity = Field(description="Route path and HTTP method")
    handler: HandlerInfo = Field(description="Handler location")
    flow: FlowGraph = Field(description="Normalized flow of the handler")
    
    class Config:
        frozen = True
    
    @property
    def identifier(self) -> str:
        """Unique identifier for this endpoint."""
        return str(self.identity)


def normalize_route_path(*parts: Optional[str]) -> str:
    """
    Join route path fragments into a single normalized path.
    
    Empty fragments are skipped, duplicate slashes collapsed and the
    trailing slash removed. An empty result is the root path.
    """
    segments: list[str] = []
    for part in parts:
        if not part:
            continue
        segments.extend(s for s in part.strip().split("/") if s)
    return "/" + "/".join(segments)
