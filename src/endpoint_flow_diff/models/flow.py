"""
Flow graph data models.

A flow graph is the normalized summary of one handler: the guards it
checks in order, the outbound calls it makes and the response it produces
when no guard fires.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


UNCLASSIFIED_SIGNATURE = "unclassified"


class DetectionType(str, Enum):
    """How the target of an outbound call was derived."""
    
    LITERAL = "literal"       # String literal at the call site
    CONSTANT = "constant"     # Variable or constant bound to a literal
    DYNAMIC = "dynamic"       # Computed at runtime


class ConfidenceLevel(str, Enum):
    """Confidence in a detected outbound target."""
    
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Guard(BaseModel):
    """A conditional early exit with a fixed status outcome."""
    
    signature: str = Field(description="Normalized condition signature")
    shape: str = Field(description="Signature with literal operands blanked")
    status_code: Optional[int] = Field(
        default=None,
        description="Status returned when the guard fires, if derivable",
    )
    position: int = Field(description="Index among the handler's guards")
    line_number: Optional[int] = Field(default=None, description="Source line")
    
    class Config:
        frozen = True
    
    def describe(self) -> str:
        return f"{self.signature} → {format_status(self.status_code)}"


class OutboundCall(BaseModel):
    """A request issued from the handler to an external system."""
    
    target: str = Field(description="Normalized target signature")
    verb: Optional[str] = Field(default=None, description="HTTP verb if determinable")
    position: int = Field(description="Index among the handler's outbound calls")
    detection: DetectionType = Field(default=DetectionType.LITERAL)
    confidence: ConfidenceLevel = Field(default=ConfidenceLevel.HIGH)
    line_number: Optional[int] = Field(default=None, description="Source line")
    
    class Config:
        frozen = True
    
    @property
    def key(self) -> tuple[str, str]:
        """Multiset key used when diffing outbound calls."""
        return (self.target, self.verb or "")
    
    def describe(self) -> str:
        return f"{self.verb or '?'} {self.target}"


class TerminalResponse(BaseModel):
    """The response reached when every guard evaluates false."""
    
    status_code: Optional[int] = Field(
        default=None,
        description="Response status, if derivable",
    )
    has_body: bool = Field(default=False, description="Whether a body is returned")
    implicit: bool = Field(
        default=False,
        description="Synthesized for a handler that falls off its end",
    )
    line_number: Optional[int] = Field(default=None, description="Source line")
    
    class Config:
        frozen = True
    
    def describe(self) -> str:
        body = "body" if self.has_body else "no body"
        return f"{format_status(self.status_code)} ({body})"


class FlowGraph(BaseModel):
    """Guards in source order, outbound calls, and the success response."""
    
    guards: tuple[Guard, ...] = Field(default=())
    outbound_calls: tuple[OutboundCall, ...] = Field(default=())
    terminal: TerminalResponse = Field(description="Success-path response")
    
    class Config:
        frozen = True
    
    @property
    def guard_signatures(self) -> list[str]:
        return [g.signature for g in self.guards]
    
    @property
    def is_simple(self) -> bool:
        """True when the flow is the success path only."""
        return not self.guards and not self.outbound_calls


def format_status(status_code: Optional[int]) -> str:
    """Render a possibly unknown status code."""
    return "?" if status_code is None else str(status_code)
