"""
Base formatter and formatter registry.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
    from endpoint_flow_diff.models.report import FlowDiffReport


class BaseFormatter(ABC):
    """
    Abstract base class for output formatters.

    Subclasses must implement format(), format_flows() and
    format_endpoints() methods.
    """

    @abstractmethod
    def format(self, report: "FlowDiffReport") -> str:
        """
        Format a flow diff report.

        Args:
            report: The report to format.

        Returns:
            Formatted string representation.
        """
        pass

    @abstractmethod
    def format_flows(self, endpoints: list["ExtractedEndpoint"]) -> str:
        """
        Format the extracted flow graphs of endpoints.

        Args:
            endpoints: Endpoints with their flow graphs.

        Returns:
            Formatted string representation.
        """
        pass

    @abstractmethod
    def format_endpoints(self, endpoints: list["ExtractedEndpoint"]) -> str:
        """
        Format a list of endpoints without their flows.

        Args:
            endpoints: List of endpoints to format.

        Returns:
            Formatted string representation.
        """
        pass


# Formatter registry
_FORMATTERS: dict[str, type[BaseFormatter]] = {}


def register_formatter(name: str) -> Callable[[type[BaseFormatter]], type[BaseFormatter]]:
    """
    Decorator to register a formatter.

    Args:
        name: The name to register the formatter under.

    Returns:
        Decorator function.
    """
    def decorator(cls: type[BaseFormatter]) -> type[BaseFormatter]:
        _FORMATTERS[name] = cls
        return cls
    return decorator


def get_formatter(name: str, **options: Any) -> BaseFormatter:
    """
    Get a formatter instance by name.

    Args:
        name: The formatter name (e.g., "text", "json", "mermaid").
        options: Keyword arguments passed to the formatter.

    Returns:
        An instance of the requested formatter.

    Raises:
        ValueError: If the formatter name is not recognized.
    """
    _load_formatters()
    if name not in _FORMATTERS:
        available = ", ".join(_FORMATTERS.keys())
        raise ValueError(f"Unknown formatter: {name}. Available: {available}")

    return _FORMATTERS[name](**options)


def available_formatters() -> list[str]:
    _load_formatters()
    return list(_FORMATTERS)


def _load_formatters() -> None:
    # Import formatters to ensure they're registered
    from endpoint_flow_diff.output import (  # noqa: F401
        json_output,
        markdown_output,
        mermaid_output,
        text_output,
        yaml_output,
    )


# Shared serialization for the structured formatters

def endpoint_to_dict(endpoint: "ExtractedEndpoint") -> dict[str, Any]:
    """Convert an endpoint to a dictionary, without its flow."""
    handler = endpoint.handler
    return {
        "endpoint": str(endpoint.identity),
        "path": endpoint.identity.path,
        "method": endpoint.identity.method.value,
        "handler": {
            "name": handler.name,
            "module": handler.module,
            "file": str(handler.file_path),
            "line": handler.line_number,
            "end_line": handler.end_line_number,
        },
    }


def flow_to_dict(endpoint: "ExtractedEndpoint") -> dict[str, Any]:
    """Convert an endpoint and its flow graph to a dictionary."""
    flow = endpoint.flow
    data = endpoint_to_dict(endpoint)
    data["flow"] = {
        "guards": [
            {
                "position": g.position,
                "signature": g.signature,
                "status": g.status_code,
                "line": g.line_number,
            }
            for g in flow.guards
        ],
        "outbound_calls": [
            {
                "position": c.position,
                "target": c.target,
                "verb": c.verb,
                "detection": c.detection.value,
                "confidence": c.confidence.value,
                "line": c.line_number,
            }
            for c in flow.outbound_calls
        ],
        "terminal": {
            "status": flow.terminal.status_code,
            "has_body": flow.terminal.has_body,
            "implicit": flow.terminal.implicit,
            "line": flow.terminal.line_number,
        },
    }
    return data
