"""
JSON output formatter.
"""

import json

from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
from endpoint_flow_diff.models.report import FlowDiffReport
from endpoint_flow_diff.output.formatters import (
    BaseFormatter,
    endpoint_to_dict,
    flow_to_dict,
    register_formatter,
)


@register_formatter("json")
class JsonFormatter(BaseFormatter):
    """
    Format output as JSON.
    """
    
    def __init__(self, indent: int = 2) -> None:
        """
        Initialize the JSON formatter.
        
        Args:
            indent: JSON indentation level.
        """
        self.indent = indent
    
    def format(self, report: FlowDiffReport) -> str:
        """Format a flow diff report as JSON."""
        return json.dumps(report.to_dict(), indent=self.indent, default=str)
    
    def format_flows(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format extracted flows as JSON."""
        data = {
            "total": len(endpoints),
            "flows": [flow_to_dict(ep) for ep in endpoints],
        }
        
        return json.dumps(data, indent=self.indent, default=str)
    
    def format_endpoints(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format a list of endpoints as JSON."""
        data = {
            "total": len(endpoints),
            "endpoints": [endpoint_to_dict(ep) for ep in endpoints],
        }
        
        return json.dumps(data, indent=self.indent, default=str)
