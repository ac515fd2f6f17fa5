"""
YAML output formatter.
"""

from typing import Any

import yaml

from endpoint_flow_diff.models.endpoint import ExtractedEndpoint
from endpoint_flow_diff.models.report import FlowDiffReport
from endpoint_flow_diff.output.formatters import (
    BaseFormatter,
    endpoint_to_dict,
    flow_to_dict,
    register_formatter,
)


@register_formatter("yaml")
class YamlFormatter(BaseFormatter):
    """
    Format output as YAML.
    """

    def _dump(self, data: dict[str, Any]) -> str:
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def format(self, report: FlowDiffReport) -> str:
        """Format a flow diff report as YAML."""
        return self._dump(report.to_dict())

    def format_flows(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format extracted flows as YAML."""
        return self._dump({
            "total": len(endpoints),
            "flows": [flow_to_dict(ep) for ep in endpoints],
        })

    def format_endpoints(self, endpoints: list[ExtractedEndpoint]) -> str:
        """Format a list of endpoints as YAML."""
        return self._dump({
            "total": len(endpoints),
            "endpoints": [endpoint_to_dict(ep) for ep in endpoints],
        })
