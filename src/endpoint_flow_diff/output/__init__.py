"""
Output package for Endpoint Flow Diff.

This package contains formatters for displaying flow diff reports and
extracted flows in various formats (text, JSON, YAML, Markdown, Mermaid).
"""

from endpoint_flow_diff.output.formatters import (
    BaseFormatter,
    available_formatters,
    get_formatter,
)
from endpoint_flow_diff.output.json_output import JsonFormatter
from endpoint_flow_diff.output.markdown_output import MarkdownFormatter
from endpoint_flow_diff.output.mermaid_output import MermaidFormatter
from endpoint_flow_diff.output.text_output import TextFormatter
from endpoint_flow_diff.output.yaml_output import YamlFormatter

__all__ = [
    "BaseFormatter",
    "JsonFormatter",
    "MarkdownFormatter",
    "MermaidFormatter",
    "TextFormatter",
    "YamlFormatter",
    "available_formatters",
    "get_formatter",
]
