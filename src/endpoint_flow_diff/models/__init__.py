"""
Data models for Endpoint Flow Diff.

This package contains Pydantic models for representing endpoints,
handler trees, flow graphs, diffs and analysis reports.
"""

from endpoint_flow_diff.models.diff import (
    DiffEntry,
    DiffEntryKind,
    DiffResult,
)
from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    EndpointMethod,
    ExtractedEndpoint,
    HandlerInfo,
)
from endpoint_flow_diff.models.flow import (
    ConfidenceLevel,
    DetectionType,
    FlowGraph,
    Guard,
    OutboundCall,
    TerminalResponse,
)
from endpoint_flow_diff.models.handler_ast import HandlerAST
from endpoint_flow_diff.models.report import (
    AnalysisVersion,
    FlowDiffReport,
    UnanalyzableEndpoint,
)

__all__ = [
    # Endpoint models
    "EndpointIdentity",
    "EndpointMethod",
    "ExtractedEndpoint",
    "HandlerInfo",
    # Flow models
    "ConfidenceLevel",
    "DetectionType",
    "FlowGraph",
    "Guard",
    "OutboundCall",
    "TerminalResponse",
    # Handler tree
    "HandlerAST",
    # Diff models
    "DiffEntry",
    "DiffEntryKind",
    "DiffResult",
    # Report models
    "AnalysisVersion",
    "FlowDiffReport",
    "UnanalyzableEndpoint",
]
