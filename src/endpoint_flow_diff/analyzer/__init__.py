"""
Analyzer package for Endpoint Flow Diff.

This package contains modules for:
- Flow extraction and signature normalization
- Endpoint indexing and baseline/candidate matching
- Flow graph diffing
- Orchestration of a complete comparison
"""

from endpoint_flow_diff.analyzer.diff_engine import DiffEngine, MatchAmbiguityWarning
from endpoint_flow_diff.analyzer.endpoint_matcher import (
    EndpointIndex,
    EndpointMatcher,
    IdentityCollisionError,
    MatchResult,
)
from endpoint_flow_diff.analyzer.flow_analyzer import FlowDiffAnalyzer, SourceAnalyzer
from endpoint_flow_diff.analyzer.flow_extractor import ExtractionError, FlowExtractor
from endpoint_flow_diff.analyzer.normalizer import Normalizer

__all__ = [
    "DiffEngine",
    "EndpointIndex",
    "EndpointMatcher",
    "ExtractionError",
    "FlowDiffAnalyzer",
    "FlowExtractor",
    "IdentityCollisionError",
    "MatchAmbiguityWarning",
    "MatchResult",
    "Normalizer",
    "SourceAnalyzer",
]
