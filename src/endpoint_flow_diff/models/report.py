"""
Report data models.

Models representing a complete baseline-versus-candidate analysis run.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from endpoint_flow_diff.models.diff import DiffResult
from endpoint_flow_diff.models.endpoint import EndpointIdentity


class AnalysisVersion(str, Enum):
    """Which side of the comparison something belongs to."""
    
    BASELINE = "baseline"
    CANDIDATE = "candidate"


class UnanalyzableEndpoint(BaseModel):
    """A handler or source file that could not be turned into a flow graph."""
    
    version: AnalysisVersion = Field(description="Side the failure occurred on")
    file_path: str = Field(description="Source file of the failure")
    reason: str = Field(description="Why the endpoint could not be analyzed")
    identity: Optional[EndpointIdentity] = Field(
        default=None,
        description="Endpoint identity, when the failure happened after routing",
    )
    handler_name: Optional[str] = Field(default=None)
    
    class Config:
        frozen = True
    
    def describe(self) -> str:
        where = self.file_path
        if self.handler_name:
            where = f"{where} ({self.handler_name})"
        if self.identity is not None:
            return f"{self.identity} at {where}: {self.reason}"
        return f"{where}: {self.reason}"


class FlowDiffReport(BaseModel):
    """Complete flow diff report."""
    
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the analysis was performed",
    )
    baseline_source: str = Field(description="Baseline source path")
    candidate_source: str = Field(description="Candidate source path")
    results: list[DiffResult] = Field(
        default_factory=list,
        description="One result per matched endpoint, ordered by identity",
    )
    added_endpoints: list[EndpointIdentity] = Field(
        default_factory=list,
        description="Endpoints present only in the candidate",
    )
    removed_endpoints: list[EndpointIdentity] = Field(
        default_factory=list,
        description="Endpoints present only in the baseline",
    )
    partial_endpoints: list[EndpointIdentity] = Field(
        default_factory=list,
        description="Endpoints extracted on one side only before the run was cancelled",
    )
    unanalyzable: list[UnanalyzableEndpoint] = Field(default_factory=list)
    cancelled: bool = Field(
        default=False,
        description="Whether the run was cancelled before completing",
    )
    analysis_duration_ms: Optional[float] = Field(default=None)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    
    @property
    def changed_results(self) -> list[DiffResult]:
        return [r for r in self.results if r.has_changes]
    
    @property
    def changed_count(self) -> int:
        """Number of matched endpoints with behavioral changes."""
        return len(self.changed_results)
    
    @property
    def unchanged_count(self) -> int:
        return len(self.results) - self.changed_count
    
    @property
    def total_entries(self) -> int:
        return sum(len(r.entries) for r in self.results)
    
    @property
    def has_errors(self) -> bool:
        """Check if there were any errors."""
        return len(self.errors) > 0
    
    @property
    def has_changes(self) -> bool:
        """True when any endpoint changed, appeared or disappeared."""
        return bool(self.changed_count or self.added_endpoints or self.removed_endpoints)
    
    def to_dict(self) -> dict[str, Any]:
        """Stable mapping of the report, shared by the structured formatters."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "baseline": self.baseline_source,
            "candidate": self.candidate_source,
            "summary": {
                "matched_endpoints": len(self.results),
                "changed_endpoints": self.changed_count,
                "added_endpoints": len(self.added_endpoints),
                "removed_endpoints": len(self.removed_endpoints),
                "unanalyzable": len(self.unanalyzable),
                "total_changes": self.total_entries,
                "cancelled": self.cancelled,
                "analysis_duration_ms": self.analysis_duration_ms,
            },
            "results": [r.to_dict() for r in self.results],
            "added_endpoints": [str(i) for i in self.added_endpoints],
            "removed_endpoints": [str(i) for i in self.removed_endpoints],
            "partial_endpoints": [str(i) for i in self.partial_endpoints],
            "unanalyzable": [
                {
                    "version": u.version.value,
                    "file": u.file_path,
                    "handler": u.handler_name,
                    "endpoint": str(u.identity) if u.identity else None,
                    "reason": u.reason,
                }
                for u in self.unanalyzable
            ],
            "errors": self.errors,
            "warnings": self.warnings,
        }
