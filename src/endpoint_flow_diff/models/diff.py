"""
Diff data models.

Models representing the behavioral delta between two versions of one
endpoint's flow graph.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from endpoint_flow_diff.models.endpoint import EndpointIdentity
from endpoint_flow_diff.models.flow import format_status


class DiffEntryKind(str, Enum):
    """Kind of detected behavioral change."""
    
    ADDED_GUARD = "added_guard"
    REMOVED_GUARD = "removed_guard"
    MODIFIED_GUARD = "modified_guard"
    ADDED_OUTBOUND = "added_outbound"
    REMOVED_OUTBOUND = "removed_outbound"
    STATUS_CHANGED = "status_changed"


GUARD_KINDS = frozenset({
    DiffEntryKind.ADDED_GUARD,
    DiffEntryKind.REMOVED_GUARD,
    DiffEntryKind.MODIFIED_GUARD,
})

OUTBOUND_KINDS = frozenset({
    DiffEntryKind.ADDED_OUTBOUND,
    DiffEntryKind.REMOVED_OUTBOUND,
})


class DiffEntry(BaseModel):
    """
    One detected change.
    
    Which fields are set depends on ``kind``:
    guards carry ``signature`` (or ``old_signature``/``new_signature`` when
    a modified guard changed its condition) and statuses; outbound entries
    carry ``target`` and ``verb``; status changes carry ``old_status`` and
    ``new_status``. Field order here is the serialization order.
    """
    
    kind: DiffEntryKind = Field(description="Change kind")
    signature: Optional[str] = Field(default=None, description="Guard signature")
    old_signature: Optional[str] = Field(default=None)
    new_signature: Optional[str] = Field(default=None)
    target: Optional[str] = Field(default=None, description="Outbound target")
    verb: Optional[str] = Field(default=None, description="Outbound HTTP verb")
    old_status: Optional[int] = Field(default=None)
    new_status: Optional[int] = Field(default=None)
    position: Optional[int] = Field(
        default=None,
        description="Guard position in the version the guard belongs to",
    )
    
    class Config:
        frozen = True
    
    @classmethod
    def added_guard(cls, signature: str, status: Optional[int], position: int) -> "DiffEntry":
        return cls(
            kind=DiffEntryKind.ADDED_GUARD,
            signature=signature,
            new_status=status,
            position=position,
        )
    
    @classmethod
    def removed_guard(cls, signature: str, status: Optional[int], position: int) -> "DiffEntry":
        return cls(
            kind=DiffEntryKind.REMOVED_GUARD,
            signature=signature,
            old_status=status,
            position=position,
        )
    
    @classmethod
    def modified_guard(
        cls,
        old_signature: str,
        new_signature: str,
        old_status: Optional[int],
        new_status: Optional[int],
        position: int,
    ) -> "DiffEntry":
        if old_signature == new_signature:
            return cls(
                kind=DiffEntryKind.MODIFIED_GUARD,
                signature=old_signature,
                old_status=old_status,
                new_status=new_status,
                position=position,
            )
        return cls(
            kind=DiffEntryKind.MODIFIED_GUARD,
            old_signature=old_signature,
            new_signature=new_signature,
            old_status=old_status,
            new_status=new_status,
            position=position,
        )
    
    @classmethod
    def added_outbound(cls, target: str, verb: Optional[str]) -> "DiffEntry":
        return cls(kind=DiffEntryKind.ADDED_OUTBOUND, target=target, verb=verb)
    
    @classmethod
    def removed_outbound(cls, target: str, verb: Optional[str]) -> "DiffEntry":
        return cls(kind=DiffEntryKind.REMOVED_OUTBOUND, target=target, verb=verb)
    
    @classmethod
    def status_changed(cls, old_status: Optional[int], new_status: Optional[int]) -> "DiffEntry":
        return cls(
            kind=DiffEntryKind.STATUS_CHANGED,
            old_status=old_status,
            new_status=new_status,
        )
    
    @property
    def is_guard_change(self) -> bool:
        return self.kind in GUARD_KINDS
    
    @property
    def is_outbound_change(self) -> bool:
        return self.kind in OUTBOUND_KINDS
    
    def to_dict(self) -> dict[str, Any]:
        """Stable ordered mapping of the entry; unset fields are omitted."""
        return self.model_dump(mode="json", exclude_none=True)
    
    def describe(self) -> str:
        """Human-readable explanation of the change."""
        if self.kind == DiffEntryKind.ADDED_GUARD:
            return f"Added guard {self.signature} → {format_status(self.new_status)}"
        if self.kind == DiffEntryKind.REMOVED_GUARD:
            return f"Removed guard {self.signature} → {format_status(self.old_status)}"
        if self.kind == DiffEntryKind.MODIFIED_GUARD:
            if self.signature is not None:
                return (
                    f"Modified guard {self.signature}: status "
                    f"{format_status(self.old_status)} → {format_status(self.new_status)}"
                )
            return (
                f"Modified guard {self.old_signature} → {format_status(self.old_status)} "
                f"became {self.new_signature} → {format_status(self.new_status)}"
            )
        if self.kind == DiffEntryKind.ADDED_OUTBOUND:
            return f"Added outbound call {self.verb or '?'} {self.target}"
        if self.kind == DiffEntryKind.REMOVED_OUTBOUND:
            return f"Removed outbound call {self.verb or '?'} {self.target}"
        return (
            f"Success status changed {format_status(self.old_status)} → "
            f"{format_status(self.new_status)}"
        )


class DiffResult(BaseModel):
    """Ordered changes detected for one matched endpoint."""
    
    identity: EndpointIdentity = Field(description="The compared endpoint")
    entries: tuple[DiffEntry, ...] = Field(default=())
    warnings: tuple[str, ...] = Field(
        default=(),
        description="Alignment notices; not part of the serialized result",
    )
    
    class Config:
        frozen = True
    
    @property
    def has_changes(self) -> bool:
        return len(self.entries) > 0
    
    def entries_of(self, kind: DiffEntryKind) -> list[DiffEntry]:
        return [e for e in self.entries if e.kind == kind]
    
    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": str(self.identity),
            "path": self.identity.path,
            "method": self.identity.method.value,
            "entries": [e.to_dict() for e in self.entries],
        }
