"""
Diff engine - computes the behavioral delta between two flow graphs.

Guards are aligned with a longest-common-subsequence over their ordered
signatures. Outbound calls are compared as multisets keyed by target and
verb. The success-path status is compared last. The output order is
fixed: guard changes in alignment order, outbound changes sorted by
target, then the status change.
"""

import logging
import warnings
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Sequence

from endpoint_flow_diff.config import DiffConfig
from endpoint_flow_diff.models.diff import DiffEntry, DiffResult
from endpoint_flow_diff.models.endpoint import EndpointIdentity, ExtractedEndpoint
from endpoint_flow_diff.models.flow import FlowGraph, Guard


logger = logging.getLogger(__name__)


class MatchAmbiguityWarning(UserWarning):
    """More than one optimal guard alignment existed; a tie-break was applied."""


@dataclass(frozen=True)
class AlignmentOp:
    """One step of a guard alignment."""

    tag: Literal["equal", "delete", "insert"]
    baseline: Optional[int] = None
    candidate: Optional[int] = None


@dataclass(frozen=True)
class Alignment:
    ops: tuple[AlignmentOp, ...]
    ambiguous: bool


def align_signatures(
    baseline: Sequence[str],
    candidate: Sequence[str],
    preferred: Optional[Callable[[int, int], bool]] = None,
) -> Alignment:
    """
    Align two signature sequences by longest common subsequence.

    Among alignments of maximal length, the one with the most
    ``preferred(i, j)`` pairs wins; for guards that is the number of
    matched pairs whose status is unchanged. Remaining ties are broken
    deterministically: a match is taken whenever it is optimal, and on a
    mismatch the baseline-side step (deletion) comes before the
    candidate-side step. ``ambiguous`` is set when a tie-break could have
    changed which elements are matched.
    """
    n, m = len(baseline), len(candidate)
    # score[i][j] = (LCS length, preferred pairs) of baseline[i:] and candidate[j:]
    score = [[(0, 0)] * (m + 1) for _ in range(n + 1)]

    def match_score(i: int, j: int) -> tuple[int, int]:
        length, bonus = score[i + 1][j + 1]
        return length + 1, bonus + int(bool(preferred and preferred(i, j)))

    for i in range(n - 1, -1, -1):
        for j in range(m - 1, -1, -1):
            best = max(score[i + 1][j], score[i][j + 1])
            if baseline[i] == candidate[j]:
                best = max(best, match_score(i, j))
            score[i][j] = best

    ops: list[AlignmentOp] = []
    ambiguous = False
    i = j = 0
    while i < n and j < m:
        current = score[i][j]
        if baseline[i] == candidate[j] and match_score(i, j) == current:
            if score[i + 1][j] == current or score[i][j + 1] == current:
                ambiguous = True
            ops.append(AlignmentOp("equal", i, j))
            i += 1
            j += 1
        elif score[i + 1][j] == current:
            if score[i][j + 1] == current and current[0] > 0:
                if baseline[i] in candidate[j + 1:] or candidate[j] in baseline[i + 1:]:
                    ambiguous = True
            ops.append(AlignmentOp("delete", baseline=i))
            i += 1
        else:
            ops.append(AlignmentOp("insert", candidate=j))
            j += 1
    while i < n:
        ops.append(AlignmentOp("delete", baseline=i))
        i += 1
    while j < m:
        ops.append(AlignmentOp("insert", candidate=j))
        j += 1

    return Alignment(ops=tuple(ops), ambiguous=ambiguous)


class DiffEngine:
    """
    Compare baseline and candidate flow graphs of one endpoint.

    The engine is stateless; diffing the same pair twice yields equal
    results, and a flow graph diffed against itself yields no entries.
    """

    def __init__(self, config: Optional[DiffConfig] = None) -> None:
        self.config = config or DiffConfig()

    def diff(
        self,
        identity: EndpointIdentity,
        baseline: FlowGraph,
        candidate: FlowGraph,
    ) -> DiffResult:
        """
        Compute the ordered changes between two flow graphs.

        Args:
            identity: The endpoint both graphs belong to.
            baseline: Flow graph of the baseline version.
            candidate: Flow graph of the candidate version.

        Returns:
            DiffResult whose entries are empty when nothing changed.
        """
        notes: list[str] = []
        entries = self._diff_guards(identity, baseline.guards, candidate.guards, notes)
        entries.extend(self._diff_outbound(baseline, candidate))

        old_status = baseline.terminal.status_code
        new_status = candidate.terminal.status_code
        if old_status != new_status:
            entries.append(DiffEntry.status_changed(old_status, new_status))

        return DiffResult(identity=identity, entries=tuple(entries), warnings=tuple(notes))

    def diff_endpoints(
        self,
        baseline: ExtractedEndpoint,
        candidate: ExtractedEndpoint,
    ) -> DiffResult:
        """Diff two extracted versions of the same endpoint."""
        if baseline.identity != candidate.identity:
            raise ValueError(
                f"Cannot diff different endpoints: {baseline.identity} vs {candidate.identity}"
            )
        return self.diff(baseline.identity, baseline.flow, candidate.flow)

    # Guards

    def _diff_guards(
        self,
        identity: EndpointIdentity,
        baseline: Sequence[Guard],
        candidate: Sequence[Guard],
        notes: list[str],
    ) -> list[DiffEntry]:
        alignment = align_signatures(
            [g.signature for g in baseline],
            [g.signature for g in candidate],
            preferred=lambda b, c: baseline[b].status_code == candidate[c].status_code,
        )
        if alignment.ambiguous:
            message = (
                f"{identity}: guard alignment was ambiguous, "
                "matched repeated or reordered guards in source order"
            )
            logger.warning("%s: %s", MatchAmbiguityWarning.__name__, message)
            warnings.warn(message, MatchAmbiguityWarning, stacklevel=3)
            notes.append(message)

        deletions = [op.baseline for op in alignment.ops if op.tag == "delete"]
        insertions = [op.candidate for op in alignment.ops if op.tag == "insert"]

        # baseline index -> candidate index it was paired with (None = suppressed)
        paired: dict[int, Optional[int]] = {}
        consumed: set[int] = set()

        # Reordered guards: same signature on both sides but not aligned
        for b in deletions:
            for c in insertions:
                if c in consumed or candidate[c].signature != baseline[b].signature:
                    continue
                same_status = candidate[c].status_code == baseline[b].status_code
                if same_status and self.config.report_guard_reorder:
                    break
                paired[b] = None if same_status else c
                consumed.add(c)
                break

        if self.config.detect_threshold_changes:
            for gap_deletions, gap_insertions in _gaps(alignment.ops):
                for b in gap_deletions:
                    if b in paired:
                        continue
                    for c in gap_insertions:
                        if c in consumed or candidate[c].shape != baseline[b].shape:
                            continue
                        paired[b] = c
                        consumed.add(c)
                        break

        entries: list[DiffEntry] = []
        for op in alignment.ops:
            if op.tag == "equal":
                old, new = baseline[op.baseline], candidate[op.candidate]
                if old.status_code != new.status_code:
                    entries.append(_modified(old, new))
            elif op.tag == "delete":
                old = baseline[op.baseline]
                if op.baseline not in paired:
                    entries.append(DiffEntry.removed_guard(old.signature, old.status_code, old.position))
                elif paired[op.baseline] is not None:
                    entries.append(_modified(old, candidate[paired[op.baseline]]))
            elif op.candidate not in consumed:
                new = candidate[op.candidate]
                entries.append(DiffEntry.added_guard(new.signature, new.status_code, new.position))
        return entries

    # Outbound calls

    def _diff_outbound(self, baseline: FlowGraph, candidate: FlowGraph) -> list[DiffEntry]:
        before = Counter(call.key for call in baseline.outbound_calls)
        after = Counter(call.key for call in candidate.outbound_calls)

        entries: list[DiffEntry] = []
        for target, verb in sorted(set(before) | set(after)):
            delta = after[(target, verb)] - before[(target, verb)]
            if delta > 0:
                entries.extend(DiffEntry.added_outbound(target, verb or None) for _ in range(delta))
            elif delta < 0:
                entries.extend(DiffEntry.removed_outbound(target, verb or None) for _ in range(-delta))
        return entries


def _modified(old: Guard, new: Guard) -> DiffEntry:
    return DiffEntry.modified_guard(
        old_signature=old.signature,
        new_signature=new.signature,
        old_status=old.status_code,
        new_status=new.status_code,
        position=old.position,
    )


def _gaps(ops: Sequence[AlignmentOp]) -> list[tuple[list[int], list[int]]]:
    """Deleted and inserted indices between consecutive aligned anchors."""
    gaps: list[tuple[list[int], list[int]]] = []
    deletions: list[int] = []
    insertions: list[int] = []
    for op in ops:
        if op.tag == "equal":
            if deletions or insertions:
                gaps.append((deletions, insertions))
            deletions, insertions = [], []
        elif op.tag == "delete":
            deletions.append(op.baseline)
        else:
            insertions.append(op.candidate)
    if deletions or insertions:
        gaps.append((deletions, insertions))
    return gaps
