"""
Unit tests for the diff engine.
"""

import logging
import random

import pytest

from endpoint_flow_diff.analyzer.diff_engine import (
    AlignmentOp,
    DiffEngine,
    MatchAmbiguityWarning,
    align_signatures,
)
from endpoint_flow_diff.config import DiffConfig
from endpoint_flow_diff.models.diff import DiffEntry, DiffEntryKind
from endpoint_flow_diff.models.endpoint import EndpointIdentity, EndpointMethod
from endpoint_flow_diff.models.flow import FlowGraph, TerminalResponse


IDENTITY = EndpointIdentity(path="/v1/example", method=EndpointMethod.GET)


@pytest.fixture
def engine() -> DiffEngine:
    return DiffEngine()


class TestAlignSignatures:
    """Tests for the guard alignment."""

    def test_identical(self) -> None:
        alignment = align_signatures(["a", "b"], ["a", "b"])
        assert [op.tag for op in alignment.ops] == ["equal", "equal"]
        assert not alignment.ambiguous

    def test_insertion_in_middle(self) -> None:
        alignment = align_signatures(["a", "c"], ["a", "b", "c"])
        assert [op.tag for op in alignment.ops] == ["equal", "insert", "equal"]
        assert alignment.ops[1].candidate == 1

    def test_deletion_before_insertion(self) -> None:
        alignment = align_signatures(["a", "x"], ["a", "y"])
        assert [op.tag for op in alignment.ops] == ["equal", "delete", "insert"]

    def test_swap_is_ambiguous(self) -> None:
        alignment = align_signatures(["a", "b"], ["b", "a"])
        assert alignment.ambiguous
        tags = [op.tag for op in alignment.ops]
        assert tags.count("equal") == 1

    def test_empty(self) -> None:
        assert align_signatures([], []).ops == ()

    def test_preferred_pairs_break_ties(self) -> None:
        statuses = ([400, 422], [422])
        alignment = align_signatures(
            ["a", "a"],
            ["a"],
            preferred=lambda b, c: statuses[0][b] == statuses[1][c],
        )
        assert alignment.ops == (AlignmentOp("delete", baseline=0), AlignmentOp("equal", 1, 0))

    def test_without_preference_first_match_wins(self) -> None:
        alignment = align_signatures(["a", "a"], ["a"])
        assert alignment.ops == (AlignmentOp("equal", 0, 0), AlignmentOp("delete", baseline=1))


class TestGuardDiff:
    """Tests for guard changes."""

    def test_identity_law(self, engine: DiffEngine, flow_factory) -> None:
        flow = flow_factory(
            guards=[("isNull(id)", 400), ("isEmpty(id)", 422)],
            calls=[("a/b", "GET"), ("a/b", "GET")],
        )
        assert engine.diff(IDENTITY, flow, flow).entries == ()

    def test_added_guard(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400)])
        after = flow_factory(guards=[("isNull(id)", 400), ("lengthLessThan(id, 5)", 422)])
        result = engine.diff(IDENTITY, before, after)
        assert result.entries == (DiffEntry.added_guard("lengthLessThan(id, 5)", 422, 1),)

    def test_removed_guard(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400), ("isEmpty(id)", 422)])
        after = flow_factory(guards=[("isEmpty(id)", 422)])
        result = engine.diff(IDENTITY, before, after)
        assert result.entries == (DiffEntry.removed_guard("isNull(id)", 400, 0),)

    def test_status_change_of_guard(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400)])
        after = flow_factory(guards=[("isNull(id)", 404)])
        (entry,) = engine.diff(IDENTITY, before, after).entries
        assert entry.kind == DiffEntryKind.MODIFIED_GUARD
        assert (entry.signature, entry.old_status, entry.new_status) == ("isNull(id)", 400, 404)

    def test_threshold_change_is_modified(self, engine: DiffEngine, guard_factory) -> None:
        before = FlowGraph(
            guards=(guard_factory("lengthLessThan(id, 5)", 422, 0, shape="lengthLessThan(id, _)"),),
            terminal=TerminalResponse(status_code=200),
        )
        after = FlowGraph(
            guards=(guard_factory("lengthLessThan(id, 8)", 422, 0, shape="lengthLessThan(id, _)"),),
            terminal=TerminalResponse(status_code=200),
        )
        (entry,) = engine.diff(IDENTITY, before, after).entries
        assert entry.kind == DiffEntryKind.MODIFIED_GUARD
        assert entry.old_signature == "lengthLessThan(id, 5)"
        assert entry.new_signature == "lengthLessThan(id, 8)"

    def test_threshold_detection_disabled(self, guard_factory) -> None:
        engine = DiffEngine(DiffConfig(detect_threshold_changes=False))
        before = FlowGraph(
            guards=(guard_factory("lengthLessThan(id, 5)", 422, 0, shape="s"),),
            terminal=TerminalResponse(status_code=200),
        )
        after = FlowGraph(
            guards=(guard_factory("lengthLessThan(id, 8)", 422, 0, shape="s"),),
            terminal=TerminalResponse(status_code=200),
        )
        kinds = [e.kind for e in engine.diff(IDENTITY, before, after).entries]
        assert kinds == [DiffEntryKind.REMOVED_GUARD, DiffEntryKind.ADDED_GUARD]

    def test_reorder_not_reported_by_default(self, engine: DiffEngine, flow_factory, caplog) -> None:
        before = flow_factory(guards=[("isNull(id)", 400), ("isEmpty(id)", 422)])
        after = flow_factory(guards=[("isEmpty(id)", 422), ("isNull(id)", 400)])
        with caplog.at_level(logging.WARNING, logger="endpoint_flow_diff"):
            with pytest.warns(MatchAmbiguityWarning, match="guard alignment was ambiguous"):
                result = engine.diff(IDENTITY, before, after)
        assert result.entries == ()
        assert result.warnings
        assert "MatchAmbiguityWarning" in caplog.text

    def test_repeated_signature_pairs_with_same_status(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400), ("isNull(id)", 422)])
        after = flow_factory(guards=[("isNull(id)", 422)])
        result = engine.diff(IDENTITY, before, after)
        assert result.entries == (DiffEntry.removed_guard("isNull(id)", 400, 0),)

    def test_repeated_signature_kept_guard_is_unchanged(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 422)])
        after = flow_factory(guards=[("isNull(id)", 400), ("isNull(id)", 422)])
        result = engine.diff(IDENTITY, before, after)
        assert result.entries == (DiffEntry.added_guard("isNull(id)", 400, 0),)

    def test_reorder_reported_when_enabled(self, flow_factory) -> None:
        engine = DiffEngine(DiffConfig(report_guard_reorder=True))
        before = flow_factory(guards=[("isNull(id)", 400), ("isEmpty(id)", 422)])
        after = flow_factory(guards=[("isEmpty(id)", 422), ("isNull(id)", 400)])
        kinds = [e.kind for e in engine.diff(IDENTITY, before, after).entries]
        assert sorted(kinds) == [DiffEntryKind.ADDED_GUARD, DiffEntryKind.REMOVED_GUARD]

    def test_reorder_with_new_status_is_modified(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400), ("isEmpty(id)", 422)])
        after = flow_factory(guards=[("isEmpty(id)", 422), ("isNull(id)", 404)])
        (entry,) = engine.diff(IDENTITY, before, after).entries
        assert entry.kind == DiffEntryKind.MODIFIED_GUARD
        assert (entry.old_status, entry.new_status) == (400, 404)


class TestOutboundDiff:
    """Tests for outbound call changes."""

    def test_multiset_semantics(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(calls=[("a/b", "GET")])
        after = flow_factory(calls=[("a/b", "GET"), ("a/b", "GET")])
        result = engine.diff(IDENTITY, before, after)
        assert result.entries == (DiffEntry.added_outbound("a/b", "GET"),)

    def test_order_of_calls_is_irrelevant(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(calls=[("a/b", "GET"), ("c/d", "POST")])
        after = flow_factory(calls=[("c/d", "POST"), ("a/b", "GET")])
        assert engine.diff(IDENTITY, before, after).entries == ()

    def test_verb_change_is_remove_and_add(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(calls=[("a/b", "GET")])
        after = flow_factory(calls=[("a/b", "POST")])
        entries = engine.diff(IDENTITY, before, after).entries
        assert entries == (
            DiffEntry.removed_outbound("a/b", "GET"),
            DiffEntry.added_outbound("a/b", "POST"),
        )

    def test_sorted_by_target(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory()
        after = flow_factory(calls=[("z/last", "GET"), ("a/first", None)])
        entries = engine.diff(IDENTITY, before, after).entries
        assert [e.target for e in entries] == ["a/first", "z/last"]
        assert entries[0].verb is None


class TestStatusAndOrdering:
    """Tests for success status changes and entry ordering."""

    def test_status_changed_last(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(status=200)
        after = flow_factory(guards=[("isNull(id)", 400)], calls=[("a/b", "GET")], status=201)
        kinds = [e.kind for e in engine.diff(IDENTITY, before, after).entries]
        assert kinds == [
            DiffEntryKind.ADDED_GUARD,
            DiffEntryKind.ADDED_OUTBOUND,
            DiffEntryKind.STATUS_CHANGED,
        ]

    def test_unknown_to_known_status(self, engine: DiffEngine, flow_factory) -> None:
        entries = engine.diff(IDENTITY, flow_factory(status=None), flow_factory(status=200)).entries
        assert entries == (DiffEntry.status_changed(None, 200),)

    def test_deterministic_under_shuffled_calls(self, engine: DiffEngine, flow_factory) -> None:
        calls = [("a/b", "GET"), ("c/d", "POST"), ("e/f", "PUT"), ("a/b", "GET")]
        before = flow_factory(calls=calls[:1])
        expected = engine.diff(IDENTITY, before, flow_factory(calls=calls)).entries
        rng = random.Random(7)
        for _ in range(5):
            shuffled = list(calls)
            rng.shuffle(shuffled)
            assert engine.diff(IDENTITY, before, flow_factory(calls=shuffled)).entries == expected

    def test_idempotent(self, engine: DiffEngine, flow_factory) -> None:
        before = flow_factory(guards=[("isNull(id)", 400)])
        after = flow_factory(guards=[("isEmpty(id)", 422)], status=204)
        assert engine.diff(IDENTITY, before, after) == engine.diff(IDENTITY, before, after)


class TestDiffEndpoints:
    """Tests for diffing extracted endpoints."""

    def test_mismatched_identities_rejected(self, engine: DiffEngine, make_endpoint) -> None:
        with pytest.raises(ValueError, match="different endpoints"):
            engine.diff_endpoints(make_endpoint(path="/a"), make_endpoint(path="/b"))

    def test_same_identity(self, engine: DiffEngine, make_endpoint) -> None:
        result = engine.diff_endpoints(make_endpoint(), make_endpoint())
        assert not result.has_changes
        assert result.identity == make_endpoint().identity
