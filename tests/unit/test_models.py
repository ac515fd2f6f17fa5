"""
Unit tests for data models.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from endpoint_flow_diff.models.diff import DiffEntry, DiffEntryKind, DiffResult
from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    EndpointMethod,
    HandlerInfo,
    normalize_route_path,
)
from endpoint_flow_diff.models.flow import TerminalResponse, format_status
from endpoint_flow_diff.models.handler_ast import (
    Attribute,
    Call,
    HandlerAST,
    IfStmt,
    Name,
    TerminalStmt,
)
from endpoint_flow_diff.models.report import (
    AnalysisVersion,
    FlowDiffReport,
    UnanalyzableEndpoint,
)


class TestEndpointIdentity:
    """Tests for the EndpointIdentity model."""

    def test_str(self) -> None:
        identity = EndpointIdentity(path="/v1/example", method=EndpointMethod.GET)
        assert str(identity) == "GET /v1/example"

    def test_identity_is_hashable_and_equal_by_value(self) -> None:
        a = EndpointIdentity(path="/a", method=EndpointMethod.POST)
        b = EndpointIdentity(path="/a", method=EndpointMethod.POST)
        assert a == b
        assert len({a, b}) == 1

    def test_sort_key_orders_by_path_then_method(self) -> None:
        identities = [
            EndpointIdentity(path="/b", method=EndpointMethod.GET),
            EndpointIdentity(path="/a", method=EndpointMethod.POST),
            EndpointIdentity(path="/a", method=EndpointMethod.GET),
        ]
        ordered = sorted(identities, key=lambda i: i.sort_key)
        assert [str(i) for i in ordered] == ["GET /a", "POST /a", "GET /b"]

    def test_frozen(self) -> None:
        identity = EndpointIdentity(path="/a", method=EndpointMethod.GET)
        with pytest.raises(ValidationError):
            identity.path = "/b"


class TestNormalizeRoutePath:
    """Tests for route path joining."""

    @pytest.mark.parametrize(
        "parts,expected",
        [
            (("/v1/example", "/"), "/v1/example"),
            (("/v1/", "/items/"), "/v1/items"),
            (("", "items"), "/items"),
            (("/", ""), "/"),
            ((None, "/a//b"), "/a/b"),
        ],
    )
    def test_join(self, parts: tuple, expected: str) -> None:
        assert normalize_route_path(*parts) == expected


class TestHandlerInfo:
    """Tests for the HandlerInfo model."""

    def test_location_and_qualified_name(self) -> None:
        handler = HandlerInfo(
            name="handleDiff",
            module="ExampleApiV1",
            file_path=Path("src/ExampleApiV1.java"),
            line_number=12,
        )
        assert handler.location == "src/ExampleApiV1.java:12"
        assert handler.qualified_name == "ExampleApiV1.handleDiff"


class TestDiffEntry:
    """Tests for DiffEntry construction and serialization."""

    def test_added_guard_serialization_is_ordered(self) -> None:
        entry = DiffEntry.added_guard("lengthLessThan(id, 5)", 422, 1)
        assert list(entry.to_dict().items()) == [
            ("kind", "added_guard"),
            ("signature", "lengthLessThan(id, 5)"),
            ("new_status", 422),
            ("position", 1),
        ]

    def test_modified_guard_same_signature_keeps_single_signature(self) -> None:
        entry = DiffEntry.modified_guard("isNull(id)", "isNull(id)", 400, 404, 0)
        assert entry.signature == "isNull(id)"
        assert entry.old_signature is None
        assert "status 400 → 404" in entry.describe()

    def test_modified_guard_changed_signature(self) -> None:
        entry = DiffEntry.modified_guard("lengthLessThan(id, 5)", "lengthLessThan(id, 8)", 422, 422, 1)
        assert entry.signature is None
        assert entry.old_signature == "lengthLessThan(id, 5)"
        assert entry.new_signature == "lengthLessThan(id, 8)"

    def test_outbound_kinds(self) -> None:
        added = DiffEntry.added_outbound("audit-service/v1/log", "POST")
        removed = DiffEntry.removed_outbound("audit-service/v1/log", None)
        assert added.is_outbound_change and not added.is_guard_change
        assert removed.describe() == "Removed outbound call ? audit-service/v1/log"

    def test_status_changed_describe_unknown(self) -> None:
        entry = DiffEntry.status_changed(200, None)
        assert entry.kind == DiffEntryKind.STATUS_CHANGED
        assert entry.describe() == "Success status changed 200 → ?"


class TestDiffResult:
    """Tests for DiffResult."""

    def test_warnings_not_serialized(self) -> None:
        result = DiffResult(
            identity=EndpointIdentity(path="/a", method=EndpointMethod.GET),
            entries=(DiffEntry.status_changed(200, 201),),
            warnings=("ambiguous",),
        )
        data = result.to_dict()
        assert data["endpoint"] == "GET /a"
        assert "warnings" not in data
        assert result.entries_of(DiffEntryKind.STATUS_CHANGED)


class TestFlowModels:
    """Tests for flow graph models."""

    def test_format_status(self) -> None:
        assert format_status(None) == "?"
        assert format_status(204) == "204"

    def test_terminal_describe(self) -> None:
        assert TerminalResponse(status_code=204).describe() == "204 (no body)"


class TestHandlerAST:
    """Tests for the generic handler tree."""

    def test_round_trip_through_plain_data(self, sample_handler: HandlerInfo) -> None:
        tree = HandlerAST(
            identity=EndpointIdentity(path="/a", method=EndpointMethod.GET),
            handler=sample_handler,
            parameters=("id",),
            body=(
                IfStmt(
                    condition=Call(func=Attribute(value=Name(id="id"), attr="isEmpty")),
                    body=(TerminalStmt(status_code=422),),
                ),
                TerminalStmt(status_code=200, has_body=True),
            ),
        )
        restored = HandlerAST.model_validate(tree.model_dump())
        assert restored == tree

    def test_unknown_node_tag_rejected(self, sample_handler: HandlerInfo) -> None:
        with pytest.raises(ValidationError):
            HandlerAST.model_validate({
                "identity": {"path": "/a", "method": "GET"},
                "handler": sample_handler.model_dump(),
                "body": [{"node": "goto", "label": "x"}],
            })


class TestFlowDiffReport:
    """Tests for FlowDiffReport."""

    def test_counts(self) -> None:
        changed = DiffResult(
            identity=EndpointIdentity(path="/a", method=EndpointMethod.GET),
            entries=(DiffEntry.status_changed(200, 201),),
        )
        unchanged = DiffResult(identity=EndpointIdentity(path="/b", method=EndpointMethod.GET))
        report = FlowDiffReport(
            baseline_source="v1",
            candidate_source="v2",
            results=[changed, unchanged],
        )
        assert report.changed_count == 1
        assert report.unchanged_count == 1
        assert report.total_entries == 1
        assert report.has_changes
        assert not report.has_errors

    def test_added_endpoint_counts_as_change(self) -> None:
        report = FlowDiffReport(
            baseline_source="v1",
            candidate_source="v2",
            added_endpoints=[EndpointIdentity(path="/new", method=EndpointMethod.PUT)],
        )
        assert report.has_changes
        assert report.to_dict()["added_endpoints"] == ["PUT /new"]

    def test_to_dict_unanalyzable(self) -> None:
        report = FlowDiffReport(
            baseline_source="v1",
            candidate_source="v2",
            unanalyzable=[
                UnanalyzableEndpoint(
                    version=AnalysisVersion.CANDIDATE,
                    file_path="broken.py",
                    reason="syntax error at line 3: invalid syntax",
                )
            ],
        )
        data = report.to_dict()
        assert data["summary"]["unanalyzable"] == 1
        assert data["unanalyzable"][0]["version"] == "candidate"
        assert data["unanalyzable"][0]["endpoint"] is None

    def test_unanalyzable_describe(self) -> None:
        item = UnanalyzableEndpoint(
            version=AnalysisVersion.BASELINE,
            file_path="api.py",
            reason="No terminal response reachable on the success path",
            identity=EndpointIdentity(path="/a", method=EndpointMethod.GET),
            handler_name="api.handler",
        )
        assert item.describe() == (
            "GET /a at api.py (api.handler): No terminal response reachable on the success path"
        )
