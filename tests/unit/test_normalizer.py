"""
Unit tests for signature normalization.
"""

import pytest

from endpoint_flow_diff.analyzer.normalizer import (
    Normalizer,
    ResolvedString,
    dotted_name,
    normalize_target,
)
from endpoint_flow_diff.models.flow import UNCLASSIFIED_SIGNATURE, ConfidenceLevel, DetectionType
from endpoint_flow_diff.models.handler_ast import (
    Attribute,
    BinaryOp,
    BoolOp,
    Call,
    Compare,
    Constant,
    Name,
    UnaryOp,
    Unknown,
)


def _call(receiver, name, *args):
    return Call(func=Attribute(value=receiver, attr=name), args=args)


@pytest.fixture
def normalizer() -> Normalizer:
    return Normalizer(parameters=["id", "input"], local_names=["user", "count"], constants={"LIMIT_URL": "http://limits"})


class TestConditionSignature:
    """Tests for guard condition signatures."""

    def test_null_checks_agree_across_languages(self, normalizer: Normalizer) -> None:
        java = Compare(op="==", left=Name(id="id"), right=Constant(value=None))
        python = Compare(op="is", left=Name(id="id"), right=Constant(value=None))
        assert normalizer.condition_signature(java) == "isNull(id)"
        assert normalizer.condition_signature(python) == "isNull(id)"

    def test_not_null(self, normalizer: Normalizer) -> None:
        expr = Compare(op="is not", left=Name(id="id"), right=Constant(value=None))
        assert normalizer.condition_signature(expr) == "isNotNull(id)"

    def test_mirrored_comparison(self, normalizer: Normalizer) -> None:
        expr = Compare(op="==", left=Constant(value=None), right=Name(id="id"))
        assert normalizer.condition_signature(expr) == "isNull(id)"

    def test_length_comparisons(self, normalizer: Normalizer) -> None:
        java = Compare(op="<", left=_call(Name(id="id"), "length"), right=Constant(value=5))
        python = Compare(
            op="<",
            left=Call(func=Name(id="len"), args=(Name(id="id"),)),
            right=Constant(value=5),
        )
        assert normalizer.condition_signature(java) == "lengthLessThan(id, 5)"
        assert normalizer.condition_signature(python) == "lengthLessThan(id, 5)"

    def test_length_mirrored(self, normalizer: Normalizer) -> None:
        expr = Compare(op=">", left=Constant(value=5), right=_call(Name(id="id"), "length"))
        assert normalizer.condition_signature(expr) == "lengthLessThan(id, 5)"

    def test_length_zero_is_empty(self, normalizer: Normalizer) -> None:
        expr = Compare(op="==", left=_call(Name(id="input"), "size"), right=Constant(value=0))
        assert normalizer.condition_signature(expr) == "isEmpty(input)"

    def test_empty_predicates(self, normalizer: Normalizer) -> None:
        method = _call(Name(id="input"), "isEmpty")
        static = Call(func=Attribute(value=Name(id="StringUtils"), attr="isEmpty"), args=(Name(id="input"),))
        falsy = UnaryOp(op="not", operand=Name(id="input"))
        empty_string = Compare(op="==", left=Name(id="input"), right=Constant(value=""))
        for expr in (method, static, falsy, empty_string):
            assert normalizer.condition_signature(expr) == "isEmpty(input)"

    def test_binary_method_predicate(self, normalizer: Normalizer) -> None:
        expr = _call(Name(id="input"), "equals", Constant(value="admin"))
        assert normalizer.condition_signature(expr) == "equals(input, 'admin')"

    def test_boolean_combination(self, normalizer: Normalizer) -> None:
        expr = BoolOp(
            op="or",
            values=(
                Compare(op="==", left=Name(id="id"), right=Constant(value=None)),
                _call(Name(id="id"), "isBlank"),
            ),
        )
        assert normalizer.condition_signature(expr) == "or(isNull(id), isBlank(id))"

    def test_negated_predicate(self, normalizer: Normalizer) -> None:
        expr = UnaryOp(op="!", operand=_call(Name(id="input"), "isEmpty"))
        assert normalizer.condition_signature(expr) == "not(isEmpty(input))"

    def test_locals_become_placeholders(self, normalizer: Normalizer) -> None:
        expr = Compare(op="==", left=Name(id="user"), right=Constant(value=None))
        assert normalizer.condition_signature(expr) == "isNull(local0)"

    def test_renamed_local_keeps_signature(self) -> None:
        a = Normalizer(parameters=["id"], local_names=["user"])
        b = Normalizer(parameters=["id"], local_names=["account"])
        ea = Compare(op="==", left=Name(id="user"), right=Constant(value=None))
        eb = Compare(op="==", left=Name(id="account"), right=Constant(value=None))
        assert a.condition_signature(ea) == b.condition_signature(eb)

    def test_instance_check(self, normalizer: Normalizer) -> None:
        java = Compare(op="instanceof", left=Name(id="input"), right=Name(id="String"))
        python = Call(func=Name(id="isinstance"), args=(Name(id="input"), Name(id="String")))
        assert normalizer.condition_signature(java) == "isInstance(input, String)"
        assert normalizer.condition_signature(python) == "isInstance(input, String)"

    def test_unknown_is_unclassified(self, normalizer: Normalizer) -> None:
        assert normalizer.condition_signature(Unknown(text="x -> y")) == UNCLASSIFIED_SIGNATURE

    def test_membership(self, normalizer: Normalizer) -> None:
        expr = Compare(op="not in", left=Name(id="id"), right=Name(id="ALLOWED"))
        assert normalizer.condition_signature(expr) == "notContains(ALLOWED, id)"

    def test_boolean_literal_comparison(self, normalizer: Normalizer) -> None:
        expr = Compare(op="==", left=Attribute(value=Name(id="input"), attr="active"), right=Constant(value=False))
        assert normalizer.condition_signature(expr) == "isFalse(input.active)"


class TestConditionShape:
    """Tests for literal-blind shapes."""

    def test_thresholds_share_shape(self, normalizer: Normalizer) -> None:
        five = Compare(op="<", left=_call(Name(id="id"), "length"), right=Constant(value=5))
        eight = Compare(op="<", left=_call(Name(id="id"), "length"), right=Constant(value=8))
        assert normalizer.condition_signature(five) != normalizer.condition_signature(eight)
        assert normalizer.condition_shape(five) == normalizer.condition_shape(eight) == "lengthLessThan(id, _)"


class TestResolveString:
    """Tests for static string resolution."""

    def test_literal(self, normalizer: Normalizer) -> None:
        resolved = normalizer.resolve_string(Constant(value="http://a"))
        assert resolved == ResolvedString("http://a", DetectionType.LITERAL)
        assert resolved.confidence == ConfidenceLevel.HIGH

    def test_constant(self, normalizer: Normalizer) -> None:
        resolved = normalizer.resolve_string(Name(id="LIMIT_URL"))
        assert resolved.detection == DetectionType.CONSTANT
        assert resolved.value == "http://limits"

    def test_concatenation_with_dynamic_part(self, normalizer: Normalizer) -> None:
        expr = BinaryOp(op="+", left=Constant(value="http://users/"), right=Name(id="id"))
        resolved = normalizer.resolve_string(expr)
        assert resolved.value == "http://users/{}"
        assert resolved.detection == DetectionType.DYNAMIC

    def test_fully_dynamic(self, normalizer: Normalizer) -> None:
        assert normalizer.resolve_string(Name(id="id")) is None


class TestTargetSignature:
    """Tests for outbound target signatures."""

    def test_joins_base_and_path(self, normalizer: Normalizer) -> None:
        base = ResolvedString("http://external-service/", DetectionType.LITERAL)
        signature = normalizer.target_signature([Constant(value="/v1/api")], base=base)
        assert signature.target == "external-service/v1/api"
        assert signature.detection == DetectionType.LITERAL

    def test_dynamic_target(self, normalizer: Normalizer) -> None:
        signature = normalizer.target_signature([Name(id="url")])
        assert signature.target == "dynamic(url)"
        assert signature.confidence == ConfidenceLevel.LOW


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("http://Audit-Service:80/v1//log/?x=1", "audit-service/v1/log"),
            ("https://api.example.com:8443/v2", "api.example.com:8443/v2"),
            ("http://external-service", "external-service"),
            ("/items/", "/items"),
            ("items", "items"),
            ("", "/"),
        ],
    )
    def test_normalize_target(self, value: str, expected: str) -> None:
        assert normalize_target(value) == expected

    def test_dotted_name(self) -> None:
        expr = Attribute(value=Attribute(value=Name(id="a"), attr="b"), attr="c")
        assert dotted_name(expr) == "a.b.c"
        assert dotted_name(Call(func=Name(id="f"))) is None
