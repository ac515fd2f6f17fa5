"""
Signature normalization for guard conditions and outbound targets.

Signatures are canonical strings built from the operator kind and the
operand structure of an expression, e.g. ``isNull(id)`` or
``lengthLessThan(id, 5)``. Handler parameters keep their names, other
locally assigned identifiers become positional placeholders, and literal
values are kept so that a changed threshold yields a different signature.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional
from urllib.parse import urlsplit

from endpoint_flow_diff.models.flow import (
    UNCLASSIFIED_SIGNATURE,
    ConfidenceLevel,
    DetectionType,
)
from endpoint_flow_diff.models.handler_ast import (
    Attribute,
    BinaryOp,
    BoolOp,
    Call,
    Compare,
    Constant,
    Expr,
    Name,
    UnaryOp,
    Unknown,
)


BLANK = "_"
DYNAMIC_PART = "{}"

# Comparison operator -> predicate name
_COMPARE_NAMES = {
    "<": "lessThan",
    "<=": "lessOrEqual",
    ">": "greaterThan",
    ">=": "greaterOrEqual",
    "==": "equals",
    "is": "equals",
    "!=": "notEquals",
    "is not": "notEquals",
}

# Operator seen from the other side: ``5 > x`` is ``x < 5``
_MIRRORED = {
    "<": ">",
    "<=": ">=",
    ">": "<",
    ">=": "<=",
    "==": "==",
    "!=": "!=",
    "is": "is",
    "is not": "is not",
}

_LENGTH_FUNCTIONS = {"len"}
_LENGTH_METHODS = {"length", "size", "count"}

# Single-subject predicate methods: ``x.isEmpty()`` or ``StringUtils.isEmpty(x)``
_PREDICATE_METHODS = {
    "isEmpty": "isEmpty",
    "isBlank": "isBlank",
    "isNull": "isNull",
    "nonNull": "isNotNull",
    "isNotEmpty": "isNotEmpty",
    "isNotBlank": "isNotBlank",
    "isdigit": "isDigit",
    "isnumeric": "isNumeric",
    "isalpha": "isAlpha",
}

# Two-operand predicate methods: ``x.equals(y)``
_BINARY_METHODS = {
    "equals": "equals",
    "equalsIgnoreCase": "equalsIgnoreCase",
    "contains": "contains",
    "containsKey": "containsKey",
    "startsWith": "startsWith",
    "startswith": "startsWith",
    "endsWith": "endsWith",
    "endswith": "endsWith",
    "matches": "matches",
}

_DEFAULT_PORTS = {"http": 80, "https": 443}

_DETECTION_RANK = {
    DetectionType.LITERAL: 0,
    DetectionType.CONSTANT: 1,
    DetectionType.DYNAMIC: 2,
}

_CONFIDENCE = {
    DetectionType.LITERAL: ConfidenceLevel.HIGH,
    DetectionType.CONSTANT: ConfidenceLevel.MEDIUM,
    DetectionType.DYNAMIC: ConfidenceLevel.LOW,
}


@dataclass(frozen=True)
class ResolvedString:
    """A string expression resolved as far as static inspection allows."""

    value: str
    detection: DetectionType

    @property
    def confidence(self) -> ConfidenceLevel:
        return _CONFIDENCE[self.detection]


@dataclass(frozen=True)
class TargetSignature:
    """Normalized outbound target with how it was derived."""

    target: str
    detection: DetectionType

    @property
    def confidence(self) -> ConfidenceLevel:
        return _CONFIDENCE[self.detection]


@dataclass
class _RenderContext:
    blank_literals: bool
    placeholders: dict[str, str] = field(default_factory=dict)


class Normalizer:
    """
    Map handler expressions to comparable signatures.

    One normalizer serves one handler: it knows the handler's parameter
    names, the identifiers assigned inside the handler body, and the
    string constants visible to it.
    """

    def __init__(
        self,
        parameters: Iterable[str] = (),
        local_names: Iterable[str] = (),
        constants: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.parameters = frozenset(parameters)
        self.local_names = frozenset(local_names) - self.parameters
        self.constants = dict(constants or {})

    # Guard conditions

    def condition_signature(self, expr: Expr) -> str:
        """Canonical signature of a guard condition."""
        return self._condition(expr, _RenderContext(blank_literals=False))

    def condition_shape(self, expr: Expr) -> str:
        """Signature with every literal value replaced by a blank."""
        return self._condition(expr, _RenderContext(blank_literals=True))

    def _condition(self, expr: Expr, ctx: _RenderContext) -> str:
        if isinstance(expr, Unknown):
            return UNCLASSIFIED_SIGNATURE
        if isinstance(expr, BoolOp):
            parts = ", ".join(self._condition(v, ctx) for v in expr.values)
            return f"{expr.op}({parts})"
        if isinstance(expr, UnaryOp):
            return self._negation(expr, ctx)
        if isinstance(expr, Compare):
            return self._comparison(expr, ctx)
        if isinstance(expr, Call):
            return self._predicate_call(expr, ctx)
        if isinstance(expr, (Name, Attribute)):
            return f"isTrue({self._operand(expr, ctx)})"
        if isinstance(expr, Constant):
            return self._literal(expr.value, ctx)
        return f"expr({self._operand(expr, ctx)})"

    def _negation(self, expr: UnaryOp, ctx: _RenderContext) -> str:
        operand = expr.operand
        if expr.op == "not" and isinstance(operand, (Name, Attribute)):
            # Python truthiness: None and empty values are both rejected
            return f"isEmpty({self._operand(operand, ctx)})"
        if expr.op == "!" and isinstance(operand, (Name, Attribute)):
            return f"isFalse({self._operand(operand, ctx)})"
        if expr.op in ("not", "!"):
            return f"not({self._condition(operand, ctx)})"
        return f"expr({self._operand(expr, ctx)})"

    def _comparison(self, expr: Compare, ctx: _RenderContext) -> str:
        op, left, right = expr.op, expr.left, expr.right

        if op == "instanceof":
            return f"isInstance({self._operand(left, ctx)}, {self._type_name(right)})"
        if op in ("in", "not in"):
            name = "contains" if op == "in" else "notContains"
            return f"{name}({self._operand(right, ctx)}, {self._operand(left, ctx)})"
        if op not in _COMPARE_NAMES:
            return f"compare({self._operand(left, ctx)}, {op}, {self._operand(right, ctx)})"

        # Keep the subject on the left
        if _is_literal(left) and not _is_literal(right):
            op, left, right = _MIRRORED[op], right, left

        if _is_null(right):
            subject = self._operand(left, ctx)
            return f"isNull({subject})" if op in ("==", "is") else f"isNotNull({subject})"

        if _is_empty_string(right) and op in ("==", "!=", "is", "is not"):
            subject = self._operand(left, ctx)
            return f"isEmpty({subject})" if op in ("==", "is") else f"isNotEmpty({subject})"

        length_subject = _length_subject(left)
        if length_subject is not None:
            subject = self._operand(length_subject, ctx)
            if _is_zero(right) and op in ("==", "is"):
                return f"isEmpty({subject})"
            name = _COMPARE_NAMES[op]
            return f"length{name[0].upper()}{name[1:]}({subject}, {self._operand(right, ctx)})"

        if isinstance(right, Constant) and isinstance(right.value, bool) and op in ("==", "is"):
            predicate = "isTrue" if right.value else "isFalse"
            return f"{predicate}({self._operand(left, ctx)})"

        return f"{_COMPARE_NAMES[op]}({self._operand(left, ctx)}, {self._operand(right, ctx)})"

    def _predicate_call(self, call: Call, ctx: _RenderContext) -> str:
        name = call.name
        receiver = call.receiver

        if name == "isinstance" and len(call.args) == 2:
            return f"isInstance({self._operand(call.args[0], ctx)}, {self._type_name(call.args[1])})"

        if name in _PREDICATE_METHODS:
            if receiver is not None and not call.args and not self._is_static_owner(receiver):
                return f"{_PREDICATE_METHODS[name]}({self._operand(receiver, ctx)})"
            if len(call.args) == 1:
                return f"{_PREDICATE_METHODS[name]}({self._operand(call.args[0], ctx)})"

        if name in _BINARY_METHODS:
            if receiver is not None and len(call.args) == 1 and not self._is_static_owner(receiver):
                return (
                    f"{_BINARY_METHODS[name]}({self._operand(receiver, ctx)}, "
                    f"{self._operand(call.args[0], ctx)})"
                )
            if len(call.args) == 2:
                return (
                    f"{_BINARY_METHODS[name]}({self._operand(call.args[0], ctx)}, "
                    f"{self._operand(call.args[1], ctx)})"
                )

        args = [self._operand(a, ctx) for a in call.args]
        args.extend(f"{kw.name}={self._operand(kw.value, ctx)}" for kw in call.keywords)
        callee = self._operand(call.func, ctx)
        return f"call({', '.join([callee] + args)})"

    # Operands

    def _operand(self, expr: Expr, ctx: _RenderContext) -> str:
        if isinstance(expr, Name):
            return self._name(expr.id, ctx)
        if isinstance(expr, Constant):
            return self._literal(expr.value, ctx)
        if isinstance(expr, Attribute):
            return f"{self._operand(expr.value, ctx)}.{expr.attr}"
        if isinstance(expr, Call):
            length_subject = _length_subject(expr)
            if length_subject is not None:
                return f"length({self._operand(length_subject, ctx)})"
            args = [self._operand(a, ctx) for a in expr.args]
            args.extend(f"{kw.name}={self._operand(kw.value, ctx)}" for kw in expr.keywords)
            prefix = "new " if expr.constructor else ""
            return f"{prefix}{self._operand(expr.func, ctx)}({', '.join(args)})"
        if isinstance(expr, UnaryOp):
            if expr.op == "-" and isinstance(expr.operand, Constant):
                if ctx.blank_literals:
                    return BLANK
                return f"-{self._literal(expr.operand.value, ctx)}"
            return f"{expr.op}({self._operand(expr.operand, ctx)})"
        if isinstance(expr, BinaryOp):
            return f"({self._operand(expr.left, ctx)} {expr.op} {self._operand(expr.right, ctx)})"
        if isinstance(expr, (Compare, BoolOp)):
            return self._condition(expr, ctx)
        if isinstance(expr, Unknown) and expr.text:
            return " ".join(expr.text.split())
        return "?"

    def _name(self, identifier: str, ctx: _RenderContext) -> str:
        if identifier in self.parameters:
            return identifier
        if identifier in self.local_names:
            if identifier not in ctx.placeholders:
                ctx.placeholders[identifier] = f"local{len(ctx.placeholders)}"
            return ctx.placeholders[identifier]
        if identifier in self.constants:
            return self._literal(self.constants[identifier], ctx)
        return identifier

    def _literal(self, value: object, ctx: _RenderContext) -> str:
        if ctx.blank_literals:
            return BLANK
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            escaped = value.replace("\\", "\\\\").replace("'", "\\'")
            return f"'{escaped}'"
        return str(value)

    def _type_name(self, expr: Expr) -> str:
        dotted = dotted_name(expr)
        if dotted is not None:
            return dotted
        if isinstance(expr, Constant) and isinstance(expr.value, str):
            return expr.value
        return "?"

    def _is_static_owner(self, expr: Expr) -> bool:
        """True for ``StringUtils`` in ``StringUtils.isEmpty(x)``."""
        return (
            isinstance(expr, Name)
            and expr.id not in self.parameters
            and expr.id not in self.local_names
            and expr.id[:1].isupper()
        )

    # Outbound targets

    def resolve_string(
        self,
        expr: Expr,
        bindings: Optional[Mapping[str, str]] = None,
    ) -> Optional[ResolvedString]:
        """
        Resolve an expression to a string value.

        Literals resolve directly; names bound to literals (locally or as
        constants) resolve with CONSTANT detection; concatenations keep
        their literal parts and mark the rest as ``{}``. Returns None when
        nothing of the expression is static.
        """
        if isinstance(expr, Constant) and isinstance(expr.value, str):
            return ResolvedString(expr.value, DetectionType.LITERAL)
        if isinstance(expr, Name):
            if bindings and expr.id in bindings:
                return ResolvedString(bindings[expr.id], DetectionType.CONSTANT)
            if expr.id in self.constants:
                return ResolvedString(self.constants[expr.id], DetectionType.CONSTANT)
            return None
        if isinstance(expr, Attribute) and expr.attr in self.constants:
            # Qualified constant reference such as ``Config.BASE_URL``
            return ResolvedString(self.constants[expr.attr], DetectionType.CONSTANT)
        if isinstance(expr, BinaryOp) and expr.op == "+":
            left = self.resolve_string(expr.left, bindings)
            right = self.resolve_string(expr.right, bindings)
            if left is None and right is None:
                return None
            return join_resolved(
                left or ResolvedString(DYNAMIC_PART, DetectionType.DYNAMIC),
                right or ResolvedString(DYNAMIC_PART, DetectionType.DYNAMIC),
            )
        return None

    def target_signature(
        self,
        parts: list[Expr],
        bindings: Optional[Mapping[str, str]] = None,
        base: Optional[ResolvedString] = None,
    ) -> TargetSignature:
        """
        Build the signature of an outbound target.

        Args:
            parts: Target expressions in chain order (base URL first,
                then appended path segments).
            bindings: Local names bound to string literals.
            base: Already resolved base target of the client handle.
        """
        resolved: Optional[ResolvedString] = base
        for part in parts:
            value = self.resolve_string(part, bindings)
            if value is None:
                if resolved is None:
                    rendered = self._operand(part, _RenderContext(blank_literals=False))
                    return TargetSignature(f"dynamic({rendered})", DetectionType.DYNAMIC)
                value = ResolvedString(DYNAMIC_PART, DetectionType.DYNAMIC)
            resolved = value if resolved is None else join_url(resolved, value)
        if resolved is None:
            return TargetSignature("dynamic(?)", DetectionType.DYNAMIC)
        return TargetSignature(normalize_target(resolved.value), resolved.detection)


def join_resolved(left: ResolvedString, right: ResolvedString) -> ResolvedString:
    """Concatenate two resolved strings, keeping the weakest detection."""
    return ResolvedString(left.value + right.value, _weakest(left.detection, right.detection))


def join_url(base: ResolvedString, path: ResolvedString) -> ResolvedString:
    """Append a path segment to a base target."""
    if "://" in path.value:
        return path
    value = base.value.rstrip("/") + "/" + path.value.lstrip("/")
    return ResolvedString(value, _weakest(base.detection, path.detection))


def normalize_target(value: str) -> str:
    """
    Normalize a URL or path into a target signature.

    ``http://Audit-Service:80/v1//log/?x=1`` becomes
    ``audit-service/v1/log``; relative paths keep their leading slash.
    """
    value = value.strip()
    if "://" in value:
        parts = urlsplit(value)
        host = (parts.hostname or "").lower()
        try:
            port = parts.port
        except ValueError:
            port = None
        if port is not None and port != _DEFAULT_PORTS.get(parts.scheme.lower()):
            host = f"{host}:{port}"
        path = _collapse_path(parts.path)
        return host + path if path != "/" else host

    path = value.split("?", 1)[0].split("#", 1)[0]
    if not path:
        return "/"
    collapsed = _collapse_path(path)
    if not path.startswith("/"):
        return collapsed.lstrip("/") or "/"
    return collapsed


def dotted_name(expr: Expr) -> Optional[str]:
    """``a.b.c`` for a chain of attributes over a name, otherwise None."""
    if isinstance(expr, Name):
        return expr.id
    if isinstance(expr, Attribute):
        owner = dotted_name(expr.value)
        return f"{owner}.{expr.attr}" if owner else None
    return None


def _collapse_path(path: str) -> str:
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(segments)


def _weakest(a: DetectionType, b: DetectionType) -> DetectionType:
    return a if _DETECTION_RANK[a] >= _DETECTION_RANK[b] else b


def _is_literal(expr: Expr) -> bool:
    if isinstance(expr, UnaryOp) and expr.op == "-":
        return isinstance(expr.operand, Constant)
    return isinstance(expr, Constant)


def _is_null(expr: Expr) -> bool:
    return isinstance(expr, Constant) and expr.value is None


def _is_empty_string(expr: Expr) -> bool:
    return isinstance(expr, Constant) and expr.value == ""


def _is_zero(expr: Expr) -> bool:
    return (
        isinstance(expr, Constant)
        and isinstance(expr.value, int)
        and not isinstance(expr.value, bool)
        and expr.value == 0
    )


def _length_subject(expr: Expr) -> Optional[Expr]:
    """The measured operand of ``len(x)``, ``x.length()`` or ``x.length``."""
    if isinstance(expr, Call):
        if expr.receiver is None and expr.name in _LENGTH_FUNCTIONS and len(expr.args) == 1:
            return expr.args[0]
        if expr.receiver is not None and expr.name in _LENGTH_METHODS and not expr.args:
            return expr.receiver
    if isinstance(expr, Attribute) and expr.attr == "length":
        return expr.value
    return None
