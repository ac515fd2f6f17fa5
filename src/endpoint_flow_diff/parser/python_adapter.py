"""
FastAPI handler adapter using pure AST analysis.

Handlers are found through their route decorators without importing or
executing the analyzed code, so untrusted sources are safe to scan.
"""

import ast
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    EndpointMethod,
    HandlerInfo,
    normalize_route_path,
)
from endpoint_flow_diff.models.handler_ast import (
    AssignStmt,
    Attribute,
    BinaryOp,
    BlockStmt,
    BoolOp,
    Call,
    Compare,
    Constant,
    Expr,
    ExprStmt,
    HandlerAST,
    HelperMethod,
    IfStmt,
    Keyword,
    Name,
    OpaqueStmt,
    Stmt,
    TerminalStmt,
    UnaryOp,
    Unknown,
)
from endpoint_flow_diff.parser.adapters import (
    AdapterError,
    BaseAdapter,
    register_adapter,
    status_from_expr,
)


logger = logging.getLogger(__name__)

# Route decorator name -> HTTP method
ROUTE_METHODS = {
    "get": EndpointMethod.GET,
    "post": EndpointMethod.POST,
    "put": EndpointMethod.PUT,
    "patch": EndpointMethod.PATCH,
    "delete": EndpointMethod.DELETE,
    "options": EndpointMethod.OPTIONS,
    "head": EndpointMethod.HEAD,
    "trace": EndpointMethod.TRACE,
}

ROUTER_FACTORIES = {"FastAPI", "APIRouter"}

DEFAULT_STATUS = 200

# Response classes with a non-200 default
_RESPONSE_DEFAULTS = {
    "RedirectResponse": 307,
}

# Exceptions with a fixed status
_EXCEPTION_STATUS = {
    "RequestValidationError": 422,
    "ValidationError": 422,
}

_COMPARE_OPS = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.Is: "is",
    ast.IsNot: "is not",
    ast.In: "in",
    ast.NotIn: "not in",
}

_BINARY_OPS = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.FloorDiv: "//",
    ast.Mod: "%",
    ast.Pow: "**",
    ast.BitAnd: "&",
    ast.BitOr: "|",
    ast.BitXor: "^",
    ast.LShift: "<<",
    ast.RShift: ">>",
    ast.MatMult: "@",
}

_UNARY_OPS = {
    ast.Not: "not",
    ast.USub: "-",
    ast.UAdd: "+",
    ast.Invert: "~",
}


@dataclass(frozen=True)
class _Route:
    method: EndpointMethod
    path: str
    status_code: int


@register_adapter(".py")
class PythonHandlerAdapter(BaseAdapter):
    """
    Extract FastAPI handlers from Python sources.

    Recognizes ``@app.get("/path")``-style decorators (and
    ``api_route(methods=[...])``) on functions, applies the ``prefix`` of
    an ``APIRouter`` created or included in the same module, and converts
    each handler body into the generic handler tree.
    """

    language = "python"

    def parse_source(self, source: str, file_path: Path) -> list[HandlerAST]:
        try:
            tree = ast.parse(source, filename=str(file_path))
        except SyntaxError as e:
            raise AdapterError(file_path, f"syntax error at line {e.lineno}: {e.msg}") from e
        except ValueError as e:
            # Null bytes in the source
            raise AdapterError(file_path, f"cannot parse source: {e}") from e
        except (RecursionError, MemoryError) as e:
            raise AdapterError(file_path, "source is nested too deeply to parse") from e

        owners = self._find_route_owners(tree)
        constants = self._module_constants(tree)
        helpers = _module_functions(tree)
        module_name = file_path.stem

        handlers: list[HandlerAST] = []
        for node in tree.body:
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            for route in self._routes_of(node, owners):
                handlers.append(
                    HandlerAST(
                        identity=EndpointIdentity(path=route.path, method=route.method),
                        handler=HandlerInfo(
                            name=node.name,
                            module=module_name,
                            file_path=file_path,
                            line_number=node.lineno,
                            end_line_number=node.end_lineno or node.lineno,
                        ),
                        parameters=_parameter_names(node.args),
                        constants=constants,
                        body=_BodyConverter(route.status_code).convert_body(node.body),
                        helpers=helpers,
                    )
                )
        return handlers

    # Routing

    def _find_route_owners(self, tree: ast.Module) -> dict[str, str]:
        """
        Map app/router variable names to their route prefix.

        Variables assigned from ``FastAPI()``/``APIRouter()`` and the
        configured owner names count as route owners. A same-module
        ``app.include_router(router, prefix=...)`` extends the prefix.
        """
        owners = {name: "" for name in self.config.route_owners}

        for node in tree.body:
            if not isinstance(node, ast.Assign) or not isinstance(node.value, ast.Call):
                continue
            factory = node.value.func
            factory_name = factory.id if isinstance(factory, ast.Name) else getattr(factory, "attr", None)
            if factory_name not in ROUTER_FACTORIES:
                continue
            prefix = _keyword_string(node.value, "prefix") or ""
            for target in node.targets:
                if isinstance(target, ast.Name):
                    owners[target.id] = prefix

        for node in ast.walk(tree):
            if (
                isinstance(node, ast.Call)
                and isinstance(node.func, ast.Attribute)
                and node.func.attr == "include_router"
                and node.args
                and isinstance(node.args[0], ast.Name)
            ):
                router = node.args[0].id
                include_prefix = _keyword_string(node, "prefix") or ""
                owners[router] = normalize_route_path(include_prefix, owners.get(router, ""))
        return owners

    def _routes_of(self, func: ast.FunctionDef | ast.AsyncFunctionDef, owners: dict[str, str]) -> list[_Route]:
        routes: list[_Route] = []
        for decorator in func.decorator_list:
            if not isinstance(decorator, ast.Call) or not isinstance(decorator.func, ast.Attribute):
                continue
            owner = decorator.func.value
            if not isinstance(owner, ast.Name) or owner.id not in owners:
                continue

            path = _route_path(decorator)
            if path is None:
                logger.debug("%s: route path of %s is not a literal", func.name, owner.id)
                continue
            full_path = normalize_route_path(owners[owner.id], path)
            status_code = status_from_expr(_convert_keyword(decorator, "status_code")) or DEFAULT_STATUS

            attr = decorator.func.attr
            if attr in ROUTE_METHODS:
                routes.append(_Route(ROUTE_METHODS[attr], full_path, status_code))
            elif attr == "api_route":
                for method in _route_methods(decorator):
                    routes.append(_Route(method, full_path, status_code))
        return routes

    def _module_constants(self, tree: ast.Module) -> dict[str, str]:
        """Module-level names bound to string literals."""
        constants: dict[str, str] = {}
        for node in tree.body:
            if isinstance(node, ast.Assign):
                targets = [t.id for t in node.targets if isinstance(t, ast.Name)]
                value = node.value
            elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                targets = [node.target.id]
                value = node.value
            else:
                continue
            if isinstance(value, ast.Constant) and isinstance(value.value, str):
                for target in targets:
                    constants[target] = value.value
        return constants


class _BodyConverter:
    """Converts one handler body from ``ast`` nodes to the generic tree."""

    def __init__(self, route_status: int) -> None:
        self.route_status = route_status

    def convert_body(self, body: list[ast.stmt]) -> tuple[Stmt, ...]:
        statements = self.convert_statements(_strip_docstring(body))
        if not statements or not isinstance(statements[-1], TerminalStmt):
            end_line = body[-1].end_lineno if body else None
            statements.append(
                TerminalStmt(
                    kind="return",
                    status_code=self.route_status,
                    has_body=False,
                    implicit=True,
                    line=end_line,
                )
            )
        return tuple(statements)

    def convert_statements(self, body: list[ast.stmt]) -> list[Stmt]:
        statements: list[Stmt] = []
        for node in body:
            statements.extend(self.convert_statement(node))
        return statements

    def convert_statement(self, node: ast.stmt) -> list[Stmt]:
        line = node.lineno

        if isinstance(node, ast.If):
            return [IfStmt(
                condition=convert_expr(node.test),
                body=tuple(self.convert_statements(node.body)),
                orelse=tuple(self.convert_statements(node.orelse)),
                line=line,
            )]

        if isinstance(node, ast.Return):
            return [self._return(node)]

        if isinstance(node, ast.Raise):
            return [self._raise(node)]

        if isinstance(node, ast.Expr):
            return [ExprStmt(expr=convert_expr(node.value), line=line)]

        if isinstance(node, ast.Assign):
            return _assignments(node.targets, node.value, line)

        if isinstance(node, ast.AnnAssign):
            if node.value is None:
                return [OpaqueStmt(text=ast.unparse(node), line=line)]
            return _assignments([node.target], node.value, line)

        if isinstance(node, ast.AugAssign):
            value = convert_expr(node.value)
            if isinstance(node.target, ast.Name):
                op = _BINARY_OPS.get(type(node.op), "?")
                return [AssignStmt(
                    target=node.target.id,
                    value=BinaryOp(op=op, left=Name(id=node.target.id), right=value),
                    line=line,
                )]
            return [ExprStmt(expr=value, line=line)]

        if isinstance(node, (ast.For, ast.AsyncFor)):
            return [BlockStmt(
                kind="for",
                header=(convert_expr(node.iter),),
                body=tuple(_bind_targets(node.target, line) + self.convert_statements(node.body + node.orelse)),
                line=line,
            )]

        if isinstance(node, ast.While):
            return [BlockStmt(
                kind="while",
                header=(convert_expr(node.test),),
                body=tuple(self.convert_statements(node.body + node.orelse)),
                line=line,
            )]

        if isinstance(node, (ast.With, ast.AsyncWith)):
            return [self._with(node)]

        if isinstance(node, (ast.Try, ast.TryStar)):
            return [self._try(node)]

        if isinstance(node, ast.Match):
            body: list[Stmt] = []
            for case in node.cases:
                body.extend(self.convert_statements(case.body))
            return [BlockStmt(kind="match", header=(convert_expr(node.subject),), body=tuple(body), line=line)]

        return [OpaqueStmt(text=type(node).__name__.lower(), line=line)]

    def _return(self, node: ast.Return) -> TerminalStmt:
        if node.value is None:
            return TerminalStmt(kind="return", status_code=self.route_status, line=node.lineno)

        value = convert_expr(node.value)
        if isinstance(value, Call) and value.name and value.name.endswith("Response"):
            status = _response_status(value)
            has_body = bool(value.args) or value.keyword("content") is not None
            return TerminalStmt(kind="return", status_code=status, has_body=has_body, value=value, line=node.lineno)

        has_body = not (isinstance(value, Constant) and value.value is None)
        return TerminalStmt(
            kind="return",
            status_code=self.route_status,
            has_body=has_body,
            value=value,
            line=node.lineno,
        )

    def _raise(self, node: ast.Raise) -> TerminalStmt:
        if node.exc is None:
            return TerminalStmt(kind="raise", line=node.lineno)
        value = convert_expr(node.exc)
        return TerminalStmt(kind="raise", status_code=_exception_status(value), value=value, line=node.lineno)

    def _with(self, node: ast.With | ast.AsyncWith) -> BlockStmt:
        header: list[Expr] = []
        bindings: list[Stmt] = []
        for item in node.items:
            context = convert_expr(item.context_expr)
            if isinstance(item.optional_vars, ast.Name):
                bindings.append(AssignStmt(target=item.optional_vars.id, value=context, line=node.lineno))
            else:
                header.append(context)
                if item.optional_vars is not None:
                    bindings.extend(_bind_targets(item.optional_vars, node.lineno))
        return BlockStmt(
            kind="with",
            header=tuple(header),
            body=tuple(bindings + self.convert_statements(node.body)),
            line=node.lineno,
        )

    def _try(self, node: ast.Try | ast.TryStar) -> BlockStmt:
        # try/else is the success path; except and finally clauses are not
        body = self.convert_statements(node.body + node.orelse)
        handlers: list[Stmt] = []
        for handler in node.handlers:
            if handler.name:
                handlers.append(AssignStmt(target=handler.name, value=Unknown(text="exception"), line=handler.lineno))
            handlers.extend(self.convert_statements(handler.body))
        handlers.extend(self.convert_statements(node.finalbody))
        return BlockStmt(kind="try", body=tuple(body), handlers=tuple(handlers), line=node.lineno)


# Expressions

def convert_expr(node: ast.expr) -> Expr:
    """Convert a Python expression into a generic expression node."""
    if isinstance(node, ast.Name):
        return Name(id=node.id)

    if isinstance(node, ast.Constant):
        if node.value is None or isinstance(node.value, (bool, int, float, str)):
            return Constant(value=node.value)
        return Unknown(text=ast.unparse(node))

    if isinstance(node, ast.Attribute):
        return Attribute(value=convert_expr(node.value), attr=node.attr)

    if isinstance(node, ast.Call):
        return Call(
            func=convert_expr(node.func),
            args=tuple(convert_expr(a) for a in node.args),
            keywords=tuple(
                Keyword(name=kw.arg, value=convert_expr(kw.value))
                for kw in node.keywords
                if kw.arg is not None
            ),
        )

    if isinstance(node, ast.Await):
        return convert_expr(node.value)

    if isinstance(node, ast.Compare):
        return _compare(node)

    if isinstance(node, ast.BoolOp):
        op = "and" if isinstance(node.op, ast.And) else "or"
        return BoolOp(op=op, values=tuple(convert_expr(v) for v in node.values))

    if isinstance(node, ast.UnaryOp):
        return UnaryOp(op=_UNARY_OPS[type(node.op)], operand=convert_expr(node.operand))

    if isinstance(node, ast.BinOp):
        return BinaryOp(
            op=_BINARY_OPS.get(type(node.op), "?"),
            left=convert_expr(node.left),
            right=convert_expr(node.right),
        )

    if isinstance(node, ast.JoinedStr):
        return _joined_str(node)

    if isinstance(node, ast.FormattedValue):
        return convert_expr(node.value)

    if isinstance(node, ast.Subscript):
        return Call(func=Attribute(value=convert_expr(node.value), attr="getitem"), args=(convert_expr(node.slice),))

    if isinstance(node, ast.NamedExpr):
        return convert_expr(node.value)

    return Unknown(text=ast.unparse(node))


def _compare(node: ast.Compare) -> Expr:
    # a < b < c is (a < b) and (b < c)
    comparisons: list[Expr] = []
    left = node.left
    for op, right in zip(node.ops, node.comparators):
        comparisons.append(Compare(
            op=_COMPARE_OPS[type(op)],
            left=convert_expr(left),
            right=convert_expr(right),
        ))
        left = right
    if len(comparisons) == 1:
        return comparisons[0]
    return BoolOp(op="and", values=tuple(comparisons))


def _joined_str(node: ast.JoinedStr) -> Expr:
    """An f-string as a concatenation of its literal and formatted parts."""
    parts = [convert_expr(v) for v in node.values]
    if not parts:
        return Constant(value="")
    result = parts[0]
    for part in parts[1:]:
        result = BinaryOp(op="+", left=result, right=part)
    return result


# Helpers

def _assignments(targets: list[ast.expr], value: ast.expr, line: int) -> list[Stmt]:
    converted = convert_expr(value)
    statements: list[Stmt] = []
    for target in targets:
        if isinstance(target, ast.Name):
            statements.append(AssignStmt(target=target.id, value=converted, line=line))
        elif isinstance(target, (ast.Tuple, ast.List)):
            statements.append(ExprStmt(expr=converted, line=line))
            statements.extend(_bind_targets(target, line))
        else:
            statements.append(ExprStmt(expr=converted, line=line))
    return statements


def _bind_targets(target: ast.expr, line: int) -> list[Stmt]:
    """Bind loop, unpacking and ``with`` targets to unknown values."""
    names = [n.id for n in ast.walk(target) if isinstance(n, ast.Name)]
    return [AssignStmt(target=name, value=Unknown(text=name), line=line) for name in names]


def _module_functions(tree: ast.Module) -> dict[str, HelperMethod]:
    """Module-level functions by name; a later definition replaces an earlier one."""
    helpers: dict[str, HelperMethod] = {}
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            helpers[node.name] = HelperMethod(
                name=node.name,
                parameters=_parameter_names(node.args),
                body=tuple(_BodyConverter(DEFAULT_STATUS).convert_statements(_strip_docstring(node.body))),
                line=node.lineno,
            )
    return helpers


def _parameter_names(args: ast.arguments) -> tuple[str, ...]:
    names = [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]
    if args.vararg:
        names.append(args.vararg.arg)
    if args.kwarg:
        names.append(args.kwarg.arg)
    return tuple(names)


def _strip_docstring(body: list[ast.stmt]) -> list[ast.stmt]:
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        return body[1:]
    return body


def _keyword_string(call: ast.Call, name: str) -> Optional[str]:
    for keyword in call.keywords:
        if keyword.arg == name and isinstance(keyword.value, ast.Constant):
            if isinstance(keyword.value.value, str):
                return keyword.value.value
    return None


def _convert_keyword(call: ast.Call, name: str) -> Optional[Expr]:
    for keyword in call.keywords:
        if keyword.arg == name:
            return convert_expr(keyword.value)
    return None


def _route_path(decorator: ast.Call) -> Optional[str]:
    if decorator.args and isinstance(decorator.args[0], ast.Constant):
        if isinstance(decorator.args[0].value, str):
            return decorator.args[0].value
    return _keyword_string(decorator, "path")


def _route_methods(decorator: ast.Call) -> list[EndpointMethod]:
    methods: list[EndpointMethod] = []
    for keyword in decorator.keywords:
        if keyword.arg == "methods" and isinstance(keyword.value, (ast.List, ast.Tuple, ast.Set)):
            for element in keyword.value.elts:
                if isinstance(element, ast.Constant) and isinstance(element.value, str):
                    name = element.value.upper()
                    if name in EndpointMethod.__members__:
                        methods.append(EndpointMethod(name))
    return methods or [EndpointMethod.GET]


def _response_status(call: Call) -> Optional[int]:
    status = call.keyword("status_code")
    if status is not None:
        return status_from_expr(status)
    return _RESPONSE_DEFAULTS.get(call.name or "", DEFAULT_STATUS)


def _exception_status(value: Expr) -> Optional[int]:
    if not isinstance(value, Call):
        return None
    if value.name == "HTTPException" or (value.name or "").endswith("HTTPException"):
        status = value.keyword("status_code")
        if status is None and value.args:
            status = value.args[0]
        return status_from_expr(status)
    return _EXCEPTION_STATUS.get(value.name or "")
