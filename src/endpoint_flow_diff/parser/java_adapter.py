"""
JAX-RS handler adapter using tree-sitter.

Resource methods are found by their ``@GET``/``@POST``/... annotations;
the class and method ``@Path`` values are joined into the route. Method
bodies are converted into the generic handler tree and the tree-sitter
nodes are dropped.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional

import tree_sitter_java
from tree_sitter import Language, Node, Parser

from endpoint_flow_diff.config import ParserConfig
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

JAVA_LANGUAGE = Language(tree_sitter_java.language())

HTTP_ANNOTATIONS = {m.value for m in EndpointMethod}

# Response builder factory -> status
_BUILDER_STATUS = {
    "ok": 200,
    "created": 201,
    "accepted": 202,
    "noContent": 204,
    "notModified": 304,
    "seeOther": 303,
    "temporaryRedirect": 307,
    "notAcceptable": 406,
    "serverError": 500,
}

# WebApplicationException subclasses with a fixed status
_EXCEPTION_STATUS = {
    "BadRequestException": 400,
    "NotAuthorizedException": 401,
    "ForbiddenException": 403,
    "NotFoundException": 404,
    "NotAllowedException": 405,
    "NotAcceptableException": 406,
    "NotSupportedException": 415,
    "InternalServerErrorException": 500,
    "ServiceUnavailableException": 503,
}

# Exceptions whose status is a constructor argument
_STATUS_EXCEPTIONS = {"WebApplicationException", "ClientErrorException", "ServerErrorException"}

_COMPARE_OPS = {"==", "!=", "<", "<=", ">", ">="}
_BOOL_OPS = {"&&": "and", "||": "or"}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0"}


def _text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _line(node: Node) -> int:
    return node.start_point[0] + 1


@register_adapter(".java")
class JavaHandlerAdapter(BaseAdapter):
    """Extract JAX-RS resource methods from Java sources."""

    language = "java"

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        super().__init__(config)
        self._parser = Parser(JAVA_LANGUAGE)

    def parse_source(self, source: str, file_path: Path) -> list[HandlerAST]:
        tree = self._parser.parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            error = next(_error_nodes(root), root)
            raise AdapterError(file_path, f"syntax error near line {_line(error)}")

        handlers: list[HandlerAST] = []
        for class_node in _descendants(root, "class_declaration"):
            handlers.extend(self._class_handlers(class_node, file_path))
        return handlers

    def _class_handlers(self, class_node: Node, file_path: Path) -> list[HandlerAST]:
        class_name = _text(class_node.child_by_field_name("name"))
        body = class_node.child_by_field_name("body")
        if body is None:
            return []

        constants = _class_constants(body)
        class_path = _annotation_value(_annotations(class_node), "Path", constants) or ""
        helpers = _class_methods(body)

        handlers: list[HandlerAST] = []
        for method in body.named_children:
            if method.type != "method_declaration":
                continue
            annotations = _annotations(method)
            verbs = [name for name in annotations if name in HTTP_ANNOTATIONS]
            if not verbs:
                continue

            method_path = _annotation_value(annotations, "Path", constants)
            route = normalize_route_path(class_path, method_path)
            method_name = _text(method.child_by_field_name("name"))
            return_type = _text(method.child_by_field_name("type"))
            converter = _BodyConverter(returns_response=return_type.endswith("Response"))
            statements = converter.convert_body(method.child_by_field_name("body"), void=return_type == "void")

            for verb in verbs:
                handlers.append(
                    HandlerAST(
                        identity=EndpointIdentity(path=route, method=EndpointMethod(verb)),
                        handler=HandlerInfo(
                            name=method_name,
                            module=class_name,
                            file_path=file_path,
                            line_number=_line(method),
                            end_line_number=method.end_point[0] + 1,
                        ),
                        parameters=_parameter_names(method),
                        constants=constants,
                        body=statements,
                        helpers=helpers,
                    )
                )
        return handlers


class _BodyConverter:
    """Converts one method body from tree-sitter nodes to the generic tree."""

    def __init__(self, returns_response: bool) -> None:
        self.returns_response = returns_response

    def convert_body(self, block: Optional[Node], void: bool) -> tuple[Stmt, ...]:
        if block is None:
            return ()
        statements = self.convert_block(block)
        if not statements or not isinstance(statements[-1], TerminalStmt):
            # Falling off the end of a void resource method is 204
            statements.append(
                TerminalStmt(
                    kind="return",
                    status_code=204 if void else None,
                    implicit=True,
                    line=block.end_point[0] + 1,
                )
            )
        return tuple(statements)

    def convert_block(self, node: Optional[Node]) -> list[Stmt]:
        """Statements of a block, or of a single statement used as a body."""
        if node is None:
            return []
        if node.type == "block":
            statements: list[Stmt] = []
            for child in node.named_children:
                statements.extend(self.convert_statement(child))
            return statements
        return self.convert_statement(node)

    def convert_statement(self, node: Node) -> list[Stmt]:
        kind = node.type
        line = _line(node)

        if kind == "if_statement":
            condition = node.child_by_field_name("condition")
            return [IfStmt(
                condition=convert_expr(condition),
                body=tuple(self.convert_block(node.child_by_field_name("consequence"))),
                orelse=tuple(self.convert_block(node.child_by_field_name("alternative"))),
                line=line,
            )]

        if kind == "return_statement":
            return [self._return(node)]

        if kind == "throw_statement":
            value = convert_expr(node.named_children[0]) if node.named_children else None
            return [TerminalStmt(kind="raise", status_code=_exception_status(value), value=value, line=line)]

        if kind == "local_variable_declaration":
            statements: list[Stmt] = []
            for declarator in node.children_by_field_name("declarator"):
                name = _text(declarator.child_by_field_name("name"))
                value = declarator.child_by_field_name("value")
                converted = convert_expr(value) if value is not None else Unknown(text=name)
                statements.append(AssignStmt(target=name, value=converted, line=line))
            return statements

        if kind == "expression_statement":
            return self._expression_statement(node, line)

        if kind == "block":
            return [BlockStmt(kind="block", body=tuple(self.convert_block(node)), line=line)]

        if kind in ("for_statement", "while_statement", "do_statement"):
            header = [
                convert_expr(child)
                for field in ("init", "condition", "update")
                for child in node.children_by_field_name(field)
                if child.type != "local_variable_declaration"
            ]
            body: list[Stmt] = []
            for init in node.children_by_field_name("init"):
                if init.type == "local_variable_declaration":
                    body.extend(self.convert_statement(init))
            body.extend(self.convert_block(node.child_by_field_name("body")))
            return [BlockStmt(kind="loop", header=tuple(header), body=tuple(body), line=line)]

        if kind == "enhanced_for_statement":
            name = _text(node.child_by_field_name("name"))
            body = [AssignStmt(target=name, value=Unknown(text=name), line=line)]
            body.extend(self.convert_block(node.child_by_field_name("body")))
            header = (convert_expr(node.child_by_field_name("value")),)
            return [BlockStmt(kind="loop", header=header, body=tuple(body), line=line)]

        if kind in ("try_statement", "try_with_resources_statement"):
            return [self._try(node, line)]

        if kind == "synchronized_statement":
            return [BlockStmt(kind="synchronized", body=tuple(self.convert_block(node.child_by_field_name("body"))), line=line)]

        if kind == "switch_expression":
            body = []
            switch_block = node.child_by_field_name("body")
            for statement in _switch_statements(switch_block):
                body.extend(self.convert_statement(statement))
            header = (convert_expr(node.child_by_field_name("condition")),)
            return [BlockStmt(kind="switch", header=header, body=tuple(body), line=line)]

        if kind == "labeled_statement":
            inner = [c for c in node.named_children if c.type != "identifier"]
            return self.convert_statement(inner[0]) if inner else []

        if kind in ("line_comment", "block_comment"):
            return []

        return [OpaqueStmt(text=kind, line=line)]

    def _expression_statement(self, node: Node, line: int) -> list[Stmt]:
        expression = node.named_children[0]
        if expression.type == "assignment_expression":
            left = expression.child_by_field_name("left")
            right = convert_expr(expression.child_by_field_name("right"))
            operator = _text(expression.child_by_field_name("operator"))
            if left is not None and left.type == "identifier":
                name = _text(left)
                if operator != "=":
                    right = BinaryOp(op=operator.rstrip("="), left=Name(id=name), right=right)
                return [AssignStmt(target=name, value=right, line=line)]
            return [ExprStmt(expr=right, line=line)]
        return [ExprStmt(expr=convert_expr(expression), line=line)]

    def _return(self, node: Node) -> TerminalStmt:
        line = _line(node)
        if not node.named_children:
            return TerminalStmt(kind="return", status_code=204, line=line)

        value = convert_expr(node.named_children[0])
        builder = _response_builder(value)
        if builder is not None:
            status, has_body = builder
            return TerminalStmt(kind="return", status_code=status, has_body=has_body, value=value, line=line)
        if isinstance(value, Constant) and value.value is None:
            return TerminalStmt(kind="return", status_code=204, value=value, line=line)
        if self.returns_response:
            # A Response built elsewhere; its status is not visible here
            return TerminalStmt(kind="return", status_code=None, has_body=True, value=value, line=line)
        return TerminalStmt(kind="return", status_code=200, has_body=True, value=value, line=line)

    def _try(self, node: Node, line: int) -> BlockStmt:
        body: list[Stmt] = []
        resources = node.child_by_field_name("resources")
        if resources is not None:
            for resource in resources.named_children:
                name = resource.child_by_field_name("name")
                value = resource.child_by_field_name("value")
                if name is not None and value is not None:
                    body.append(AssignStmt(target=_text(name), value=convert_expr(value), line=_line(resource)))
        body.extend(self.convert_block(node.child_by_field_name("body")))
        handlers: list[Stmt] = []
        for child in node.named_children:
            if child.type == "catch_clause":
                parameter = next((c for c in child.named_children if c.type == "catch_formal_parameter"), None)
                if parameter is not None:
                    name = _text(parameter.child_by_field_name("name"))
                    handlers.append(AssignStmt(target=name, value=Unknown(text="exception"), line=_line(child)))
                handlers.extend(self.convert_block(child.child_by_field_name("body")))
            elif child.type == "finally_clause":
                for block in child.named_children:
                    handlers.extend(self.convert_block(block))
        return BlockStmt(kind="try", body=tuple(body), handlers=tuple(handlers), line=line)


# Expressions

def convert_expr(node: Optional[Node]) -> Expr:
    """Convert a Java expression node into a generic expression node."""
    if node is None:
        return Unknown()
    kind = node.type

    if kind == "parenthesized_expression":
        return convert_expr(node.named_children[0]) if node.named_children else Unknown()

    if kind == "identifier":
        return Name(id=_text(node))
    if kind == "this":
        return Name(id="this")

    if kind == "string_literal":
        return Constant(value=_string_value(node))
    if kind == "character_literal":
        return Constant(value=_unescape(_text(node)[1:-1]))
    if kind in ("decimal_integer_literal", "hex_integer_literal", "octal_integer_literal", "binary_integer_literal"):
        return Constant(value=_int_value(_text(node)))
    if kind == "decimal_floating_point_literal":
        return Constant(value=float(_text(node).rstrip("fFdD").replace("_", "")))
    if kind == "true":
        return Constant(value=True)
    if kind == "false":
        return Constant(value=False)
    if kind == "null_literal":
        return Constant(value=None)

    if kind == "field_access":
        return Attribute(
            value=convert_expr(node.child_by_field_name("object")),
            attr=_text(node.child_by_field_name("field")),
        )

    if kind == "method_invocation":
        name = _text(node.child_by_field_name("name"))
        owner = node.child_by_field_name("object")
        func: Expr = Name(id=name) if owner is None else Attribute(value=convert_expr(owner), attr=name)
        return Call(func=func, args=_arguments(node))

    if kind == "object_creation_expression":
        type_name = _text(node.child_by_field_name("type")).split("<", 1)[0]
        return Call(func=Name(id=type_name), args=_arguments(node), constructor=True)

    if kind == "binary_expression":
        return _binary(node)

    if kind == "unary_expression":
        operator = _text(node.child_by_field_name("operator"))
        return UnaryOp(op=operator, operand=convert_expr(node.child_by_field_name("operand")))

    if kind == "instanceof_expression":
        right = node.child_by_field_name("right")
        return Compare(op="instanceof", left=convert_expr(node.child_by_field_name("left")), right=Name(id=_text(right)))

    if kind == "cast_expression":
        return convert_expr(node.child_by_field_name("value"))

    if kind == "array_access":
        return Call(
            func=Attribute(value=convert_expr(node.child_by_field_name("array")), attr="getitem"),
            args=(convert_expr(node.child_by_field_name("index")),),
        )

    return Unknown(text=_text(node))


def _binary(node: Node) -> Expr:
    operator = _text(node.child_by_field_name("operator"))
    left = convert_expr(node.child_by_field_name("left"))
    right = convert_expr(node.child_by_field_name("right"))

    if operator in _BOOL_OPS:
        op = _BOOL_OPS[operator]
        values: list[Expr] = []
        for operand in (left, right):
            # a && b && c parses left-nested; flatten it
            if isinstance(operand, BoolOp) and operand.op == op:
                values.extend(operand.values)
            else:
                values.append(operand)
        return BoolOp(op=op, values=tuple(values))
    if operator in _COMPARE_OPS:
        return Compare(op=operator, left=left, right=right)
    return BinaryOp(op=operator, left=left, right=right)


def _arguments(node: Node) -> tuple[Expr, ...]:
    arguments = node.child_by_field_name("arguments")
    if arguments is None:
        return ()
    return tuple(convert_expr(a) for a in arguments.named_children if a.type not in ("line_comment", "block_comment"))


def _string_value(node: Node) -> str:
    raw = _text(node)
    quote = '"""' if raw.startswith('"""') else '"'
    return _unescape(raw[len(quote):-len(quote)])


def _unescape(value: str) -> str:
    result: list[str] = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue
        escaped = next(chars, "")
        result.append(_ESCAPES.get(escaped, escaped))
    return "".join(result)


def _int_value(text: str) -> int:
    text = text.rstrip("lL").replace("_", "")
    lowered = text.lower()
    if lowered.startswith("0x"):
        return int(text, 16)
    if lowered.startswith("0b"):
        return int(text, 2)
    if len(text) > 1 and text.startswith("0"):
        return int(text, 8)
    return int(text)


# Terminal statuses

def _response_builder(value: Expr) -> Optional[tuple[Optional[int], bool]]:
    """
    Status and body marker of a ``Response.status(...)...build()`` chain.

    Returns None when the expression is not a Response builder chain.
    """
    links: list[Call] = []
    current: Optional[Expr] = value
    while isinstance(current, Call):
        links.append(current)
        current = current.receiver
    links.reverse()
    if not links or not _is_response_class(links[0].receiver):
        return None

    factory = links[0]
    has_body = any(link.name == "entity" for link in links)
    if factory.name == "status":
        status = status_from_expr(factory.args[0]) if factory.args else None
        return status, has_body
    if factory.name in _BUILDER_STATUS:
        has_body = has_body or (factory.name == "ok" and bool(factory.args))
        return _BUILDER_STATUS[factory.name], has_body
    return None


def _is_response_class(expr: Optional[Expr]) -> bool:
    if isinstance(expr, Name):
        return expr.id == "Response"
    if isinstance(expr, Attribute):
        return expr.attr == "Response"
    return False


def _exception_status(value: Optional[Expr]) -> Optional[int]:
    if not isinstance(value, Call) or not value.constructor:
        return None
    name = value.name or ""
    simple_name = name.rsplit(".", 1)[-1]
    if simple_name in _EXCEPTION_STATUS:
        return _EXCEPTION_STATUS[simple_name]
    if simple_name in _STATUS_EXCEPTIONS:
        for arg in value.args:
            builder = _response_builder(arg)
            if builder is not None:
                return builder[0]
            status = status_from_expr(arg)
            if status is not None:
                return status
        # WebApplicationException defaults to an internal server error
        return 500 if simple_name == "WebApplicationException" else None
    return None


# Declarations

def _descendants(node: Node, node_type: str) -> Iterator[Node]:
    for child in node.named_children:
        if child.type == node_type:
            yield child
        yield from _descendants(child, node_type)


def _error_nodes(node: Node) -> Iterator[Node]:
    for child in node.children:
        if child.type == "ERROR" or child.is_missing:
            yield child
        elif child.has_error:
            yield from _error_nodes(child)


def _modifiers(node: Node) -> Optional[Node]:
    return next((c for c in node.named_children if c.type == "modifiers"), None)


def _annotations(node: Node) -> dict[str, Optional[Node]]:
    """Annotation name -> its argument list node (None for marker annotations)."""
    modifiers = _modifiers(node)
    if modifiers is None:
        return {}
    annotations: dict[str, Optional[Node]] = {}
    for child in modifiers.named_children:
        if child.type == "marker_annotation":
            annotations[_text(child.child_by_field_name("name")).rsplit(".", 1)[-1]] = None
        elif child.type == "annotation":
            name = _text(child.child_by_field_name("name")).rsplit(".", 1)[-1]
            annotations[name] = child.child_by_field_name("arguments")
    return annotations


def _annotation_value(
    annotations: dict[str, Optional[Node]],
    name: str,
    constants: dict[str, str],
) -> Optional[str]:
    """String value of ``@Name("...")`` or ``@Name(value = "...")``."""
    arguments = annotations.get(name)
    if arguments is None:
        return None
    for argument in arguments.named_children:
        if argument.type == "element_value_pair":
            if _text(argument.child_by_field_name("key")) != "value":
                continue
            argument = argument.child_by_field_name("value")
        value = convert_expr(argument)
        if isinstance(value, Constant) and isinstance(value.value, str):
            return value.value
        if isinstance(value, Name) and value.id in constants:
            return constants[value.id]
        if isinstance(value, Attribute) and value.attr in constants:
            return constants[value.attr]
    return None


def _class_constants(body: Node) -> dict[str, str]:
    """``static final String`` fields initialized with a literal."""
    constants: dict[str, str] = {}
    for field in body.named_children:
        if field.type != "field_declaration":
            continue
        modifiers = _modifiers(field)
        keywords = set(_text(modifiers).split()) if modifiers is not None else set()
        if not {"static", "final"} <= keywords:
            continue
        for declarator in field.children_by_field_name("declarator"):
            value = declarator.child_by_field_name("value")
            if value is not None and value.type == "string_literal":
                constants[_text(declarator.child_by_field_name("name"))] = _string_value(value)
    return constants


def _class_methods(body: Node) -> dict[str, HelperMethod]:
    """Methods of a class with a body, by name; the first overload wins."""
    helpers: dict[str, HelperMethod] = {}
    for method in body.named_children:
        if method.type != "method_declaration":
            continue
        name = _text(method.child_by_field_name("name"))
        block = method.child_by_field_name("body")
        if block is None or name in helpers:
            continue
        return_type = _text(method.child_by_field_name("type"))
        converter = _BodyConverter(returns_response=return_type.endswith("Response"))
        helpers[name] = HelperMethod(
            name=name,
            parameters=_parameter_names(method),
            body=tuple(converter.convert_block(block)),
            line=_line(method),
        )
    return helpers


def _parameter_names(method: Node) -> tuple[str, ...]:
    parameters = method.child_by_field_name("parameters")
    if parameters is None:
        return ()
    names: list[str] = []
    for parameter in parameters.named_children:
        if parameter.type == "formal_parameter":
            names.append(_text(parameter.child_by_field_name("name")))
        elif parameter.type == "spread_parameter":
            declarator = next((c for c in parameter.named_children if c.type == "variable_declarator"), None)
            if declarator is not None:
                names.append(_text(declarator.child_by_field_name("name")))
    return tuple(names)


def _switch_statements(switch_block: Optional[Node]) -> Iterator[Node]:
    if switch_block is None:
        return
    for group in switch_block.named_children:
        for child in group.named_children:
            if child.type not in ("switch_label", "line_comment", "block_comment"):
                yield child
