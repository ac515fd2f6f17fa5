"""
Generic handler tree.

Language front ends convert handler bodies into these nodes so the
extractor never sees parser-specific objects. Nodes are immutable and
validated on construction; each carries a ``node`` tag so trees can be
round-tripped through plain data.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from endpoint_flow_diff.models.endpoint import EndpointIdentity, HandlerInfo


class _Node(BaseModel):
    class Config:
        frozen = True


# Expressions

class Name(_Node):
    """A bare identifier."""
    
    node: Literal["name"] = "name"
    id: str


class Constant(_Node):
    """A literal value (string, number, boolean or null)."""
    
    node: Literal["constant"] = "constant"
    value: Union[bool, int, float, str, None] = None
    
    @property
    def is_string(self) -> bool:
        return isinstance(self.value, str)


class Attribute(_Node):
    """Member access: ``value.attr``."""
    
    node: Literal["attribute"] = "attribute"
    value: "Expr"
    attr: str


class Keyword(_Node):
    """A keyword argument of a call."""
    
    name: str
    value: "Expr"


class Call(_Node):
    """A call; ``func`` is a Name or an Attribute for method calls."""
    
    node: Literal["call"] = "call"
    func: "Expr"
    args: tuple["Expr", ...] = ()
    keywords: tuple[Keyword, ...] = ()
    constructor: bool = False
    
    @property
    def name(self) -> Optional[str]:
        """The called function or method name."""
        if isinstance(self.func, Name):
            return self.func.id
        if isinstance(self.func, Attribute):
            return self.func.attr
        return None
    
    @property
    def receiver(self) -> Optional["Expr"]:
        """The object a method is called on, if any."""
        if isinstance(self.func, Attribute):
            return self.func.value
        return None
    
    def keyword(self, name: str) -> Optional["Expr"]:
        for kw in self.keywords:
            if kw.name == name:
                return kw.value
        return None


class Compare(_Node):
    """A binary comparison (``==``, ``<``, ``is``, ``in``, ``instanceof``...)."""
    
    node: Literal["compare"] = "compare"
    op: str
    left: "Expr"
    right: "Expr"


class BoolOp(_Node):
    """Logical ``and``/``or`` over two or more operands."""
    
    node: Literal["boolop"] = "boolop"
    op: Literal["and", "or"]
    values: tuple["Expr", ...]


class UnaryOp(_Node):
    """Unary operator (``not``, ``-``, ``+``)."""
    
    node: Literal["unaryop"] = "unaryop"
    op: str
    operand: "Expr"


class BinaryOp(_Node):
    """Arithmetic or string concatenation."""
    
    node: Literal["binop"] = "binop"
    op: str
    left: "Expr"
    right: "Expr"


class Unknown(_Node):
    """An expression the front end could not model."""
    
    node: Literal["unknown"] = "unknown"
    text: str = ""


Expr = Annotated[
    Union[Name, Constant, Attribute, Call, Compare, BoolOp, UnaryOp, BinaryOp, Unknown],
    Field(discriminator="node"),
]


# Statements

class IfStmt(_Node):
    node: Literal["if"] = "if"
    condition: Expr
    body: tuple["Stmt", ...] = ()
    orelse: tuple["Stmt", ...] = ()
    line: Optional[int] = None


class TerminalStmt(_Node):
    """A statement that ends the handler: ``return`` or ``raise``/``throw``."""
    
    node: Literal["terminal"] = "terminal"
    kind: Literal["return", "raise"] = "return"
    status_code: Optional[int] = None
    has_body: bool = False
    value: Optional[Expr] = None
    implicit: bool = False
    line: Optional[int] = None


class ExprStmt(_Node):
    node: Literal["expr"] = "expr"
    expr: Expr
    line: Optional[int] = None


class AssignStmt(_Node):
    node: Literal["assign"] = "assign"
    target: str
    value: Expr
    line: Optional[int] = None


class BlockStmt(_Node):
    """
    Loops, ``try`` and ``with`` blocks; ``header`` holds their expressions.

    ``handlers`` holds the ``catch``/``except`` and ``finally`` clauses of a
    ``try``, which are not part of the path the block takes on success.
    """

    node: Literal["block"] = "block"
    kind: str
    header: tuple[Expr, ...] = ()
    body: tuple["Stmt", ...] = ()
    handlers: tuple["Stmt", ...] = ()
    line: Optional[int] = None


class OpaqueStmt(_Node):
    node: Literal["opaque"] = "opaque"
    text: str = ""
    line: Optional[int] = None


Stmt = Annotated[
    Union[IfStmt, TerminalStmt, ExprStmt, AssignStmt, BlockStmt, OpaqueStmt],
    Field(discriminator="node"),
]


class HelperMethod(_Node):
    """A same-class method or same-module function a handler may call."""

    name: str
    parameters: tuple[str, ...] = ()
    body: tuple[Stmt, ...] = ()
    line: Optional[int] = None


for _model in (Attribute, Keyword, Call, Compare, BoolOp, UnaryOp, BinaryOp,
               IfStmt, TerminalStmt, ExprStmt, AssignStmt, BlockStmt, HelperMethod):
    _model.model_rebuild()


class HandlerAST(BaseModel):
    """One handler method as supplied by a language front end."""
    
    identity: EndpointIdentity = Field(description="Route path and HTTP method")
    handler: HandlerInfo = Field(description="Handler location")
    parameters: tuple[str, ...] = Field(
        default=(),
        description="Handler parameter names",
    )
    constants: dict[str, str] = Field(
        default_factory=dict,
        description="String constants visible to the handler",
    )
    body: tuple[Stmt, ...] = Field(default=(), description="Top-level statements")
    helpers: dict[str, HelperMethod] = Field(
        default_factory=dict,
        description="Callable helpers by name, followed when they are invoked",
    )

    class Config:
        frozen = True
