"""
Flow extraction - turns one handler tree into a flow graph.

The extractor walks the handler's success path in source order and
collects:

1. Guards: ``if`` statements whose then branch is a single terminal
   statement (``return``/``raise``). An ``else`` branch of such a
   statement continues the success path and is walked in its place.
2. Outbound calls: request chains issued on an HTTP client handle,
   found anywhere in the body.
3. The terminal response: the first terminal statement on the success
   path. Plain blocks, ``try`` bodies, ``with`` and ``synchronized``
   blocks run in sequence and are walked into; loops, ``switch`` and
   ``match`` are not, and neither are ``catch``/``except``/``finally``
   clauses.

Calls to helpers (methods of the same class, functions of the same
module) are followed up to ``ExtractionConfig.max_depth`` levels: their
outbound calls belong to the handler, and so do the guards in them that
raise.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional

from endpoint_flow_diff.analyzer.normalizer import (
    Normalizer,
    ResolvedString,
    dotted_name,
    join_url,
)
from endpoint_flow_diff.config import ExtractionConfig
from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    ExtractedEndpoint,
    HandlerInfo,
)
from endpoint_flow_diff.models.flow import (
    FlowGraph,
    Guard,
    OutboundCall,
    TerminalResponse,
)
from endpoint_flow_diff.models.handler_ast import (
    AssignStmt,
    Attribute,
    BinaryOp,
    BlockStmt,
    BoolOp,
    Call,
    Compare,
    Expr,
    ExprStmt,
    HandlerAST,
    HelperMethod,
    IfStmt,
    Name,
    Stmt,
    TerminalStmt,
    UnaryOp,
)


logger = logging.getLogger(__name__)

HTTP_VERBS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE"})

# Blocks whose body always runs once, in order, on the success path
_SEQUENTIAL_BLOCKS = frozenset({"block", "try", "with", "synchronized"})

_SELF_NAMES = frozenset({"this", "self"})


class ExtractionError(Exception):
    """The handler tree cannot be summarized as a flow graph."""

    def __init__(
        self,
        message: str,
        handler: Optional[HandlerInfo] = None,
        identity: Optional[EndpointIdentity] = None,
    ) -> None:
        self.reason = message
        self.handler = handler
        self.identity = identity
        context = []
        if identity is not None:
            context.append(str(identity))
        if handler is not None:
            context.append(f"{handler.qualified_name} at {handler.location}")
        if context:
            message = f"{message} ({'; '.join(context)})"
        super().__init__(message)


@dataclass(frozen=True)
class _ClientHandle:
    """A local variable holding an HTTP client or a target on one."""

    base: Optional[ResolvedString] = None


@dataclass
class _RequestChain:
    links: list[Call]           # innermost call first
    root: Optional[Expr]        # receiver of the innermost call


class _OutboundScanner:
    """
    Finds request chains in source order.

    Tracks which locals hold client handles and which hold string
    literals, so ``client = httpx.Client(base_url=BASE)`` followed by
    ``client.get("/items")`` resolves to one target.
    """


    def __init__(
        self,
        config: ExtractionConfig,
        normalizer: Normalizer,
        helpers: Optional[Mapping[str, HelperMethod]] = None,
        visited: frozenset[str] = frozenset(),
        depth: int = 0,
        calls: Optional[list[OutboundCall]] = None,
    ) -> None:
        self.config = config
        self.normalizer = normalizer
        self.helpers = helpers or {}
        self.visited = visited
        self.depth = depth
        self.verbs = {v.lower() for v in config.request_verbs}
        self.generic_methods = set(config.generic_request_methods)
        self.target_methods = set(config.target_methods)
        self.module_clients = set(config.module_clients)
        self.clients: dict[str, _ClientHandle] = {}
        self.strings: dict[str, str] = {}
        # Shared with the scanners of followed helpers
        self.calls: list[OutboundCall] = [] if calls is None else calls

    def scan_statements(self, statements: tuple[Stmt, ...]) -> None:
        for stmt in statements:
            self.scan_statement(stmt)

    def scan_statement(self, stmt: Stmt) -> None:
        if isinstance(stmt, AssignStmt):
            self.scan_expr(stmt.value, stmt.line)
            self._bind(stmt.target, stmt.value)
        elif isinstance(stmt, ExprStmt):
            self.scan_expr(stmt.expr, stmt.line)
        elif isinstance(stmt, IfStmt):
            self.scan_expr(stmt.condition, stmt.line)
            self.scan_statements(stmt.body)
            self.scan_statements(stmt.orelse)
        elif isinstance(stmt, TerminalStmt):
            if stmt.value is not None:
                self.scan_expr(stmt.value, stmt.line)
        elif isinstance(stmt, BlockStmt):
            for expr in stmt.header:
                self.scan_expr(expr, stmt.line)
            self.scan_statements(stmt.body)
            self.scan_statements(stmt.handlers)

    def scan_expr(self, expr: Expr, line: Optional[int]) -> None:
        if isinstance(expr, Call):
            chain = self._request_chain(expr)
            if chain is not None:
                self._record(chain, line)
                for link in chain.links:
                    self._scan_arguments(link, line)
                return
            if expr.receiver is not None:
                self.scan_expr(expr.receiver, line)
            self._scan_arguments(expr, line)
            helper = _helper_of(expr, self.helpers)
            if helper is not None:
                self._follow(helper, expr)
        elif isinstance(expr, Attribute):
            self.scan_expr(expr.value, line)
        elif isinstance(expr, (Compare, BinaryOp)):
            self.scan_expr(expr.left, line)
            self.scan_expr(expr.right, line)
        elif isinstance(expr, BoolOp):
            for value in expr.values:
                self.scan_expr(value, line)
        elif isinstance(expr, UnaryOp):
            self.scan_expr(expr.operand, line)

    def _follow(self, helper: HelperMethod, call: Call) -> None:
        """Scan a helper's body as if it were inlined at the call site."""
        if not _can_follow(helper, self.visited, self.depth, self.config.max_depth):
            return
        child = _OutboundScanner(
            self.config,
            self.normalizer,
            self.helpers,
            visited=self.visited | {helper.name},
            depth=self.depth + 1,
            calls=self.calls,
        )
        for parameter, argument in _bind_arguments(helper, call).items():
            if isinstance(argument, Name) and argument.id in self.clients:
                child.clients[parameter] = self.clients[argument.id]
                continue
            resolved = self.normalizer.resolve_string(argument, self.strings)
            if resolved is not None:
                child.strings[parameter] = resolved.value
        child.scan_statements(helper.body)

    def _scan_arguments(self, call: Call, line: Optional[int]) -> None:
        for arg in call.args:
            self.scan_expr(arg, line)
        for kw in call.keywords:
            self.scan_expr(kw.value, line)

    def _bind(self, target: str, value: Expr) -> None:
        self.clients.pop(target, None)
        self.strings.pop(target, None)

        resolved = self.normalizer.resolve_string(value, self.strings)
        if resolved is not None:
            self.strings[target] = resolved.value
            return

        if isinstance(value, Call) and self._request_chain(value) is None:
            links = _chain_links(value)
            if self._is_client_source(links):
                self.clients[target] = _ClientHandle(base=self._chain_base(links))

    # Chain recognition

    def _request_chain(self, call: Call) -> Optional[_RequestChain]:
        verb = self._verb_of(call)
        if verb is None:
            return None
        links = _chain_links(call)
        if not self._is_client_source(links):
            return None
        return _RequestChain(links=links, root=links[0].receiver)

    def _verb_of(self, call: Call) -> Optional[str]:
        name = call.name
        if name is None:
            return None
        if name.lower() in self.verbs and call.receiver is not None:
            return name.upper()
        if name in self.generic_methods and call.args:
            resolved = self.normalizer.resolve_string(call.args[0], self.strings)
            if resolved is not None and resolved.value.upper() in HTTP_VERBS:
                return resolved.value.upper()
        return None

    def _is_client_source(self, links: list[Call]) -> bool:
        """Whether a call chain starts from an HTTP client or builds a target."""
        root = links[0].receiver
        if isinstance(root, Name):
            if root.id in self.clients:
                return True
            if root.id in self.module_clients and len(links) == 1:
                return True
        if any(self._is_factory(link) for link in links):
            return True
        return any(link.name in self.target_methods for link in links[:-1])

    def _is_factory(self, call: Call) -> bool:
        callee = dotted_name(call.func)
        if callee is None:
            return False
        for factory in self.config.client_factories:
            if callee == factory or callee.endswith("." + factory):
                return True
        return False

    def _chain_base(self, links: list[Call]) -> Optional[ResolvedString]:
        """Base target accumulated along a chain that is not itself a request."""
        root = links[0].receiver
        base = self.clients[root.id].base if isinstance(root, Name) and root.id in self.clients else None
        for link in links:
            parts = self._link_target_parts(link)
            for part in parts:
                value = self.normalizer.resolve_string(part, self.strings)
                if value is None:
                    return base
                base = value if base is None else join_url(base, value)
        return base

    def _link_target_parts(self, call: Call) -> list[Expr]:
        if self._is_factory(call):
            base_url = call.keyword("base_url")
            return [base_url] if base_url is not None else []
        if call.name in self.target_methods and call.args:
            return [call.args[0]]
        return []

    # Recording

    def _record(self, chain: _RequestChain, line: Optional[int]) -> None:
        request = chain.links[-1]
        verb = self._verb_of(request)

        root = chain.root
        base: Optional[ResolvedString] = None
        if isinstance(root, Name) and root.id in self.clients:
            base = self.clients[root.id].base

        parts: list[Expr] = []
        for link in chain.links[:-1]:
            parts.extend(self._link_target_parts(link))

        if not parts:
            # Python style: the verb call itself names the target
            url = request.keyword("url")
            if url is not None:
                parts.append(url)
            elif request.name in self.generic_methods and len(request.args) > 1:
                parts.append(request.args[1])
            elif request.name not in self.generic_methods and request.args:
                parts.append(request.args[0])

        signature = self.normalizer.target_signature(parts, self.strings, base)
        logger.debug("Outbound call %s %s at line %s", verb, signature.target, line)
        self.calls.append(
            OutboundCall(
                target=signature.target,
                verb=verb,
                position=len(self.calls),
                detection=signature.detection,
                confidence=signature.confidence,
                line_number=line,
            )
        )




class FlowExtractor:
    """
    Extract flow graphs from handler trees.

    Extraction is a pure function of the tree: the extractor keeps no
    state between calls and retains no reference to its input.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None) -> None:
        """
        Initialize the extractor.

        Args:
            config: Outbound call recognition settings.
        """
        self.config = config or ExtractionConfig()

    def extract(self, handler_ast: HandlerAST) -> FlowGraph:
        """
        Extract the flow graph of one handler.

        Args:
            handler_ast: Handler tree supplied by a language front end.

        Returns:
            The handler's flow graph.

        Raises:
            ExtractionError: If the tree has no body or no reachable
                terminal statement.
        """
        if not handler_ast.body:
            raise self._error("Handler body is empty", handler_ast)

        normalizer = Normalizer(
            parameters=handler_ast.parameters,
            local_names=_assigned_names(handler_ast.body),
            constants=handler_ast.constants,
        )
        visited = frozenset({handler_ast.handler.name})

        guards: list[Guard] = []
        terminal = self._walk(handler_ast.body, handler_ast.helpers, normalizer, guards, visited, 0, {})

        if terminal is None:
            raise self._error("No terminal response reachable on the success path", handler_ast)

        scanner = _OutboundScanner(self.config, normalizer, handler_ast.helpers, visited=visited)
        scanner.scan_statements(handler_ast.body)

        return FlowGraph(
            guards=tuple(guards),
            outbound_calls=tuple(scanner.calls),
            terminal=TerminalResponse(
                status_code=terminal.status_code,
                has_body=terminal.has_body,
                implicit=terminal.implicit,
                line_number=terminal.line,
            ),
        )

    def _walk(
        self,
        body: tuple[Stmt, ...],
        helpers: Mapping[str, HelperMethod],
        normalizer: Normalizer,
        guards: list[Guard],
        visited: frozenset[str],
        depth: int,
        bindings: Mapping[str, Expr],
    ) -> Optional[TerminalStmt]:
        """
        Collect guards along a success path and return its terminal.

        Inside a helper (``depth > 0``) only guards that raise are kept:
        a helper's ``return`` hands control back to the handler instead of
        answering the request. Helper conditions are rewritten in terms of
        the call site's arguments through ``bindings``.
        """
        for stmt in _success_path(body):
            if isinstance(stmt, TerminalStmt):
                return stmt
            guard_exit = _guard_exit(stmt)
            if guard_exit is not None:
                if depth == 0 or guard_exit.kind == "raise":
                    condition = _substitute(stmt.condition, bindings)
                    guards.append(
                        Guard(
                            signature=normalizer.condition_signature(condition),
                            shape=normalizer.condition_shape(condition),
                            status_code=guard_exit.status_code,
                            position=len(guards),
                            line_number=stmt.line,
                        )
                    )
                continue
            call = _statement_call(stmt)
            helper = _helper_of(call, helpers) if call is not None else None
            if helper is not None and _can_follow(helper, visited, depth, self.config.max_depth):
                arguments = {
                    parameter: _substitute(argument, bindings)
                    for parameter, argument in _bind_arguments(helper, call).items()
                }
                self._walk(helper.body, helpers, normalizer, guards, visited | {helper.name}, depth + 1, arguments)
        return None

    def extract_endpoint(self, handler_ast: HandlerAST) -> ExtractedEndpoint:
        """Extract the flow graph and pair it with the endpoint identity."""
        flow = self.extract(handler_ast)
        logger.debug(
            "Extracted %s: %d guard(s), %d outbound call(s)",
            handler_ast.identity,
            len(flow.guards),
            len(flow.outbound_calls),
        )
        return ExtractedEndpoint(
            identity=handler_ast.identity,
            handler=handler_ast.handler,
            flow=flow,
        )

    @staticmethod
    def _error(message: str, handler_ast: HandlerAST) -> ExtractionError:
        return ExtractionError(
            message,
            handler=handler_ast.handler,
            identity=handler_ast.identity,
        )


def _guard_exit(stmt: Stmt) -> Optional[TerminalStmt]:
    """The terminal statement of a guard, or None if ``stmt`` is not a guard."""
    if isinstance(stmt, IfStmt) and len(stmt.body) == 1 and isinstance(stmt.body[0], TerminalStmt):
        return stmt.body[0]
    return None


def _success_path(body: tuple[Stmt, ...]) -> Iterator[Stmt]:
    """
    Statements on the success path in source order.

    The ``else`` branch of a guard is spliced in after it (``if c: return x
    else: rest`` is ``if c: return x`` followed by ``rest``), and so is the
    body of a sequential block.
    """
    pending = list(body)
    while pending:
        stmt = pending.pop(0)
        if isinstance(stmt, BlockStmt) and stmt.kind in _SEQUENTIAL_BLOCKS:
            pending[:0] = stmt.body
            continue
        yield stmt
        if _guard_exit(stmt) is not None and stmt.orelse:
            pending[:0] = stmt.orelse


def _assigned_names(body: tuple[Stmt, ...]) -> set[str]:
    names: set[str] = set()
    for stmt in body:
        if isinstance(stmt, AssignStmt):
            names.add(stmt.target)
        elif isinstance(stmt, IfStmt):
            names |= _assigned_names(stmt.body)
            names |= _assigned_names(stmt.orelse)
        elif isinstance(stmt, BlockStmt):
            names |= _assigned_names(stmt.body)
            names |= _assigned_names(stmt.handlers)
    return names


def _chain_links(call: Call) -> list[Call]:
    """Calls of a fluent chain, innermost first: ``a.b().c()`` -> [b(), c()]."""
    links = [call]
    current = call.receiver
    while isinstance(current, Call):
        links.append(current)
        current = current.receiver
    links.reverse()
    return links


# Helpers

def _statement_call(stmt: Stmt) -> Optional[Call]:
    """The call a statement consists of: ``check(x)`` or ``y = load(x)``."""
    if isinstance(stmt, ExprStmt) and isinstance(stmt.expr, Call):
        return stmt.expr
    if isinstance(stmt, AssignStmt) and isinstance(stmt.value, Call):
        return stmt.value
    return None


def _helper_of(call: Call, helpers: Mapping[str, HelperMethod]) -> Optional[HelperMethod]:
    """The helper ``call`` invokes: ``name(...)``, ``this.name(...)`` or ``self.name(...)``."""
    if call.constructor or not helpers:
        return None
    if isinstance(call.func, Name):
        return helpers.get(call.func.id)
    if isinstance(call.func, Attribute) and isinstance(call.func.value, Name) and call.func.value.id in _SELF_NAMES:
        return helpers.get(call.func.attr)
    return None


def _can_follow(helper: HelperMethod, visited: frozenset[str], depth: int, max_depth: int) -> bool:
    if helper.name in visited:
        logger.debug("Not following %s: already on the call stack", helper.name)
        return False
    if depth >= max_depth:
        logger.debug("Not following %s: depth limit %d reached", helper.name, max_depth)
        return False
    return True


def _bind_arguments(helper: HelperMethod, call: Call) -> dict[str, Expr]:
    """Map the helper's parameter names to the call's arguments."""
    bound = dict(zip(helper.parameters, call.args))
    for kw in call.keywords:
        if kw.name in helper.parameters:
            bound[kw.name] = kw.value
    return bound


def _substitute(expr: Expr, bindings: Mapping[str, Expr]) -> Expr:
    """Replace parameter names in ``expr`` with the expressions bound to them."""
    if not bindings:
        return expr
    if isinstance(expr, Name):
        return bindings.get(expr.id, expr)
    if isinstance(expr, Attribute):
        return expr.model_copy(update={"value": _substitute(expr.value, bindings)})
    if isinstance(expr, Call):
        return expr.model_copy(
            update={
                "func": _substitute(expr.func, bindings),
                "args": tuple(_substitute(arg, bindings) for arg in expr.args),
                "keywords": tuple(
                    kw.model_copy(update={"value": _substitute(kw.value, bindings)})
                    for kw in expr.keywords
                ),
            }
        )
    if isinstance(expr, (Compare, BinaryOp)):
        return expr.model_copy(
            update={
                "left": _substitute(expr.left, bindings),
                "right": _substitute(expr.right, bindings),
            }
        )
    if isinstance(expr, BoolOp):
        return expr.model_copy(update={"values": tuple(_substitute(v, bindings) for v in expr.values)})
    if isinstance(expr, UnaryOp):
        return expr.model_copy(update={"operand": _substitute(expr.operand, bindings)})
    return expr
