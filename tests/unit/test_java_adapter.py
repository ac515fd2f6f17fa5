"""
Unit tests for the JAX-RS handler adapter.
"""

from pathlib import Path

import pytest

from endpoint_flow_diff.analyzer.diff_engine import DiffEngine
from endpoint_flow_diff.analyzer.flow_extractor import FlowExtractor
from endpoint_flow_diff.models.diff import DiffEntry
from endpoint_flow_diff.models.endpoint import EndpointMethod
from endpoint_flow_diff.models.handler_ast import (
    AssignStmt,
    BlockStmt,
    BoolOp,
    Call,
    Compare,
    Constant,
    ExprStmt,
    IfStmt,
    Name,
    TerminalStmt,
)
from endpoint_flow_diff.parser.adapters import AdapterError, get_adapter
from endpoint_flow_diff.parser.java_adapter import JavaHandlerAdapter


@pytest.fixture
def adapter() -> JavaHandlerAdapter:
    return JavaHandlerAdapter()


def resource(*methods: str, class_path: str = '"/v1/items"', fields: str = "") -> str:
    body = "\n".join(methods)
    return f"""
import javax.ws.rs.*;
import javax.ws.rs.core.Response;

@Path({class_path})
public class ItemResource {{
    {fields}
    {body}
}}
"""


def parse(adapter: JavaHandlerAdapter, source: str):
    return adapter.parse_source(source, Path("ItemResource.java"))


class TestRouting:
    """Tests for resource method discovery."""

    def test_class_and_method_paths_are_joined(self, adapter: JavaHandlerAdapter) -> None:
        handlers = parse(adapter, resource(
            """
    @GET
    public String list() { return "[]"; }
            """,
            """
    @DELETE
    @Path("{id}")
    public void remove(@PathParam("id") String id) { store.remove(id); }
            """,
        ))
        assert [str(h.identity) for h in handlers] == ["GET /v1/items", "DELETE /v1/items/{id}"]
        assert handlers[1].parameters == ("id",)
        assert handlers[1].handler.name == "remove"
        assert handlers[1].handler.module == "ItemResource"

    def test_methods_without_http_annotation_are_ignored(self, adapter: JavaHandlerAdapter) -> None:
        handlers = parse(adapter, resource(
            """
    private String helper() { return "x"; }
            """,
        ))
        assert handlers == []

    def test_constant_path(self, adapter: JavaHandlerAdapter) -> None:
        handlers = parse(adapter, resource(
            """
    @PUT
    @Path(value = ITEM)
    public Response update(String id) { return Response.noContent().build(); }
            """,
            class_path="BASE",
            fields='private static final String BASE = "/orders"; static final String ITEM = "/{id}/";',
        ))
        assert str(handlers[0].identity) == "PUT /orders/{id}"
        assert handlers[0].identity.method == EndpointMethod.PUT
        assert handlers[0].constants == {"BASE": "/orders", "ITEM": "/{id}/"}

    def test_syntax_error(self, adapter: JavaHandlerAdapter) -> None:
        with pytest.raises(AdapterError) as exc_info:
            parse(adapter, "public class { broken")
        assert "syntax error" in exc_info.value.reason
        assert exc_info.value.file_path == Path("ItemResource.java")


class TestTerminals:
    """Tests for response and exception statuses."""

    @pytest.mark.parametrize(
        "statement,status,has_body",
        [
            ("return Response.status(201).entity(item).build();", 201, True),
            ("return Response.status(Response.Status.ACCEPTED).build();", 202, False),
            ("return Response.ok(item).build();", 200, True),
            ("return Response.ok().build();", 200, False),
            ("return Response.noContent().build();", 204, False),
            ("return null;", 204, False),
        ],
    )
    def test_response_builders(
        self, adapter: JavaHandlerAdapter, statement: str, status: int, has_body: bool,
    ) -> None:
        (handler,) = parse(adapter, resource(f"@POST public Response create(String item) {{ {statement} }}"))
        terminal = handler.body[-1]
        assert isinstance(terminal, TerminalStmt)
        assert terminal.status_code == status
        assert terminal.has_body == has_body

    def test_response_variable_status_is_unknown(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            "@GET public Response get() { Response r = build(); return r; }"
        ))
        assert handler.body[-1].status_code is None

    def test_plain_return_value_is_ok(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource('@GET public String get() { return "x"; }'))
        assert handler.body[-1].status_code == 200
        assert handler.body[-1].has_body

    @pytest.mark.parametrize(
        "expression,status",
        [
            ("new NotFoundException()", 404),
            ("new BadRequestException(\"missing\")", 400),
            ("new WebApplicationException(Response.Status.CONFLICT)", 409),
            ("new WebApplicationException(Response.status(429).build())", 429),
            ("new WebApplicationException(\"boom\")", 500),
            ("new IllegalStateException()", None),
        ],
    )
    def test_thrown_exceptions(self, adapter: JavaHandlerAdapter, expression: str, status) -> None:
        (handler,) = parse(adapter, resource(f"@GET public String get() {{ throw {expression}; }}"))
        terminal = handler.body[-1]
        assert terminal.kind == "raise"
        assert terminal.status_code == status

    def test_void_method_falls_off_the_end(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource("@DELETE public void remove() { store.clear(); }"))
        terminal = handler.body[-1]
        assert terminal.implicit
        assert terminal.status_code == 204

    def test_non_void_without_return_has_unknown_status(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource("@GET public String get() { while (true) { poll(); } }"))
        assert handler.body[-1].implicit
        assert handler.body[-1].status_code is None


class TestBodyConversion:
    """Tests for statement and expression conversion."""

    def test_fixture_handler(self, adapter: JavaHandlerAdapter, flows_path: Path) -> None:
        source = next((flows_path / "diff" / "v2" / "java").glob("*.java"))
        (handler,) = adapter.parse_file(source)

        assert str(handler.identity) == "GET /v1/example"
        assert handler.parameters == ("id",)
        first, second, client, request, terminal = handler.body
        assert first.condition == Compare(op="==", left=Name(id="id"), right=Constant(value=None))
        assert first.body[0].status_code == 400
        assert second.body[0].status_code == 422
        assert isinstance(client, AssignStmt) and client.target == "client"
        assert isinstance(request, ExprStmt)
        assert request.expr.name == "post"
        assert terminal.status_code == 200
        assert terminal.has_body

    def test_boolean_chain_is_flattened(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            "@GET public String get(String a) { if (a == null || a.isEmpty() || a.isBlank()) { return null; } return a; }"
        ))
        condition = handler.body[0].condition
        assert isinstance(condition, BoolOp)
        assert condition.op == "or"
        assert len(condition.values) == 3

    def test_negation_and_else(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            "@GET public String get(String a) { if (!a.isEmpty()) { count += 1; } else { a = \"x\"; } return a; }"
        ))
        statement = handler.body[0]
        assert isinstance(statement, IfStmt)
        assert statement.condition.op == "!"
        assert statement.body[0].value.op == "+"
        assert statement.orelse == (AssignStmt(target="a", value=Constant(value="x"), line=statement.line),)

    def test_try_with_resources(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            """
    @GET
    public String get() {
        try (Client client = ClientBuilder.newClient()) {
            client.target("http://stock/v1/levels").request().get();
        } catch (ProcessingException e) {
            log(e);
        } finally {
            done();
        }
        return "ok";
    }
            """,
        ))
        block = handler.body[0]
        assert isinstance(block, BlockStmt)
        assert block.kind == "try"
        assert [s.target for s in block.body if isinstance(s, AssignStmt)] == ["client"]
        assert isinstance(block.body[0].value, Call)
        assert block.body[0].value.name == "newClient"
        assert block.body[-1].expr.name == "get"
        assert [s.target for s in block.handlers if isinstance(s, AssignStmt)] == ["e"]
        assert block.handlers[-1].expr.name == "done"

    def test_loops(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            "@GET public String get(java.util.List<String> ids) { for (String id : ids) { touch(id); } "
            "for (int i = 0; i < 3; i++) { tick(); } return \"ok\"; }"
        ))
        enhanced, counted, _ = handler.body
        assert enhanced.kind == counted.kind == "loop"
        assert enhanced.body[0] == AssignStmt(target="id", value=enhanced.body[0].value, line=enhanced.line)
        assert counted.body[0].target == "i"

    def test_literals(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            "@GET public String get() { int a = 0x1F; long b = 1_000L; String c = \"a\\tb\"; return c; }"
        ))
        values = [s.value for s in handler.body[:3]]
        assert values == [Constant(value=31), Constant(value=1000), Constant(value="a\tb")]


class TestAdapterRegistry:
    """Tests for adapter selection."""

    def test_get_adapter_by_suffix(self) -> None:
        assert isinstance(get_adapter(Path("src/ItemResource.java")), JavaHandlerAdapter)


class TestExtractedFlows:
    """Tests for flows extracted from parsed resource methods."""

    def test_return_inside_try_is_the_terminal(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            """
    @POST
    public Response create(String id) {
        try {
            if (id == null) {
                return Response.status(400).build();
            }
            return Response.status(201).build();
        } catch (Exception e) {
            return Response.serverError().build();
        }
    }
            """,
        ))
        flow = FlowExtractor().extract(handler)
        assert flow.terminal.status_code == 201
        assert not flow.terminal.implicit
        assert [g.describe() for g in flow.guards] == ["isNull(id) → 400"]

    def test_status_change_inside_try_is_reported(self, adapter: JavaHandlerAdapter) -> None:
        def version(status: int) -> str:
            return resource(
                f"""
    @GET
    public Response get() {{
        try {{
            return Response.status({status}).build();
        }} catch (Exception e) {{
            return Response.serverError().build();
        }}
    }}
                """,
            )

        extractor = FlowExtractor()
        (baseline,) = parse(adapter, version(200))
        (candidate,) = parse(adapter, version(201))
        result = DiffEngine().diff_endpoints(
            extractor.extract_endpoint(baseline),
            extractor.extract_endpoint(candidate),
        )
        assert result.entries == (DiffEntry.status_changed(200, 201),)

    def test_private_helper_is_followed(self, adapter: JavaHandlerAdapter) -> None:
        (handler,) = parse(adapter, resource(
            """
    @GET
    @Path("{id}")
    public Response get(@PathParam("id") String id) {
        validate(id);
        this.audit();
        return Response.ok().build();
    }
            """,
            """
    private void validate(String value) {
        if (value == null) {
            throw new BadRequestException();
        }
    }
            """,
            """
    private void audit() {
        Client client = ClientBuilder.newClient();
        client.target("http://audit-service/v1/log").request().post(null);
    }
            """,
        ))
        assert set(handler.helpers) >= {"validate", "audit"}
        assert handler.helpers["validate"].parameters == ("value",)

        flow = FlowExtractor().extract(handler)
        assert [g.describe() for g in flow.guards] == ["isNull(id) → 400"]
        assert [(c.target, c.verb) for c in flow.outbound_calls] == [("audit-service/v1/log", "POST")]
        assert flow.terminal.status_code == 200
