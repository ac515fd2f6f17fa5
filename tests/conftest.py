"""
Pytest configuration and shared fixtures.
"""

from pathlib import Path
from typing import Callable, Optional

import pytest

from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    EndpointMethod,
    ExtractedEndpoint,
    HandlerInfo,
)
from endpoint_flow_diff.models.flow import (
    FlowGraph,
    Guard,
    OutboundCall,
    TerminalResponse,
)


@pytest.fixture
def fixtures_path() -> Path:
    """Get the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def flows_path(fixtures_path: Path) -> Path:
    """Get the path to the flow scenarios (simple, guards, outbound, diff)."""
    return fixtures_path / "flows"


@pytest.fixture
def sample_handler() -> HandlerInfo:
    """Create a sample handler info."""
    return HandlerInfo(
        name="handle_items",
        module="items",
        file_path=Path("/app/routers/items.py"),
        line_number=10,
        end_line_number=25,
    )


def build_guard(signature: str, status: Optional[int], position: int, shape: Optional[str] = None) -> Guard:
    return Guard(
        signature=signature,
        shape=shape if shape is not None else signature,
        status_code=status,
        position=position,
    )


def build_flow(
    guards: list[tuple[str, Optional[int]]] = (),
    calls: list[tuple[str, Optional[str]]] = (),
    status: Optional[int] = 200,
) -> FlowGraph:
    """Build a flow graph from (signature, status) guards and (target, verb) calls."""
    return FlowGraph(
        guards=tuple(build_guard(sig, st, i) for i, (sig, st) in enumerate(guards)),
        outbound_calls=tuple(
            OutboundCall(target=target, verb=verb, position=i)
            for i, (target, verb) in enumerate(calls)
        ),
        terminal=TerminalResponse(status_code=status, has_body=True),
    )


@pytest.fixture
def make_endpoint(sample_handler: HandlerInfo) -> Callable[..., ExtractedEndpoint]:
    """Factory for extracted endpoints with a given identity and flow."""
    def factory(
        path: str = "/items",
        method: EndpointMethod = EndpointMethod.GET,
        flow: Optional[FlowGraph] = None,
        handler: Optional[HandlerInfo] = None,
    ) -> ExtractedEndpoint:
        return ExtractedEndpoint(
            identity=EndpointIdentity(path=path, method=method),
            handler=handler or sample_handler,
            flow=flow or build_flow(),
        )
    return factory


@pytest.fixture
def flow_factory() -> Callable[..., FlowGraph]:
    """Factory for flow graphs, see build_flow."""
    return build_flow


@pytest.fixture
def guard_factory() -> Callable[..., Guard]:
    return build_guard
