"""
Parser package for Endpoint Flow Diff.

This package contains the language front ends that turn handler
sources into generic handler trees:
- FastAPI handlers (stdlib ast)
- JAX-RS resource methods (tree-sitter)
"""

from endpoint_flow_diff.parser.adapters import (
    AdapterError,
    BaseAdapter,
    discover_sources,
    get_adapter,
    register_adapter,
)
from endpoint_flow_diff.parser.java_adapter import JavaHandlerAdapter
from endpoint_flow_diff.parser.python_adapter import PythonHandlerAdapter

__all__ = [
    "AdapterError",
    "BaseAdapter",
    "JavaHandlerAdapter",
    "PythonHandlerAdapter",
    "discover_sources",
    "get_adapter",
    "register_adapter",
]
