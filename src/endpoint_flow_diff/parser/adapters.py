"""
Base adapter, adapter registry and source discovery.

An adapter is the language front end: it reads one source file, finds
the routed handler methods in it and converts each body into the generic
handler tree of ``endpoint_flow_diff.models.handler_ast``.
"""

import logging
from abc import ABC, abstractmethod
from fnmatch import fnmatch
from http import HTTPStatus
from pathlib import Path
from typing import Callable, Optional

from endpoint_flow_diff.config import ParserConfig
from endpoint_flow_diff.models.handler_ast import (
    Attribute,
    Call,
    Constant,
    Expr,
    HandlerAST,
    Name,
)


logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """A source file could not be read or parsed."""

    def __init__(self, file_path: Path | str, reason: str) -> None:
        self.file_path = Path(file_path)
        self.reason = reason
        super().__init__(f"{file_path}: {reason}")


class BaseAdapter(ABC):
    """
    Abstract base class for language front ends.

    Subclasses must implement parse_source().
    """

    #: Human-readable language name
    language: str = ""

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()

    def parse_file(self, file_path: Path) -> list[HandlerAST]:
        """
        Read a source file and extract its handlers.

        Args:
            file_path: The source file.

        Returns:
            Handler trees in source order.

        Raises:
            AdapterError: If the file cannot be read or parsed.
        """
        try:
            source = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AdapterError(file_path, f"cannot read source: {e}") from e
        try:
            handlers = self.parse_source(source, file_path)
        except (RecursionError, MemoryError) as e:
            raise AdapterError(file_path, "source is nested too deeply to analyze") from e
        logger.debug("%s: %d handler(s)", file_path, len(handlers))
        return handlers

    @abstractmethod
    def parse_source(self, source: str, file_path: Path) -> list[HandlerAST]:
        """
        Extract handlers from source text.

        Args:
            source: The file contents.
            file_path: Path recorded in the handler locations.

        Returns:
            Handler trees in source order.
        """
        pass


# Adapter registry, keyed by file suffix
_ADAPTERS: dict[str, type[BaseAdapter]] = {}


def register_adapter(*suffixes: str) -> Callable[[type[BaseAdapter]], type[BaseAdapter]]:
    """
    Decorator to register an adapter for file suffixes.

    Args:
        suffixes: Suffixes including the dot, e.g. ``".py"``.

    Returns:
        Decorator function.
    """
    def decorator(cls: type[BaseAdapter]) -> type[BaseAdapter]:
        for suffix in suffixes:
            _ADAPTERS[suffix.lower()] = cls
        return cls
    return decorator


def _load_adapters() -> None:
    # Import adapters to ensure they're registered
    from endpoint_flow_diff.parser import (  # noqa: F401
        java_adapter,
        python_adapter,
    )


def supported_suffixes() -> list[str]:
    _load_adapters()
    return sorted(_ADAPTERS)


def get_adapter(path: Path | str, config: Optional[ParserConfig] = None) -> BaseAdapter:
    """
    Get an adapter instance for a source file.

    Args:
        path: The source file; only its suffix is used.
        config: Parser configuration passed to the adapter.

    Returns:
        An instance of the adapter registered for the suffix.

    Raises:
        ValueError: If no adapter handles the suffix.
    """
    _load_adapters()
    suffix = Path(path).suffix.lower()
    if suffix not in _ADAPTERS:
        available = ", ".join(sorted(_ADAPTERS))
        raise ValueError(f"No adapter for '{suffix}' files. Supported: {available}")
    return _ADAPTERS[suffix](config)


def discover_sources(root: Path, config: Optional[ParserConfig] = None) -> list[Path]:
    """
    Find the source files to analyze below a root.

    A file root is returned as is. For a directory, files matching an
    include pattern and no exclude pattern are returned, restricted to
    suffixes some adapter handles, sorted by path.

    Raises:
        FileNotFoundError: If the root does not exist.
    """
    config = config or ParserConfig()
    if not root.exists():
        raise FileNotFoundError(f"Source path not found: {root}")
    if root.is_file():
        return [root]

    suffixes = set(supported_suffixes())
    found: list[Path] = []
    for path in root.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in suffixes:
            continue
        relative = path.relative_to(root).as_posix()
        if not _matches_any(relative, config.include_patterns):
            continue
        if _matches_any(relative, config.exclude_patterns):
            continue
        found.append(path)
    return sorted(found)


def _matches_any(relative: str, patterns: list[str]) -> bool:
    # A leading "/" lets "**/x/**" match "x/..." at the root
    return any(fnmatch(relative, p) or fnmatch("/" + relative, p) for p in patterns)


# Status codes

def status_from_expr(expr: Optional[Expr]) -> Optional[int]:
    """
    Read a literal status code.

    Accepts integer literals and named constants such as
    ``status.HTTP_404_NOT_FOUND``, ``HTTPStatus.NOT_FOUND`` or
    ``Response.Status.NOT_FOUND``.
    """
    if isinstance(expr, Constant):
        if isinstance(expr.value, int) and not isinstance(expr.value, bool):
            return expr.value
        return None
    if isinstance(expr, Attribute):
        return status_from_name(expr.attr)
    if isinstance(expr, Name):
        return status_from_name(expr.id)
    if isinstance(expr, Call) and expr.name == "getStatusCode":
        return status_from_expr(expr.receiver)
    return None


def status_from_name(name: str) -> Optional[int]:
    """``HTTP_400_BAD_REQUEST`` -> 400, ``NOT_FOUND`` -> 404."""
    if name.startswith("HTTP_"):
        digits = name[5:8]
        return int(digits) if digits.isdigit() else None
    try:
        return HTTPStatus[name].value
    except KeyError:
        return None
