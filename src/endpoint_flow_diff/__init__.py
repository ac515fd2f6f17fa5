"""
Endpoint Flow Diff

A CLI tool that compares two versions of a web service and reports how the
behavior of each HTTP endpoint changed: guards added, removed or modified,
outbound calls added or removed, and success statuses changed. Handlers
are parsed statically, never imported or executed.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("endpoint-flow-diff")
except PackageNotFoundError:
    __version__ = "0.1.0"

# Public API exports
__all__ = [
    "__version__",
]
