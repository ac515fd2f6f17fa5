"""
Endpoint index and baseline/candidate matching.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, Iterable, Iterator, Protocol, TypeVar

from endpoint_flow_diff.models.endpoint import (
    EndpointIdentity,
    EndpointMethod,
    HandlerInfo,
)


class _Routed(Protocol):
    identity: EndpointIdentity
    handler: HandlerInfo


T = TypeVar("T", bound=_Routed)


class IdentityCollisionError(Exception):
    """Two handlers of one version claim the same route and method."""

    def __init__(self, identity: EndpointIdentity, first: HandlerInfo, second: HandlerInfo) -> None:
        self.identity = identity
        self.first = first
        self.second = second
        super().__init__(
            f"{identity} is handled by both {first.qualified_name} ({first.location}) "
            f"and {second.qualified_name} ({second.location})"
        )


class EndpointIndex(Generic[T]):
    """
    Index of one version's endpoints.

    Provides lookups by identity, path, file and method. Works for any
    routed item (handler trees or extracted endpoints) and enforces that
    identities are unique.
    """

    def __init__(self) -> None:
        """Initialize an empty index."""
        self._by_identity: dict[EndpointIdentity, T] = {}
        self._by_path: dict[str, list[T]] = {}
        self._by_file: dict[Path, list[T]] = {}

    def register(self, item: T) -> None:
        """
        Register an endpoint in the index.

        Args:
            item: The endpoint to register.

        Raises:
            IdentityCollisionError: If another handler already claims the
                same identity.
        """
        existing = self._by_identity.get(item.identity)
        if existing is not None:
            raise IdentityCollisionError(item.identity, existing.handler, item.handler)

        self._by_identity[item.identity] = item
        self._by_path.setdefault(item.identity.path, []).append(item)
        self._by_file.setdefault(item.handler.file_path, []).append(item)

    def register_many(self, items: Iterable[T]) -> None:
        """
        Register multiple endpoints.

        Args:
            items: Endpoints to register.
        """
        for item in items:
            self.register(item)

    def get(self, identity: EndpointIdentity) -> T | None:
        return self._by_identity.get(identity)

    def get_all(self) -> list[T]:
        """All registered endpoints, ordered by identity."""
        return [self._by_identity[i] for i in self.identities]

    def get_by_path(self, path: str) -> list[T]:
        """
        Get endpoints by URL path.

        Args:
            path: The URL path to search for.

        Returns:
            List of endpoints with the given path.
        """
        return list(self._by_path.get(path, []))

    def get_by_file(self, file_path: Path | str) -> list[T]:
        """Get endpoints whose handlers live in a specific file."""
        return list(self._by_file.get(Path(file_path), []))

    def get_by_method(self, method: EndpointMethod) -> list[T]:
        """Get endpoints routed on an HTTP method."""
        return [item for item in self.get_all() if item.identity.method == method]

    @property
    def identities(self) -> list[EndpointIdentity]:
        """Registered identities in deterministic order."""
        return sorted(self._by_identity, key=lambda i: i.sort_key)

    @property
    def files(self) -> set[Path]:
        """Get all files containing endpoints."""
        return set(self._by_file.keys())

    @property
    def paths(self) -> set[str]:
        """Get all unique endpoint paths."""
        return set(self._by_path.keys())

    def __len__(self) -> int:
        """Return the number of registered endpoints."""
        return len(self._by_identity)

    def __iter__(self) -> Iterator[T]:
        """Iterate over all endpoints in identity order."""
        return iter(self.get_all())

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity


@dataclass
class MatchResult(Generic[T]):
    """Endpoints paired by identity across two versions."""

    pairs: list[tuple[T, T]] = field(default_factory=list)
    baseline_only: list[T] = field(default_factory=list)
    candidate_only: list[T] = field(default_factory=list)

    @property
    def removed_identities(self) -> list[EndpointIdentity]:
        return [item.identity for item in self.baseline_only]

    @property
    def added_identities(self) -> list[EndpointIdentity]:
        return [item.identity for item in self.candidate_only]


class EndpointMatcher:
    """
    Pair baseline and candidate endpoints by exact identity.

    There is no fuzzy matching: a renamed path or a changed method shows
    up as one removed and one added endpoint.
    """

    def match(self, baseline: Iterable[T], candidate: Iterable[T]) -> MatchResult[T]:
        """
        Match two versions' endpoints.

        Args:
            baseline: Endpoints of the baseline version.
            candidate: Endpoints of the candidate version.

        Returns:
            MatchResult with pairs and unmatched endpoints, each sorted by
            identity.

        Raises:
            IdentityCollisionError: If either version has two handlers
                for one identity.
        """
        base_index: EndpointIndex[T] = EndpointIndex()
        base_index.register_many(baseline)
        cand_index: EndpointIndex[T] = EndpointIndex()
        cand_index.register_many(candidate)
        return self.match_indexes(base_index, cand_index)

    def match_indexes(self, baseline: EndpointIndex[T], candidate: EndpointIndex[T]) -> MatchResult[T]:
        """Match two already built indexes."""
        result: MatchResult[T] = MatchResult()
        for identity in baseline.identities:
            other = candidate.get(identity)
            if other is None:
                result.baseline_only.append(baseline.get(identity))
            else:
                result.pairs.append((baseline.get(identity), other))
        for identity in candidate.identities:
            if identity not in baseline:
                result.candidate_only.append(candidate.get(identity))
        return result
