"""Package ordering.

Linearizes a set of content packages so that every package comes after
the packages it depends on. Dependencies are declared as predicates
(group, name, optional version range) rather than exact identities, so
the resolution happens in two steps:

1. ``DependencyGraph`` evaluates every predicate once against the full
   node set, keeping the matching candidates in input order.
2. ``PackageOrderResolver`` walks the static graph depth-first, post-order.
   Each dependency is satisfied by its first candidate that has not been
   placed yet; a dependency with no such candidate is external and skipped.

Reaching a package that is still on the DFS stack is a cycle and fails the
whole ordering step: no partial order is ever returned.

Example:
    from cp_convert.ordering import PackageOrderResolver

    ordered = PackageOrderResolver().order({pkg.identity: pkg for pkg in packages})
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from cp_convert.exceptions import CyclicDependencyError, UnresolvedReferenceError

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "0.0.0"

_VERSION_SEPARATORS = re.compile(r"[.\-]")


@dataclass(frozen=True)
class PackageIdentity:
    """(group, name, version) triple identifying a package."""

    group: str
    name: str
    version: str = DEFAULT_VERSION

    @classmethod
    def parse(cls, value: str) -> "PackageIdentity":
        """Parse ``group:name[:version]``."""
        parts = value.split(":")
        if len(parts) < 2 or not parts[1]:
            raise ValueError(f"Invalid package identity: {value!r}")
        version = parts[2] if len(parts) > 2 and parts[2] else DEFAULT_VERSION
        return cls(parts[0], parts[1], version)

    def __str__(self) -> str:
        return f"{self.group}:{self.name}:{self.version}"


@total_ordering
class Version:
    """Dotted version compared segment by segment.

    Segments are split on ``.`` and ``-``; two numeric segments compare as
    integers, anything else compares as strings, numbers sorting first.
    When one version is a prefix of the other, the longer one is greater.
    """

    def __init__(self, value: str):
        self.value = value.strip()
        self.segments = tuple(s for s in _VERSION_SEPARATORS.split(self.value) if s)

    @staticmethod
    def _key(segment: str) -> Tuple[int, Union[int, str]]:
        if segment.isdigit():
            return (0, int(segment))
        return (1, segment)

    def _keys(self):
        return tuple(self._key(s) for s in self.segments)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._keys() == other._keys()

    def __lt__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._keys() < other._keys()

    def __hash__(self) -> int:
        return hash(self._keys())

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"Version('{self.value}')"


@dataclass(frozen=True)
class VersionRange:
    """Version interval. Both bounds are optional.

    ``""`` matches everything, ``"1.0"`` means ``>= 1.0``, bracket notation
    ``[1.0,2.0)`` gives explicit inclusive/exclusive bounds.
    """

    low: Optional[Version] = None
    low_inclusive: bool = True
    high: Optional[Version] = None
    high_inclusive: bool = False

    @classmethod
    def parse(cls, value: Optional[str]) -> "VersionRange":
        if value is None or not value.strip():
            return cls()
        value = value.strip()
        if value[0] not in "[(":
            return cls(low=Version(value))
        if value[-1] not in "])" or "," not in value:
            raise ValueError(f"Invalid version range: {value!r}")
        low, high = (v.strip() for v in value[1:-1].split(",", 1))
        return cls(
            low=Version(low) if low else None,
            low_inclusive=value[0] == "[",
            high=Version(high) if high else None,
            high_inclusive=value[-1] == "]",
        )

    def includes(self, version: Union[str, Version]) -> bool:
        if not isinstance(version, Version):
            version = Version(version)
        if self.low is not None:
            if version < self.low or (version == self.low and not self.low_inclusive):
                return False
        if self.high is not None:
            if version > self.high or (version == self.high and not self.high_inclusive):
                return False
        return True

    def __str__(self) -> str:
        if self.low is None and self.high is None:
            return ""
        if self.high is None and self.low_inclusive:
            return str(self.low)
        return "%s%s,%s%s" % (
            "[" if self.low_inclusive else "(",
            self.low or "",
            self.high or "",
            "]" if self.high_inclusive else ")",
        )


@dataclass(frozen=True)
class DependencyPredicate:
    """Declared dependency: group/name plus an optional version range."""

    group: str
    name: str
    versions: VersionRange = VersionRange()

    @classmethod
    def parse(cls, value: str) -> "DependencyPredicate":
        """Parse ``group:name[:range]``."""
        parts = value.strip().split(":", 2)
        if len(parts) < 2 or not parts[1]:
            raise ValueError(f"Invalid dependency declaration: {value!r}")
        versions = VersionRange.parse(parts[2]) if len(parts) > 2 else VersionRange()
        return cls(parts[0], parts[1], versions)

    def matches(self, identity: PackageIdentity) -> bool:
        return (
            identity.group == self.group
            and identity.name == self.name
            and self.versions.includes(identity.version)
        )

    def __str__(self) -> str:
        rendered = f"{self.group}:{self.name}"
        if str(self.versions):
            rendered += f":{self.versions}"
        return rendered


class DependencyGraph:
    """Static dependency graph over a finalized set of packages.

    Handles are any objects exposing ``identity`` and ``dependencies``
    (an iterable of objects with ``matches(identity)``).
    """

    def __init__(self, packages: Mapping[PackageIdentity, object]):
        self.handles: Dict[PackageIdentity, object] = dict(packages)
        self.nodes: List[PackageIdentity] = list(self.handles)
        self.edges: Dict[PackageIdentity, List[List[PackageIdentity]]] = {
            identity: [self.candidates(dep) for dep in (handle.dependencies or ())]
            for identity, handle in self.handles.items()
        }

    def candidates(self, predicate) -> List[PackageIdentity]:
        """All nodes satisfying ``predicate``, in input order."""
        return [node for node in self.nodes if predicate.matches(node)]


def first_remaining_candidate(
    candidates: Sequence[PackageIdentity],
    placed: Iterable[PackageIdentity],
) -> Optional[PackageIdentity]:
    """Pick the first candidate not yet placed in the output order."""
    placed = placed if isinstance(placed, (set, dict)) else set(placed)
    for candidate in candidates:
        if candidate not in placed:
            return candidate
    return None


class PackageOrderResolver:
    """Depth-first, post-order linearization of a dependency graph."""

    def order(self, packages: Union[Mapping[PackageIdentity, object], Iterable[object]]) -> list:
        """Return package handles with dependencies strictly first.

        Raises:
            CyclicDependencyError: If a dependency cycle is found
            UnresolvedReferenceError: If ``packages`` is None
        """
        if packages is None:
            raise UnresolvedReferenceError("packages", "ordering")
        if not isinstance(packages, Mapping):
            packages = {handle.identity: handle for handle in packages}

        graph = DependencyGraph(packages)
        result: Dict[PackageIdentity, object] = {}
        visiting: List[PackageIdentity] = []

        for identity in graph.nodes:
            if identity not in result:
                self._visit(identity, graph, visiting, result)

        logger.info("Resolved package order: %s", ", ".join(str(i) for i in result))
        return list(result.values())

    def _visit(self, identity, graph: DependencyGraph, visiting: list, result: dict) -> None:
        if identity in visiting:
            raise CyclicDependencyError(identity, visiting[visiting.index(identity):])
        visiting.append(identity)

        for candidates in graph.edges[identity]:
            target = first_remaining_candidate(candidates, result)
            if target is None:
                logger.debug("%s: dependency satisfied externally or already placed", identity)
                continue
            self._visit(target, graph, visiting, result)

        visiting.pop()
        result[identity] = graph.handles[identity]


__all__ = [
    "DEFAULT_VERSION",
    "DependencyGraph",
    "DependencyPredicate",
    "PackageIdentity",
    "PackageOrderResolver",
    "Version",
    "VersionRange",
    "first_remaining_candidate",
]
