"""Repository paths.

A RepoPath is an immutable, normalized, slash-delimited address within the
target content store. Paths are compared by segments and ordered by their
string form so that every sorted output is stable.

Archives store repository names in their platform form (``cq:tags`` is
kept on disk as ``_cq_tags``); ``to_platform()`` and ``from_platform()``
convert between the two.

Example:
    from cp_convert.repo_path import RepoPath

    path = RepoPath.parse("/content/cq:tags")
    path.parent()            # RepoPath('/content')
    path.to_platform()       # '/content/_cq_tags'
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering
from typing import Iterator, Optional, Tuple
from urllib.parse import unquote

_PLATFORM_ESCAPES = {
    "\\": "%5c",
    "<": "%3c",
    ">": "%3e",
    '"': "%22",
    "/": "%2f",
    "|": "%7c",
    "?": "%3f",
    "*": "%2a",
    "%": "%25",
}


def platform_name(name: str) -> str:
    """Escape a single repository name segment to its platform form."""
    buf = ["_"]
    escape_colon = False
    use_underscore = False
    num_underscore = 0
    for i, c in enumerate(name):
        if c == ":":
            if not escape_colon and i > 0:
                escape_colon = True
                use_underscore = True
                num_underscore = 2
                buf.append("_")
            else:
                buf.append("%3a")
        elif c == "_":
            if i == 0:
                use_underscore = True
            num_underscore += 1
            escape_colon = True
            buf.append(c)
        else:
            buf.append(_PLATFORM_ESCAPES.get(c, c))
    escaped = "".join(buf)
    if use_underscore and num_underscore > 1:
        return escaped
    return escaped[1:]


def repository_name(name: str) -> str:
    """Inverse of platform_name()."""
    if name.startswith("__"):
        return unquote(name[1:])
    if name.startswith("_"):
        idx = name.find("_", 2)
        if idx != -1:
            return unquote(f"{name[1:idx]}:{name[idx + 1:]}")
    return unquote(name)


@total_ordering
@dataclass(frozen=True)
class RepoPath:
    """Normalized repository path.

    ``segments`` never contains empty strings. The sentinel path stands
    for "no path": it is never a prefix of, nor prefixed by, anything.
    """

    segments: Tuple[str, ...] = ()
    sentinel: bool = False

    @classmethod
    def parse(cls, path: str) -> "RepoPath":
        """Build a path from its string form; a missing leading slash is assumed."""
        if path is None:
            return cls.unset()
        return cls(tuple(s for s in path.strip().split("/") if s))

    @classmethod
    def root(cls) -> "RepoPath":
        return cls(())

    @classmethod
    def unset(cls) -> "RepoPath":
        return cls((), sentinel=True)

    @classmethod
    def from_platform(cls, path: str) -> "RepoPath":
        """Build a repository path from an escaped on-disk path."""
        return cls(tuple(repository_name(s) for s in path.strip().split("/") if s))

    @property
    def is_root(self) -> bool:
        return not self.sentinel and not self.segments

    def parent(self) -> Optional["RepoPath"]:
        """Return the path minus its last segment, or None at root/sentinel."""
        if self.sentinel or not self.segments:
            return None
        return RepoPath(self.segments[:-1])

    def ancestors(self) -> Iterator["RepoPath"]:
        """Yield every non-root ancestor, nearest first."""
        current = self.parent()
        while current is not None and not current.is_root:
            yield current
            current = current.parent()

    def starts_with(self, other: "RepoPath") -> bool:
        """True if ``other`` is equal to or an ancestor of this path."""
        if self.sentinel or other is None or other.sentinel:
            return False
        n = len(other.segments)
        return len(self.segments) >= n and self.segments[:n] == other.segments

    def child(self, name: str) -> "RepoPath":
        return RepoPath(self.segments + tuple(s for s in name.split("/") if s))

    def to_platform(self) -> str:
        """Escaped form of this path as stored inside package archives."""
        return "/" + "/".join(platform_name(s) for s in self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        if self.sentinel:
            return ""
        return "/" + "/".join(self.segments)

    def __repr__(self) -> str:
        if self.sentinel:
            return "RepoPath(<unset>)"
        return f"RepoPath('{self}')"

    def __lt__(self, other: "RepoPath") -> bool:
        if not isinstance(other, RepoPath):
            return NotImplemented
        return str(self) < str(other)
