"""Node type resolution for path-creation statements.

Given a repository path and an ordered list of content sources (the
assemblers of the packages being converted), determine the node type a
``create path`` statement should declare. The first source holding a
content descriptor with a primary type wins; otherwise the generic
container type is used.

Example:
    from cp_convert.path_types import PathTypeResolver

    resolver = PathTypeResolver([sub_assembler, main_assembler])
    resolver(RepoPath.parse("/apps/site")).format()   # '(sling:Folder)'
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional, Sequence, Tuple

from cp_convert.exceptions import UnresolvedReferenceError
from cp_convert.repo_path import RepoPath

logger = logging.getLogger(__name__)

DEFAULT_NODE_TYPE = "sling:Folder"
AUTHORIZABLE_FOLDER_TYPE = "rep:AuthorizableFolder"
CONTENT_DESCRIPTOR = ".content.xml"

JCR_NAMESPACE = "http://www.jcp.org/jcr/1.0"
_JCR_ROOT = f"{{{JCR_NAMESPACE}}}root"
_JCR_PRIMARY_TYPE = f"{{{JCR_NAMESPACE}}}primaryType"
_JCR_MIXIN_TYPES = f"{{{JCR_NAMESPACE}}}mixinTypes"

# {Name}[mix:a,mix:b]
_TYPE_INDICATOR = re.compile(r"\{[^}]+\}\[(.+)\]")


@dataclass(frozen=True)
class NodeType:
    """Primary node type plus optional mixins."""

    primary: str
    mixins: Tuple[str, ...] = field(default_factory=tuple)

    def format(self) -> str:
        """Render as used in ``create path (<type>) <path>``."""
        if self.mixins:
            return f"({self.primary} mixin {','.join(self.mixins)})"
        return f"({self.primary})"

    def __str__(self) -> str:
        return self.format()[1:-1]


DEFAULT_TYPE = NodeType(DEFAULT_NODE_TYPE)


class DescriptorSource(ABC):
    """Content lookup offered by a package assembler."""

    @abstractmethod
    def has_descriptor_at(self, path: RepoPath) -> bool:
        """True if a content descriptor exists at the escaped form of path."""

    @abstractmethod
    def read_descriptor(self, path: RepoPath) -> Tuple[Optional[str], List[str]]:
        """Return (primary type, mixins) of the descriptor at path.

        Raises:
            DescriptorParseError: If the descriptor is malformed
        """


def split_mixins(value: Optional[str]) -> List[str]:
    """Split a mixin declaration, dropping empty entries."""
    if not value:
        return []
    value = value.strip()
    match = _TYPE_INDICATOR.fullmatch(value)
    if match:
        value = match.group(1)
    elif value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    return [m.strip() for m in value.split(",") if m.strip()]


def parse_descriptor(stream: BinaryIO) -> Tuple[Optional[str], List[str]]:
    """Read primary type and mixins from the ``jcr:root`` of a descriptor.

    Raises:
        ET.ParseError: If the document is not well-formed
    """
    for _, element in ET.iterparse(stream, events=("start",)):
        if element.tag == _JCR_ROOT:
            return (
                element.get(_JCR_PRIMARY_TYPE),
                split_mixins(element.get(_JCR_MIXIN_TYPES)),
            )
    return None, []


def resolve_path_type(path: RepoPath, sources: Sequence[DescriptorSource]) -> NodeType:
    """Return the declared node type for ``path``, first source first."""
    if path is None:
        raise UnresolvedReferenceError("path", "resolving node type")
    for source in sources:
        if not source.has_descriptor_at(path):
            continue
        primary, mixins = source.read_descriptor(path)
        if primary:
            logger.debug("Resolved %s to %s via %s", path, primary, source)
            return NodeType(primary, tuple(mixins))
    return DEFAULT_TYPE


class PathTypeResolver:
    """Callable resolver bound to an ordered list of content sources."""

    def __init__(self, sources: Sequence[DescriptorSource] = ()):
        self.sources = list(sources)

    def resolve(self, path: RepoPath) -> NodeType:
        return resolve_path_type(path, self.sources)

    def __call__(self, path: RepoPath) -> NodeType:
        return self.resolve(path)


__all__ = [
    "AUTHORIZABLE_FOLDER_TYPE",
    "CONTENT_DESCRIPTOR",
    "DEFAULT_NODE_TYPE",
    "DEFAULT_TYPE",
    "DescriptorSource",
    "NodeType",
    "PathTypeResolver",
    "parse_descriptor",
    "resolve_path_type",
    "split_mixins",
]
