"""Entry classifiers.

Each archive entry is offered to the first registered handler whose
pattern fully matches its path (``/jcr_root/...``, ``/META-INF/...``).
Entries nobody claims are copied verbatim into the current assembler.

Handlers interpret content and feed the ledger; how specific entry types
are interpreted is up to the handlers plugged in here. The one handler
the converter always carries is the sub-package handler, which hands
embedded packages back to the orchestrator for recursive conversion.

Example:
    from cp_convert.handlers import EntryHandlerRegistry, RegexEntryHandler

    registry = EntryHandlerRegistry.default()

    @registry.register(r"/META-INF/vault/privileges\\.txt")
    class PrivilegesHandler(RegexEntryHandler):
        def handle(self, entry_path, stream, context):
            for line in stream.read().decode().splitlines():
                context.ledger.add_privilege_registration(line.strip())
"""

from __future__ import annotations

import importlib
import logging
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from cp_convert.exceptions import ConfigError, UnresolvedReferenceError

logger = logging.getLogger(__name__)

SUB_PACKAGE_PATTERN = r"/jcr_root/etc/packages/.+\.tar\.gz"


class EntryHandler(ABC):
    """Interprets one archive entry within a conversion context."""

    @abstractmethod
    def handle(self, entry_path: str, stream: BinaryIO, context) -> None:
        """Consume ``stream`` for ``entry_path``."""


class RegexEntryHandler(EntryHandler):
    """Handler bound to the pattern it is registered under."""

    pattern: Optional[re.Pattern] = None

    def match(self, entry_path: str) -> Optional[re.Match]:
        if self.pattern is None:
            return None
        return self.pattern.fullmatch(entry_path)


class DefaultEntryHandler(EntryHandler):
    """Copies the entry into the current assembler unchanged."""

    def handle(self, entry_path: str, stream: BinaryIO, context) -> None:
        context.assembler.add_entry(entry_path, stream)


class SubPackageEntryHandler(RegexEntryHandler):
    """Converts an embedded package recursively through the orchestrator."""

    def handle(self, entry_path: str, stream: BinaryIO, context) -> None:
        with tempfile.TemporaryDirectory(dir=context.work_dir) as tmpdir:
            archive = Path(tmpdir) / Path(entry_path).name
            with open(archive, "wb") as out:
                shutil.copyfileobj(stream, out)
            context.orchestrator.process_sub_package(entry_path, archive, context)


class ResourceFilter:
    """Regex patterns rejecting archive entries (full match)."""

    def __init__(self, patterns: Optional[List[str]] = None):
        self.patterns: List[re.Pattern] = []
        for pattern in patterns or []:
            self.add_pattern(pattern)

    def add_pattern(self, pattern: str) -> None:
        if pattern is None:
            raise UnresolvedReferenceError("pattern", "filtering pattern")
        if not pattern:
            raise ConfigError("Empty pattern to filter resources out is not a valid filtering pattern")
        self.patterns.append(re.compile(pattern))

    def is_filtered_out(self, path: str) -> bool:
        for pattern in self.patterns:
            if pattern.fullmatch(path):
                logger.debug("Path '%s' matches '%s' filtering pattern", path, pattern.pattern)
                return True
        return False

    def __bool__(self) -> bool:
        return bool(self.patterns)


class EntryHandlerRegistry:
    """Ordered pattern -> handler table; first match wins."""

    def __init__(self):
        self._handlers: List[Tuple[re.Pattern, EntryHandler]] = []

    @classmethod
    def default(cls) -> "EntryHandlerRegistry":
        registry = cls()
        registry.register(SUB_PACKAGE_PATTERN, SubPackageEntryHandler())
        return registry

    @classmethod
    def from_config(cls, handlers: Dict[str, str]) -> "EntryHandlerRegistry":
        """Build the default registry plus ``{pattern: "module:attribute"}`` handlers.

        The attribute is called without arguments and must return an
        EntryHandler (a handler class qualifies).
        """
        registry = cls.default()
        for pattern, target in (handlers or {}).items():
            registry.register(pattern, load_handler(target))
        return registry

    def register(self, pattern: str, handler: Optional[EntryHandler] = None):
        """Register ``handler`` under ``pattern``; usable as a class decorator."""
        compiled = re.compile(pattern)

        def add(h):
            instance = h() if isinstance(h, type) else h
            if not isinstance(instance, EntryHandler):
                raise ConfigError(f"{h!r} is not an EntryHandler")
            if isinstance(instance, RegexEntryHandler):
                instance.pattern = compiled
            self._handlers.append((compiled, instance))
            return h

        if handler is None:
            return add
        add(handler)
        return handler

    def get_handler(self, entry_path: str) -> Optional[EntryHandler]:
        for pattern, handler in self._handlers:
            if pattern.fullmatch(entry_path):
                return handler
        return None

    def __len__(self) -> int:
        return len(self._handlers)


def load_handler(target: str) -> EntryHandler:
    """Instantiate a handler from ``module:attribute``."""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ConfigError(f"Invalid entry handler reference {target!r}, expected module:attribute")
    try:
        factory: Callable[[], EntryHandler] = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Unable to load entry handler {target!r}: {e}") from e
    handler = factory()
    if not isinstance(handler, EntryHandler):
        raise ConfigError(f"{target!r} did not produce an EntryHandler")
    return handler
