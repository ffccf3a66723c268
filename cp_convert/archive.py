"""Content-package archives.

A content package is a ``.tar.gz`` with a ``manifest.json`` at its root:

    {
        "group": "my/group",
        "name": "my-package",
        "version": "1.0.0",
        "description": "...",
        "dependencies": ["other.group:base:[1.0,2.0)"]
    }

Every other regular member is a content entry (``jcr_root/...`` for
repository content, ``META-INF/...`` for package metadata). Entry paths are
reported with a leading slash, e.g. ``/jcr_root/apps/site/.content.xml``.

Reading is two-step: ``read_package()`` loads only the manifest (first
pass, enough for ordering); ``ContentPackage.iter_entries()`` streams the
content during conversion.
"""

from __future__ import annotations

import json
import logging
import re
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple

from cp_convert.exceptions import PackageFormatError, UnresolvedReferenceError
from cp_convert.ordering import DEFAULT_VERSION, DependencyPredicate, PackageIdentity

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass
class ContentPackage:
    """Handle on a package archive: identity, dependencies, entries."""

    archive_path: Path
    identity: PackageIdentity
    dependencies: List[DependencyPredicate] = field(default_factory=list)
    description: str = ""
    manifest: dict = field(default_factory=dict)

    def iter_entries(self) -> Iterator[Tuple[str, BinaryIO]]:
        """Yield ``(entry_path, stream)`` for each content entry, in archive order.

        Streams are only valid until the next item is requested.
        """
        try:
            with tarfile.open(self.archive_path, "r:gz") as tf:
                for member in tf:
                    if not member.isfile():
                        continue
                    escape = check_path_escape(member.name)
                    if escape:
                        raise PackageFormatError(self.archive_path, escape)
                    name = _normalize(member.name)
                    if name == MANIFEST_NAME:
                        continue
                    stream = tf.extractfile(member)
                    if stream is None:
                        continue
                    yield f"/{name}", stream
        except tarfile.TarError as e:
            raise PackageFormatError(self.archive_path, f"unreadable archive: {e}") from e

    def __str__(self) -> str:
        return str(self.identity)


def check_path_escape(name: str) -> Optional[str]:
    """Return why an entry name would leave the package root, or None."""
    if name.startswith("/") or name.startswith("\\"):
        return f"PATH_ESCAPE: '{name}' is absolute path"
    if ".." in re.split(r"[\\/]", name):
        return f"PATH_ESCAPE: '{name}' contains '..'"
    return None


def _normalize(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def read_manifest(archive_path: Path) -> dict:
    """Extract and parse the root manifest.json of a package archive."""
    try:
        with tarfile.open(archive_path, "r:gz") as tf:
            for member in tf.getmembers():
                if member.isfile() and _normalize(member.name) == MANIFEST_NAME:
                    f = tf.extractfile(member)
                    if f:
                        return json.loads(f.read().decode("utf-8"))
    except (tarfile.TarError, OSError) as e:
        raise PackageFormatError(archive_path, f"unreadable archive: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PackageFormatError(archive_path, f"invalid {MANIFEST_NAME}: {e}") from e
    raise PackageFormatError(archive_path, f"no {MANIFEST_NAME} found")


def read_package(archive_path) -> ContentPackage:
    """Open a package archive and read its identity and dependencies."""
    if archive_path is None:
        raise UnresolvedReferenceError("archive_path", "reading content-package")
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise PackageFormatError(archive_path, "does not exist or it is not a valid file")

    logger.info("Reading content-package '%s'...", archive_path)
    manifest = read_manifest(archive_path)
    if not isinstance(manifest, dict):
        raise PackageFormatError(archive_path, f"{MANIFEST_NAME} is not an object")

    group = manifest.get("group")
    name = manifest.get("name")
    if not group:
        raise PackageFormatError(archive_path, f"'group' property not found in {MANIFEST_NAME}")
    if not name:
        raise PackageFormatError(archive_path, f"'name' property not found in {MANIFEST_NAME}")
    version = manifest.get("version") or DEFAULT_VERSION
    description = manifest.get("description") or ""
    for key, value in (("group", group), ("name", name), ("version", version), ("description", description)):
        if not isinstance(value, str):
            raise PackageFormatError(archive_path, f"'{key}' property in {MANIFEST_NAME} must be a string")

    declared = manifest.get("dependencies") or []
    if not isinstance(declared, list) or not all(isinstance(d, str) for d in declared):
        raise PackageFormatError(archive_path, f"'dependencies' in {MANIFEST_NAME} must be a list of strings")
    try:
        dependencies = [DependencyPredicate.parse(d) for d in declared]
    except ValueError as e:
        raise PackageFormatError(archive_path, f"invalid dependency declaration: {e}") from e

    package = ContentPackage(
        archive_path=archive_path,
        identity=PackageIdentity(group.replace("/", "."), name, version),
        dependencies=dependencies,
        description=description,
        manifest=manifest,
    )
    logger.info("content-package '%s' successfully read!", package.identity)
    return package
