"""Package assembler: the work buffer of one package under conversion.

Entries that no classifier consumes are copied here verbatim. Once the
package has been traversed, ``create_package()`` writes the residual
content back into a new package archive.

The assembler is also a descriptor source for node-type resolution: it
answers whether a ``.content.xml`` exists under the platform form of a
repository path and what primary type and mixins it declares.

Archives are packed deterministically:
- Normalized file metadata (mtime=0, uid=0, gid=0)
- Gzip mtime set to 0
- Sorted file order
- PAX format
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import shutil
import tarfile
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple, Union

from cp_convert.archive import MANIFEST_NAME, ContentPackage
from cp_convert.exceptions import DescriptorParseError, PackageFormatError, UnresolvedReferenceError
from cp_convert.path_types import CONTENT_DESCRIPTOR, DescriptorSource, parse_descriptor
from cp_convert.repo_path import RepoPath

logger = logging.getLogger(__name__)

ROOT_DIR = "jcr_root"
ARCHIVE_SUFFIX = "tar.gz"


def _deterministic_filter(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo:
    """Zero out metadata that would vary between builds."""
    tarinfo.mtime = 0
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ""
    tarinfo.gname = ""
    tarinfo.mode = 0o755 if tarinfo.isdir() else 0o644
    return tarinfo


class PackageAssembler(DescriptorSource):
    """Directory-backed buffer collecting the residual entries of a package."""

    def __init__(self, package: ContentPackage, storing_dir: Path):
        self.package = package
        self.storing_dir = Path(storing_dir)
        self._entries: List[str] = []

    @classmethod
    def create(cls, package: ContentPackage, work_dir: Optional[Path] = None) -> "PackageAssembler":
        if package is None:
            raise UnresolvedReferenceError("package", "creating assembler")
        if work_dir is not None:
            Path(work_dir).mkdir(parents=True, exist_ok=True)
        storing_dir = Path(tempfile.mkdtemp(prefix=f"{package.identity.name}-", dir=work_dir))
        return cls(package, storing_dir)

    # === Entries ===

    def add_entry(self, path: str, stream: Union[BinaryIO, bytes]) -> Path:
        """Copy an archive entry (``/jcr_root/...``) into the buffer."""
        rel = path.lstrip("/")
        if not rel:
            raise UnresolvedReferenceError("path", "adding assembler entry")
        target = self.storing_dir / rel
        root = self.storing_dir.resolve()
        if root not in target.resolve().parents:
            raise PackageFormatError(self.package.archive_path,
                                     f"PATH_ESCAPE: '{path}' resolves outside the package")
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as out:
            if isinstance(stream, bytes):
                out.write(stream)
            else:
                shutil.copyfileobj(stream, out)
        if rel not in self._entries:
            self._entries.append(rel)
        logger.debug("%s: stored %s", self.package.identity, rel)
        return target

    def add_file(self, path: str, source: Path) -> Path:
        with open(source, "rb") as f:
            return self.add_entry(path, f)

    @property
    def entries(self) -> List[str]:
        return sorted(self._entries)

    # === DescriptorSource ===

    def _descriptor_file(self, path: RepoPath) -> Path:
        platform = path.to_platform().lstrip("/")
        base = self.storing_dir / ROOT_DIR
        if platform:
            base = base / platform
        return base / CONTENT_DESCRIPTOR

    def has_descriptor_at(self, path: RepoPath) -> bool:
        return self._descriptor_file(path).is_file()

    def read_descriptor(self, path: RepoPath) -> Tuple[Optional[str], List[str]]:
        descriptor = self._descriptor_file(path)
        try:
            with open(descriptor, "rb") as f:
                return parse_descriptor(f)
        except (ET.ParseError, OSError) as e:
            raise DescriptorParseError(descriptor, e) from e

    # === Packing ===

    def create_package(self, dest: Path) -> Path:
        """Write the buffered entries plus a manifest into ``dest`` (.tar.gz)."""
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        manifest = dict(self.package.manifest)
        identity = self.package.identity
        manifest.update({
            "group": identity.group,
            "name": identity.name,
            "version": identity.version,
            "dependencies": [str(d) for d in self.package.dependencies],
        })
        manifest_bytes = json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")

        tar_buffer = io.BytesIO()
        with tarfile.open(fileobj=tar_buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
            info = _deterministic_filter(tarfile.TarInfo(MANIFEST_NAME))
            info.size = len(manifest_bytes)
            tar.addfile(info, io.BytesIO(manifest_bytes))
            for rel in self.entries:
                tar.add(self.storing_dir / rel, arcname=rel, recursive=False,
                        filter=_deterministic_filter)

        with open(dest, "wb") as raw_f:
            with gzip.GzipFile(filename="", mode="wb", fileobj=raw_f, mtime=0) as gz:
                gz.write(tar_buffer.getvalue())

        logger.info("%s: assembled %d entries into %s", identity, len(self._entries), dest)
        return dest

    def package_file(self) -> Path:
        """Default create_package() target; removed by cleanup()."""
        identity = self.package.identity
        return self.storing_dir / ".out" / f"{identity.name}-{identity.version}.{ARCHIVE_SUFFIX}"

    def cleanup(self) -> None:
        shutil.rmtree(self.storing_dir, ignore_errors=True)

    def __repr__(self) -> str:
        return f"PackageAssembler({self.package.identity})"
