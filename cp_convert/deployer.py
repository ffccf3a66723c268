"""Artifact deployment.

Residual packages produced by the assemblers are copied into a
repository-style folder layout:

    <output_dir>/<group as path>/<name>/<version>/<name>-<version>[-<classifier>].<type>
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from cp_convert.exceptions import UnresolvedReferenceError
from cp_convert.ordering import PackageIdentity

logger = logging.getLogger(__name__)


class ArtifactsDeployer(ABC):

    @abstractmethod
    def deploy(self, source: Path, identity: PackageIdentity,
               classifier: Optional[str] = None, artifact_type: str = "tar.gz") -> str:
        """Deploy ``source`` and return its ``sha256:<hex>`` digest."""


class FolderArtifactsDeployer(ArtifactsDeployer):

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def target_path(self, identity: PackageIdentity, classifier: Optional[str] = None,
                    artifact_type: str = "tar.gz") -> Path:
        file_name = f"{identity.name}-{identity.version}"
        if classifier:
            file_name += f"-{classifier}"
        file_name += f".{artifact_type}"
        return (
            self.output_dir.joinpath(*identity.group.split("."))
            / identity.name
            / identity.version
            / file_name
        )

    def deploy(self, source: Path, identity: PackageIdentity,
               classifier: Optional[str] = None, artifact_type: str = "tar.gz") -> str:
        if source is None:
            raise UnresolvedReferenceError("source", "deploying artifact")
        if identity is None:
            raise UnresolvedReferenceError("identity", "deploying artifact")
        target = self.target_path(identity, classifier, artifact_type)
        target.parent.mkdir(parents=True, exist_ok=True)
        digest = copy_with_digest(source, target)
        logger.info("Deployed %s to %s (%s)", identity, target, digest)
        return digest


def copy_with_digest(source: Path, target: Path, chunk_size: int = 65536) -> str:
    """Copy ``source`` to ``target`` and return the ``sha256:<hex>`` of the bytes written."""
    sha256 = hashlib.sha256()
    with open(source, "rb") as src, open(target, "wb") as dst:
        for chunk in iter(lambda: src.read(chunk_size), b""):
            sha256.update(chunk)
            dst.write(chunk)
    return f"sha256:{sha256.hexdigest()}"
