"""Manifest output.

The orchestrator hands every produced artifact and initialization script
to a ManifestSink. JsonManifestWriter is the file-backed implementation:
one JSON document per top-level package, written by ``serialize()``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from cp_convert.ordering import PackageIdentity

logger = logging.getLogger(__name__)

DEFAULT_RUN_MODE = "(default)"


class ManifestSink(ABC):
    """Receives the outputs of one top-level package conversion."""

    @abstractmethod
    def append_init_script(self, text: str, run_mode: Optional[str] = None) -> None:
        """Append an initialization-script block for ``run_mode`` (None = default)."""

    def add_artifact(self, artifact_id: str, digest: str, run_mode: Optional[str] = None) -> None:
        """Record a deployed artifact. Optional for sinks that ignore artifacts."""

    def serialize(self) -> Optional[Path]:
        """Persist the manifest, returning its location if any."""
        return None


class JsonManifestWriter(ManifestSink):
    """Writes ``<output_dir>/<name>.json`` for one package."""

    def __init__(self, output_dir: Path, identity: PackageIdentity, description: str = ""):
        self.output_dir = Path(output_dir)
        self.identity = identity
        self.description = description
        self.init_scripts: Dict[str, str] = {}
        self.artifacts: List[Dict[str, Any]] = []

    def append_init_script(self, text: str, run_mode: Optional[str] = None) -> None:
        key = run_mode or DEFAULT_RUN_MODE
        self.init_scripts[key] = self.init_scripts.get(key, "") + text

    def add_artifact(self, artifact_id: str, digest: str, run_mode: Optional[str] = None) -> None:
        self.artifacts.append({
            "id": artifact_id,
            "sha256": digest,
            "run_mode": run_mode or DEFAULT_RUN_MODE,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.identity),
            "description": self.description,
            "artifacts": self.artifacts,
            "init_scripts": self.init_scripts,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    @property
    def path(self) -> Path:
        return self.output_dir / f"{self.identity.name}.json"

    def serialize(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")
        logger.info("Manifest for %s written to %s", self.identity, self.path)
        return self.path
