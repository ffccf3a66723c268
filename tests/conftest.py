"""Shared fixtures: building content-package archives on disk."""
from __future__ import annotations

import io
import json
import sys
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def descriptor(primary: str, mixins: Optional[str] = None) -> bytes:
    """A minimal .content.xml declaring a primary type (and mixins)."""
    mixin_attr = f' jcr:mixinTypes="{mixins}"' if mixins else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<jcr:root xmlns:jcr="http://www.jcp.org/jcr/1.0" '
        f'jcr:primaryType="{primary}"{mixin_attr}/>\n'
    ).encode("utf-8")


def build_package(
    dest: Path,
    group: str = "my.group",
    name: str = "pkg",
    version: str = "1.0.0",
    dependencies: Optional[List[str]] = None,
    entries: Optional[Dict[str, Union[str, bytes]]] = None,
    manifest: Optional[dict] = None,
) -> Path:
    """Write a .tar.gz content package with a manifest.json and entries."""
    if manifest is None:
        manifest = {"group": group, "name": name, "version": version}
        if dependencies:
            manifest["dependencies"] = dependencies
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        members = [("manifest.json", json.dumps(manifest).encode("utf-8"))]
        for entry, content in (entries or {}).items():
            members.append((entry, content.encode("utf-8") if isinstance(content, str) else content))
        for member_name, data in members:
            info = tarfile.TarInfo(member_name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return dest


def archive_members(path: Path) -> Dict[str, bytes]:
    """Read every regular member of a .tar.gz into memory."""
    with tarfile.open(path, "r:gz") as tar:
        return {
            m.name: tar.extractfile(m).read()
            for m in tar.getmembers()
            if m.isfile()
        }


@pytest.fixture
def make_package(tmp_path):
    """Factory building archives under tmp_path/input."""
    def factory(name: str = "pkg", **kwargs) -> Path:
        return build_package(tmp_path / "input" / f"{name}.tar.gz", name=name, **kwargs)
    return factory


@pytest.fixture
def clean_env(monkeypatch):
    """Remove converter environment variables."""
    for var in (
        "CP_CONVERT_ARTIFACTS_DIR",
        "CP_CONVERT_MANIFESTS_DIR",
        "CP_CONVERT_FAILURE_POLICY",
        "CP_CONVERT_WORK_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
