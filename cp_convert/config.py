"""Converter configuration.

Loaded from an optional YAML file, then environment variables, then
explicit overrides (CLI flags). Later sources win.

Environment Variables:
    CP_CONVERT_ARTIFACTS_DIR: Deployment target for converted packages
    CP_CONVERT_MANIFESTS_DIR: Output directory for manifest JSON files
    CP_CONVERT_FAILURE_POLICY: "abort" (default) or "continue"
    CP_CONVERT_WORK_DIR: Staging area for assembler buffers

Example config.yaml:
    artifacts_dir: out/artifacts
    manifests_dir: out/manifests
    failure_policy: continue
    filtering_patterns:
      - /jcr_root/var/.*
    entry_handlers:
      /META-INF/vault/privileges\\.txt: my_handlers:PrivilegesHandler
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cp_convert.exceptions import ConfigError

FAILURE_POLICIES = ("abort", "continue")
DEFAULT_CLASSIFIER = "cp2fm-converted"

ENV_VARS = {
    "artifacts_dir": "CP_CONVERT_ARTIFACTS_DIR",
    "manifests_dir": "CP_CONVERT_MANIFESTS_DIR",
    "failure_policy": "CP_CONVERT_FAILURE_POLICY",
    "work_dir": "CP_CONVERT_WORK_DIR",
}

_PATH_FIELDS = ("artifacts_dir", "manifests_dir", "work_dir")


@dataclass
class ConverterConfig:
    """Settings for one conversion run."""

    artifacts_dir: Optional[Path] = None
    manifests_dir: Optional[Path] = None
    failure_policy: str = "abort"
    filtering_patterns: List[str] = field(default_factory=list)
    entry_handlers: Dict[str, str] = field(default_factory=dict)
    classifier: str = DEFAULT_CLASSIFIER
    work_dir: Optional[Path] = None

    def __post_init__(self):
        """Coerce paths and validate choices."""
        for name in _PATH_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(value))
        if self.failure_policy not in FAILURE_POLICIES:
            raise ConfigError(
                f"Invalid failure_policy {self.failure_policy!r}",
                details={"valid": list(FAILURE_POLICIES)},
            )
        if not isinstance(self.filtering_patterns, list):
            raise ConfigError("filtering_patterns must be a list")
        if not isinstance(self.entry_handlers, dict):
            raise ConfigError("entry_handlers must be a mapping of pattern to module:attribute")

    @property
    def abort_on_failure(self) -> bool:
        return self.failure_policy == "abort"

    def validate_outputs(self) -> None:
        """Ensure the output locations required for conversion are set."""
        missing = [name for name in ("artifacts_dir", "manifests_dir") if getattr(self, name) is None]
        if missing:
            raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = str(value) if isinstance(value, Path) else value
        return result


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(path: Optional[Path] = None, **overrides) -> ConverterConfig:
    """Build a ConverterConfig from file, environment and overrides.

    Args:
        path: Optional YAML config file
        **overrides: Explicit values; None values are ignored

    Raises:
        ConfigError: On unreadable files, unknown keys or invalid values
    """
    values: Dict[str, Any] = {}
    if path is not None:
        values.update(_read_yaml(Path(path)))

    for name, env_var in ENV_VARS.items():
        env_value = os.getenv(env_var)
        if env_value:
            values[name] = env_value

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(ConverterConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}", details={"unknown": unknown})

    return ConverterConfig(**values)
