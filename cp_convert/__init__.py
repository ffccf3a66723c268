"""Content-package converter.

Converts content-package archives into deployment artifacts: an ordered
deployment plan, a generated initialization script per package, and the
residual packages with everything the script now provisions stripped out.

Key Invariants:
- Dependencies are converted before their dependents; cycles fail the run
- No script statement references an identity or path not yet created
- Scripts are byte-stable for a given input, whatever the traversal order
- A path or service-user home is created at most once per run

Example usage:
    from cp_convert import ConversionOrchestrator, load_config

    config = load_config(artifacts_dir="out/artifacts", manifests_dir="out/manifests")
    results = ConversionOrchestrator(config).convert([Path("site.tar.gz")])
"""

from cp_convert.config import ConverterConfig, load_config
from cp_convert.exceptions import (
    ConfigError,
    ConversionError,
    CyclicDependencyError,
    DescriptorParseError,
    FilteredEntryError,
    PackageFormatError,
    UnresolvedReferenceError,
)
from cp_convert.ledger import AccessControlStatement, AclLedger, SystemIdentity
from cp_convert.orchestrator import ConversionOrchestrator, ConversionResult
from cp_convert.ordering import DependencyPredicate, PackageIdentity, PackageOrderResolver
from cp_convert.path_types import PathTypeResolver
from cp_convert.repo_path import RepoPath

__all__ = [
    "AccessControlStatement",
    "AclLedger",
    "ConfigError",
    "ConversionError",
    "ConversionOrchestrator",
    "ConversionResult",
    "ConverterConfig",
    "CyclicDependencyError",
    "DependencyPredicate",
    "DescriptorParseError",
    "FilteredEntryError",
    "PackageFormatError",
    "PackageIdentity",
    "PackageOrderResolver",
    "PathTypeResolver",
    "RepoPath",
    "SystemIdentity",
    "UnresolvedReferenceError",
    "load_config",
]

__version__ = "0.1.0"
