"""Conversion orchestrator.

Drives a conversion run in two passes:

1. Read the identity and dependencies of every input archive and order
   the packages so that dependencies come first.
2. Convert each package in that order:
   Traverse -> Assemble -> Deploy -> SerializeManifest -> ResetLedger.

Embedded sub-packages found while traversing are converted recursively
into their own assembler. The assembler receiving entries is always the
top of an explicit ``BufferStack`` carried by the ``ConversionContext``,
so entries found after a sub-package land back in the parent's buffer.

Buffer cleanup always runs. A converted package resets the ledger; a
failed one rolls back the users and paths it added to the session first.
Files already written for a failed package are left in place.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional

from cp_convert.archive import ContentPackage, read_package
from cp_convert.assembler import ARCHIVE_SUFFIX as ARTIFACT_TYPE
from cp_convert.assembler import PackageAssembler
from cp_convert.config import ConverterConfig
from cp_convert.deployer import ArtifactsDeployer, FolderArtifactsDeployer
from cp_convert.exceptions import (
    ConversionError,
    DescriptorParseError,
    FilteredEntryError,
    UnresolvedReferenceError,
)
from cp_convert.handlers import (
    DefaultEntryHandler,
    EntryHandler,
    EntryHandlerRegistry,
    ResourceFilter,
)
from cp_convert.ledger import AclLedger
from cp_convert.manifest import JsonManifestWriter, ManifestSink
from cp_convert.ordering import PackageIdentity, PackageOrderResolver
from cp_convert.path_types import PathTypeResolver

logger = logging.getLogger(__name__)

ManifestFactory = Callable[[ContentPackage], ManifestSink]


class BufferStack:
    """Stack of assemblers; the top receives unclaimed entries."""

    def __init__(self, root: PackageAssembler):
        self._stack: List[PackageAssembler] = [root]
        self._created: List[PackageAssembler] = [root]

    @property
    def current(self) -> PackageAssembler:
        return self._stack[-1]

    @property
    def root(self) -> PackageAssembler:
        return self._stack[0]

    @property
    def depth(self) -> int:
        return len(self._stack)

    @contextmanager
    def pushed(self, assembler: PackageAssembler):
        self._stack.append(assembler)
        self._created.append(assembler)
        try:
            yield assembler
        finally:
            self._stack.pop()

    def sources(self) -> List[PackageAssembler]:
        """All assemblers of this conversion, most recently created first."""
        return list(reversed(self._created))

    def close(self) -> None:
        for assembler in self._created:
            assembler.cleanup()


@dataclass
class ConversionContext:
    """What an entry handler sees while a package is traversed."""

    orchestrator: "ConversionOrchestrator"
    package: ContentPackage
    ledger: AclLedger
    buffers: BufferStack
    work_dir: Optional[Path] = None

    @property
    def assembler(self) -> PackageAssembler:
        return self.buffers.current


@dataclass
class ConversionResult:
    """Outcome of converting one top-level package."""

    identity: PackageIdentity
    status: str
    digest: Optional[str] = None
    manifest: Optional[Path] = None
    init_script: str = ""
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == "converted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.identity),
            "status": self.status,
            "sha256": self.digest,
            "manifest": str(self.manifest) if self.manifest else None,
            "init_script": self.init_script,
            "error": self.error,
        }


class ConversionOrchestrator:
    """Runs the two-pass conversion of a set of content packages."""

    def __init__(
        self,
        config: ConverterConfig,
        ledger: Optional[AclLedger] = None,
        handlers: Optional[EntryHandlerRegistry] = None,
        resource_filter: Optional[ResourceFilter] = None,
        deployer: Optional[ArtifactsDeployer] = None,
        manifest_factory: Optional[ManifestFactory] = None,
        order_resolver: Optional[PackageOrderResolver] = None,
    ):
        if config is None:
            raise UnresolvedReferenceError("config", "creating orchestrator")
        self.config = config
        self.ledger = ledger if ledger is not None else AclLedger()
        self.handlers = handlers if handlers is not None else EntryHandlerRegistry.from_config(config.entry_handlers)
        self.resource_filter = resource_filter if resource_filter is not None else ResourceFilter(config.filtering_patterns)
        self.default_handler: EntryHandler = DefaultEntryHandler()
        self.order_resolver = order_resolver or PackageOrderResolver()

        if deployer is None or manifest_factory is None:
            config.validate_outputs()
        self.deployer = deployer or FolderArtifactsDeployer(config.artifacts_dir)
        self.manifest_factory = manifest_factory or (
            lambda package: JsonManifestWriter(config.manifests_dir, package.identity, package.description)
        )

    # === Pass 1 ===

    def read_packages(self, archives: Iterable[Path]) -> Dict[PackageIdentity, ContentPackage]:
        if archives is None:
            raise UnresolvedReferenceError("archives", "conversion run")
        packages: Dict[PackageIdentity, ContentPackage] = {}
        for archive in archives:
            package = read_package(archive)
            if package.identity in packages:
                logger.warning("Ignoring %s: package %s already read from %s",
                               archive, package.identity, packages[package.identity].archive_path)
                continue
            packages[package.identity] = package
        return packages

    def order(self, archives: Iterable[Path]) -> List[ContentPackage]:
        return self.order_resolver.order(self.read_packages(archives))

    # === Pass 2 ===

    def convert(self, archives: Iterable[Path]) -> List[ConversionResult]:
        """Convert every archive in dependency order.

        Raises:
            CyclicDependencyError: Before anything is converted
            DescriptorParseError: Always, whatever the failure policy
            ConversionError: First package failure under the "abort" policy
        """
        ordered = self.order(archives)
        results: List[ConversionResult] = []
        for package in ordered:
            try:
                results.append(self.convert_package(package))
            except ConversionError as e:
                if self.config.abort_on_failure or isinstance(e, DescriptorParseError):
                    raise
                logger.warning("Conversion of %s failed, continuing: %s", package.identity, e.message)
                results.append(ConversionResult(package.identity, "failed", error=e.to_dict()))
        return results

    def convert_package(self, package: ContentPackage) -> ConversionResult:
        if package is None:
            raise UnresolvedReferenceError("package", "converting")
        logger.info("Converting content-package '%s'...", package.identity)

        work_dir = self.config.work_dir
        buffers = BufferStack(PackageAssembler.create(package, work_dir))
        context = ConversionContext(self, package, self.ledger, buffers, work_dir)
        sink = self.manifest_factory(package)
        try:
            self.traverse(package, context)

            artifact = buffers.root.create_package(buffers.root.package_file())
            digest = self.deployer.deploy(artifact, package.identity, self.config.classifier, ARTIFACT_TYPE)
            sink.add_artifact(f"{package.identity}:{self.config.classifier}:{ARTIFACT_TYPE}", digest)

            script = self.ledger.emit_to(sink, PathTypeResolver(buffers.sources()))
            manifest = sink.serialize()
            logger.info("Conversion of %s complete!", package.identity)
            result = ConversionResult(package.identity, "converted", digest, manifest, script)
        except Exception:
            self.ledger.rollback()
            raise
        else:
            self.ledger.reset()
            return result
        finally:
            buffers.close()

    def traverse(self, package: ContentPackage, context: ConversionContext) -> None:
        for entry_path, stream in package.iter_entries():
            self.process_entry(entry_path, stream, context)

    def process_entry(self, entry_path: str, stream: BinaryIO, context: ConversionContext) -> None:
        if self.resource_filter.is_filtered_out(entry_path):
            raise FilteredEntryError(entry_path, context.package.identity)
        handler = self.handlers.get_handler(entry_path) or self.default_handler
        logger.debug("%s: %s -> %s", context.package.identity, entry_path, type(handler).__name__)
        handler.handle(entry_path, stream, context)

    def process_sub_package(self, entry_path: str, archive: Path, context: ConversionContext) -> None:
        """Convert an embedded package and store its residual archive at ``entry_path``."""
        if entry_path is None:
            raise UnresolvedReferenceError("entry_path", "processing sub-package")
        if archive is None:
            raise UnresolvedReferenceError("archive", "processing sub-package")

        sub_package = read_package(archive)
        logger.info("Processing sub-package %s at %s (depth %d)",
                    sub_package.identity, entry_path, context.buffers.depth)
        sub_assembler = PackageAssembler.create(sub_package, context.work_dir)
        with context.buffers.pushed(sub_assembler):
            self.traverse(sub_package, replace(context, package=sub_package))

        residual = sub_assembler.create_package(sub_assembler.package_file())
        context.assembler.add_file(entry_path, residual)
