"""Custom exceptions for the content-package converter."""


class ConversionError(Exception):
    """Base class for every error raised by the converter.

    Attributes:
        message: Human-readable description
        code: Stable error code for the CLI envelope
        details: Additional error details
    """

    code = "CONVERSION_ERROR"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class CyclicDependencyError(ConversionError):
    """Raised when package dependencies form a cycle.

    Attributes:
        identity: The package identity that was reached twice
        chain: The DFS chain, outermost first, that closed the cycle
    """

    code = "CYCLIC_DEPENDENCY"

    def __init__(self, identity, chain: list = None):
        chain = list(chain or [])
        rendered = " -> ".join(str(c) for c in chain + [identity])
        super().__init__(
            f"Cyclic dependency detected on package {identity}: {rendered}",
            details={"identity": str(identity), "chain": [str(c) for c in chain]},
        )
        self.identity = identity
        self.chain = chain


class UnresolvedReferenceError(ConversionError):
    """Raised when a required identifier or path is missing."""

    code = "UNRESOLVED_REFERENCE"

    def __init__(self, field: str, context: str = None):
        message = f"Required reference '{field}' is missing"
        if context:
            message = f"{message} ({context})"
        super().__init__(message, details={"field": field})
        self.field = field


class DescriptorParseError(ConversionError):
    """Raised when a content descriptor cannot be parsed.

    The converter never guesses content semantics, so this is fatal for
    the whole conversion.
    """

    code = "DESCRIPTOR_PARSE_ERROR"

    def __init__(self, path, cause: Exception = None):
        super().__init__(
            f"A fatal error occurred while parsing the '{path}' descriptor: {cause}",
            details={"path": str(path)},
        )
        self.path = path
        self.cause = cause


class PackageFormatError(ConversionError):
    """Raised when a package archive is unreadable or incomplete."""

    code = "PACKAGE_FORMAT_ERROR"

    def __init__(self, archive, reason: str):
        super().__init__(
            f"Invalid content-package {archive}: {reason}",
            details={"archive": str(archive), "reason": reason},
        )
        self.archive = archive
        self.reason = reason


class FilteredEntryError(ConversionError):
    """Raised when an archive entry is rejected by a filtering pattern."""

    code = "FILTERED_ENTRY"

    def __init__(self, entry_path: str, package=None):
        super().__init__(
            f"Path '{entry_path}' in content-package {package} not allowed by "
            "user configuration, please check configured filtering patterns",
            details={"entry_path": entry_path, "package": str(package)},
        )
        self.entry_path = entry_path
        self.package = package


class ConfigError(ConversionError):
    """Raised for invalid converter configuration."""

    code = "CONFIG_ERROR"
