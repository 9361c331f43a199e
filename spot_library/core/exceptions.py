"""
Exception classes for spot-library.

Every error raised by the package derives from SpotLibraryError and
carries a short message for the user plus a details dict for the logs.

Exception Hierarchy:
    SpotLibraryError (base)
        InputError - Invalid caller input (empty root, empty file list)
        ConfigError - Configuration file issues
        CacheError - Persisted scan cache cannot be opened or written
        MetadataError - Tag reading issues for a single file
        FingerprintError - Acoustic fingerprinting issues for a single file
        CatalogError - Catalog (Spotify) search issues
        AvailabilityError - Availability lookup issues
        FileOperationError - Delete/move issues for a single file

Propagation:
    Only InputError, ConfigError and CacheError are meant to reach the
    caller of a scan. The per-file errors (MetadataError, FingerprintError,
    CatalogError, AvailabilityError) are collected on the scan result or
    on the affected suggestion and never abort a batch.
"""


class SpotLibraryError(Exception):
    """
    Root of the package's exception tree.

    Catch it to handle any failure raised by spot-library in one place.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., file path, query).

    Example:
        try:
            finder.find_duplicates(root)
        except SpotLibraryError as e:
            logger.error(f"Scan failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Args:
            message: Text shown to the user.
            details: Extra context written to the debug log. Keys in use:
                     - 'file_path': Local file involved in the error
                     - 'root_path': Scanned root folder
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class InputError(SpotLibraryError):
    """
    Raised when the caller passes invalid input to a scan operation.

    This is a fail-fast error: it is raised before any work starts and
    is never retried.

    Common causes:
        - Empty or non-existent root folder
        - Root path that is a file, not a directory
        - Empty file list for a batch or revalidation
        - Invalid scan options (e.g. zero duration tolerance)

    Example:
        raise InputError(
            "Root folder does not exist",
            details={'root_path': '/music/missing'}
        )
    """
    pass


class ConfigError(SpotLibraryError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Explicit config path not found
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., negative worker count)
        - Spotify credentials missing when an upgrade scan is requested

    Example:
        raise ConfigError(
            "'duplicates.workers' must be a positive integer",
            details={'field': 'duplicates.workers', 'value': 0}
        )
    """
    pass


class CacheError(SpotLibraryError):
    """
    Raised when the persisted scan cache store cannot be used.

    This is a CRITICAL error. Corrupted or stale cache *content* is never
    reported this way (it is a cache miss); this error means the store
    itself cannot be opened, initialized or written.

    Common causes:
        - Cache directory does not exist and cannot be created
        - Permission denied on scan_cache.db
        - Schema version mismatch
        - Disk full

    Example:
        raise CacheError(
            "Failed to initialize scan cache store: disk I/O error",
            details={'path': '/home/user/.cache/spot-library/scan_cache.db'}
        )
    """
    pass


class MetadataError(SpotLibraryError):
    """
    Raised when the tags of a single audio file cannot be read.

    This is a NON-CRITICAL error. Duplicate scans collect it into the
    bounded error list; upgrade scans fall back to filename parsing.

    Common causes:
        - File is not a supported audio container
        - File is truncated or corrupted
        - Permission denied

    Example:
        raise MetadataError(
            "Unsupported or unreadable audio file",
            details={'file_path': '/music/broken.mp3'}
        )
    """
    pass


class FingerprintError(SpotLibraryError):
    """
    Raised when the external fingerprinting tool fails for one file.

    This is a NON-CRITICAL error collected per file.

    Common causes:
        - fpcalc (Chromaprint) is not installed
        - fpcalc timed out on a very large file
        - fpcalc produced no FINGERPRINT line
    """
    pass


class CatalogError(SpotLibraryError):
    """
    Raised when the catalog (Spotify) search fails.

    Can be CRITICAL (auth failure when creating the client) or
    NON-CRITICAL (a single search failing or timing out, which is
    recorded on the affected suggestion).

    Attributes:
        is_auth_error: True if this is an authentication error (CRITICAL).
        is_rate_limit: True if the API rate limit was hit.

    Example:
        raise CatalogError(
            "Rate limited while searching catalog",
            details={'query': 'One More Time Daft Punk', 'http_status': 429},
            is_rate_limit=True
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_auth_error: bool = False,
        is_rate_limit: bool = False
    ) -> None:
        """
        Initialize the catalog error.

        Args:
            message: Human-readable error description.
            details: Optional additional context.
            is_auth_error: Whether credentials were rejected.
            is_rate_limit: Whether the failure was a 429 response.
        """
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.is_rate_limit = is_rate_limit


class AvailabilityError(SpotLibraryError):
    """
    Raised when the cross-platform availability lookup fails.

    This is a NON-CRITICAL error. The matcher records its message on the
    suggestion and still returns the catalog match.

    Common causes:
        - Request timed out (20 seconds)
        - HTTP 429 from the links API
        - Unexpected response body
    """
    pass


class FileOperationError(SpotLibraryError):
    """
    Raised when a single file cannot be deleted or moved.

    Batch mutators report per-file statuses instead of raising; this is
    raised by the single-file variants.

    Example:
        raise FileOperationError(
            "File does not exist",
            details={'file_path': '/music/gone.flac'}
        )
    """
    pass
