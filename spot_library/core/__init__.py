"""
Core module for spot-library.

This module provides the foundational components used throughout the library:
    - exceptions: Custom exception classes for error handling
    - logger: Logging system with multiple outputs
    - batch: Bounded, cancellable worker pool for scans
    - config: Configuration loading and validation
    - cache: Persisted scan cache (SQLite store, per-root caches)
    - progress: Rich progress bars

config and cache depend on the library models and are imported from
their own modules:

    from spot_library.core.config import load_config
    from spot_library.core.cache import ScanCacheRegistry

Usage:
    from spot_library.core import (
        setup_logging, get_logger,
        BatchScanCoordinator, CancellationToken,
        SpotLibraryError, InputError, CacheError
    )
"""

from spot_library.core.batch import (
    BatchError,
    BatchResult,
    BatchScanCoordinator,
    CancellationToken,
)
from spot_library.core.exceptions import (
    AvailabilityError,
    CacheError,
    CatalogError,
    ConfigError,
    FileOperationError,
    FingerprintError,
    InputError,
    MetadataError,
    SpotLibraryError,
)
from spot_library.core.logger import (
    get_logger,
    log_scan_error,
    log_upgrade_candidate,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Batch
    "BatchError",
    "BatchResult",
    "BatchScanCoordinator",
    "CancellationToken",
    # Exceptions
    "SpotLibraryError",
    "InputError",
    "ConfigError",
    "CacheError",
    "MetadataError",
    "FingerprintError",
    "CatalogError",
    "AvailabilityError",
    "FileOperationError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_scan_error",
    "log_upgrade_candidate",
    "shutdown_logging",
]
