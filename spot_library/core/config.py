"""
Configuration management for spot-library.

Reads config.yaml into frozen dataclasses and rejects bad values early.

The configuration file contains:
    - Spotify API credentials (only needed for upgrade lookups)
    - Scan cache directory and persistence delay
    - Log directory
    - Defaults for duplicate scans
    - Defaults for quality-upgrade scans

Configuration File Location:
    config.yaml is looked up in the current working directory. Unlike an
    explicit --config path, it is optional: when absent, defaults apply.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"

    cache:
      directory: "~/.cache/spot-library"
      persist_delay: 2.0

    duplicates:
      workers: 4
      duration_tolerance_ms: 3000
      use_exact_hash: false

    upgrade:
      workers: 3
      search_delay_ms: 250
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from spot_library.core.exceptions import ConfigError
from spot_library.library.models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DURATION_TOLERANCE_MS,
    ScanOptions,
)


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

# Default directory for the scan cache database and logs
DEFAULT_DATA_DIRECTORY = "~/.cache/spot-library"


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify API credentials (client credentials flow).

    Obtained from the Spotify Developer Dashboard:
    https://developer.spotify.com/dashboard
    """
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class CacheConfig:
    """
    Scan cache configuration.

    Attributes:
        directory: Directory holding scan_cache.db (expanded, absolute).
        persist_delay: Seconds between the first unsaved change and the
                       write to disk.
    """
    directory: Path
    persist_delay: float = 2.0


@dataclass(frozen=True)
class LoggingConfig:
    directory: Path


@dataclass(frozen=True)
class DuplicatesConfig:
    """
    Defaults of `spotlib duplicates`. CLI flags override them.

    Attributes mirror ScanOptions; `workers` maps to worker_count.
    """
    workers: int = 4
    duration_tolerance_ms: int = DEFAULT_DURATION_TOLERANCE_MS
    ignore_duration: bool = False
    use_exact_hash: bool = False
    use_filename_fallback: bool = True
    use_acoustic_fingerprint: bool = False
    merge_similar: bool = False
    recursive: bool = True
    batch_size: int = DEFAULT_BATCH_SIZE

    def to_scan_options(self, **overrides: Any) -> ScanOptions:
        """
        Build ScanOptions from these defaults.

        Args:
            **overrides: ScanOptions fields to override (None values are ignored).
        """
        values: dict[str, Any] = {
            "worker_count": self.workers,
            "duration_tolerance_ms": self.duration_tolerance_ms,
            "ignore_duration": self.ignore_duration,
            "use_exact_hash": self.use_exact_hash,
            "use_filename_fallback": self.use_filename_fallback,
            "use_acoustic_fingerprint": self.use_acoustic_fingerprint,
            "merge_similar": self.merge_similar,
            "recursive": self.recursive,
            "batch_size": self.batch_size,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return ScanOptions(**values)


@dataclass(frozen=True)
class UpgradeConfig:
    """
    Defaults of `spotlib upgrade`.

    Attributes:
        workers: Concurrent file matchers.
        search_limit: Catalog results requested per query.
        search_delay_ms: Minimum delay between two catalog searches of one worker.
        search_timeout: Catalog HTTP timeout in seconds.
        availability_timeout: Availability lookup HTTP timeout in seconds.
    """
    workers: int = 3
    search_limit: int = 5
    search_delay_ms: int = 250
    search_timeout: float = 15.0
    availability_timeout: float = 20.0


@dataclass(frozen=True)
class Config:
    """
    Everything read from config.yaml, one section per attribute.

    Attributes:
        spotify: Spotify credentials, or None if the section is absent.
        cache: Scan cache settings.
        logging: Log directory.
        duplicates: Duplicate scan defaults.
        upgrade: Upgrade scan defaults.

    Example:
        config = load_config()
        registry = ScanCacheRegistry.from_directory(config.cache.directory)
        options = config.duplicates.to_scan_options(use_exact_hash=True)
    """
    spotify: SpotifyConfig | None
    cache: CacheConfig
    logging: LoggingConfig
    duplicates: DuplicatesConfig
    upgrade: UpgradeConfig

    def require_spotify(self) -> SpotifyConfig:
        """
        Return the Spotify credentials.

        Raises:
            ConfigError: If the spotify section is missing.
        """
        if self.spotify is None:
            raise ConfigError(
                "Missing 'spotify' section (client_id and client_secret are required for upgrade lookups)",
                details={"missing_section": "spotify"}
            )
        return self.spotify


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration.

    Args:
        config_path: Optional explicit path to the config file. If None,
                     config.yaml in the current working directory is used
                     when it exists; otherwise all defaults apply.

    Returns:
        Config with every section parsed.

    Raises:
        ConfigError: If an explicit file is not found, the YAML is invalid,
                     or a value has the wrong type or range.

    Example:
        try:
            config = load_config()
        except ConfigError as e:
            print(f"Configuration error: {e.message}")
            sys.exit(1)
    """
    if config_path is None:
        default_path = Path.cwd() / CONFIG_FILENAME
        raw_config = _read_config_file(default_path) if default_path.exists() else {}
    else:
        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        raw_config = _read_config_file(config_path)

    for section in ("spotify", "cache", "logging", "duplicates", "upgrade"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    cache_config = _parse_cache_config(raw_config.get("cache"))
    return Config(
        spotify=_parse_spotify_config(raw_config.get("spotify")),
        cache=cache_config,
        logging=_parse_logging_config(raw_config.get("logging"), cache_config.directory),
        duplicates=_parse_duplicates_config(raw_config.get("duplicates")),
        upgrade=_parse_upgrade_config(raw_config.get("upgrade")),
    )


def _read_config_file(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is valid and means "all defaults"
    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )
    return raw_config


# =============================================================================
# Field helpers
# =============================================================================

def _get_int(section: dict[str, Any], name: str, field: str, default: int, minimum: int) -> int:
    value = section.get(name)
    if value is None:
        return default
    # bool is a subclass of int and is never a valid count
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(
            f"'{field}' must be an integer >= {minimum}",
            details={"field": field, "value": value}
        )
    return value


def _get_float(section: dict[str, Any], name: str, field: str, default: float) -> float:
    value = section.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(
            f"'{field}' must be a non-negative number",
            details={"field": field, "value": value}
        )
    return float(value)


def _get_bool(section: dict[str, Any], name: str, field: str, default: bool) -> bool:
    value = section.get(name)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(
            f"'{field}' must be true or false",
            details={"field": field, "value": value}
        )
    return value


def _get_directory(section: dict[str, Any], field: str, default: str) -> Path:
    value = section.get("directory", default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field}' must be a non-empty string",
            details={"field": field, "value": value}
        )
    return Path(value.strip()).expanduser().resolve()


# =============================================================================
# Section parsers
# =============================================================================

def _parse_spotify_config(spotify_section: dict[str, Any] | None) -> SpotifyConfig | None:
    """
    Parse the Spotify section.

    Returns:
        SpotifyConfig, or None when the section is absent.

    Raises:
        ConfigError: If the section exists but a credential is missing or empty.
    """
    if spotify_section is None:
        return None

    client_id = spotify_section.get("client_id", "")
    client_secret = spotify_section.get("client_secret", "")

    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(
            "'spotify.client_id' must be a non-empty string",
            details={"field": "spotify.client_id"}
        )

    if not isinstance(client_secret, str) or not client_secret.strip():
        raise ConfigError(
            "'spotify.client_secret' must be a non-empty string",
            details={"field": "spotify.client_secret"}
        )

    return SpotifyConfig(
        client_id=client_id.strip(),
        client_secret=client_secret.strip()
    )


def _parse_cache_config(cache_section: dict[str, Any] | None) -> CacheConfig:
    section = cache_section or {}
    return CacheConfig(
        directory=_get_directory(section, "cache.directory", DEFAULT_DATA_DIRECTORY),
        persist_delay=_get_float(section, "persist_delay", "cache.persist_delay", 2.0),
    )


def _parse_logging_config(logging_section: dict[str, Any] | None, default_directory: Path) -> LoggingConfig:
    """Log directory defaults to the cache directory."""
    section = logging_section or {}
    return LoggingConfig(
        directory=_get_directory(section, "logging.directory", str(default_directory))
    )


def _parse_duplicates_config(duplicates_section: dict[str, Any] | None) -> DuplicatesConfig:
    """
    Parse the duplicates section, applying defaults for missing fields.

    Raises:
        ConfigError: If a field has the wrong type or is out of range.
    """
    section = duplicates_section or {}
    return DuplicatesConfig(
        workers=_get_int(section, "workers", "duplicates.workers", 4, 1),
        duration_tolerance_ms=_get_int(
            section, "duration_tolerance_ms", "duplicates.duration_tolerance_ms",
            DEFAULT_DURATION_TOLERANCE_MS, 1
        ),
        ignore_duration=_get_bool(section, "ignore_duration", "duplicates.ignore_duration", False),
        use_exact_hash=_get_bool(section, "use_exact_hash", "duplicates.use_exact_hash", False),
        use_filename_fallback=_get_bool(
            section, "use_filename_fallback", "duplicates.use_filename_fallback", True
        ),
        use_acoustic_fingerprint=_get_bool(
            section, "use_acoustic_fingerprint", "duplicates.use_acoustic_fingerprint", False
        ),
        merge_similar=_get_bool(section, "merge_similar", "duplicates.merge_similar", False),
        recursive=_get_bool(section, "recursive", "duplicates.recursive", True),
        batch_size=_get_int(section, "batch_size", "duplicates.batch_size", DEFAULT_BATCH_SIZE, 1),
    )


def _parse_upgrade_config(upgrade_section: dict[str, Any] | None) -> UpgradeConfig:
    section = upgrade_section or {}
    return UpgradeConfig(
        workers=_get_int(section, "workers", "upgrade.workers", 3, 1),
        search_limit=_get_int(section, "search_limit", "upgrade.search_limit", 5, 1),
        search_delay_ms=_get_int(section, "search_delay_ms", "upgrade.search_delay_ms", 250, 0),
        search_timeout=_get_float(section, "search_timeout", "upgrade.search_timeout", 15.0),
        availability_timeout=_get_float(
            section, "availability_timeout", "upgrade.availability_timeout", 20.0
        ),
    )
