"""
Logging setup for spot-library.

One run writes, under <logging.directory>/logs/:

    log_full_<ts>.log             every record, DEBUG and up
    log_errors_<ts>.log           ERROR and CRITICAL only
    scan_errors_<ts>.log          files a duplicate scan could not read
    upgrade_candidates_<ts>.log   files with a lossless source

The console shows INFO and up (DEBUG with --verbose), printed through
tqdm.write so active progress bars are not torn.

The two report files only receive records carrying their marker
attribute; use log_scan_error() and log_upgrade_candidate() to emit them.

Usage:
    from spot_library.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory, verbose=True)
    logger = get_logger(__name__)
    log_scan_error(logger, "/music/broken.mp3", "Unsupported format")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_PREFIX = "log_full"
LOG_ERRORS_PREFIX = "log_errors"
SCAN_ERRORS_PREFIX = "scan_errors"
UPGRADE_CANDIDATES_PREFIX = "upgrade_candidates"

FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that report every retry at INFO
QUIET_LOGGERS = ("spotipy", "urllib3")


class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """'LEVEL: message' with the level name colored by severity."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.StreamHandler):
    """StreamHandler that prints above tqdm/rich bars instead of through them."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__(stream)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


class ErrorOnlyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ReportHandler(logging.FileHandler):
    """
    File handler for one report.

    Records without the subclass's `marker` attribute (set through
    `extra=`) are ignored; the others are rendered by `format_report`.
    """

    marker = ""

    def __init__(self, report_path: Path) -> None:
        super().__init__(report_path, mode="w", encoding="utf-8")
        self.addFilter(lambda record: hasattr(record, self.marker))

    def format(self, record: logging.LogRecord) -> str:
        return self.format_report(record)

    def format_report(self, record: logging.LogRecord) -> str:
        raise NotImplementedError


class ScanErrorsHandler(ReportHandler):
    """
    scan_errors log, one block per file:

        /music/Album/broken.mp3
        Unsupported or unreadable audio file
    """

    marker = "scan_error_path"

    def format_report(self, record: logging.LogRecord) -> str:
        return f"{record.scan_error_path}\n{getattr(record, 'scan_error_message', '')}\n"


class UpgradeCandidatesHandler(ReportHandler):
    """
    upgrade_candidates log, one block per file:

        /music/Album/One More Time.mp3
        Match: One More Time - Daft Punk https://open.spotify.com/track/... (confidence: high)
        Available on: tidal, qobuz
    """

    marker = "upgrade_file_path"

    def format_report(self, record: logging.LogRecord) -> str:
        services = ", ".join(getattr(record, "upgrade_services", []))
        return (
            f"{record.upgrade_file_path}\n"
            f"Match: {getattr(record, 'upgrade_track', '')} {getattr(record, 'upgrade_track_url', '')} "
            f"(confidence: {getattr(record, 'upgrade_confidence', '')})\n"
            f"Available on: {services}\n"
        )


def _file_handler(path: Path, only_errors: bool = False) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    if only_errors:
        handler.addFilter(ErrorOnlyFilter())
    return handler


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """
    Replace the root logger's handlers with the console, log files and reports.

    Call once from the main thread, after the configuration is loaded
    and before any worker starts.

    Args:
        log_dir: Logging directory; files go to its logs/ subdirectory.
        verbose: Show DEBUG records on the console.
    """
    logs_dir = log_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())

    handlers: list[logging.Handler] = [
        console_handler,
        _file_handler(logs_dir / f"{LOG_FULL_PREFIX}_{timestamp}.log"),
        _file_handler(logs_dir / f"{LOG_ERRORS_PREFIX}_{timestamp}.log", only_errors=True),
        ScanErrorsHandler(logs_dir / f"{SCAN_ERRORS_PREFIX}_{timestamp}.log"),
        UpgradeCandidatesHandler(logs_dir / f"{UPGRADE_CANDIDATES_PREFIX}_{timestamp}.log"),
    ]
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; silent until setup_logging() has run."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flush, close and detach every root handler (CLI `finally` block)."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)


# =============================================================================
# Report records and console lines
# =============================================================================

def log_scan_error(logger: logging.Logger, file_path: str, message: str) -> None:
    logger.error(
        f"Could not read {file_path}: {message}",
        extra={"scan_error_path": file_path, "scan_error_message": message}
    )


def log_upgrade_candidate(
    logger: logging.Logger,
    file_path: str,
    track: str,
    track_url: str,
    confidence: str | None,
    services: list[str]
) -> None:
    """Log a lossless source; the record also lands in upgrade_candidates."""
    logger.info(
        f"Lossless source for {file_path}: {', '.join(services)}",
        extra={
            "upgrade_file_path": file_path,
            "upgrade_track": track,
            "upgrade_track_url": track_url,
            "upgrade_confidence": confidence or "",
            "upgrade_services": services,
        }
    )


def format_group_header(title: str, artist: str, count: int, method: str) -> str:
    label = f"{artist} - {title}" if title else "(identical content)"
    return f"{Colors.CYAN}{label}{Colors.RESET} [{count} files, matched by {method}]"


def format_upgrade_message(file_name: str, confidence: str | None, services: list[str]) -> str:
    if services:
        return (
            f"{Colors.GREEN}Upgrade{Colors.RESET}: {file_name} "
            f"({confidence}) -> {Colors.CYAN}{', '.join(services)}{Colors.RESET}"
        )
    return f"{Colors.YELLOW}No lossless source{Colors.RESET}: {file_name} ({confidence})"


def format_failure_message(file_name: str, reason: str) -> str:
    return f"{Colors.RED}Failed{Colors.RESET}: {file_name} ({reason})"
