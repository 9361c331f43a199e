# tests/test_logger.py
"""Test log files and report handlers"""

import logging

import pytest

from spot_library.core.logger import (
    get_logger,
    log_scan_error,
    log_upgrade_candidate,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def logs(temp_dir):
    """Run setup_logging into temp_dir and read a log back by prefix"""
    setup_logging(temp_dir)

    def read(prefix: str) -> str:
        shutdown_logging()
        [path] = (temp_dir / "logs").glob(f"{prefix}_*.log")
        return path.read_text(encoding="utf-8")

    yield read
    shutdown_logging()


class TestLogFiles:
    """Test what lands in which file"""

    def test_full_and_error_logs(self, logs):
        logger = get_logger("spot_library.test")
        logger.debug("debug detail")
        logger.error("something broke")

        assert "debug detail" in logs("log_full")

    def test_error_log_excludes_info(self, logs):
        logger = get_logger("spot_library.test")
        logger.info("just info")
        logger.error("something broke")

        content = logs("log_errors")
        assert "something broke" in content
        assert "just info" not in content

    def test_scan_errors_report(self, logs):
        logger = get_logger("spot_library.test")
        logger.error("ordinary error")
        log_scan_error(logger, "/music/broken.mp3", "Unsupported format")

        assert logs("scan_errors") == "/music/broken.mp3\nUnsupported format\n\n"

    def test_upgrade_candidates_report(self, logs):
        log_upgrade_candidate(
            get_logger("spot_library.test"),
            "/music/one.mp3",
            "One More Time - Daft Punk",
            "https://open.spotify.com/track/x",
            "high",
            ["tidal", "qobuz"],
        )

        content = logs("upgrade_candidates")
        assert content.startswith("/music/one.mp3\n")
        assert "(confidence: high)" in content
        assert "Available on: tidal, qobuz" in content

    def test_shutdown_removes_handlers(self, temp_dir):
        setup_logging(temp_dir)
        shutdown_logging()
        assert logging.getLogger().handlers == []
