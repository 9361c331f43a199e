# tests/test_config.py
"""Test configuration loading"""

import pytest

from spot_library.core.config import CONFIG_FILENAME, load_config
from spot_library.core.exceptions import ConfigError
from spot_library.library.models import DEFAULT_DURATION_TOLERANCE_MS


def _write_config(path, text: str):
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test file lookup and defaults"""

    def test_defaults_without_file(self, temp_dir, monkeypatch):
        """No config.yaml in the working directory means all defaults"""
        monkeypatch.chdir(temp_dir)
        config = load_config()

        assert config.spotify is None
        assert config.cache.persist_delay == 2.0
        assert config.logging.directory == config.cache.directory
        assert config.duplicates.workers == 4
        assert config.duplicates.duration_tolerance_ms == DEFAULT_DURATION_TOLERANCE_MS
        assert config.upgrade.search_delay_ms == 250

    def test_file_in_working_directory(self, temp_dir, monkeypatch):
        _write_config(temp_dir / CONFIG_FILENAME, "duplicates:\n  workers: 8\n")
        monkeypatch.chdir(temp_dir)
        assert load_config().duplicates.workers == 8

    def test_explicit_missing_file(self, temp_dir):
        with pytest.raises(ConfigError) as exc_info:
            load_config(temp_dir / "nope.yaml")
        assert "not found" in exc_info.value.message

    def test_empty_file(self, temp_dir):
        config = load_config(_write_config(temp_dir / "c.yaml", ""))
        assert config.upgrade.workers == 3

    def test_full_file(self, temp_dir):
        path = _write_config(temp_dir / "c.yaml", f"""
spotify:
  client_id: " abc "
  client_secret: "def"
cache:
  directory: "{temp_dir}/cache"
  persist_delay: 0.5
logging:
  directory: "{temp_dir}/logs"
duplicates:
  use_exact_hash: true
  duration_tolerance_ms: 2000
upgrade:
  search_limit: 10
  search_timeout: 5
""")
        config = load_config(path)

        assert config.spotify.client_id == "abc"
        assert config.cache.directory == (temp_dir / "cache").resolve()
        assert config.cache.persist_delay == 0.5
        assert config.logging.directory == (temp_dir / "logs").resolve()
        assert config.duplicates.use_exact_hash
        assert config.duplicates.duration_tolerance_ms == 2000
        assert config.upgrade.search_limit == 10
        assert config.upgrade.search_timeout == 5.0


class TestValidation:
    """Test rejected values"""

    @pytest.mark.parametrize("text", [
        "- just\n- a list\n",
        "duplicates: 3\n",
        "duplicates:\n  workers: 0\n",
        "duplicates:\n  workers: true\n",
        "duplicates:\n  use_exact_hash: 'yes'\n",
        "upgrade:\n  search_timeout: -1\n",
        "cache:\n  directory: ''\n",
        "spotify:\n  client_id: abc\n",
        "key: [unclosed\n",
    ])
    def test_invalid_config(self, temp_dir, text):
        with pytest.raises(ConfigError):
            load_config(_write_config(temp_dir / "c.yaml", text))

    def test_require_spotify(self, temp_dir):
        config = load_config(_write_config(temp_dir / "c.yaml", "upgrade:\n  workers: 2\n"))
        with pytest.raises(ConfigError) as exc_info:
            config.require_spotify()
        assert exc_info.value.details["missing_section"] == "spotify"


class TestScanOptions:
    """Test CLI overrides of duplicate defaults"""

    def test_overrides(self, temp_dir):
        config = load_config(_write_config(temp_dir / "c.yaml", "duplicates:\n  workers: 6\n"))
        options = config.duplicates.to_scan_options(use_exact_hash=True, recursive=None)

        assert options.worker_count == 6
        assert options.use_exact_hash
        assert options.recursive
        assert options.use_filename_fallback
