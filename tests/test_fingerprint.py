# tests/test_fingerprint.py
"""Test Chromaprint fingerprinting helpers"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from spot_library.core.exceptions import FingerprintError
from spot_library.library.fingerprint import (
    ChromaprintFingerprinter,
    durations_compatible,
    fingerprints_match,
    parse_fpcalc_output,
)


class TestParseOutput:
    """Test fpcalc output parsing"""

    def test_parse(self):
        fingerprint, duration_ms = parse_fpcalc_output("DURATION=215.5\nFINGERPRINT=1,2,-1\n")
        assert fingerprint == (1, 2, 0xFFFFFFFF)
        assert duration_ms == 215500

    def test_missing_fingerprint(self):
        with pytest.raises(FingerprintError):
            parse_fpcalc_output("DURATION=10\n")

    def test_malformed_fingerprint(self):
        with pytest.raises(FingerprintError):
            parse_fpcalc_output("FINGERPRINT=1,x,3\n")


class TestMatching:
    """Test bit error rate and duration checks"""

    def test_identical(self):
        assert fingerprints_match((1, 2, 3), (1, 2, 3))

    def test_small_difference(self):
        """A few flipped bits still match"""
        assert fingerprints_match((0, 0, 0, 0), (1, 0, 1, 0))

    def test_unrelated(self):
        assert not fingerprints_match((0, 0), (0xFFFFFFFF, 0xFFFFFFFF))

    def test_prefix_only(self):
        """Different lengths compare the overlapping part"""
        assert fingerprints_match((5, 6), (5, 6, 7, 8, 9))

    def test_empty(self):
        assert not fingerprints_match((), (1,))

    def test_durations(self):
        assert durations_compatible(200000, 204000)
        assert not durations_compatible(200000, 210000)
        # 2% of 600 s is larger than the 5 s floor
        assert durations_compatible(600000, 610000)
        assert durations_compatible(None, 200000)


class TestChromaprintFingerprinter:
    """Test the fpcalc subprocess wrapper"""

    def test_missing_binary(self):
        with patch("spot_library.library.fingerprint.shutil.which", return_value=None):
            fingerprinter = ChromaprintFingerprinter()
        assert not fingerprinter.is_available
        with pytest.raises(FingerprintError):
            fingerprinter.fingerprint("/music/a.mp3")

    def test_runs_fpcalc(self):
        completed = Mock(returncode=0, stdout="DURATION=10\nFINGERPRINT=7,8\n", stderr="")
        fingerprinter = ChromaprintFingerprinter(fpcalc_path="/usr/bin/fpcalc")
        with patch("spot_library.library.fingerprint.subprocess.run", return_value=completed) as run:
            assert fingerprinter.fingerprint("/music/a.mp3") == ((7, 8), 10000)

        command = run.call_args[0][0]
        assert command[0] == "/usr/bin/fpcalc"
        assert "-raw" in command
        assert command[-1] == "/music/a.mp3"

    def test_nonzero_exit(self):
        completed = Mock(returncode=2, stdout="", stderr="ERROR: unsupported")
        fingerprinter = ChromaprintFingerprinter(fpcalc_path="fpcalc")
        with patch("spot_library.library.fingerprint.subprocess.run", return_value=completed):
            with pytest.raises(FingerprintError) as exc_info:
                fingerprinter.fingerprint("/music/a.mp3")
        assert "unsupported" in exc_info.value.message

    def test_timeout(self):
        fingerprinter = ChromaprintFingerprinter(fpcalc_path="fpcalc", timeout=1)
        error = subprocess.TimeoutExpired(cmd="fpcalc", timeout=1)
        with patch("spot_library.library.fingerprint.subprocess.run", side_effect=error):
            with pytest.raises(FingerprintError):
                fingerprinter.fingerprint("/music/a.mp3")
