"""
Acoustic fingerprinting through the external Chromaprint `fpcalc` tool.

Used only when a duplicate scan is run with use_acoustic_fingerprint.
fpcalc is invoked as a subprocess; nothing is decoded in-process.

Matching:
    Two raw fingerprints match when the average bit error rate over the
    shorter of the two is below FINGERPRINT_MATCH_THRESHOLD. Different
    encodings of the same recording typically stay under ~10%.
    Durations are compared first (±5 s or ±2%, whichever is larger).
"""

import shutil
import subprocess

from spot_library.core.exceptions import FingerprintError
from spot_library.core.logger import get_logger


logger = get_logger(__name__)


# Seconds of audio analysed by fpcalc
FPCALC_LENGTH_SECONDS = 120

# Per-file timeout for fpcalc (large files can be slow)
FPCALC_TIMEOUT_SECONDS = 30

# Maximum average bit error rate for two fingerprints to match
FINGERPRINT_MATCH_THRESHOLD = 0.15

# Duration pre-filter
DURATION_SLACK_MS = 5000
DURATION_SLACK_RATIO = 0.02


class ChromaprintFingerprinter:
    """
    Computes raw Chromaprint fingerprints with fpcalc.

    Attributes:
        fpcalc_path: Resolved path of the fpcalc binary, or None if not installed.
        length: Seconds of audio to analyse.
        timeout: Per-file timeout in seconds.
    """

    def __init__(
        self,
        fpcalc_path: str | None = None,
        length: int = FPCALC_LENGTH_SECONDS,
        timeout: float = FPCALC_TIMEOUT_SECONDS
    ) -> None:
        self.fpcalc_path = fpcalc_path or shutil.which("fpcalc")
        self.length = length
        self.timeout = timeout

    @property
    def is_available(self) -> bool:
        return self.fpcalc_path is not None

    def fingerprint(self, file_path: str) -> tuple[tuple[int, ...], int | None]:
        """
        Fingerprint one file.

        Args:
            file_path: Audio file path.

        Returns:
            Tuple of (raw fingerprint as unsigned 32-bit ints, duration in ms or None).

        Raises:
            FingerprintError: If fpcalc is missing, fails, times out or
                              prints no fingerprint.
        """
        if self.fpcalc_path is None:
            raise FingerprintError(
                "fpcalc (Chromaprint) is not installed",
                details={"file_path": file_path}
            )

        command = [self.fpcalc_path, "-raw", "-length", str(self.length), file_path]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise FingerprintError(
                f"fpcalc timed out after {self.timeout:.0f}s",
                details={"file_path": file_path}
            ) from e
        except OSError as e:
            raise FingerprintError(
                f"Failed to run fpcalc: {e}",
                details={"file_path": file_path, "original_error": str(e)}
            ) from e

        if completed.returncode != 0:
            raise FingerprintError(
                f"fpcalc exited with code {completed.returncode}: {completed.stderr.strip()}",
                details={"file_path": file_path, "returncode": completed.returncode}
            )

        return parse_fpcalc_output(completed.stdout, file_path)


def parse_fpcalc_output(output: str, file_path: str = "") -> tuple[tuple[int, ...], int | None]:
    """
    Parse `fpcalc -raw` output (DURATION=... / FINGERPRINT=1,2,3 lines).

    Raises:
        FingerprintError: If no usable FINGERPRINT line is present.
    """
    duration_ms: int | None = None
    fingerprint: tuple[int, ...] = ()

    for line in output.splitlines():
        key, _, value = line.strip().partition("=")
        if key == "DURATION" and value:
            try:
                duration_ms = int(round(float(value) * 1000))
            except ValueError:
                duration_ms = None
        elif key == "FINGERPRINT" and value:
            try:
                fingerprint = tuple(int(v) & 0xFFFFFFFF for v in value.split(","))
            except ValueError as e:
                raise FingerprintError(
                    "Malformed fingerprint in fpcalc output",
                    details={"file_path": file_path}
                ) from e

    if not fingerprint:
        raise FingerprintError(
            "fpcalc produced no fingerprint",
            details={"file_path": file_path}
        )
    return fingerprint, duration_ms


def fingerprints_match(
    first: tuple[int, ...],
    second: tuple[int, ...],
    threshold: float = FINGERPRINT_MATCH_THRESHOLD
) -> bool:
    """
    Compare two raw fingerprints by average bit error rate.

    Only the overlapping prefix is compared so different trim lengths
    are not penalized.
    """
    length = min(len(first), len(second))
    if length == 0:
        return False
    distance = sum(bin(a ^ b).count("1") for a, b in zip(first[:length], second[:length]))
    return distance / (32 * length) < threshold


def durations_compatible(first_ms: int | None, second_ms: int | None) -> bool:
    """Duration pre-filter: unknown durations always pass."""
    if not first_ms or not second_ms:
        return True
    slack = max(DURATION_SLACK_MS, int(max(first_ms, second_ms) * DURATION_SLACK_RATIO))
    return abs(first_ms - second_ms) <= slack
