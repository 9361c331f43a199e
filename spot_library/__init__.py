"""
spot-library: find duplicate tracks and lossless upgrades in a local music library.

Two engines work on a folder of audio files:

    - Duplicate grouping (spot_library.library.duplicates): groups files
      that hold the same recording by normalized title/artist and duration,
      optionally by content hash or acoustic fingerprint, and picks the
      best-quality file of each group.
    - Quality-upgrade matching (spot_library.upgrade.matcher): matches
      lossy files against the Spotify catalog and checks whether the
      recording is streamable lossless elsewhere.

Both share a persisted scan cache (spot_library.core.cache) so that
re-scanning an unchanged library does not re-read its tags.

The `spotlib` command (spot_library.cli) exposes both engines together
with delete/quarantine/restore operations.
"""

__version__ = "0.1.0"
