# tests/test_models.py
"""Test library and upgrade data models"""

import pytest

from spot_library.library.models import (
    AudioMetadata,
    CacheEntry,
    DuplicateGroup,
    DuplicateScanResult,
    FileDetail,
    ScanOptions,
    select_best_file,
)
from spot_library.core.exceptions import InputError
from spot_library.upgrade.models import Availability, QualityUpgradeSuggestion

from tests.conftest import make_track


def _detail(path, size=100, **metadata) -> FileDetail:
    return FileDetail.from_scan(path, size, AudioMetadata(**metadata))


class TestAudioMetadata:
    """Test tag merging and serialization"""

    def test_merge_missing_keeps_tags(self):
        tags = AudioMetadata(title="Real Title")
        merged = tags.merge_missing(AudioMetadata(title="Parsed", artist="Parsed Artist"))
        assert merged.title == "Real Title"
        assert merged.artist == "Parsed Artist"

    def test_merge_nothing(self):
        tags = AudioMetadata(title="T", artist="A")
        assert tags.merge_missing(None) is tags
        assert tags.merge_missing(AudioMetadata(title="x", artist="y")) is tags

    def test_dict_round_trip(self):
        metadata = AudioMetadata(title="Song", duration_ms=1000, lossless=True)
        assert AudioMetadata.from_dict(metadata.to_dict()) == metadata

    def test_cache_entry_matches(self):
        entry = CacheEntry(path="/a.mp3", size=10, mod_time_ns=5)
        assert entry.matches(10, 5)
        assert not entry.matches(11, 5)
        assert not entry.matches(10, 6)


class TestBestFile:
    """Test quality ranking inside a group"""

    def test_lossless_wins(self):
        mp3 = _detail("/m/a.mp3", size=900)
        flac = _detail("/m/a.flac", size=100)
        best, reason = select_best_file([mp3, flac])
        assert best is flac
        assert reason.startswith("lossless")

    def test_bit_depth_then_sample_rate(self):
        cd = _detail("/m/cd.flac", bit_depth=16, sample_rate=44100)
        hires = _detail("/m/hr.flac", bit_depth=24, sample_rate=44100)
        fast = _detail("/m/fast.flac", bit_depth=16, sample_rate=96000)
        assert select_best_file([cd, fast, hires])[0] is hires
        assert select_best_file([cd, fast])[0] is fast

    def test_size_then_discovery_order(self):
        small = _detail("/m/a.mp3", size=100)
        large = _detail("/m/b.mp3", size=200)
        twin = _detail("/m/c.mp3", size=100)
        assert select_best_file([small, large])[1].endswith("largest file")
        best, reason = select_best_file([small, twin])
        assert best is small
        assert reason.endswith("first discovered")

    def test_empty(self):
        with pytest.raises(ValueError):
            select_best_file([])


class TestDuplicateGroup:
    """Test group statistics and member removal"""

    def test_statistics(self):
        group = DuplicateGroup(
            normalized_title="song",
            normalized_artist="artist",
            files=[
                _detail("/m/a.mp3", size=100, bitrate=320000, duration_ms=200000),
                _detail("/m/b.mp3", size=50, bitrate=128000, duration_ms=201000),
                _detail("/m/c.flac", size=300),
            ],
        )
        assert group.best_file == "/m/c.flac"
        assert group.total_size == 450
        assert group.formats == ["MP3", "FLAC"]
        assert group.lossless_count == 1
        assert group.lossy_count == 2
        assert group.average_bitrate == 224000
        # The best file has no duration, the first known one is used
        assert group.representative_duration_ms == 200000

    def test_remove_file_recomputes(self):
        group = DuplicateGroup(
            normalized_title="song",
            normalized_artist="artist",
            files=[_detail("/m/a.mp3"), _detail("/m/b.flac"), _detail("/m/c.mp3")],
        )
        assert group.remove_file("/m/b.flac")
        assert not group.remove_file("/m/b.flac")
        assert group.best_file == "/m/a.mp3"
        assert group.is_valid

    def test_reclaimable_size(self):
        result = DuplicateScanResult(
            root_path="/m",
            groups=[DuplicateGroup(
                normalized_title="song",
                normalized_artist="artist",
                files=[_detail("/m/a.mp3", size=10), _detail("/m/b.flac", size=30)],
            )],
        )
        assert result.reclaimable_size == 10
        assert result.duplicate_file_count == 2


class TestScanOptions:
    def test_invalid_options(self):
        with pytest.raises(InputError):
            ScanOptions(duration_tolerance_ms=0).validate()
        with pytest.raises(InputError):
            ScanOptions(worker_count=0).validate()


class TestQualityUpgradeSuggestion:
    """Test suggestion flags"""

    def test_upgradeable(self):
        suggestion = QualityUpgradeSuggestion(
            file_path="/m/a.mp3",
            file_name="a.mp3",
            catalog_track=make_track(),
            availability=Availability(catalog_id="track1", qobuz=True),
        )
        assert suggestion.is_matched
        assert suggestion.is_upgradeable

    def test_unmatched(self):
        suggestion = QualityUpgradeSuggestion(file_path="/m/a.mp3", file_name="a.mp3")
        assert not suggestion.is_matched
        assert not suggestion.is_upgradeable
