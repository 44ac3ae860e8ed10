"""
Tests for sync direction resolution.
"""

from __future__ import annotations

import pytest

from tmcloud.director import decide
from tmcloud.models import SyncDirection, SyncMetadata


def meta(ts: int, count: int) -> SyncMetadata:
    return SyncMetadata(timestamp=ts, record_count=count)


class TestDecide:
    def test_no_cloud_metadata_pushes(self):
        assert decide(meta(100, 0), None) is SyncDirection.PUSH

    def test_newer_cloud_with_records_pulls(self):
        assert decide(meta(100, 3), meta(200, 5)) is SyncDirection.PULL

    def test_newer_empty_cloud_does_not_pull(self):
        assert decide(meta(100, 3), meta(200, 0)) is SyncDirection.PUSH

    def test_newer_local_with_records_pushes(self):
        assert decide(meta(300, 5), meta(200, 10)) is SyncDirection.PUSH

    def test_newer_empty_local_falls_back_to_count(self):
        assert decide(meta(300, 0), meta(200, 4)) is SyncDirection.PULL

    def test_equal_timestamps_more_cloud_records_pulls(self):
        assert decide(meta(100, 2), meta(100, 7)) is SyncDirection.PULL

    def test_equal_timestamps_more_local_records_pushes(self):
        assert decide(meta(100, 7), meta(100, 2)) is SyncDirection.PUSH

    @pytest.mark.parametrize("count", [0, 4])
    def test_identical_descriptors_push(self, count: int):
        assert decide(meta(100, count), meta(100, count)) is SyncDirection.PUSH

    def test_never_noop(self):
        results = {
            decide(meta(a, b), meta(c, d))
            for a in (1, 2)
            for b in (0, 1)
            for c in (1, 2)
            for d in (0, 1)
        }
        assert SyncDirection.NOOP not in results
