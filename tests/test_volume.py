"""Tests for disk_provisioner.storage.volume."""

import pytest

from disk_provisioner.storage import volume
from disk_provisioner.storage.exceptions import CarveError, QueryError


FREE_SPACE_ARGS = ["get", "-Hp", "-o", "value", "available", "disk"]


class TestGetPoolFreeSpace:
    def test_parses_bytes(self, fake_runner):
        fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout="1000000\n")
        assert volume.get_pool_free_space(fake_runner, "disk") == 1_000_000

    def test_missing_pool(self, fake_runner):
        fake_runner.fail("zfs", stderr="cannot open 'disk': dataset does not exist")
        with pytest.raises(QueryError, match="dataset does not exist"):
            volume.get_pool_free_space(fake_runner, "disk")

    @pytest.mark.parametrize("output", ["", "-", "12G", "-5"])
    def test_rejects_non_integer(self, fake_runner, output):
        fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout=output)
        with pytest.raises(QueryError):
            volume.get_pool_free_space(fake_runner, "disk")


class TestVolumeSize:
    def test_floor_of_percentage(self):
        assert volume.volume_size_for(1_000_000, 93) == 930_000
        assert volume.volume_size_for(999, 93) == 929

    def test_alignment_rounds_down(self):
        assert volume.volume_size_for(1_000_000, 93, 8192) == 925_696


class TestCarveVolume:
    def test_creates_sparse_volume(self, fake_runner):
        fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout="1000000\n")

        size = volume.carve_volume(fake_runner, "disk", "data", 93)

        assert size == 930_000
        assert fake_runner.calls[-1] == ["zfs", "create", "-s", "-V", "930000", "disk/data"]

    def test_no_room(self, fake_runner):
        fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout="0\n")

        with pytest.raises(CarveError, match="no room"):
            volume.carve_volume(fake_runner, "disk", "data", 93)

        assert len(fake_runner.calls) == 1

    def test_create_failure(self, fake_runner):
        fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout="1000000\n")
        fake_runner.fail(
            "zfs",
            ["create", "-s", "-V", "930000", "disk/data"],
            stderr="volume size must be a multiple of volume block size",
        )

        with pytest.raises(CarveError, match="multiple of volume block size"):
            volume.carve_volume(fake_runner, "disk", "data", 93)

    def test_query_failure_creates_nothing(self, fake_runner):
        fake_runner.fail("zfs", stderr="no such pool")
        with pytest.raises(QueryError):
            volume.carve_volume(fake_runner, "disk", "data", 93)
        assert len(fake_runner.calls) == 1


def test_non_ascii_digits_are_a_query_error(fake_runner):
    fake_runner.respond("zfs", FREE_SPACE_ARGS, stdout="1²\n")
    with pytest.raises(QueryError, match="not an unsigned integer"):
        volume.get_pool_free_space(fake_runner, "disk")
