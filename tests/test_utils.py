"""Tests for async, file and hash helpers."""

import asyncio
import hashlib

import pytest

from intune_packager.utils.async_utils import retry_async, sync_to_async, timeout_async
from intune_packager.utils.file_utils import (
    copy_item,
    copy_item_async,
    find_files,
    find_files_async,
    format_size,
    place_atomically,
    place_atomically_async,
    safe_remove,
)
from intune_packager.utils.hash_utils import calculate_file_hash_async

from tests.conftest import write_app


@pytest.mark.anyio
async def test_timeout_returns_default_and_cancels() -> None:
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    assert await timeout_async(slow(), 0.01, default="late") == "late"
    assert cancelled.is_set()


@pytest.mark.anyio
async def test_timeout_passes_result_through() -> None:
    async def quick():
        return 42

    assert await timeout_async(quick(), 1.0) == 42


@pytest.mark.anyio
async def test_retry_backs_off_then_succeeds(sleep) -> None:
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert await retry_async(flaky, max_attempts=3, delay=1.0, backoff=2.0, sleep=sleep) == "ok"
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.anyio
async def test_retry_only_catches_listed_exceptions(sleep) -> None:
    async def broken():
        raise KeyError("nope")

    with pytest.raises(KeyError):
        await retry_async(broken, exceptions=(ConnectionError,), sleep=sleep)
    assert sleep.delays == []


@pytest.mark.anyio
async def test_sync_to_async_runs_in_executor() -> None:
    @sync_to_async
    def add(a, b):
        return a + b

    assert await add(2, b=3) == 5


@pytest.mark.anyio
async def test_file_hash(tmp_path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(b"x" * 3000)

    assert await calculate_file_hash_async(path, chunk_size=1024) == hashlib.sha256(b"x" * 3000).hexdigest()


@pytest.mark.parametrize("size, expected", [
    (512, "512.00 B"),
    (1536, "1.50 KB"),
    (6 * 1024 * 1024, "6.00 MB"),
])
def test_format_size(size, expected) -> None:
    assert format_size(size) == expected


def test_find_files_prefers_shortest_path(tmp_path) -> None:
    write_app(tmp_path / "nested" / "deeper" / "Firefox.app")
    write_app(tmp_path / "Firefox.app")
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "Other.pkg").write_bytes(b"")
    (tmp_path / "nested" / "Setup.PKG").write_bytes(b"")

    apps = find_files(tmp_path, "app")
    pkgs = find_files(tmp_path, "pkg")

    assert apps[0] == tmp_path / "Firefox.app"
    assert len(apps) == 2
    assert pkgs == [tmp_path / "nested" / "Setup.PKG"]


def test_copy_and_place(tmp_path) -> None:
    bundle = write_app(tmp_path / "src" / "Firefox.app")
    copied = copy_item(bundle, tmp_path / "dst" / "Firefox.app")
    assert (copied / "Contents" / "Info.plist").is_file()

    artifact = tmp_path / "build" / "out.pkg"
    artifact.parent.mkdir()
    artifact.write_bytes(b"new")
    target = tmp_path / "cache" / "out.pkg"
    target.parent.mkdir()
    target.write_bytes(b"old")

    place_atomically(artifact, target)

    assert target.read_bytes() == b"new"
    assert [p.name for p in target.parent.iterdir()] == ["out.pkg"]


def test_safe_remove(tmp_path) -> None:
    folder = tmp_path / "tmp"
    (folder / "a").mkdir(parents=True)

    assert safe_remove(folder)
    assert not folder.exists()
    assert safe_remove(tmp_path / "absent")


@pytest.mark.anyio
async def test_async_file_helpers(tmp_path) -> None:
    bundle = write_app(tmp_path / "src" / "Firefox.app")

    copied = await copy_item_async(bundle, tmp_path / "dst" / "Firefox.app")
    found = await find_files_async(tmp_path / "dst", "app")
    placed = await place_atomically_async(copied / "Contents" / "Info.plist", tmp_path / "Info.plist")

    assert found == [copied]
    assert placed == tmp_path / "Info.plist"
    assert placed.is_file()
