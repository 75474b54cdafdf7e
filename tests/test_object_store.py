import asyncio
from pathlib import Path

import pytest

from receiptwright.domain.receipt import ObjectRef
from receiptwright.runtime.object_store import LocalObjectStore

LOCK = ObjectRef("receipt-parse-locks", "abc.lock")


def test_create_if_absent_is_exclusive(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path)

    async def scenario() -> tuple[bool, bool, bool]:
        first = await store.create_if_absent(LOCK)
        second = await store.create_if_absent(LOCK)
        await store.delete(LOCK)
        third = await store.create_if_absent(LOCK)
        return first, second, third

    assert asyncio.run(scenario()) == (True, False, True)
    assert (tmp_path / "receipt-parse-locks" / "abc.lock").exists()


def test_concurrent_creates_have_one_winner(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path)

    async def scenario() -> list[bool]:
        return list(await asyncio.gather(*(store.create_if_absent(LOCK) for _ in range(5))))

    assert sorted(asyncio.run(scenario())) == [False, False, False, False, True]


def test_read_size_and_delete(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path)
    ref = ObjectRef("receipts", "r1.jpg")

    async def scenario() -> tuple[int, bytes]:
        await store.put(ref, b"image-bytes")
        size = await store.get_size(ref)
        stream = await store.open_read(ref)
        with stream:
            data = stream.read()
        await store.delete(ref)
        await store.delete(ref)
        return size, data

    assert asyncio.run(scenario()) == (11, b"image-bytes")
    assert not (tmp_path / "receipts" / "r1.jpg").exists()


def test_missing_object_raises(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path)
    with pytest.raises(FileNotFoundError):
        asyncio.run(store.get_size(ObjectRef("receipts", "missing.jpg")))


def test_references_cannot_escape_root(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path / "store")
    with pytest.raises(ValueError):
        asyncio.run(store.create_if_absent(ObjectRef("receipts", "../../outside.lock")))
    with pytest.raises(ValueError):
        asyncio.run(store.get_size(ObjectRef("", "x")))
