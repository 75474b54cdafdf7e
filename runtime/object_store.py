"""Object storage used for receipt images and parse locks."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import BinaryIO, Protocol

from receiptwright.domain.receipt import ObjectRef
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)


class ObjectStore(Protocol):
    async def create_if_absent(self, ref: ObjectRef, data: bytes = b"") -> bool:
        """Write ``ref`` only if it does not exist; False on conflict."""
        ...

    async def delete(self, ref: ObjectRef) -> None: ...

    async def get_size(self, ref: ObjectRef) -> int: ...

    async def open_read(self, ref: ObjectRef) -> BinaryIO: ...


class LocalObjectStore:
    """Filesystem-backed store: one directory per container under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, ref: ObjectRef) -> Path:
        if not ref.container or not ref.name:
            raise ValueError(f"Invalid object reference: {ref!r}")
        path = (self.root / ref.container / ref.name).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Object reference escapes store root: {ref}")
        return path

    def _create_sync(self, ref: ObjectRef, data: bytes) -> bool:
        path = self._path(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # Exclusive create: exactly one concurrent caller wins.
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError:
            return False
        return True

    async def create_if_absent(self, ref: ObjectRef, data: bytes = b"") -> bool:
        created = await asyncio.to_thread(self._create_sync, ref, data)
        logger.debug("create_if_absent %s -> %s", ref, "created" if created else "conflict")
        return created

    async def delete(self, ref: ObjectRef) -> None:
        await asyncio.to_thread(self._path(ref).unlink, missing_ok=True)

    async def get_size(self, ref: ObjectRef) -> int:
        stat = await asyncio.to_thread(self._path(ref).stat)
        return stat.st_size

    async def open_read(self, ref: ObjectRef) -> BinaryIO:
        return await asyncio.to_thread(open, self._path(ref), "rb")

    async def put(self, ref: ObjectRef, data: bytes) -> None:
        """Write or overwrite an object."""
        path = self._path(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
