from __future__ import annotations

import uuid
from pathlib import Path

import anyio


class AsyncBaseFileManager:
    async def write_to(self, path: Path, data: bytes) -> None:
        raise NotImplementedError()

    async def read_from(self, path: Path) -> bytes:
        raise NotImplementedError()


class AsyncFileManager(AsyncBaseFileManager):
    async def write_to(self, path: Path, data: bytes) -> None:
        """
        Write `data` so that readers of `path` see either the old file or the complete new one.

        The bytes go to a uniquely named sibling first, which is then renamed over `path`.
        """
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with await anyio.open_file(temp_path, "wb") as f:
                await f.write(data)
            await anyio.Path(temp_path).replace(path)
        except OSError:
            await anyio.Path(temp_path).unlink(missing_ok=True)
            raise

    async def read_from(self, path: Path) -> bytes:
        async with await anyio.open_file(path, "rb") as f:
            return await f.read()
