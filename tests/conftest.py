import os
import typing as tp

import anyio
import anyio.lowlevel
import pytest
from anyio.abc import ByteStream


class FakeByteStream(ByteStream):
    """
    In-memory stand-in for a socket.

    `incoming` chunks are handed out by `receive`, followed by end of stream.
    Everything sent is collected in `sent`.
    """

    def __init__(self, incoming: tp.Iterable[bytes] = ()) -> None:
        self.incoming = [chunk for chunk in incoming if chunk]
        self.sent = bytearray()
        self.eof_sent = False
        self.closed = False

    async def receive(self, max_bytes: int = 65536) -> bytes:
        if self.closed:
            raise anyio.ClosedResourceError
        await anyio.lowlevel.checkpoint()
        if not self.incoming:
            raise anyio.EndOfStream
        chunk = self.incoming[0]
        if len(chunk) > max_bytes:
            self.incoming[0] = chunk[max_bytes:]
            return chunk[:max_bytes]
        self.incoming.pop(0)
        return chunk

    async def send(self, item: bytes) -> None:
        if self.closed or self.eof_sent:
            raise anyio.ClosedResourceError
        await anyio.lowlevel.checkpoint()
        self.sent.extend(item)

    async def send_eof(self) -> None:
        self.eof_sent = True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_stream() -> tp.Callable[..., FakeByteStream]:
    return FakeByteStream


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
