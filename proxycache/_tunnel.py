from __future__ import annotations

import logging
import typing as tp

import anyio
from anyio.abc import ByteReceiveStream, ByteSendStream, ByteStream

from ._exceptions import TunnelError

logger = logging.getLogger("proxycache.tunnel")

__all__ = ("TunnelRelay", "parse_authority", "DEFAULT_TUNNEL_PORT")

DEFAULT_TUNNEL_PORT = 443

CHUNK_SIZE = 8192

Connector = tp.Callable[[str, int], tp.Awaitable[ByteStream]]

# A peer going away is how a tunnel normally ends.
_CLOSED_ERRORS = (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError)


def parse_authority(target: str) -> tp.Tuple[str, int]:
    """
    Split a CONNECT target into host and port.

    Examples:
        >>> parse_authority("example.com")
        ('example.com', 443)
        >>> parse_authority("example.com:8443")
        ('example.com', 8443)
        >>> parse_authority("[::1]:8443")
        ('::1', 8443)
    """
    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif target.count(":") == 1:
        host, _, port = target.partition(":")
    else:
        host, port = target, ""

    if not host:
        raise TunnelError(f"Missing host in CONNECT target {target!r}")
    if not port:
        return host, DEFAULT_TUNNEL_PORT
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise TunnelError(f"Invalid port in CONNECT target {target!r}")
    return host, int(port)


async def _connect_tcp(host: str, port: int) -> ByteStream:
    return await anyio.connect_tcp(host, port)


class TunnelRelay:
    """
    Opaque byte pump between a client and the target of its CONNECT request.

    Args:
        connector: Opens the outbound connection for a host and port.
            Defaults to a plain TCP connection.
        chunk_size: Most bytes moved per read in each direction.
        agent: Value of the Proxy-Agent header in the established response.
    """

    def __init__(
        self,
        connector: tp.Optional[Connector] = None,
        chunk_size: int = CHUNK_SIZE,
        agent: str = "proxycache",
    ) -> None:
        self._connector = connector if connector is not None else _connect_tcp
        self._chunk_size = chunk_size
        self._agent = agent

    @property
    def established_response(self) -> bytes:
        return f"HTTP/1.1 200 Connection Established\r\nProxy-Agent: {self._agent}\r\n\r\n".encode("ascii")

    async def run(self, client: ByteStream, reader: ByteReceiveStream, target: str) -> None:
        """
        Relay bytes between `client` and `target` until both directions are done.

        `reader` is what the client's bytes are read from. It is usually the buffered
        stream the request was parsed from, so that bytes the client sent right after
        the CONNECT headers are relayed too. The client stream is left open for the
        caller to close.
        """
        host, port = parse_authority(target)

        try:
            remote = await self._connector(host, port)
        except OSError as exc:
            raise TunnelError(f"Could not connect to {host}:{port}") from exc

        logger.debug(f"Tunnel established to {host}:{port}")
        async with remote:
            try:
                await client.send(self.established_response)
            except _CLOSED_ERRORS as exc:
                raise TunnelError("Client went away before the tunnel was established") from exc

            async with anyio.create_task_group() as tg:
                tg.start_soon(self._pump, reader, remote, "client -> target")
                tg.start_soon(self._pump, remote, client, "target -> client")

        logger.debug(f"Tunnel to {host}:{port} closed")

    async def _pump(self, source: ByteReceiveStream, sink: ByteSendStream, direction: str) -> None:
        relayed = 0
        try:
            while True:
                try:
                    chunk = await source.receive(self._chunk_size)
                except anyio.EndOfStream:
                    break
                await sink.send(chunk)
                relayed += len(chunk)
        except _CLOSED_ERRORS as exc:
            logger.debug(f"Relay {direction} stopped: {exc!r}")

        logger.debug(f"Relay {direction} finished after {relayed} bytes")
        await self._half_close(sink, direction)

    async def _half_close(self, sink: ByteSendStream, direction: str) -> None:
        if not isinstance(sink, ByteStream):
            return
        try:
            await sink.send_eof()
        except _CLOSED_ERRORS as exc:
            logger.debug(f"Could not half-close {direction}: {exc!r}")
