from __future__ import annotations

import logging
import typing as tp

import anyio
from anyio.abc import ByteStream
from anyio.streams.buffered import BufferedByteReceiveStream

from ._exceptions import MissingHostError, ProxyError
from ._keygen import key_for_request
from ._models import CacheEntry, Request
from ._origin import AsyncOriginClient
from ._parser import read_request
from ._storages import AsyncBaseStorage
from ._tunnel import TunnelRelay
from ._utils import HEADERS_ENCODING, filter_items

logger = logging.getLogger("proxycache.handler")

__all__ = ("ConnectionHandler", "serialize_response", "CACHE_STATUS_HEADER")

CACHE_STATUS_HEADER = "X-CACHE"

# Replaced by the headers the proxy adds itself.
_OVERRIDDEN_HEADERS = (CACHE_STATUS_HEADER, "Connection")


def serialize_response(entry: CacheEntry, from_cache: bool) -> bytes:
    lines = [entry.status_line]
    lines.extend(f"{name}: {value}" for name, value in filter_items(entry.headers.multi_items(), _OVERRIDDEN_HEADERS))
    lines.append(f"{CACHE_STATUS_HEADER}: {'HIT' if from_cache else 'MISS'}")
    lines.append("Connection: close")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode(HEADERS_ENCODING) + entry.body


class ConnectionHandler:
    """
    Serves a single client connection: one request, one response, then close.

    CONNECT requests are handed to the tunnel relay. Everything else is answered
    from the storage when possible, or fetched from the origin and stored first.

    Args:
        storage: Where responses are cached.
        origin_client: Fetches responses on a cache miss.
        tunnel: Relays CONNECT tunnels.
        origin: The backend every request goes to in fixed-origin mode.
        full_proxy_mode: Honor the Host the client asked for instead of `origin`.
    """

    def __init__(
        self,
        storage: AsyncBaseStorage,
        origin_client: AsyncOriginClient,
        tunnel: tp.Optional[TunnelRelay] = None,
        *,
        origin: tp.Optional[str] = None,
        full_proxy_mode: bool = False,
    ) -> None:
        self.storage = storage
        self.origin_client = origin_client
        self.tunnel = tunnel if tunnel is not None else TunnelRelay()
        self.origin = origin
        self.full_proxy_mode = full_proxy_mode

    async def __call__(self, client: ByteStream) -> None:
        async with client:
            try:
                await self.handle(client)
            except ProxyError as exc:
                logger.warning(f"Closing connection: {exc}")
            except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
                logger.debug(f"Client went away: {exc!r}")
            except Exception:
                logger.exception("Unexpected error while handling a connection")

    async def handle(self, client: ByteStream) -> None:
        reader = BufferedByteReceiveStream(client)
        request = await read_request(reader, origin=self.origin, full_proxy_mode=self.full_proxy_mode)
        if request is None:
            logger.debug("Empty request")
            return

        if request.method == "CONNECT":
            await self.tunnel.run(client, reader, request.target)
            return

        if request.host is None:
            raise MissingHostError("Host header not found")

        entry, from_cache = await self.lookup(request)
        logger.info(f"{request.method} {request.target} X-CACHE: {'HIT' if from_cache else 'MISS'}")

        await client.send(serialize_response(entry, from_cache))
        try:
            await client.send_eof()
        except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as exc:
            logger.debug(f"Could not shut down the client output: {exc!r}")

    async def lookup(self, request: Request) -> tp.Tuple[CacheEntry, bool]:
        key = key_for_request(request, self.full_proxy_mode)

        entry = await self.storage.get(key)
        if entry is not None:
            logger.debug(f"Cache hit for {key}")
            return entry, True

        logger.debug(f"Cache miss for {key}")
        entry = await self.origin_client.fetch(request, self.full_proxy_mode)
        await self.storage.put(key, entry)
        return entry, False
