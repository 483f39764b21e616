from __future__ import annotations

import logging
import typing as tp

import anyio
from anyio.abc import SocketAttribute, TaskStatus

from ._handler import ConnectionHandler
from ._origin import AsyncOriginClient
from ._storages import AsyncBaseStorage, AsyncFileStorage
from ._tunnel import TunnelRelay

logger = logging.getLogger("proxycache.server")

__all__ = ("ProxyServer",)


class ProxyServer:
    """
    Caching proxy listening on a TCP port.

    Every accepted connection is served by its own task; there is no limit on how
    many run at once. A failing connection never stops the listener.

    Args:
        port: The port to listen on. 0 picks a free one.
        origin: The backend every request goes to. Required unless `full_proxy_mode` is set.
        full_proxy_mode: Honor the Host requested by the client.
        host: The address to bind. None binds every interface.
        storage: Where responses are cached. Defaults to an AsyncFileStorage in ./cache.
        origin_client: Fetches responses on a cache miss. Closed when the server stops.
        tunnel: Relays CONNECT tunnels.
    """

    def __init__(
        self,
        port: int,
        origin: tp.Optional[str] = None,
        full_proxy_mode: bool = False,
        host: tp.Optional[str] = None,
        storage: tp.Optional[AsyncBaseStorage] = None,
        origin_client: tp.Optional[AsyncOriginClient] = None,
        tunnel: tp.Optional[TunnelRelay] = None,
    ) -> None:
        if not full_proxy_mode and not origin:
            raise ValueError("An origin is required unless full proxy mode is enabled")

        self.port = port
        self.origin = origin
        self.full_proxy_mode = full_proxy_mode
        self.host = host
        self.storage = storage if storage is not None else AsyncFileStorage()
        self.origin_client = origin_client if origin_client is not None else AsyncOriginClient()
        self.handler = ConnectionHandler(
            self.storage,
            self.origin_client,
            tunnel,
            origin=origin,
            full_proxy_mode=full_proxy_mode,
        )

    async def serve(self, *, task_status: TaskStatus[int] = anyio.TASK_STATUS_IGNORED) -> None:
        """
        Accept connections until cancelled.

        Binding failures propagate. When started with `TaskGroup.start`, the bound port
        is reported once the listener is ready.
        """
        listener = await anyio.create_tcp_listener(local_host=self.host, local_port=self.port)
        port = listener.extra(SocketAttribute.local_port)

        logger.info(f"Caching proxy server started on port {port}")
        if self.full_proxy_mode:
            logger.info("Forwarding requests to the hosts requested by clients")
        else:
            logger.info(f"Forwarding requests to {self.origin}")

        async with listener, self.origin_client:
            task_status.started(port)
            await listener.serve(self.handler)
