from __future__ import annotations

import logging
import types
import typing as tp

import httpx

from ._exceptions import ForwardingError
from ._headers import Headers
from ._models import CacheEntry, Request
from ._utils import HEADERS_ENCODING, SCHEMES, filter_items, is_absolute, origin_form

logger = logging.getLogger("proxycache.origin")

__all__ = ("AsyncOriginClient", "EXCLUDED_REQUEST_HEADERS")

# Hop-by-hop headers that belong to the client-proxy connection.
EXCLUDED_REQUEST_HEADERS = ("Host", "Connection", "Proxy-Connection")

# The captured body is already de-chunked.
EXCLUDED_RESPONSE_HEADERS = ("Transfer-Encoding",)


class AsyncOriginClient:
    """
    Forwards a parsed client request to its origin and captures the whole response.

    Args:
        client: The httpx client used to talk to origins. When omitted, one is created
            without redirect following or environment proxies, and closed by `aclose`.
        timeout: Seconds to wait on the origin before giving up. None (the default)
            waits forever.
    """

    def __init__(
        self,
        client: tp.Optional[httpx.AsyncClient] = None,
        timeout: tp.Optional[float] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = (
            client
            if client is not None
            else httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                follow_redirects=False,
                trust_env=False,
            )
        )

    def resolve_url(self, request: Request, full_proxy_mode: bool = False) -> str:
        """
        Build the URL a request is fetched from.

        In full-proxy mode an absolute target names the URL itself. Otherwise the
        target is appended to the Host header, which in fixed-origin mode holds the
        configured origin, so an absolute target only contributes its path.
        """
        if is_absolute(request.target) and full_proxy_mode:
            return request.target

        host = request.host
        if host is None:
            raise ForwardingError("Cannot resolve the origin of a request without a Host header")
        prefix = "" if host.startswith(SCHEMES) else "http://"
        return prefix + host + origin_form(request.target)

    def build_request(self, request: Request, full_proxy_mode: bool = False) -> httpx.Request:
        url = self.resolve_url(request, full_proxy_mode)
        try:
            # Header values were decoded as latin-1, send them back as the same bytes
            headers = [
                (key.encode(HEADERS_ENCODING), value.encode(HEADERS_ENCODING))
                for key, value in filter_items(request.headers.items(), EXCLUDED_REQUEST_HEADERS)
            ]
        except UnicodeEncodeError as exc:
            raise ForwardingError(f"Header cannot be encoded as {HEADERS_ENCODING}: {exc.object!r}") from exc
        try:
            return httpx.Request(
                method=request.method,
                url=url,
                headers=headers,
                content=request.body,
            )
        except httpx.InvalidURL as exc:
            raise ForwardingError(f"Malformed URL: {url}") from exc

    async def fetch(self, request: Request, full_proxy_mode: bool = False) -> CacheEntry:
        outgoing = self.build_request(request, full_proxy_mode)
        logger.debug(f"Forwarding {outgoing.method} {outgoing.url}")

        try:
            response = await self._client.send(outgoing, stream=True)
            try:
                if response.is_stream_consumed:
                    body = response.content
                else:
                    body = b"".join([chunk async for chunk in response.aiter_raw()])
            finally:
                await response.aclose()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ForwardingError(f"Error while sending request to origin server: {outgoing.url}") from exc

        headers = Headers(
            filter_items(
                [
                    (key.decode(HEADERS_ENCODING), value.decode(HEADERS_ENCODING))
                    for key, value in response.headers.raw
                ],
                EXCLUDED_RESPONSE_HEADERS,
            )
        )
        status_line = f"{request.version} {response.status_code} {response.reason_phrase}"

        logger.debug(f"Origin answered {response.status_code} with {len(body)} body bytes")
        return CacheEntry(status_line=status_line, headers=headers, body=body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncOriginClient":
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()
