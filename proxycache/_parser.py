from __future__ import annotations

import logging
from typing import Optional

from anyio import DelimiterNotFound, IncompleteRead
from anyio.streams.buffered import BufferedByteReceiveStream

from ._exceptions import ParseError
from ._headers import Headers, parse_header_line
from ._models import Request
from ._utils import HEADERS_ENCODING

logger = logging.getLogger("proxycache.parser")

__all__ = ("read_request",)

MAX_LINE_SIZE = 65536

BODY_METHODS = ("POST", "PUT")


async def _read_line(reader: BufferedByteReceiveStream) -> Optional[str]:
    """Read one line without its terminator, or None if the stream ended first."""
    try:
        line = await reader.receive_until(b"\n", MAX_LINE_SIZE)
    except IncompleteRead:
        return None
    except DelimiterNotFound as exc:
        raise ParseError(f"Line exceeds {MAX_LINE_SIZE} bytes") from exc
    return line.rstrip(b"\r").decode(HEADERS_ENCODING)


async def read_request(
    reader: BufferedByteReceiveStream,
    *,
    origin: Optional[str],
    full_proxy_mode: bool,
) -> Optional[Request]:
    """
    Read one HTTP request from a client connection.

    Returns None when the client sent no request line at all. In fixed-origin
    mode the Host header is replaced by `origin`, whatever the client sent.
    A POST or PUT body is read only when a Content-Length is present, and then
    exactly that many bytes are consumed.
    """
    request_line = await _read_line(reader)
    if not request_line:
        return None

    parts = request_line.split(" ")
    if len(parts) < 3:
        raise ParseError(f"Malformed request line: {request_line!r}")
    method, target, version = parts[:3]

    headers = Headers()
    while True:
        line = await _read_line(reader)
        if not line:
            break
        parsed = parse_header_line(line)
        if parsed is not None:
            name, values = parsed
            headers[name] = values

    if not full_proxy_mode and origin is not None:
        headers["Host"] = origin

    body = None
    if method.upper() in BODY_METHODS and "Content-Length" in headers:
        content_length = _parse_content_length(headers["Content-Length"])
        if content_length > 0:
            try:
                body = await reader.receive_exactly(content_length)
            except IncompleteRead as exc:
                raise ParseError(f"Connection closed before {content_length} body bytes were received") from exc

    logger.debug(f"Parsed request: {method} {target} {version}")
    return Request(method=method, target=target, version=version, headers=headers, body=body)


def _parse_content_length(value: str) -> int:
    try:
        content_length = int(value)
    except ValueError as exc:
        raise ParseError(f"Invalid Content-Length: {value!r}") from exc
    if content_length < 0:
        raise ParseError(f"Invalid Content-Length: {value!r}")
    return content_length
