from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from proxycache._headers import Headers

__all__ = ("Request", "CacheEntry")


@dataclass
class Request:
    method: str
    target: str
    version: str
    headers: Headers = field(default_factory=Headers)
    body: Optional[bytes] = None

    @property
    def host(self) -> Optional[str]:
        """The first value of the Host header, if the client sent one."""
        return self.headers.get_first("Host")


@dataclass
class CacheEntry:
    """
    A response as it is stored in the cache and replayed to clients.

    The status line keeps the protocol version the client asked with, not the
    one the origin answered with.
    """

    status_line: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
