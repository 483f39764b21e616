from __future__ import annotations

from typing import Any, cast

import msgpack
from msgpack.exceptions import UnpackException

from proxycache._exceptions import StoreError
from proxycache._headers import Headers
from proxycache._models import CacheEntry

__all__ = ("MAGIC", "pack", "unpack")

# Bumped whenever the field layout below changes.
MAGIC = b"PXC1"


def pack(entry: CacheEntry) -> bytes:
    """
    Encode a cache entry as a self-describing binary record.

    The record is the magic prefix followed by a MessagePack array holding,
    in this order, the status line, the headers as `[name, value]` pairs (one
    pair per value) and the body.
    """
    return MAGIC + cast(
        bytes,
        msgpack.packb(
            [
                entry.status_line,
                [[name, value] for name, value in entry.headers.multi_items()],
                entry.body,
            ],
            use_bin_type=True,
        ),
    )


def unpack(data: bytes) -> CacheEntry:
    if not data.startswith(MAGIC):
        raise StoreError("Cache record has an unknown format")

    try:
        record = msgpack.unpackb(data[len(MAGIC) :], raw=False, use_list=True)
    except (ValueError, UnpackException) as exc:
        raise StoreError("Cache record is corrupt or truncated") from exc

    if not isinstance(record, list) or len(record) != 3:
        raise StoreError("Cache record has an unexpected layout")

    status_line, raw_headers, body = record
    if not isinstance(status_line, str) or not isinstance(body, bytes) or not isinstance(raw_headers, list):
        raise StoreError("Cache record has an unexpected layout")

    headers = Headers()
    for pair in raw_headers:
        if not _is_header_pair(pair):
            raise StoreError("Cache record contains a malformed header")
        headers.add(pair[0], pair[1])

    return CacheEntry(status_line=status_line, headers=headers, body=body)


def _is_header_pair(pair: Any) -> bool:
    return isinstance(pair, list) and len(pair) == 2 and all(isinstance(item, str) for item in pair)
