from __future__ import annotations

import re
import typing as tp
from pathlib import Path

HEADERS_ENCODING = "iso-8859-1"

SCHEMES = ("http://", "https://")

_PATH_START = re.compile(r"[/?]")

T = tp.TypeVar("T")


def filter_items(items: tp.Iterable[tp.Tuple[str, T]], keys_to_exclude: tp.Iterable[str]) -> tp.List[tp.Tuple[str, T]]:
    """
    Filter out pairs whose key matches one of the excluded keys, using case-insensitive comparison.

    Args:
        items: The input (key, value) pairs to filter.
        keys_to_exclude: An iterable of string keys to exclude (case-insensitive).

    Returns:
        A new list with the specified keys excluded, order preserved.

    Example:
    ```python
            original = [('Host', 'a'), ('Accept', '*/*'), ('connection', 'close')]
            filtered = filter_items(original, ['host', 'Connection'])
            # filtered will be [('Accept', '*/*')]
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return [(k, v) for k, v in items if k.lower() not in exclude_set]


def strip_scheme(value: str) -> str:
    _, sep, rest = value.partition("://")
    return rest if sep else value


def is_absolute(target: str) -> bool:
    return target.startswith(SCHEMES)


def origin_form(target: str) -> str:
    """
    Reduce an absolute-form target to its path and query.

    Example:
    ```python
            origin_form("http://example.com/a?b=c")  # "/a?b=c"
            origin_form("http://example.com?b=c")  # "/?b=c"
            origin_form("/a")  # "/a"
    ```
    """
    if not is_absolute(target):
        return target
    rest = strip_scheme(target)
    match = _PATH_START.search(rest)
    if match is None:
        return "/"
    path = rest[match.start() :]
    return path if path.startswith("/") else "/" + path


def ensure_cache_dir(base_path: Path) -> Path:
    _gitignore_file = base_path / ".gitignore"

    base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by proxycache\n*")
    return base_path
