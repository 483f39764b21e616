from __future__ import annotations

from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    Union,
)

__all__ = (
    "Headers",
    "parse_header_line",
)

HeaderValue = Union[str, List[str]]


def parse_header_line(line: str) -> Optional[Tuple[str, List[str]]]:
    """
    Split a raw header line into its name and list of values.

    The line is split at the first colon, both sides are trimmed and the value
    is split on ", " into separate values. Lines without a colon are not
    headers and yield None.

    Examples:
        >>> parse_header_line("Accept: text/html, application/json")
        ('Accept', ['text/html', 'application/json'])
        >>> parse_header_line("Host: localhost:8080")
        ('Host', ['localhost:8080'])
        >>> parse_header_line("garbage") is None
        True
    """
    if ":" not in line:
        return None
    name, _, value = line.partition(":")
    return name.strip(), value.strip().split(", ")


class Headers(MutableMapping[str, str]):
    """
    Ordered, case-insensitive multimap of HTTP headers.

    Lookups ignore case while the name is kept as it was last set, so headers
    can be forwarded with their original spelling. Assigning replaces every
    value for the name, `add` appends one.
    """

    def __init__(
        self,
        headers: Union[Mapping[str, HeaderValue], Iterable[Tuple[str, HeaderValue]], None] = None,
    ) -> None:
        self._headers: Dict[str, Tuple[str, List[str]]] = {}
        if headers is None:
            return
        items = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in items:
            if isinstance(value, str):
                self.add(key, value)
            else:
                for item in value:
                    self.add(key, item)

    def get_list(self, key: str) -> Optional[List[str]]:
        entry = self._headers.get(key.lower())
        return None if entry is None else entry[1][:]

    def get_first(self, key: str) -> Optional[str]:
        values = self.get_list(key)
        return values[0] if values else None

    def add(self, key: str, value: str) -> None:
        entry = self._headers.get(key.lower())
        if entry is None:
            self._headers[key.lower()] = (key, [value])
        else:
            entry[1].append(value)

    def multi_items(self) -> List[Tuple[str, str]]:
        return [(name, value) for name, values in self._headers.values() for value in values]

    def copy(self) -> "Headers":
        return Headers(self.multi_items())

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()][1])

    def __setitem__(self, key: str, value: HeaderValue) -> None:  # type: ignore[override]
        self._headers[key.lower()] = (key, [value] if isinstance(value, str) else list(value))

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter([name for name, _ in self._headers.values()])

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self.multi_items()!r})"

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self.multi_items() == other_headers.multi_items()
