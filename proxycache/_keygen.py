from __future__ import annotations

import hashlib

from proxycache._exceptions import MissingHostError
from proxycache._models import Request
from proxycache._utils import origin_form

__all__ = ("generate_key", "effective_host", "key_for_request")

HTTP_SCHEME = "http://"


def generate_key(method: str, host: str, target: str) -> str:
    """
    Compute the cache key of a request.

    The method and the concatenation of host and target are fed into a
    SHA-256 digest, which is returned as a lowercase hex string.

    Example:
        >>> generate_key("GET", "dummyjson.com", "/products/1") == generate_key("GET", "dummyjson.com", "/products/1")
        True
    """
    hasher = hashlib.sha256()
    hasher.update(method.encode("utf-8"))
    hasher.update((host + target).encode("utf-8"))
    return hasher.hexdigest()


def effective_host(host: str) -> str:
    # "http://dummyjson.com" and "dummyjson.com" name the same origin
    return host[len(HTTP_SCHEME) :] if host.startswith(HTTP_SCHEME) else host


def key_for_request(request: Request, full_proxy_mode: bool = False) -> str:
    host = request.host
    if host is None:
        raise MissingHostError("Host header not found")
    # Matches the URL the origin client fetches
    target = request.target if full_proxy_mode else origin_form(request.target)
    return generate_key(request.method, effective_host(host), target)
