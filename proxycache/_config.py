import os
from typing import Optional, TypedDict


class Config(TypedDict, total=False):
    # port the proxy listens on, no default
    port: int
    """
    The port the proxy listens on.
    """

    # backend every request goes to unless full_proxy_mode is set
    origin: Optional[str]
    """
    The origin base URL, e.g. ``http://dummyjson.com``.
    """

    full_proxy_mode: bool
    """
    Honor the Host requested by the client instead of the configured origin.
    """

    # override default value with the environment variable PROXYCACHE_HOST
    host: Optional[str]
    """
    The address to bind. None binds every interface.
    """

    # override default value with the environment variable PROXYCACHE_CACHE_DIR
    cache_dir: str
    """
    The directory where cached responses are stored.
    """

    # seconds, override default value with the environment variable PROXYCACHE_TIMEOUT
    timeout: Optional[float]
    """
    How long to wait on the origin (in seconds). None waits forever.
    """

    # override default value with the environment variable PROXYCACHE_LOG_LEVEL
    log_level: str
    """
    The logging level name, e.g. ``DEBUG``.
    """


def get_default_config() -> Config:
    """Get the default configuration for proxycache."""

    HOST = os.getenv("PROXYCACHE_HOST") or None
    CACHE_DIR = os.getenv("PROXYCACHE_CACHE_DIR", "./cache")
    TIMEOUT = os.getenv("PROXYCACHE_TIMEOUT")
    LOG_LEVEL = os.getenv("PROXYCACHE_LOG_LEVEL", "INFO")

    return {
        "origin": None,
        "full_proxy_mode": False,
        "host": HOST,
        "cache_dir": CACHE_DIR,
        "timeout": float(TIMEOUT) if TIMEOUT else None,
        "log_level": LOG_LEVEL.upper(),
    }
