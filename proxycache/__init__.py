from proxycache._exceptions import (
    ForwardingError as ForwardingError,
    MissingHostError as MissingHostError,
    ParseError as ParseError,
    ProxyError as ProxyError,
    StoreError as StoreError,
    TunnelError as TunnelError,
)
from proxycache._headers import Headers as Headers, parse_header_line as parse_header_line
from proxycache._models import CacheEntry as CacheEntry, Request as Request
from proxycache._keygen import effective_host as effective_host, generate_key as generate_key
from proxycache._storages import AsyncBaseStorage as AsyncBaseStorage, AsyncFileStorage as AsyncFileStorage
from proxycache._parser import read_request as read_request
from proxycache._origin import AsyncOriginClient as AsyncOriginClient
from proxycache._tunnel import TunnelRelay as TunnelRelay, parse_authority as parse_authority
from proxycache._handler import ConnectionHandler as ConnectionHandler, serialize_response as serialize_response
from proxycache._server import ProxyServer as ProxyServer
from proxycache._config import Config as Config, get_default_config as get_default_config

__all__ = (
    # Errors
    "ProxyError",
    "ParseError",
    "MissingHostError",
    "StoreError",
    "ForwardingError",
    "TunnelError",
    # Models
    "Headers",
    "Request",
    "CacheEntry",
    # Parsing
    "parse_header_line",
    "read_request",
    # Keys
    "generate_key",
    "effective_host",
    # Storages
    "AsyncBaseStorage",
    "AsyncFileStorage",
    # Origin and tunnels
    "AsyncOriginClient",
    "TunnelRelay",
    "parse_authority",
    # Serving
    "ConnectionHandler",
    "serialize_response",
    "ProxyServer",
    # Configuration
    "Config",
    "get_default_config",
)

__version__ = "0.1.0"
