__all__ = (
    "ProxyError",
    "ParseError",
    "MissingHostError",
    "StoreError",
    "ForwardingError",
    "TunnelError",
)


class ProxyError(Exception): ...


class ParseError(ProxyError): ...


class MissingHostError(ProxyError): ...


class StoreError(ProxyError): ...


class ForwardingError(ProxyError): ...


class TunnelError(ProxyError): ...
