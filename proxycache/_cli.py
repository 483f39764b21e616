from __future__ import annotations

import argparse
import logging
import sys
import typing as tp

import anyio

from ._config import Config, get_default_config
from ._origin import AsyncOriginClient
from ._server import ProxyServer
from ._storages import AsyncFileStorage

logger = logging.getLogger("proxycache.cli")

EPILOG = """\
Example:
  proxycache --port 3000 --origin http://dummyjson.com
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxycache",
        description="Caching HTTP proxy with CONNECT tunneling.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--port", type=int, help="Port on which the proxy server will run")
    parser.add_argument("--origin", help="URL of the server to which requests will be forwarded")
    parser.add_argument("--full-caching", action="store_true", help="Handles all outgoing requests")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the cache")
    parser.add_argument("--cache-dir", help="Directory where cached responses are stored")
    parser.add_argument("--timeout", type=float, help="Seconds to wait on the origin server")
    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    config = get_default_config()
    if args.port is not None:
        config["port"] = args.port
    if args.origin is not None:
        config["origin"] = args.origin
    if args.full_caching:
        config["full_proxy_mode"] = True
    if args.cache_dir is not None:
        config["cache_dir"] = args.cache_dir
    if args.timeout is not None:
        config["timeout"] = args.timeout
    if args.log_level is not None:
        config["log_level"] = args.log_level.upper()
    return config


async def run_server(config: Config) -> None:
    server = ProxyServer(
        port=config["port"],
        origin=config.get("origin"),
        full_proxy_mode=config.get("full_proxy_mode", False),
        host=config.get("host"),
        storage=AsyncFileStorage(config["cache_dir"]),
        origin_client=AsyncOriginClient(timeout=config.get("timeout")),
    )
    await server.serve()


def main(argv: tp.Optional[tp.Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args)

    logging.basicConfig(
        level=config["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.clear_cache:
        anyio.run(AsyncFileStorage(config["cache_dir"]).clear)
        return 0

    if "port" not in config:
        print("Port is required", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    if not config["full_proxy_mode"] and not config.get("origin"):
        print("Origin URL is required", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        anyio.run(run_server, config)
    except OSError as exc:
        logger.error(f"Error while starting proxy server: {exc}")
        return 1
    except KeyboardInterrupt:
        logger.info("Proxy server stopped")
    return 0
