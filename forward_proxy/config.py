"""
Startup configuration.

The three forwarding values (frontend prefix, backend base URL, listen
address) come from the command line, falling back to environment variables
(see ``forward_proxy.vars``). They are validated and normalized once into an
immutable ProxyConfig that is handed to the application explicitly.
"""

import argparse
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from forward_proxy.forwarding.transport import TransportPolicy
from forward_proxy.vars import (
    BACKEND_URL,
    LOG_LEVEL,
    PROXY_BODY_TIMEOUT,
    PROXY_HEADER_TIMEOUT,
    PROXY_HTTP2,
    PROXY_LISTEN,
    PROXY_PREFIX,
    PROXY_REJECT_UNMATCHED,
    PROXY_VERIFY_TLS,
)

LOG_LEVELS = ["critical", "error", "warning", "info", "debug", "trace"]


def normalize_prefix(prefix: str) -> str:
    """Ensure the frontend prefix starts and ends with a slash."""
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if not prefix.endswith("/"):
        prefix = prefix + "/"
    return prefix


def normalize_backend_url(url: str) -> str:
    """Ensure the backend URL is absolute and ends with a slash."""
    parsed = urlsplit(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"backend URL must be an absolute http(s) URL: {url!r}")
    if not url.endswith("/"):
        url = url + "/"
    return url


def split_listen_address(address: str) -> Tuple[str, int]:
    """
    Split ``host:port`` into its parts. An empty host (``:8080``) means every
    interface; a bare port number is accepted as well.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        host, port = "", address
    host = host.strip("[]") or "0.0.0.0"
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"invalid listen address: {address!r}")
    if not 0 < port_number < 65536:
        raise ValueError(f"listen port out of range: {address!r}")
    return host, port_number


@dataclass(frozen=True)
class ProxyConfig:
    frontend_prefix: str = PROXY_PREFIX
    backend_url: str = BACKEND_URL
    listen_address: str = PROXY_LISTEN
    transport: TransportPolicy = field(default_factory=TransportPolicy)
    # Requests outside the prefix are forwarded as-is unless this is set
    reject_unmatched: bool = False
    log_level: str = "info"

    def __post_init__(self):
        for name in ("frontend_prefix", "backend_url", "listen_address"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        object.__setattr__(self, "frontend_prefix", normalize_prefix(self.frontend_prefix))
        object.__setattr__(self, "backend_url", normalize_backend_url(self.backend_url))
        split_listen_address(self.listen_address)

    @property
    def backend_origin(self) -> str:
        parsed = urlsplit(self.backend_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def backend_host(self) -> str:
        return urlsplit(self.backend_url).netloc

    @property
    def backend_path(self) -> str:
        return urlsplit(self.backend_url).path or "/"

    @property
    def listen_host(self) -> str:
        return split_listen_address(self.listen_address)[0]

    @property
    def listen_port(self) -> int:
        return split_listen_address(self.listen_address)[1]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forward-proxy",
        description="Forward requests under a frontend path prefix to a backend base URL.",
    )
    parser.add_argument(
        "--prefix", "-prefix", default=PROXY_PREFIX,
        help="Frontend API path prefix (default: %(default)s)",
    )
    parser.add_argument(
        "--backend", "-backend", default=BACKEND_URL,
        help="Backend base URL (default: %(default)s)",
    )
    parser.add_argument(
        "--port", "-port", default=PROXY_LISTEN,
        help="Listen address, host:port (default: %(default)s)",
    )
    parser.add_argument(
        "--verify-tls", action="store_true", default=PROXY_VERIFY_TLS,
        help="Validate the backend certificate (required for production)",
    )
    parser.add_argument(
        "--no-http2", dest="http2", action="store_false", default=PROXY_HTTP2,
        help="Only speak HTTP/1.1 to the backend",
    )
    parser.add_argument(
        "--reject-unmatched", action="store_true", default=PROXY_REJECT_UNMATCHED,
        help="Answer 404 for paths outside the prefix instead of forwarding them",
    )
    parser.add_argument(
        "--header-timeout", type=float, default=PROXY_HEADER_TIMEOUT,
        help="Seconds to wait for backend response headers (default: %(default)s)",
    )
    parser.add_argument(
        "--body-timeout", type=float, default=PROXY_BODY_TIMEOUT,
        help="Deadline in seconds for relaying a response body (default: none)",
    )
    parser.add_argument(
        "--log-level", choices=LOG_LEVELS, default=LOG_LEVEL,
        help="Log level (default: %(default)s)",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> ProxyConfig:
    """Parse the command line into a ProxyConfig; invalid input exits with status 2."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.prefix:
        parser.error("frontend API prefix must not be empty")
    if not args.backend:
        parser.error("backend URL must not be empty")
    if not args.port:
        parser.error("listen address must not be empty")

    try:
        return ProxyConfig(
            frontend_prefix=args.prefix,
            backend_url=args.backend,
            listen_address=args.port,
            transport=TransportPolicy(
                verify_tls=args.verify_tls,
                http2=args.http2,
                response_header_timeout=args.header_timeout or None,
                body_timeout=args.body_timeout or None,
            ),
            reject_unmatched=args.reject_unmatched,
            log_level=args.log_level,
        )
    except ValueError as e:
        parser.error(str(e))
