"""
Outbound connection policy for the backend.

One pooled ``httpx.AsyncClient`` is shared by every request. httpx leases a
connection per call and returns it to the pool afterwards, so the client is
the only piece of mutable state shared between concurrent requests.
"""

import asyncio
import socket
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Awaitable, List, Optional, Tuple

import httpx

# HTTP/2 forbids connection-specific header fields
CONNECTION_SPECIFIC_HEADERS = ("connection", "keep-alive", "proxy-connection", "upgrade")


@dataclass(frozen=True)
class TransportPolicy:
    # Certificate validation is disabled unless verify_tls is set.
    # Only acceptable for non-production backends.
    verify_tls: bool = False
    response_header_timeout: Optional[float] = 60.0
    idle_timeout: float = 120.0
    max_idle_connections: int = 100
    max_idle_per_host: int = 10
    dial_timeout: float = 30.0
    keepalive_interval: float = 30.0
    http2: bool = True
    body_timeout: Optional[float] = None

    @property
    def keepalive_pool_size(self) -> int:
        # A single backend host is ever dialled, so the per-host cap is the effective one
        return min(self.max_idle_connections, self.max_idle_per_host)


class ResponseHeaderTimeout(httpx.TimeoutException):
    """No response headers arrived within the response-header window."""


class ResponseBodyTimeout(httpx.TimeoutException):
    """Relaying the response body took longer than the body deadline."""


class CallerDisconnected(Exception):
    """The caller went away before the backend answered."""


def keepalive_socket_options(interval: float) -> List[Tuple[int, int, int]]:
    """TCP keep-alive probing, using whichever knobs the platform exposes."""
    seconds = max(1, int(interval))
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds))
    elif hasattr(socket, "TCP_KEEPALIVE"):  # macOS
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, seconds))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds))
    return options


class ConnectionHeaderFilter(httpx.AsyncBaseTransport):
    """
    Drops connection-specific headers from requests that may travel over HTTP/2.

    HTTP/2 is only negotiated through TLS ALPN, so plain-http requests and
    clients with HTTP/2 disabled are passed through untouched.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport, http2: bool):
        self._transport = transport
        self._http2 = http2

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self._http2 and request.url.scheme == "https":
            # The protocol is only known after ALPN, so this also applies when the
            # backend settles on HTTP/1.1; such connections stay pooled
            for name in CONNECTION_SPECIFIC_HEADERS:
                if name in request.headers:
                    del request.headers[name]
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()


def build_transport(policy: TransportPolicy) -> httpx.AsyncHTTPTransport:
    return httpx.AsyncHTTPTransport(
        verify=policy.verify_tls,
        http2=policy.http2,
        limits=httpx.Limits(
            max_connections=None,
            max_keepalive_connections=policy.keepalive_pool_size,
            keepalive_expiry=policy.idle_timeout,
        ),
        socket_options=keepalive_socket_options(policy.keepalive_interval),
    )


def build_client(
    policy: TransportPolicy, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Create the pooled client used for every backend call.

    Redirects are relayed to the caller instead of followed, proxy environment
    variables are ignored and backend cookies are never stored: the caller owns
    its cookies. Read and write timeouts are left to send_with_header_timeout
    and the body deadline.
    """
    return httpx.AsyncClient(
        transport=ConnectionHeaderFilter(
            transport or build_transport(policy), policy.http2
        ),
        timeout=httpx.Timeout(
            None, connect=policy.dial_timeout, pool=policy.dial_timeout
        ),
        follow_redirects=False,
        trust_env=False,
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
    )


async def _settle(task: "asyncio.Future") -> None:
    """Wait for a cancelled task and release whatever it still produced."""
    await asyncio.wait({task})
    if task.cancelled() or task.exception() is not None:
        return
    result = task.result()
    if isinstance(result, httpx.Response):
        await result.aclose()


async def send_with_header_timeout(
    client: httpx.AsyncClient,
    request: httpx.Request,
    timeout: Optional[float],
    disconnected: Optional[Awaitable] = None,
) -> httpx.Response:
    """
    Send ``request`` in streaming mode and wait for the response headers.

    Raises ResponseHeaderTimeout when no headers arrive within ``timeout``
    seconds, and CallerDisconnected when ``disconnected`` completes first.
    In both cases the in-flight call is cancelled and its connection released.
    Transport errors raised by httpx propagate unchanged.
    """
    send = asyncio.ensure_future(client.send(request, stream=True))
    waiters = {send}
    watcher = None
    if disconnected is not None:
        watcher = asyncio.ensure_future(disconnected)
        waiters.add(watcher)

    done = set()
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in waiters:
            if task not in done:
                task.cancel()

    if send in done:
        return send.result()

    await _settle(send)
    if watcher is not None and watcher in done:
        raise CallerDisconnected(
            f"caller disconnected before {request.method} {request.url} answered"
        )
    raise ResponseHeaderTimeout(
        f"timeout awaiting response headers after {timeout:g}s", request=request
    )
