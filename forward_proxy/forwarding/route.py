import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.requests import ClientDisconnect

from forward_proxy.config import ProxyConfig
from forward_proxy.forwarding.errors import STATUS_TEXT, classify
from forward_proxy.forwarding.headers import sanitize_headers, strip_hop_by_hop
from forward_proxy.forwarding.inspector import inspect_response
from forward_proxy.forwarding.metrics import record_transport_error
from forward_proxy.forwarding.rewrite import (
    build_target_url,
    matches_prefix,
    rewrite_path,
    strip_prefix,
)
from forward_proxy.forwarding.transport import (
    CallerDisconnected,
    ResponseBodyTimeout,
    send_with_header_timeout,
)
from forward_proxy.utils.exception_logging import (
    describe_exception,
    log_exception_with_details,
)
from forward_proxy.utils.traced_requests import traced_request

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = [
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "PATCH",
    "OPTIONS",
    "TRACE",
    # WebDAV
    "PROPFIND",
    "PROPPATCH",
    "MKCOL",
    "COPY",
    "MOVE",
    "LOCK",
    "UNLOCK",
    "REPORT",
]

# nginx convention for "client closed request"; never reaches the caller
CLIENT_CLOSED_REQUEST = 499

DISCONNECT_POLL_INTERVAL = 0.25


def get_config(request: Request) -> ProxyConfig:
    return request.app.state.proxy_config


def get_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def _raw_path(request: Request) -> str:
    """The path as sent on the wire, so percent-escapes survive forwarding."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return request.url.path


def _has_body(request: Request) -> bool:
    if "transfer-encoding" in request.headers:
        return True
    content_length = request.headers.get("content-length", "")
    return content_length not in ("", "0")


class _BodyState:
    consumed = False


async def _stream_body(request: Request, state: _BodyState) -> AsyncIterator[bytes]:
    async for chunk in request.stream():
        if chunk:
            yield chunk
    state.consumed = True


async def _wait_for_disconnect(request: Request, state: _BodyState) -> None:
    # Polling only starts once the body is consumed, so it never steals body messages
    while True:
        if state.consumed and await request.is_disconnected():
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


def log_inbound_request(request: Request) -> None:
    """Log method, path, caller, every header pair and every cookie pair."""
    client = f"{request.client.host}:{request.client.port}" if request.client else "unknown"
    logger.info(
        f"[Proxy] Received request: {request.method} {request.url.path} from {client}"
    )

    logger.info("[Proxy] Request Headers:")
    for name, value in request.headers.items():
        logger.info(f"[Proxy]   {name}: {value}")

    if request.cookies:
        logger.info("[Proxy] Request Cookies:")
        for name, value in request.cookies.items():
            logger.info(f"[Proxy]   {name}: {value}")


async def relay_body(
    response: httpx.Response, body_timeout: Optional[float] = None
) -> AsyncIterator[bytes]:
    """
    Stream the backend body to the caller without decoding it.

    The backend response is closed when the body ends, when the caller goes
    away, or when the stream fails. Failures after the headers went out can
    no longer change the status, so they are logged and re-raised to abort
    the caller's connection.
    """
    chunks = response.aiter_raw()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + body_timeout if body_timeout else None
    try:
        while True:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                raise ResponseBodyTimeout(
                    f"timeout relaying response body after {body_timeout:g}s"
                )
            try:
                chunk = await asyncio.wait_for(chunks.__anext__(), remaining)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise ResponseBodyTimeout(
                    f"timeout relaying response body after {body_timeout:g}s"
                )
            yield chunk
    except (httpx.HTTPError, OSError) as e:
        category, _ = classify(e)
        record_transport_error(category.value)
        log_exception_with_details(
            logger, f"[Proxy] Body relay aborted ({category.value})", e
        )
        raise
    finally:
        await response.aclose()


async def forward_to_target(
    request: Request, config: ProxyConfig, client: httpx.AsyncClient
) -> Response:
    """
    Forward one request to the backend and relay the answer.

    The path is rewritten under the backend base path, headers are sanitized,
    the body is streamed, and transport failures are turned into 502/503/504.
    Backend error statuses are not failures and are relayed unchanged.
    """
    path = _raw_path(request)
    query = request.url.query

    if config.reject_unmatched and not matches_prefix(path, config):
        logger.warning(
            f"[Rewrite] Rejecting {request.method} {path}: outside {config.frontend_prefix}"
        )
        raise HTTPException(status_code=404, detail="Not Found")

    target_url = build_target_url(path, query, config)
    before = f"{path}?{query}" if query else path

    with traced_request(
        tracer,
        operation="proxy_request",
        start_message=f"[Rewrite] Proxying request: {request.method} {before} -> {target_url}",
        extra_attrs={"proxy.target_url": target_url, "proxy.method": request.method},
    ) as span:
        logger.info(
            f"[Rewrite] Path mapping: {strip_prefix(path, config.frontend_prefix)} -> {rewrite_path(path, config)}"
        )

        state = _BodyState()
        content = None
        if _has_body(request):
            content = _stream_body(request, state)
        else:
            state.consumed = True

        outbound = httpx.Request(
            request.method,
            target_url,
            headers=sanitize_headers(request.headers.raw, config.backend_host),
            content=content,
        )

        try:
            response = await send_with_header_timeout(
                client,
                outbound,
                config.transport.response_header_timeout,
                disconnected=_wait_for_disconnect(request, state),
            )
        except (CallerDisconnected, ClientDisconnect):
            logger.warning(
                f"[Proxy] Caller disconnected, aborted {request.method} {path}"
            )
            span.set_attribute("proxy.error", "caller_disconnected")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except Exception as e:
            category, status_code = classify(e)
            logger.error(
                f"[Proxy] Proxy error for {request.method} {path}: {describe_exception(e)}"
            )
            logger.info(
                f"[Classifier] {category.value} -> {status_code} {STATUS_TEXT[status_code]}"
            )
            span.set_attribute("proxy.error", category.value)
            record_transport_error(category.value)
            raise HTTPException(status_code=status_code, detail=STATUS_TEXT[status_code])

        inspect_response(response, span)

        relay = StreamingResponse(
            relay_body(response, config.transport.body_timeout),
            status_code=response.status_code,
        )
        relay.raw_headers = strip_hop_by_hop(response.headers.raw)
        return relay


# Register catch-all route for forwarding
@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(
    request: Request,
    path: str,
    config: ProxyConfig = Depends(get_config),
    client: httpx.AsyncClient = Depends(get_client),
):
    """Catch-all route that forwards every request to the backend."""
    log_inbound_request(request)
    return await forward_to_target(request, config, client)
