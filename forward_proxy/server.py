import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from forward_proxy.config import ProxyConfig, parse_args
from forward_proxy.forwarding.route import router
from forward_proxy.forwarding.transport import build_client
from forward_proxy.telemetry import instrument_app, setup_tracing
from forward_proxy.utils.log_sink import install_queue_sink
from forward_proxy.vars import METRICS_PATH, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


def log_startup_summary(config: ProxyConfig) -> None:
    policy = config.transport
    logger.info("[Startup] API Proxy Configuration:")
    logger.info(f"[Startup]   Frontend API Prefix: {config.frontend_prefix}")
    logger.info(f"[Startup]   Backend URL: {config.backend_url}")
    logger.info(f"[Startup]   Listen: {config.listen_address}")
    logger.info(
        f"[Startup]   Path mapping: {config.frontend_prefix}* -> {config.backend_url}*"
    )
    logger.info(
        f"[Startup]   TLS verification: {'on' if policy.verify_tls else 'off'}, "
        f"HTTP/2: {'on' if policy.http2 else 'off'}, "
        f"header timeout: {policy.response_header_timeout}s, "
        f"body timeout: {policy.body_timeout or 'none'}"
    )
    if not policy.verify_tls:
        logger.warning(
            "[Startup] Backend certificate validation is disabled; use --verify-tls in production"
        )
    if not config.reject_unmatched:
        logger.info(
            f"[Startup] Paths outside {config.frontend_prefix} are forwarded unchanged"
        )


def create_app(
    config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Build the forwarding application.

    ``transport`` replaces the network transport of the backend client, which
    lets tests stand in for the backend.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sink = install_queue_sink()
        log_startup_summary(config)
        app.state.http_client = build_client(config.transport, transport)
        try:
            yield
        finally:
            await app.state.http_client.aclose()
            sink.stop()

    # No docs routes: every path belongs to the backend
    app = FastAPI(
        title=SERVICE_NAME,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.proxy_config = config

    # Registered before the catch-all route, so the metrics path is never forwarded
    if METRICS_PATH:
        Instrumentator().instrument(app).expose(
            app, endpoint=METRICS_PATH, include_in_schema=False
        )
    app.include_router(router)
    instrument_app(app)
    return app


def main(argv: Optional[List[str]] = None) -> None:
    config = parse_args(argv)
    setup_tracing()
    app = create_app(config)
    uvicorn.run(
        app,
        host=config.listen_host,
        port=config.listen_port,
        log_level=config.log_level,
    )
