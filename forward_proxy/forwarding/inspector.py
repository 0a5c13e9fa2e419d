import logging
from typing import Optional

import httpx
from opentelemetry.trace import Span

logger = logging.getLogger("uvicorn.error")

# Response headers worth recording for every relayed response
HEADERS_OF_INTEREST = (
    "Content-Type",
    "Content-Length",
    "Cache-Control",
    "Access-Control-Allow-Origin",
)


def status_line(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}".strip()


def inspect_response(response: httpx.Response, span: Optional[Span] = None) -> None:
    """
    Log what the backend sent before the body is relayed.

    Read-only: status, headers and body reach the caller exactly as received.
    """
    logger.info(f"[Response] Response received: {status_line(response)}")

    cookies = response.headers.get_list("set-cookie")
    if cookies:
        logger.info(f"[Response] Found {len(cookies)} Set-Cookie headers")
        for i, cookie in enumerate(cookies):
            logger.info(f"[Response] Set-Cookie[{i}]: {cookie}")

    for header in HEADERS_OF_INTEREST:
        for value in response.headers.get_list(header):
            logger.info(f"[Response] Response Header {header}: {value}")

    if span is not None:
        span.set_attribute("proxy.status_code", response.status_code)
        span.set_attribute("proxy.http_version", response.http_version)
        span.set_attribute("proxy.set_cookie_count", len(cookies))
