"""
Classification of backend-communication failures.

Only transport failures come through here. A backend that answers with an
error status is relayed as-is and never classified.
"""

import ssl
from enum import Enum
from typing import Tuple

import httpx

from forward_proxy.utils.exception_logging import describe_exception, exception_chain


class ErrorCategory(str, Enum):
    DIAL_TIMEOUT = "dial_timeout"
    DIAL_REFUSED = "dial_refused"
    TLS_FAILURE = "tls_failure"
    READ_TIMEOUT = "read_timeout"
    OTHER = "other"


STATUS_BY_CATEGORY = {
    ErrorCategory.DIAL_TIMEOUT: 504,
    ErrorCategory.READ_TIMEOUT: 504,
    ErrorCategory.DIAL_REFUSED: 503,
    ErrorCategory.TLS_FAILURE: 502,
    ErrorCategory.OTHER: 502,
}

STATUS_TEXT = {
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def categorize(exception: BaseException) -> ErrorCategory:
    """
    Map a transport failure onto an ErrorCategory.

    Typed httpx timeouts are recognized first. Everything else falls back to
    the description of the failure and its causes: anything mentioning
    "timeout" is a timeout, anything mentioning "connection refused" is a
    refused dial. Checks are case-insensitive and ordered, so a description
    containing both words counts as a timeout.
    """
    if isinstance(exception, (httpx.ConnectTimeout, httpx.PoolTimeout)):
        return ErrorCategory.DIAL_TIMEOUT
    if isinstance(exception, (httpx.TimeoutException, TimeoutError)):
        return ErrorCategory.READ_TIMEOUT

    description = describe_exception(exception).lower()
    if "timeout" in description:
        return ErrorCategory.READ_TIMEOUT

    chain = list(exception_chain(exception))
    if "connection refused" in description or any(
        isinstance(exc, ConnectionRefusedError) for exc in chain
    ):
        return ErrorCategory.DIAL_REFUSED
    if any(isinstance(exc, ssl.SSLError) for exc in chain):
        return ErrorCategory.TLS_FAILURE
    return ErrorCategory.OTHER


def classify(exception: BaseException) -> Tuple[ErrorCategory, int]:
    """Return the category of a transport failure and the status the caller gets."""
    category = categorize(exception)
    return category, STATUS_BY_CATEGORY[category]
