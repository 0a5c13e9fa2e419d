"""
Helpers for turning transport failures into readable, never-raising log text.
"""

import logging
from typing import Iterator


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def exception_chain(exception: BaseException) -> Iterator[BaseException]:
    """
    Yield an exception followed by its causes (``__cause__`` or ``__context__``),
    descending into exception groups. Each exception is visited once.
    """
    seen = set()
    pending = [exception]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if hasattr(current, "exceptions"):
            pending.extend(_safe_get_exceptions(current))
        pending.append(current.__cause__ or current.__context__)


def describe_exception(exception: BaseException) -> str:
    """
    Describe a failure together with its underlying causes.

    httpx wraps socket and TLS errors, and several of its exceptions carry an
    empty message, so the class name of every link is included:
    ``ConnectError: [Errno 111] Connection refused <- ConnectionRefusedError: ...``

    Returns:
        A single-line description, never raising
    """
    parts = []
    try:
        for exc in exception_chain(exception):
            text = _safe_str(exc)
            name = type(exc).__name__
            parts.append(f"{name}: {text}" if text else name)
    except Exception:
        return _safe_str(exception)
    return " <- ".join(parts)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its cause chain and traceback.
    Logging failures are swallowed so that error paths never raise twice.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Classifier]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        logger.log(
            level,
            f"{prefix} Exception: {describe_exception(exception)}",
            exc_info=exception,
        )
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging details failed)")
        except Exception:
            pass
