from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from forward_proxy.config import ProxyConfig


def matches_prefix(path: str, config: "ProxyConfig") -> bool:
    return path.startswith(config.frontend_prefix)


def strip_prefix(path: str, prefix: str) -> str:
    """Remove the frontend prefix. Paths outside the prefix are returned unchanged."""
    if path.startswith(prefix):
        path = path[len(prefix):]
        if not path:
            path = "/"
    return path


def rewrite_path(path: str, config: "ProxyConfig") -> str:
    """
    Map an inbound path onto the backend base path.

    ``/api/users`` with prefix ``/api/`` and backend ``https://host/v1/``
    becomes ``/v1/users``; the prefix itself becomes the backend root ``/v1/``.
    """
    remainder = strip_prefix(path, config.frontend_prefix)
    # backend_path always ends with "/", so the remainder must not start with one
    return config.backend_path + remainder.lstrip("/")


def build_target_url(path: str, query: str, config: "ProxyConfig") -> str:
    """Construct the backend URL, keeping the raw query string untouched."""
    url = config.backend_origin + rewrite_path(path, config)
    if query:
        url = f"{url}?{query}"
    return url
