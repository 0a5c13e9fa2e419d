from typing import Iterable, List, Tuple

RawHeaders = List[Tuple[bytes, bytes]]

# Client-identity headers that would confuse the backend. They are dropped
# and not regenerated.
FORWARDING_HEADERS = frozenset(
    {
        b"x-forwarded-host",
        b"x-real-ip",
        b"x-forwarded-for",
        b"x-forwarded-proto",
    }
)

# Hop-by-hop headers that should NOT be relayed (RFC 2616)
HOP_BY_HOP_HEADERS = frozenset(
    {
        b"connection",
        b"keep-alive",
        b"proxy-authenticate",
        b"proxy-authorization",
        b"te",
        b"trailers",
        b"transfer-encoding",
        b"upgrade",
    }
)


def sanitize_headers(raw_headers: Iterable[Tuple[bytes, bytes]], backend_host: str) -> RawHeaders:
    """
    Prepare the outbound header list.

    Every inbound header, cookies and repeated names included, is copied in
    order with its bytes untouched. The forwarding headers are removed,
    ``Host`` is replaced by the backend host and ``Connection: close`` is
    forced. The input is not modified.
    """
    headers: RawHeaders = [(b"host", backend_host.encode("idna"))]
    for name, value in raw_headers:
        name_lower = name.lower()
        if name_lower in FORWARDING_HEADERS or name_lower in (b"host", b"connection"):
            continue
        headers.append((name, value))
    headers.append((b"connection", b"close"))
    return headers


def strip_hop_by_hop(raw_headers: Iterable[Tuple[bytes, bytes]]) -> RawHeaders:
    """
    Drop connection-level headers from a backend response before relaying it.

    Headers named in the backend's ``Connection`` header are dropped as well.
    Names are lowercased; values and the order of repeated headers such as
    ``Set-Cookie`` are kept.
    """
    raw_headers = list(raw_headers)
    excluded = set(HOP_BY_HOP_HEADERS)
    for name, value in raw_headers:
        if name.lower() == b"connection":
            excluded.update(
                token.strip().lower() for token in value.split(b",") if token.strip()
            )
    return [
        (name.lower(), value)
        for name, value in raw_headers
        if name.lower() not in excluded
    ]
