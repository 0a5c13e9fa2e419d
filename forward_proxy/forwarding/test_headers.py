from forward_proxy.forwarding.headers import (
    FORWARDING_HEADERS,
    sanitize_headers,
    strip_hop_by_hop,
)

BACKEND_HOST = "example.com"


def _names(headers):
    return [name.lower() for name, _ in headers]


class TestSanitizeHeaders:
    def test_basic_headers_forwarded(self):
        inbound = [
            (b"user-agent", b"test-agent"),
            (b"accept", b"application/json"),
            (b"authorization", b"Bearer token123"),
        ]
        result = sanitize_headers(inbound, BACKEND_HOST)
        for header in inbound:
            assert header in result

    def test_forwarding_headers_removed(self):
        inbound = [
            (b"X-Forwarded-Host", b"frontend.example"),
            (b"x-real-ip", b"10.0.0.1"),
            (b"X-Forwarded-For", b"10.0.0.1, 10.0.0.2"),
            (b"x-forwarded-for", b"10.0.0.3"),
            (b"X-Forwarded-Proto", b"https"),
            (b"accept", b"*/*"),
        ]
        result = sanitize_headers(inbound, BACKEND_HOST)
        assert not FORWARDING_HEADERS.intersection(_names(result))
        assert (b"accept", b"*/*") in result

    def test_forwarding_headers_not_regenerated(self):
        result = sanitize_headers([(b"accept", b"*/*")], BACKEND_HOST)
        assert not FORWARDING_HEADERS.intersection(_names(result))
        assert b"x-forwarded-prefix" not in _names(result)

    def test_cookies_forwarded_byte_identical_in_order(self):
        inbound = [
            (b"cookie", b"session=abc123; theme=dark"),
            (b"accept", b"*/*"),
            (b"cookie", b"tracking=\"quoted value\"; empty="),
        ]
        result = sanitize_headers(inbound, BACKEND_HOST)
        cookies = [value for name, value in result if name == b"cookie"]
        assert cookies == [b"session=abc123; theme=dark", b"tracking=\"quoted value\"; empty="]

    def test_multi_valued_headers_keep_order(self):
        inbound = [(b"accept", b"text/html"), (b"x-custom", b"1"), (b"accept", b"application/json")]
        result = sanitize_headers(inbound, BACKEND_HOST)
        assert [v for n, v in result if n == b"accept"] == [b"text/html", b"application/json"]

    def test_host_replaced_by_backend_host(self):
        result = sanitize_headers([(b"host", b"proxy.example.com")], "example.com:8443")
        assert [v for n, v in result if n == b"host"] == [b"example.com:8443"]

    def test_connection_forced_to_close(self):
        inbound = [(b"connection", b"keep-alive"), (b"Connection", b"Upgrade")]
        result = sanitize_headers(inbound, BACKEND_HOST)
        assert [v for n, v in result if n.lower() == b"connection"] == [b"close"]

    def test_connection_close_set_without_inbound_value(self):
        result = sanitize_headers([], BACKEND_HOST)
        assert (b"connection", b"close") in result

    def test_input_not_mutated(self):
        inbound = [(b"host", b"proxy"), (b"x-real-ip", b"1.2.3.4")]
        snapshot = list(inbound)
        sanitize_headers(inbound, BACKEND_HOST)
        assert inbound == snapshot


class TestStripHopByHop:
    def test_hop_by_hop_removed(self):
        raw = [
            (b"Connection", b"keep-alive"),
            (b"Keep-Alive", b"timeout=5"),
            (b"Transfer-Encoding", b"chunked"),
            (b"Content-Type", b"text/plain"),
        ]
        assert strip_hop_by_hop(raw) == [(b"content-type", b"text/plain")]

    def test_headers_named_by_connection_removed(self):
        raw = [(b"connection", b"close, X-Internal"), (b"x-internal", b"1"), (b"x-public", b"2")]
        assert strip_hop_by_hop(raw) == [(b"x-public", b"2")]

    def test_set_cookie_values_and_order_kept(self):
        raw = [
            (b"Set-Cookie", b"a=1; Path=/; HttpOnly"),
            (b"Content-Length", b"2"),
            (b"Set-Cookie", b"b=2; Expires=Wed, 21 Oct 2026 07:28:00 GMT"),
        ]
        result = strip_hop_by_hop(raw)
        assert [v for n, v in result if n == b"set-cookie"] == [
            b"a=1; Path=/; HttpOnly",
            b"b=2; Expires=Wed, 21 Oct 2026 07:28:00 GMT",
        ]
        assert (b"content-length", b"2") in result
