import pytest

from forward_proxy.config import ProxyConfig
from forward_proxy.forwarding.rewrite import (
    build_target_url,
    matches_prefix,
    rewrite_path,
    strip_prefix,
)


@pytest.fixture
def config():
    return ProxyConfig(frontend_prefix="/api/", backend_url="https://example.com/v1/")


class TestStripPrefix:
    def test_prefix_removed(self):
        assert strip_prefix("/api/users", "/api/") == "users"

    def test_prefix_only_becomes_root(self):
        assert strip_prefix("/api/", "/api/") == "/"

    def test_outside_prefix_unchanged(self):
        assert strip_prefix("/static/app.js", "/api/") == "/static/app.js"


class TestRewritePath:
    def test_basic_path(self, config):
        assert rewrite_path("/api/users", config) == "/v1/users"

    def test_prefix_maps_to_backend_root(self, config):
        assert rewrite_path("/api/", config) == "/v1/"

    def test_nested_path(self, config):
        assert rewrite_path("/api/users/123/posts/456", config) == "/v1/users/123/posts/456"

    def test_trailing_slash_kept(self, config):
        assert rewrite_path("/api/users/", config) == "/v1/users/"

    def test_extra_leading_slashes_collapse(self, config):
        assert rewrite_path("/api///users", config) == "/v1/users"

    def test_path_outside_prefix_passes_through(self, config):
        assert rewrite_path("/health", config) == "/v1/health"
        # "/api" lacks the trailing slash of the prefix
        assert rewrite_path("/api", config) == "/v1/api"

    def test_backend_without_base_path(self):
        config = ProxyConfig(frontend_prefix="/api/", backend_url="http://backend:9000")
        assert rewrite_path("/api/users", config) == "/users"
        assert rewrite_path("/api/", config) == "/"

    @pytest.mark.parametrize("remainder", ["users", "a/b/c", "x.json", "with%20space"])
    def test_rewrite_is_base_path_plus_remainder(self, config, remainder):
        path = config.frontend_prefix + remainder
        rewritten = rewrite_path(path, config)
        assert rewritten == config.backend_path + remainder
        assert "//" not in rewritten

    def test_rewriting_normalized_paths_is_stable(self):
        # Backend base path equal to the prefix: rewriting is the identity
        config = ProxyConfig(frontend_prefix="/v1/", backend_url="https://example.com/v1/")
        once = rewrite_path("/v1/users", config)
        assert once == "/v1/users"
        assert rewrite_path(once, config) == once


class TestBuildTargetUrl:
    def test_with_query(self, config):
        assert (
            build_target_url("/api/users", "x=1", config)
            == "https://example.com/v1/users?x=1"
        )

    def test_without_query(self, config):
        assert build_target_url("/api/", "", config) == "https://example.com/v1/"

    def test_query_kept_verbatim(self, config):
        url = build_target_url("/api/search", "q=hello%20world&tag=foo%2Fbar&q=2", config)
        assert url == "https://example.com/v1/search?q=hello%20world&tag=foo%2Fbar&q=2"


def test_matches_prefix(config):
    assert matches_prefix("/api/users", config)
    assert matches_prefix("/api/", config)
    assert not matches_prefix("/api", config)
    assert not matches_prefix("/other/api/", config)
