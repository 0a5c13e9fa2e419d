import httpx
import pytest
from fastapi.testclient import TestClient

from forward_proxy.config import ProxyConfig
from forward_proxy.forwarding.transport import TransportPolicy
from forward_proxy.server import create_app
from forward_proxy.utils_tests.mock_backend import RecordingBackend

TEST_BACKEND_URL = "https://example.com/v1/"


@pytest.fixture
def proxy_config():
    # HTTP/1.1 only, so outbound connection headers stay observable
    return ProxyConfig(
        frontend_prefix="/api/",
        backend_url=TEST_BACKEND_URL,
        listen_address=":8080",
        transport=TransportPolicy(http2=False),
    )


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def make_client(backend):
    """Build a TestClient for a config, with ``backend`` answering outbound calls."""

    def _make(config: ProxyConfig) -> TestClient:
        return TestClient(create_app(config, transport=httpx.MockTransport(backend)))

    return _make


@pytest.fixture
def client(make_client, proxy_config):
    with make_client(proxy_config) as test_client:
        yield test_client
