import logging
from unittest.mock import patch

from fastapi.testclient import TestClient

from forward_proxy.config import ProxyConfig
from forward_proxy.forwarding.transport import TransportPolicy
from forward_proxy.server import create_app, main


def test_startup_summary_logged(make_client, proxy_config, caplog):
    caplog.set_level(logging.INFO, logger="uvicorn.error")

    with make_client(proxy_config):
        pass

    messages = [record.getMessage() for record in caplog.records]
    assert "[Startup] API Proxy Configuration:" in messages
    assert "[Startup]   Frontend API Prefix: /api/" in messages
    assert "[Startup]   Backend URL: https://example.com/v1/" in messages
    assert "[Startup]   Path mapping: /api/* -> https://example.com/v1/*" in messages
    assert any("certificate validation is disabled" in m for m in messages)


def test_client_lifecycle(make_client, proxy_config):
    client = make_client(proxy_config)
    with client:
        http_client = client.app.state.http_client
        assert not http_client.is_closed
    assert http_client.is_closed


def test_docs_routes_are_forwarded(client, backend):
    response = client.get("/docs")

    assert response.status_code == 200
    assert backend.requests[0].url.path == "/v1/docs"


def test_metrics_endpoint(make_client, proxy_config, backend):
    with patch("forward_proxy.server.METRICS_PATH", "/metrics"):
        client = make_client(proxy_config)
    with client:
        client.get("/api/users")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "forward_proxy_transport_errors_total" in response.text
    assert "fastapi_app_info" in response.text
    assert [r.url.path for r in backend.requests] == ["/v1/users"]


def test_production_policy_builds_real_transport():
    config = ProxyConfig(
        backend_url="https://example.com/",
        transport=TransportPolicy(verify_tls=True, http2=False),
    )
    with TestClient(create_app(config)) as client:
        assert client.app.state.http_client is not None


def test_main_runs_uvicorn_with_listen_address():
    with patch("forward_proxy.server.uvicorn.run") as run, patch(
        "forward_proxy.server.setup_tracing"
    ):
        main(["-backend", "https://example.com/v1", "-port", "127.0.0.1:9000"])

    kwargs = run.call_args[1]
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9000
    assert kwargs["log_level"] == "info"


def test_metrics_path_forwarded_when_not_configured(client, backend):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert backend.requests[0].url.path == "/v1/metrics"
