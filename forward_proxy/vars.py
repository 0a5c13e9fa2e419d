import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "forward-proxy")

PROXY_PREFIX = os.environ.get("PROXY_PREFIX", "/api/")
BACKEND_URL = os.environ.get(
    "BACKEND_URL", "https://chat-stage.sensetime.com/api/test-cancel/v0.0.1/"
)
PROXY_LISTEN = os.environ.get("PROXY_LISTEN", ":8080")

# Certificate validation is off unless explicitly enabled (non-production default)
PROXY_VERIFY_TLS = os.getenv("PROXY_VERIFY_TLS", "false").lower() == "true"
PROXY_HTTP2 = os.getenv("PROXY_HTTP2", "true").lower() == "true"
PROXY_REJECT_UNMATCHED = os.getenv("PROXY_REJECT_UNMATCHED", "false").lower() == "true"
PROXY_HEADER_TIMEOUT = float(os.getenv("PROXY_HEADER_TIMEOUT", "60"))
PROXY_BODY_TIMEOUT = float(os.getenv("PROXY_BODY_TIMEOUT", "0")) or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
METRICS_PATH = os.getenv("METRICS_PATH", "")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
