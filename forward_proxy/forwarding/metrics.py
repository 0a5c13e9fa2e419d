from prometheus_client import Counter, Info

from forward_proxy.vars import SERVICE_NAME

TRANSPORT_ERRORS_TOTAL = Counter(
    "forward_proxy_transport_errors_total",
    "Backend communication failures by category",
    ["category"],
)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def record_transport_error(category: str) -> None:
    TRANSPORT_ERRORS_TOTAL.labels(category=category).inc()
