"""Prometheus collectors shared by the middleware and services"""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "chat_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "chat_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
REALTIME_CONNECTIONS = Gauge("chat_realtime_connections", "Open realtime connections")
MESSAGES_SENT = Counter("chat_messages_sent_total", "Messages persisted")
TOKEN_ROTATIONS = Counter("chat_token_rotations_total", "Successful refresh token rotations")
