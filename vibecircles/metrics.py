import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

REQUESTS = Counter('vibecircles_http_requests_total', 'HTTP requests', ['method', 'route', 'status'])
LATENCY = Histogram('vibecircles_http_request_seconds', 'HTTP request latency', ['method', 'route'])


def init_metrics(port: int):
    """Start the Prometheus exporter; port 0 disables it."""
    if not port:
        return
    try:
        start_http_server(port)
        logger.info({'msg': 'metrics_server_started', 'port': port})
    except OSError as e:
        logger.warning({'msg': 'metrics_server_failed', 'port': port, 'error': str(e)})


def observe(method: str, route: str, status: int, elapsed: float):
    REQUESTS.labels(method, route, str(status)).inc()
    LATENCY.labels(method, route).observe(elapsed)
