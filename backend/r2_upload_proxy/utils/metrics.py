"""
Prometheus metrics definitions for the upload proxy.
All metrics are registered here and can be imported by other modules.
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Upload metrics
# status: stored, rejected, read_failed, store_failed, canceled
uploads_total = Counter(
    'uploads_total',
    'Total upload attempts by outcome',
    ['status']
)

upload_bytes_total = Counter(
    'upload_bytes_total',
    'Total bytes written to object storage'
)

upload_store_duration_seconds = Histogram(
    'upload_store_duration_seconds',
    'Duration of the object storage put call in seconds',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)


def start_metrics_exporter(port: int, host: str = '127.0.0.1'):
    """
    Serve the default registry on http://<host>:<port>/metrics in a daemon thread.

    Runs on its own port so the upload surface stays a single endpoint.

    Returns:
        (server, thread) from prometheus_client; call server.shutdown() to stop
    """
    server, thread = start_http_server(port, addr=host)
    logger.info(f"Metrics exporter started on {host}:{server.server_address[1]}")
    return server, thread
