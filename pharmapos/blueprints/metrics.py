"""
Prometheus metrics for the POS.

Request latency/volume is collected by app-level hooks; sales and stock
counters are incremented by the orders, medicines and purchase order
blueprints. GET /metrics exposes everything in the text format and is meant
for the internal network only.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import (
    Counter, Histogram, Gauge, CollectorRegistry, REGISTRY, CONTENT_TYPE_LATEST,
    generate_latest, multiprocess
)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _register_in = None
else:
    registry = REGISTRY
    _register_in = REGISTRY

# Requests
http_requests_total = Counter(
    'http_requests_total', 'Total HTTP requests',
    ['method', 'endpoint', 'http_status'], registry=_register_in
)
http_request_duration_seconds = Histogram(
    'http_request_duration_seconds', 'HTTP request latency in seconds',
    ['method', 'endpoint'], registry=_register_in,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)
http_requests_in_flight = Gauge(
    'http_requests_in_flight', 'Requests currently being processed',
    registry=_register_in, multiprocess_mode='livesum'
)

# Sales
orders_submitted_total = Counter(
    'pos_orders_submitted_total', 'Orders committed, by submission mode',
    ['mode'], registry=_register_in
)
order_submission_failures_total = Counter(
    'pos_order_submission_failures_total', 'Rejected or failed order submissions, by error type',
    ['reason'], registry=_register_in
)

# Stock
stock_adjustments_total = Counter(
    'pos_stock_adjustments_total', 'Manual stock adjustments, by operation',
    ['operation'], registry=_register_in
)
purchase_order_receipts_total = Counter(
    'pos_purchase_order_receipts_total', 'Goods receipts recorded against purchase orders, by resulting status',
    ['status'], registry=_register_in
)

_SKIPPED_ENDPOINTS = {'metrics.metrics', 'static'}


def setup_metrics_instrumentation(app):
    """Register request hooks on the app (called from create_app)."""

    @app.before_request
    def _start_timer():
        if request.endpoint in _SKIPPED_ENDPOINTS:
            return
        g._metrics_started = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def _record_request(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response
        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (no authentication)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
