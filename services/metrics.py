"""
Prometheus Metrics Module
Version: 1.1.0

Counters for bookings, invoices, e-mail dispatch and store failures,
plus per-route request timings. Scraped from /metrics.

Usage:
    from services.metrics import BOOKINGS_CREATED, record_notification

    BOOKINGS_CREATED.labels(service_type="TOUR").inc()
    record_notification("NEW_BOOKING", sent=True)
"""
from prometheus_client import Counter, Histogram, Info, REGISTRY
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response


# =============================================================================
# APPLICATION INFO
# =============================================================================

APP_INFO = Info(
    'kreol_app',
    'Application information'
)


# =============================================================================
# REQUEST METRICS
# =============================================================================

REQUEST_DURATION = Histogram(
    'kreol_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_COUNT = Counter(
    'kreol_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)


# =============================================================================
# BOOKING METRICS
# =============================================================================

BOOKINGS_CREATED = Counter(
    'kreol_bookings_created_total',
    'Bookings created',
    ['service_type']
)

BOOKING_STATUS_CHANGES = Counter(
    'kreol_booking_status_changes_total',
    'Booking status transitions',
    ['status']
)


# =============================================================================
# FINANCE METRICS
# =============================================================================

INVOICES_CREATED = Counter(
    'kreol_invoices_created_total',
    'Invoices created',
    ['source']  # 'manual' or 'booking'
)

EXPENSE_REBILLS = Counter(
    'kreol_expense_rebills_total',
    'Expenses appended to an existing invoice'
)


# =============================================================================
# SIDE EFFECT / STORE METRICS
# =============================================================================

NOTIFICATIONS_TOTAL = Counter(
    'kreol_notifications_total',
    'Notification dispatch outcomes',
    ['kind', 'status']
)

STORE_ERRORS = Counter(
    'kreol_store_errors_total',
    'Data store failures',
    ['table', 'operation']
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metrics."""
    APP_INFO.info({
        'version': version,
        'environment': environment
    })


def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
    labels = dict(method=method, endpoint=endpoint, status_code=str(status_code))
    REQUEST_COUNT.labels(**labels).inc()
    REQUEST_DURATION.labels(**labels).observe(duration_seconds)


def record_notification(kind: str, sent: bool):
    NOTIFICATIONS_TOTAL.labels(kind=kind, status="sent" if sent else "failed").inc()


def record_store_error(table: str, operation: str):
    STORE_ERRORS.labels(table=table, operation=operation).inc()


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )
