# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metric objects for the registration service.
Imported by services and middleware. Never instantiated in controllers.
"""
from prometheus_client import Counter, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "gamejam_requests_total",
    "Total HTTP requests to the registration service",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "gamejam_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.05, 0.1, 0.5, 1, 5, 15, 60, 300, 1800],
)
HTTP_ERRORS = Counter(
    "gamejam_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
REGISTRATIONS_TOTAL = Counter(
    "gamejam_registrations_total",
    "Registration attempts by outcome",
    ["outcome"],
)
REGISTRATIONS_REJECTED = Counter(
    "gamejam_registrations_rejected_total",
    "Rejected registrations by error kind",
    ["kind"],
)
ARCHIVE_VALIDATION_FAILURES = Counter(
    "gamejam_archive_validation_failures_total",
    "Archives rejected by the content check",
    ["reason"],
)
UPLOAD_BYTES = Histogram(
    "gamejam_upload_size_bytes",
    "Size of archives streamed to disk",
    buckets=[1024 ** 2, 10 * 1024 ** 2, 100 * 1024 ** 2, 512 * 1024 ** 2,
             1024 ** 3, 2 * 1024 ** 3, 3 * 1024 ** 3],
)
