"""Prometheus metrics: request count by route/status, latency, submissions, rate-limit denials, references, mails."""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total requests",
    ["method", "path", "status_class"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
SUBMISSIONS_TOTAL = Counter(
    "public_submissions_total",
    "Accepted public form submissions",
    ["form"],
)
RATE_LIMIT_DENIED_TOTAL = Counter(
    "rate_limit_denied_total",
    "Requests rejected by the rate limiter",
    ["endpoint"],
)
RATE_LIMIT_FAIL_OPEN_TOTAL = Counter(
    "rate_limit_fail_open_total",
    "Rate-limit checks allowed because the tracking store failed",
    ["endpoint"],
)
REFERENCE_FALLBACK_TOTAL = Counter(
    "reference_fallback_total",
    "Reference codes synthesized locally because the generator failed",
    ["form_code"],
)
CONFIRMATION_EMAIL_TOTAL = Counter(
    "confirmation_email_total",
    "Confirmation e-mail attempts",
    ["result"],  # sent | failed | skipped
)

_UUID_SEGMENT = len("00000000-0000-0000-0000-000000000000")


def _status_class(status: int) -> str:
    if status < 200:
        return "1xx"
    if status < 300:
        return "2xx"
    if status < 400:
        return "3xx"
    if status < 500:
        return "4xx"
    return "5xx"


def _normalize_path(path: str) -> str:
    # Collapse ids to avoid high cardinality (e.g. /api/admin/newsletter/<uuid> -> /api/admin/newsletter/{id})
    parts = path.split("/")
    return "/".join("{id}" if len(p) == _UUID_SEGMENT and p.count("-") == 4 else p for p in parts)


def record_request(method: str, path: str, status_code: int, latency_seconds: float) -> None:
    path = _normalize_path(path or "/")
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path, status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(latency_seconds)


def record_submission(form: str) -> None:
    SUBMISSIONS_TOTAL.labels(form=form).inc()


def record_rate_limit_denied(endpoint: str) -> None:
    RATE_LIMIT_DENIED_TOTAL.labels(endpoint=endpoint).inc()


def record_rate_limit_fail_open(endpoint: str) -> None:
    RATE_LIMIT_FAIL_OPEN_TOTAL.labels(endpoint=endpoint).inc()


def record_reference_fallback(form_code: str) -> None:
    REFERENCE_FALLBACK_TOTAL.labels(form_code=form_code).inc()


def record_confirmation_email(result: str) -> None:
    CONFIRMATION_EMAIL_TOTAL.labels(result=result).inc()


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
