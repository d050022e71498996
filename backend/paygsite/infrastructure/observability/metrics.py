from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUESTS_TOTAL = Counter(
    "total_requests",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY_SECONDS = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path"),
)
DB_QUERY_DURATION_SECONDS = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    labelnames=("operation",),
)
JOBS_CLAIMED_TOTAL = Counter(
    "jobs_claimed_total",
    "Number of jobs claimed by workers",
    labelnames=("job_type",),
)
JOBS_COMPLETED_TOTAL = Counter(
    "jobs_completed_total",
    "Number of jobs completed successfully",
    labelnames=("job_type",),
)
JOBS_FAILED_TOTAL = Counter(
    "jobs_failed_total",
    "Number of job attempts that failed and were rescheduled",
    labelnames=("job_type",),
)
JOBS_DEAD_LETTERED_TOTAL = Counter(
    "jobs_dead_lettered_total",
    "Number of jobs moved to the dead letter state",
    labelnames=("job_type",),
)
JOB_CLAIM_ERRORS_TOTAL = Counter(
    "job_claim_errors_total",
    "Number of claim attempts that failed with a store error",
)
JOB_DURATION_SECONDS = Histogram(
    "job_duration_seconds",
    "Handler execution time in seconds",
    labelnames=("job_type",),
)


def record_request(method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def observe_db_query(duration_seconds: float, operation: str = "sql") -> None:
    DB_QUERY_DURATION_SECONDS.labels(operation=operation).observe(duration_seconds)


def record_job_outcome(job_type: str, outcome: str, duration_seconds: float | None = None) -> None:
    if outcome == "completed":
        JOBS_COMPLETED_TOTAL.labels(job_type=job_type).inc()
    elif outcome == "dead":
        JOBS_DEAD_LETTERED_TOTAL.labels(job_type=job_type).inc()
    else:
        JOBS_FAILED_TOTAL.labels(job_type=job_type).inc()
    if duration_seconds is not None:
        JOB_DURATION_SECONDS.labels(job_type=job_type).observe(duration_seconds)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
