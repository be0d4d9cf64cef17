from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "HTTP requests that ended in a server error",
    ["method", "path", "status"],
)

WEBHOOK_EVENTS = Counter(
    "polar_webhook_events_total",
    "Verified Polar webhook events by type and reconciliation outcome",
    ["event_type", "outcome"],
)
WEBHOOK_REJECTIONS = Counter(
    "polar_webhook_rejections_total",
    "Polar webhook deliveries rejected before reconciliation",
    ["reason"],
)
SYNC_RUNS = Counter(
    "polar_sync_runs_total",
    "Bulk Polar sync runs by type and final status",
    ["sync_type", "status"],
)
SYNC_RECORDS = Counter(
    "polar_sync_records_total",
    "Records handled by bulk Polar syncs",
    ["resource", "outcome"],
)
SYNC_DURATION = Histogram(
    "polar_sync_duration_seconds",
    "Wall-clock duration of bulk Polar syncs",
    ["sync_type"],
)
