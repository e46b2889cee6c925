"""Monitoring configuration for the scheduler."""
from prometheus_client import Counter, Gauge, start_http_server

# Answer metrics
answers = Counter(
    "wordsrs_answers_total",
    "Total number of answers applied",
    ["grade", "phase"],
)

new_items_introduced = Counter(
    "wordsrs_new_items_introduced_total",
    "Total number of items moved out of the new phase",
)

graduations = Counter(
    "wordsrs_graduations_total",
    "Total number of items graduated from learning to review",
)

lapses = Counter(
    "wordsrs_lapses_total",
    "Total number of failed reviews",
)

# Queue metrics
due_queue_size = Gauge(
    "wordsrs_due_queue_size",
    "Length of the last computed due queue",
    ["mode"],
)

# Error metrics
error_count = Counter(
    "wordsrs_errors_total",
    "Total number of errors reported to callers",
    ["error_type"],
)

# Database metrics
db_errors = Counter(
    "wordsrs_db_errors_total",
    "Total number of database errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
