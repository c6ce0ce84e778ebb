"""Monitoring configuration for the review engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Review metrics
review_sessions_built = Counter(
    "vocabcore_review_sessions_built_total",
    "Total number of review sessions built",
)

review_questions_built = Counter(
    "vocabcore_review_questions_built_total",
    "Total number of review questions generated",
    ["question_type"],
)

degraded_distractors = Counter(
    "vocabcore_degraded_distractors_total",
    "Number of multiple choice questions filled with placeholder distractors",
)

answers_submitted = Counter(
    "vocabcore_answers_submitted_total",
    "Total number of answers evaluated",
    ["question_type", "outcome"],
)

attempts_finalized = Counter(
    "vocabcore_attempts_finalized_total",
    "Total number of review attempts finalized",
)

# Progress metrics
box_transitions = Counter(
    "vocabcore_box_transitions_total",
    "Leitner box transitions applied to word progress",
    ["outcome"],
)

# Flashcard session metrics
flashcard_sessions = Counter(
    "vocabcore_flashcard_sessions_total",
    "Flashcard sessions by lifecycle event",
    ["event"],
)

session_duration = Histogram(
    "vocabcore_session_duration_seconds",
    "Duration of review attempts and flashcard sessions in seconds",
    ["kind"],
    buckets=[60, 300, 600, 1080, 1800, 3600],  # 1min .. 1hour
)

# Database metrics
db_errors = Counter(
    "vocabcore_db_errors_total",
    "Total number of database errors",
    ["operation_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
