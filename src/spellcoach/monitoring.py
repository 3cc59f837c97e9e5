"""Prometheus metrics for the spelling engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Attempt metrics
attempts_recorded = Counter(
    "spellcoach_attempts_recorded_total",
    "Spelling attempts processed by the mastery tracker",
    ["outcome"],
)

attempt_duration = Histogram(
    "spellcoach_attempt_duration_seconds",
    "Time the learner took to type a word",
    buckets=[1, 3, 5, 10, 20, 60],
)

words_introduced = Counter(
    "spellcoach_words_introduced_total",
    "Waiting words that entered rotation",
    ["mode"],
)

# Session metrics
sessions_started = Counter(
    "spellcoach_sessions_started_total",
    "Practice sessions built successfully",
)

sessions_declined = Counter(
    "spellcoach_sessions_declined_total",
    "Practice sessions declined for lack of words",
)

session_size = Histogram(
    "spellcoach_session_size_words",
    "Number of words selected for a session",
    buckets=[1, 5, 8, 10, 15, 20, 30],
)

# Word bank metrics
words_added = Counter(
    "spellcoach_words_added_total",
    "Word add requests by outcome",
    ["outcome"],
)

error_patterns_detected = Counter(
    "spellcoach_error_patterns_total",
    "Error patterns detected in incorrect attempts",
    ["pattern"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
