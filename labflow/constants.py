DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_PAUSE_MS = 1000

DEFAULT_SWEEP_INTERVAL_SECONDS = 300

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT_MS = 60_000

# Steps still processing after this long are treated as orphaned.
DEFAULT_STALE_AFTER_MINUTES = 30
DEFAULT_RETENTION_DAYS = 14

DEFAULT_MEETING_TYPE = "DAILY_STANDUP"
