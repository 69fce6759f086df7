"""Configuration settings for the Namespace Labeler controller."""

# Label that must be present on every namespace
MANAGED_BY_LABEL_KEY = "managed-by"
MANAGED_BY_LABEL_VALUE = "namespace-labeler"

# Watch settings
WATCH_TIMEOUT_SECONDS = 300
WATCH_RETRY_BASE_SECONDS = 1
WATCH_RETRY_MAX_SECONDS = 30

# How long to wait for the initial namespace list before giving up
CACHE_SYNC_TIMEOUT_SECONDS = 60
CACHE_SYNC_POLL_SECONDS = 0.1

# How often the event dispatcher re-checks the stop signal
EVENT_POLL_INTERVAL_SECONDS = 0.5

# Work queue retry settings (per-item exponential backoff)
RETRY_BASE_DELAY_SECONDS = 0.005
RETRY_MAX_DELAY_SECONDS = 1000

# Work queue overall rate limit (token bucket)
QUEUE_QPS = 10
QUEUE_BURST = 100

# Worker settings
DEFAULT_WORKERS = 1
