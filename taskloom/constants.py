"""Default values shared across the engine."""

DEFAULT_TASK_TIMEOUT_MS = 30_000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 500
DEFAULT_HISTORY_SIZE = 10
DEFAULT_MAX_CONCURRENCY = 4

CONFIG_ENV_VAR = "TASKLOOM_CONFIG"
DEFAULT_CONFIG_FILE = "taskloom.yaml"
