"""Network configuration constants for the progress sync endpoint."""

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8000
EVENT_SYNC_PATH: str = "/api/progress/events/sync"
SYNC_TIMEOUT_SECONDS: float = 10.0
