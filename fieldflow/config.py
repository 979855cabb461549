import os

# Environment
ENV: str = os.getenv("FIELDFLOW_ENV", "dev")
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///fieldflow.db")
DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"

# Feature toggles
ENABLE_PROMETHEUS: bool = os.getenv("ENABLE_PROMETHEUS", "true").lower() == "true"
ENABLE_OTEL: bool = os.getenv("ENABLE_OTEL", "false").lower() == "true"

# OpenTelemetry exporter endpoint
OTEL_EXPORTER_ENDPOINT: str = os.getenv(
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "http://localhost:4318/v1/traces",
)

# Entity tables live in the "master" schema on PostgreSQL; SQLite has no schemas.
ENTITY_SCHEMA: str = os.getenv("ENTITY_SCHEMA", "")

# Queue / worker
WORKER_POLL_INTERVAL: float = float(os.getenv("WORKER_POLL_INTERVAL", "1.0"))
WORKER_CONCURRENCY: int = int(os.getenv("WORKER_CONCURRENCY", "3"))
WORKER_FETCH_LIMIT: int = int(os.getenv("WORKER_FETCH_LIMIT", "100"))
NUM_WORKFLOW_WORKERS: int = int(os.getenv("NUM_WORKFLOW_WORKERS", "1"))
JOB_MAX_ATTEMPTS: int = int(os.getenv("JOB_MAX_ATTEMPTS", "3"))
JOB_BACKOFF_SECONDS: float = float(os.getenv("JOB_BACKOFF_SECONDS", "1.0"))
METRICS_PORT: int = int(os.getenv("METRICS_PORT", "8001"))

# A lock older than this is considered abandoned by a crashed worker.
INSTANCE_LOCK_TTL_SECONDS: int = int(os.getenv("INSTANCE_LOCK_TTL_SECONDS", "300"))

# A claimed job not finished within this window is handed to another worker.
JOB_VISIBILITY_TIMEOUT_SECONDS: int = int(os.getenv("JOB_VISIBILITY_TIMEOUT_SECONDS", "600"))
