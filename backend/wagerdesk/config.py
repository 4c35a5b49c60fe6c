"""
backend/wagerdesk/config.py

Purpose:
    Central settings loading for the wager coordination backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "wagerdesk"
    # Multi-document transactions need a replica set; disable for a standalone dev mongod.
    MONGO_TRANSACTIONS: bool = True
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Shared secret the platform bot sends as X-Platform-Key
    PLATFORM_API_KEY: str = ""

    # Outbound platform bridge (isolated spaces + notifications)
    PLATFORM_BRIDGE_URL: str = ""
    PLATFORM_BRIDGE_TOKEN: str = ""
    PLATFORM_CALL_TIMEOUT_SECONDS: float = 10.0
    PLATFORM_MAX_RETRIES: int = 2
    PLATFORM_RETRY_BASE_DELAY: float = 0.5
    PLATFORM_CIRCUIT_FAILURE_THRESHOLD: int = 3
    PLATFORM_CIRCUIT_RECOVERY_SECONDS: int = 60

    # Audit log
    AUDIT_RECENT_MAX_LIMIT: int = 50

    # Presentation drafts (panel state before publication)
    DRAFT_TTL_SECONDS: int = 900
    DRAFT_MAX_SURFACES: int = 25
    DRAFT_DEFAULT_CATEGORY: str = "2v2 MOBILE"
    DRAFT_DEFAULT_ACTION_LABEL: str = "Full"

    # Checkout recovery: re-derive pending checkouts from stored rosters
    CHECKOUT_RECONCILE_ENABLED: bool = True
    CHECKOUT_RECONCILE_INTERVAL_SECONDS: int = 60
    CHECKOUT_RECONCILE_BATCH_SIZE: int = 100

    # Event bus (in-process)
    EVENT_BUS_ENABLED: bool = True
    EVENT_BUS_INGRESS_QUEUE_MAXSIZE: int = 10000
    EVENT_BUS_HANDLER_QUEUE_MAXSIZE: int = 2000
    EVENT_BUS_HANDLER_DEFAULT_CONCURRENCY: int = 1
    EVENT_BUS_ERROR_BUFFER_SIZE: int = 200
    EVENT_HANDLER_CHECKOUT_ENABLED: bool = True
    EVENT_HANDLER_NOTIFY_ENABLED: bool = True

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
