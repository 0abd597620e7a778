from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    POSTGRES_DSN: str
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Rook aggregator API (sandbox by default; production is api.rook-connect.com)
    ROOK_API_BASE: str = "https://api.rook-connect.review"
    ROOK_CLIENT_UUID: str = ""
    ROOK_CLIENT_SECRET: str = ""
    ROOK_TIMEOUT_SECONDS: float = 5.0

    # In-process response caches (optimisation only)
    DASHBOARD_CACHE_TTL_SECONDS: float = 10.0
    WEEKLY_CACHE_TTL_SECONDS: float = 300.0
    CACHE_MAX_ENTRIES: int = 1024

    # Rook only serves 7 days of pre-existing data for API-based sources
    BACKFILL_WINDOW_DAYS: int = 7

    CHALLENGE_SYNC_URL: str | None = None
    CHALLENGE_SYNC_TIMEOUT_SECONDS: float = 5.0

    APP_BASE_URL: str = "http://localhost:3000"

    # Fingerprint of rows written by manual webhook tests
    TEST_SENTINEL_STEPS: int = 9999
    TEST_SENTINEL_CALORIES: int = 2999


settings = Settings()
