"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., POLL_INTERVAL_MS env var → Settings.POLL_INTERVAL_MS)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Entry points (api/main.py, worker/main.py) read `settings` and pass the values
into the store, ticker, executor and trigger service as constructor arguments.
Nothing below the entry points reads the singleton directly, so tests can build
components with their own values.
"""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Store ───────────────────────────────────────────────────
    DATABASE_PATH: str = "data/jobs.sqlite"
    STALE_RUNNING_MINUTES: int = Field(default=0, ge=0)   # running rows older than this are reset on startup; 0 = all

    # ── Scheduler ticker ────────────────────────────────────────
    POLL_INTERVAL_MS: int = Field(default=5000, gt=0)
    BATCH_LIMIT: int = Field(default=20, gt=0)         # due jobs fetched per tick
    MAX_CONCURRENT_JOBS: int = Field(default=4, gt=0)  # global in-flight ceiling
    RUN_SCHEDULER_IN_API: bool = True                  # embed the ticker in the API process

    # ── Retry / backoff ─────────────────────────────────────────
    MAX_ATTEMPTS: int = Field(default=5, ge=1)
    BACKOFF_BASE_SECONDS: float = Field(default=30.0, gt=0)
    BACKOFF_MULTIPLIER: float = Field(default=2.0, ge=1.0)
    BACKOFF_CAP_SECONDS: float = Field(default=3600.0, gt=0)
    BACKOFF_JITTER: float = Field(default=0.2, ge=0.0, lt=1.0)  # ± fraction
    BACKOFF_MIN_SECONDS: float = Field(default=5.0, ge=0)

    # ── Dedup / cooldown ────────────────────────────────────────
    DEDUP_TOLERANCE_MS: int = Field(default=60_000, ge=0)
    COOLDOWN_MINUTES: int = Field(default=3, ge=0)

    # ── Business calendar ───────────────────────────────────────
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"
    PREHIRE_EXEC_HOUR: int = Field(default=14, ge=0, le=23)
    PREHIRE_EXEC_MINUTE: int = Field(default=45, ge=0, le=59)
    PREHIRE_OFFSET_DAYS: int = Field(default=5, ge=0)
    OFFBOARD_EXEC_HOUR: int = Field(default=14, ge=0, le=23)
    OFFBOARD_EXEC_MINUTE: int = Field(default=20, ge=0, le=59)
    QUICK_FALLBACK_MINUTES: int = Field(default=2, ge=0)

    # ── Directory (Microsoft Graph) ─────────────────────────────
    DIRECTORY_TENANT_ID: str = ""
    DIRECTORY_CLIENT_ID: str = ""
    DIRECTORY_CLIENT_SECRET: str = ""
    DIRECTORY_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    DIRECTORY_DEFAULT_DOMAIN: str = "example.com"
    DIRECTORY_TEMP_PASSWORD: str = "ChangeMe-123!"

    # ── HR (Zoho People) ────────────────────────────────────────
    HR_BASE_URL: str = "https://people.zoho.com/people/api"
    HR_TOKEN_URL: str = "https://accounts.zoho.com/oauth/v2/token"
    HR_CLIENT_ID: str = ""
    HR_CLIENT_SECRET: str = ""
    HR_REFRESH_TOKEN: str = ""
    HR_FORM_NAME: str = "Candidate"
    HR_OFFICIAL_EMAIL_FIELD: str = "Other_Email"
    HR_BUSINESS_ID_FIELD: str = "Employee_ID"
    PROVISIONAL_EMAIL_UPDATE: bool = False

    HTTP_TIMEOUT_SECONDS: float = 15.0
    HTTP_RETRY_ATTEMPTS: int = Field(default=3, ge=1)        # per call, first try included
    HTTP_RETRY_BASE_SECONDS: float = Field(default=0.3, ge=0)
    HTTP_RETRY_MAX_SECONDS: float = Field(default=5.0, ge=0)

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(milliseconds=self.POLL_INTERVAL_MS)

    @property
    def dedup_tolerance(self) -> timedelta:
        return timedelta(milliseconds=self.DEDUP_TOLERANCE_MS)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.COOLDOWN_MINUTES)

    @property
    def quick_fallback(self) -> timedelta:
        return timedelta(minutes=self.QUICK_FALLBACK_MINUTES)

    @property
    def stale_running_after(self) -> timedelta:
        return timedelta(minutes=self.STALE_RUNNING_MINUTES)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import this at process entry points only
settings = Settings()
