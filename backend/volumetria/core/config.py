"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "volumetria_user"
    POSTGRES_PASSWORD: str = "volumetria_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "volumetria_db"

    # Full SQLAlchemy URL that replaces the Postgres one (tests, local sqlite)
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Sync URL for Alembic migrations (psycopg2)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE.replace("+aiosqlite", "").replace("+asyncpg", "")
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ── Pipeline ──────────────────────────────
    PIPELINE_CHUNK_SIZE: int = 500
    STAGING_INSERT_BATCH_SIZE: int = 1000

    # ── Watchdog / retention ──────────────────
    WATCHDOG_SOFT_STUCK_MINUTES: int = 10
    WATCHDOG_HARD_STUCK_MINUTES: int = 120
    REJECTED_RETENTION_DAYS: int = 180

    # ── Exclusion rules ───────────────────────
    EXCLUSION_REALIZATION_RULE_ENABLED: bool = True   # v003
    EXCLUSION_REPORT_RULE_ENABLED: bool = True        # v002
    CURRENT_PERIOD_FILTER_ENABLED: bool = False       # v031, non-retroactive channels

    # ── Clients never billed ──────────────────
    EXCLUDED_CLIENT_NAMES: list[str] = Field(
        default_factory=lambda: ["CLINICA SERCOR", "INMED", "MEDICINA OCUPACIONAL"]
    )
    EXCLUDED_CLIENT_PATTERNS: list[str] = Field(default_factory=lambda: ["TESTE"])

    # ── Closed vocabularies ───────────────────
    VALID_MODALITIES: list[str] = Field(
        default_factory=lambda: ["CT", "DO", "MG", "MR", "RX", "US", "NM", "PT", "XA", "RF"]
    )
    VALID_SPECIALTIES: list[str] = Field(
        default_factory=lambda: [
            "CARDIO",
            "D.O",
            "MAMA",
            "MAMO",
            "MEDICINA INTERNA",
            "MUSCULO ESQUELETICO",
            "NEURO",
            "PEDIATRIA",
            "ONCO",
            "RX",
            "TC",
            "RM",
            "US",
        ]
    )
    VALID_CATEGORIES: list[str] = Field(
        default_factory=lambda: ["SC", "CC", "ONCO", "ANGIO", "PED"]
    )
    VALID_PRIORITIES: list[str] = Field(
        default_factory=lambda: ["ROTINA", "URGENTE", "PLANTÃO"]
    )

    # ── Billing type (NC clients) ─────────────
    NC_BILLED_SPECIALTIES: list[str] = Field(default_factory=lambda: ["CARDIO"])
    NC_BILLED_DESCRIPTIONS: list[str] = Field(
        default_factory=lambda: ["ANGIOTC VENOSA TORAX CARDIOLOGIA", "RM CRANIO NEUROBRAIN"]
    )

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
