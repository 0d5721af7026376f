# backend/mesflow/core/settings.py
"""
MesFlow - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from datetime import time
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/mesflow/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"

CHILD_NUMBERING_MODES = ("prefix_count", "per_parent_counter")


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "MesFlow"
    VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="mesflow", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    # ===================
    # Scheduling
    # ===================
    WORKDAY_START: time = Field(default=time(8, 0), description="Work cell window opens")
    WORKDAY_END: time = Field(default=time(17, 0), description="Work cell window closes")
    WORKING_WEEKDAYS: List[int] = Field(
        default=[0, 1, 2, 3, 4], description="Weekday numbers (Mon=0) considered working days"
    )
    SCHEDULE_BUFFER_MINUTES: int = Field(
        default=5, ge=0, description="Gap chained between consecutive scheduled steps"
    )
    SLOT_SEARCH_HORIZON_DAYS: int = Field(
        default=30, ge=1, description="Days searched before a slot request gives up"
    )
    DEFAULT_HOURS_PER_DAY: int = Field(
        default=8, ge=1, description="Working hours per day for lead time estimates"
    )
    LOCK_TIMEOUT_SECONDS: float = Field(
        default=30, gt=0, description="Wait for a work cell or order lock before giving up"
    )

    @field_validator("WORKING_WEEKDAYS", mode="before")
    @classmethod
    def parse_weekdays(cls, v):
        if isinstance(v, str):
            return [int(day.strip()) for day in v.split(",") if day.strip()]
        return v

    @field_validator("WORKING_WEEKDAYS")
    @classmethod
    def validate_weekdays(cls, v: List[int]) -> List[int]:
        if not v or any(day < 0 or day > 6 for day in v):
            raise ValueError("WORKING_WEEKDAYS must be a non-empty list of values 0-6")
        return sorted(set(v))

    # ===================
    # Routing Resolution
    # ===================
    ROUTING_CACHE_TTL_SECONDS: int = Field(
        default=3600, ge=0, description="Lifetime of resolved routing cache entries"
    )

    # ===================
    # Order Numbering
    # ===================
    CHILD_ORDER_NUMBERING: str = Field(
        default="prefix_count",
        description="prefix_count (count existing '{parent}-%' numbers) or per_parent_counter",
    )

    @field_validator("CHILD_ORDER_NUMBERING")
    @classmethod
    def validate_numbering(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CHILD_NUMBERING_MODES:
            raise ValueError(f"CHILD_ORDER_NUMBERING must be one of {CHILD_NUMBERING_MODES}")
        return v

    @model_validator(mode="after")
    def check_workday_window(self):
        """Working window must open before it closes."""
        if self.WORKDAY_END <= self.WORKDAY_START:
            raise ValueError("WORKDAY_END must be later than WORKDAY_START")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Module-level convenience alias
settings = get_settings()
