from decimal import Decimal
from typing import Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite+aiosqlite:///./feeledger.db", alias="DATABASE_URL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    academic_year: str = Field("2025-2026", alias="ACADEMIC_YEAR")
    # IANA zone for receipt timestamps and the "collected today" day boundary.
    timezone: str = Field("Asia/Kolkata", alias="TIMEZONE")

    # Used for any class without an explicit entry in CLASS_FEE_SCHEDULES or the DB.
    default_fee_schedule: Dict[str, Decimal] = Field(
        default_factory=lambda: {"tuition": Decimal("20000"), "materials": Decimal("6500")},
        alias="DEFAULT_FEE_SCHEDULE",
    )
    class_fee_schedules: Dict[str, Dict[str, Decimal]] = Field(
        default_factory=dict, alias="CLASS_FEE_SCHEDULES"
    )
    conveyance_billing_months: int = Field(10, alias="CONVEYANCE_BILLING_MONTHS")

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v!r}") from e
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
