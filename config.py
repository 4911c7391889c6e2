"""Application settings, loaded from the environment and `.env`.

DB selection:
  - DATABASE_URL set and non-empty -> PostgreSQL
  - DATABASE_URL absent/empty -> SQLite (DB_SQLITE_PATH, default data/payouts.db)

Payout policy and bonus tiers are loaded from PAYOUT_* / BONUS_* variables;
BONUS_TIERS takes a JSON list of {"tier", "threshold", "bonus"} objects.
"""

import re
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _project_root() -> Path:
    """Project root. config.py lives at the top of the repository."""
    return Path(__file__).resolve().parent


def _ensure_env_loaded() -> None:
    """Load .env from the project root. Idempotent."""
    candidate: Path = _project_root() / ".env"
    if candidate.exists():
        load_dotenv(candidate, override=False)


_ensure_env_loaded()


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str | None = Field(
        default=None,
        description="PostgreSQL DSN; when set, uses Postgres.",
        validation_alias="DATABASE_URL",
    )
    sqlite_path: str | None = Field(default="data/payouts.db")
    pool_size: int = Field(default=5)
    pool_timeout: int = Field(default=30)
    pool_recycle: int = Field(default=1800)

    def _use_postgres(self) -> bool:
        return bool((self.database_url or "").strip())

    def _resolved_sqlite_path(self) -> Path:
        raw: str = (self.sqlite_path or "data/payouts.db").strip()
        path: Path = Path(raw)
        if not path.is_absolute():
            path = (_project_root() / path).resolve()
        return path

    def _redacted_postgres_dsn(self) -> str:
        url: str = (self.database_url or "").strip()
        return re.sub(r":([^:@]+)@", r":***@", url) if url else ""

    @property
    def url(self) -> str:
        if self._use_postgres():
            return (self.database_url or "").strip()
        path = self._resolved_sqlite_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{path.as_posix()}"

    def db_info_for_logging(self) -> str:
        if self._use_postgres():
            return f"PostgreSQL @ {self._redacted_postgres_dsn()}"
        return f"SQLite @ {self._resolved_sqlite_path().as_posix()}"


class PayoutPolicySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYOUT_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    eligibility_days: int = Field(default=15, gt=0)
    lock_days: int = Field(default=45, gt=0)
    default_minimum_payout: Decimal = Field(default=Decimal("25.00"), ge=0)
    default_payment_method: str = Field(default="BANK_TRANSFER")
    currency: str = Field(default="USD")

    @model_validator(mode="after")
    def _lock_after_eligibility(self) -> "PayoutPolicySettings":
        if self.lock_days <= self.eligibility_days:
            raise ValueError("lock_days must be greater than eligibility_days")
        return self


class BonusTierConfig(BaseModel):
    tier: int
    threshold: Decimal
    bonus: Decimal


def _default_bonus_tiers() -> list[BonusTierConfig]:
    return [
        BonusTierConfig(tier=0, threshold=Decimal("0"), bonus=Decimal("0")),
        BonusTierConfig(tier=1, threshold=Decimal("5000"), bonus=Decimal("50")),
        BonusTierConfig(tier=2, threshold=Decimal("10000"), bonus=Decimal("100")),
        BonusTierConfig(tier=3, threshold=Decimal("20000"), bonus=Decimal("200")),
        BonusTierConfig(tier=4, threshold=Decimal("30000"), bonus=Decimal("300")),
    ]


class BonusSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BONUS_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tiers: list[BonusTierConfig] = Field(default_factory=_default_bonus_tiers)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYOUTS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    policy: PayoutPolicySettings = Field(default_factory=PayoutPolicySettings)
    bonus: BonusSettings = Field(default_factory=BonusSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()
