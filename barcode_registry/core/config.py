from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str | None = Field(default=None)
    PGUSER: str = Field(default="postgres")
    PGPASSWORD: str = Field(default="postgres")
    PGHOST: str = Field(default="db")
    PGPORT: int = Field(default=5432)
    PGDATABASE: str = Field(default="barcodes")
    DB_ECHO: bool = Field(default=False)
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    STORE_TIMEOUT_S: float = Field(default=5.0, gt=0)
    COUNTER_RECONCILE_INTERVAL_S: float = Field(default=0.0, ge=0)

    LOG_LEVEL: str = Field(default="INFO")
    API_CORS_ORIGINS: str = Field(default="http://localhost:8080,http://127.0.0.1:8080")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            "postgresql+asyncpg://"
            f"{self.PGUSER}:{self.PGPASSWORD}@"
            f"{self.PGHOST}:{self.PGPORT}/"
            f"{self.PGDATABASE}"
        )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.API_CORS_ORIGINS.split(",") if o.strip()]


def _load_settings() -> Settings:
    return Settings()


settings = _load_settings()
