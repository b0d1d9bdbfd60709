from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'facturo_user'
    POSTGRES_PASSWORD: str = 'facturo_pass'
    POSTGRES_DB: str = 'facturo_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # URL completa opcional (ej. sqlite:// para tests)
    DATABASE_URL: Optional[str] = None

    # JWT settings (los tokens los emite el servicio de autenticación)
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'

    # Pagination
    DEFAULT_PAGE_SIZE: int = 15
    MAX_PAGE_SIZE: int = 100

    # Reintentos ante conflictos de concurrencia
    NUMBER_ALLOCATION_MAX_RETRIES: int = 5
    LEDGER_MAX_RETRIES: int = 3

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
