"""Application settings using Pydantic Settings"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    SESSION_SECRET_KEY: str = "change-me-in-production"

    CSV_MAX_UPLOAD_MB: int = 10
    IMPORT_SAMPLE_ROWS: int = 5
    IMPORT_PARENT_MATCH_LIMIT: int = 5
    IMPORT_WIZARD_TTL_MINUTES: int = 60

    SCHEDULER_ENABLED: bool = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = ["dev", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "prod"

    @property
    def csv_max_upload_bytes(self) -> int:
        return self.CSV_MAX_UPLOAD_MB * 1024 * 1024

    def validate_secrets_for_production(self) -> None:
        if self.is_production and self.SESSION_SECRET_KEY == "change-me-in-production":
            raise ValueError("SESSION_SECRET_KEY must be set to a secure value in production")

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
