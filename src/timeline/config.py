from pydantic_settings.main import SettingsConfigDict
from typing import Annotated
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Server settings
    server_host: str = Field(default="0.0.0.0", alias="SERVER_HOST")
    server_port: int = Field(default=3000, alias="PORT")

    # Storage
    database_url: str = Field(
        default="sqlite+pysqlite:///database.sqlite3", alias="DATABASE_URL"
    )

    # CORS settings, left empty for same-origin deployments
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default=[], alias="CORS_ALLOW_ORIGINS"
    )

    # Logging
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            origins = [origin.strip() for origin in v.strip("[]").split(",")]
            # Remove empty strings
            origins = [origin for origin in origins if origin]
            return origins
        return v

    # Timeline rules (these rarely change, so keeping as constants is fine)
    timeline_limit: int = 1000
    max_post_length: int = 50
    identity_cookie_max_age_days: int = 30

    @property
    def identity_cookie_max_age(self) -> int:
        """Derived setting for the identity cookie lifetime in seconds"""
        return self.identity_cookie_max_age_days * 24 * 60 * 60

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", frozen=True
    )
