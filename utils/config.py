from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    jwt_secret: str = Field(default="your_jwt_secret_here", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    state_dir: str = Field(default="state", alias="STATE_DIR")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_backup_count: int = Field(default=7, alias="LOG_BACKUP_COUNT")

    max_upload_mb: int = Field(default=10, gt=0, alias="MAX_UPLOAD_MB")

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", alias="GEMINI_MODEL")
    gemini_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        alias="GEMINI_API_URL",
    )
    entity_max_chars: int = Field(default=10_000, alias="ENTITY_MAX_CHARS")

    s3_bucket: str = Field(default="deepsearch-documents", alias="S3_BUCKET")
    s3_prefix: str = Field(default="deepsearch_pdfs", alias="S3_PREFIX")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")

    cors_allow_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )

    @field_validator("gemini_api_key", "aws_access_key_id", "aws_secret_access_key", "s3_endpoint_url", mode="before")
    @classmethod
    def _blank_as_unset(cls, value):
        # Empty string counts as "not configured"
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read from the environment once."""
    return Settings()
