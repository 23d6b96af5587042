"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (or ``.env``) with
defaults that run the whole service in mock mode except for the media
tools. Mock modes enable local development without external services.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "ReelStore API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(default="", description="Snowflake account identifier")
    snowflake_user: str = Field(default="", description="Snowflake service account username")
    snowflake_password: str = Field(default="", description="Snowflake service account password")
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_private_key_base64: Optional[str] = Field(
        default=None,
        description="Base64-encoded private key (for deployment, alternative to file path)"
    )
    snowflake_database: str = Field(default="REELSTORE", description="Snowflake database name")
    snowflake_schema: str = Field(default="MEDIA", description="Snowflake schema name")
    snowflake_warehouse: str = Field(default="COMPUTE_WH", description="Snowflake warehouse")
    snowflake_role: Optional[str] = Field(default=None, description="Snowflake role to use (optional)")
    snowflake_mock_mode: bool = Field(
        default=True,
        description="Use in-memory mock instead of real Snowflake connection."
    )

    # R2/S3 Storage Configuration
    r2_account_id: str = Field(default="", description="Cloudflare account ID for R2")
    r2_access_key_id: str = Field(default="", description="R2/S3 access key ID")
    r2_secret_access_key: str = Field(default="", description="R2/S3 secret access key")
    r2_bucket_name: str = Field(default="reelstore-videos", description="Bucket for uploaded videos")
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="Storage endpoint URL. Auto-constructed from account_id if not provided."
    )
    r2_region: str = Field(default="auto", description="Region name passed to the S3 client")
    r2_addressing_style: str = Field(
        default="path",
        description="S3 addressing style: 'path' or 'virtual'"
    )
    r2_mock_mode: bool = Field(
        default=True,
        description="Use in-memory mock instead of real object storage."
    )

    # Media Tools
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary")
    ffprobe_path: str = Field(default="ffprobe", description="ffprobe binary")
    probe_timeout_seconds: float = Field(default=60.0, gt=0, description="Timeout for one ffprobe run")
    remux_timeout_seconds: float = Field(default=600.0, gt=0, description="Timeout for one ffmpeg remux")
    media_mock_mode: bool = Field(
        default=False,
        description="Use an in-process fake instead of ffmpeg/ffprobe."
    )

    # Upload Pipeline
    max_upload_bytes: int = Field(
        default=1 << 30,
        gt=0,
        description="Maximum accepted upload size (1 GiB). Larger bodies are rejected before buffering."
    )
    upload_temp_dir: Optional[str] = Field(
        default=None,
        description="Directory for buffered and remuxed temp files. System temp dir if unset."
    )
    exact_orientation: bool = Field(
        default=False,
        description=(
            "Classify orientation by exact 16:9 / 9:16 ratio instead of the "
            "integer-truncated width // height rule existing keys were built with."
        )
    )

    # Signed Access
    signed_url_expiry_seconds: int = Field(
        default=3600,
        gt=0,
        description="Lifetime of presigned video URLs."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def r2_endpoint(self) -> str:
        """
        Storage endpoint URL.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    def validate_required_fields(self) -> list[str]:
        """
        Return the names of required settings that are missing.

        Requirements depend on which backends are mocked, so this is
        separate from field validation.
        """
        missing = []

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            if not (
                self.snowflake_password
                or self.snowflake_private_key_path
                or self.snowflake_private_key_base64
            ):
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        if not self.r2_mock_mode:
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID or R2_ENDPOINT_URL")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
