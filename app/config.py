"""Application configuration management using Pydantic Settings.

This module loads and validates environment variables using Pydantic Settings.
All configuration is loaded from environment variables or a .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy connection string
        database_pool_size: Number of connections to maintain in pool
        database_max_overflow: Maximum overflow connections beyond pool_size
        environment: Application environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        forms_dir: Directory of YAML form definitions imported at startup
        git_commit_sha: Git commit SHA reported by the service
        admin_api_token: Bearer token required by the form administration API
        google_client_id: OAuth client ID that identity tokens must be issued for
        identity_timeout_seconds: Upper bound on fetching Google signing certificates
        smtp_host: SMTP server for submission receipts (receipts off when unset)
        smtp_port: SMTP server port
        smtp_user: SMTP login
        smtp_password: SMTP password
        smtp_from: Sender address for submission receipts
        smtp_use_ssl: Use implicit TLS instead of STARTTLS
        mail_from_name: Display name used as the receipt sender
        strict_response_limit: Enforce max_responses with a conditional increment
        allowed_origins: List of allowed CORS origins
    """

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./easy_forms.db",
        description="SQLAlchemy connection string"
    )
    database_pool_size: int = Field(
        default=5,
        description="Number of database connections in pool"
    )
    database_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool size"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    forms_dir: str = Field(
        default="./forms",
        description="Path to YAML form definitions"
    )
    git_commit_sha: str = Field(
        default="local",
        description="Git commit SHA for versioning"
    )

    # Security Configuration
    admin_api_token: str = Field(
        description="Bearer token for the form administration API"
    )
    google_client_id: Optional[str] = Field(
        default=None,
        description="Google OAuth client ID (audience of identity tokens)"
    )
    identity_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for fetching Google signing certificates"
    )

    # Mail Configuration
    smtp_host: Optional[str] = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_user: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_from: Optional[str] = Field(default=None, description="Receipt sender address")
    smtp_use_ssl: bool = Field(default=False, description="Use SMTP over implicit TLS")
    mail_from_name: str = Field(default="Easy Forms", description="Receipt sender name")

    # Submission Configuration
    strict_response_limit: bool = Field(
        default=True,
        description="Reject submissions beyond max_responses atomically"
    )

    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("admin_api_token")
    @classmethod
    def validate_admin_token(cls, v: str) -> str:
        """Reject trivially short admin tokens."""
        if len(v.strip()) < 16:
            raise ValueError("Admin API token must be at least 16 characters")
        return v.strip()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed_origins string into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def smtp_configured(self) -> bool:
        """Check whether enough SMTP settings exist to send mail."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Note:
        Uses lru_cache to ensure settings are only loaded once
        and shared across the application.
    """
    return Settings()
