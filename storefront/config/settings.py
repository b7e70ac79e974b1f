"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Every value has a development default so a topology can be synthesized locally;
production deployments must override the account and source repository.

Production Mode:
    When app_env="production", additional validations apply:
    - aws_account_id must be a 12-digit account id
    - source repository owner/name cannot be the template placeholders
    - debug must be False
"""

import re
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_OWNER = "your-github-username"
PLACEHOLDER_REPO = "your-repo-name"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # AWS account
    # -------------------------------------------------------------------------
    aws_region: str = Field(default="us-east-1", description="Region resources are provisioned in")
    aws_account_id: str = Field(
        default="000000000000",
        description="Account id used when deriving ARNs and registry URIs",
    )

    # -------------------------------------------------------------------------
    # Source repository (GitHub)
    # -------------------------------------------------------------------------
    source_repository_owner: str = Field(
        default=PLACEHOLDER_OWNER,
        description="Owner of the watched GitHub repository",
    )
    source_repository_name: str = Field(
        default=PLACEHOLDER_REPO,
        description="Name of the watched GitHub repository",
    )
    source_branch: str = Field(default="main", description="Branch whose changes trigger the pipeline")
    source_token_secret_name: str = Field(
        default="your-github-token",
        description="Secrets Manager entry holding the GitHub OAuth token",
    )
    source_token: SecretStr | None = Field(
        default=None,
        description="Resolved GitHub token, only needed when fetching source directly",
    )

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------
    build_image: str = Field(
        default="aws/codebuild/standard:5.0",
        description="Build environment image for the build project",
    )
    build_privileged: bool = Field(
        default=True,
        description="Run builds privileged (required for docker builds)",
    )

    # -------------------------------------------------------------------------
    # Stage timeouts
    # -------------------------------------------------------------------------
    source_stage_timeout_seconds: float = Field(
        default=300,
        description="Timeout for the Source stage in seconds (default 5 minutes)",
    )
    build_stage_timeout_seconds: float = Field(
        default=3600,
        description="Timeout for the Build stage in seconds (default 1 hour)",
    )
    deploy_stage_timeout_seconds: float = Field(
        default=1800,
        description="Timeout for the Deploy stage in seconds (default 30 minutes)",
    )

    # -------------------------------------------------------------------------
    # Container rollout
    # -------------------------------------------------------------------------
    rollout_poll_interval_seconds: float = Field(
        default=15.0,
        description="Delay between rollout status checks",
    )
    rollout_timeout_seconds: float = Field(
        default=1200.0,
        description="Give up waiting for a healthy rollout after this many seconds",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    def stage_timeout(self, stage: str) -> float:
        """Timeout in seconds for a pipeline stage by name."""
        return {
            "Source": self.source_stage_timeout_seconds,
            "Build": self.build_stage_timeout_seconds,
            "Deploy": self.deploy_stage_timeout_seconds,
        }[stage]

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are complete."""
        if self.app_env == "production":
            errors = []

            if not re.fullmatch(r"\d{12}", self.aws_account_id) or self.aws_account_id == "000000000000":
                errors.append("aws_account_id must be a real 12-digit account id in production")

            if self.source_repository_owner == PLACEHOLDER_OWNER:
                errors.append("source_repository_owner must be set in production")

            if self.source_repository_name == PLACEHOLDER_REPO:
                errors.append("source_repository_name must be set in production")

            if self.debug:
                errors.append("debug must be False in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
