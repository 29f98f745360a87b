"""
Configuration Management for Household Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every sub-settings class has its own env prefix so a deployment can
override the database without touching engine behaviour and vice versa.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational storage configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DB_",
        extra="ignore"
    )
    
    url: str = Field(
        default="sqlite:///household_ledger.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )
    connect_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made when first connecting to the database"
    )
    
    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """A URL without a dialect separator cannot be handed to SQLAlchemy."""
        if "://" not in v:
            raise ValueError(f"Invalid database URL: {v}")
        return v


class EngineSettings(BaseSettings):
    """Obligation engine configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_ENGINE_",
        extra="ignore"
    )
    
    # The well-known category every generated rent obligation is filed under
    rent_category_name: str = Field(
        default="租金",
        min_length=1,
        description="Name of the rent category"
    )
    rent_category_type: str = Field(
        default="project",
        pattern="^(project|household)$",
        description="Type of the rent category"
    )
    updated_marker: str = Field(
        default="(已更新)",
        description="Marker appended to notes of amount-patched obligations"
    )
    max_billing_months: int = Field(
        default=1200,
        ge=1,
        description="Upper bound on billing months materialized for one contract"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.
    
    Loads configuration from environment variables and .env file.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.
    
    Aggregates all sub-settings for easy access.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Sub-settings are loaded lazily to allow partial configuration
    
    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()
    
    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()
    
    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).
    
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.
    
    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}
    
    settings = get_settings()
    
    for name in ("database", "engine", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
