"""
Configuration management for the Agentic Relay.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BotConfig(BaseSettings):
    """Bot Framework configuration settings."""

    model_config = SettingsConfigDict(env_prefix="BOT_", env_file=".env", extra="ignore")

    app_id: str = ""
    app_password: str = ""
    tenant_id: str = ""
    app_type: str = "MultiTenant"
    oauth_connection_name: str = ""

    # Attribute names expected by ConfigurationBotFrameworkAuthentication
    @property
    def APP_ID(self) -> str:
        return self.app_id

    @property
    def APP_PASSWORD(self) -> str:
        return self.app_password

    @property
    def APP_TYPE(self) -> str:
        return self.app_type

    @property
    def APP_TENANTID(self) -> str:
        return self.tenant_id


class CopilotStudioConfig(BaseSettings):
    """Copilot Studio agent connection settings."""

    model_config = SettingsConfigDict(env_prefix="COPILOT_", env_file=".env", extra="ignore")

    direct_connect_url: Optional[str] = None
    environment_id: Optional[str] = None
    schema_name: Optional[str] = None
    api_host: str = "api.powerplatform.com"
    api_version: str = "2022-03-01-preview"
    scope: str = "https://api.powerplatform.com/.default"
    timeout_seconds: float = Field(120.0, gt=0)
    max_fragments: int = Field(500, gt=0)

    @model_validator(mode="after")
    def _check_connection(self):
        if not self.direct_connect_url and not (self.environment_id and self.schema_name):
            raise ValueError(
                "either direct_connect_url or both environment_id and schema_name must be set"
            )
        return self


class StorageConfig(BaseSettings):
    """Conversation session storage settings."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", env_file=".env", extra="ignore")

    backend: str = "memory"
    connection_string: Optional[str] = None
    container_name: str = "relay-sessions"


class ServerConfig(BaseSettings):
    """HTTP listener settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_", env_file=".env", extra="ignore")

    host: str = "localhost"
    port: int = 3978


class MonitoringConfig(BaseSettings):
    """Monitoring and logging configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")


class Config(BaseSettings):
    """Main configuration class that combines all settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    bot: BotConfig = Field(default_factory=BotConfig)
    copilot: CopilotStudioConfig = Field(default_factory=CopilotStudioConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load the process-wide configuration once."""
    return Config()
