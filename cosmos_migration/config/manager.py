"""
Configuration Management Framework
Settings file (JSON/YAML) plus environment overrides, validated into typed models
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.database import DatabaseConfig
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "appsettings.json"


class EndpointSettings(BaseModel):
    """Connection descriptor of one endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    connection_string: str = Field("", alias="ConnectionString", description="Account connection string")
    database_name: str = Field("", alias="DatabaseName", description="Database holding the containers")


class CosmosDbSettings(BaseModel):
    """Source and destination endpoints plus client retry policy"""
    model_config = ConfigDict(populate_by_name=True)

    source: EndpointSettings = Field(default_factory=EndpointSettings, alias="Source")
    destination: EndpointSettings = Field(default_factory=EndpointSettings, alias="Destination")
    max_retry_attempts: int = Field(9, ge=0, alias="MaxRetryAttemptsOnRateLimitedRequests",
                                    description="Retries of throttled requests before a write fails")
    max_retry_wait_seconds: int = Field(30, ge=0, alias="MaxRetryWaitTimeOnRateLimitedRequests",
                                        description="Maximum total backoff for throttled requests")


class MigrationSettings(BaseModel):
    """Behaviour of the migration run"""
    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(100, gt=0, alias="BatchSize", description="Progress is reported every N documents")
    dry_run: bool = Field(False, alias="DryRun", description="Read and validate without writing")
    show_detailed_errors: bool = Field(True, alias="ShowDetailedErrors")
    max_errors_to_display: int = Field(10, ge=0, alias="MaxErrorsToDisplay")
    page_size: int = Field(1000, gt=0, alias="PageSize", description="Documents fetched per source page")


class AppSettings(BaseModel):
    """Root of the settings file"""
    model_config = ConfigDict(populate_by_name=True)

    cosmos_db: CosmosDbSettings = Field(default_factory=CosmosDbSettings, alias="CosmosDb")
    migration_settings: MigrationSettings = Field(default_factory=MigrationSettings, alias="MigrationSettings")
    log_level: str = Field("INFO", alias="LogLevel")


@dataclass(frozen=True)
class ResolvedEndpoints:
    """Effective endpoints after defaulting the destination to the source"""
    source: EndpointSettings
    destination: EndpointSettings
    same_account: bool
    same_database: bool


def resolve_endpoints(settings: CosmosDbSettings) -> ResolvedEndpoints:
    """Fill empty destination descriptors from the source and compare the two"""
    source = settings.source
    destination = EndpointSettings(
        connection_string=settings.destination.connection_string.strip() or source.connection_string,
        database_name=settings.destination.database_name.strip() or source.database_name,
    )
    same_account = source.connection_string == destination.connection_string
    same_database = same_account and source.database_name == destination.database_name
    return ResolvedEndpoints(source=source, destination=destination,
                             same_account=same_account, same_database=same_database)


def account_name(connection_string: str) -> str:
    """Account label from a connection string, e.g. 'myaccount' for https://myaccount.documents.azure.com"""
    try:
        if connection_string.lower().startswith("mongodb"):
            host = urlparse(connection_string).hostname
        else:
            endpoint = next(
                (part.split("=", 1)[1] for part in connection_string.split(";")
                 if part.lower().startswith("accountendpoint=")),
                None,
            )
            host = urlparse(endpoint).hostname if endpoint else None
        if host:
            return host.split(".")[0]
    except ValueError:
        pass
    return "Unknown"


def build_database_config(endpoint: EndpointSettings, settings: CosmosDbSettings) -> DatabaseConfig:
    return DatabaseConfig(
        connection_string=endpoint.connection_string,
        max_retry_attempts=settings.max_retry_attempts,
        max_retry_wait_seconds=settings.max_retry_wait_seconds,
    )


# Environment variable suffix -> (section path, key alias)
ENVIRONMENT_OVERRIDES = {
    "SOURCE_CONNECTION_STRING": (("CosmosDb", "Source"), "ConnectionString"),
    "SOURCE_DATABASE_NAME": (("CosmosDb", "Source"), "DatabaseName"),
    "DESTINATION_CONNECTION_STRING": (("CosmosDb", "Destination"), "ConnectionString"),
    "DESTINATION_DATABASE_NAME": (("CosmosDb", "Destination"), "DatabaseName"),
    "MAX_RETRY_ATTEMPTS": (("CosmosDb",), "MaxRetryAttemptsOnRateLimitedRequests"),
    "MAX_RETRY_WAIT_SECONDS": (("CosmosDb",), "MaxRetryWaitTimeOnRateLimitedRequests"),
    "BATCH_SIZE": (("MigrationSettings",), "BatchSize"),
    "DRY_RUN": (("MigrationSettings",), "DryRun"),
    "SHOW_DETAILED_ERRORS": (("MigrationSettings",), "ShowDetailedErrors"),
    "MAX_ERRORS_TO_DISPLAY": (("MigrationSettings",), "MaxErrorsToDisplay"),
    "PAGE_SIZE": (("MigrationSettings",), "PageSize"),
    "LOG_LEVEL": ((), "LogLevel"),
}


class ConfigManager:
    """
    Configuration manager with support for:
    - Environment variables (.env_local, .env, config.env)
    - Configuration files (JSON/YAML)
    - Validation
    - Defaulting the destination endpoint to the source
    """

    def __init__(self, config_prefix: str = "MIGRATION", load_env_files: bool = True):
        self.config_prefix = config_prefix
        self.settings: Optional[AppSettings] = None
        if load_env_files:
            self._load_environment_variables()

    def _load_environment_variables(self):
        """Load environment variables from .env files"""
        env_files = ['.env_local', '.env', 'config.env']
        for env_file in env_files:
            if Path(env_file).exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment variables from {env_file}")
                break

    def load_config(self, config_file: Optional[str] = DEFAULT_CONFIG_FILE) -> AppSettings:
        """Load settings from file and environment variables"""
        config_data: Dict[str, Any] = {}

        if config_file:
            if Path(config_file).exists():
                config_data = self._load_config_file(config_file)
                logger.info(f"Loaded settings from {config_file}")
            else:
                logger.warning(f"Settings file {config_file} not found; using environment variables only")

        self._apply_environment(config_data)

        try:
            settings = AppSettings.model_validate(config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        self.settings = self._validate_config(settings)
        return self.settings

    def _load_config_file(self, config_file: str) -> Dict[str, Any]:
        """Load configuration from a JSON or YAML file"""
        file_path = Path(config_file)

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() == '.json':
                    data = json.load(f)
                elif file_path.suffix.lower() in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                else:
                    raise ConfigurationError(f"Unsupported configuration file format: {file_path.suffix}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not parse {config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping at the top level")
        return data

    def _apply_environment(self, config_data: Dict[str, Any]):
        """Overlay PREFIX_* environment variables onto the file data"""
        for suffix, (section_path, key) in ENVIRONMENT_OVERRIDES.items():
            value = os.getenv(f"{self.config_prefix}_{suffix}")
            if value is None:
                continue
            section = config_data
            for name in section_path:
                section = section.setdefault(name, {})
            section[key] = value

    def _validate_config(self, settings: AppSettings) -> AppSettings:
        """Check required fields and default the destination to the source"""
        errors = []
        source = settings.cosmos_db.source

        if not source.connection_string.strip():
            errors.append("CosmosDb:Source:ConnectionString is missing")
        if not source.database_name.strip():
            errors.append("CosmosDb:Source:DatabaseName is missing")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        endpoints = resolve_endpoints(settings.cosmos_db)
        cosmos_db = settings.cosmos_db.model_copy(update={"destination": endpoints.destination})
        return settings.model_copy(update={"cosmos_db": cosmos_db})

    def get_config(self) -> AppSettings:
        """Get current settings"""
        if self.settings is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self.settings
