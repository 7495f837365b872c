from .manager import (
    AppSettings,
    ConfigManager,
    CosmosDbSettings,
    EndpointSettings,
    MigrationSettings,
    ResolvedEndpoints,
    account_name,
    build_database_config,
    resolve_endpoints,
)

__all__ = [
    "AppSettings",
    "ConfigManager",
    "CosmosDbSettings",
    "EndpointSettings",
    "MigrationSettings",
    "ResolvedEndpoints",
    "account_name",
    "build_database_config",
    "resolve_endpoints",
]
