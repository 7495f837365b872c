"""
Cosmos DB Hierarchical Partition Key Migration
Copies every document of a container into a container keyed by hierarchical partition keys
"""

__version__ = "1.0.0"

# Core components
from .core.database import (
    BaseDocumentStore,
    ContainerInfo,
    ContainerRef,
    CosmosMongoStore,
    CosmosNoSQLStore,
    DatabaseConfig,
    DatabaseType,
    EndpointConnections,
    ThroughputMode,
    create_document_store,
    open_endpoint_connections
)
from .core.documents import PartitionKeyPath, PartitionKeyValue, MissingField, resolve_partition_key
from .core.errors import (
    MigrationError,
    ConfigurationError,
    ConnectivityError,
    QueryError,
    DocumentWriteError,
    MigrationStateError,
    MigrationAbortedError
)

# Configuration management
from .config.manager import (
    ConfigManager,
    AppSettings,
    CosmosDbSettings,
    EndpointSettings,
    MigrationSettings,
    resolve_endpoints
)

# Migration
from .migrations.engine import MigrationCoordinator
from .migrations.preflight import PreflightValidator
from .migrations.reader import SourceReader
from .migrations.writer import DestinationWriter, WriteOutcome, WriteStatus

# Monitoring
from .monitoring.metrics import MigrationReport, PreflightReport, RunState
from .monitoring.reporters import MigrationReporter, LoggingReporter, ProgressBarReporter, CompositeReporter

# Selection and orchestration
from .selection import ContainerSelector, ConsoleSelector, StaticSelector
from .runner import MigrationRunner

__all__ = [
    # Core
    "BaseDocumentStore",
    "ContainerInfo",
    "ContainerRef",
    "CosmosMongoStore",
    "CosmosNoSQLStore",
    "DatabaseConfig",
    "DatabaseType",
    "EndpointConnections",
    "ThroughputMode",
    "create_document_store",
    "open_endpoint_connections",
    "PartitionKeyPath",
    "PartitionKeyValue",
    "MissingField",
    "resolve_partition_key",
    "MigrationError",
    "ConfigurationError",
    "ConnectivityError",
    "QueryError",
    "DocumentWriteError",
    "MigrationStateError",
    "MigrationAbortedError",

    # Configuration
    "ConfigManager",
    "AppSettings",
    "CosmosDbSettings",
    "EndpointSettings",
    "MigrationSettings",
    "resolve_endpoints",

    # Migration
    "MigrationCoordinator",
    "PreflightValidator",
    "SourceReader",
    "DestinationWriter",
    "WriteOutcome",
    "WriteStatus",

    # Monitoring
    "MigrationReport",
    "PreflightReport",
    "RunState",
    "MigrationReporter",
    "LoggingReporter",
    "ProgressBarReporter",
    "CompositeReporter",

    # Selection
    "ContainerSelector",
    "ConsoleSelector",
    "StaticSelector",
    "MigrationRunner"
]
