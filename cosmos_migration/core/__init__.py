from .database import (
    BaseDocumentStore,
    ContainerInfo,
    ContainerRef,
    CosmosMongoStore,
    CosmosNoSQLStore,
    DatabaseConfig,
    DatabaseType,
    EndpointConnections,
    QueryPage,
    ThroughputMode,
    UpsertStatus,
    create_document_store,
    detect_database_type,
    open_endpoint_connections,
)
from .documents import (
    FieldLookup,
    MissingField,
    PartitionKeyPath,
    PartitionKeyValue,
    document_identity,
    lookup_field,
    resolve_partition_key,
    with_canonical_key_fields,
)
from .errors import (
    ConfigurationError,
    ConnectivityError,
    DocumentWriteError,
    MigrationAbortedError,
    MigrationError,
    MigrationStateError,
    QueryError,
)
