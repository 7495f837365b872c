"""
Core Document Store Framework
Async Cosmos DB clients (NoSQL and MongoDB APIs) behind one store interface
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from azure.core.exceptions import AzureError
from azure.cosmos import PartitionKey, ThroughputProperties, exceptions as cosmos_exceptions
from azure.cosmos.aio import CosmosClient
from bson.errors import InvalidDocument
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from .documents import PartitionKeyPath, PartitionKeyValue, split_field_path, with_canonical_key_fields
from .errors import ConfigurationError, ConnectivityError, DocumentWriteError, QueryError

logger = logging.getLogger(__name__)

MONGO_THROTTLED_ERROR_CODE = 16500


class DatabaseType(Enum):
    """Supported Cosmos DB APIs"""
    COSMOS_NOSQL = "cosmos_nosql"
    COSMOS_MONGO = "cosmos_mongo"


class ThroughputMode(Enum):
    """Provisioning mode for newly created containers"""
    MANUAL = "manual"
    AUTOSCALE = "autoscale"


class UpsertStatus(Enum):
    """Outcome of an insert-or-replace write that did not fail"""
    UPSERTED = "upserted"
    CONFLICT = "conflict"


def detect_database_type(connection_string: str) -> DatabaseType:
    """Pick the API from the connection string format"""
    lowered = connection_string.strip().lower()
    if lowered.startswith("mongodb://") or lowered.startswith("mongodb+srv://"):
        return DatabaseType.COSMOS_MONGO
    if "accountendpoint=" in lowered:
        return DatabaseType.COSMOS_NOSQL
    raise ConfigurationError("Unrecognised connection string: expected 'AccountEndpoint=...' or 'mongodb://...'")


@dataclass
class DatabaseConfig:
    """Account-level connection configuration"""
    connection_string: str
    db_type: Optional[DatabaseType] = None
    max_retry_attempts: int = 9
    max_retry_wait_seconds: int = 30
    connect_timeout_ms: int = 20000
    socket_timeout_ms: int = 30000

    def __post_init__(self):
        if self.db_type is None:
            self.db_type = detect_database_type(self.connection_string)


@dataclass(frozen=True)
class ContainerRef:
    """Fully qualified container (collection) address"""
    database_name: str
    container_name: str

    def __str__(self) -> str:
        return f"{self.database_name}/{self.container_name}"


@dataclass
class QueryPage:
    """One page of a paginated query and its request charge"""
    documents: List[Dict[str, Any]]
    request_charge: float = 0.0


@dataclass
class ContainerInfo:
    """Listing entry for a container"""
    name: str
    partition_key_paths: List[str] = field(default_factory=list)
    document_count: int = 0

    @property
    def is_hierarchical(self) -> bool:
        return len(self.partition_key_paths) > 1


class BaseDocumentStore(ABC):
    """
    Abstract base class for document store operations

    Provides common functionality for:
    - Connection management
    - Paginated queries with request charge accounting
    - Partition key introspection
    - Idempotent writes classified as upserted/conflict/error
    - Count queries and container management
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.is_connected = False

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection; raises ConnectivityError"""

    @abstractmethod
    async def _close(self) -> None:
        pass

    async def close(self) -> None:
        """Release the connection (idempotent)"""
        if not self.is_connected:
            return
        await self._close()
        self.is_connected = False
        logger.info(f"Disconnected from {self.config.db_type.value}")

    @abstractmethod
    def query_pages(self, container: ContainerRef, page_size: int) -> AsyncIterator[QueryPage]:
        """Stream every document of a container, one page at a time"""

    @abstractmethod
    async def count_documents(self, container: ContainerRef) -> int:
        pass

    @abstractmethod
    async def count_missing_field(self, container: ContainerRef, field_path: str) -> int:
        """Count documents where the field is absent or null; raises QueryError"""

    @abstractmethod
    async def read_partition_key_paths(self, container: ContainerRef) -> PartitionKeyPath:
        pass

    @abstractmethod
    async def upsert_document(self, container: ContainerRef, document: Dict[str, Any],
                              partition_key: PartitionKeyValue) -> UpsertStatus:
        """Insert or replace one document; raises DocumentWriteError"""

    @abstractmethod
    async def container_exists(self, container: ContainerRef) -> bool:
        pass

    @abstractmethod
    async def list_containers(self, database_name: str) -> List[ContainerInfo]:
        pass

    @abstractmethod
    async def create_container(self, container: ContainerRef, partition_key: PartitionKeyPath,
                               throughput: ThroughputMode = ThroughputMode.AUTOSCALE) -> None:
        pass

    async def safe_count(self, container: ContainerRef) -> int:
        """Document count that degrades to 0 when the count query fails"""
        try:
            return await self.count_documents(container)
        except QueryError as e:
            logger.warning(f"Could not count documents in {container}: {e}")
            return 0


class RequestChargeRecorder:
    """
    response_hook for NoSQL queries

    A cross-partition page can take several backend requests; the hook sees
    each of them while last_response_headers only holds the final one.
    """

    def __init__(self, parse_charge):
        self.parse_charge = parse_charge
        self.total = 0.0
        self.calls = 0

    def __call__(self, headers, result):
        self.total += self.parse_charge(headers)
        self.calls += 1

    def take(self) -> float:
        """Charge recorded since the last take, then start over"""
        total = self.total
        self.reset()
        return total

    def reset(self):
        self.total = 0.0
        self.calls = 0


class CosmosNoSQLStore(BaseDocumentStore):
    """Cosmos DB NoSQL API store with hierarchical (MultiHash) partition keys"""

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self.client: Optional[CosmosClient] = None

    async def connect(self) -> None:
        try:
            logger.info(f"Connecting to {self.config.db_type.value}...")
            # Throttled (429) requests are retried by the SDK up to these bounds
            self.client = CosmosClient.from_connection_string(
                self.config.connection_string,
                retry_total=self.config.max_retry_attempts,
                retry_backoff_max=self.config.max_retry_wait_seconds,
                connection_timeout=max(1, self.config.connect_timeout_ms // 1000),
            )
            async for _ in self.client.list_databases(max_item_count=1):
                break
            self.is_connected = True
            logger.info(f"✅ Connected to {self.config.db_type.value}")
        except (AzureError, ValueError) as e:
            if self.client is not None:
                await self.client.close()
                self.client = None
            logger.error(f"❌ Failed to connect to {self.config.db_type.value}: {e}")
            raise ConnectivityError(f"Failed to connect to Cosmos DB: {e}") from e

    async def _close(self) -> None:
        await self.client.close()

    def _container(self, container: ContainerRef):
        if self.client is None:
            raise ConnectivityError("Store is not connected")
        return self.client.get_database_client(container.database_name).get_container_client(container.container_name)

    @staticmethod
    def _parse_charge(headers) -> float:
        try:
            return float((headers or {}).get("x-ms-request-charge", 0) or 0)
        except (TypeError, ValueError, AttributeError):
            return 0.0

    @classmethod
    def _request_charge(cls, container_client) -> float:
        return cls._parse_charge(container_client.client_connection.last_response_headers)

    @staticmethod
    def _field_reference(field_path: str) -> str:
        return "c" + "".join(f'["{part}"]' for part in split_field_path(field_path))

    async def _scalar_query(self, container: ContainerRef, query: str) -> int:
        container_client = self._container(container)
        try:
            async for value in container_client.query_items(query=query):
                return int(value)
            return 0
        except AzureError as e:
            raise QueryError(f"Query failed on {container}: {e}") from e

    async def query_pages(self, container: ContainerRef, page_size: int) -> AsyncIterator[QueryPage]:
        container_client = self._container(container)
        charges = RequestChargeRecorder(self._parse_charge)
        try:
            pager = container_client.query_items(
                query="SELECT * FROM c", max_item_count=page_size, response_hook=charges
            ).by_page()
            # query_items reports the previous response once before any page is fetched
            charges.reset()
            async for page in pager:
                documents = [document async for document in page]
                charge = charges.take() if charges.calls else self._request_charge(container_client)
                yield QueryPage(documents=documents, request_charge=charge)
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise QueryError(f"Query failed on {container}: {e.message}") from e
        except AzureError as e:
            raise ConnectivityError(f"Lost connection while reading {container}: {e}") from e

    async def count_documents(self, container: ContainerRef) -> int:
        return await self._scalar_query(container, "SELECT VALUE COUNT(1) FROM c")

    async def count_missing_field(self, container: ContainerRef, field_path: str) -> int:
        ref = self._field_reference(field_path)
        query = f"SELECT VALUE COUNT(1) FROM c WHERE NOT IS_DEFINED({ref}) OR IS_NULL({ref})"
        return await self._scalar_query(container, query)

    async def _read_properties(self, container: ContainerRef) -> Dict[str, Any]:
        try:
            return await self._container(container).read()
        except cosmos_exceptions.CosmosResourceNotFoundError as e:
            raise QueryError(f"Container {container} not found") from e
        except AzureError as e:
            raise QueryError(f"Could not read container {container}: {e}") from e

    async def read_partition_key_paths(self, container: ContainerRef) -> PartitionKeyPath:
        properties = await self._read_properties(container)
        return PartitionKeyPath(properties.get("partitionKey", {}).get("paths", []))

    async def upsert_document(self, container: ContainerRef, document: Dict[str, Any],
                              partition_key: PartitionKeyValue) -> UpsertStatus:
        # The SDK routes by the key read from the body
        body = with_canonical_key_fields(document, partition_key)
        try:
            await self._container(container).upsert_item(body=body)
            return UpsertStatus.UPSERTED
        except cosmos_exceptions.CosmosResourceExistsError:
            return UpsertStatus.CONFLICT
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise DocumentWriteError(e.message or str(e), status_code=e.status_code) from e
        except AzureError as e:
            raise DocumentWriteError(str(e)) from e
        except (TypeError, ValueError) as e:
            # Body could not be serialised to JSON
            raise DocumentWriteError(f"Invalid document: {e}") from e

    async def container_exists(self, container: ContainerRef) -> bool:
        try:
            await self._container(container).read()
            return True
        except cosmos_exceptions.CosmosResourceNotFoundError:
            return False
        except AzureError as e:
            raise QueryError(f"Could not read container {container}: {e}") from e

    async def list_containers(self, database_name: str) -> List[ContainerInfo]:
        if self.client is None:
            raise ConnectivityError("Store is not connected")
        database = self.client.get_database_client(database_name)
        containers = []
        try:
            async for properties in database.list_containers():
                name = properties["id"]
                count = await self.safe_count(ContainerRef(database_name, name))
                containers.append(ContainerInfo(
                    name=name,
                    partition_key_paths=list(properties.get("partitionKey", {}).get("paths", [])),
                    document_count=count,
                ))
        except AzureError as e:
            raise QueryError(f"Could not list containers of {database_name}: {e}") from e
        return containers

    async def create_container(self, container: ContainerRef, partition_key: PartitionKeyPath,
                               throughput: ThroughputMode = ThroughputMode.AUTOSCALE) -> None:
        if self.client is None:
            raise ConnectivityError("Store is not connected")
        paths = list(partition_key.paths)
        definition = PartitionKey(path=paths, kind="MultiHash") if partition_key.is_hierarchical else PartitionKey(path=paths[0])
        offer = 400 if throughput == ThroughputMode.MANUAL else ThroughputProperties(auto_scale_max_throughput=4000)
        try:
            await self.client.get_database_client(container.database_name).create_container(
                id=container.container_name,
                partition_key=definition,
                offer_throughput=offer,
            )
            logger.info(f"✅ Created container {container} with partition keys {paths}")
        except AzureError as e:
            raise QueryError(f"Could not create container {container}: {e}") from e


class CosmosMongoStore(BaseDocumentStore):
    """Cosmos DB for MongoDB API store (single shard key)"""

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self.client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> None:
        try:
            logger.info(f"Connecting to {self.config.db_type.value}...")
            self.client = AsyncIOMotorClient(
                self.config.connection_string,
                retryWrites=False,
                connectTimeoutMS=self.config.connect_timeout_ms,
                socketTimeoutMS=self.config.socket_timeout_ms,
                serverSelectionTimeoutMS=self.config.connect_timeout_ms,
            )
            await self.client.admin.command("ping")
            self.is_connected = True
            logger.info(f"✅ Connected to {self.config.db_type.value}")
        except PyMongoError as e:
            if self.client is not None:
                self.client.close()
                self.client = None
            logger.error(f"❌ Failed to connect to {self.config.db_type.value}: {e}")
            raise ConnectivityError(f"Failed to connect to Cosmos DB (MongoDB API): {e}") from e

    async def _close(self) -> None:
        self.client.close()

    def _database(self, database_name: str):
        if self.client is None:
            raise ConnectivityError("Store is not connected")
        return self.client[database_name]

    def _collection(self, container: ContainerRef):
        return self._database(container.database_name)[container.container_name]

    @staticmethod
    def _dotted(field_path: str) -> str:
        return ".".join(split_field_path(field_path))

    async def _last_request_charge(self, container: ContainerRef) -> float:
        """Request charge of the previous operation (Cosmos-only command)"""
        try:
            stats = await self._database(container.database_name).command("getLastRequestStatistics")
            return float(stats.get("RequestCharge", 0.0))
        except OperationFailure:
            return 0.0

    async def _retry_throttled(self, operation, *args, **kwargs):
        """Retry throttled requests with exponential backoff capped at the configured wait"""
        attempt = 0
        waited = 0.0
        while True:
            try:
                return await operation(*args, **kwargs)
            except OperationFailure as e:
                if e.code != MONGO_THROTTLED_ERROR_CODE or attempt >= self.config.max_retry_attempts:
                    raise
                delay = min(0.1 * (2 ** attempt), self.config.max_retry_wait_seconds - waited)
                if delay <= 0:
                    raise
                attempt += 1
                waited += delay
                logger.debug(f"Throttled, retry {attempt}/{self.config.max_retry_attempts} in {delay:.2f}s")
                await asyncio.sleep(delay)

    async def query_pages(self, container: ContainerRef, page_size: int) -> AsyncIterator[QueryPage]:
        collection = self._collection(container)
        try:
            cursor = collection.find({}, batch_size=page_size)
            while True:
                documents = await cursor.to_list(length=page_size)
                if not documents:
                    break
                yield QueryPage(documents=documents, request_charge=await self._last_request_charge(container))
        except OperationFailure as e:
            raise QueryError(f"Query failed on {container}: {e}") from e
        except PyMongoError as e:
            raise ConnectivityError(f"Lost connection while reading {container}: {e}") from e

    async def count_documents(self, container: ContainerRef) -> int:
        try:
            return await self._collection(container).count_documents({})
        except PyMongoError as e:
            raise QueryError(f"Count failed on {container}: {e}") from e

    async def count_missing_field(self, container: ContainerRef, field_path: str) -> int:
        # {field: None} matches both absent and null values
        try:
            return await self._collection(container).count_documents({self._dotted(field_path): None})
        except PyMongoError as e:
            raise QueryError(f"Count failed on {container}: {e}") from e

    async def _shard_key(self, container: ContainerRef) -> List[str]:
        try:
            result = await self._database(container.database_name).command(
                {"customAction": "GetCollection", "collection": container.container_name}
            )
            return list((result.get("shardKeyDefinition") or {}).keys())
        except OperationFailure:
            # Not a Cosmos endpoint; fall back to the sharding catalog
            entry = await self.client["config"]["collections"].find_one({"_id": f"{container.database_name}.{container.container_name}"})
            return list((entry or {}).get("key", {}).keys())

    async def read_partition_key_paths(self, container: ContainerRef) -> PartitionKeyPath:
        try:
            fields = await self._shard_key(container)
        except PyMongoError as e:
            raise QueryError(f"Could not read shard key of {container}: {e}") from e
        if not fields:
            logger.info(f"{container} is not sharded; documents are keyed by _id")
            fields = ["_id"]
        return PartitionKeyPath(["/" + name.replace(".", "/") for name in fields])

    @staticmethod
    def _identity_filter(document: Dict[str, Any], partition_key: PartitionKeyValue) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if "_id" in document:
            query["_id"] = document["_id"]
        elif "id" in document:
            query["id"] = document["id"]
        for matched, value in zip(partition_key.matched_paths, partition_key.raw_values):
            query[".".join(matched)] = value
        return query

    async def upsert_document(self, container: ContainerRef, document: Dict[str, Any],
                              partition_key: PartitionKeyValue) -> UpsertStatus:
        collection = self._collection(container)
        try:
            await self._retry_throttled(
                collection.replace_one, self._identity_filter(document, partition_key), document, upsert=True
            )
            return UpsertStatus.UPSERTED
        except DuplicateKeyError:
            return UpsertStatus.CONFLICT
        except OperationFailure as e:
            raise DocumentWriteError(str(e), status_code=e.code) from e
        except PyMongoError as e:
            raise DocumentWriteError(str(e)) from e
        except (InvalidDocument, ValueError) as e:
            # Rejected client-side before reaching the server
            raise DocumentWriteError(f"Invalid document: {e}") from e

    async def container_exists(self, container: ContainerRef) -> bool:
        try:
            names = await self._database(container.database_name).list_collection_names()
        except PyMongoError as e:
            raise QueryError(f"Could not list collections of {container.database_name}: {e}") from e
        return container.container_name in names

    async def list_containers(self, database_name: str) -> List[ContainerInfo]:
        try:
            names = await self._database(database_name).list_collection_names()
        except PyMongoError as e:
            raise QueryError(f"Could not list collections of {database_name}: {e}") from e

        containers = []
        for name in sorted(names):
            ref = ContainerRef(database_name, name)
            try:
                paths = list((await self.read_partition_key_paths(ref)).paths)
            except QueryError:
                paths = []
            containers.append(ContainerInfo(name=name, partition_key_paths=paths,
                                            document_count=await self.safe_count(ref)))
        return containers

    async def create_container(self, container: ContainerRef, partition_key: PartitionKeyPath,
                               throughput: ThroughputMode = ThroughputMode.AUTOSCALE) -> None:
        if partition_key.is_hierarchical:
            raise ConfigurationError("Hierarchical partition keys require the Cosmos DB NoSQL API")
        command: Dict[str, Any] = {
            "customAction": "CreateCollection",
            "collection": container.container_name,
            "shardKey": ".".join(partition_key.segments[0]),
        }
        if throughput == ThroughputMode.MANUAL:
            command["offerThroughput"] = 400
        else:
            command["autoScaleSettings"] = {"maxThroughput": 4000}
        try:
            await self._database(container.database_name).command(command)
            logger.info(f"✅ Created collection {container} with shard key {command['shardKey']}")
        except PyMongoError as e:
            raise QueryError(f"Could not create collection {container}: {e}") from e


def create_document_store(config: DatabaseConfig) -> BaseDocumentStore:
    """Factory function to create the appropriate store client"""
    if config.db_type == DatabaseType.COSMOS_NOSQL:
        return CosmosNoSQLStore(config)
    elif config.db_type == DatabaseType.COSMOS_MONGO:
        return CosmosMongoStore(config)
    else:
        raise ValueError(f"Unsupported database type: {config.db_type}")


class EndpointConnections:
    """
    Source and destination store handles for one run

    When both endpoints share an account the destination is an alias of the
    source handle. Only distinct handles are released, each exactly once.
    """

    def __init__(self, source: BaseDocumentStore, destination: Optional[BaseDocumentStore] = None):
        self.source = source
        self.destination = destination if destination is not None else source
        self._closed = False

    @property
    def shared(self) -> bool:
        return self.destination is self.source

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.source.close()
        if not self.shared:
            await self.destination.close()

    async def __aenter__(self) -> "EndpointConnections":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def open_endpoint_connections(source_config: DatabaseConfig, destination_config: Optional[DatabaseConfig] = None,
                                    store_factory=create_document_store) -> EndpointConnections:
    """Connect the source and, unless it is the same account, the destination"""
    start = time.time()
    source = store_factory(source_config)
    await source.connect()

    if destination_config is None or destination_config.connection_string == source_config.connection_string:
        logger.info("Destination uses the same account; reusing the source connection")
        return EndpointConnections(source)

    destination = store_factory(destination_config)
    try:
        await destination.connect()
    except ConnectivityError:
        await source.close()
        raise
    logger.debug(f"Connections opened in {time.time() - start:.2f}s")
    return EndpointConnections(source, destination)
