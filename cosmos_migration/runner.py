"""
Migration Runner
End-to-end flow: connect, select containers, prepare the destination, preflight, confirm and migrate
"""
import asyncio
import logging
from typing import Optional

from .config.manager import AppSettings, ResolvedEndpoints, account_name, build_database_config, resolve_endpoints
from .core.database import (
    ContainerRef,
    EndpointConnections,
    create_document_store,
    open_endpoint_connections,
)
from .core.documents import PartitionKeyPath
from .core.errors import ConfigurationError
from .migrations.engine import MigrationCoordinator
from .migrations.preflight import PreflightValidator
from .migrations.reader import SourceReader
from .migrations.writer import DestinationWriter
from .monitoring.metrics import MigrationReport, RunState
from .monitoring.reporters import MigrationReporter
from .selection.base import ContainerSelector, MigrationSummary

logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    Runs one migration between two containers.

    Container choices and the go/no-go decision come from the selector, so the
    same flow serves interactive and scripted runs.
    """

    def __init__(self,
                 settings: AppSettings,
                 selector: ContainerSelector,
                 reporter: Optional[MigrationReporter] = None,
                 cancel_event: Optional[asyncio.Event] = None,
                 store_factory=create_document_store):
        self.settings = settings
        self.selector = selector
        self.reporter = reporter or MigrationReporter()
        self.cancel_event = cancel_event or asyncio.Event()
        self.store_factory = store_factory
        self.coordinator: Optional[MigrationCoordinator] = None

    async def run(self) -> Optional[MigrationReport]:
        """Returns the run report, or None when there was nothing to migrate"""
        cosmos = self.settings.cosmos_db
        endpoints = resolve_endpoints(cosmos)

        logger.info(f"🚀 Source: {account_name(endpoints.source.connection_string)}/{endpoints.source.database_name}")
        logger.info(f"🎯 Destination: {account_name(endpoints.destination.connection_string)}/"
                    f"{endpoints.destination.database_name}")
        logger.info(f"Batch size: {self.settings.migration_settings.batch_size}, "
                    f"dry run: {'YES' if self.settings.migration_settings.dry_run else 'NO'}")

        connections = await open_endpoint_connections(
            build_database_config(endpoints.source, cosmos),
            build_database_config(endpoints.destination, cosmos),
            store_factory=self.store_factory,
        )
        async with connections:
            return await self._run(connections, endpoints)

    async def _run(self, connections: EndpointConnections, endpoints: ResolvedEndpoints) -> Optional[MigrationReport]:
        migration = self.settings.migration_settings

        source_containers = await connections.source.list_containers(endpoints.source.database_name)
        if not source_containers:
            logger.warning(f"⚠️ No containers found in database '{endpoints.source.database_name}'")
            return None

        if endpoints.same_database:
            destination_containers = source_containers
        else:
            destination_containers = await connections.destination.list_containers(endpoints.destination.database_name)

        source_name = self.selector.select_source(source_containers)
        destination_name = self.selector.select_destination(destination_containers)

        if endpoints.same_database and source_name == destination_name:
            raise ConfigurationError("Source and destination containers cannot be the same within the same database")

        source_ref = ContainerRef(endpoints.source.database_name, source_name)
        destination_ref = ContainerRef(endpoints.destination.database_name, destination_name)

        if not await connections.source.container_exists(source_ref):
            raise ConfigurationError(f"Source container {source_ref} does not exist")

        destination_is_new = destination_name not in [c.name for c in destination_containers]
        partition_key = await self._prepare_destination(connections, destination_ref, destination_is_new)

        source_count = await connections.source.safe_count(source_ref)
        if source_count == 0:
            logger.warning(f"⚠️ Source container {source_ref} is empty, nothing to migrate")
            return None

        destination_count = 0
        if not destination_is_new:
            destination_count = await connections.destination.safe_count(destination_ref)
            if destination_count > 0:
                logger.warning(f"⚠️ Destination container already contains {destination_count:,} documents; "
                               f"documents with matching ids will be overwritten")

        summary = MigrationSummary(
            source_account=account_name(endpoints.source.connection_string),
            source_database=endpoints.source.database_name,
            source_container=source_name,
            source_count=source_count,
            destination_account=account_name(endpoints.destination.connection_string),
            destination_database=endpoints.destination.database_name,
            destination_container=destination_name,
            destination_count=destination_count,
            destination_is_new=destination_is_new,
            same_account=endpoints.same_account,
            same_database=endpoints.same_database,
            batch_size=migration.batch_size,
            dry_run=migration.dry_run,
        )

        self.coordinator = MigrationCoordinator(
            reader=SourceReader(connections.source, source_ref, page_size=migration.page_size),
            writer=DestinationWriter(connections.destination, destination_ref, dry_run=migration.dry_run),
            partition_key=partition_key,
            settings=migration,
            preflight=PreflightValidator(connections.source, source_ref, partition_key),
            reporter=self.reporter,
            cancel_event=self.cancel_event,
        )

        await self.coordinator.run_preflight()
        if not self.coordinator.confirm(self.selector.confirm(summary)):
            return self.coordinator.report

        report = await self.coordinator.run()

        if report.state == RunState.COMPLETED and not migration.dry_run:
            final_count = await connections.destination.safe_count(destination_ref)
            logger.info(f"📊 Destination container now has {final_count:,} documents")
        return report

    async def _prepare_destination(self, connections: EndpointConnections, destination: ContainerRef,
                                   is_new: bool) -> PartitionKeyPath:
        """Create a new destination container, or read the key paths of an existing one"""
        if not is_new:
            partition_key = await connections.destination.read_partition_key_paths(destination)
            logger.info(f"Destination partition keys: {', '.join(partition_key.paths)}")
            return partition_key

        partition_key = self.selector.define_partition_key(destination.container_name)
        throughput = self.selector.choose_throughput()
        if self.settings.migration_settings.dry_run:
            logger.info(f"Dry run: container {destination} would be created with partition keys "
                        f"[{', '.join(partition_key.paths)}] and {throughput.value} throughput")
            return partition_key

        await connections.destination.create_container(destination, partition_key, throughput)
        return partition_key

