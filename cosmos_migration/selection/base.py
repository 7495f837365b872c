"""
Container Selection
Choice parsing, migration summary and the selector interface used by the runner
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..core.database import ContainerInfo, ThroughputMode
from ..core.documents import PartitionKeyPath
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PARTITION_KEY_PATHS = ("/tenantId", "/id")


@dataclass(frozen=True)
class ContainerChoice:
    """A parsed container selection; an empty name with is_new means 'ask for the name'"""
    name: str
    is_new: bool = False


def parse_container_choice(raw: Optional[str], available: Sequence[str],
                           allow_new: bool = False) -> Optional[ContainerChoice]:
    """
    Interpret operator input as a container choice.

    Accepts a 1-based index into `available`, a container name (case-insensitive),
    or, when allow_new is set, the keyword "new" or the name of a container that
    does not exist yet. Returns None for input that cannot be used.
    """
    value = (raw or "").strip()
    if not value:
        return None

    if allow_new and value.lower() == "new":
        return ContainerChoice(name="", is_new=True)

    if value.isdigit():
        index = int(value)
        if 1 <= index <= len(available):
            return ContainerChoice(name=available[index - 1])

    for name in available:
        if name.lower() == value.lower():
            return ContainerChoice(name=name)

    if allow_new:
        return ContainerChoice(name=value, is_new=True)
    return None


def normalize_key_path(raw: Optional[str], default: str) -> str:
    """'tenantId' -> '/tenantId'; blank input -> default"""
    value = (raw or "").strip()
    if not value:
        value = default
    if not value.startswith("/"):
        value = "/" + value
    return value


@dataclass(frozen=True)
class MigrationSummary:
    """Everything the operator sees before confirming"""
    source_account: str
    source_database: str
    source_container: str
    source_count: int
    destination_account: str
    destination_database: str
    destination_container: str
    destination_count: int
    destination_is_new: bool
    same_account: bool
    same_database: bool
    batch_size: int
    dry_run: bool

    def lines(self) -> List[str]:
        if self.destination_is_new:
            destination_state = "new container"
        else:
            destination_state = f"{self.destination_count:,} existing documents"
        return [
            "=" * 46,
            "MIGRATION SUMMARY",
            "=" * 46,
            f"Source Account:   {self.source_account}",
            f"Source Database:  {self.source_database}",
            f"Source Container: {self.source_container} ({self.source_count:,} documents)",
            "",
            f"Dest Account:     {self.destination_account} {'[SAME]' if self.same_account else '[DIFFERENT]'}",
            f"Dest Database:    {self.destination_database} {'[SAME]' if self.same_database else '[DIFFERENT]'}",
            f"Dest Container:   {self.destination_container} ({destination_state})",
            "",
            f"Documents:        {self.source_count:,}",
            f"Batch size:       {self.batch_size}",
            f"Dry run:          {'YES (no data will be written)' if self.dry_run else 'NO (data will be written)'}",
            "=" * 46,
        ]


class ContainerSelector(ABC):
    """Source of every operator decision the runner needs"""

    @abstractmethod
    def select_source(self, containers: List[ContainerInfo]) -> str:
        pass

    @abstractmethod
    def select_destination(self, containers: List[ContainerInfo]) -> str:
        pass

    @abstractmethod
    def define_partition_key(self, container_name: str) -> PartitionKeyPath:
        """Key paths for a destination container that has to be created"""

    @abstractmethod
    def choose_throughput(self) -> ThroughputMode:
        pass

    @abstractmethod
    def confirm(self, summary: MigrationSummary) -> bool:
        pass


class StaticSelector(ContainerSelector):
    """Non-interactive selector driven by command line options"""

    def __init__(self, source: str, destination: str,
                 partition_key_paths: Optional[Sequence[str]] = None,
                 throughput: ThroughputMode = ThroughputMode.AUTOSCALE,
                 assume_yes: bool = False):
        self.source = source
        self.destination = destination
        self.partition_key_paths = list(partition_key_paths or [])
        self.throughput = throughput
        self.assume_yes = assume_yes

    def select_source(self, containers: List[ContainerInfo]) -> str:
        choice = parse_container_choice(self.source, [c.name for c in containers])
        if choice is None:
            raise ConfigurationError(f"Source container '{self.source}' not found")
        return choice.name

    def select_destination(self, containers: List[ContainerInfo]) -> str:
        choice = parse_container_choice(self.destination, [c.name for c in containers], allow_new=True)
        if choice is None or not choice.name:
            raise ConfigurationError(f"Invalid destination container '{self.destination}'")
        return choice.name

    def define_partition_key(self, container_name: str) -> PartitionKeyPath:
        paths = self.partition_key_paths or list(DEFAULT_PARTITION_KEY_PATHS)
        return PartitionKeyPath([normalize_key_path(path, path) for path in paths])

    def choose_throughput(self) -> ThroughputMode:
        return self.throughput

    def confirm(self, summary: MigrationSummary) -> bool:
        for line in summary.lines():
            logger.info(line)
        if not self.assume_yes:
            logger.warning("Confirmation required: re-run with --yes to proceed non-interactively")
        return self.assume_yes
