"""
Console Selector
Terminal prompts for container choice, new container key paths and final confirmation
"""
from typing import Callable, List

from ..core.database import ContainerInfo, ThroughputMode
from ..core.documents import PartitionKeyPath
from .base import (
    DEFAULT_PARTITION_KEY_PATHS,
    ContainerSelector,
    MigrationSummary,
    normalize_key_path,
    parse_container_choice,
)


def format_container_table(containers: List[ContainerInfo]) -> List[str]:
    lines = [
        "-" * 100,
        f"{'#':<4} {'Container Name':<30} {'Documents':<15} {'Partition Key':<40}",
        "-" * 100,
    ]
    for index, info in enumerate(containers, start=1):
        key_type = " [Hierarchical]" if info.is_hierarchical else ""
        lines.append(f"{index:<4} {info.name:<30} {info.document_count:<15,} {', '.join(info.partition_key_paths) + key_type}")
    lines.append("-" * 100)
    return lines


class ConsoleSelector(ContainerSelector):
    """Interactive selector; input and output are injectable"""

    def __init__(self, input_func: Callable[[str], str] = input, output: Callable[[str], None] = print):
        self.input = input_func
        self.output = output

    def _show(self, title: str, containers: List[ContainerInfo]):
        self.output(title)
        for line in format_container_table(containers):
            self.output(line)

    def select_source(self, containers: List[ContainerInfo]) -> str:
        self._show("Available source containers:", containers)
        names = [c.name for c in containers]
        while True:
            choice = parse_container_choice(self.input("Enter SOURCE container name (or number): "), names)
            if choice is not None:
                return choice.name
            self.output("   ❌ Container not found. Please try again.\n")

    def select_destination(self, containers: List[ContainerInfo]) -> str:
        self._show("Available destination containers:", containers)
        names = [c.name for c in containers]
        while True:
            raw = self.input("Enter DESTINATION container name (or number, or 'new' to create): ")
            choice = parse_container_choice(raw, names, allow_new=True)
            if choice is None:
                self.output("   ❌ Please enter a valid container name or number\n")
                continue
            if not choice.is_new:
                return choice.name
            if not choice.name:
                new_name = (self.input("   Enter new container name: ") or "").strip()
                if new_name:
                    return new_name
                self.output("   ❌ Invalid container name\n")
                continue
            answer = self.input(f"   Container '{choice.name}' doesn't exist. Create it? (y/n): ")
            if (answer or "").strip().lower() == "y":
                return choice.name
            self.output(f"   ❌ Container '{choice.name}' not found. Please try again.\n")

    def define_partition_key(self, container_name: str) -> PartitionKeyPath:
        self.output(f"\n   ⚙️  Configure hierarchical partition keys for '{container_name}':")
        first_default, second_default = DEFAULT_PARTITION_KEY_PATHS
        first = normalize_key_path(self.input(f"   First partition key path (default: {first_default}): "), first_default)
        second = normalize_key_path(self.input(f"   Second partition key path (default: {second_default}): "), second_default)
        self.output(f"\n   Creating container with partition keys: [{first}, {second}]")
        return PartitionKeyPath([first, second])

    def choose_throughput(self) -> ThroughputMode:
        answer = self.input("   Throughput mode (1=Manual 400 RU/s, 2=Autoscale 4000 RU/s, default: 2): ")
        return ThroughputMode.MANUAL if (answer or "").strip() == "1" else ThroughputMode.AUTOSCALE

    def confirm(self, summary: MigrationSummary) -> bool:
        for line in summary.lines():
            self.output(line)
        answer = self.input("\nProceed with migration? (y/n): ")
        return (answer or "").strip().lower() == "y"
