from .base import (
    DEFAULT_PARTITION_KEY_PATHS,
    ContainerChoice,
    ContainerSelector,
    MigrationSummary,
    StaticSelector,
    normalize_key_path,
    parse_container_choice,
)
from .console import ConsoleSelector, format_container_table

__all__ = [
    "DEFAULT_PARTITION_KEY_PATHS",
    "ContainerChoice",
    "ContainerSelector",
    "MigrationSummary",
    "StaticSelector",
    "normalize_key_path",
    "parse_container_choice",
    "ConsoleSelector",
    "format_container_table",
]
