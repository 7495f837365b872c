from .engine import MigrationCoordinator
from .preflight import PreflightValidator
from .reader import SourceReader
from .writer import DestinationWriter, WriteOutcome, WriteStatus

__all__ = [
    "MigrationCoordinator",
    "PreflightValidator",
    "SourceReader",
    "DestinationWriter",
    "WriteOutcome",
    "WriteStatus",
]
