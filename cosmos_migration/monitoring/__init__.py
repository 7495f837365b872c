from .metrics import (
    CostSnapshot,
    ErrorRecord,
    MigrationCounters,
    MigrationReport,
    PreflightReport,
    ProgressSnapshot,
    RunState,
    SkipNotice,
)
from .reporters import (
    CompositeReporter,
    LoggingReporter,
    MigrationReporter,
    ProgressBarReporter,
    format_duration,
)

__all__ = [
    "CostSnapshot",
    "ErrorRecord",
    "MigrationCounters",
    "MigrationReport",
    "PreflightReport",
    "ProgressSnapshot",
    "RunState",
    "SkipNotice",
    "CompositeReporter",
    "LoggingReporter",
    "MigrationReporter",
    "ProgressBarReporter",
    "format_duration",
]
