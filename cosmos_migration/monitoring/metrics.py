"""
Migration Metrics
Structured events emitted by the migration coordinator
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class RunState(Enum):
    """Lifecycle of a migration run"""
    IDLE = "idle"
    PREFLIGHT = "preflight"
    CONFIRMED = "confirmed"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ErrorRecord:
    """A document that could not be written"""
    document_id: str
    message: str

    def __str__(self) -> str:
        return f"Document {self.document_id}: {self.message}"


@dataclass(frozen=True)
class SkipNotice:
    """A document skipped because a partition key field is missing or null"""
    document_id: str
    field: str
    available_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProgressSnapshot:
    """Progress at a batch boundary"""
    processed: int
    total: int
    success: int
    skipped: int
    errored: int
    percentage: float
    speed: float
    eta_seconds: float


@dataclass(frozen=True)
class CostSnapshot:
    """Cumulative request charge at every fifth batch boundary"""
    processed: int
    total_cost: float


@dataclass(frozen=True)
class PreflightReport:
    """Per-field counts of source documents that cannot be keyed"""
    source_total: int
    missing_counts: Dict[str, int] = field(default_factory=dict)
    failed_checks: Tuple[str, ...] = ()

    @property
    def expected_skips(self) -> int:
        """Lower bound on the number of documents the run will skip"""
        return max(self.missing_counts.values(), default=0)

    @property
    def all_fields_present(self) -> bool:
        return self.expected_skips == 0


@dataclass
class MigrationCounters:
    """Run-scoped tallies, mutated only by the coordinator"""
    processed: int = 0
    success: int = 0
    skipped: int = 0
    errored: int = 0
    total_cost: float = 0.0
    errors: List[ErrorRecord] = field(default_factory=list)
    overflow_errors: int = 0

    def record_error(self, record: ErrorRecord, max_stored: int) -> bool:
        """Count an error; store it only while under the cap. Returns True when stored."""
        self.errored += 1
        if len(self.errors) < max_stored:
            self.errors.append(record)
            return True
        self.overflow_errors += 1
        return False


@dataclass(frozen=True)
class MigrationReport:
    """Final, immutable outcome of a run"""
    state: RunState
    processed: int
    success: int
    skipped: int
    errored: int
    elapsed_seconds: float
    total_cost: float
    errors: Tuple[ErrorRecord, ...] = ()
    overflow_errors: int = 0
    dry_run: bool = False
    abort_reason: Optional[str] = None

    @property
    def average_speed(self) -> float:
        return self.processed / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0

    @property
    def average_cost_per_document(self) -> float:
        return self.total_cost / self.processed if self.processed > 0 else 0.0

    @property
    def error_messages(self) -> List[str]:
        return [str(record) for record in self.errors]

    @property
    def completed(self) -> bool:
        return self.state == RunState.COMPLETED

    @classmethod
    def from_counters(cls, counters: MigrationCounters, state: RunState, elapsed_seconds: float,
                      dry_run: bool = False, abort_reason: Optional[str] = None) -> "MigrationReport":
        return cls(
            state=state,
            processed=counters.processed,
            success=counters.success,
            skipped=counters.skipped,
            errored=counters.errored,
            elapsed_seconds=elapsed_seconds,
            total_cost=counters.total_cost,
            errors=tuple(counters.errors),
            overflow_errors=counters.overflow_errors,
            dry_run=dry_run,
            abort_reason=abort_reason,
        )
