"""
Migration Engine
Drives preflight, confirmation and the sequential per-document migration loop
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from ..config.manager import MigrationSettings
from ..core.documents import MissingField, PartitionKeyPath, document_identity, resolve_partition_key
from ..core.errors import MigrationAbortedError, MigrationStateError
from ..monitoring.metrics import (
    CostSnapshot,
    ErrorRecord,
    MigrationCounters,
    MigrationReport,
    PreflightReport,
    ProgressSnapshot,
    RunState,
    SkipNotice,
)
from ..monitoring.reporters import MigrationReporter
from .preflight import PreflightValidator
from .reader import SourceReader
from .writer import DestinationWriter

logger = logging.getLogger(__name__)

COST_REPORT_MULTIPLIER = 5


class MigrationCoordinator:
    """
    Migration coordinator with:
    - Forward-only lifecycle: IDLE -> PREFLIGHT -> CONFIRMED -> RUNNING -> COMPLETED | ABORTED
    - Partition key resolution and skip accounting per document
    - Progress snapshots every batch_size documents, cost every 5 batches
    - Bounded error retention with an overflow count
    - Cooperative cancellation checked once per page
    """

    def __init__(self,
                 reader: SourceReader,
                 writer: DestinationWriter,
                 partition_key: PartitionKeyPath,
                 settings: Optional[MigrationSettings] = None,
                 preflight: Optional[PreflightValidator] = None,
                 reporter: Optional[MigrationReporter] = None,
                 cancel_event: Optional[asyncio.Event] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.reader = reader
        self.writer = writer
        self.partition_key = partition_key
        self.settings = settings or MigrationSettings()
        self.preflight = preflight
        self.reporter = reporter or MigrationReporter()
        self.cancel_event = cancel_event or asyncio.Event()
        self.clock = clock

        self.state = RunState.IDLE
        self.source_total = 0
        self.preflight_report: Optional[PreflightReport] = None
        self.counters = MigrationCounters()
        self.report: Optional[MigrationReport] = None
        self._started_at: Optional[float] = None

    def _require(self, expected: RunState, operation: str):
        if self.state != expected:
            raise MigrationStateError(f"Cannot {operation} in state {self.state.value} (expected {expected.value})")

    def request_cancel(self):
        """Stop at the next page boundary; the partial report is still produced"""
        self.cancel_event.set()

    async def run_preflight(self) -> PreflightReport:
        """Count the source and check how many documents lack key fields"""
        self._require(RunState.IDLE, "run preflight")
        self.state = RunState.PREFLIGHT

        self.source_total = await self.reader.count()
        if self.preflight is not None:
            report = await self.preflight.validate(self.source_total)
        else:
            report = PreflightReport(source_total=self.source_total)

        self.preflight_report = report
        self.reporter.on_preflight(report)
        logger.info(f"Preflight complete: {self.source_total:,} source documents, "
                    f"at least {report.expected_skips:,} will be skipped")
        return report

    def confirm(self, proceed: bool) -> bool:
        """Record the operator's go/no-go decision"""
        self._require(RunState.PREFLIGHT, "confirm")
        if proceed:
            self.state = RunState.CONFIRMED
            return True

        self.state = RunState.ABORTED
        self.report = MigrationReport.from_counters(self.counters, RunState.ABORTED, 0.0,
                                                    dry_run=self.writer.dry_run,
                                                    abort_reason="declined by operator")
        logger.info("Migration cancelled by user.")
        return False

    async def run(self) -> MigrationReport:
        """Migrate every source document; raises MigrationAbortedError on a fatal stream error"""
        self._require(RunState.CONFIRMED, "run")
        self.state = RunState.RUNNING
        self._started_at = self.clock()
        self.reporter.on_start(self.source_total, self.writer.dry_run)

        pages = self.reader.pages()
        try:
            async for page in pages:
                self.counters.total_cost += page.request_charge
                if self.cancel_event.is_set():
                    logger.warning("Cancellation requested; stopping at page boundary")
                    return self._finish(RunState.ABORTED, "cancelled")
                for document in page.documents:
                    await self._process_document(document)
        except Exception as e:
            report = self._finish(RunState.ABORTED, str(e))
            raise MigrationAbortedError(f"Migration aborted: {e}", report) from e
        finally:
            await pages.aclose()

        return self._finish(RunState.COMPLETED)

    async def execute(self, proceed: bool = True) -> MigrationReport:
        """Preflight, confirm and run in one call"""
        await self.run_preflight()
        if not self.confirm(proceed):
            return self.report
        return await self.run()

    async def _process_document(self, document: Dict[str, Any]):
        counters = self.counters
        counters.processed += 1

        key = resolve_partition_key(self.partition_key, document)
        if isinstance(key, MissingField):
            counters.skipped += 1
            document_id = document_identity(document)
            logger.debug(f"Looking for '{key.field}', available keys: {', '.join(key.available_keys)}")
            if self.settings.show_detailed_errors:
                self.reporter.on_skip(SkipNotice(document_id, key.field, key.available_keys))
        else:
            outcome = await self.writer.write(document, key)
            if outcome.succeeded:
                counters.success += 1
            else:
                record = ErrorRecord(outcome.document_id, outcome.message or "write failed")
                stored = counters.record_error(record, self.settings.max_errors_to_display)
                if stored and self.settings.show_detailed_errors:
                    self.reporter.on_error(record)

        self._emit_snapshots()

    def _emit_snapshots(self):
        processed = self.counters.processed
        batch_size = self.settings.batch_size
        if processed % batch_size == 0:
            self.reporter.on_progress(self.progress_snapshot())
        if processed % (batch_size * COST_REPORT_MULTIPLIER) == 0:
            self.reporter.on_cost(CostSnapshot(processed=processed, total_cost=self.counters.total_cost))

    def _elapsed(self) -> float:
        return self.clock() - self._started_at if self._started_at is not None else 0.0

    def progress_snapshot(self) -> ProgressSnapshot:
        counters = self.counters
        total = self.source_total
        elapsed = self._elapsed()
        speed = counters.processed / elapsed if elapsed > 0 else 0.0
        percentage = counters.processed / total * 100 if total > 0 else 0.0
        # A stale source count can be exceeded; never report a negative ETA
        eta = max(0, total - counters.processed) / speed if speed > 0 else 0.0
        return ProgressSnapshot(
            processed=counters.processed,
            total=total,
            success=counters.success,
            skipped=counters.skipped,
            errored=counters.errored,
            percentage=percentage,
            speed=speed,
            eta_seconds=eta,
        )

    def _finish(self, state: RunState, abort_reason: Optional[str] = None) -> MigrationReport:
        self.state = state
        self.report = MigrationReport.from_counters(self.counters, state, self._elapsed(),
                                                    dry_run=self.writer.dry_run, abort_reason=abort_reason)
        self.reporter.on_complete(self.report)
        if state == RunState.COMPLETED:
            logger.info(f"✅ Migration completed: {self.counters.success:,}/{self.counters.processed:,} documents")
        else:
            logger.error(f"❌ Migration aborted after {self.counters.processed:,} documents: {abort_reason}")
        return self.report
