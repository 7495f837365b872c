"""
Migration Reporters
Turn coordinator events into operator output (log lines, progress bar)
"""
import logging
import sys
from typing import Iterable, List, Optional

import psutil
from tqdm import tqdm

from .metrics import (
    CostSnapshot,
    ErrorRecord,
    MigrationReport,
    PreflightReport,
    ProgressSnapshot,
    RunState,
    SkipNotice,
)

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """hh:mm:ss"""
    total = int(max(0.0, seconds))
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


class MigrationReporter:
    """Reporting sink; every hook is optional"""

    def on_preflight(self, report: PreflightReport) -> None:
        pass

    def on_start(self, total: int, dry_run: bool) -> None:
        pass

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        pass

    def on_cost(self, snapshot: CostSnapshot) -> None:
        pass

    def on_skip(self, notice: SkipNotice) -> None:
        pass

    def on_error(self, record: ErrorRecord) -> None:
        pass

    def on_complete(self, report: MigrationReport) -> None:
        pass


class CompositeReporter(MigrationReporter):
    """Fan events out to several reporters"""

    def __init__(self, reporters: Iterable[MigrationReporter]):
        self.reporters: List[MigrationReporter] = list(reporters)

    def on_preflight(self, report: PreflightReport) -> None:
        for reporter in self.reporters:
            reporter.on_preflight(report)

    def on_start(self, total: int, dry_run: bool) -> None:
        for reporter in self.reporters:
            reporter.on_start(total, dry_run)

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        for reporter in self.reporters:
            reporter.on_progress(snapshot)

    def on_cost(self, snapshot: CostSnapshot) -> None:
        for reporter in self.reporters:
            reporter.on_cost(snapshot)

    def on_skip(self, notice: SkipNotice) -> None:
        for reporter in self.reporters:
            reporter.on_skip(notice)

    def on_error(self, record: ErrorRecord) -> None:
        for reporter in self.reporters:
            reporter.on_error(record)

    def on_complete(self, report: MigrationReport) -> None:
        for reporter in self.reporters:
            reporter.on_complete(report)


class LoggingReporter(MigrationReporter):
    """Operator-facing log lines"""

    def __init__(self, max_errors_to_display: int = 10, log: Optional[logging.Logger] = None):
        self.max_errors_to_display = max_errors_to_display
        self.log = log or logger

    def on_preflight(self, report: PreflightReport) -> None:
        self.log.info("🔍 Checking data integrity...")
        for field_name, missing in report.missing_counts.items():
            if missing > 0:
                self.log.warning(f"   ⚠️  {missing:,} documents are missing field '{field_name}'! "
                                 f"These documents will be SKIPPED during migration.")
            elif field_name in report.failed_checks:
                self.log.warning(f"   ⚠️  Could not check field '{field_name}'; assuming none missing")
            else:
                self.log.info(f"   ✅ All documents have field '{field_name}'")

    def on_start(self, total: int, dry_run: bool) -> None:
        if dry_run:
            self.log.info("🔧 DRY RUN MODE - No data will be written")
        self.log.info(f"🚀 Starting migration of {total:,} documents...")

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self.log.info(
            f"   📈 Progress: {snapshot.processed:,}/{snapshot.total:,} ({snapshot.percentage:.1f}%) - "
            f"Success: {snapshot.success:,}, Skipped: {snapshot.skipped}, Errors: {snapshot.errored} - "
            f"Speed: {snapshot.speed:.0f} docs/s - ETA: {format_duration(snapshot.eta_seconds)}"
        )

    def on_cost(self, snapshot: CostSnapshot) -> None:
        self.log.info(f"   💰 Total RU consumed so far: {snapshot.total_cost:.2f}")

    def on_skip(self, notice: SkipNotice) -> None:
        self.log.warning(f"   ⚠️  Skipped: Document without '{notice.field}' (id: {notice.document_id})")

    def on_error(self, record: ErrorRecord) -> None:
        self.log.error(f"   ❌ Error: {record}")

    def on_complete(self, report: MigrationReport) -> None:
        title = "MIGRATION COMPLETE" if report.completed else "MIGRATION ABORTED"
        lines = [
            "=" * 46,
            title,
            "=" * 46,
            f"Total documents processed:  {report.processed:,}",
            f"Successfully migrated:      {report.success:,}",
            f"Skipped (missing data):     {report.skipped:,}",
            f"Errors:                     {report.errored:,}",
            f"Time elapsed:               {format_duration(report.elapsed_seconds)}",
            f"Average speed:              {report.average_speed:.0f} docs/sec",
            f"Total RU consumed:          {report.total_cost:.2f}",
            f"Average RU per document:    {report.average_cost_per_document:.2f}",
        ]
        if report.state == RunState.ABORTED and report.abort_reason:
            lines.append(f"Abort reason:               {report.abort_reason}")
        for line in lines:
            self.log.info(line)

        if report.errored:
            self.log.warning(f"⚠️  {report.errored} errors occurred:")
            for record in report.errors[:self.max_errors_to_display]:
                self.log.warning(f"   - {record}")
            if report.overflow_errors:
                self.log.warning(f"   ... and {report.overflow_errors} more errors")


class ProgressBarReporter(MigrationReporter):
    """tqdm progress bar with success/skip/error counts and process memory"""

    def __init__(self, file=None, miniters: int = 1):
        self.file = file or sys.stdout
        self.miniters = miniters
        self.pbar: Optional[tqdm] = None

    def on_start(self, total: int, dry_run: bool) -> None:
        self.pbar = tqdm(
            total=total,
            desc="🔧 Dry run" if dry_run else "🚀 Migrating data",
            unit="docs",
            unit_scale=True,
            ncols=120,
            bar_format='{desc}: {percentage:3.0f}%|{bar:25}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}] {postfix}',
            colour='blue',
            miniters=self.miniters,
            dynamic_ncols=True,
            leave=True,
            file=self.file,
        )

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        if self.pbar is None:
            return
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        self.pbar.set_postfix_str(
            f"OK: {snapshot.success:,} | Skip: {snapshot.skipped:,} | Err: {snapshot.errored:,} | Mem: {memory_mb:.0f}MB"
        )
        self.pbar.update(snapshot.processed - self.pbar.n)

    def on_complete(self, report: MigrationReport) -> None:
        if self.pbar is None:
            return
        self.pbar.update(report.processed - self.pbar.n)
        self.pbar.close()
        self.pbar = None
