"""
Periodic sync + transcript cycles with new-row notification.

Cycles never overlap: each one runs to completion, then the scheduler waits out the
rest of the period (measured from the cycle start) in short cancellable steps.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set

import pytz

from common_py.error_codes import ErrorCode
from common_py.logging_config import configure_logging, set_cycle_id
from common_py.metrics import MetricsCollector, TimerContext, metrics
from aweme_sync.clients.notification_client import NotificationClient
from aweme_sync.clients.video_data_client import validate_credentials
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import DatastoreInterface
from aweme_sync.models.schema import VIDEO_ID_FIELD
from aweme_sync.services.cancellation import CancellationToken
from aweme_sync.services.dedup_index import collect_row_ids
from aweme_sync.services.exceptions import ValidationError
from aweme_sync.services.sync_engine import SyncEngine, SyncResult
from aweme_sync.services.transcript.task_pipeline import PipelineResult, TaskPipeline

logger = configure_logging("aweme-sync:subscription_scheduler", log_level=config.LOG_LEVEL)

MIN_INTERVAL_HOURS = 1
MAX_INTERVAL_HOURS = 72


def clamp_interval_hours(hours: float) -> float:
    clamped = min(max(hours, MIN_INTERVAL_HOURS), MAX_INTERVAL_HOURS)
    if clamped != hours:
        logger.warning("Subscription interval out of range, clamped", requested=hours, used=clamped)
    return clamped


@dataclass
class CycleReport:
    cycle_id: str
    sync: Optional[SyncResult] = None
    pipeline: Dict[str, PipelineResult] = field(default_factory=dict)
    new_ids: Dict[str, List[str]] = field(default_factory=dict)  # table id -> new canonical ids
    notified: bool = False
    error: Optional[str] = None

    @property
    def new_count(self) -> int:
        return sum(len(ids) for ids in self.new_ids.values())


class SubscriptionScheduler:
    def __init__(
        self,
        datastore: DatastoreInterface,
        sync_engine: SyncEngine,
        pipeline: TaskPipeline,
        notifier: NotificationClient,
        urls: Sequence[str],
        interval_hours: Optional[float] = None,
        cancel_poll_interval_s: Optional[float] = None,
        token: Optional[CancellationToken] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
        display_timezone: Optional[str] = None,
    ):
        self.datastore = datastore
        self.sync_engine = sync_engine
        self.pipeline = pipeline
        self.notifier = notifier
        self.urls = list(urls)
        hours = config.SUBSCRIPTION_INTERVAL_HOURS if interval_hours is None else interval_hours
        self.interval_s = clamp_interval_hours(hours) * 3600
        self.cancel_poll_interval_s = cancel_poll_interval_s or config.CANCEL_POLL_INTERVAL_S
        self.token = token or CancellationToken()
        self.metrics = metrics_collector or metrics
        self.clock = clock
        self.timezone = pytz.timezone(display_timezone or config.DISPLAY_TIMEZONE)

    def stop(self, reason: str = "stop requested") -> None:
        self.token.cancel(reason)

    async def snapshot(self) -> Dict[str, Optional[Set[str]]]:
        """Canonical ids per table id, across every table; None where the scan was incomplete."""
        snapshot: Dict[str, Optional[Set[str]]] = {}
        for meta in await self.datastore.list_tables():
            try:
                table = await self.datastore.get_table(meta.table_id)
                id_field = next(
                    (f.field_id for f in await table.list_fields() if f.name == VIDEO_ID_FIELD.name), None
                )
                snapshot[meta.table_id] = await collect_row_ids(table, id_field)
            except Exception as e:
                logger.error("Snapshot failed for table", table=meta.name, error=str(e))
                snapshot[meta.table_id] = None
            if snapshot[meta.table_id] is None:
                logger.warning("Incomplete snapshot, table left out of new-row detection", table=meta.name)
        return snapshot

    @staticmethod
    def diff_snapshots(
        before: Dict[str, Optional[Set[str]]], after: Dict[str, Optional[Set[str]]]
    ) -> Dict[str, List[str]]:
        """Ids that appeared per table. Tables absent from `before` were created during the cycle."""
        new_ids: Dict[str, List[str]] = {}
        for table_id, ids in after.items():
            if ids is None or (table_id in before and before[table_id] is None):
                continue
            added = sorted(ids - (before.get(table_id) or set()))
            if added:
                new_ids[table_id] = added
        return new_ids

    async def run_cycle(self) -> CycleReport:
        report = CycleReport(cycle_id=uuid.uuid4().hex[:12])
        set_cycle_id(report.cycle_id)
        self.metrics.increment_counter("cycles")
        logger.info("Subscription cycle started", urls=len(self.urls))

        try:
            with TimerContext("subscription_cycle", collector=self.metrics):
                before = await self.snapshot()
                report.sync = await self.sync_engine.run(self.urls)
                report.pipeline = await self.pipeline.run_all_tables(self.datastore, self.token)
                after = await self.snapshot()

            report.new_ids = self.diff_snapshots(before, after)
            if report.new_ids:
                all_ids = [aweme_id for ids in report.new_ids.values() for aweme_id in ids]
                report.notified = await self.notifier.notify_new_videos(all_ids)
                if report.notified:
                    self.metrics.increment_counter("notifications_sent")
            logger.info("Subscription cycle finished", new_videos=report.new_count, notified=report.notified)
            self.metrics.log_summary("subscription_cycle_metrics")
        except Exception as e:
            report.error = str(e)
            logger.exception("Subscription cycle failed", error=str(e))
        finally:
            set_cycle_id(None)
        return report

    async def wait_until(self, deadline: float) -> bool:
        """Wait for the deadline in short steps; True when cancellation cut it short."""
        while not self.token.cancelled:
            remaining = deadline - self.clock()
            if remaining <= 0:
                return False
            await self.token.wait(min(self.cancel_poll_interval_s, remaining))
        return True

    async def run(self, max_cycles: Optional[int] = None) -> List[CycleReport]:
        """
        Loop until cancelled (or `max_cycles` cycles have run).

        Raises:
            ValidationError: missing credentials, input URLs or webhook, before the first cycle
        """
        validate_credentials(self.sync_engine.video_client.username, self.sync_engine.video_client.passtoken)
        if not self.urls:
            raise ValidationError("At least one input URL is required", field="INPUT_URLS",
                                  error_code=ErrorCode.MISSING_INPUT_URL)
        if not self.notifier.webhook_url:
            raise ValidationError("A webhook URL is required for subscriptions", field="WEBHOOK_URL",
                                  error_code=ErrorCode.INVALID_CONFIGURATION)

        reports: List[CycleReport] = []
        logger.info("Subscription started", interval_hours=self.interval_s / 3600, urls=len(self.urls))
        while not self.token.cancelled:
            started = self.clock()
            reports.append(await self.run_cycle())
            if max_cycles is not None and len(reports) >= max_cycles:
                break

            deadline = started + self.interval_s
            next_run = datetime.now(self.timezone) + timedelta(seconds=max(deadline - self.clock(), 0))
            logger.info("Next cycle scheduled", at=next_run.strftime("%Y-%m-%d %H:%M:%S %Z"))
            if await self.wait_until(deadline):
                break

        logger.info("Subscription stopped", cycles=len(reports), reason=self.token.reason or "finished")
        return reports
