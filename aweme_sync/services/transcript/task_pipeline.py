"""
Four-stage transcript pipeline: submit ASR, poll ASR, submit LLM cleanup, poll LLM.

Every stage runs over the whole item set before the next one starts, with remote
calls fanned out under the shared ConcurrencyLimiter. Items only change through
the transition functions in `stages`; each stage collects the new items and
stores them once its calls have returned.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from common_py.logging_config import configure_logging
from common_py.metrics import MetricsCollector, TimerContext, metrics
from aweme_sync.clients.transcript_api_client import PollResult, PollState, TranscriptApiClient
from aweme_sync.clients.video_data_client import validate_credentials
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import DatastoreInterface, RecordUpdate, TableInterface
from aweme_sync.models.processing_item import ItemStatus, ProcessingItem
from aweme_sync.models.schema import (
    AUDIO_ADDR_FIELD,
    DURATION_FIELD,
    PLAY_ADDR_FIELD,
    TRANSCRIPT_FIELD,
    VIDEO_ID_FIELD,
)
from aweme_sync.services.batch_writer import BatchWriter
from aweme_sync.services.cancellation import CancellationToken
from aweme_sync.services.concurrency_limiter import ConcurrencyLimiter
from aweme_sync.services.exceptions import PipelineItemError, SchemaError
from aweme_sync.services.transcript import stages

logger = configure_logging("aweme-sync:task_pipeline", log_level=config.LOG_LEVEL)

# (stage, done, total, attempt)
ProgressCallback = Callable[[str, int, int, int], None]

STAGE_SUBMIT_ASR = "submit_asr"
STAGE_POLL_ASR = "poll_asr"
STAGE_SUBMIT_LLM = "submit_llm"
STAGE_POLL_LLM = "poll_llm"
STAGE_WRITE = "write"


@dataclass
class PipelineResult:
    table_id: Optional[str] = None
    table_name: Optional[str] = None
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    items: List[ProcessingItem] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class TableColumns:
    transcript: str
    aweme_id: str
    play_addr: Optional[str] = None
    audio_addr: Optional[str] = None
    duration: Optional[str] = None


class TaskPipeline:
    def __init__(
        self,
        client: TranscriptApiClient,
        limiter: Optional[ConcurrencyLimiter] = None,
        writer: Optional[BatchWriter] = None,
        asr_poll_interval_s: Optional[float] = None,
        asr_max_attempts: Optional[int] = None,
        llm_poll_interval_s: Optional[float] = None,
        llm_max_attempts: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.limiter = limiter or ConcurrencyLimiter()
        self.writer = writer or BatchWriter()
        self.asr_poll_interval_s = config.ASR_POLL_INTERVAL_S if asr_poll_interval_s is None else asr_poll_interval_s
        self.asr_max_attempts = asr_max_attempts or config.ASR_MAX_POLL_ATTEMPTS
        self.llm_poll_interval_s = config.LLM_POLL_INTERVAL_S if llm_poll_interval_s is None else llm_poll_interval_s
        self.llm_max_attempts = llm_max_attempts or config.LLM_MAX_POLL_ATTEMPTS
        self.progress = progress
        self.metrics = metrics_collector or metrics

    def _report(self, stage: str, done: int, total: int, attempt: int = 1) -> None:
        logger.debug("Pipeline progress", stage=stage, done=done, total=total, attempt=attempt)
        if self.progress:
            self.progress(stage, done, total, attempt)

    # Item discovery

    async def resolve_columns(self, table: TableInterface) -> TableColumns:
        by_name = {meta.name: meta.field_id for meta in await table.list_fields()}
        missing = [spec.name for spec in (TRANSCRIPT_FIELD, VIDEO_ID_FIELD) if spec.name not in by_name]
        if missing:
            raise SchemaError(f"Table is missing required columns: {', '.join(missing)}",
                              field_name=missing[0], table=table.table_id)
        return TableColumns(
            transcript=by_name[TRANSCRIPT_FIELD.name],
            aweme_id=by_name[VIDEO_ID_FIELD.name],
            play_addr=by_name.get(PLAY_ADDR_FIELD.name),
            audio_addr=by_name.get(AUDIO_ADDR_FIELD.name),
            duration=by_name.get(DURATION_FIELD.name),
        )

    async def build_items(self, table: TableInterface, columns: TableColumns) -> List[ProcessingItem]:
        """One pending item for every row with an id but no transcript."""
        items: List[ProcessingItem] = []
        for record_id in await table.list_record_ids():
            try:
                if await table.get_cell_value(columns.transcript, record_id):
                    continue
                aweme_id = await table.get_cell_string(columns.aweme_id, record_id)
                if not aweme_id:
                    continue
                play_addr = await table.get_cell_string(columns.play_addr, record_id) if columns.play_addr else None
                audio_addr = await table.get_cell_string(columns.audio_addr, record_id) if columns.audio_addr else None
                duration = await table.get_cell_value(columns.duration, record_id) if columns.duration else None
            except Exception as e:
                logger.warning("Skipping unreadable row", table=table.table_id, record_id=record_id, error=str(e))
                continue
            if isinstance(duration, bool) or not isinstance(duration, (int, float)):
                duration = None
            items.append(ProcessingItem(
                record_id=record_id,
                aweme_id=aweme_id,
                play_addr=play_addr or None,
                audio_addr=audio_addr or None,
                duration=duration,
            ))
        return items

    # Stages

    async def process(self, items: List[ProcessingItem]) -> List[ProcessingItem]:
        """Run all four stages in order over `items` and return the resulting items."""
        items = list(items)
        self.metrics.increment_counter("items_total", len(items))
        with TimerContext("pipeline_stage", tags={"stage": STAGE_SUBMIT_ASR}, collector=self.metrics):
            await self.submit_asr(items)
        with TimerContext("pipeline_stage", tags={"stage": STAGE_POLL_ASR}, collector=self.metrics):
            await self.poll_asr(items)
        with TimerContext("pipeline_stage", tags={"stage": STAGE_SUBMIT_LLM}, collector=self.metrics):
            await self.submit_llm(items)
        with TimerContext("pipeline_stage", tags={"stage": STAGE_POLL_LLM}, collector=self.metrics):
            await self.poll_llm(items)
        return items

    async def submit_asr(self, items: List[ProcessingItem]) -> None:
        targets = [i for i, item in enumerate(items) if item.status is ItemStatus.PENDING]
        total = len(targets)
        done = 0

        async def submit_one(item: ProcessingItem) -> ProcessingItem:
            nonlocal done
            item = stages.begin_asr(item)
            if item.status is ItemStatus.ASR_POSTING:
                try:
                    submission = await self.limiter.run(self.client.submit_asr, item)
                    item = stages.apply_asr_submission(item, submission)
                    self.metrics.increment_counter("asr_submitted")
                except Exception as e:
                    item = self._fail(item, STAGE_SUBMIT_ASR, e)
            done += 1
            self._report(STAGE_SUBMIT_ASR, done, total)
            return item

        results = await asyncio.gather(*(submit_one(items[i]) for i in targets))
        for i, item in zip(targets, results):
            items[i] = item
        logger.info("ASR submission finished", submitted=sum(
            1 for item in results if item.status is ItemStatus.ASR_POLLING), total=total)

    async def poll_asr(self, items: List[ProcessingItem]) -> None:
        targets = [i for i, item in enumerate(items) if item.status is ItemStatus.ASR_POLLING]
        total = len(targets)
        for i in targets:
            resolved = stages.resolve_existing_asr(items[i])
            if resolved is not None:
                items[i] = resolved

        attempt = 0
        while True:
            waiting = [i for i in targets if items[i].status is ItemStatus.ASR_POLLING]
            if not waiting:
                break
            attempt += 1
            results = await asyncio.gather(*(
                self._safe_poll(self.client.poll_asr, items[i]) for i in waiting
            ))
            for i, result in zip(waiting, results):
                items[i] = stages.apply_asr_poll(items[i], result, attempt, self.asr_max_attempts)
            remaining = sum(1 for i in targets if items[i].status is ItemStatus.ASR_POLLING)
            self._report(STAGE_POLL_ASR, total - remaining, total, attempt)
            if remaining:
                await asyncio.sleep(self.asr_poll_interval_s)

        finished = sum(1 for i in targets if items[i].status is ItemStatus.ASR_DONE)
        self.metrics.increment_counter("asr_done", finished)
        logger.info("ASR polling finished", done=finished, total=total, rounds=attempt)

    async def submit_llm(self, items: List[ProcessingItem]) -> None:
        targets = [i for i, item in enumerate(items) if item.status is ItemStatus.ASR_DONE]
        total = len(targets)
        done = 0

        async def submit_one(item: ProcessingItem) -> ProcessingItem:
            nonlocal done
            item = stages.begin_llm(item)
            try:
                submission = await self.limiter.run(self.client.submit_llm, item)
                item = stages.apply_llm_submission(item, submission)
                if item.status is ItemStatus.LLM_POLLING:
                    self.metrics.increment_counter("llm_submitted")
            except Exception as e:
                item = self._fail(item, STAGE_SUBMIT_LLM, e)
            done += 1
            self._report(STAGE_SUBMIT_LLM, done, total)
            return item

        results = await asyncio.gather(*(submit_one(items[i]) for i in targets))
        for i, item in zip(targets, results):
            items[i] = item
        logger.info("LLM submission finished", total=total, cleanup=sum(
            1 for item in results if item.status is ItemStatus.LLM_POLLING))

    async def poll_llm(self, items: List[ProcessingItem]) -> None:
        targets = [i for i, item in enumerate(items) if item.status is ItemStatus.LLM_POLLING]
        total = len(targets)
        for i in targets:
            resolved = stages.resolve_existing_llm(items[i])
            if resolved is not None:
                items[i] = resolved

        attempt = 0
        while True:
            calls: List[Tuple[int, int]] = []
            coros = []
            for i in targets:
                for position, ref in stages.pending_segments(items[i]):
                    calls.append((i, position))
                    coros.append(self._safe_poll(self.client.poll_llm, items[i], ref))
            if not calls:
                break
            attempt += 1
            results = await asyncio.gather(*coros)
            for (i, position), result in zip(calls, results):
                items[i] = stages.apply_llm_segment_poll(
                    items[i], position, result, attempt, self.llm_max_attempts)
            remaining = sum(1 for i in targets if items[i].status is ItemStatus.LLM_POLLING)
            self._report(STAGE_POLL_LLM, total - remaining, total, attempt)
            if remaining:
                await asyncio.sleep(self.llm_poll_interval_s)

        finished = sum(1 for i in targets if items[i].status is ItemStatus.LLM_DONE)
        self.metrics.increment_counter("llm_done", finished)
        logger.info("LLM polling finished", done=finished, total=total, rounds=attempt)

    async def _safe_poll(self, poll, *args) -> PollResult:
        try:
            return await self.limiter.run(poll, *args)
        except Exception as e:
            logger.warning("Poll raised, counting attempt as pending", error=str(e))
            return PollResult(PollState.PENDING, error=str(e))

    def _fail(self, item: ProcessingItem, stage: str, exc: Exception) -> ProcessingItem:
        error = PipelineItemError(str(exc), record_id=item.record_id, stage=stage, aweme_id=item.aweme_id)
        logger.warning("Item failed", stage=stage, aweme_id=item.aweme_id, record_id=item.record_id,
                       error_code=error.error_code.value, error=str(exc))
        return item.fail(stages.describe_error(stage, str(exc), error.error_code))

    # Reconciliation

    async def reconcile(
        self, table: TableInterface, transcript_field_id: str, items: List[ProcessingItem]
    ) -> List[ProcessingItem]:
        """Write finished transcripts back and settle every item as completed or failed."""
        writable = [item for item in items if item.is_writable]
        updates = [RecordUpdate(item.record_id, {transcript_field_id: item.final_text}) for item in writable]
        self._report(STAGE_WRITE, 0, len(updates))
        write = await self.writer.write(table, updates=updates)
        rejected = set(write.failed_update_ids)
        self._report(STAGE_WRITE, write.updated, len(updates))

        settled: List[ProcessingItem] = []
        for item in items:
            if item.is_writable and item.record_id not in rejected:
                settled.append(item.advance(ItemStatus.COMPLETED))
            elif item.is_writable:
                settled.append(item.fail(stages.describe_error(STAGE_WRITE, "transcript update rejected")))
            elif not item.status.is_terminal:
                settled.append(item.fail(stages.describe_error(item.status.value, "finished without a transcript")))
            else:
                settled.append(item)
        return settled

    def check_credentials(self) -> None:
        """
        Raises:
            ValidationError: the transcript client has no username or passtoken
        """
        validate_credentials(self.client.username, self.client.passtoken)

    async def run_table(self, table: TableInterface) -> PipelineResult:
        self.check_credentials()
        name = await table.get_name()
        result = PipelineResult(table_id=table.table_id, table_name=name)
        columns = await self.resolve_columns(table)
        items = await self.build_items(table, columns)
        result.total = len(items)
        if not items:
            logger.info("No rows without transcript", table=name)
            return result

        logger.info("Starting transcript pipeline", table=name, items=len(items))
        items = await self.process(items)
        items = await self.reconcile(table, columns.transcript, items)

        result.items = items
        result.succeeded = sum(1 for item in items if item.status is ItemStatus.COMPLETED)
        result.failed = sum(1 for item in items if item.status is ItemStatus.FAILED)
        self.metrics.increment_counter("items_written", result.succeeded)
        self.metrics.increment_counter("items_failed", result.failed)
        logger.info("Transcript pipeline finished", table=name, succeeded=result.succeeded, failed=result.failed)
        return result

    async def run_all_tables(
        self,
        datastore: DatastoreInterface,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, PipelineResult]:
        """Run the pipeline table by table; one table's failure never stops the rest."""
        self.check_credentials()
        results: Dict[str, PipelineResult] = {}
        for meta in await datastore.list_tables():
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Cancellation requested, stopping before table", table=meta.name)
                break
            try:
                table = await datastore.get_table(meta.table_id)
                results[meta.table_id] = await self.run_table(table)
            except SchemaError as e:
                logger.error("Skipping table", table=meta.name, error=str(e))
                results[meta.table_id] = PipelineResult(meta.table_id, meta.name, error=str(e))
            except Exception as e:
                logger.exception("Transcript pipeline failed for table", table=meta.name, error=str(e))
                results[meta.table_id] = PipelineResult(meta.table_id, meta.name, error=str(e))
        return results
