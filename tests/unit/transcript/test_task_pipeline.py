"""Unit tests for the four-stage transcript pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from common_py.error_codes import ErrorCode
from aweme_sync.clients.transcript_api_client import (
    AsrSubmission,
    LlmSubmission,
    PollResult,
    PollState,
    TranscriptApiClient,
)
from aweme_sync.models.processing_item import ItemStatus
from aweme_sync.models.schema import TRANSCRIPT_FIELD
from aweme_sync.models.video import LLM_EXIST_MARKER, LlmTaskRef
from aweme_sync.services.cancellation import CancellationToken
from aweme_sync.services.exceptions import RemoteApiError, ValidationError
from aweme_sync.services.field_mapper import ensure_fields
from aweme_sync.services.transcript.task_pipeline import TaskPipeline

pytestmark = pytest.mark.unit

SEGMENTS = tuple(LlmTaskRef(conversation_id=f"c{i}", chat_id=f"h{i}") for i in range(1, 4))


def video_row(aweme_id, **extra):
    row = {"aweme_id": aweme_id, "audio_addr": f"https://cdn.example/{aweme_id}.mp3", "duration": 30}
    row.update(extra)
    return row


def transcript_of(table, aweme_id):
    id_field = table.field_id("视频编号")
    text_field = table.field_id(TRANSCRIPT_FIELD.name)
    for values in table.records.values():
        if values.get(id_field) == aweme_id:
            return values.get(text_field)
    raise KeyError(aweme_id)


def status_of(result, aweme_id):
    return next(item for item in result.items if item.aweme_id == aweme_id).status


class TestRunTable:
    @pytest.mark.asyncio
    async def test_raw_transcript_written_when_no_cleanup(self, seed, pipeline, collector):
        table = await seed("t", [video_row("a"), video_row("b")])
        result = await pipeline.run_table(table)

        assert (result.total, result.succeeded, result.failed) == (2, 2, 0)
        assert transcript_of(table, "a") == "raw a"
        assert status_of(result, "a") is ItemStatus.COMPLETED
        assert collector.get_counter("items_written") == 2

    @pytest.mark.asyncio
    async def test_rows_with_transcript_are_left_alone(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a", video_text="done"), video_row("b")])
        result = await pipeline.run_table(table)

        assert result.total == 1
        assert transcript_client.count("submit_asr", "a") == 0
        assert transcript_of(table, "a") == "done"

    @pytest.mark.asyncio
    async def test_cleaned_segments_joined_in_order(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a")])
        transcript_client.llm_submit["a"] = LlmSubmission(refs=SEGMENTS)
        transcript_client.llm_polls[("a", "c1")] = [PollResult(PollState.PENDING), PollResult(PollState.DONE, text="one ")]
        transcript_client.llm_polls[("a", "c2")] = [PollResult(PollState.DONE, text="two ")]
        transcript_client.llm_polls[("a", "c3")] = [PollResult(PollState.DONE, text="three")]

        result = await pipeline.run_table(table)

        assert result.succeeded == 1
        assert transcript_of(table, "a") == "one two three"

    @pytest.mark.asyncio
    async def test_one_failed_segment_fails_whole_item(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a"), video_row("b")])
        transcript_client.llm_submit["a"] = LlmSubmission(refs=SEGMENTS)
        transcript_client.llm_polls[("a", "c1")] = [PollResult(PollState.DONE, text="one")]
        transcript_client.llm_polls[("a", "c2")] = [PollResult(PollState.FAILED, error="model error")]
        transcript_client.llm_polls[("a", "c3")] = [PollResult(PollState.DONE, text="three")]

        result = await pipeline.run_table(table)

        assert status_of(result, "a") is ItemStatus.FAILED
        assert transcript_of(table, "a") is None
        assert transcript_of(table, "b") == "raw b"
        assert (result.succeeded, result.failed) == (1, 1)

    @pytest.mark.asyncio
    async def test_exist_sentinel_skips_duplicate_task(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a")])
        transcript_client.asr_submit["a"] = AsrSubmission(task_ref="EXIST", inline_text="existing text")

        result = await pipeline.run_table(table)

        assert transcript_client.count("submit_asr", "a") == 1
        assert transcript_client.count("poll_asr", "a") == 0
        assert result.items[0].asr_task_ref == "EXIST"
        assert transcript_of(table, "a") == "existing text"

    @pytest.mark.asyncio
    async def test_exist_sentinel_without_text_polls_once(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a")])
        transcript_client.asr_submit["a"] = AsrSubmission(task_ref="EXIST")

        result = await pipeline.run_table(table)

        assert transcript_client.count("submit_asr", "a") == 1
        assert transcript_client.count("poll_asr", "a") == 1
        assert result.succeeded == 1

    @pytest.mark.asyncio
    async def test_llm_exist_marker_uses_inline_text(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a")])
        transcript_client.llm_submit["a"] = LlmSubmission(refs=LLM_EXIST_MARKER, inline_text="cleaned")

        await pipeline.run_table(table)

        assert transcript_client.count("poll_llm") == 0
        assert transcript_of(table, "a") == "cleaned"

    @pytest.mark.asyncio
    async def test_submission_failure_only_fails_that_item(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a"), video_row("b")])
        transcript_client.asr_submit["a"] = RemoteApiError("insufficient points", status_code=400)

        result = await pipeline.run_table(table)

        assert status_of(result, "a") is ItemStatus.FAILED
        assert "insufficient points" in result.items[0].error
        assert transcript_of(table, "b") == "raw b"

    @pytest.mark.asyncio
    async def test_poll_attempts_are_bounded(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row("a")])
        transcript_client.asr_polls["a"] = [PollResult(PollState.PENDING)]

        result = await pipeline.run_table(table)

        assert transcript_client.count("poll_asr", "a") == 3
        assert result.failed == 1
        assert "BUSINESS_3004" in result.items[0].error

    @pytest.mark.asyncio
    async def test_row_without_media_fails(self, seed, pipeline, transcript_client):
        table = await seed("t", [{"aweme_id": "a"}])
        result = await pipeline.run_table(table)

        assert result.failed == 1
        assert transcript_client.count("submit_asr") == 0

    @pytest.mark.asyncio
    async def test_stages_run_in_order_across_items(self, seed, pipeline, transcript_client):
        table = await seed("t", [video_row(f"v{i}") for i in range(5)])
        await pipeline.run_table(table)

        names = [call[0] for call in transcript_client.calls]
        assert max(i for i, n in enumerate(names) if n == "submit_asr") < min(
            i for i, n in enumerate(names) if n == "poll_asr")
        assert max(i for i, n in enumerate(names) if n == "poll_asr") < min(
            i for i, n in enumerate(names) if n == "submit_llm")

    @pytest.mark.asyncio
    async def test_rejected_write_fails_item(self, seed, pipeline):
        table = await seed("t", [video_row("a"), video_row("b")])
        bad = list(table.records)[0]
        table.fail_set_record_ids = {bad}

        result = await pipeline.run_table(table)

        assert (result.succeeded, result.failed) == (1, 1)
        assert transcript_of(table, "b") == "raw b"

    @pytest.mark.asyncio
    async def test_progress_reports(self, seed, pipeline):
        calls = []
        pipeline.progress = lambda stage, done, total, attempt: calls.append((stage, done, total, attempt))
        table = await seed("t", [video_row("a")])

        await pipeline.run_table(table)

        assert ("submit_asr", 1, 1, 1) in calls
        assert ("poll_asr", 1, 1, 1) in calls
        assert ("write", 1, 1, 1) in calls


class TestRunAllTables:
    @pytest.mark.asyncio
    async def test_table_missing_transcript_column_is_skipped(self, seed, datastore, pipeline):
        good = await seed("good", [video_row("a")])
        bad_id = await datastore.create_table("bad")
        bad = await datastore.get_table(bad_id)
        bad.fail_add_field_names = {TRANSCRIPT_FIELD.name}
        await ensure_fields(bad, is_new_table=True)

        results = await pipeline.run_all_tables(datastore)

        assert results[good.table_id].succeeded == 1
        assert "文案" in results[bad_id].error

    @pytest.mark.asyncio
    async def test_one_table_crash_does_not_stop_others(self, seed, datastore, pipeline):
        broken = await seed("broken", [video_row("a")])
        ok = await seed("ok", [video_row("b")])

        async def explode():
            raise RuntimeError("listing failed")
        broken.list_record_ids = explode

        results = await pipeline.run_all_tables(datastore)

        assert results[broken.table_id].error == "listing failed"
        assert results[ok.table_id].succeeded == 1

    @pytest.mark.asyncio
    async def test_cancellation_stops_between_tables(self, seed, datastore, pipeline):
        await seed("one", [video_row("a")])
        token = CancellationToken()
        token.cancel()

        assert await pipeline.run_all_tables(datastore, token) == {}


class TestCredentials:
    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_any_request(self, seed, datastore, pipeline, transcript_client):
        table = await seed("one", [video_row("a")])
        transcript_client.passtoken = ""

        with pytest.raises(ValidationError):
            await pipeline.run_all_tables(datastore)
        with pytest.raises(ValidationError):
            await pipeline.run_table(table)

        assert transcript_client.calls == []
        assert transcript_of(table, "a") is None

    @pytest.mark.asyncio
    async def test_http_client_without_credentials_sends_nothing(self, seed, datastore):
        await seed("one", [video_row("a")])
        client = TranscriptApiClient(base_url="https://api.example", username="", passtoken="")
        pipeline = TaskPipeline(client, asr_poll_interval_s=0, llm_poll_interval_s=0)

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(ValidationError) as exc_info:
                await pipeline.run_all_tables(datastore)

        assert exc_info.value.error_code is ErrorCode.MISSING_CREDENTIALS
        mock_post.assert_not_awaited()
        await client.close()
