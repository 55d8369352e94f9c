"""
Shared fixtures for aweme-sync tests
"""
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

from common_py.metrics import MetricsCollector
from aweme_sync.clients.transcript_api_client import (
    AsrSubmission,
    LlmSubmission,
    PollResult,
    PollState,
)
from aweme_sync.datastore.memory_store import InMemoryDatastore, InMemoryTable
from aweme_sync.models.processing_item import ProcessingItem
from aweme_sync.models.schema import SCHEMA_BY_KEY
from aweme_sync.models.video import LlmTaskRef, VideoRecord
from aweme_sync.services.batch_writer import BatchWriter
from aweme_sync.services.concurrency_limiter import ConcurrencyLimiter
from aweme_sync.services.field_mapper import ensure_fields
from aweme_sync.services.transcript.task_pipeline import TaskPipeline


def make_video(aweme_id: Optional[str] = "7300000000000000001", nickname: str = "博主A", **overrides) -> Dict[str, Any]:
    """Raw data-collection API entry"""
    video = {
        "nickname": nickname,
        "aweme_id": aweme_id,
        "share_url": f"https://www.douyin.com/video/{aweme_id}",
        "conv_create_time": "20231005",
        "desc": f"video {aweme_id}",
        "digg_count": 120,
        "collect_count": 8,
        "comment_count": 15,
        "share_count": 3,
        "duration": 61500,
        "play_addr": f"https://cdn.example/{aweme_id}.mp4",
        "audio_addr": f"https://cdn.example/{aweme_id}.mp3",
    }
    video.update(overrides)
    return video


def make_records(count: int, nickname: str = "博主A", start: int = 1) -> List[VideoRecord]:
    return [
        VideoRecord.model_validate(make_video(f"73000000000{i:08d}", nickname=nickname))
        for i in range(start, start + count)
    ]


async def seed_table(datastore: InMemoryDatastore, name: str, rows: Sequence[Dict[str, Any]]) -> InMemoryTable:
    """Create a fully-columned table and insert rows given as {logical key: value}"""
    table_id = await datastore.create_table(name)
    table = await datastore.get_table(table_id)
    field_map = await ensure_fields(table, is_new_table=True)
    if rows:
        await table.add_records([
            {field_map.get(SCHEMA_BY_KEY[key].name): value for key, value in row.items()}
            for row in rows
        ])
    table.add_records_batches.clear()
    return table


class FakeVideoClient:
    """Stands in for VideoDataClient; each URL maps to records or an exception"""

    def __init__(self, batches: Optional[Dict[str, Union[List[VideoRecord], Exception]]] = None,
                 username: str = "user", passtoken: str = "token"):
        self.batches = batches or {}
        self.username = username
        self.passtoken = passtoken
        self.calls: List[str] = []

    async def fetch_videos(self, raw_url, platform=None, link_type=None, update_method=None, page_turns=None):
        self.calls.append(raw_url)
        batch = self.batches.get(raw_url, [])
        if isinstance(batch, Exception):
            raise batch
        return list(batch)


Scripted = Union[Any, Exception]


class FakeTranscriptClient:
    """
    Scripted transcript API keyed by aweme_id.

    Poll scripts are consumed in order; the last entry repeats once exhausted.
    """

    def __init__(self, username: str = "user", passtoken: str = "token"):
        self.username = username
        self.passtoken = passtoken
        self.asr_submit: Dict[str, Scripted] = {}
        self.asr_polls: Dict[str, List[PollResult]] = {}
        self.llm_submit: Dict[str, Scripted] = {}
        self.llm_polls: Dict[tuple, List[PollResult]] = {}
        self.calls: List[tuple] = []

    @staticmethod
    def _next(script: List[PollResult]) -> PollResult:
        if not script:
            return PollResult(PollState.PENDING)
        return script.pop(0) if len(script) > 1 else script[0]

    async def submit_asr(self, item: ProcessingItem) -> AsrSubmission:
        self.calls.append(("submit_asr", item.aweme_id))
        outcome = self.asr_submit.get(item.aweme_id, AsrSubmission(task_ref=f"asr-{item.aweme_id}"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def poll_asr(self, item: ProcessingItem) -> PollResult:
        self.calls.append(("poll_asr", item.aweme_id))
        return self._next(self.asr_polls.setdefault(
            item.aweme_id, [PollResult(PollState.DONE, text=f"raw {item.aweme_id}")]))

    async def submit_llm(self, item: ProcessingItem) -> LlmSubmission:
        self.calls.append(("submit_llm", item.aweme_id))
        outcome = self.llm_submit.get(item.aweme_id, LlmSubmission())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def poll_llm(self, item: ProcessingItem, ref: LlmTaskRef) -> PollResult:
        self.calls.append(("poll_llm", item.aweme_id, ref.conversation_id))
        return self._next(self.llm_polls.setdefault(
            (item.aweme_id, ref.conversation_id), [PollResult(PollState.PENDING)]))

    def count(self, name: str, aweme_id: Optional[str] = None) -> int:
        return sum(1 for call in self.calls if call[0] == name and (aweme_id is None or call[1] == aweme_id))


@pytest.fixture
def datastore():
    return InMemoryDatastore()


@pytest.fixture
def collector():
    """Isolated metrics so tests do not share counters"""
    return MetricsCollector()


@pytest.fixture
def transcript_client():
    return FakeTranscriptClient()


@pytest.fixture
def pipeline(transcript_client, collector):
    return TaskPipeline(
        transcript_client,
        limiter=ConcurrencyLimiter(3),
        writer=BatchWriter(chunk_size=500),
        asr_poll_interval_s=0,
        asr_max_attempts=3,
        llm_poll_interval_s=0,
        llm_max_attempts=3,
        metrics_collector=collector,
    )


@pytest.fixture
def video_factory():
    return make_video


@pytest.fixture
def records_factory():
    return make_records


@pytest.fixture
def seed(datastore):
    async def _seed(name: str, rows: Sequence[Dict[str, Any]] = ()) -> InMemoryTable:
        return await seed_table(datastore, name, rows)
    return _seed


@pytest.fixture
def video_client_factory():
    return FakeVideoClient
