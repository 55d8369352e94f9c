"""
Pure transition functions for the transcript pipeline.

Each takes a ProcessingItem plus whatever the remote side answered and returns the
next item. No I/O happens here.
"""

from typing import Optional

from common_py.error_codes import ErrorCode
from aweme_sync.clients.transcript_api_client import AsrSubmission, LlmSubmission, PollResult, PollState
from aweme_sync.models.processing_item import ItemStatus, ProcessingItem
from aweme_sync.models.video import is_llm_exist_marker


def describe_error(stage: str, message: str, code: Optional[ErrorCode] = None) -> str:
    prefix = f"[{code.value}] " if code else ""
    return f"{prefix}{stage}: {message}"


def begin_asr(item: ProcessingItem) -> ProcessingItem:
    if not item.has_media_source:
        return item.fail(describe_error("submit_asr", "no audio or video source", ErrorCode.NO_MEDIA_SOURCE))
    return item.advance(ItemStatus.ASR_POSTING)


def apply_asr_submission(item: ProcessingItem, submission: AsrSubmission) -> ProcessingItem:
    item = item.advance(ItemStatus.ASR_POLLING, asr_task_ref=submission.task_ref)
    if item.asr_exists and submission.inline_text:
        item = item.update(transcript_raw=submission.inline_text)
    return item


def resolve_existing_asr(item: ProcessingItem) -> Optional[ProcessingItem]:
    """An EXIST task that already carried its text needs no polling."""
    if item.status is ItemStatus.ASR_POLLING and item.asr_exists and item.transcript_raw:
        return item.advance(ItemStatus.ASR_DONE)
    return None


def apply_asr_poll(item: ProcessingItem, result: PollResult, attempt: int, max_attempts: int) -> ProcessingItem:
    if result.state is PollState.DONE:
        return item.advance(ItemStatus.ASR_DONE, transcript_raw=result.text)
    if result.state is PollState.FAILED:
        return item.fail(describe_error("poll_asr", result.error or "remote task failed", ErrorCode.TASK_FAILED))
    if attempt >= max_attempts:
        return item.fail(describe_error(
            "poll_asr", f"no result after {attempt} attempts", ErrorCode.POLL_ATTEMPTS_EXHAUSTED))
    return item


def begin_llm(item: ProcessingItem) -> ProcessingItem:
    return item.advance(ItemStatus.LLM_POSTING)


def apply_llm_submission(item: ProcessingItem, submission: LlmSubmission) -> ProcessingItem:
    refs = tuple(submission.refs)
    if not refs:
        # Cleanup declined: the raw transcript is final
        return item.advance(ItemStatus.ASR_DONE, llm_task_refs=None)
    item = item.advance(ItemStatus.LLM_POLLING, llm_task_refs=refs, segment_texts=(None,) * len(refs))
    if is_llm_exist_marker(refs) and submission.inline_text:
        item = item.update(transcript_clean=submission.inline_text)
    return item


def resolve_existing_llm(item: ProcessingItem) -> Optional[ProcessingItem]:
    if item.status is ItemStatus.LLM_POLLING and item.llm_exists and item.transcript_clean:
        return item.advance(ItemStatus.LLM_DONE)
    return None


def apply_llm_segment_poll(
    item: ProcessingItem,
    position: int,
    result: PollResult,
    attempt: int,
    max_attempts: int,
) -> ProcessingItem:
    """Record one segment's poll outcome. Any failed segment fails the whole item."""
    if item.status is not ItemStatus.LLM_POLLING:
        return item
    total = len(item.segment_texts)
    if result.state is PollState.FAILED:
        return item.fail(describe_error(
            "poll_llm", f"segment {position + 1}/{total} failed: {result.error or 'remote task failed'}",
            ErrorCode.TASK_FAILED))
    if result.state is PollState.PENDING:
        if attempt >= max_attempts:
            return item.fail(describe_error(
                "poll_llm", f"segment {position + 1}/{total} has no result after {attempt} attempts",
                ErrorCode.POLL_ATTEMPTS_EXHAUSTED))
        return item

    texts = list(item.segment_texts)
    texts[position] = result.text or ""
    item = item.update(segment_texts=tuple(texts))
    if all(text is not None for text in texts):
        return item.advance(ItemStatus.LLM_DONE, transcript_clean="".join(texts))
    return item


def pending_segments(item: ProcessingItem):
    """(position, ref) pairs still waiting for text, in submission order."""
    if item.status is not ItemStatus.LLM_POLLING or not item.llm_task_refs:
        return []
    return [
        (position, ref)
        for position, ref in enumerate(item.llm_task_refs)
        if item.segment_texts[position] is None
    ]
