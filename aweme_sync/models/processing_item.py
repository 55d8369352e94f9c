"""
Per-row state carried through the transcript task pipeline.

Items are immutable: every stage returns a new item via `advance`, which refuses
edges the state machine does not allow.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from aweme_sync.models.video import ASR_EXIST_MARKER, LlmTaskRef, is_llm_exist_marker
from aweme_sync.services.exceptions import InvalidTransitionError


class ItemStatus(str, Enum):
    PENDING = "pending"
    ASR_POSTING = "asr_posting"
    ASR_POLLING = "asr_polling"
    ASR_DONE = "asr_done"
    LLM_POSTING = "llm_posting"
    LLM_POLLING = "llm_polling"
    LLM_DONE = "llm_done"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


ALLOWED_TRANSITIONS: Dict[ItemStatus, FrozenSet[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.ASR_POSTING}),
    ItemStatus.ASR_POSTING: frozenset({ItemStatus.ASR_POLLING}),
    ItemStatus.ASR_POLLING: frozenset({ItemStatus.ASR_DONE}),
    ItemStatus.ASR_DONE: frozenset({ItemStatus.LLM_POSTING, ItemStatus.COMPLETED}),
    # Back to asr_done when the remote side declines cleanup
    ItemStatus.LLM_POSTING: frozenset({ItemStatus.LLM_POLLING, ItemStatus.ASR_DONE}),
    ItemStatus.LLM_POLLING: frozenset({ItemStatus.LLM_DONE}),
    ItemStatus.LLM_DONE: frozenset({ItemStatus.COMPLETED}),
    ItemStatus.COMPLETED: frozenset(),
    ItemStatus.FAILED: frozenset(),
}


def can_transition(current: ItemStatus, target: ItemStatus) -> bool:
    if target is ItemStatus.FAILED:
        return not current.is_terminal
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class ProcessingItem:
    """One destination row whose transcript column is empty."""

    record_id: str
    aweme_id: str
    play_addr: Optional[str] = None
    audio_addr: Optional[str] = None
    duration: Optional[float] = None
    status: ItemStatus = ItemStatus.PENDING
    asr_task_ref: Optional[str] = None
    # None until cleanup was accepted; segment order is submission order
    llm_task_refs: Optional[Tuple[LlmTaskRef, ...]] = None
    segment_texts: Tuple[Optional[str], ...] = ()
    transcript_raw: Optional[str] = None
    transcript_clean: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_media_source(self) -> bool:
        return bool(self.audio_addr or self.play_addr)

    @property
    def asr_exists(self) -> bool:
        return self.asr_task_ref == ASR_EXIST_MARKER

    @property
    def llm_exists(self) -> bool:
        return is_llm_exist_marker(self.llm_task_refs)

    @property
    def is_writable(self) -> bool:
        """True when the item holds a transcript that may be committed."""
        if self.status is ItemStatus.LLM_DONE:
            return bool(self.final_text)
        if self.status is ItemStatus.ASR_DONE and self.llm_task_refs is None:
            return bool(self.transcript_raw)
        return False

    @property
    def final_text(self) -> str:
        return self.transcript_clean or self.transcript_raw or ""

    def advance(self, status: ItemStatus, **changes) -> "ProcessingItem":
        if not can_transition(self.status, status):
            raise InvalidTransitionError(self.status.value, status.value, aweme_id=self.aweme_id)
        return replace(self, status=status, **changes)

    def fail(self, error: str) -> "ProcessingItem":
        return self.advance(ItemStatus.FAILED, error=error)

    def update(self, **changes) -> "ProcessingItem":
        """Copy with changed data fields; status is left as is."""
        if "status" in changes:
            raise ValueError("use advance() to change status")
        return replace(self, **changes)
