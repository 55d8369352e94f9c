"""
Wire models for the data-collection and transcript remote APIs.
"""

import math
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

ASR_EXIST_MARKER = "EXIST"


def canonicalize_id(raw: Any) -> str:
    """Return the dedup key for an external video id: trimmed and lower-cased."""
    if raw is None:
        return ""
    return str(raw).strip().lower()


def _coerce_count(value: Any) -> int:
    # Counters are trusted only when they are real, non-negative numbers
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)


class VideoRecord(BaseModel):
    """One scraped short video as returned by the data-collection API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    nickname: str = ""
    aweme_id: Optional[str] = None
    share_url: str = ""
    conv_create_time: Optional[Union[str, int, float]] = None
    desc: str = ""
    digg_count: int = 0
    collect_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    duration: int = 0  # milliseconds
    play_addr: str = ""
    audio_addr: str = ""
    video_text_ori: Optional[str] = None
    video_text_arr: Optional[str] = None

    @field_validator("nickname", "share_url", "desc", "play_addr", "audio_addr", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("aweme_id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        text = str(value)
        return text if text.strip() else None

    @field_validator("digg_count", "collect_count", "comment_count", "share_count", "duration", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        return _coerce_count(value)

    @field_validator("conv_create_time", mode="before")
    @classmethod
    def _raw_time(cls, value: Any) -> Optional[Union[str, int, float]]:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return None
        return value

    @field_validator("video_text_ori", "video_text_arr", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return value if isinstance(value, str) else str(value)

    @property
    def canonical_id(self) -> str:
        return canonicalize_id(self.aweme_id)

    @property
    def transcript(self) -> str:
        """Cleaned transcript when present, raw transcript otherwise."""
        return self.video_text_arr or self.video_text_ori or ""

    @property
    def duration_seconds(self) -> int:
        # Half-up rounding, so 60500 ms is 61 s
        return int(math.floor(self.duration / 1000 + 0.5))

    def to_row_values(self, publish_time_ms: Optional[int]) -> Dict[str, Any]:
        """Map this record onto logical column keys.

        The publish time is included only when it was normalized; the transcript only
        when the record carries text, so an existing transcript is never blanked.
        """
        values: Dict[str, Any] = {
            "aweme_id": str(self.aweme_id),
            "nickname": self.nickname,
            "share_url": self.share_url,
            "desc": self.desc,
            "digg_count": self.digg_count,
            "collect_count": self.collect_count,
            "comment_count": self.comment_count,
            "share_count": self.share_count,
            "duration": self.duration_seconds,
            "play_addr": self.play_addr,
            "audio_addr": self.audio_addr,
        }
        if publish_time_ms is not None:
            values["conv_create_time"] = publish_time_ms
        if self.transcript:
            values["video_text"] = self.transcript
        return values


class VideoDataResponse(BaseModel):
    """Envelope of a data-collection response: `videos` on success, `message`/`detail` on failure."""

    model_config = ConfigDict(extra="ignore")

    videos: Optional[List[Any]] = None
    message: Optional[str] = None
    detail: Optional[Any] = None

    @property
    def error_text(self) -> str:
        if self.message:
            return self.message
        if self.detail:
            return str(self.detail)
        return "unknown error"


class LlmTaskRef(BaseModel):
    """Reference to one LLM cleanup segment."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    chat_id: str

    @field_validator("conversation_id", "chat_id", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def is_exist_marker(self) -> bool:
        return self.conversation_id == ASR_EXIST_MARKER


LLM_EXIST_MARKER = (LlmTaskRef(conversation_id=ASR_EXIST_MARKER, chat_id=ASR_EXIST_MARKER),)


def is_llm_exist_marker(refs: Optional[Any]) -> bool:
    """True for the single-element "already cleaned" marker list."""
    if not refs or len(refs) != 1:
        return False
    return refs[0].is_exist_marker


class VideoTextPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    aweme_id: Optional[str] = None
    play_addr: Optional[str] = None
    audio_addr: Optional[str] = None
    video_text_ori: Optional[str] = None
    video_text_arr: Optional[str] = None
    asr_task_id: Optional[str] = None
    llm_task_id_list: Optional[List[LlmTaskRef]] = None
    status: Optional[str] = None

    @field_validator("aweme_id", "asr_task_id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)


class VideoTextApiResponse(BaseModel):
    """Response shared by the four transcript endpoints."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    videotext: Optional[VideoTextPayload] = None
    bonus_points_balance: Optional[float] = None
    recent_deducted_points: Optional[float] = None


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bonus_points_balance: float = 0
    recent_deducted_points: float = 0

    @field_validator("bonus_points_balance", "recent_deducted_points", mode="before")
    @classmethod
    def _zero_if_missing(cls, value: Any) -> float:
        return value or 0
