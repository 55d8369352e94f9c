"""
Client for the four transcript endpoints: submit/poll speech recognition and submit/poll text cleanup.

Every endpoint answers with a `VideoTextApiResponse`; this module reduces those
responses to the small result types the pipeline stages consume.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from common_py.error_codes import ErrorCode
from common_py.logging_config import configure_logging
from aweme_sync.clients.base_client import BaseApiClient
from aweme_sync.config_loader import config
from aweme_sync.models.processing_item import ProcessingItem
from aweme_sync.models.video import LlmTaskRef, VideoTextApiResponse, VideoTextPayload
from aweme_sync.services.exceptions import RemoteApiError

logger = configure_logging("aweme-sync:transcript_api_client", log_level=config.LOG_LEVEL)

ASR_SUBMIT_ENDPOINT = "/api/videotext/asr/submit"
ASR_RESULT_ENDPOINT = "/api/videotext/asr/result"
LLM_SUBMIT_ENDPOINT = "/api/videotext/llm/submit"
LLM_RESULT_ENDPOINT = "/api/videotext/llm/result"

FAILED_STATUSES = {"failed", "error"}


class PollState(str, Enum):
    DONE = "done"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class AsrSubmission:
    task_ref: str
    inline_text: Optional[str] = None


@dataclass(frozen=True)
class LlmSubmission:
    refs: Tuple[LlmTaskRef, ...] = ()
    inline_text: Optional[str] = None


@dataclass(frozen=True)
class PollResult:
    state: PollState
    text: Optional[str] = None
    error: Optional[str] = None


class TranscriptApiClient(BaseApiClient):
    """One request per item; the shared limiter lives in the pipeline, not here."""

    def _parse(self, data, endpoint: str) -> VideoTextPayload:
        response = VideoTextApiResponse.model_validate(data if isinstance(data, dict) else {})
        if response.videotext is None:
            raise RemoteApiError(
                f"{endpoint} returned no videotext: {response.message or 'empty response'}",
                endpoint=endpoint,
                error_code=ErrorCode.MALFORMED_RESPONSE,
            )
        return response.videotext

    async def submit_asr(self, item: ProcessingItem) -> AsrSubmission:
        payload = {
            **self.credentials,
            "aweme_id": item.aweme_id,
            "play_addr": item.play_addr,
            "audio_addr": item.audio_addr,
            "duration": item.duration,
        }
        videotext = self._parse(await self.post_json(ASR_SUBMIT_ENDPOINT, payload), ASR_SUBMIT_ENDPOINT)
        if not videotext.asr_task_id:
            raise RemoteApiError(
                "ASR submission returned no task id",
                endpoint=ASR_SUBMIT_ENDPOINT,
                error_code=ErrorCode.MALFORMED_RESPONSE,
            )
        return AsrSubmission(task_ref=videotext.asr_task_id, inline_text=videotext.video_text_ori or None)

    async def poll_asr(self, item: ProcessingItem) -> PollResult:
        payload = {**self.credentials, "aweme_id": item.aweme_id, "asr_task_id": item.asr_task_ref}
        return await self._poll(ASR_RESULT_ENDPOINT, payload, text_attr="video_text_ori")

    async def submit_llm(self, item: ProcessingItem) -> LlmSubmission:
        payload = {**self.credentials, "aweme_id": item.aweme_id, "video_text_ori": item.transcript_raw}
        videotext = self._parse(await self.post_json(LLM_SUBMIT_ENDPOINT, payload), LLM_SUBMIT_ENDPOINT)
        refs = tuple(videotext.llm_task_id_list or ())
        return LlmSubmission(refs=refs, inline_text=videotext.video_text_arr or None)

    async def poll_llm(self, item: ProcessingItem, ref: LlmTaskRef) -> PollResult:
        payload = {
            **self.credentials,
            "aweme_id": item.aweme_id,
            "conversation_id": ref.conversation_id,
            "chat_id": ref.chat_id,
        }
        return await self._poll(LLM_RESULT_ENDPOINT, payload, text_attr="video_text_arr")

    async def _poll(self, endpoint: str, payload: dict, text_attr: str) -> PollResult:
        try:
            data = await self.post_json(endpoint, payload)
        except RemoteApiError as e:
            if e.status_code is not None and 400 <= e.status_code < 500 and not e.retryable:
                return PollResult(PollState.FAILED, error=str(e))
            # Transport trouble only costs this attempt
            logger.warning("Poll request failed, treating as pending", endpoint=endpoint,
                           aweme_id=payload.get("aweme_id"), error=str(e))
            return PollResult(PollState.PENDING, error=str(e))

        response = VideoTextApiResponse.model_validate(data if isinstance(data, dict) else {})
        videotext = response.videotext
        if videotext is not None:
            text = getattr(videotext, text_attr)
            if text:
                return PollResult(PollState.DONE, text=text)
            if (videotext.status or "").lower() in FAILED_STATUSES:
                return PollResult(PollState.FAILED, error=response.message or f"remote status {videotext.status}")
        return PollResult(PollState.PENDING)
