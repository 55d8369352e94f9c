"""Client for the per-platform data-collection API."""

from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from common_py.error_codes import ErrorCode
from common_py.logging_config import configure_logging
from aweme_sync.clients.base_client import BaseApiClient
from aweme_sync.config_loader import config
from aweme_sync.models.video import UserInfo, VideoDataResponse, VideoRecord
from aweme_sync.services.exceptions import RemoteApiError, ValidationError

logger = configure_logging("aweme-sync:video_data_client", log_level=config.LOG_LEVEL)

PLATFORM_ENDPOINTS = {
    "douyin": "/api/video/douyin-data",
    "tiktok": "/api/video/tiktok-data",
}
USER_INFO_ENDPOINT = "/api/user/getUserInfo"


def split_input_urls(text: Optional[str]) -> List[str]:
    """Split user-entered URLs (one per line) into trimmed, non-empty entries."""
    urls = [line.strip() for line in (text or "").splitlines() if line.strip()]
    if not urls:
        raise ValidationError("At least one input URL is required", field="INPUT_URLS",
                              error_code=ErrorCode.MISSING_INPUT_URL)
    return urls


def validate_credentials(username: Optional[str], passtoken: Optional[str]) -> None:
    if not username or not passtoken:
        raise ValidationError("Username and passtoken are required", field="API_USERNAME",
                              error_code=ErrorCode.MISSING_CREDENTIALS)


def endpoint_for_platform(platform: str) -> str:
    try:
        return PLATFORM_ENDPOINTS[platform]
    except KeyError:
        raise ValidationError(f"Unsupported platform: {platform}", field="PLATFORM",
                              error_code=ErrorCode.UNSUPPORTED_PLATFORM) from None


class VideoDataClient(BaseApiClient):
    """Fetches scraped video batches and account balance from the data-collection API."""

    async def fetch_videos(
        self,
        raw_url: str,
        platform: Optional[str] = None,
        link_type: Optional[str] = None,
        update_method: Optional[str] = None,
        page_turns: Optional[int] = None,
    ) -> List[VideoRecord]:
        """
        Fetch the videos behind one homepage or video URL.

        Args:
            raw_url: A single user-entered URL
            platform: "douyin" or "tiktok"
            link_type: "homepage" or "videourl"
            update_method: "extract" or "update"
            page_turns: 1 for the latest page, 99 for the whole feed

        Returns:
            Parsed records; entries that fail validation are skipped with a warning
        """
        platform = platform or config.PLATFORM
        path = endpoint_for_platform(platform)
        validate_credentials(self.username, self.passtoken)

        payload = {
            **self.credentials,
            "platform": platform,
            "url_type": link_type or config.LINK_TYPE,
            "url_process_type": update_method or config.UPDATE_METHOD,
            "page_turns": page_turns if page_turns is not None else config.PAGE_TURNS,
            "raw_url_inputs": raw_url,
        }
        logger.info("Fetching videos", platform=platform, url=raw_url)
        data = await self.post_json(path, payload)

        envelope = VideoDataResponse.model_validate(data if isinstance(data, dict) else {})
        if envelope.videos is None:
            raise RemoteApiError(
                f"Data request failed: {envelope.error_text}",
                endpoint=path,
                error_code=ErrorCode.MALFORMED_RESPONSE,
            )

        records: List[VideoRecord] = []
        for index, raw in enumerate(envelope.videos):
            try:
                records.append(VideoRecord.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning("Skipping malformed video entry", index=index, error=str(e))
        logger.info("Fetched videos", platform=platform, url=raw_url, count=len(records))
        return records

    async def get_user_info(self) -> UserInfo:
        validate_credentials(self.username, self.passtoken)
        data = await self.post_json(USER_INFO_ENDPOINT, self.credentials)
        info = UserInfo.model_validate(data if isinstance(data, dict) else {})
        logger.info(
            "Fetched account balance",
            bonus_points_balance=info.bonus_points_balance,
            recent_deducted_points=info.recent_deducted_points,
        )
        return info
