from typing import List, Optional

from common_py.logging_config import configure_logging
from aweme_sync.clients.base_client import BaseApiClient
from aweme_sync.config_loader import config
from aweme_sync.services.exceptions import RemoteApiError

logger = configure_logging("aweme-sync:notification_client", log_level=config.LOG_LEVEL)

SUBSCRIBE_MESSAGE_ENDPOINT = "/api/video/subscribe-message"


class NotificationClient(BaseApiClient):
    """Sends the "new videos" webhook message. Fire-and-log: failures are reported, never raised."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        template_id: Optional[str] = None,
        template_version: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.webhook_url = webhook_url if webhook_url is not None else config.WEBHOOK_URL
        self.template_id = template_id or config.TEMPLATE_ID
        self.template_version = template_version or config.TEMPLATE_VERSION

    async def notify_new_videos(self, aweme_ids: List[str]) -> bool:
        if not aweme_ids:
            return False
        if not self.webhook_url:
            logger.warning("No webhook configured, skipping notification", count=len(aweme_ids))
            return False

        payload = {
            **self.credentials,
            "botWebURL": self.webhook_url,
            "template_id": self.template_id,
            "template_version_name": self.template_version,
            "aweme_ids": list(aweme_ids),
        }
        try:
            await self.post_json(SUBSCRIBE_MESSAGE_ENDPOINT, payload)
        except RemoteApiError as e:
            logger.error("Failed to send new-video notification", count=len(aweme_ids), error=str(e))
            return False
        logger.info("Sent new-video notification", count=len(aweme_ids))
        return True
