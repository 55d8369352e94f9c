"""Unit tests for NotificationClient."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from aweme_sync.clients.notification_client import SUBSCRIBE_MESSAGE_ENDPOINT, NotificationClient

pytestmark = pytest.mark.unit


@pytest.fixture
def notifier():
    return NotificationClient(webhook_url="https://hooks.example/bot", template_id="tpl", template_version="1.0.2",
                              base_url="https://api.test", username="u", passtoken="p",
                              max_attempts=1, backoff_base_s=0)


class TestNotifyNewVideos:
    @pytest.mark.asyncio
    async def test_payload(self, notifier):
        with patch.object(notifier.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"message": "sent"})
            assert await notifier.notify_new_videos(["a", "b"]) is True

        assert mock_post.call_args.args[0] == f"https://api.test{SUBSCRIBE_MESSAGE_ENDPOINT}"
        assert mock_post.call_args.kwargs["json"] == {
            "username": "u",
            "passtoken": "p",
            "botWebURL": "https://hooks.example/bot",
            "template_id": "tpl",
            "template_version_name": "1.0.2",
            "aweme_ids": ["a", "b"],
        }

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, notifier):
        with patch.object(notifier.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(500, text="down")
            assert await notifier.notify_new_videos(["a"]) is False

    @pytest.mark.asyncio
    async def test_nothing_to_send(self, notifier):
        with patch.object(notifier.client, "post", new_callable=AsyncMock) as mock_post:
            assert await notifier.notify_new_videos([]) is False
        mock_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_webhook_configured(self):
        client = NotificationClient(webhook_url="", base_url="https://api.test", username="u", passtoken="p")
        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            assert await client.notify_new_videos(["a"]) is False
        mock_post.assert_not_awaited()
