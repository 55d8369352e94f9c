"""Unit tests for VideoDataClient."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from common_py.error_codes import ErrorCode
from aweme_sync.clients.video_data_client import VideoDataClient, split_input_urls, validate_credentials
from aweme_sync.services.exceptions import RemoteApiError, ValidationError

pytestmark = pytest.mark.unit


@pytest.fixture
def video_client():
    return VideoDataClient(base_url="https://api.test", username="u", passtoken="p", backoff_base_s=0)


class TestInputHandling:
    def test_split_input_urls(self):
        text = "  https://a.test/1 \n\n https://a.test/2\n   "
        assert split_input_urls(text) == ["https://a.test/1", "https://a.test/2"]

    def test_empty_input_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            split_input_urls(" \n ")
        assert exc_info.value.error_code is ErrorCode.MISSING_INPUT_URL

    def test_credentials_required(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_credentials("u", "")
        assert exc_info.value.error_code is ErrorCode.MISSING_CREDENTIALS
        validate_credentials("u", "p")


class TestFetchVideos:
    @pytest.mark.asyncio
    async def test_request_body_and_parsing(self, video_client, video_factory):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"videos": [video_factory("1"), video_factory("2")]})
            records = await video_client.fetch_videos(
                "https://www.douyin.com/user/abc", platform="douyin",
                link_type="homepage", update_method="extract", page_turns=99)

        assert [r.aweme_id for r in records] == ["1", "2"]
        assert mock_post.call_args.args[0] == "https://api.test/api/video/douyin-data"
        assert mock_post.call_args.kwargs["json"] == {
            "username": "u",
            "passtoken": "p",
            "platform": "douyin",
            "url_type": "homepage",
            "url_process_type": "extract",
            "page_turns": 99,
            "raw_url_inputs": "https://www.douyin.com/user/abc",
        }

    @pytest.mark.asyncio
    async def test_tiktok_endpoint(self, video_client):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"videos": []})
            assert await video_client.fetch_videos("https://tiktok.com/@x", platform="tiktok") == []
        assert mock_post.call_args.args[0].endswith("/api/video/tiktok-data")

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, video_client, video_factory):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"videos": [video_factory("1"), "garbage", 42]})
            records = await video_client.fetch_videos("https://a.test", platform="douyin")
        assert [r.aweme_id for r in records] == ["1"]

    @pytest.mark.asyncio
    async def test_missing_videos_is_an_error(self, video_client):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"message": "homepage not found"})
            with pytest.raises(RemoteApiError) as exc_info:
                await video_client.fetch_videos("https://a.test", platform="douyin")
        assert "homepage not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unknown_platform_never_calls_api(self, video_client):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(ValidationError):
                await video_client.fetch_videos("https://a.test", platform="kuaishou")
        mock_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credentials_never_call_api(self):
        client = VideoDataClient(base_url="https://api.test", username="", passtoken="")
        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(ValidationError):
                await client.fetch_videos("https://a.test", platform="douyin")
        mock_post.assert_not_awaited()


class TestUserInfo:
    @pytest.mark.asyncio
    async def test_balance(self, video_client):
        with patch.object(video_client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(
                200, json={"bonus_points_balance": 88.5, "recent_deducted_points": 1.5})
            info = await video_client.get_user_info()

        assert info.bonus_points_balance == 88.5
        assert info.recent_deducted_points == 1.5
        assert mock_post.call_args.args[0] == "https://api.test/api/user/getUserInfo"
        assert mock_post.call_args.kwargs["json"] == {"username": "u", "passtoken": "p"}
