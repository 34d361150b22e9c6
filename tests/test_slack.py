"""Tests for Slack thread reading, posting and image download."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from slack_sdk.errors import SlackApiError

from threadscribe.extraction.schemas import Attachment
from threadscribe.slack.client import SlackMessenger, find_images_in_thread
from threadscribe.slack.downloader import SlackImageDownloader
from threadscribe.utils.errors import (
    MessageTooLongError,
    SlackImageDownloadError,
    SlackMessengerError,
)


def _api_error(code: str) -> SlackApiError:
    return SlackApiError(message=code, response={"ok": False, "error": code})


def test_find_images_skips_non_images_and_prefers_download_url():
    messages = [
        {"ts": "1.1", "text": "no files"},
        {
            "ts": "1.2",
            "files": [
                {
                    "id": "F1",
                    "name": "a.png",
                    "mimetype": "image/png",
                    "url_private": "https://files/F1",
                    "url_private_download": "https://files/F1/download",
                },
                {"id": "F2", "name": "b.pdf", "mimetype": "application/pdf"},
            ],
        },
        {"ts": "1.3", "files": [{"id": "F3", "name": "c.jpg", "mimetype": "image/jpeg"}]},
    ]

    images = find_images_in_thread(messages)

    assert [image.id for image in images] == ["F1", "F3"]
    assert images[0].source_ref == "https://files/F1/download"
    assert images[0].message_ts == "1.2"
    assert images[1].source_ref is None


async def test_get_thread_messages_follows_cursor():
    client = MagicMock()
    client.conversations_replies = AsyncMock(
        side_effect=[
            {"messages": [{"ts": "1"}], "has_more": True, "response_metadata": {"next_cursor": "c2"}},
            {"messages": [{"ts": "2"}], "has_more": False, "response_metadata": {"next_cursor": ""}},
        ]
    )

    messages = await SlackMessenger(client).get_thread_messages("C1", "1")

    assert [m["ts"] for m in messages] == ["1", "2"]
    assert client.conversations_replies.await_args_list[1].kwargs["cursor"] == "c2"


async def test_post_message_returns_ts():
    client = MagicMock()
    client.chat_postMessage = AsyncMock(return_value={"ok": True, "ts": "123.456"})

    ts = await SlackMessenger(client).post_message("C1", "1.1", "hello")

    assert ts == "123.456"
    assert client.chat_postMessage.await_args.kwargs["thread_ts"] == "1.1"


async def test_update_message_too_long_is_distinguishable():
    client = MagicMock()
    client.chat_update = AsyncMock(side_effect=_api_error("msg_too_long"))

    with pytest.raises(MessageTooLongError):
        await SlackMessenger(client).update_message("C1", "1.1", "x" * 50000)


async def test_other_update_errors_are_not_too_long():
    client = MagicMock()
    client.chat_update = AsyncMock(side_effect=_api_error("message_not_found"))

    with pytest.raises(SlackMessengerError) as excinfo:
        await SlackMessenger(client).update_message("C1", "1.1", "x")

    assert not isinstance(excinfo.value, MessageTooLongError)
    assert excinfo.value.details["error"] == "message_not_found"


def _attachment(url: str | None = "https://files.slack.com/F1/download") -> Attachment:
    return Attachment(id="F1", display_name="a.png", media_type="image/png", source_ref=url)


async def test_download_sends_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, content=b"\x89PNG fake")

    async with SlackImageDownloader(token="xoxb-1", transport=httpx.MockTransport(handler)) as d:
        content = await d.download_image(_attachment())

    assert content == b"\x89PNG fake"
    assert seen["auth"] == "Bearer xoxb-1"


async def test_download_http_error_is_wrapped():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))

    async with SlackImageDownloader(token="xoxb-1", transport=transport) as downloader:
        with pytest.raises(SlackImageDownloadError, match="HTTP 404"):
            await downloader.download_image(_attachment())


async def test_download_rejects_login_page():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"<!DOCTYPE html><html>login</html>")
    )

    async with SlackImageDownloader(token="xoxb-1", transport=transport) as downloader:
        with pytest.raises(SlackImageDownloadError, match="HTML"):
            await downloader.download_image(_attachment())


async def test_download_without_url_fails():
    transport = httpx.MockTransport(lambda request: httpx.Response(200))

    async with SlackImageDownloader(token="xoxb-1", transport=transport) as downloader:
        with pytest.raises(SlackImageDownloadError, match="No download URL"):
            await downloader.download_image(_attachment(url=None))
