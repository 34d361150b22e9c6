"""Slack Web API access: thread reading and message posting."""

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from threadscribe.config import get_settings
from threadscribe.extraction.schemas import Attachment
from threadscribe.utils.errors import MessageTooLongError, SlackMessengerError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

# Slack error codes meaning the text itself was too long
TOO_LONG_ERRORS = frozenset({"msg_too_long", "msg_blocks_too_long"})

REPLIES_PAGE_SIZE = 200


def find_images_in_thread(messages: list[dict]) -> list[Attachment]:
    """Collect image attachments from thread messages, in thread order."""
    images: list[Attachment] = []

    for message in messages:
        for file_info in message.get("files") or []:
            attachment = Attachment.from_slack_file(file_info, message.get("ts"))
            if attachment.is_image:
                images.append(attachment)

    return images


class SlackMessenger:
    """Posts into and reads from Slack threads with the bot token."""

    def __init__(self, client: AsyncWebClient | None = None):
        self._client = client or AsyncWebClient(token=get_settings().slack_bot_token)

    async def get_thread_messages(self, channel: str, thread_ts: str) -> list[dict]:
        """Fetch every message of a thread, root included.

        Args:
            channel: Channel ID.
            thread_ts: Timestamp of the thread's root message.

        Returns:
            Raw Slack message dicts in thread order.
        """
        messages: list[dict] = []
        cursor: str | None = None

        while True:
            result = await self._client.conversations_replies(
                channel=channel,
                ts=thread_ts,
                inclusive=True,
                limit=REPLIES_PAGE_SIZE,
                cursor=cursor,
            )
            messages.extend(result.get("messages") or [])

            cursor = (result.get("response_metadata") or {}).get("next_cursor")
            if not result.get("has_more") or not cursor:
                break

        logger.info(
            "thread_messages_fetched",
            channel=channel,
            thread_ts=thread_ts,
            message_count=len(messages),
        )
        return messages

    async def post_message(self, channel: str, thread_ts: str, text: str) -> str:
        """Post a reply into a thread.

        Returns:
            Timestamp of the new message, used as its handle.

        Raises:
            MessageTooLongError: If Slack rejects the text as too long.
            SlackMessengerError: On any other Slack API failure.
        """
        try:
            result = await self._client.chat_postMessage(
                channel=channel,
                thread_ts=thread_ts,
                text=text,
                mrkdwn=True,
            )
        except SlackApiError as e:
            raise _translate_error(e, "chat.postMessage", channel) from e
        return result["ts"]

    async def update_message(self, channel: str, message_ts: str, text: str) -> None:
        """Replace the text of an existing message.

        Raises:
            MessageTooLongError: If Slack rejects the text as too long.
            SlackMessengerError: On any other Slack API failure.
        """
        try:
            await self._client.chat_update(channel=channel, ts=message_ts, text=text)
        except SlackApiError as e:
            raise _translate_error(e, "chat.update", channel) from e


def _translate_error(e: SlackApiError, method: str, channel: str) -> SlackMessengerError:
    code = e.response.get("error", "unknown_error") if e.response is not None else "unknown_error"
    logger.warning("slack_api_error", method=method, channel=channel, error=code)

    if code in TOO_LONG_ERRORS:
        return MessageTooLongError(
            f"Slack rejected message: {code}",
            details={"error": code, "method": method},
        )
    return SlackMessengerError(
        f"Slack {method} failed: {code}",
        details={"error": code, "method": method},
    )
