"""Slack image downloader with authentication."""

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from threadscribe.config import get_settings
from threadscribe.extraction.schemas import Attachment
from threadscribe.utils.errors import SlackImageDownloadError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

# Max file size to download (20MB, the vision API's own ceiling)
MAX_FILE_SIZE_BYTES = 20 * 1024 * 1024


class _TransientDownloadError(Exception):
    """Network or 5xx failure worth another attempt."""


class SlackImageDownloader:
    """Downloads thread images from Slack using the bot token.

    Requires the files:read scope on the token.
    """

    def __init__(
        self,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token = token or get_settings().slack_bot_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SlackImageDownloader":
        self._client = httpx.AsyncClient(
            timeout=30.0,
            follow_redirects=True,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._token}"},
        )
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def download_image(self, attachment: Attachment) -> bytes:
        """Download an image from Slack.

        Args:
            attachment: The Slack file to fetch.

        Returns:
            Raw image bytes.

        Raises:
            SlackImageDownloadError: If download fails.
        """
        if not self._client:
            raise SlackImageDownloadError(
                "Client not initialized. Use async context manager."
            )

        if not attachment.source_ref:
            raise SlackImageDownloadError(
                "No download URL for image",
                details={"file_id": attachment.id},
            )

        logger.info(
            "downloading_slack_image",
            file_id=attachment.id,
            file_name=attachment.display_name,
            file_type=attachment.media_type,
        )

        try:
            content = await self._fetch(attachment.source_ref)
        except _TransientDownloadError as e:
            logger.error("image_download_error", file_id=attachment.id, error=str(e))
            raise SlackImageDownloadError(
                f"Request failed: {e}",
                details={"file_id": attachment.id},
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "image_download_failed",
                file_id=attachment.id,
                status_code=e.response.status_code,
            )
            raise SlackImageDownloadError(
                f"HTTP {e.response.status_code} downloading image",
                details={"file_id": attachment.id, "status": e.response.status_code},
            ) from e

        # Slack answers an expired or unauthorized link with its HTML login page
        if content[:15].lstrip().lower().startswith((b"<!doctype", b"<html")):
            raise SlackImageDownloadError(
                "Slack returned an HTML page instead of the image",
                details={"file_id": attachment.id},
            )

        if len(content) > MAX_FILE_SIZE_BYTES:
            raise SlackImageDownloadError(
                f"File too large: {len(content)} bytes (max {MAX_FILE_SIZE_BYTES})",
                details={"file_id": attachment.id},
            )

        logger.info(
            "image_downloaded",
            file_id=attachment.id,
            size_bytes=len(content),
        )

        return content

    @retry(
        retry=retry_if_exception_type(_TransientDownloadError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch(self, url: str) -> bytes:
        try:
            response = await self._client.get(url)
        except httpx.RequestError as e:
            raise _TransientDownloadError(str(e)) from e

        if response.status_code >= 500:
            raise _TransientDownloadError(f"HTTP {response.status_code}")

        response.raise_for_status()
        return response.content
