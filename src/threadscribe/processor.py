"""End-to-end processing of one Slack thread: find images, extract text, reply."""

import asyncio
from enum import Enum
from typing import Callable

from pydantic import BaseModel

from threadscribe.composer import limit_note, publish_chunked, publish_truncated, render_results
from threadscribe.config import Settings, get_settings
from threadscribe.extraction.extractor import ImageTextExtractor
from threadscribe.extraction.schemas import Attachment, ExtractionRecord
from threadscribe.ledger import ProcessedLedger, filter_unprocessed, thread_key
from threadscribe.slack.client import SlackMessenger, find_images_in_thread
from threadscribe.slack.downloader import SlackImageDownloader
from threadscribe.utils.logging import get_logger, job_context
from threadscribe.utils.store import get_store

logger = get_logger(__name__)

PROCESSING_TEXT = "Processing images... please wait."
NO_IMAGES_TEXT = "No images found in this thread."
NOTHING_PROCESSED_TEXT = "Failed to process any images. Please try again."


class JobOutcome(str, Enum):
    """Terminal state of a thread job."""

    NO_IMAGES = "no_images"
    ALREADY_PROCESSED = "already_processed"
    COMPLETED = "completed"
    PARTIAL = "partial"
    NOTHING_PROCESSED = "nothing_processed"


class ProcessThreadResult(BaseModel):
    """Summary returned to whoever triggered the job."""

    success: bool
    message: str
    processed_count: int
    skipped_count: int
    outcome: JobOutcome
    limit_reached: bool = False


def already_processed_text(mention: str = "@ocr") -> str:
    return (
        "All images in this thread have already been processed.\n"
        f"_Tip: Use `{mention} force` to reprocess them._"
    )


class ThreadProcessor:
    """Turns a (channel, thread) pair into a single results reply.

    The job owns one status message, posted first and edited as work
    progresses. Every path that finishes, normally or by exception, leaves
    that message in a final state.
    """

    def __init__(
        self,
        messenger: SlackMessenger | None = None,
        ledger: ProcessedLedger | None = None,
        extractor: ImageTextExtractor | None = None,
        downloader_factory: Callable[[], SlackImageDownloader] | None = None,
        settings: Settings | None = None,
        mention: str = "@ocr",
    ):
        self._settings = settings or get_settings()
        self._messenger = messenger or SlackMessenger()
        self._ledger = ledger or ProcessedLedger(get_store(), ttl=self._settings.ledger_ttl)
        self._extractor = extractor or ImageTextExtractor()
        self._downloader_factory = downloader_factory or SlackImageDownloader
        self._mention = mention

    async def process(
        self, channel: str, thread_ts: str, force: bool = False
    ) -> ProcessThreadResult:
        """Process every not-yet-processed image in a thread.

        Args:
            channel: Channel ID.
            thread_ts: Timestamp of the thread's root message.
            force: Reprocess images the ledger already lists.

        Returns:
            ProcessThreadResult describing the terminal state.
        """
        with job_context(channel=channel, thread_ts=thread_ts, force=force):
            logger.info("thread_processing_started")

            try:
                status_ts = await self._messenger.post_message(channel, thread_ts, PROCESSING_TEXT)
            except Exception as e:
                logger.error("status_post_failed", error=str(e))
                raise

            logger.info("status_posted", status_ts=status_ts)

            try:
                return await self._run(channel, thread_ts, status_ts, force)
            except Exception as e:
                logger.exception("thread_processing_failed", error=str(e))
                await self._report_failure(channel, status_ts, e)
                raise

    async def _run(
        self, channel: str, thread_ts: str, status_ts: str, force: bool
    ) -> ProcessThreadResult:
        settings = self._settings

        messages = await self._messenger.get_thread_messages(channel, thread_ts)
        all_images = find_images_in_thread(messages)
        logger.info(
            "images_found",
            image_count=len(all_images),
            image_ids=[image.id for image in all_images],
        )

        if not all_images:
            await self._messenger.update_message(channel, status_ts, NO_IMAGES_TEXT)
            return ProcessThreadResult(
                success=True,
                message="No images found",
                processed_count=0,
                skipped_count=0,
                outcome=JobOutcome.NO_IMAGES,
            )

        key = thread_key(channel, thread_ts)
        if force:
            logger.info("force_mode_processing_all", image_count=len(all_images))
            eligible = list(all_images)
        else:
            processed_ids = await self._ledger.get_processed(key)
            eligible = filter_unprocessed(all_images, processed_ids)
            logger.info("unprocessed_images_filtered", unprocessed_count=len(eligible))

            if not eligible:
                await self._messenger.update_message(
                    channel, status_ts, already_processed_text(self._mention)
                )
                return ProcessThreadResult(
                    success=True,
                    message="All images already processed",
                    processed_count=0,
                    skipped_count=len(all_images),
                    outcome=JobOutcome.ALREADY_PROCESSED,
                )

        skipped_count = len(all_images) - len(eligible)
        to_process = eligible[: settings.max_images]
        remaining = len(eligible) - len(to_process)
        logger.info("images_to_process", count=len(to_process), limit_reached=remaining > 0)

        results = await self._extract_all(channel, status_ts, to_process)

        succeeded_ids = [record.item_id for record in results]
        if succeeded_ids:
            await self._ledger.mark_processed(key, succeeded_ids)

        if not results:
            logger.warning("no_images_processed", attempted=len(to_process))
            await self._messenger.update_message(channel, status_ts, NOTHING_PROCESSED_TEXT)
            return ProcessThreadResult(
                success=False,
                message="Failed to process any images",
                processed_count=0,
                skipped_count=skipped_count,
                outcome=JobOutcome.NOTHING_PROCESSED,
                limit_reached=remaining > 0,
            )

        body = render_results(results)
        if remaining > 0:
            body += limit_note(settings.max_images, remaining)

        await self._publish(channel, thread_ts, status_ts, body)

        outcome = JobOutcome.COMPLETED if len(results) == len(to_process) else JobOutcome.PARTIAL
        logger.info(
            "thread_processing_completed",
            processed_count=len(results),
            failed_count=len(to_process) - len(results),
            skipped_count=skipped_count,
            outcome=outcome.value,
        )

        return ProcessThreadResult(
            success=True,
            message=f"Processed {len(results)} images",
            processed_count=len(results),
            skipped_count=skipped_count,
            outcome=outcome,
            limit_reached=remaining > 0,
        )

    async def _extract_all(
        self, channel: str, status_ts: str, images: list[Attachment]
    ) -> list[ExtractionRecord]:
        """Extract every image, dropping the ones that fail.

        Results come back in thread order regardless of concurrency.
        """
        total = len(images)
        concurrency = min(self._settings.extraction_concurrency, total)

        async with self._downloader_factory() as downloader:
            if concurrency <= 1:
                results: list[ExtractionRecord] = []
                for index, image in enumerate(images, start=1):
                    await self._messenger.update_message(
                        channel,
                        status_ts,
                        f"Processing image {index} of {total}... please wait.",
                    )
                    record = await self._extract_one(downloader, image, index, total)
                    if record is not None:
                        results.append(record)
                return results

            return await self._extract_pooled(
                channel, status_ts, images, downloader, concurrency
            )

    async def _extract_pooled(
        self,
        channel: str,
        status_ts: str,
        images: list[Attachment],
        downloader: SlackImageDownloader,
        concurrency: int,
    ) -> list[ExtractionRecord]:
        total = len(images)
        semaphore = asyncio.Semaphore(concurrency)
        progress_lock = asyncio.Lock()
        done = 0

        async def run(index: int, image: Attachment) -> ExtractionRecord | None:
            nonlocal done
            async with semaphore:
                record = await self._extract_one(downloader, image, index, total)
            # Progress counts finished images, so updates are serialized
            async with progress_lock:
                done += 1
                await self._messenger.update_message(
                    channel,
                    status_ts,
                    f"Processed {done} of {total} images... please wait.",
                )
            return record

        logger.info("extraction_pool_started", concurrency=concurrency, total=total)
        tasks = [
            asyncio.create_task(run(index, image))
            for index, image in enumerate(images, start=1)
        ]
        try:
            records = await asyncio.gather(*tasks)
        except BaseException:
            # No worker may touch the status message or downloader after this
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [record for record in records if record is not None]

    async def _extract_one(
        self,
        downloader: SlackImageDownloader,
        image: Attachment,
        index: int,
        total: int,
    ) -> ExtractionRecord | None:
        """Download and extract one image; failures are logged and yield None."""
        logger.info(
            "processing_image",
            index=index,
            total=total,
            file_id=image.id,
            file_name=image.display_name,
            mimetype=image.media_type,
        )

        try:
            image_bytes = await downloader.download_image(image)
            record = await self._extractor.extract(image_bytes, image)
        except Exception as e:
            logger.error(
                "image_processing_failed",
                file_id=image.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        logger.info(
            "image_processed",
            file_id=image.id,
            no_text_found=record.no_text_found,
            text_length=len(record.extracted_text),
        )
        return record

    async def _publish(self, channel: str, thread_ts: str, status_ts: str, body: str) -> None:
        settings = self._settings

        if settings.output_strategy == "chunk":
            await publish_chunked(
                self._messenger,
                channel,
                thread_ts,
                status_ts,
                body,
                settings.slack_max_text_length,
            )
        else:
            await publish_truncated(
                self._messenger,
                channel,
                status_ts,
                body,
                settings.slack_max_text_length,
                settings.min_retry_length,
            )

    async def _report_failure(self, channel: str, status_ts: str, error: Exception) -> None:
        """Best-effort final status update; never masks the original error."""
        reason = getattr(error, "message", None) or str(error) or "Unknown error"
        try:
            await self._messenger.update_message(
                channel,
                status_ts,
                f"Error processing images: {reason}. Please try again.",
            )
        except Exception as update_error:
            logger.warning("status_error_update_failed", error=str(update_error))

