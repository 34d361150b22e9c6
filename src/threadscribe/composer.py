"""Rendering of extraction results into Slack messages that fit the length ceiling."""

from typing import Sequence

from threadscribe.extraction.schemas import ExtractionRecord
from threadscribe.slack.client import SlackMessenger
from threadscribe.utils.errors import MessageTooLongError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

DIVIDER = "\n\n---\n\n"
NO_TEXT_NOTICE = "_No text found in image._"
TRUNCATION_NOTICE = (
    "\n\n_Output was truncated because it exceeded Slack's message length limit._"
)

# Room kept free in each chunk for the part header
CHUNK_HEADER_RESERVE = 40


def render_record(record: ExtractionRecord, show_header: bool = True) -> str:
    """Render one image's text."""
    output = f"*{record.display_name}*\n\n" if show_header else ""

    if record.no_text_found:
        output += NO_TEXT_NOTICE
    elif record.is_translated:
        output += f"*English Translation:*\n{record.translation}"
        output += f"{DIVIDER}*Original ({record.detected_language}):*\n{record.original_text}"
    else:
        # Already Slack-formatted by the model
        output += record.extracted_text

    return output


def render_results(records: Sequence[ExtractionRecord]) -> str:
    """Render all results into one message body.

    A lone result is shown without its filename header.
    """
    if not records:
        return "No images found in this thread."

    show_header = len(records) > 1
    return DIVIDER.join(render_record(record, show_header) for record in records)


def limit_note(cap: int, remaining: int) -> str:
    """Note appended when the per-request image cap left images unprocessed."""
    return (
        f"\n\n_Note: Limited to {cap} images per request. "
        f"{remaining} more images remain unprocessed._"
    )


def truncate_body(body: str, limit: int) -> str:
    """Cut ``body`` to at most ``limit`` characters, ending with a visible notice."""
    if len(body) <= limit:
        return body
    return body[: max(limit - len(TRUNCATION_NOTICE), 0)] + TRUNCATION_NOTICE


def split_into_chunks(body: str, limit: int) -> list[str]:
    """Split ``body`` into pieces of at most ``limit`` characters.

    Cuts at the last blank line inside the budget, else the last newline,
    else at the budget itself. A preferred cut is only taken when it falls in
    the back half of the budget, so no chunk ends up pathologically small.
    """
    if limit < 1:
        raise ValueError("limit must be positive")

    chunks: list[str] = []
    remaining = body

    while len(remaining) > limit:
        window = remaining[:limit]
        floor = limit // 2

        cut = window.rfind("\n\n")
        skip = 2
        if cut < floor:
            cut = window.rfind("\n")
            skip = 1
        if cut < floor or cut == 0:
            cut = limit
            skip = 0

        chunks.append(remaining[:cut])
        remaining = remaining[cut + skip :]

    if remaining or not chunks:
        chunks.append(remaining)

    return chunks


async def publish_truncated(
    messenger: SlackMessenger,
    channel: str,
    status_ts: str,
    body: str,
    limit: int,
    min_length: int,
) -> str:
    """Write ``body`` into the status message, shrinking it until Slack accepts it.

    The body is first cut to ``limit``. If Slack still answers that the text
    is too long, the content is halved and retried until it is accepted or
    falls to ``min_length``, at which point the rejection is re-raised.

    Returns:
        The text that was published.
    """
    text = truncate_body(body, limit)

    while True:
        try:
            await messenger.update_message(channel, status_ts, text)
        except MessageTooLongError:
            if len(text) <= min_length:
                logger.error("message_too_long_at_floor", length=len(text), floor=min_length)
                raise

            content = text[: -len(TRUNCATION_NOTICE)] if text.endswith(TRUNCATION_NOTICE) else text
            text = content[: len(content) // 2] + TRUNCATION_NOTICE
            logger.warning("message_too_long_halving", new_length=len(text))
            continue

        if text is not body:
            logger.info("results_truncated", original_length=len(body), published_length=len(text))
        return text


async def publish_chunked(
    messenger: SlackMessenger,
    channel: str,
    thread_ts: str,
    status_ts: str,
    body: str,
    limit: int,
) -> list[str]:
    """Publish ``body`` as the status message plus follow-up thread replies.

    Returns:
        The texts that were published, in order.
    """
    if len(body) <= limit:
        await messenger.update_message(channel, status_ts, body)
        return [body]

    chunks = split_into_chunks(body, limit - CHUNK_HEADER_RESERVE)
    total = len(chunks)
    published = [f"*Results (part 1/{total})*\n\n{chunks[0]}"]
    published.extend(
        f"*Part {index}/{total}*\n\n{chunk}" for index, chunk in enumerate(chunks[1:], start=2)
    )

    logger.info("results_split", original_length=len(body), parts=total)

    await messenger.update_message(channel, status_ts, published[0])
    for text in published[1:]:
        await messenger.post_message(channel, thread_ts, text)

    return published
