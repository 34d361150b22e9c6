"""Vision-model text extraction for a single image."""

import json
import re

import openai
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from pydantic import ValidationError

from threadscribe.extraction.processor import ImageProcessor
from threadscribe.extraction.schemas import (
    Attachment,
    ContentCategory,
    ExtractionRecord,
    ModelExtractionOutput,
)
from threadscribe.llm.prompts import OCR_PROMPT
from threadscribe.llm.provider import get_llm_for_extraction
from threadscribe.utils.errors import ExtractionError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")

# Model vocabulary that differs from ours
_CATEGORY_ALIASES = {
    "website": ContentCategory.UI,
    "screenshot": ContentCategory.UI,
}


class ImageTextExtractor:
    """Reads the text in an image with a vision-capable chat model.

    Transport and authentication failures are raised as ExtractionError.
    Anything the model says that cannot be understood is treated as an
    image without text.
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        processor: ImageProcessor | None = None,
    ):
        self._llm = llm
        self._processor = processor or ImageProcessor()

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_llm_for_extraction()
        return self._llm

    async def extract(self, image_bytes: bytes, attachment: Attachment) -> ExtractionRecord:
        """Extract text from one image.

        Args:
            image_bytes: Raw image data as downloaded from Slack.
            attachment: The Slack file the bytes belong to.

        Returns:
            ExtractionRecord for the image.

        Raises:
            ImageCompressionError: If the bytes are not a readable image.
            ExtractionError: If the model could not be called.
        """
        prepared = self._processor.prepare(image_bytes, attachment)

        message = HumanMessage(
            content=[
                {"type": "text", "text": OCR_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {"url": prepared.data_url, "detail": "high"},
                },
            ]
        )

        try:
            response = await self.llm.ainvoke([message])
        except openai.OpenAIError as e:
            logger.error("extraction_call_failed", file_id=attachment.id, error=str(e))
            raise ExtractionError(
                f"Extraction model call failed: {e}",
                details={"file_id": attachment.id},
            ) from e

        return parse_model_output(_response_text(response.content), attachment)


def _response_text(content: str | list) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def parse_model_output(text: str, attachment: Attachment) -> ExtractionRecord:
    """Turn the model's JSON reply into an ExtractionRecord.

    Malformed or empty replies become a no-text record rather than an error.
    """
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", text.strip())).strip()

    try:
        output = ModelExtractionOutput.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning(
            "extraction_parse_error",
            file_id=attachment.id,
            error=str(e),
            response_preview=text[:200],
        )
        return ExtractionRecord.empty(attachment.id, attachment.display_name, language="unknown")

    if not output.extracted_text or not output.extracted_text.strip():
        return ExtractionRecord.empty(attachment.id, attachment.display_name)

    category = _content_category(output.content_type)

    if output.is_english:
        record = ExtractionRecord(
            item_id=attachment.id,
            display_name=attachment.display_name,
            extracted_text=output.extracted_text,
            detected_language=output.language or "unknown",
            content_category=category,
        )
    else:
        translation = output.english_translation or None
        record = ExtractionRecord(
            item_id=attachment.id,
            display_name=attachment.display_name,
            extracted_text=translation or output.extracted_text,
            detected_language=output.language or "unknown",
            translation=translation,
            original_text=output.extracted_text,
            content_category=category,
        )

    logger.info(
        "extraction_parsed",
        file_id=attachment.id,
        language=record.detected_language,
        text_length=len(record.extracted_text),
        has_translation=record.is_translated,
        content_category=record.content_category.value,
    )
    return record


def _content_category(raw: str | None) -> ContentCategory:
    value = (raw or "").strip().lower()
    if value in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[value]
    try:
        return ContentCategory(value)
    except ValueError:
        return ContentCategory.OTHER
