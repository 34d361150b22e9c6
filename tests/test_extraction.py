"""Tests for image preparation and model output parsing."""

import io
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage
from PIL import Image

from threadscribe.extraction.extractor import ImageTextExtractor, parse_model_output
from threadscribe.extraction.processor import ImageProcessor
from threadscribe.extraction.schemas import Attachment, ContentCategory
from threadscribe.utils.errors import ExtractionError, ImageCompressionError

ATTACHMENT = Attachment(id="F1", display_name="scan.png", media_type="image/png")


def _png(width: int = 40, height: int = 20, mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def _reply(**fields) -> str:
    payload = {
        "contentType": "document",
        "language": "English",
        "isEnglish": True,
        "extractedText": "Invoice 12345",
        "englishTranslation": None,
    }
    payload.update(fields)
    return json.dumps(payload)


class TestParseModelOutput:
    def test_english_text(self):
        record = parse_model_output(_reply(), ATTACHMENT)

        assert record.extracted_text == "Invoice 12345"
        assert record.translation is None
        assert record.no_text_found is False
        assert record.content_category == ContentCategory.DOCUMENT

    def test_fenced_json_is_accepted(self):
        record = parse_model_output(f"```json\n{_reply()}\n```", ATTACHMENT)

        assert record.extracted_text == "Invoice 12345"

    def test_non_english_keeps_original(self):
        record = parse_model_output(
            _reply(
                language="Spanish",
                isEnglish=False,
                extractedText="Hola mundo",
                englishTranslation="Hello world",
            ),
            ATTACHMENT,
        )

        assert record.extracted_text == "Hello world"
        assert record.translation == "Hello world"
        assert record.original_text == "Hola mundo"
        assert record.is_translated

    def test_missing_text_means_no_text(self):
        record = parse_model_output(_reply(extractedText=None, language="none"), ATTACHMENT)

        assert record.no_text_found is True
        assert record.item_id == "F1"

    def test_garbage_degrades_to_no_text(self):
        record = parse_model_output("I could not read this image, sorry!", ATTACHMENT)

        assert record.no_text_found is True
        assert record.detected_language == "unknown"

    def test_website_maps_to_ui(self):
        record = parse_model_output(_reply(contentType="website"), ATTACHMENT)

        assert record.content_category == ContentCategory.UI

    def test_unknown_category_is_other(self):
        record = parse_model_output(_reply(contentType="meme"), ATTACHMENT)

        assert record.content_category == ContentCategory.OTHER


class TestImageProcessor:
    def test_small_png_passes_through(self):
        data = _png()

        prepared = ImageProcessor(target_size=512).prepare(data, ATTACHMENT)

        assert prepared.mime_type == "image/png"
        assert prepared.processed_size_bytes == len(data)
        assert prepared.data_url.startswith("data:image/png;base64,")

    def test_oversize_image_is_downscaled(self):
        prepared = ImageProcessor(target_size=256).prepare(_png(1024, 512, "RGBA"), ATTACHMENT)

        assert prepared.mime_type == "image/jpeg"
        assert (prepared.width, prepared.height) == (256, 128)

    def test_unreadable_bytes_raise(self):
        with pytest.raises(ImageCompressionError):
            ImageProcessor(target_size=256).prepare(b"not an image", ATTACHMENT)


class TestImageTextExtractor:
    async def test_extract_sends_image_and_parses_reply(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=_reply()))
        extractor = ImageTextExtractor(llm=llm, processor=ImageProcessor(target_size=512))

        record = await extractor.extract(_png(), ATTACHMENT)

        assert record.extracted_text == "Invoice 12345"
        (message,) = llm.ainvoke.call_args.args[0]
        image_block = message.content[1]
        assert image_block["type"] == "image_url"
        assert image_block["image_url"]["url"].startswith("data:image/png;base64,")

    async def test_transport_failure_raises_extraction_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        extractor = ImageTextExtractor(llm=llm, processor=ImageProcessor(target_size=512))

        with pytest.raises(ExtractionError):
            await extractor.extract(_png(), ATTACHMENT)
