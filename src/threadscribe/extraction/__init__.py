"""Image text extraction for Slack thread attachments."""

from threadscribe.extraction.schemas import (
    Attachment,
    ContentCategory,
    ExtractionRecord,
    ModelExtractionOutput,
    PreparedImage,
)
from threadscribe.extraction.extractor import ImageTextExtractor
from threadscribe.extraction.processor import ImageProcessor

__all__ = [
    "Attachment",
    "ContentCategory",
    "ExtractionRecord",
    "ModelExtractionOutput",
    "PreparedImage",
    "ImageTextExtractor",
    "ImageProcessor",
]
