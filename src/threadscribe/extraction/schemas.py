"""Pydantic schemas for thread images and extraction results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContentCategory(str, Enum):
    """What kind of image the text was read from."""

    UI = "ui"
    DOCUMENT = "document"
    PHOTO = "photo"
    OTHER = "other"


class Attachment(BaseModel):
    """An image file found in a Slack thread."""

    id: str = Field(..., description="Slack file ID")
    display_name: str = Field(..., description="Original filename")
    media_type: str = Field(..., description="MIME type (image/png, etc.)")
    source_ref: str | None = Field(
        default=None, description="Private download URL, if Slack provided one"
    )
    message_ts: str | None = Field(default=None, description="Timestamp of the carrying message")

    @classmethod
    def from_slack_file(cls, file_info: dict, message_ts: str | None = None) -> "Attachment":
        """Build from a ``files[]`` entry of a Slack message."""
        return cls(
            id=file_info.get("id", ""),
            display_name=file_info.get("name") or file_info.get("title") or "unknown",
            media_type=file_info.get("mimetype", ""),
            source_ref=file_info.get("url_private_download") or file_info.get("url_private"),
            message_ts=message_ts,
        )

    @property
    def is_image(self) -> bool:
        return self.media_type.lower().startswith("image/")


class ExtractionRecord(BaseModel):
    """Text read from one image.

    For non-English images ``extracted_text`` holds the English translation,
    and the text as written is kept in ``original_text``.
    """

    item_id: str
    display_name: str
    extracted_text: str = ""
    detected_language: str = "none"
    translation: str | None = None
    original_text: str | None = None
    no_text_found: bool = False
    content_category: ContentCategory = ContentCategory.OTHER

    @property
    def is_translated(self) -> bool:
        return bool(self.translation and self.original_text)

    @classmethod
    def empty(cls, item_id: str, display_name: str, language: str = "none") -> "ExtractionRecord":
        """A record for an image with no readable text."""
        return cls(
            item_id=item_id,
            display_name=display_name,
            detected_language=language,
            no_text_found=True,
        )


class ModelExtractionOutput(BaseModel):
    """JSON document the vision model is asked to return."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content_type: str | None = Field(default="other", alias="contentType")
    language: str | None = Field(default="unknown")
    is_english: bool | None = Field(default=False, alias="isEnglish")
    extracted_text: str | None = Field(default=None, alias="extractedText")
    english_translation: str | None = Field(default=None, alias="englishTranslation")


class PreparedImage(BaseModel):
    """An image encoded and ready for the vision model."""

    file_id: str = Field(..., description="Slack file ID")
    base64_data: str = Field(..., description="Base64-encoded image data")
    mime_type: str = Field(..., description="MIME type after processing")
    original_size_bytes: int
    processed_size_bytes: int
    width: int
    height: int

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"
