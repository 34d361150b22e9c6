"""Image preparation for the vision model."""

import base64
import io

from PIL import Image

from threadscribe.config import get_settings
from threadscribe.extraction.schemas import Attachment, PreparedImage
from threadscribe.utils.errors import ImageCompressionError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

# Formats the vision API accepts as-is
PASSTHROUGH_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

# JPEG quality for re-encoded images; text stays legible at this level
JPEG_QUALITY = 90


class ImageProcessor:
    """Prepares downloaded Slack images for the vision model.

    Images the API accepts and that fit within the target dimension are
    passed through untouched. Anything else (HEIC, TIFF, BMP, or oversize)
    is flattened to RGB, downscaled and re-encoded as JPEG.
    """

    def __init__(self, target_size: int | None = None):
        self._target_size = target_size or get_settings().vision_image_target_size

    def prepare(self, image_bytes: bytes, attachment: Attachment) -> PreparedImage:
        """Encode an image for the vision model.

        Args:
            image_bytes: Raw image data.
            attachment: Image metadata.

        Returns:
            PreparedImage with base64-encoded data.

        Raises:
            ImageCompressionError: If the bytes are not a readable image.
        """
        original_size = len(image_bytes)

        try:
            img = Image.open(io.BytesIO(image_bytes))
            width, height = img.size
            mime_type = PASSTHROUGH_FORMATS.get(img.format or "")

            if mime_type and max(width, height) <= self._target_size:
                processed_bytes = image_bytes
            else:
                img = self._flatten(img)
                if max(width, height) > self._target_size:
                    img = self._resize_image(img, self._target_size)

                output_buffer = io.BytesIO()
                img.save(output_buffer, format="JPEG", quality=JPEG_QUALITY, optimize=True)
                processed_bytes = output_buffer.getvalue()
                mime_type = "image/jpeg"
                width, height = img.size

        except Exception as e:
            logger.error(
                "image_processing_error",
                file_id=attachment.id,
                error=str(e),
            )
            raise ImageCompressionError(
                f"Failed to process image: {e}",
                details={"file_id": attachment.id},
            ) from e

        logger.info(
            "image_prepared",
            file_id=attachment.id,
            original_size=original_size,
            processed_size=len(processed_bytes),
            dimensions=f"{width}x{height}",
            mime_type=mime_type,
        )

        return PreparedImage(
            file_id=attachment.id,
            base64_data=base64.b64encode(processed_bytes).decode("utf-8"),
            mime_type=mime_type,
            original_size_bytes=original_size,
            processed_size_bytes=len(processed_bytes),
            width=width,
            height=height,
        )

    def _flatten(self, img: Image.Image) -> Image.Image:
        """Convert to RGB, painting transparent areas white."""
        if img.mode in ("RGBA", "P", "LA"):
            background = Image.new("RGB", img.size, (255, 255, 255))
            if img.mode != "RGBA":
                img = img.convert("RGBA")
            background.paste(img, mask=img.split()[-1])
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img

    def _resize_image(self, img: Image.Image, target_size: int) -> Image.Image:
        """Resize image maintaining aspect ratio."""
        width, height = img.size

        if width > height:
            new_width = target_size
            new_height = int(height * (target_size / width))
        else:
            new_height = target_size
            new_width = int(width * (target_size / height))

        return img.resize((new_width, new_height), Image.Resampling.LANCZOS)
