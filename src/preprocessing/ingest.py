"""Validation and decoding of captured receipt photos.

Rejects payloads that are not images or exceed the size limit, then
decodes them with Pillow into an upright ``RasterImage``.
"""

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from src.capture.errors import DecodeError, InvalidInputError, PayloadTooLargeError
from src.capture.models import RasterImage
from src.utils.config import IngestConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


class ImageIngestor:
    """Turns raw uploaded bytes into a decoded raster.

    Args:
        config: Ingestion limits.
    """

    def __init__(self, config: IngestConfig | None = None) -> None:
        self.config = config or IngestConfig()

    def ingest(self, payload: bytes, mime_type: str) -> RasterImage:
        """Validate and decode a captured image.

        Args:
            payload: Raw file bytes.
            mime_type: Declared MIME type of the payload.

        Returns:
            Decoded image in ``RGB``, ``RGBA`` or ``L`` mode.

        Raises:
            InvalidInputError: If the MIME type is not ``image/*`` or the
                payload is empty.
            PayloadTooLargeError: If the payload exceeds the size limit.
            DecodeError: If the bytes cannot be decoded as an image.
        """
        if not (mime_type or "").lower().startswith("image/"):
            raise InvalidInputError(f"Unsupported file type: {mime_type!r}")
        if not payload:
            raise InvalidInputError("Empty image payload")
        if len(payload) > self.config.max_bytes:
            raise PayloadTooLargeError(len(payload), self.config.max_bytes)

        try:
            with Image.open(io.BytesIO(payload)) as pil_image:
                pil_image.load()
                upright = ImageOps.exif_transpose(pil_image)
                raster = RasterImage.from_pil(upright)
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

        logger.info(
            "Ingested %s image %dx%d (%d bytes)",
            raster.mode,
            raster.width,
            raster.height,
            len(payload),
        )
        return raster
