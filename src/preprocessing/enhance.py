"""Image enhancement ahead of text recognition.

Downscales large photos, converts to luma, and applies a fixed
piecewise contrast stretch so OCR input is reproducible.
"""

import cv2
import numpy as np

from src.capture.models import RasterImage
from src.utils.config import EnhancementConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def fit_within(image: RasterImage, max_side: int) -> RasterImage:
    """Downscale so the longer side is at most ``max_side``.

    Images already within the bound are returned unchanged; nothing is
    ever upscaled.

    Args:
        image: Input raster.
        max_side: Largest allowed width or height in pixels.

    Returns:
        Raster whose longer side is at most ``max_side``.
    """
    longest = max(image.width, image.height)
    if longest <= max_side:
        return image

    ratio = max_side / longest
    width = max(1, int(round(image.width * ratio)))
    height = max(1, int(round(image.height * ratio)))
    resized = cv2.resize(image.pixels, (width, height), interpolation=cv2.INTER_AREA)
    logger.debug("Resized %dx%d to %dx%d", image.width, image.height, width, height)
    return RasterImage(resized, mode=image.mode)


def luma(image: RasterImage) -> np.ndarray:
    """Compute per-pixel luma as a float array.

    Args:
        image: Input raster in any supported mode.

    Returns:
        ``float64`` array of shape ``(h, w)``.
    """
    if image.is_grayscale:
        return image.gray_plane().astype(np.float64)
    rgb = image.pixels[:, :, :3].astype(np.float64)
    return rgb @ LUMA_WEIGHTS


def stretch_contrast(
    gray: np.ndarray,
    threshold: int = 128,
    boost: float = 1.3,
    dampen: float = 0.7,
) -> np.ndarray:
    """Brighten values above ``threshold`` and darken the rest.

    Args:
        gray: Grayscale values (any numeric dtype).
        threshold: Values strictly above this are boosted.
        boost: Multiplier for bright values, clamped to 255.
        dampen: Multiplier for dark values, clamped to 0.

    Returns:
        ``uint8`` array with the stretched values.
    """
    values = gray.astype(np.float64)
    stretched = np.where(
        values > threshold,
        np.minimum(255.0, values * boost),
        np.maximum(0.0, values * dampen),
    )
    return np.rint(stretched).astype(np.uint8)


class ImageEnhancer:
    """Prepares a raster for OCR.

    Args:
        config: Resize bound and contrast constants.
    """

    def __init__(self, config: EnhancementConfig | None = None) -> None:
        self.config = config or EnhancementConfig()

    def enhance(self, image: RasterImage) -> RasterImage:
        """Resize, convert to grayscale, and stretch contrast.

        Args:
            image: Rectified or original photo.

        Returns:
            New ``L`` raster, or ``LA`` when the input carries alpha.
        """
        resized = fit_within(image, self.config.max_side)
        gray = stretch_contrast(
            luma(resized),
            threshold=self.config.contrast_threshold,
            boost=self.config.boost_factor,
            dampen=self.config.dampen_factor,
        )

        if resized.has_alpha:
            alpha = resized.pixels[:, :, -1]
            return RasterImage(np.dstack([gray, alpha]), mode="LA")
        return RasterImage(gray, mode="L")
