"""Capture quality scoring for receipt photos.

Rates the brightness, contrast and sharpness of the photo as taken, so a
dark, flat or blurry shot can be retaken before its text is trusted.
"""

import cv2
import numpy as np

from src.capture.models import QualityAssessment, RasterImage
from src.preprocessing.enhance import luma
from src.utils.config import QualityConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

_MID_GRAY = 128.0

_FEEDBACK_ALL = (
    "The photo is blurry, flat and badly lit; find better light and hold "
    "the phone steady."
)
_FEEDBACK_BLURRY = (
    "The photo is blurry; hold the phone steady and make sure the receipt "
    "is in focus."
)
_FEEDBACK_FLAT = (
    "The photo has little contrast; retake it with better light so the "
    "text stands out."
)
_FEEDBACK_DARK = "The photo is too dark; find a brighter spot."
_FEEDBACK_BRIGHT = "The photo is too bright; avoid glare and direct light."
_FEEDBACK_GOOD = "Good photo quality; make sure the whole receipt is visible."


def calculate_sharpness(gray: np.ndarray) -> float:
    """Calculate sharpness as the variance of the Laplacian."""
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


class QualityAssessor:
    """Scores how readable a captured photo is likely to be.

    Each measure becomes a 0..100 factor: brightness loses half a point per
    gray level away from mid-gray, contrast is twice the luma standard
    deviation, and sharpness is the Laplacian variance relative to
    ``sharpness_reference``. The weighted sum is the overall score.

    Args:
        config: Weights and thresholds.
    """

    def __init__(self, config: QualityConfig | None = None) -> None:
        self.config = config or QualityConfig()

    def assess(self, image: RasterImage) -> QualityAssessment:
        """Score a photo and say how to retake it if needed.

        Args:
            image: Photo as captured, before any correction.

        Returns:
            Raw measures, weighted score and user feedback.
        """
        cfg = self.config
        gray = luma(image)
        brightness = float(gray.mean())
        contrast = float(gray.std())
        sharpness = calculate_sharpness(gray)

        brightness_factor = max(0.0, 100.0 - abs(brightness - _MID_GRAY) * 0.5)
        contrast_factor = min(100.0, contrast * 2.0)
        sharpness_factor = min(100.0, sharpness / cfg.sharpness_reference * 100.0)

        score = round(
            sharpness_factor * cfg.sharpness_weight
            + contrast_factor * cfg.contrast_weight
            + brightness_factor * cfg.brightness_weight
        )
        feedback = self._feedback(
            brightness,
            sharp=sharpness_factor > cfg.min_factor,
            contrasted=contrast_factor > cfg.min_factor,
            well_lit=brightness_factor > cfg.min_brightness_factor,
        )

        logger.debug(
            "Quality %d (brightness %.1f, contrast %.1f, sharpness %.1f)",
            score,
            brightness,
            contrast,
            sharpness,
        )
        return QualityAssessment(
            score=score,
            brightness=brightness,
            contrast=contrast,
            sharpness=sharpness,
            acceptable=score > cfg.min_score,
            feedback=feedback,
        )

    @staticmethod
    def _feedback(
        brightness: float, sharp: bool, contrasted: bool, well_lit: bool
    ) -> str:
        if not (sharp or contrasted or well_lit):
            return _FEEDBACK_ALL
        if not sharp:
            return _FEEDBACK_BLURRY
        if not contrasted:
            return _FEEDBACK_FLAT
        if not well_lit:
            return _FEEDBACK_DARK if brightness < _MID_GRAY else _FEEDBACK_BRIGHT
        return _FEEDBACK_GOOD
