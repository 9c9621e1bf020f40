"""Document boundary detection for receipt photos.

Finds the largest four-sided contour in an edge map and reports it as
the photographed document, with a confidence proportional to the share
of the frame it covers.
"""

import cv2
import numpy as np

from src.capture.models import DocumentBoundary, Point2D, RasterImage
from src.utils.config import DetectionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

_GRAY_CONVERSIONS: dict[str, int] = {
    "RGB": cv2.COLOR_RGB2GRAY,
    "RGBA": cv2.COLOR_RGBA2GRAY,
}


def to_gray(image: RasterImage) -> np.ndarray:
    """Return a single-channel view of a raster.

    Args:
        image: Source raster in any supported mode.

    Returns:
        Grayscale ``uint8`` array.
    """
    if image.is_grayscale:
        return image.gray_plane()
    return cv2.cvtColor(image.pixels, _GRAY_CONVERSIONS[image.mode])


def find_edges(gray: np.ndarray, config: DetectionConfig) -> np.ndarray:
    """Smooth a grayscale image and run Canny edge detection.

    Args:
        gray: Grayscale input image.
        config: Blur kernel and hysteresis thresholds.

    Returns:
        Binary edge map.
    """
    kernel = (config.blur_kernel, config.blur_kernel)
    blurred = cv2.GaussianBlur(gray, kernel, 0)
    return cv2.Canny(blurred, config.canny_low, config.canny_high)


class BoundaryDetector:
    """Locates the document quadrilateral within a photo.

    Detection is best-effort: backend failures degrade to a "not detected"
    result instead of propagating.

    Args:
        config: Detection thresholds.
    """

    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.config = config or DetectionConfig()

    def detect(self, image: RasterImage) -> DocumentBoundary:
        """Find the most likely document boundary.

        Args:
            image: Source photo.

        Returns:
            Detected boundary, or a zero-confidence "not detected" value.
        """
        try:
            return self._detect(image)
        except (cv2.error, ValueError, KeyError) as exc:
            logger.warning("Boundary detection failed, continuing without: %s", exc)
            return DocumentBoundary.not_detected()

    def _detect(self, image: RasterImage) -> DocumentBoundary:
        edges = find_edges(to_gray(image), self.config)
        contours, _ = cv2.findContours(
            edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )

        image_area = float(image.area)
        min_area = image_area * self.config.min_area_fraction
        best: np.ndarray | None = None
        best_area = 0.0

        for contour in contours:
            if cv2.contourArea(contour) < min_area:
                continue
            perimeter = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(
                contour, self.config.approx_epsilon * perimeter, True
            )
            if len(approx) != 4:
                continue
            area = cv2.contourArea(approx)
            # The simplified polygon can shrink below the contour it came from.
            if area >= min_area and area > best_area:
                best = approx
                best_area = area

        if best is None:
            logger.info("No quadrilateral found among %d contours", len(contours))
            return DocumentBoundary.not_detected()

        confidence = min(self.config.max_confidence, 100.0 * best_area / image_area)
        corners = tuple(Point2D(float(x), float(y)) for x, y in best.reshape(4, 2))
        logger.info(
            "Detected document covering %.1f%% of the frame (confidence %.1f)",
            100.0 * best_area / image_area,
            confidence,
        )
        return DocumentBoundary(detected=True, confidence=confidence, corners=corners)
