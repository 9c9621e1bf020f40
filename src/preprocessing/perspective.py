"""Perspective rectification of a detected document.

Orders four corner points, derives the size of the flattened document,
and warps the photo through the homography into a top-down view.
"""

import math
from collections.abc import Sequence
from itertools import combinations

import cv2
import numpy as np

from src.capture.errors import DegenerateGeometryError
from src.capture.models import Point2D, RasterImage
from src.utils.config import RectificationConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

_INTERPOLATIONS: dict[str, int] = {
    "bilinear": cv2.INTER_LINEAR,
    "nearest": cv2.INTER_NEAREST,
}

# Triangles smaller than this (in square pixels) count as collinear points.
_COLLINEAR_TOLERANCE = 1e-6

OrderedCorners = tuple[Point2D, Point2D, Point2D, Point2D]


def order_corners(corners: Sequence[Point2D]) -> OrderedCorners:
    """Order four points as top-left, top-right, bottom-right, bottom-left.

    The two points with the smallest ``y`` form the top pair and the other
    two the bottom pair; each pair is then ordered by ``x``.

    Args:
        corners: Exactly four points in any order.

    Returns:
        Tuple of ``(top_left, top_right, bottom_right, bottom_left)``.

    Raises:
        DegenerateGeometryError: If the input does not hold four points.
    """
    if len(corners) != 4:
        raise DegenerateGeometryError(f"Expected 4 corners, got {len(corners)}")

    by_y = sorted(corners, key=lambda p: p.y)
    top_left, top_right = sorted(by_y[:2], key=lambda p: p.x)
    bottom_left, bottom_right = sorted(by_y[2:], key=lambda p: p.x)
    return top_left, top_right, bottom_right, bottom_left


def _distance(a: Point2D, b: Point2D) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def _triangle_area(a: Point2D, b: Point2D, c: Point2D) -> float:
    return abs((b.x - a.x) * (c.y - a.y) - (c.x - a.x) * (b.y - a.y)) / 2.0


def target_size(ordered: OrderedCorners) -> tuple[int, int]:
    """Compute the size of the rectified document.

    Args:
        ordered: Corners as returned by :func:`order_corners`.

    Returns:
        ``(width, height)`` in whole pixels.
    """
    top_left, top_right, bottom_right, bottom_left = ordered
    width = max(_distance(top_left, top_right), _distance(bottom_left, bottom_right))
    height = max(_distance(top_left, bottom_left), _distance(top_right, bottom_right))
    return int(round(width)), int(round(height))


def check_geometry(ordered: OrderedCorners) -> tuple[int, int]:
    """Reject corner sets that cannot define a homography.

    Args:
        ordered: Corners as returned by :func:`order_corners`.

    Returns:
        ``(width, height)`` of the rectified document.

    Raises:
        DegenerateGeometryError: On duplicate or collinear corners, or when
            the target rectangle would be empty.
    """
    for a, b, c in combinations(ordered, 3):
        if _triangle_area(a, b, c) <= _COLLINEAR_TOLERANCE:
            raise DegenerateGeometryError(
                "Corners are duplicated or three of them are collinear"
            )

    width, height = target_size(ordered)
    if width <= 0 or height <= 0:
        raise DegenerateGeometryError(f"Empty target rectangle {width}x{height}")
    return width, height


class PerspectiveRectifier:
    """Warps a photographed document into a rectangular top-down view.

    Args:
        config: Rectification settings (interpolation method).
    """

    def __init__(self, config: RectificationConfig | None = None) -> None:
        self.config = config or RectificationConfig()
        if self.config.interpolation not in _INTERPOLATIONS:
            raise ValueError(f"Unsupported interpolation: {self.config.interpolation}")

    def rectify(self, image: RasterImage, corners: Sequence[Point2D]) -> RasterImage:
        """Resample the region bounded by four corners into a rectangle.

        Args:
            image: Source photo.
            corners: The four document corners, in any order.

        Returns:
            New raster of the computed ``width x height``.

        Raises:
            DegenerateGeometryError: If the corners do not span a usable
                quadrilateral.
        """
        ordered = order_corners(corners)
        width, height = check_geometry(ordered)

        source = np.array([[p.x, p.y] for p in ordered], dtype=np.float32)
        target = np.array(
            [[0, 0], [width, 0], [width, height], [0, height]], dtype=np.float32
        )

        try:
            matrix = cv2.getPerspectiveTransform(source, target)
            if not np.isfinite(matrix).all() or abs(np.linalg.det(matrix)) < 1e-12:
                raise DegenerateGeometryError("Perspective transform is singular")
            warped = cv2.warpPerspective(
                image.pixels,
                matrix,
                (width, height),
                flags=_INTERPOLATIONS[self.config.interpolation],
                borderMode=cv2.BORDER_REPLICATE,
            )
        except cv2.error as exc:
            raise DegenerateGeometryError(f"Perspective warp failed: {exc}") from exc

        logger.info(
            "Rectified document from %dx%d to %dx%d",
            image.width,
            image.height,
            width,
            height,
        )
        return RasterImage(warped, mode=image.mode)
