"""Data contracts shared by the receipt capture stages.

Every stage consumes and produces these immutable values; the orchestrator
collects them into a ``PipelineResult`` for review and confirmation.
"""

import io
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum

import numpy as np
from PIL import Image

_CHANNEL_MODES: dict[int, str] = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


class PipelineState(StrEnum):
    """States of a single capture session."""

    CAPTURED = "captured"
    DETECTING = "detecting"
    RECTIFYING = "rectifying"
    ENHANCING = "enhancing"
    RECOGNIZING = "recognizing"
    EXTRACTING = "extracting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


@dataclass(frozen=True, eq=False)
class RasterImage:
    """A decoded image owned by a single pipeline run.

    The pixel buffer is copied on construction and made read-only, so a
    later stage can never alter an earlier stage's output.

    Args:
        pixels: ``uint8`` array shaped ``(h, w)`` or ``(h, w, c)``.
        mode: One of ``L``, ``LA``, ``RGB``, ``RGBA``. Inferred when empty.
    """

    pixels: np.ndarray
    mode: str = ""

    def __post_init__(self) -> None:
        data = np.array(self.pixels, dtype=np.uint8, copy=True)
        if data.ndim == 3 and data.shape[2] == 1:
            data = data[:, :, 0]
        if data.ndim not in (2, 3) or data.size == 0:
            raise ValueError(f"Unsupported pixel buffer shape: {data.shape}")

        channels = 1 if data.ndim == 2 else data.shape[2]
        if channels not in _CHANNEL_MODES:
            raise ValueError(f"Unsupported channel count: {channels}")
        expected = _CHANNEL_MODES[channels]
        if self.mode and self.mode != expected:
            raise ValueError(f"Mode {self.mode} does not match {channels} channels")

        data.setflags(write=False)
        object.__setattr__(self, "pixels", data)
        object.__setattr__(self, "mode", expected)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.mode in ("LA", "RGBA")

    @property
    def is_grayscale(self) -> bool:
        return self.mode in ("L", "LA")

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        """Build a raster from a Pillow image, normalizing exotic modes."""
        if image.mode not in ("L", "LA", "RGB", "RGBA"):
            has_alpha = "A" in image.getbands() or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")
        return cls(np.asarray(image))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels.copy())

    def gray_plane(self) -> np.ndarray:
        """Return the luminance plane of a grayscale raster."""
        if not self.is_grayscale:
            raise ValueError(f"Raster in mode {self.mode} has no gray plane")
        return self.pixels if self.pixels.ndim == 2 else self.pixels[:, :, 0]

    def to_jpeg_bytes(self, quality: int = 90) -> bytes:
        """Encode the raster as JPEG for hand-off to object storage.

        Alpha is dropped since JPEG cannot carry it.
        """
        pil_image = self.to_pil()
        if self.has_alpha:
            pil_image = pil_image.convert("L" if self.mode == "LA" else "RGB")
        buf = io.BytesIO()
        pil_image.save(buf, format="JPEG", quality=quality)
        return buf.getvalue()


@dataclass(frozen=True)
class Point2D:
    """A position in image pixel space."""

    x: float
    y: float


@dataclass(frozen=True)
class DocumentBoundary:
    """The quadrilateral hypothesized to be the photographed document."""

    detected: bool
    confidence: float
    corners: tuple[Point2D, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence out of range: {self.confidence}")
        if self.detected and len(self.corners) != 4:
            raise ValueError("A detected boundary needs exactly 4 corners")

    @classmethod
    def not_detected(cls) -> "DocumentBoundary":
        return cls(detected=False, confidence=0.0, corners=())


@dataclass(frozen=True)
class OcrResult:
    """Text recognized in an enhanced image."""

    text: str
    confidence: float

    @classmethod
    def empty(cls) -> "OcrResult":
        return cls(text="", confidence=0.0)


@dataclass(frozen=True)
class QualityAssessment:
    """How usable a captured photo looks before any text is read.

    ``brightness`` is the mean luma, ``contrast`` its standard deviation and
    ``sharpness`` the variance of the Laplacian. ``score`` weighs the three
    into 0..100.
    """

    score: int
    brightness: float
    contrast: float
    sharpness: float
    acceptable: bool
    feedback: str


@dataclass(frozen=True)
class ExtractedAmount:
    """The most probable total amount found in recognized text.

    ``candidates`` lists every distinct plausible figure of the winning
    tier, best first, so a reviewer can pick another one.
    """

    value: Decimal | None
    confidence: float
    candidates: tuple[Decimal, ...] = ()

    @classmethod
    def not_found(cls) -> "ExtractedAmount":
        return cls(value=None, confidence=0.0)


@dataclass(frozen=True)
class ProgressEvent:
    """Notification emitted on every pipeline state transition."""

    state: PipelineState
    progress: float
    message: str = ""


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Everything one capture session produced, in stage order."""

    original: RasterImage
    stage_reached: PipelineState = PipelineState.CAPTURED
    rectified: RasterImage | None = None
    quality: QualityAssessment | None = None
    boundary: DocumentBoundary | None = None
    ocr: OcrResult | None = None
    amount: ExtractedAmount | None = None
    suggested_date: date | None = None
    error: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def was_rectified(self) -> bool:
        return self.rectified is not None
