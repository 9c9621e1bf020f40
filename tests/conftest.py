"""Shared test fixtures for the receipt capture test suite."""

import io
from collections.abc import Callable
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from src.capture.errors import RecognitionError
from src.capture.models import OcrResult, RasterImage

# The white receipt in ``receipt_image`` spans x 50..350 and y 40..260.
RECEIPT_BOX = (50, 40, 350, 260)


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode a uint8 array as PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


class FakeRecognizer:
    """Stands in for the Tesseract engine in pipeline tests."""

    def __init__(self, text: str = "", confidence: float = 88.0) -> None:
        self.text = text
        self.confidence = confidence
        self.error: Exception | None = None
        self.images: list[RasterImage] = []
        self.langs: list[str | None] = []
        self.on_recognize: Callable[[], None] | None = None

    def recognize(self, image: RasterImage, lang: str | None = None) -> OcrResult:
        self.images.append(image)
        self.langs.append(lang)
        if self.on_recognize is not None:
            self.on_recognize()
        if self.error is not None:
            raise self.error
        if not self.text.strip():
            return OcrResult.empty()
        return OcrResult(text=self.text, confidence=self.confidence)

    def fail_with(self, message: str = "tesseract crashed") -> None:
        self.error = RecognitionError(message)


@pytest.fixture
def receipt_image() -> np.ndarray:
    """A white receipt on a dark table, photographed straight on."""
    image = np.full((300, 400, 3), 30, dtype=np.uint8)
    left, top, right, bottom = RECEIPT_BOX
    image[top:bottom, left:right] = 255
    return image


@pytest.fixture
def tilted_receipt_image() -> np.ndarray:
    """A white receipt rotated within the frame."""
    image = np.full((480, 640, 3), 25, dtype=np.uint8)
    quad = np.array([[180, 60], [470, 110], [420, 430], [130, 380]], dtype=np.int32)
    cv2.fillConvexPoly(image, quad, (250, 250, 250))
    return image


@pytest.fixture
def blank_image() -> np.ndarray:
    """A uniform grey frame with no document and no text."""
    return np.full((240, 320, 3), 128, dtype=np.uint8)


@pytest.fixture
def receipt_png(receipt_image: np.ndarray) -> bytes:
    return encode_png(receipt_image)


@pytest.fixture
def blank_png(blank_image: np.ndarray) -> bytes:
    return encode_png(blank_image)


@pytest.fixture
def fake_recognizer() -> FakeRecognizer:
    return FakeRecognizer(text="FERRETERIA EL MARTILLO\nSUBTOTAL $900\nTOTAL $1000\n")


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
