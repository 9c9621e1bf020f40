"""Tests for the Tesseract OCR engine wrapper."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from src.capture.errors import RecognitionError
from src.capture.models import RasterImage
from src.ocr.tesseract_engine import (
    TesseractEngine,
    build_tesseract_config,
    mean_word_confidence,
)
from src.utils.config import OCRConfig


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "TOTAL", "$1000", "", " "],
        "conf": ["-1", "95", "85.0", "-1", "0"],
        "block_num": [0, 1, 1, 0, 1],
        "line_num": [0, 1, 1, 0, 2],
        "word_num": [0, 1, 2, 0, 1],
    }


def _gray_image() -> RasterImage:
    return RasterImage(np.full((60, 120), 255, dtype=np.uint8))


class TestBuildTesseractConfig:
    """Tests for the Tesseract option string."""

    def test_default_options(self) -> None:
        options = build_tesseract_config(OCRConfig())
        assert options.startswith("--psm 6 --oem 1 -c ")
        assert "tessedit_char_whitelist=0123456789" in options
        assert "ÁÉÍÓÚáéíóúÑñ" in options

    def test_custom_modes(self) -> None:
        options = build_tesseract_config(OCRConfig(psm=4, oem=3, char_whitelist="0123"))
        assert options == "--psm 4 --oem 3 -c tessedit_char_whitelist=0123"


class TestMeanWordConfidence:
    """Tests for word confidence averaging."""

    def test_ignores_blank_and_negative(self) -> None:
        assert mean_word_confidence(_mock_tesseract_data()) == pytest.approx(90.0)

    def test_no_words(self) -> None:
        assert mean_word_confidence({"text": [""], "conf": ["-1"]}) == 0.0

    def test_empty_dict(self) -> None:
        assert mean_word_confidence({}) == 0.0


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_recognize_text(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "TOTAL $1000\n"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()
        mock_pytesseract.Output.DICT = "dict"

        result = TesseractEngine().recognize(_gray_image())

        assert result.text == "TOTAL $1000\n"
        assert result.confidence == pytest.approx(90.0)
        kwargs = mock_pytesseract.image_to_string.call_args.kwargs
        assert kwargs["lang"] == "spa"
        assert kwargs["config"].startswith("--psm 6 --oem 1")

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_language_override(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "TOTAL 5"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()

        TesseractEngine().recognize(_gray_image(), lang="eng")

        assert mock_pytesseract.image_to_string.call_args.kwargs["lang"] == "eng"
        assert mock_pytesseract.image_to_data.call_args.kwargs["lang"] == "eng"

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_passes_grayscale_plane(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "x"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()
        pixels = np.zeros((10, 20, 2), dtype=np.uint8)
        pixels[..., 1] = 255

        TesseractEngine().recognize(RasterImage(pixels))

        pil_image = mock_pytesseract.image_to_string.call_args.args[0]
        assert pil_image.mode == "L"
        assert pil_image.size == (20, 10)

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_blank_text_is_empty_result(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "  \n\x0c"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()

        result = TesseractEngine().recognize(_gray_image())

        assert result.text == ""
        assert result.confidence == 0.0

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_engine_failure_raises_recognition_error(
        self, mock_pytesseract: MagicMock
    ) -> None:
        mock_pytesseract.TesseractError = type("TesseractError", (Exception,), {})
        mock_pytesseract.TesseractNotFoundError = type(
            "TesseractNotFoundError", (OSError,), {}
        )
        mock_pytesseract.image_to_string.side_effect = (
            mock_pytesseract.TesseractError("lang spa not installed")
        )

        with pytest.raises(RecognitionError, match="lang spa not installed"):
            TesseractEngine().recognize(_gray_image())

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_timeout_raises_recognition_error(
        self, mock_pytesseract: MagicMock
    ) -> None:
        mock_pytesseract.TesseractError = type("TesseractError", (Exception,), {})
        mock_pytesseract.TesseractNotFoundError = type(
            "TesseractNotFoundError", (OSError,), {}
        )
        mock_pytesseract.image_to_string.side_effect = RuntimeError(
            "Tesseract process timeout"
        )

        with pytest.raises(RecognitionError):
            TesseractEngine(OCRConfig(timeout=1)).recognize(_gray_image())

    @patch("src.ocr.tesseract_engine.pytesseract")
    def test_custom_tesseract_cmd(self, mock_pytesseract: MagicMock) -> None:
        TesseractEngine(OCRConfig(tesseract_cmd="/opt/tesseract/bin/tesseract"))
        assert (
            mock_pytesseract.pytesseract.tesseract_cmd
            == "/opt/tesseract/bin/tesseract"
        )

    @patch("src.ocr.tesseract_engine.shutil.which", return_value=None)
    def test_require_engine_when_missing(self, mock_which: MagicMock) -> None:
        with pytest.raises(RecognitionError):
            TesseractEngine(require_engine=True)

    @patch("src.ocr.tesseract_engine.shutil.which", return_value="/usr/bin/tesseract")
    def test_is_available(self, mock_which: MagicMock) -> None:
        assert TesseractEngine(require_engine=True).is_available() is True
