"""Tesseract OCR wrapper for enhanced receipt images.

Runs recognition in single-block mode with a currency-oriented
character whitelist and reports the engine's mean word confidence.
"""

import shlex
import shutil

import pytesseract
from PIL import Image

from src.capture.errors import RecognitionError
from src.capture.models import OcrResult, RasterImage
from src.utils.config import OCRConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


def build_tesseract_config(config: OCRConfig) -> str:
    """Assemble the Tesseract command-line options.

    Args:
        config: OCR settings.

    Returns:
        Option string for ``pytesseract``.
    """
    whitelist = shlex.quote(f"tessedit_char_whitelist={config.char_whitelist}")
    return f"--psm {config.psm} --oem {config.oem} -c {whitelist}"


def mean_word_confidence(data: dict) -> float:
    """Average the confidences of recognized words.

    Args:
        data: ``pytesseract.image_to_data`` output as a dict.

    Returns:
        Mean confidence on a 0-100 scale, or 0 when no word was found.
    """
    confidences = []
    for raw_conf, word in zip(data.get("conf", []), data.get("text", [])):
        conf = float(raw_conf)
        if conf > 0 and str(word).strip():
            confidences.append(conf)
    return sum(confidences) / len(confidences) if confidences else 0.0


class TesseractEngine:
    """Runs Tesseract over enhanced receipt images.

    Args:
        config: OCR settings (language, segmentation mode, whitelist).
        require_engine: When ``True``, fail at construction if the
            Tesseract binary cannot be found.

    Raises:
        RecognitionError: If ``require_engine`` is set and Tesseract is
            missing.
    """

    def __init__(
        self,
        config: OCRConfig | None = None,
        require_engine: bool = False,
    ) -> None:
        self.config = config or OCRConfig()
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        self.default_lang = self.config.default_lang
        if require_engine and not self.is_available():
            raise RecognitionError("Tesseract executable not found")

    def is_available(self) -> bool:
        """Report whether the Tesseract executable can be located."""
        cmd = self.config.tesseract_cmd or pytesseract.pytesseract.tesseract_cmd
        return shutil.which(cmd) is not None

    def recognize(self, image: RasterImage, lang: str | None = None) -> OcrResult:
        """Recognize text in an enhanced image.

        Args:
            image: Grayscale raster produced by the enhancer.
            lang: Tesseract language code. Defaults to the configured one.

        Returns:
            Recognized text and mean confidence; empty text has confidence 0.

        Raises:
            RecognitionError: If the engine cannot be invoked or crashes.
        """
        lang = lang or self.default_lang
        options = build_tesseract_config(self.config)
        plane = image.gray_plane() if image.is_grayscale else image.pixels
        pil_image = Image.fromarray(plane.copy())

        try:
            text = pytesseract.image_to_string(
                pil_image, lang=lang, config=options, timeout=self.config.timeout
            )
            data = pytesseract.image_to_data(
                pil_image,
                lang=lang,
                config=options,
                timeout=self.config.timeout,
                output_type=pytesseract.Output.DICT,
            )
        except (
            pytesseract.TesseractNotFoundError,
            pytesseract.TesseractError,
            RuntimeError,
            OSError,
        ) as exc:
            logger.error("Tesseract failed on %s image: %s", lang, exc)
            raise RecognitionError(f"OCR engine failed: {exc}") from exc

        if not text.strip():
            logger.info("OCR found no text")
            return OcrResult.empty()

        confidence = mean_word_confidence(data)
        logger.info(
            "OCR recognized %d characters with confidence %.1f",
            len(text.strip()),
            confidence,
        )
        return OcrResult(text=text, confidence=confidence)
