"""Configuration management for the receipt capture pipeline.

Loads and validates YAML configuration with defaults for ingestion,
boundary detection, rectification, enhancement, OCR, and amount extraction.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Characters Tesseract may emit: digits, Latin letters with Spanish accents,
# and the punctuation found in currency amounts.
DEFAULT_CHAR_WHITELIST = (
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "ÁÉÍÓÚáéíóúÑñ"
    ".,-$() "
)


class IngestConfig(BaseModel):
    """Limits applied to captured images before decoding."""

    max_bytes: int = 15 * 1024 * 1024


class QualityConfig(BaseModel):
    """Thresholds for judging whether a photo is worth reading."""

    sharpness_reference: float = 100.0
    sharpness_weight: float = 0.5
    contrast_weight: float = 0.3
    brightness_weight: float = 0.2
    min_factor: float = 25.0
    min_brightness_factor: float = 50.0
    min_score: int = 50


class DetectionConfig(BaseModel):
    """Configuration for document boundary detection."""

    blur_kernel: int = 5
    canny_low: int = 50
    canny_high: int = 150
    min_area_fraction: float = 0.1
    approx_epsilon: float = 0.02
    max_confidence: float = 95.0


class RectificationConfig(BaseModel):
    """Configuration for perspective rectification."""

    interpolation: str = "bilinear"


class EnhancementConfig(BaseModel):
    """Configuration for OCR image enhancement."""

    max_side: int = 1200
    contrast_threshold: int = 128
    boost_factor: float = 1.3
    dampen_factor: float = 0.7


class OCRConfig(BaseModel):
    """Configuration for Tesseract OCR engine."""

    tesseract_cmd: str | None = None
    default_lang: str = "spa"
    psm: int = 6
    oem: int = 1
    char_whitelist: str = DEFAULT_CHAR_WHITELIST
    timeout: int = 0


class ExtractionConfig(BaseModel):
    """Configuration for total amount extraction."""

    window_lines: int = 8
    max_amount: int = 10_000_000
    base_confidence: int = 60
    keyword_bonus: int = 30
    currency_bonus: int = 10
    fallback_confidence: int = 40
    max_candidates: int = 5


class ReviewConfig(BaseModel):
    """Defaults offered to the user at confirmation time."""

    default_description: str = "Material de construcción"
    low_confidence_threshold: float = 70.0
    jpeg_quality: int = 90


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ingest: IngestConfig = Field(default_factory=IngestConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    rectification: RectificationConfig = Field(default_factory=RectificationConfig)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
