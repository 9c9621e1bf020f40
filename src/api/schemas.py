"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from src.capture.models import PipelineResult


class PointResponse(BaseModel):
    """One corner of a detected receipt, in source image pixels."""

    x: float
    y: float


class BoundaryResponse(BaseModel):
    """Response schema for the boundary detection outcome."""

    detected: bool
    confidence: float
    corners: list[PointResponse] = []


class OcrResponse(BaseModel):
    """Response schema for recognized text."""

    text: str
    confidence: float


class AmountResponse(BaseModel):
    """Response schema for the extracted total."""

    value: Decimal | None
    confidence: float
    candidates: list[Decimal] = []


class QualityResponse(BaseModel):
    """Response schema for the capture quality check."""

    score: int
    acceptable: bool
    feedback: str
    brightness: float
    contrast: float
    sharpness: float


class ScanResponse(BaseModel):
    """Reviewable result of scanning one receipt photo."""

    success: bool
    stage: str
    width: int
    height: int
    rectified: bool
    quality: QualityResponse | None = None
    boundary: BoundaryResponse | None = None
    ocr: OcrResponse | None = None
    amount: AmountResponse | None = None
    suggested_date: date | None = None
    needs_review: bool = True
    warnings: list[str] = []
    processing_time_ms: float = 0.0

    @classmethod
    def from_result(
        cls,
        result: PipelineResult,
        needs_review: bool,
        processing_time_ms: float = 0.0,
    ) -> "ScanResponse":
        """Flatten a pipeline result into the response schema.

        Args:
            result: Result awaiting confirmation.
            needs_review: Whether the amount should be checked by a person.
            processing_time_ms: Wall time spent in the pipeline.

        Returns:
            Serializable scan response.
        """
        boundary = None
        if result.boundary is not None:
            boundary = BoundaryResponse(
                detected=result.boundary.detected,
                confidence=result.boundary.confidence,
                corners=[PointResponse(x=p.x, y=p.y) for p in result.boundary.corners],
            )
        ocr = None
        if result.ocr is not None:
            ocr = OcrResponse(text=result.ocr.text, confidence=result.ocr.confidence)
        amount = None
        if result.amount is not None:
            amount = AmountResponse(
                value=result.amount.value,
                confidence=result.amount.confidence,
                candidates=list(result.amount.candidates),
            )
        quality = None
        if result.quality is not None:
            quality = QualityResponse(
                score=result.quality.score,
                acceptable=result.quality.acceptable,
                feedback=result.quality.feedback,
                brightness=round(result.quality.brightness, 1),
                contrast=round(result.quality.contrast, 1),
                sharpness=round(result.quality.sharpness, 1),
            )

        return cls(
            success=result.error is None,
            stage=str(result.stage_reached),
            width=result.original.width,
            height=result.original.height,
            rectified=result.was_rectified,
            quality=quality,
            boundary=boundary,
            ocr=ocr,
            amount=amount,
            suggested_date=result.suggested_date,
            needs_review=needs_review,
            warnings=list(result.warnings),
            processing_time_ms=processing_time_ms,
        )


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    opencv_version: str
