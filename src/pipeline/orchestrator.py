"""Receipt capture state machine.

Sequences ingestion, boundary detection, rectification, enhancement,
OCR and amount extraction for one photo, absorbs recoverable failures
into lower confidence, and holds the reviewable result until the user
confirms it or starts over.
"""

import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation

from pydantic import ValidationError

from src.capture.errors import (
    DegenerateGeometryError,
    InvalidInputError,
    InvalidStateError,
    PipelineCancelledError,
    RecognitionError,
)
from src.capture.models import PipelineResult, PipelineState, ProgressEvent
from src.extraction.amount_extractor import AmountExtractor
from src.extraction.date_extractor import extract_date
from src.ocr.tesseract_engine import TesseractEngine
from src.preprocessing.boundary import BoundaryDetector
from src.preprocessing.enhance import ImageEnhancer
from src.preprocessing.ingest import ImageIngestor
from src.preprocessing.perspective import PerspectiveRectifier
from src.preprocessing.quality import QualityAssessor
from src.utils.config import AppConfig
from src.utils.logger import get_logger, log_duration

from .records import (
    ExpenseRecord,
    ExpenseRecordStore,
    InMemoryExpenseStore,
    OcrMetadata,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

_PROGRESS: dict[PipelineState, float] = {
    PipelineState.CAPTURED: 0.0,
    PipelineState.DETECTING: 0.1,
    PipelineState.RECTIFYING: 0.25,
    PipelineState.ENHANCING: 0.4,
    PipelineState.RECOGNIZING: 0.55,
    PipelineState.EXTRACTING: 0.9,
    PipelineState.AWAITING_CONFIRMATION: 1.0,
    PipelineState.COMMITTED: 1.0,
    PipelineState.ABANDONED: 1.0,
}


@dataclass(frozen=True)
class ReviewDraft:
    """Values pre-filled in the confirmation form."""

    amount: Decimal | None
    description: str
    expense_date: date
    needs_review: bool
    candidates: tuple[Decimal, ...] = ()


class ReceiptPipeline:
    """One capture session, from photo to confirmed expense.

    Stages run sequentially on the calling thread; use :meth:`submit` to
    run them on an executor. A restart or cancel while a run is in flight
    makes that run discard its work.

    Args:
        config: Application configuration.
        store: Receives the confirmed record on commit.
        recognizer: OCR engine; built from ``config.ocr`` when omitted.
        require_engine: Fail at construction when Tesseract is missing.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        store: ExpenseRecordStore | None = None,
        recognizer: TesseractEngine | None = None,
        require_engine: bool = False,
    ) -> None:
        self.config = config or AppConfig()
        self.store = store if store is not None else InMemoryExpenseStore()
        self.ingestor = ImageIngestor(self.config.ingest)
        self.assessor = QualityAssessor(self.config.quality)
        self.detector = BoundaryDetector(self.config.detection)
        self.rectifier = PerspectiveRectifier(self.config.rectification)
        self.enhancer = ImageEnhancer(self.config.enhancement)
        self.recognizer = recognizer or TesseractEngine(
            self.config.ocr, require_engine=require_engine
        )
        self.extractor = AmountExtractor(self.config.extraction)

        self._lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._subscribers: list[ProgressCallback] = []
        self._state = PipelineState.CAPTURED
        self._generation = 0
        self._busy_generation: int | None = None
        self._committing = False
        self._result: PipelineResult | None = None
        self._payload: bytes | None = None
        self._mime_type: str | None = None
        self._manual = False
        self._record: ExpenseRecord | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def result(self) -> PipelineResult | None:
        return self._result

    @property
    def record(self) -> ExpenseRecord | None:
        return self._record

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a progress observer.

        Args:
            callback: Called with a :class:`ProgressEvent` on every transition.

        Returns:
            Function that removes the observer.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def run(
        self, payload: bytes, mime_type: str, lang: str | None = None
    ) -> PipelineResult:
        """Process a captured photo up to the confirmation step.

        Args:
            payload: Raw image bytes.
            mime_type: Declared MIME type of the payload.
            lang: OCR language code; defaults to the configured one.

        Returns:
            Result awaiting user confirmation.

        Raises:
            InvalidInputError: If the payload is not an image.
            PayloadTooLargeError: If the payload exceeds the size limit.
            DecodeError: If the payload cannot be decoded.
            RecognitionError: If the OCR engine failed (run abandoned).
            PipelineCancelledError: If the run was cancelled or superseded.
            InvalidStateError: If the session is not at the capture step.
        """
        generation = self._begin()
        try:
            return self._run(generation, payload, mime_type, lang)
        finally:
            self._end(generation)

    def submit(
        self,
        executor: Executor,
        payload: bytes,
        mime_type: str,
        lang: str | None = None,
    ) -> "Future[PipelineResult]":
        """Run the pipeline on an executor, keeping the caller responsive."""
        return executor.submit(self.run, payload, mime_type, lang)

    def start_manual(self, payload: bytes, mime_type: str) -> PipelineResult:
        """Attach a receipt photo without OCR; the user types every value.

        Args:
            payload: Raw image bytes.
            mime_type: Declared MIME type of the payload.

        Returns:
            Result holding only the original image, awaiting confirmation.
        """
        generation = self._begin()
        try:
            original = self.ingestor.ingest(payload, mime_type)
            result = self._with_quality(PipelineResult(original=original))
            return self._finish(generation, result, payload, mime_type, manual=True)
        finally:
            self._end(generation)

    def draft(self) -> ReviewDraft:
        """Pre-filled confirmation values for the current result.

        Raises:
            InvalidStateError: If no result is awaiting confirmation.
        """
        result = self._require_reviewable()
        amount = result.amount
        threshold = self.config.review.low_confidence_threshold
        needs_review = (
            amount is None or amount.value is None or amount.confidence < threshold
        )
        return ReviewDraft(
            amount=amount.value if amount else None,
            description=self.config.review.default_description,
            expense_date=result.suggested_date or date.today(),
            needs_review=needs_review,
            candidates=amount.candidates if amount else (),
        )

    def confirm(
        self,
        amount: Decimal | str | float | None = None,
        description: str | None = None,
        expense_date: date | None = None,
    ) -> ExpenseRecord:
        """Commit the reviewed values to the expense store.

        Values left as ``None`` fall back to the draft. The record is saved
        once: confirming a committed session, or racing a confirmation that
        is being saved, returns the stored record again.

        Args:
            amount: Confirmed total.
            description: Free-text description.
            expense_date: Date of the expense.

        Returns:
            The record handed to the store.

        Raises:
            InvalidInputError: If the amount is missing or invalid, or the
                description is blank.
            InvalidStateError: If nothing is awaiting confirmation.
        """
        with self._commit_lock:
            with self._lock:
                if self._state == PipelineState.COMMITTED and self._record is not None:
                    return self._record
                result = self._require_reviewable()
                self._committing = True

            try:
                draft = self.draft()
                record = self._build_record(
                    result,
                    amount=amount if amount is not None else draft.amount,
                    description=(
                        description if description is not None else draft.description
                    ),
                    expense_date=expense_date or draft.expense_date,
                )
                self.store.save(record)
                with self._lock:
                    self._record = record
                    self._state = PipelineState.COMMITTED
            finally:
                with self._lock:
                    self._committing = False

        logger.info("Committed expense %s for %s", record.record_id, record.amount)
        self._emit(PipelineState.COMMITTED, "Expense recorded")
        return record

    def restart(self) -> None:
        """Discard the current attempt and wait for a new photo.

        Raises:
            InvalidStateError: If the confirmed expense is being saved.
        """
        with self._lock:
            self._refuse_while_committing()
            self._generation += 1
            self._reset()
            self._state = PipelineState.CAPTURED
        logger.info("Capture session restarted")
        self._emit(PipelineState.CAPTURED, "Waiting for a new photo")

    def cancel(self) -> None:
        """Abandon the session; any in-flight run discards its work.

        Raises:
            InvalidStateError: If the expense is committed or being saved.
        """
        with self._lock:
            self._refuse_while_committing()
            if self._state == PipelineState.COMMITTED:
                raise InvalidStateError("A committed session cannot be cancelled")
            self._generation += 1
            self._reset()
            self._state = PipelineState.ABANDONED
        logger.info("Capture session cancelled")
        self._emit(PipelineState.ABANDONED, "Cancelled")

    def _run(
        self, generation: int, payload: bytes, mime_type: str, lang: str | None
    ) -> PipelineResult:
        with log_duration(logger, "ingest"):
            original = self.ingestor.ingest(payload, mime_type)
        result = self._with_quality(PipelineResult(original=original))

        self._advance(generation, PipelineState.DETECTING)
        with log_duration(logger, "detect"):
            boundary = self.detector.detect(original)
        result = replace(result, boundary=boundary)

        source = original
        if boundary.detected:
            self._advance(generation, PipelineState.RECTIFYING)
            try:
                with log_duration(logger, "rectify"):
                    rectified = self.rectifier.rectify(original, boundary.corners)
            except DegenerateGeometryError as exc:
                logger.warning("Skipping rectification: %s", exc)
                result = replace(
                    result, warnings=(*result.warnings, f"rectification skipped: {exc}")
                )
            else:
                result = replace(result, rectified=rectified)
                source = rectified

        self._advance(generation, PipelineState.ENHANCING)
        with log_duration(logger, "enhance"):
            enhanced = self.enhancer.enhance(source)

        self._advance(generation, PipelineState.RECOGNIZING)
        try:
            with log_duration(logger, "recognize"):
                ocr = self.recognizer.recognize(enhanced, lang)
        except RecognitionError as exc:
            failed = replace(
                result, stage_reached=PipelineState.RECOGNIZING, error=str(exc)
            )
            self._abandon(generation, failed)
            raise
        result = replace(result, ocr=ocr)

        self._advance(generation, PipelineState.EXTRACTING)
        with log_duration(logger, "extract"):
            amount = self.extractor.extract(ocr.text)
        result = replace(result, amount=amount, suggested_date=extract_date(ocr.text))

        return self._finish(generation, result, payload, mime_type, manual=False)

    def _begin(self) -> int:
        with self._lock:
            # A superseded run may still be unwinding; only the current one blocks.
            busy = self._busy_generation == self._generation
            if busy or self._state != PipelineState.CAPTURED:
                raise InvalidStateError(
                    f"Cannot capture while {self._state}; restart the session first"
                )
            self._busy_generation = self._generation
            return self._generation

    def _end(self, generation: int) -> None:
        with self._lock:
            if self._busy_generation == generation:
                self._busy_generation = None

    def _refuse_while_committing(self) -> None:
        if self._committing:
            raise InvalidStateError("The confirmed expense is being saved")

    def _with_quality(self, result: PipelineResult) -> PipelineResult:
        with log_duration(logger, "quality"):
            quality = self.assessor.assess(result.original)
        warnings = result.warnings
        if not quality.acceptable:
            logger.warning(
                "Low capture quality %d: %s", quality.score, quality.feedback
            )
            warnings = (*warnings, f"low capture quality: {quality.feedback}")
        return replace(result, quality=quality, warnings=warnings)

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise PipelineCancelledError("Capture was cancelled or superseded")

    def _advance(self, generation: int, state: PipelineState) -> None:
        with self._lock:
            self._check_current(generation)
            self._state = state
        logger.debug("Pipeline entered %s", state)
        self._emit(state)

    def _finish(
        self,
        generation: int,
        result: PipelineResult,
        payload: bytes,
        mime_type: str,
        manual: bool,
    ) -> PipelineResult:
        final = replace(result, stage_reached=PipelineState.AWAITING_CONFIRMATION)
        with self._lock:
            self._check_current(generation)
            self._result = final
            self._payload = payload
            self._mime_type = mime_type
            self._manual = manual
            self._state = PipelineState.AWAITING_CONFIRMATION
        self._emit(PipelineState.AWAITING_CONFIRMATION, "Ready for review")
        return final

    def _abandon(self, generation: int, result: PipelineResult) -> None:
        with self._lock:
            self._check_current(generation)
            self._result = result
            self._state = PipelineState.ABANDONED
        logger.error("Capture abandoned: %s", result.error)
        self._emit(PipelineState.ABANDONED, result.error or "")

    def _reset(self) -> None:
        self._result = None
        self._payload = None
        self._mime_type = None
        self._manual = False
        self._record = None

    def _require_reviewable(self) -> PipelineResult:
        if self._state != PipelineState.AWAITING_CONFIRMATION or self._result is None:
            raise InvalidStateError(f"Nothing to confirm while {self._state}")
        return self._result

    def _build_record(
        self,
        result: PipelineResult,
        amount: Decimal | str | float | None,
        description: str,
        expense_date: date,
    ) -> ExpenseRecord:
        if amount is None:
            raise InvalidInputError("Amount is required; enter it manually")
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise InvalidInputError(f"Invalid amount: {amount!r}") from exc

        metadata = None if self._manual else _ocr_metadata(result)
        quality = self.config.review.jpeg_quality
        rectified_bytes = None
        if result.rectified is not None:
            rectified_bytes = result.rectified.to_jpeg_bytes(quality)

        try:
            return ExpenseRecord(
                amount=value,
                description=description,
                expense_date=expense_date,
                method="manual" if self._manual else "ocr",
                ocr_metadata=metadata,
                original_image=self._payload or result.original.to_jpeg_bytes(quality),
                original_mime_type=self._mime_type or "image/jpeg",
                rectified_image=rectified_bytes,
            )
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid expense: {exc}") from exc

    def _emit(self, state: PipelineState, message: str = "") -> None:
        event = ProgressEvent(state=state, progress=_PROGRESS[state], message=message)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Progress subscriber failed on %s", state)


def _ocr_metadata(result: PipelineResult) -> OcrMetadata:
    """Collect what the pipeline inferred, for auditing the committed record."""
    boundary, ocr, amount = result.boundary, result.ocr, result.amount
    return OcrMetadata(
        raw_text=ocr.text if ocr else "",
        detection_confidence=boundary.confidence if boundary else None,
        ocr_confidence=ocr.confidence if ocr else None,
        extraction_confidence=amount.confidence if amount else None,
        extracted_amount=amount.value if amount else None,
        rectified=result.was_rectified,
        corners=[(p.x, p.y) for p in boundary.corners] if boundary else [],
    )
