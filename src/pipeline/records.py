"""Confirmed expense records handed to the external persistence layer."""

import threading
import uuid
from datetime import date
from decimal import Decimal
from typing import Literal, Protocol

from pydantic import BaseModel, Field, field_validator


class OcrMetadata(BaseModel):
    """Audit trail of what the pipeline inferred for a committed record."""

    raw_text: str = ""
    detection_confidence: float | None = None
    ocr_confidence: float | None = None
    extraction_confidence: float | None = None
    extracted_amount: Decimal | None = None
    rectified: bool = False
    corners: list[tuple[float, float]] = Field(default_factory=list)


class ExpenseRecord(BaseModel):
    """Final user-confirmed values of one capture session."""

    record_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    amount: Decimal = Field(gt=0)
    description: str
    expense_date: date
    method: Literal["ocr", "manual"] = "ocr"
    ocr_metadata: OcrMetadata | None = None
    original_image: bytes
    original_mime_type: str = "image/jpeg"
    rectified_image: bytes | None = None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description must not be empty")
        return value


class ExpenseRecordStore(Protocol):
    """Destination for committed records (database, object storage, ...)."""

    def save(self, record: ExpenseRecord) -> None: ...


class InMemoryExpenseStore:
    """Keeps committed records in a dict keyed by ``record_id``.

    Saving the same record twice leaves a single entry.
    """

    def __init__(self) -> None:
        self._records: dict[str, ExpenseRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: ExpenseRecord) -> None:
        with self._lock:
            self._records[record.record_id] = record

    def get(self, record_id: str) -> ExpenseRecord | None:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)
