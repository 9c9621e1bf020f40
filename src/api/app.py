"""FastAPI application for the receipt capture API.

Provides a health check and an endpoint that scans an uploaded receipt
photo up to the confirmation step.
"""

import time
from functools import lru_cache
from typing import Annotated

import cv2
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from src.capture.errors import (
    DecodeError,
    InvalidInputError,
    PayloadTooLargeError,
    RecognitionError,
)
from src.ocr.tesseract_engine import TesseractEngine
from src.pipeline.orchestrator import ReceiptPipeline
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger

from .schemas import HealthResponse, ScanResponse

logger = get_logger(__name__)

API_VERSION = "1.0.0"

app = FastAPI(
    title="Receipt Capture API",
    description="Detect, rectify and read receipt photos to pre-fill expenses",
    version=API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _get_config() -> AppConfig:
    """Load the application configuration once per process."""
    return load_config()


def _get_pipeline() -> ReceiptPipeline:
    """Build a fresh capture session from the application configuration.

    Returns:
        New pipeline in the ``CAPTURED`` state.
    """
    return ReceiptPipeline(_get_config())


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        tesseract_available=TesseractEngine().is_available(),
        opencv_version=cv2.__version__,
    )


@app.post("/receipts/scan", response_model=ScanResponse)
async def scan_receipt(
    file: Annotated[UploadFile, File(...)],
    lang: Annotated[str | None, Query(max_length=32)] = None,
) -> ScanResponse:
    """Scan an uploaded receipt photo and return the reviewable result.

    Args:
        file: Uploaded image (any ``image/*`` type).
        lang: Tesseract language code; defaults to the configured one.

    Returns:
        Boundary, rectification, OCR and amount results with review hints.
    """
    start_time = time.time()
    content = await file.read()
    mime_type = file.content_type or "application/octet-stream"

    try:
        pipeline = _get_pipeline()
        result = await run_in_threadpool(pipeline.run, content, mime_type, lang)
        draft = pipeline.draft()
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PayloadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except DecodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RecognitionError as exc:
        logger.error("Recognition failed for %s: %s", file.filename, exc)
        raise HTTPException(
            status_code=502,
            detail=f"Text recognition failed, please retake the photo: {exc}",
        ) from exc
    except Exception as exc:
        logger.error("Scan failed for %s: %s", file.filename, exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    processing_time = (time.time() - start_time) * 1000
    return ScanResponse.from_result(result, draft.needs_review, processing_time)
