"""Typed failures raised across the receipt capture pipeline.

Ingestion errors reject a capture before any processing. Geometry errors
are recovered by the orchestrator. Recognition errors abort the run.
"""


class CaptureError(Exception):
    """Base class for all receipt capture failures."""


class InvalidInputError(CaptureError):
    """The payload is not an image or the submitted values are unusable."""


class PayloadTooLargeError(CaptureError):
    """The payload exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Image is {size} bytes, limit is {limit} bytes")
        self.size = size
        self.limit = limit


class DecodeError(CaptureError):
    """The payload could not be decoded into pixels."""


class DegenerateGeometryError(CaptureError):
    """Four corners do not span a usable quadrilateral."""


class RecognitionError(CaptureError):
    """The OCR engine failed to run."""


class PipelineCancelledError(CaptureError):
    """The run was cancelled or superseded before it finished."""


class InvalidStateError(CaptureError):
    """An operation was requested in a pipeline state that does not allow it."""
