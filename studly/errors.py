"""Domain exceptions raised by services and rendered by the API."""

from typing import Optional


class StudlyError(Exception):
    """Base class for errors with an HTTP status."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.error
        super().__init__(self.detail)


class QuotaExceeded(StudlyError):
    """The user has no active plan or not enough hours left this month."""

    status_code = 403
    error = "Usage limit reached"


class InvalidTransition(StudlyError):
    """A recording or job was asked to move to a status it cannot reach."""

    status_code = 409
    error = "Invalid status transition"


class VendorError(StudlyError):
    """A third-party API call failed."""

    status_code = 502
    error = "Upstream service error"


class TranscriptionError(VendorError):
    error = "Transcription failed"


class NoteGenerationError(VendorError):
    error = "Note generation failed"


class BillingError(StudlyError):
    status_code = 400
    error = "Billing error"
