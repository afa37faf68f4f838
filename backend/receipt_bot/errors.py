"""Exception types raised across the receipt workflow."""

from __future__ import annotations


class ReceiptBotError(Exception):
    """Base class for receipt bot failures."""


class AcquisitionError(ReceiptBotError):
    """The trigger carried no usable file, or it could not be fetched."""


class DownloadError(AcquisitionError):
    """Remote fetch returned a non-2xx status or failed on the network."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(ReceiptBotError):
    """The extraction service raised or reported an unusable result."""


class CommitError(ReceiptBotError):
    """Applying corrections to the stored expense failed."""


class FormattingError(ReceiptBotError):
    """Rendering an expense summary failed."""


class InvalidTransitionError(ReceiptBotError):
    """A stage change or correction that the workflow does not allow."""
