from common.core.exceptions import AppException, ProcessingError


class PdfFetchError(AppException):
    """A URL fetch attempt failed. Transient unless `retryable` is False."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentPdfFetchError(PdfFetchError):
    """4xx (other than 429): retrying will not help."""

    retryable = False


class NotAPdfError(PermanentPdfFetchError):
    """Response is not a PDF (content-type, magic bytes). Never retried."""

    pass


class PdfTooLargeError(PermanentPdfFetchError):
    """Response exceeds the configured size cap."""

    pass


class IngestionLockLostError(ProcessingError):
    """The per-work ingestion lock expired or was taken over mid-run."""

    pass
