class AppException(Exception):
    """Base application exception."""

    pass


class NotFoundError(AppException):
    """Resource not found exception."""

    pass


class ProcessingError(AppException):
    """Processing error exception."""

    pass


class LockUnavailableError(AppException):
    """The lock provider could not be reached, so the lock state is unknown."""

    pass


class InvariantViolationError(AppException):
    """A programming error. Never converted into a result; always propagated."""

    pass


class EmptyEmbeddingInputError(InvariantViolationError):
    """Text was empty after normalisation; embedding it is a caller bug."""

    pass


class EmbeddingCountMismatchError(InvariantViolationError):
    """Provider returned a different number of vectors than inputs sent."""

    pass
