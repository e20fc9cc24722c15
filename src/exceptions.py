"""Custom exceptions for the Intake service."""


class IntakeError(Exception):
    """Base exception for Intake errors."""

    pass


class ParseError(IntakeError):
    """Uploaded file is malformed or of an unsupported shape."""

    pass


class MappingConfigError(IntakeError):
    """Field mapping document is invalid."""

    pass


class StoreError(IntakeError):
    """Error returned by the record store."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class UniqueViolationError(StoreError):
    """A write violated a uniqueness constraint in the record store."""

    pass


class CommitError(IntakeError):
    """A fatal commit stage failed; later stages were not attempted."""

    def __init__(self, stage: str, cause: Exception, retryable: bool = False):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause
        # True when nothing was written that a retry would duplicate
        self.retryable = retryable


class ReviewNotFoundError(IntakeError):
    """Review batch does not exist or was already committed or discarded."""

    pass
