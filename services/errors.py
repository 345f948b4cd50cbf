# services/errors.py - Exceptions raised by the service layer


class ValidationError(ValueError):
    """User input rejected before any repository call was made."""


class CaseLoadError(RuntimeError):
    """Case list could not be loaded after the allowed retries."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
