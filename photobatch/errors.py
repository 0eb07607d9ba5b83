"""Typed outcomes for the reservation and variation protocol.

Each error carries a stable ``code`` the clients switch on and the HTTP
status the routers answer with.
"""


class GenerationError(Exception):
    code = "GENERATION_ERROR"
    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.extra}


class InsufficientCreditsError(GenerationError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402


class InvalidInputError(GenerationError):
    code = "INVALID_INPUT"
    status_code = 400


class ReservationFailedError(GenerationError):
    code = "RESERVATION_FAILED"
    status_code = 503


class InvalidSessionError(GenerationError):
    code = "INVALID_SESSION"
    status_code = 403


class ExpiredSessionError(GenerationError):
    code = "EXPIRED_SESSION"
    status_code = 410


class DuplicateIndexError(GenerationError):
    code = "DUPLICATE_INDEX"
    status_code = 409


class GenerationFailedError(GenerationError):
    code = "GENERATION_FAILED"
    status_code = 502


class ProviderError(Exception):
    """Raised by the image provider client; never leaves the worker."""
