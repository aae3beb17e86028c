from typing import Any, Optional


class TicketingError(Exception):
    """Base error rendered by the API as ``{success: false, error, message, details}``."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None, error: Optional[str] = None):
        self.message = message or self.error
        self.details = details
        if error:
            self.error = error
        super().__init__(self.message)


class InvalidRequestError(TicketingError):
    status_code = 400
    error = "Invalid request"


class NotFoundError(TicketingError):
    status_code = 404
    error = "Not found"


class ConflictError(TicketingError):
    status_code = 409
    error = "Conflict"


class PaymentVerificationError(TicketingError):
    status_code = 400
    error = "Payment verification failed"


class ProviderNotConfiguredError(TicketingError):
    status_code = 503
    error = "Provider not configured"


class PaymentProviderError(TicketingError):
    status_code = 502
    error = "Payment provider error"


class NotificationProviderError(TicketingError):
    status_code = 502
    error = "Notification provider error"


class TicketAlreadyUsedError(ConflictError):
    status_code = 400
    error = "Ticket already used"


class StoreUnavailableError(Exception):
    """The relational store could not be reached. Handled by the store selector, never sent to clients."""
