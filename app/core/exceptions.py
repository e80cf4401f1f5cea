"""
Domain error taxonomy for the billing core.

Every error raised by the record store, the artifact store, the renderer or the
lifecycle coordinator is a BillingError subclass carrying a machine-readable
``code`` and the HTTP status the request layer maps it to.

    BillingError
    +-- ValidationFailed     bad input / referential integrity   (400, not retried)
    +-- NotFound             missing record or artifact          (404, not retried)
    +-- StoreUnavailable     transient infrastructure failure    (503, caller retries)
    +-- RenderFailed         renderer could not produce bytes    (500)
    +-- CompensationFailed   a rollback/cleanup step failed      (logged only)
"""
from fastapi import status
from typing import Optional


class BillingError(Exception):
    code = "BILLING_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(BillingError):
    code = "VALIDATION_FAILED"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BillingError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class StoreUnavailable(BillingError):
    code = "STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RenderFailed(BillingError):
    code = "RENDER_FAILED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CompensationFailed(BillingError):
    """Never raised over a primary error; built so the failure can be logged with context."""
    code = "COMPENSATION_FAILED"

    def __init__(self, message: str, path: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.path = path
        self.cause = cause
