"""
Exceptions raised by the checkout and webhook flows.

Each ``PurchaseError`` carries the HTTP status code and the message the views
send back to the caller. ``KonnectAPIError`` is not a ``PurchaseError``:
provider failures reach the caller as a generic server error.
"""

from typing import Any, Optional


class PurchaseError(Exception):
    status_code = 400
    message = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class CourseNotFound(PurchaseError):
    status_code = 404
    message = "Course not found!"


class PurchaseNotFound(PurchaseError):
    status_code = 404
    message = "Purchase not found"


class MissingParameter(PurchaseError):
    status_code = 400


class PaymentSessionError(PurchaseError):
    """Konnect answered but did not hand back a payment session."""

    status_code = 400
    message = "Error while creating payment session"


class KonnectAPIError(Exception):
    """Network failure or non-2xx answer from the Konnect API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.response_data = response_data
        super().__init__(self.message)
