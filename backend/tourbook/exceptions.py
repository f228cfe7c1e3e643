"""
Tourbook API: Custom Exception Hierarchy
========================================

What:  Application-specific exceptions, one per externally visible failure.
How:   Each class carries a user-facing message, an HTTP status code and an
       optional context dict. The single handler registered in main.py turns
       any of them into the response envelope:

           {"status": "fail" | "error", "message": "..."}

       `fail` for 4xx, `error` for 5xx. Context is logged, never returned.

Exception Hierarchy:
    TourbookError (base)                    → 500
    ├── ValidationError                     → 400
    ├── StoreError                          → 400
    ├── NotAuthenticated                    → 401
    ├── InvalidCredentials                  → 401
    ├── InvalidToken                        → 401
    │   └── ExpiredToken                    → 401
    ├── StaleToken                          → 401
    ├── SubjectGone                         → 401
    ├── Forbidden                           → 403
    ├── NotFound                            → 404
    ├── PageOutOfRange                      → 404
    └── MailDeliveryError                   → 500
"""

from typing import Any, Dict, Optional


class TourbookError(Exception):
    """
    Base exception for all Tourbook application errors.

    Attributes:
        message:     User-facing error description (safe to return)
        status_code: HTTP status used by the central error handler
        context:     Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    default_message: str = "Something went very wrong!"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(TourbookError):
    """
    Raised when client input violates a document constraint.

    Covers unique / required / range / enum violations, malformed ids and
    mismatched password confirmation.
    """

    status_code = 400
    default_message = "Invalid input data."

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class StoreError(TourbookError):
    """
    Raised when the document store rejects an operation.

    Malformed filters and projections are passed through to MongoDB; whatever
    it rejects surfaces here as a client error. Driver details stay in context.
    """

    status_code = 400
    default_message = "The request could not be processed by the database."


class NotAuthenticated(TourbookError):
    status_code = 401
    default_message = "You are not logged in! Please log in to get access."


class InvalidCredentials(TourbookError):
    """Wrong email / password pair, or wrong current password."""

    status_code = 401
    default_message = "Incorrect email or password"


class InvalidToken(TourbookError):
    status_code = 401
    default_message = "Invalid token. Please log in again!"


class ExpiredToken(InvalidToken):
    default_message = "Your token has expired! Please log in again."


class StaleToken(TourbookError):
    """The credential was rotated after the token was issued."""

    status_code = 401
    default_message = "User recently changed password! Please log in again."


class SubjectGone(TourbookError):
    status_code = 401
    default_message = "The user belonging to this token does no longer exist."


class Forbidden(TourbookError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFound(TourbookError):
    """
    Raised when a requested document does not exist.

    pymongo returns None for missing documents; services convert that into
    this exception so routes never check for None themselves.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "document",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message or f"No {resource} found with that ID", context=ctx)


class PageOutOfRange(TourbookError):
    status_code = 404
    default_message = "This page does not exist"


class MailDeliveryError(TourbookError):
    """Raised when SMTP delivery failed after all retry attempts."""

    default_message = "There was an error sending the email. Try again later!"
