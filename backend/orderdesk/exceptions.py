"""
OrderDesk Backend - Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for each failure class of the order flow.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) map them to HTTP status
       codes and a structured JSON body.
Who:   Raised by services, dependencies and routes; caught by global handlers.

Exception Hierarchy:
    OrderDeskError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── TransitionRejectedError  → 409 Conflict (configurable)
    ├── MailTransportError       → 502 Bad Gateway
    ├── InvoiceRenderError       → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class OrderDeskError(Exception):
    """
    Base exception for all OrderDesk application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where noted)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OrderDeskError):
    """
    Raised when client input fails validation.

    When:    Missing or malformed order id, unknown sort field, bad date.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(OrderDeskError):
    """
    Raised when the upstream auth layer did not identify the caller.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Caller identity is missing",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(OrderDeskError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; the store converts that None
    into this exception so routes never check for it.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class TransitionRejectedError(OrderDeskError):
    """
    Raised when an order status transition violates a business rule.

    What:    e.g. paying for a canceled order, canceling a completed order.
    HTTP:    settings.transition_rejection_status (409 by default)

    The message is a human-readable reason the admin UI shows verbatim.
    """

    def __init__(
        self,
        message: str = "This transition is not allowed",
        action: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if action:
            ctx["action"] = action
        super().__init__(message=message, context=ctx)
        self.action = action


class MailTransportError(OrderDeskError):
    """
    Raised when the SMTP relay refuses or fails to accept a message.

    The relay's error text is kept verbatim in `message`. Delivery is not
    retried.
    HTTP:    502 Bad Gateway
    """

    def __init__(
        self,
        message: str = "The mail relay rejected the message",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvoiceRenderError(OrderDeskError):
    """
    Raised when an invoice could not be rendered to a complete document.

    No partial artifact is ever returned alongside this error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "The invoice could not be generated",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(OrderDeskError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the underlying
    error is logged server-side only.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
