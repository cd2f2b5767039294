"""
OrderDesk Backend - Request Dependencies
==========================================

What:  FastAPI dependencies shared by the order routes.

    get_caller           → Caller from the auth gateway headers
    parse_order_id       → UUID from the {order_id} path segment
    get_mail_dispatcher  → the process-wide MailDispatcher from app.state
"""

import uuid

from fastapi import Header, Path, Request

from orderdesk.exceptions import AuthenticationError, ValidationError
from orderdesk.schemas.caller import Caller
from orderdesk.services.mail_dispatcher import MailDispatcher


async def get_caller(
    x_user_id: str | None = Header(default=None, description="Authenticated user id"),
    x_user_role: str | None = Header(default=None, description="Authenticated user role"),
) -> Caller:
    """
    Identity of the already-authenticated caller.

    Authentication happens upstream; this service trusts the forwarded
    X-User-Id / X-User-Role headers.
    """
    if not x_user_id or not x_user_role:
        raise AuthenticationError()
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise AuthenticationError(message="Caller identity is malformed")
    return Caller(id=user_id, role=x_user_role.strip().lower())


async def parse_order_id(
    order_id: str = Path(description="Order UUID"),
) -> uuid.UUID:
    """Path id → UUID; blank or malformed ids are a 400, not a 422."""
    if not order_id or not order_id.strip():
        raise ValidationError(message="Missing id", field="id")
    try:
        return uuid.UUID(order_id.strip())
    except ValueError:
        raise ValidationError(message=f"Invalid order id '{order_id}'", field="id")


def get_mail_dispatcher(request: Request) -> MailDispatcher:
    """The dispatcher created once in the application lifespan."""
    return request.app.state.mail_dispatcher
