"""
OrderDesk Backend - FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan sets up logging and the shared mail dispatcher.
Who:   uvicorn (`uvicorn orderdesk.main:app`) and the test client.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Access Log → CORS        │
    │                                                     │
    │  Routes:      /orders/...            GET /health    │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐  │
    │  │ Validation→400 │ Auth→401 │ NotFound→404     │  │
    │  │ Rejected→409   │ Mail→502 │ Render/DB→500    │  │
    │  └──────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → configuration check → MailDispatcher on app.state,
              relay connection opened when credentials are set
    Shutdown: close relay connection → dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderdesk import __version__
from orderdesk.config import settings
from orderdesk.database import dispose_engine
from orderdesk.exceptions import (
    AuthenticationError,
    DatabaseError,
    InvoiceRenderError,
    MailTransportError,
    NotFoundError,
    OrderDeskError,
    TransitionRejectedError,
    ValidationError,
)
from orderdesk.middleware.logging import RequestLoggingMiddleware
from orderdesk.middleware.request_id import RequestIDMiddleware, request_id_var
from orderdesk.routes import health, orders
from orderdesk.services.mail_dispatcher import MailDispatcher

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process, once, at startup.

    Format: 2024-01-15T12:00:00 [INFO] orderdesk.services.order_store: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
    logging.getLogger("reportlab").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("OrderDesk Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Orders stay usable without mail; only invoice email fails.
        logger.error("Configuration error: %s", str(e))

    dispatcher = MailDispatcher.from_settings(settings)
    if dispatcher.is_configured:
        await dispatcher.connect()
    app.state.mail_dispatcher = dispatcher

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("OrderDesk Backend shutting down...")
    await dispatcher.close()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to status codes and the shared JSON error body.

    Handler hierarchy:
        ValidationError           → 400
        RequestValidationError    → 422 (schema errors from FastAPI)
        AuthenticationError       → 401
        NotFoundError             → 404
        TransitionRejectedError   → settings.transition_rejection_status
        MailTransportError        → 502 (relay text verbatim)
        InvoiceRenderError        → 500
        DatabaseError             → 500
        OrderDeskError (base)     → 500
        Exception (fallback)      → 500

    Stack traces and internal context of 5xx errors are logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Request validation failed"
        return error_response(422, "request_validation_error", message, {"errors": errors})

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(401, "unauthorized", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, "not_found", exc.message)

    @app.exception_handler(TransitionRejectedError)
    async def handle_transition_rejected(request: Request, exc: TransitionRejectedError):
        return error_response(
            settings.transition_rejection_status,
            "transition_rejected",
            exc.message,
            exc.context,
        )

    @app.exception_handler(MailTransportError)
    async def handle_mail_transport_error(request: Request, exc: MailTransportError):
        logger.error("[%s] Mail transport error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(502, "mail_transport_error", exc.message)

    @app.exception_handler(InvoiceRenderError)
    async def handle_invoice_render_error(request: Request, exc: InvoiceRenderError):
        logger.error("[%s] Invoice render error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "invoice_render_error", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "server_error", GENERIC_SERVER_ERROR)

    @app.exception_handler(OrderDeskError)
    async def handle_application_error(request: Request, exc: OrderDeskError):
        logger.error("[%s] Application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "server_error", GENERIC_SERVER_ERROR)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="OrderDesk API",
        description=(
            "Order management for the shop admin dashboard: order search, payment and "
            "delivery status transitions, PDF invoices and invoice email."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition:
    # RequestID → Logging → CORS → routes
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(orders.router)
    app.include_router(health.router)

    return app


app = create_app()
