"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware - injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware - catches domain exceptions -> structured JSON errors
    3. CORSMiddleware - handles browser clients
"""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from marketplace_escrow.domain.exceptions import (
    ActorNotPermittedError,
    ApprovalRequiredError,
    EngagementBusyError,
    EvidenceStorageUnavailableError,
    InputValidationError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    OutOfOrderApprovalError,
    PayoutAccountNotReadyError,
    ProcessorError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

ENGAGEMENT_PATH = re.compile(r"/engagements/(?P<engagement_id>[0-9a-fA-F-]{36})(?:/|$)")

# Business-rule refusals: the request was understood but the engagement is
# not in a state that allows it.
CONFLICT_ERRORS = (
    InvalidTransitionError,
    OutOfOrderApprovalError,
    ApprovalRequiredError,
    PayoutAccountNotReadyError,
)


def _error_response(status_code: int, exc: MarketplaceError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )
        match = ENGAGEMENT_PATH.search(request.url.path)
        if match:
            structlog.contextvars.bind_contextvars(engagement_id=match["engagement_id"].lower())

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except NotFoundError as exc:
            logger.warning("request.not_found", error=exc.message)
            return _error_response(404, exc)
        except InputValidationError as exc:
            logger.warning("request.invalid_input", code=exc.code, error=exc.message)
            return _error_response(422, exc)
        except ActorNotPermittedError as exc:
            logger.warning("request.not_permitted", actor=exc.actor_id, error=exc.message)
            return _error_response(403, exc)
        except CONFLICT_ERRORS as exc:
            logger.warning("request.conflict", code=exc.code, error=exc.message)
            return _error_response(409, exc)
        except EngagementBusyError as exc:
            logger.warning("request.engagement_busy", error=exc.message)
            return _error_response(423, exc)
        except EvidenceStorageUnavailableError as exc:
            logger.error("request.evidence_storage_unavailable", error=exc.message)
            return _error_response(503, exc)
        except ProcessorError as exc:
            logger.error(
                "request.processor_failed",
                operation=exc.operation,
                processor_ref=exc.processor_ref,
                error=exc.message,
            )
            return _error_response(502, exc)
        except MarketplaceError as exc:
            logger.error("domain.error", error=exc.message, code=exc.code)
            return _error_response(400, exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters - middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
