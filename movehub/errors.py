"""
Domain error taxonomy.

Every error carries the HTTP status the request boundary answers with; none of
them is retried internally.
"""
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse


logger = structlog.get_logger(__name__)


class DomainError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(DomainError):
    """Malformed input, rejected before any state change."""
    status_code = 400


class AuthorizationError(DomainError):
    """Actor lacks the role or ownership the action needs."""
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """Target was not in the expected state (stale client or concurrent change)."""
    status_code = 409


class GenerationError(DomainError):
    """Report rendering failed; no partial document is returned."""
    status_code = 500


class InvalidReportData(ValidationError, GenerationError):
    pass


class DeliveryError(DomainError):
    status_code = 502


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        "domain_error",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
