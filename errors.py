"""
Error taxonomy for the ChroniCare domain.

Services raise these, never HTTPException. Every failure is local to a single
request; nothing here is fatal to the process.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from logging_config import get_logger

logger = get_logger(__name__)


class ChroniCareError(Exception):
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details


class ValidationError(ChroniCareError):
    """Bad field value or missing required relation. Always caller-fixable."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ChroniCareError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any) -> "NotFoundError":
        return cls(f"{entity} not found", details={"id": entity_id})


class StateError(ChroniCareError):
    """Operation not allowed in the entity's current state."""

    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


def _problem(code: str, message: str, details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChroniCareError)
    async def handle_domain_error(req: Request, exc: ChroniCareError):
        logger.info("request_rejected", path=req.url.path, code=exc.code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_problem(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(req: Request, exc: Exception):
        logger.error("unhandled_error", path=req.url.path, error_type=exc.__class__.__name__, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_problem("internal_error", "Internal server error", None),
        )
