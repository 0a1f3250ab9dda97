"""Domain errors and their HTTP rendering.

Services raise these; the handler registered in ``create_app`` turns them
into ``{"error": {...}, "detail": ...}`` responses. The order id travels
with the error so support can reconcile a failed purchase by hand.
"""
import logging
from typing import Optional

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

logger = logging.getLogger(__name__)


class PortalError(Exception):
    code = "portal_error"
    status_code = 500

    def __init__(self, message: str, *, order_id: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.order_id = order_id
        if code:
            self.code = code


class ValidationError(PortalError, ValueError):
    code = "validation_error"
    status_code = 400


class AmountMismatchError(PortalError):
    code = "amount_mismatch"
    status_code = 400


class InvalidSignatureError(PortalError):
    code = "invalid_signature"
    status_code = 401


class ForbiddenError(PortalError):
    code = "forbidden"
    status_code = 403


class NotFoundError(PortalError, LookupError):
    code = "not_found"
    status_code = 404


class GatewayError(PortalError):
    code = "gateway_error"
    status_code = 502

    def __init__(self, message: str, *, order_id: Optional[str] = None,
                 upstream_status: Optional[int] = None, upstream_body=None):
        super().__init__(message, order_id=order_id)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    @property
    def transient(self) -> bool:
        return self.upstream_status is None or self.upstream_status >= 500


class PersistenceError(PortalError):
    """Store write failure.

    ``after_side_effect`` is False when nothing outside the database has
    happened yet and the caller may simply retry. When True the gateway
    already holds state (a session was opened or a payment captured) and
    the order needs reconciliation.
    """
    code = "persistence_error"
    status_code = 500

    def __init__(self, message: str, *, order_id: Optional[str] = None,
                 after_side_effect: bool = False, code: Optional[str] = None):
        super().__init__(message, order_id=order_id, code=code)
        self.after_side_effect = after_side_effect


def error_payload(exc: PortalError) -> dict:
    error = {"code": exc.code, "message": exc.message}
    if exc.order_id:
        error["orderId"] = exc.order_id
    return {"error": error, "detail": exc.message}


async def portal_error_handler(request: Request, exc: PortalError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, "%s %s -> %s %s (order_id=%s)",
               request.method, request.url.path, exc.status_code, exc.message, exc.order_id)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


def _describe_invalid_request(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        # loc is ("body", "userId") or ("query", ...); the transport part is noise
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "; ".join(problems) or "Invalid request"


async def request_validation_handler(request: Request, exc: RequestValidationError):
    body = exc.body if isinstance(exc.body, dict) else {}
    order_id = body.get("orderId") or body.get("order_id")
    error = ValidationError(_describe_invalid_request(exc),
                            order_id=order_id if isinstance(order_id, str) else None)
    return await portal_error_handler(request, error)
