"""Error taxonomy shared by every service.

Each error is an ``HTTPException`` so services can raise it directly, the
same way they raise plain ``HTTPException``; the handler registered in
``gigescrow.main`` adds the machine-readable ``error`` code to the body.
"""

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class ServiceError(HTTPException):
    status_code = 400
    code = "service_error"

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(ServiceError):
    """Bad input shape or range."""
    status_code = 422
    code = "validation_error"


class AuthenticationError(ServiceError):
    """Webhook signature or request signature could not be verified."""
    status_code = 401
    code = "authentication_error"


class AuthorizationError(ServiceError):
    status_code = 403
    code = "authorization_error"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class PreconditionError(ServiceError):
    """A required prior state is missing, e.g. release without a completed escrow."""
    status_code = 409
    code = "precondition_failed"


class InsufficientFundsError(ServiceError):
    status_code = 422
    code = "insufficient_funds"


class GatewayError(ServiceError):
    """The payment processor rejected the call or could not be reached."""
    status_code = 502
    code = "gateway_error"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.code},
        headers=exc.headers,
    )
