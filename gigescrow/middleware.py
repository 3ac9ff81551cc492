"""Application middleware: request body size limit and security headers."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # Balances and payment links must never be served from a shared cache
    "Cache-Control": "no-store",
}


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject write requests whose declared Content-Length exceeds ``max_bytes``."""

    def __init__(self, app, max_bytes: int = 1_048_576) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.max_bytes = max_bytes

    def _reject(self, request: Request) -> JSONResponse | None:
        declared = request.headers.get("content-length")
        if request.method not in ("POST", "PATCH", "PUT") or not declared:
            return None
        if not declared.isdigit():
            return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length header"})
        if int(declared) > self.max_bytes:
            return JSONResponse(
                status_code=413,
                content={"detail": f"Request body too large (max {self.max_bytes} bytes)"},
            )
        return None

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        rejection = self._reject(request)
        if rejection is not None:
            return rejection
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response
