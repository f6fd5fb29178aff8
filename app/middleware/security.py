from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        if "server" in response.headers:
            del response.headers["server"]
        if "X-Powered-By" in response.headers:
            del response.headers["X-Powered-By"]

        path = request.url.path

        # Visitor responses must never be cached by intermediaries unless the
        # link (or its destination) explicitly says otherwise
        if not path.startswith("/v1/") and "cache-control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"
        if path.startswith("/v1/"):
            response.headers["Cache-Control"] = "no-store"

        response.headers["Referrer-Policy"] = "no-referrer"
        # Iframe-mode pages embed the destination; nothing may embed us
        response.headers["X-Frame-Options"] = "DENY"
        if "Content-Security-Policy" not in response.headers:
            response.headers["Content-Security-Policy"] = "frame-ancestors 'none'"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
