"""
Request lifecycle middleware for the Costify API.

Tags every request with a short id, the caller's user id and (for
``/api/projects/{id}/...`` routes) the project id, then logs how it went.
"""

import re
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
from logging_config import get_logger, request_id_var, user_id_var, project_id_var
from jose import JWTError, jwt
from config import config

logger = get_logger("middleware")

_PROJECT_PATH = re.compile(r"^/api/projects/([^/]+)")

# Polled constantly by the frontend; only logged when they fail
_QUIET_PATHS = ("/", "/api/notifications/unread-count")


def _user_from_token(request: Request) -> str:
    """Best-effort user id from the bearer token; auth itself happens in routes.deps."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return "-"
    try:
        payload = jwt.decode(auth_header[7:], config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return "-"
    return payload.get("sub") or "-"


def _project_from_path(path: str) -> str:
    match = _PROJECT_PATH.match(path)
    return match.group(1) if match else "-"


class RequestLifecycleMiddleware(BaseHTTPMiddleware):
    """Request tracing plus one log line on the way in and one on the way out."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = uuid.uuid4().hex[:8]
        request_id_var.set(req_id)
        user_id_var.set(_user_from_token(request))
        project_id_var.set(_project_from_path(request.url.path))

        method = request.method
        path = request.url.path
        quiet = path in _QUIET_PATHS
        start_time = time.perf_counter()

        if not quiet:
            logger.info(
                f"→ {method} {path}",
                extra={"data": {"query": str(request.query_params) if request.query_params else None}}
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 1)
            logger.error(
                f"✖ {method} {path} UNHANDLED ERROR ({duration_ms}ms): {exc}",
                exc_info=True,
                extra={"data": {"duration_ms": duration_ms, "error": str(exc)}}
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "request_id": req_id},
                headers={"X-Request-ID": req_id}
            )

        duration_ms = round((time.perf_counter() - start_time) * 1000, 1)
        if response.status_code >= 400:
            logger.warning(
                f"← {method} {path} {response.status_code} ({duration_ms}ms)",
                extra={"data": {"status": response.status_code, "duration_ms": duration_ms}}
            )
        elif not quiet:
            logger.info(
                f"← {method} {path} {response.status_code} ({duration_ms}ms)",
                extra={"data": {"status": response.status_code, "duration_ms": duration_ms}}
            )

        # Request ID in the response headers for client-side debugging
        response.headers["X-Request-ID"] = req_id
        return response
