"""Pastebox - accounts and an immutable paste store."""

import html
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from pastebox.config import get_settings
from pastebox.exceptions import PasteboxError
from pastebox.routers import auth_router, pastes_router
from pastebox.services.outbox import get_outbox_worker
from pastebox.services.paste_store import get_paste_store

# Logging
logger = logging.getLogger("pastebox")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

APP_VERSION = "0.1.0"
PACKAGE_DIR = Path(__file__).resolve().parent / "pastebox"

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load pastes before serving and run the mail outbox worker while up."""
    for warning in settings.validate():
        logger.warning(warning)

    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

    # Unreadable paste data aborts startup instead of serving an empty store
    get_paste_store().load()

    worker = get_outbox_worker() if settings.OUTBOX_ENABLED else None
    if worker:
        worker.start()
    logger.info("Pastebox %s ready", APP_VERSION)
    try:
        yield
    finally:
        if worker:
            worker.stop()


app = FastAPI(title="Pastebox", version=APP_VERSION, lifespan=lifespan)


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; img-src 'self' data:"
        )
        return response


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATHS = {
        "/api/register",
        "/api/login",
        "/api/uploadProfilePicture",
        "/api/password-reset-request",
        "/api/reset-password",
        "/api/createPaste",
    }

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        if request.method == "POST" and path in self.AUDIT_PATHS:
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                request.method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(AuditLogMiddleware)

# Static files and uploaded profile pictures
app.mount("/static", StaticFiles(directory=PACKAGE_DIR / "static"), name="static")
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

# API routers
app.include_router(auth_router)
app.include_router(pastes_router)


def _is_page(request: Request) -> bool:
    return request.url.path.startswith("/p/")


def _error_page(status_code: int, message: str) -> HTMLResponse:
    return HTMLResponse(content=f"<h1>{status_code}</h1><p>{html.escape(message)}</p>", status_code=status_code)


# --- Domain error handler ---
@app.exception_handler(PasteboxError)
async def pastebox_error_handler(request: Request, exc: PasteboxError) -> Response:
    """Render service errors as their status code and short message."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    if _is_page(request):
        return _error_page(exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- HTTP error handler: JSON for the API, HTML for pages ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if _is_page(request):
        return _error_page(exc.status_code, str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


# --- Health check ---
@app.get("/api/health")
def health_check() -> dict:
    """Health check endpoint. Reports "degraded" until pastes are loaded."""
    store_state = get_paste_store().state
    return {
        "status": "ok" if store_state == "ready" else "degraded",
        "app": "pastebox",
        "version": APP_VERSION,
        "pasteStore": store_state,
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
