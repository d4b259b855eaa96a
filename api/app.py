"""
FastAPI application factory for the inline expense editor.

Usage:
    python -m api.app                        # Dev server on port 8000
    APP_DB_PATH=/data/expenses.sqlite python -m api.app

Pieces wired here:
    - one SqliteExpenseStore shared by every editing session
    - a SessionRegistry of per-browser EditingSessions (idle TTL, bounded)
    - the HTML router (list page + HTMX form endpoints) and the read-only
      JSON router under /api/v1
    - request logging with request ids, security headers, JSON error bodies

APP_LOG_FORMAT=json switches every log line to newline-delimited JSON.
"""

import json
import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.database import SqliteExpenseStore, get_db_path, set_db_path
from api.models import draft_errors
from api.routes import expenses
from api.routes import frontend as frontend_routes
from editing.effects import ActionVocabulary
from editing.persistence import Persistence
from editing.session import EditingSession, SessionRegistry
from utils.config import AppConfig
from utils.formatting import format_cents, truncate_text

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ───────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "session_id",
                    "request_id", "effects"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("inline_editor_api")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=_cfg.log_level, force=True)


def create_app(
    db_path: Path | None = None,
    store: Persistence | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).
        store: Use this Persistence instead of the sqlite store.
        config: Override settings read from the environment.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config or _cfg
    if db_path is not None:
        set_db_path(db_path)
    elif config is not None:
        set_db_path(cfg.db_path)
    if store is None:
        store = SqliteExpenseStore(get_db_path())

    vocabulary = ActionVocabulary(transition_ms=cfg.transition_ms)

    def _new_session(session_id: str) -> EditingSession:
        return EditingSession(
            store,
            session_id=session_id,
            vocabulary=vocabulary,
            validator=draft_errors,
            notification_limit=cfg.notification_limit,
        )

    sessions = SessionRegistry(
        _new_session,
        maxsize=cfg.session_max,
        ttl_seconds=cfg.session_ttl,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _logger.info("starting with database %s", get_db_path())
        yield
        sessions.clear()

    app = FastAPI(
        title="Inline Expense Editor",
        summary="Edit a list of expenses in place, one open form at a time.",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "expenses",
                "description": "Read-only JSON access to persisted expenses. Amounts are in cents.",
            },
            {
                "name": "meta",
                "description": "Health check.",
            },
        ],
    )
    app.state.store = store
    app.state.sessions = sessions
    app.state.vocabulary = vocabulary
    app.state.config = cfg

    # ── Request logging middleware ────────────────────────────────────────────

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Tag each request with an id and log one line when it completes."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        path = request.url.path

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if path.startswith("/static") or path == "/health":
            return response
        session_id = request.cookies.get(frontend_routes.SESSION_COOKIE, "-")
        if cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "session_id": session_id,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f sid=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                session_id, request_id,
            )
        return response

    # ── Content Security Policy + security headers ───────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add Content-Security-Policy, X-Content-Type-Options, and X-Frame-Options."""
        response = await call_next(request)
        # CSP: allow self + the CDN that serves htmx.
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' unpkg.com; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "connect-src 'self';"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
                "status_code": 500,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad request", "detail": str(exc), "status_code": 400},
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the store can be read."""
        try:
            count = len(store.list())
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        return {
            "status": "ok",
            "database": str(get_db_path()),
            "expenses": count,
            "sessions": len(sessions),
        }

    # ── Register routers ──────────────────────────────────────────────────────

    app.include_router(expenses.router, prefix="/api/v1")

    # ── Static files + Jinja2 templates ───────────────────────────────────────
    _here = Path(__file__).parent.parent  # project root

    static_dir = _here / "static"
    templates_dir = _here / "templates"

    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    templates = Jinja2Templates(directory=str(templates_dir))
    templates.env.filters["fmt_amount"] = format_cents
    templates.env.filters["truncate_text"] = truncate_text

    # Wire templates into the frontend router
    frontend_routes.set_templates(templates)
    app.include_router(frontend_routes.router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """HTML error page for browser navigation, JSON for everything else."""
        wants_html = (
            "text/html" in request.headers.get("accept", "")
            and "hx-request" not in request.headers
            and not request.url.path.startswith("/api/")
        )
        if wants_html and exc.status_code == 404:
            return templates.TemplateResponse(
                request, "errors/404.html",
                {"request": request, "detail": exc.detail},
                status_code=404,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Request failed", "detail": exc.detail,
                     "status_code": exc.status_code},
            headers=getattr(exc, "headers", None),
        )

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
