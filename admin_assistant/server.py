"""FastAPI server for the back-office assistant.

Run with:
    uvicorn admin_assistant.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from admin_assistant.agent import AdminAssistant
from admin_assistant.api.routes import router
from admin_assistant.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, TIME_ZONE
from admin_assistant.memory import SessionManager
from admin_assistant.services.metrics import metrics
from admin_assistant.temporal import day_start_in_zone

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Retention sweep ─────────────────────────────────────────────────


def _seconds_until_next_sweep(sessions: SessionManager) -> float:
    """Seconds until one minute past the next local midnight."""
    now = sessions.now()
    next_run = day_start_in_zone(now + timedelta(days=1), TIME_ZONE) + timedelta(minutes=1)
    return max((next_run - now).total_seconds(), 60.0)


def _start_retention_thread(sessions: SessionManager, stop: threading.Event) -> threading.Thread:
    """Purge yesterday's sessions shortly after every local midnight."""

    def _loop():
        while not stop.wait(_seconds_until_next_sweep(sessions)):
            try:
                sessions.run_retention_sweep()
            except Exception:
                logger.exception("Retention sweep failed")

    thread = threading.Thread(target=_loop, daemon=True, name="retention-sweep")
    thread.start()
    return thread


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: build the assistant once and store it in app state."""
    logger.info("Building admin assistant…")
    assistant = AdminAssistant()
    application.state.agent = assistant
    stop = threading.Event()
    _start_retention_thread(assistant.sessions, stop)
    logger.info("Assistant ready.")
    yield
    stop.set()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Admin Assistant",
    description=(
        "Back-office AI assistant: create appointments, shop and staff "
        "holidays and announcements from Spanish natural language."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (admin panel frontend) ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) to every request for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Admin Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting admin assistant API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "admin_assistant.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
