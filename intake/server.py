"""FastAPI server for the patient intake service.

Run with:
    uvicorn intake.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from intake.agent import create_booking_agent
from intake.api.routes import router
from intake.config import (
    CORS_ORIGINS,
    RATE_LIMIT_WINDOW_SECONDS,
    SERVER_HOST,
    SERVER_PORT,
    SUBMIT_RATE_LIMIT,
    TURN_RATE_LIMIT,
)
from intake.confirmation import ConfirmationGenerator
from intake.dispatch import NotificationDispatcher
from intake.services.email_client import get_email_client
from intake.services.rate_limit import FixedWindowRateLimiter
from intake.services.sheets_client import get_sheets_client
from intake.services.store import AppointmentStore
from intake.services.webhooks import get_webhook_notifier
from intake.submission import SubmissionPipeline

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: compile the turn graph and wire the submission pipeline.

    Shutdown: wait for webhook deliveries still in flight.
    """
    logger.info("Compiling booking agent…")
    application.state.agent = create_booking_agent()

    dispatcher = NotificationDispatcher(
        store=AppointmentStore(),
        email_client=get_email_client(),
        sheets_client=get_sheets_client(),
        webhook_notifier=get_webhook_notifier(),
    )
    application.state.dispatcher = dispatcher
    application.state.pipeline = SubmissionPipeline(dispatcher, ConfirmationGenerator())
    application.state.turn_limiter = FixedWindowRateLimiter(TURN_RATE_LIMIT, RATE_LIMIT_WINDOW_SECONDS)
    application.state.submit_limiter = FixedWindowRateLimiter(SUBMIT_RATE_LIMIT, RATE_LIMIT_WINDOW_SECONDS)
    logger.info("Intake service ready.")
    yield
    await dispatcher.drain()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Neurosurgery Patient Intake",
    description=(
        "Conversational appointment intake and booking submission "
        "with multi-channel notification fan-out."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 ``{"error": ...}``."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse({"error": message}, status_code=400)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Neurosurgery Patient Intake",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting intake API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("intake.server:app", host=SERVER_HOST, port=SERVER_PORT, reload=True)
