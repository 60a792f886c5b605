"""FastAPI route definitions for the intake API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from intake.agent import process_turn
from intake.api.schemas import HealthResponse, TurnRequest
from intake.prompts import UNAVAILABLE_RESPONSE

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."


def _get_resource(request: Request, name: str):
    """Retrieve a shared resource that the lifespan stored on app state."""
    resource = getattr(request.app.state, name, None)
    if resource is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return resource


def _client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


def _rate_limited(request: Request, limiter_name: str) -> JSONResponse | None:
    decision = _get_resource(request, limiter_name).check(_client_ip(request))
    if decision.allowed:
        return None
    logger.info(
        "[%s] rate limited %s on %s",
        getattr(request.state, "request_id", "?"), _client_ip(request), request.url.path,
    )
    return JSONResponse(
        {"error": RATE_LIMITED_MESSAGE},
        status_code=429,
        headers={"Retry-After": str(decision.retry_after)},
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/ai-booking")
async def ai_booking(request: TurnRequest, http_request: Request):
    """Process one booking conversation turn.

    The caller sends the draft collected so far and stores the
    ``updatedDraft`` from the response for the next turn.  The graph makes
    blocking model calls, so it runs on a worker thread.
    """
    limited = _rate_limited(http_request, "turn_limiter")
    if limited is not None:
        return limited

    agent = _get_resource(http_request, "agent")
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(
            process_turn, agent, request.message, request.booking_data, request.service,
        )
    except Exception:
        logger.exception("[%s] Error processing booking turn (page=%s)", request_id, request.page_slug)
        return JSONResponse(
            {"error": "Internal server error", "response": UNAVAILABLE_RESPONSE},
            status_code=500,
        )

    logger.info(
        "[%s] booking turn page=%s thread=%s emergency=%s",
        request_id, request.page_slug, request.thread_id, result.is_emergency,
    )
    return result.to_wire()


@router.get("/ai-booking")
async def ai_booking_info():
    """Describe the booking assistant endpoint."""
    return {
        "message": "AI Booking API is running",
        "version": "2.0.0",
        "features": [
            "Structured LLM turn generation",
            "Emergency detection (keyword fast-path)",
            "Condition classification",
            "Contact extraction",
            "Conversational slot filling",
        ],
    }


@router.post("/appointments/submit")
async def submit_appointment(http_request: Request):
    """Validate, persist and fan out a finished booking.

    The body is read untyped: field validation (and its 400 messages)
    belongs to the submission pipeline, not to FastAPI.
    """
    limited = _rate_limited(http_request, "submit_limiter")
    if limited is not None:
        return limited

    pipeline = _get_resource(http_request, "pipeline")
    try:
        payload = await http_request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid body"}, status_code=400)

    source = http_request.headers.get("x-booking-source") or "website"
    result = await pipeline.submit(payload, source=source)
    return JSONResponse(result.body, status_code=result.status_code)
