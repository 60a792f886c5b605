"""LangGraph turn handler for the booking conversation.

Architecture:
  Each incoming message runs through a small StateGraph:

    1. **screen**     — deterministic emergency keyword check and regex
                        entity extraction (no I/O)
    2. **emergency**  — fast path: fixed hotline response, draft marked
                        ``urgency=emergency``; the model is never called
    3. **generate**   — structured model reply (or the rule-based responder
                        when no AI key is configured); any model failure is
                        turned into a safe degraded reply right here
    4. **merge**      — folds the model's fields, the regex entities and the
                        prior draft into the updated draft

  Routing:
    screen → (emergency?) → emergency → END
    screen → generate → (degraded / rule-based?) → END
                      → merge → END

  The graph is compiled without a checkpointer.  The caller owns the
  ``BookingDraft`` and sends it back with every turn.
"""

from __future__ import annotations

import logging
from typing import Any

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from intake.detection import detect_emergency, extract_entities
from intake.generator import (
    GeneratedTurn,
    StructuredResponseGenerator,
    parse_next_step,
    sanitize_booking_update,
)
from intake.models import (
    BookingDraft,
    ExtractedEntities,
    NextStep,
    TurnResult,
    Urgency,
)
from intake.prompts import DEGRADED_RESPONSE, EMERGENCY_ACTION, EMERGENCY_RESPONSE
from intake.services.llm import ai_configured

logger = logging.getLogger(__name__)

# Fields the regex extractor can also supply
_EXTRACTABLE_FIELDS = ("phone", "email", "condition")

_STEP_ORDER = list(NextStep)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """The state that flows through the turn graph.

    ``message``, ``draft`` and ``service`` are inputs.  ``result`` is set by
    whichever node finishes the turn.
    """

    message: str
    draft: BookingDraft
    service: str | None
    is_emergency: bool
    entities: ExtractedEntities
    generated: GeneratedTurn | None
    result: TurnResult


# ── Next-step precedence ─────────────────────────────────────────────


def compute_next_step(draft: BookingDraft) -> NextStep:
    """Return the first step whose fields are still missing."""
    if draft.condition is None:
        return NextStep.CONDITION
    if draft.urgency is None or draft.pain_score is None or draft.mri_scan_available is None:
        return NextStep.URGENCY
    if not (draft.name and draft.phone and draft.email):
        return NextStep.DETAILS
    if not (draft.preferred_date and draft.preferred_time):
        return NextStep.SCHEDULING
    return NextStep.CONFIRMATION


def resolve_next_step(proposed: Any, draft: BookingDraft) -> NextStep:
    """Accept the model's step only if it does not skip ahead of the computed one."""
    computed = compute_next_step(draft)
    step = parse_next_step(proposed)
    if step is None:
        return computed
    if _STEP_ORDER.index(step) > _STEP_ORDER.index(computed):
        logger.debug("Ignoring next_step=%s, fields for %s still missing", step.value, computed.value)
        return computed
    return step


# ── Merge policy ─────────────────────────────────────────────────────


def merge_draft(
    draft: BookingDraft,
    entities: ExtractedEntities,
    update: dict[str, Any] | None = None,
    *,
    emergency: bool = False,
) -> BookingDraft:
    """Fold model output and regex entities into *draft*.

    ``phone``, ``email`` and ``condition``: model value, else regex value,
    else the prior draft.  Every other field: model value if present, else
    the prior draft.  ``urgency=emergency`` is never downgraded.
    """
    update = update or {}
    merged = draft.model_dump()

    for field in _EXTRACTABLE_FIELDS:
        merged[field] = update.get(field) or getattr(entities, field) or getattr(draft, field)

    for field, value in update.items():
        if field not in _EXTRACTABLE_FIELDS:
            merged[field] = value

    if emergency or draft.urgency == Urgency.EMERGENCY:
        merged["urgency"] = Urgency.EMERGENCY

    return BookingDraft.model_validate(merged)


# ── Rule-based responder (no AI configured) ─────────────────────────

_RULE_BASED_PROMPTS: dict[NextStep, str] = {
    NextStep.CONDITION: (
        "I'd be happy to help you book an appointment. Could you tell me more "
        "about your condition or symptoms?"
    ),
    NextStep.URGENCY: (
        "Thank you. How urgent is this for you? On a scale of 1 to 10, how "
        "severe is the pain, and do you already have an MRI scan?"
    ),
    NextStep.DETAILS: (
        "Could you please share your full name, phone number and email so our "
        "coordinator can reach you?"
    ),
    NextStep.SCHEDULING: "When would you prefer to have your appointment, and at what time of day?",
    NextStep.CONFIRMATION: (
        "Great, I have all the information I need. Our coordinator will call you "
        "within one working day to confirm your appointment slot."
    ),
}


def rule_based_turn(draft: BookingDraft, entities: ExtractedEntities) -> TurnResult:
    updated = merge_draft(draft, entities)
    step = compute_next_step(updated)
    return TurnResult(
        response_text=_RULE_BASED_PROMPTS[step],
        is_emergency=False,
        updated_draft=updated,
        next_step=step,
    )


def degraded_turn(draft: BookingDraft) -> TurnResult:
    """Reply used when the model fails.  The prior draft is returned untouched."""
    return TurnResult(
        response_text=DEGRADED_RESPONSE,
        is_emergency=False,
        updated_draft=draft,
        next_step=NextStep.DETAILS,
    )


# ── Nodes ────────────────────────────────────────────────────────────


def screen_node(state: TurnState) -> dict:
    message = state["message"]
    return {
        "is_emergency": detect_emergency(message),
        "entities": extract_entities(message),
    }


def emergency_node(state: TurnState) -> dict:
    logger.info("Emergency detected via keyword fast-path")
    updated = merge_draft(state["draft"], state["entities"], emergency=True)
    return {
        "result": TurnResult(
            response_text=EMERGENCY_RESPONSE,
            is_emergency=True,
            suggested_action=EMERGENCY_ACTION,
            updated_draft=updated,
            next_step=compute_next_step(updated),
        )
    }


def _make_generate_node(generator: StructuredResponseGenerator | None):
    """Create the node that asks the model for a reply.

    With no generator (no AI key) the rule-based responder finishes the
    turn.  A generator failure of any kind finishes the turn with the
    degraded reply and the unchanged draft.
    """

    def generate_node(state: TurnState) -> dict:
        draft = state["draft"]
        if generator is None:
            return {"generated": None, "result": rule_based_turn(draft, state["entities"])}

        try:
            generated = generator.generate(
                state["message"], draft, state["entities"], service=state.get("service"),
            )
        except Exception as exc:
            logger.warning("Turn generation failed, degrading: %s: %s", type(exc).__name__, exc)
            return {"generated": None, "result": degraded_turn(draft)}
        return {"generated": generated}

    return generate_node


def merge_node(state: TurnState) -> dict:
    generated = state["generated"]
    update = sanitize_booking_update(generated.booking_data)
    updated = merge_draft(
        state["draft"], state["entities"], update, emergency=generated.is_emergency,
    )
    return {
        "result": TurnResult(
            response_text=generated.response,
            is_emergency=generated.is_emergency,
            suggested_action=generated.suggested_action,
            updated_draft=updated,
            next_step=resolve_next_step(generated.next_step, updated),
        )
    }


# ── Conditional edges ────────────────────────────────────────────────


def route_after_screen(state: TurnState) -> str:
    return "emergency" if state.get("is_emergency") else "generate"


def route_after_generate(state: TurnState) -> str:
    return END if state.get("result") is not None else "merge"


# ── Graph assembly ───────────────────────────────────────────────────


def create_booking_agent(generator: StructuredResponseGenerator | None = None):
    """Build and compile the booking turn graph.

    When *generator* is omitted, a Claude-backed generator is built if an
    Anthropic key is configured; otherwise turns use the rule-based
    responder.

    Returns a compiled graph that can be invoked with:
        graph.invoke({"message": "...", "draft": BookingDraft()})
    """
    if generator is None and ai_configured():
        generator = StructuredResponseGenerator()

    graph = StateGraph(TurnState)
    graph.add_node("screen", screen_node)
    graph.add_node("emergency", emergency_node)
    graph.add_node("generate", _make_generate_node(generator))
    graph.add_node("merge", merge_node)

    graph.set_entry_point("screen")
    graph.add_conditional_edges(
        "screen", route_after_screen, {"emergency": "emergency", "generate": "generate"},
    )
    graph.add_edge("emergency", END)
    graph.add_conditional_edges(
        "generate", route_after_generate, {"merge": "merge", END: END},
    )
    graph.add_edge("merge", END)

    compiled = graph.compile()
    logger.debug("Booking agent compiled — generator: %s", type(generator).__name__)
    return compiled


def process_turn(agent, message: str, draft: BookingDraft, service: str | None = None) -> TurnResult:
    """Run one conversation turn through the compiled graph."""
    state = agent.invoke({"message": message, "draft": draft, "service": service})
    result: TurnResult = state["result"]
    logger.info(
        "Booking turn: emergency=%s next_step=%s",
        result.is_emergency, result.next_step.value if result.next_step else None,
    )
    return result
