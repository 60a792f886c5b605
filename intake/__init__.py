"""Neurosurgery patient intake — conversational booking and submission fan-out.

Architecture Overview
=====================

Two pipelines share one set of domain models:

1. **Conversation** — each chat message runs through a LangGraph turn graph.
   A keyword screen catches emergencies before any model call; otherwise
   Claude returns a structured reply whose booking fields are checked and
   merged with regex-extracted contact details into the caller's draft.
   A model failure never fails the turn: the draft comes back unchanged
   with a safe re-prompt.

2. **Submission** — a finished booking is validated field by field, gets a
   confirmation message (Claude or a fixed template), is written to the
   appointment store and then fanned out to email, the CRM sheet, triage
   scoring and webhook subscribers.  Only the store write can fail the
   request; webhooks are fire-and-forget.

Package Structure
-----------------
- ``intake/agent.py`` — LangGraph turn graph, merge policy, next-step precedence
- ``intake/detection.py`` — emergency keywords and regex entity extraction
- ``intake/generator.py`` — structured model reply and untrusted-output checks
- ``intake/validation.py`` — submitted booking field validation
- ``intake/confirmation.py`` — confirmation text
- ``intake/dispatch.py`` — persistence and notification fan-out
- ``intake/submission.py`` — submission state machine
- ``intake/config.py`` — configuration from environment variables / SSM
- ``intake/server.py`` — FastAPI application
- ``intake/main.py`` — CLI chat interface
- ``intake/services/`` — store, email, CRM, webhooks, triage, rate limiting, metrics
- ``intake/api/`` — FastAPI routes and Pydantic schemas
"""
