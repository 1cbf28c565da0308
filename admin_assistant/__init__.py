"""Back-office AI assistant for salon and barbershop administrators.

Architecture Overview
=====================

An administrator writes in Spanish ("vacaciones para Ana del 3 al 7 de
marzo", "cita mañana a las 18:00 con Luis para corte") and the assistant
turns it into one of four back-office actions through a bounded
LangGraph tool-calling loop:

1. **chatbot** -- Claude, with only the tools the intent engine selected
   for this message bound (optionally forcing one).
2. **tools** -- validates and runs each tool call, then renders a fixed
   Spanish sentence per outcome.

Routing: chatbot -> tools -> END as soon as a round yields a reply, at
most three model rounds per turn.

Key Design Decisions
--------------------
- **Deterministic parsing**: dates, times, ranges and names are parsed by
  the assistant's own Spanish heuristics (``temporal``, ``text``,
  ``resolver``); the model's normalized values are cross-checked against
  the raw text.
- **Slot search**: exact or windowed search across staff, ties broken by
  weekly load and then by name (``slots``).
- **Explicit tenancy**: every back-office call takes a ``TenantScope``.
- **Memory**: per-admin, per-day sessions in SQLite with a capped message
  window, rolling summaries and business facts (``memory``).
- **Resilience**: the back-office client retries idempotent reads with
  exponential backoff; writes are attempted once.
- **Dual Interface**: FastAPI server (production) + CLI chat loop.

Package Structure
-----------------
- ``admin_assistant/agent.py`` -- LangGraph graph and ``AdminAssistant``
- ``admin_assistant/intent.py`` -- tool selection and forcing
- ``admin_assistant/temporal.py`` -- Spanish date/time/range parser
- ``admin_assistant/resolver.py`` -- fuzzy staff/service/customer matching
- ``admin_assistant/slots.py`` -- slot search with load balancing
- ``admin_assistant/tools/`` -- tool schemas, handlers and registry
- ``admin_assistant/replies.py`` -- outcome sentences and reply clean-up
- ``admin_assistant/memory.py`` -- session lifecycle and retention
- ``admin_assistant/services/`` -- back-office client, SQLite store, metrics
- ``admin_assistant/api/`` -- FastAPI routes and Pydantic schemas
"""
