"""Digital Twin: an AI representation of one person for their personal site.

Architecture Overview
=====================

Visitors chat with the twin over HTTP (text or transcribed voice).  Each
turn is handled by a **LangGraph** state machine with two nodes:

1. **chatbot**: invokes Claude with the stored conversation history and a
   system prompt built from the persona profile (``PERSONA.md``).  The LLM
   answers directly or calls one of four tools.

2. **tools**: runs the requested tool calls through ``tools.dispatch``.
   Results go back to the chatbot node as JSON.

Routing: chatbot → (tool calls?) → tools → chatbot (loop until no tool calls → END)

Tools
-----
- ``captureVisitor``: create/update the visitor for an email, link it to
  the conversation.
- ``checkAvailability``: free meeting hours for a date and a time-of-day
  slot.
- ``createBooking``: record a pending meeting request for a visitor.
- ``generateSummary``: Markdown recap of the conversation.

Key Design Decisions
--------------------
- **Storage**: SQLAlchemy over SQLite (local) or PostgreSQL.  Visitors and
  bookings are written with a single ``INSERT … ON CONFLICT DO UPDATE``
  keyed by a unique column, so concurrent first writes never fork rows.
- **One booking per conversation**: the agent's tool and the scheduling
  form both upsert the same row.
- **Failures never abort a turn**: tool errors come back to the LLM as
  ``{success: false, message}``; every call is audited on a best-effort
  basis (a failed audit write is logged and counted, never raised).
- **Timezone**: booking hours are evaluated in ``BOOKING_TIMEZONE``; the
  database stores naive UTC.
- **Dual Interface**: FastAPI server (production) + CLI chat loop
  (development/testing).

Package Structure
-----------------
- ``digital_twin/agent.py``: LangGraph StateGraph definition
- ``digital_twin/config.py``: centralized configuration from environment variables
- ``digital_twin/prompts.py``: system prompt with persona injection
- ``digital_twin/server.py``: FastAPI application
- ``digital_twin/main.py``: CLI chat interface
- ``digital_twin/db/``: ORM models and the ``Database`` accessor layer
- ``digital_twin/services/``: availability, bookings, visitors, conversations,
  admin report, audit log, metrics
- ``digital_twin/tools/``: tool input schemas and the dispatcher
- ``digital_twin/api/``: FastAPI routes and Pydantic schemas
"""
