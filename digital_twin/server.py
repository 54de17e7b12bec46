"""FastAPI server for the Digital Twin.

Run with:
    uvicorn digital_twin.server:app --reload --host 0.0.0.0 --port 8000
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

from digital_twin.agent import create_digital_twin_agent
from digital_twin.api.routes import router
from digital_twin.config import CORS_ORIGINS, PERSONA_NAME, SERVER_HOST, SERVER_PORT
from digital_twin.db.store import Database
from digital_twin.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: open the database, create the schema, compile the agent.

    Both live in app state for the life of the process.
    """
    db = Database()
    db.create_schema()
    application.state.db = db

    logger.info("Compiling LangGraph agent…")
    application.state.agent = create_digital_twin_agent(db)
    logger.info("Agent ready.")
    yield
    metrics.flush()
    db.dispose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Digital Twin",
    description=(
        f"AI representation of {PERSONA_NAME}: answers questions about their "
        "work, captures visitor details and records meeting requests."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the web frontend) ───────────────────────────────
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
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header and prefixed
    to the route's log lines.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Malformed request bodies are plain 400s ──────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request. " + "; ".join(problems)},
    )


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Digital Twin",
        "persona": PERSONA_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting Digital Twin API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "digital_twin.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
