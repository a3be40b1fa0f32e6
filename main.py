"""RUM Triage — HTTP API.

Exposes the triage engine over HTTP:

    GET  /health               liveness probe
    POST /api/triage           triage a batch of events posted in the body
    POST /api/triage/datadog   fetch the configured window from Datadog, then triage
    POST /api/redact           mask a text and/or filter a context object

Every triage request builds a fresh report. Nothing is stored between
requests — cross-run state belongs to the issue tracker (sre/tracking.py).

Run locally:
    uv run uvicorn main:app --reload
"""

import logging
import logging.handlers
import os
import pathlib

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, JsonValue, ValidationError

load_dotenv()

from core.config import TriageSettings
from core.runtime import TriageRuntime
from schemas.events import RumErrorEvent
from schemas.result import TriageReport
from sre.integrations.datadog import build_search_query, fetch_rum_errors
from utils.redaction import Redactor

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FILE = pathlib.Path(__file__).parent / "rum_triage.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(logging.INFO)
_root_logger.addHandler(_file_handler)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + CORS
# ---------------------------------------------------------------------------

app = FastAPI(title="RUM Triage")

# ALLOWED_ORIGINS env var overrides the default for production deployments.
_origins = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Runtime setup
# ---------------------------------------------------------------------------

settings = TriageSettings.from_env()
runtime = TriageRuntime(settings)
redactor = Redactor(settings.redaction)

# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class TriageRequest(BaseModel):
    """A batch of events to triage, with an optional reference time."""
    events: list[RumErrorEvent]
    now: int | None = None


class RedactRequest(BaseModel):
    text: str | None = None
    context: JsonValue = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok", "mode": "live" if settings.datadog.live else "fixture"}


# ---------------------------------------------------------------------------
# Triage
# ---------------------------------------------------------------------------

@app.post("/api/triage", response_model=TriageReport)
async def triage_events(request: Request):
    """Triage the events in the request body.

    Returns 400 if the body is not a valid batch. Individual events are
    validated strictly here: one malformed event rejects the whole request.
    """
    try:
        body = await request.json()
        payload = TriageRequest.model_validate(body)
    except (ValueError, ValidationError) as exc:
        detail = redactor.mask_text(str(exc))
        logger.warning("Rejected triage request: %s", detail)
        raise HTTPException(status_code=400, detail=detail)

    report = runtime.triage(payload.events, now=payload.now)
    logger.info(
        "Triage %s complete. %d events → %d groups, %d reported.",
        report.execution_id,
        report.total_events,
        report.group_count,
        len(report.summaries),
    )
    return report


@app.post("/api/triage/datadog", response_model=TriageReport)
async def triage_datadog():
    """Fetch the configured window from Datadog (or the fixture) and triage it.

    Returns 502 if the Datadog API call fails.
    """
    try:
        events = await fetch_rum_errors(settings, build_search_query(settings))
    except httpx.HTTPError as exc:
        logger.error("Datadog fetch failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Datadog request failed: {exc}")

    return runtime.triage(events)


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------

@app.post("/api/redact")
def redact(payload: RedactRequest):
    """Mask free text and filter a structured context in one call."""
    return {
        "text": redactor.mask_text(payload.text),
        "context": redactor.filter_context(payload.context),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
