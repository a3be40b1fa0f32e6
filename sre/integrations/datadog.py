"""Datadog RUM integration client.

Responsible for two things:
1. Building the RUM search query from TriageSettings
2. Fetching error events page by page and validating them into
   RumErrorEvent objects

Live mode:    set DD_API_KEY and DD_APP_KEY — fetch_rum_errors() calls the real API.
Fixture mode: leave either unset — fetch_rum_errors() loads rum_errors.json.

The fixture path lets the full pipeline run for a demo without a Datadog
account. Retries and backoff are deliberately absent: a failed page raises
and the caller decides what to do.

Datadog API reference: https://docs.datadoghq.com/api/latest/rum/#search-rum-events
"""

import json
import logging
import pathlib

import httpx
from pydantic import ValidationError

from core.config import DatadogSettings, TriageSettings
from schemas.events import RumErrorEvent
from utils.redaction import secure_log

logger = logging.getLogger(__name__)

SEARCH_PATH = "/api/v2/rum/events/search"

FIXTURE_PATH = pathlib.Path(__file__).parents[2] / "fixtures" / "rum_errors.json"

# Browser noise that is almost never actionable.
NOISE_PATTERNS = [
    "NOT @error.message:*ChunkLoadError*",
    "NOT @error.message:*ResizeObserver*",
    "NOT @error.message:*Non-Error promise rejection*",
    "NOT @error.message:*Network request failed*",
    "NOT @error.message:*Script error*",
    "NOT @error.message:*undefined is not an object*",
]


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------

def build_search_query(settings: TriageSettings) -> str:
    """Build the RUM search query for one triage run.

    Always restricts to error events. Adds service, handling and source
    filters when configured, then the noise exclusions. Clauses are joined
    with AND.

    Example:
        @type:error AND @service:"web-app" AND @error.handling:unhandled
    """
    clauses = ["@type:error"]

    if settings.service:
        clauses.append(f'@service:"{settings.service}"')

    if settings.error_handling and settings.error_handling != "all":
        clauses.append(f"@error.handling:{settings.error_handling}")

    if settings.error_source:
        clauses.append(f"@error.source:{settings.error_source}")

    if settings.exclude_noise:
        clauses.extend(NOISE_PATTERNS)

    return " AND ".join(clauses)


# ---------------------------------------------------------------------------
# Fetcher — live or fixture depending on settings
# ---------------------------------------------------------------------------

async def fetch_rum_errors(
    settings: TriageSettings,
    query: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[RumErrorEvent]:
    """Fetch RUM error events for the configured time window.

    Switches automatically between live and fixture mode based on whether
    both Datadog keys are configured.

    Args:
        settings: Run settings. settings.datadog holds credentials and
            paging limits; date_from / date_to bound the window.
        query: Search query. Defaults to build_search_query(settings).
        transport: Optional httpx transport, used by tests to stub the API.

    Returns:
        Validated events, newest first. Items that fail validation are
        logged and dropped.

    Raises:
        httpx.HTTPStatusError: If a search call returns a non-2xx response.
    """
    query = query or build_search_query(settings)

    if not settings.datadog.live:
        logger.info("DD_API_KEY / DD_APP_KEY not set — using fixture data.")
        return load_fixture()

    logger.info("Searching for RUM errors with query: %s", query)
    return await _fetch_from_api(settings, query, transport)


async def check_connection(
    settings: DatadogSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Run a one-event search to check credentials and connectivity."""
    body = {
        "filter": {"from": "now-1h", "to": "now", "query": "@type:error"},
        "page": {"limit": 1},
    }
    try:
        async with _client(settings, transport) as client:
            response = await client.post(SEARCH_PATH, json=body)
            response.raise_for_status()
        return True
    except httpx.HTTPError as exc:
        logger.error("Datadog connection test failed: %s", exc)
        return False


# ---------------------------------------------------------------------------
# Live Datadog API calls
# ---------------------------------------------------------------------------

def _client(
    settings: DatadogSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {
        "DD-API-KEY": settings.api_key or "",
        "DD-APPLICATION-KEY": settings.app_key or "",
        "Content-Type": "application/json",
    }
    return httpx.AsyncClient(
        base_url=f"https://api.{settings.site}",
        headers=headers,
        timeout=30,
        transport=transport,
    )


async def _fetch_from_api(
    settings: TriageSettings,
    query: str,
    transport: httpx.AsyncBaseTransport | None,
) -> list[RumErrorEvent]:
    """Page through the search endpoint until the cursor runs out.

    Stops when the response has no data, no next cursor, a short page, or
    after max_pages pages — whichever comes first.
    """
    dd = settings.datadog
    events: list[RumErrorEvent] = []
    cursor: str | None = None

    async with _client(dd, transport) as client:
        for page in range(dd.max_pages):
            logger.debug("Fetching page %d of RUM errors.", page + 1)

            page_params: dict = {"limit": dd.page_limit}
            if cursor:
                page_params["cursor"] = cursor

            body = {
                "filter": {"from": settings.date_from, "to": settings.date_to, "query": query},
                "page": page_params,
                "sort": "-timestamp",
            }

            response = await client.post(SEARCH_PATH, json=body)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error("Failed to fetch RUM errors: %s", exc)
                raise

            payload = response.json()
            data = payload.get("data") or []
            if not data:
                break

            events.extend(_parse_events(data))

            cursor = ((payload.get("meta") or {}).get("page") or {}).get("after")
            if not cursor or len(data) < dd.page_limit:
                break

    logger.info("Successfully fetched %d RUM errors.", len(events))
    return events


def _parse_events(items: list[dict]) -> list[RumErrorEvent]:
    """Validate raw API items, dropping the ones that do not fit the schema."""
    events = []
    for item in items:
        try:
            events.append(RumErrorEvent.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed RUM event %s: %s",
                item.get("id", "<no id>"),
                secure_log(str(exc)),
            )
    return events


# ---------------------------------------------------------------------------
# Fixture fallback
# ---------------------------------------------------------------------------

def load_fixture(path: pathlib.Path = FIXTURE_PATH) -> list[RumErrorEvent]:
    """Load demo events from a JSON file shaped like a search response.

    Accepts either {"data": [...]} or a bare list of events.
    """
    if not path.exists():
        logger.warning("%s not found — returning no events.", path)
        return []

    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    items = raw.get("data", []) if isinstance(raw, dict) else raw
    return _parse_events(items)
