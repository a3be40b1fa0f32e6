"""RUM Triage — CLI runner.

Fetches RUM error events for the configured window, groups and classifies
them, and prints the ranked report in the terminal using Rich.

All configuration comes from the environment (see core/config.py). Without
DD_API_KEY / DD_APP_KEY the run uses fixtures/rum_errors.json.

Usage:
    uv run python cli.py
"""

import asyncio
import logging

from rich.console import Console

from core.config import TriageSettings
from core.runtime import TriageRuntime
from display.report import render_report
from sre.integrations.datadog import build_search_query, fetch_rum_errors

console = Console()


async def _run() -> None:
    settings = TriageSettings.from_env()
    query = build_search_query(settings)

    console.rule("[bold]RUM Triage[/bold]")
    console.print(f"  mode        [cyan]{'live' if settings.datadog.live else 'fixture'}[/cyan]")
    console.print(f"  window      [cyan]{settings.date_from} → {settings.date_to}[/cyan]")
    console.print(f"  query       [dim]{query}[/dim]")

    with console.status("Fetching RUM errors..."):
        events = await fetch_rum_errors(settings, query)

    report = TriageRuntime(settings).triage(events)
    render_report(report, console)


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(_run())


if __name__ == "__main__":
    main()
