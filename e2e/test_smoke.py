from rich.console import Console

from core.runtime import TriageRuntime
from display.report import render_report
from schemas.result import TriageReport
from sre.integrations.datadog import load_fixture


def test_fixture_triage_smoke() -> None:
    events = load_fixture()
    report = TriageRuntime().triage(events)
    assert report.total_events == 6
    assert report.summaries[0].count == 3
    assert report.summaries[0].error_type == "TypeError"


def test_report_renders() -> None:
    report = TriageRuntime().triage(load_fixture())
    console = Console(record=True, width=200)
    render_report(report, console)
    text = console.export_text()
    assert "Error Groups" in text
    assert report.summaries[0].identity in text


def test_empty_report_renders() -> None:
    console = Console(record=True, width=120)
    render_report(TriageReport(summaries=[], total_events=0, skipped_events=0, group_count=0), console)
    assert "No error groups found." in console.export_text()
