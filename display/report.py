"""Rich report rendering for a TriageReport.

The display layer never touches the runtime. It takes a finished report and
prints it: one summary table of ranked groups, then a short detail block per
group with its distributions and hourly timeline.

Usage:
    report = runtime.triage(events)
    render_report(report)
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from schemas.result import GroupSummary, TriageReport
from schemas.status import ErrorStatus

_STATUS_COLORS = {
    ErrorStatus.FOR_REVIEW: "red",
    ErrorStatus.ACTIVE: "yellow",
    ErrorStatus.LIKELY_RESOLVED: "green",
    ErrorStatus.UNKNOWN: "dim",
}


def build_table(report: TriageReport) -> Table:
    """Build the ranked group table. One row per summary, largest first."""
    table = Table(title="Error Groups", show_lines=True, border_style="bright_black")
    table.add_column("#",          style="dim",  width=3,  justify="right")
    table.add_column("Title",      style="bold", min_width=36)
    table.add_column("Count",      width=7,      justify="right")
    table.add_column("Users",      width=6,      justify="right")
    table.add_column("Status",     width=16,     justify="center")
    table.add_column("Confidence", width=11,     justify="center")
    table.add_column("Identity",   style="dim",  width=18)

    for i, s in enumerate(report.summaries, 1):
        color = _STATUS_COLORS[s.verdict.status]
        table.add_row(
            str(i),
            escape(s.title),
            str(s.count),
            str(s.affected_users),
            f"[{color}]{s.verdict.status.value}[/{color}]",
            f"{s.verdict.confidence:.0%}",
            s.identity,
        )

    return table


def _top(counts: dict[str, int], n: int = 3) -> str:
    if not counts:
        return "-"
    return ", ".join(f"{escape(name)} ({count})" for name, count in list(counts.items())[:n])


def render_summary(summary: GroupSummary, console: Console) -> None:
    """Print the detail block for one group."""
    console.print(f"\n[bold]{escape(summary.title)}[/bold]  [dim]{summary.identity}[/dim]")
    console.print(f"  reason     {escape(summary.verdict.reason)}")
    console.print(f"  browsers   {_top(summary.browsers)}")
    console.print(f"  os         {_top(summary.operating_systems)}")
    console.print(f"  countries  {_top(summary.countries)}")
    if summary.labels:
        console.print(f"  labels     [cyan]{escape(', '.join(summary.labels))}[/cyan]")
    if summary.has_replay:
        console.print("  [magenta]session replay available[/magenta]")
    for hour, count in summary.timeline:
        console.print(f"  [dim]{hour}[/dim]  {'█' * min(count, 40)} {count}")


def render_report(report: TriageReport, console: Console | None = None) -> None:
    """Render the full report: headline counts, table, per-group details."""
    console = console or Console()

    if not report.summaries:
        console.print("\n[yellow]No error groups found.[/yellow]")
        return

    console.print(
        f"  events      [cyan]{report.total_events}[/cyan]"
        f"  (skipped {report.skipped_events})"
    )
    console.print(f"  groups      [cyan]{report.group_count}[/cyan]")
    console.print()
    console.print(build_table(report))

    for summary in report.summaries:
        render_summary(summary, console)

    console.print(f"\n[dim]execution: {report.execution_id}[/dim]\n")
