"""
Console progress and final report output.

Progress observations are printed as single lines; the final report is
printed as a rich panel and can also be written to disk as JSON or
Markdown.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


class ReportFormat(Enum):
    CONSOLE = "console"
    JSON = "json"
    MARKDOWN = "markdown"


class ConsoleProgressReporter:
    """Prints `Progress: 10.0% (10/100) - Success: 9, Failed: 1` lines."""

    def __init__(self, out: Optional[Console] = None):
        self.out = out or console

    def __call__(self, observation) -> None:
        o = observation
        self.out.print(
            f"[dim]Progress:[/dim] {o.percent:.1f}% ({o.processed}/{o.total}) - "
            f"[green]Success: {o.success_count}[/green], [red]Failed: {o.failure_count}[/red]"
        )


def print_banner(test_name: str, target_url: str, config, out: Optional[Console] = None) -> None:
    """Start-of-run panel with the target and concurrency settings."""
    out = out or console
    if config.mode.value == "workers":
        layout = f"Workers: {config.worker_count}"
    else:
        layout = f"Concurrency: {config.concurrency} | Batch delay: {config.inter_batch_delay * 1000:.0f}ms"
    out.print(Panel(
        f"[bold blue]{test_name}[/bold blue]\n"
        f"Target: {target_url}\n"
        f"Requests: {config.total_requests:,} | {layout} | Timeout: {config.timeout:g}s",
        title="🚀 Starting Test",
    ))


def print_aborted(message: str, out: Optional[Console] = None) -> None:
    """Panel for a run that never started."""
    out = out or console
    out.print(Panel(
        f"[bold red]Run aborted before any request was sent[/bold red]\n\n{message}",
        title="✗ Aborted",
        border_style="red",
    ))


def _error_table(report) -> Table:
    table = Table(title="Error Summary", expand=True)
    table.add_column("Error", style="red")
    table.add_column("Occurrences", style="cyan", justify="right")
    for error, count in report.errors:
        table.add_row(error, f"{count:,}")
    return table


def print_console_report(report, out: Optional[Console] = None) -> None:
    """Print the final report panel."""
    out = out or console
    r = report
    stop_line = f"\n[yellow]Stopped early:[/yellow]      {r.stop_reason}" if r.stop_reason else ""
    out.print("\n")
    out.print(Panel(
        f"""[bold]Load Test Results[/bold]

[cyan]Total Requests:[/cyan]     {r.total_requests:,}
[cyan]Processed:[/cyan]          {r.processed:,}
[green]Successful:[/green]         {r.successful:,} ({r.success_rate:.1f}%)
[red]Failed:[/red]             {r.failed:,}
[dim]Timed Out:[/dim]          {r.timeouts:,}{stop_line}

[cyan]Total Test Time:[/cyan]    {r.duration_s:.2f}s
[cyan]Requests/Second:[/cyan]    {r.requests_per_second:.2f}
[cyan]Requests/Minute:[/cyan]    {r.requests_per_minute:.2f}

[bold]Response Time (ms):[/bold]
  Average:  {r.avg_ms:.2f}
  Min:      {r.min_ms:.2f}
  Max:      {r.max_ms:.2f}
  P50:      {r.p50_ms:.2f}
  P95:      {r.p95_ms:.2f}
  P99:      {r.p99_ms:.2f}
""",
        title="📊 Final Results",
        border_style="green" if r.failed == 0 else "red",
    ))
    if r.errors:
        out.print(_error_table(r))


def render_json(report, test_name: str, target_url: str, run_config: Optional[Dict[str, Any]] = None) -> str:
    payload = {
        "test_name": test_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "target_url": target_url,
        "config": run_config or {},
        "report": report.to_dict(),
    }
    return json.dumps(payload, indent=2)


def render_markdown(report, test_name: str, target_url: str) -> str:
    r = report
    errors = "".join(f"| {error} | {count:,} |\n" for error, count in r.errors) or "| - | 0 |\n"
    stop = f"\n**Stopped early:** {r.stop_reason}\n" if r.stop_reason else ""
    return f"""# {test_name}

**Target:** `{target_url}`
**Generated:** {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}
**Status:** {r.status}
{stop}
## Summary

| Metric | Value |
|--------|-------|
| Total Requests | {r.total_requests:,} |
| Processed | {r.processed:,} |
| Successful | {r.successful:,} |
| Failed | {r.failed:,} |
| Timed Out | {r.timeouts:,} |
| Duration | {r.duration_s:.2f}s |
| Requests/Second | {r.requests_per_second:.2f} |
| Requests/Minute | {r.requests_per_minute:.2f} |

## Response Time (ms)

| Statistic | Value |
|-----------|-------|
| Average | {r.avg_ms:.2f} |
| Min | {r.min_ms:.2f} |
| Max | {r.max_ms:.2f} |
| P50 | {r.p50_ms:.2f} |
| P95 | {r.p95_ms:.2f} |
| P99 | {r.p99_ms:.2f} |

## Errors

| Error | Occurrences |
|-------|-------------|
{errors}"""


class ReportWriter:
    """
    Final report sink: always prints the console panel, and additionally
    writes JSON or Markdown when that format is selected.
    """

    def __init__(
        self,
        format: ReportFormat = ReportFormat.CONSOLE,
        output_path: Optional[str] = None,
        test_name: str = "Upload Stress Test",
        target_url: str = "",
        run_config: Optional[Dict[str, Any]] = None,
        out: Optional[Console] = None,
    ):
        self.format = format
        self.output_path = output_path
        self.test_name = test_name
        self.target_url = target_url
        self.run_config = run_config
        self.out = out or console
        self.rendered: Optional[str] = None

    def __call__(self, report) -> None:
        print_console_report(report, self.out)

        if self.format is ReportFormat.JSON:
            self.rendered = render_json(report, self.test_name, self.target_url, self.run_config)
        elif self.format is ReportFormat.MARKDOWN:
            self.rendered = render_markdown(report, self.test_name, self.target_url)
        else:
            return

        if self.output_path:
            Path(self.output_path).write_text(self.rendered)
            self.out.print(f"[green]{self.format.value.upper()} report saved to: {self.output_path}[/green]")
        else:
            self.out.print(self.rendered, markup=False, highlight=False)
