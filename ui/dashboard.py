"""
Rich-based terminal dashboard.

All formatting helpers live in ``engine.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

import statistics
from typing import Any, Dict, List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from engine.catalog import provider_label
from engine.stats import format_latency, format_speed

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: List[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        _BARS[min(int((v - lo) / span * (len(_BARS) - 1)), len(_BARS) - 1)]
        for v in values
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]netspeed[/bold cyan]\n"
            "[dim]Adaptive endpoint selection and speed testing[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_status(message: str) -> None:
    """Render one selector status event."""
    console.print(f"  [dim]{message}[/dim]")


def print_client_info(location) -> None:  # noqa: ANN001 (LocationInfo)
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Location:", location.label)
    if location.isp:
        table.add_row("ISP:", location.isp)
    if location.source:
        table.add_row("Source:", location.source)
    console.print(Panel(table, title="[bold]Client Info[/bold]", border_style="blue"))


def print_server_selection(selection, limit: int = 10) -> None:  # noqa: ANN001 (SelectionResult)
    table = Table(title=f"Server Selection (tier {selection.tier})", box=box.ROUNDED)
    table.add_column("#", style="dim", width=4)
    table.add_column("Server", style="bold")
    table.add_column("Provider")
    table.add_column("Location")
    table.add_column("Score", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Capability", justify="right")

    for i, s in enumerate(selection.ranked[:limit]):
        chosen = s.index == selection.chosen.index
        table.add_row(
            f"{'>' if chosen else ' '}{i + 1}",
            s.endpoint.name,
            provider_label(s.endpoint.provider),
            s.endpoint.location,
            f"{s.score:.2f}",
            format_latency(s.latency_ms) if s.responsive else "N/A",
            f"{s.download_capability:.1f}",
            style="green" if chosen else None,
        )

    console.print(table)
    if selection.timed_out:
        console.print("[yellow]Selection deadline reached; some servers were not probed[/yellow]")


def print_servers(endpoints) -> None:  # noqa: ANN001
    table = Table(title="Available Servers", box=box.ROUNDED)
    table.add_column("Server", style="bold")
    table.add_column("Provider")
    table.add_column("Location")
    table.add_column("Up", justify="center")
    table.add_column("Backup", justify="center")
    for ep in endpoints:
        table.add_row(
            ep.name,
            provider_label(ep.provider),
            ep.location,
            "yes" if ep.capabilities.supports_upload else "-",
            "yes" if ep.is_backup else "-",
        )
    console.print(table)


def print_latency_details(result) -> None:  # noqa: ANN001 (LatencyResult)
    """Print latency statistics and a histogram."""
    pings = result.pings
    if not pings:
        console.print("[yellow]No latency samples collected[/yellow]")
        return

    table = Table(title="Latency Details", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Min", format_latency(min(pings)))
    table.add_row("Max", format_latency(max(pings)))
    table.add_row("Mean", format_latency(statistics.mean(pings)))
    table.add_row("p95", format_latency(result.p95_ms))
    table.add_row("Jitter", f"{result.jitter_ms:.2f} ms")
    table.add_row("Packet Loss", f"{result.packet_loss:.1f}%")
    table.add_row("Samples", f"{len(pings)}/{result.attempts}")
    console.print(table)

    console.print(Panel(f"[cyan]{create_histogram(pings)}[/cyan]", title="Ping Histogram"))


def print_speed_result(result, title: str, color: str = "green") -> None:  # noqa: ANN001
    """Print a download or upload result panel."""
    if result.skipped:
        console.print(f"[dim]{title}: not supported by this server[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Speed", f"[bold {color}]{format_speed(result.speed_mbps)}[/bold {color}]")
    table.add_row("Data Transferred", f"{result.bytes_total / 1_000_000:.1f} MB")
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f} s")
    table.add_row("Connections", str(len(result.connections)))
    console.print(table)

    if result.samples:
        console.print(
            Panel(
                f"[{color}]{create_histogram(result.samples)}[/{color}]\n"
                f"[dim]Min: {min(result.samples):.1f} Mbps  "
                f"Max: {max(result.samples):.1f} Mbps[/dim]",
                title="Speed Over Time",
            )
        )


def print_final_results(result: Dict[str, Any], quality) -> None:  # noqa: ANN001
    latency = result.get("latency", {})
    server = result.get("server", {})
    dl = result.get("download", {})
    ul = result.get("upload", {})

    dl_text = "n/a" if dl.get("skipped") else format_speed(dl.get("speed_mbps", 0))
    ul_text = "n/a" if ul.get("skipped") else format_speed(ul.get("speed_mbps", 0))

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Server:[/bold cyan] {server.get('name', '?')} ({server.get('provider', '')})\n\n"
            f"[bold white]   Ping:[/bold white]  [bold yellow]{latency.get('latency_ms', 0):.1f} ms[/bold yellow]  "
            f"[dim](jitter: {latency.get('jitter_ms', 0):.2f} ms)[/dim]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{dl_text}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{ul_text}[/bold blue]\n"
            f"[bold white]   Quality:[/bold white]  [bold {quality.color}]{quality.value}[/bold {quality.color}]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


def print_history(rows: List[dict], summary: Dict[str, Any]) -> None:
    if not rows:
        console.print("[dim]No test history yet.[/dim]")
        return

    table = Table(title="Test History", box=box.ROUNDED)
    table.add_column("When", style="dim")
    table.add_column("Server")
    table.add_column("Ping", justify="right")
    table.add_column("Download", justify="right")
    table.add_column("Upload", justify="right")
    table.add_column("Quality")
    for r in rows:
        table.add_row(
            r["timestamp"],
            r["server"],
            f"{r['ping']:.1f} ms",
            format_speed(r["download"]),
            format_speed(r["upload"]),
            r["quality"],
        )
    console.print(table)

    dl, ul, ping = summary["download"], summary["upload"], summary["ping"]
    console.print(
        f"  {summary['count']} tests  "
        f"DL avg {format_speed(dl['avg'])} (min {dl['min']:.1f}, max {dl['max']:.1f})  "
        f"UL avg {format_speed(ul['avg'])}  "
        f"Ping avg {ping['avg']:.1f} ms"
    )


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar during download / upload tests."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[speed]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None
        self._last_speed = 0.0
        self._last_prog = 0.0

    def start(self, description: str) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(description, total=100, speed="")
        self._last_speed = 0.0
        self._last_prog = 0.0

    def update(self, progress: float, speed_mbps: float = 0) -> None:
        if self._task_id is None:
            return
        # only redraw on a visible change
        if abs(progress - self._last_prog) < 0.01 and abs(speed_mbps - self._last_speed) < 1.0:
            return
        speed_str = format_speed(speed_mbps) if speed_mbps > 0 else "..."
        self.progress.update(self._task_id, completed=progress * 100, speed=speed_str)
        self._last_prog = progress
        self._last_speed = speed_mbps

    def stop(self) -> None:
        self.progress.stop()
