#!/usr/bin/env python3
"""
netspeed -- adaptive endpoint selection and speed testing from the terminal.

Usage::

    netspeed                          # rich dashboard
    netspeed --simple                 # plain text
    netspeed --json                   # JSON to stdout
    netspeed -o result.json           # save to file
    netspeed --history                # show past results
    netspeed --csv log.csv            # append CSV row
    netspeed --repeat 5 --interval 60 # repeat 5 times
    netspeed --plan 100               # grade vs plan speed
    netspeed --server "Cloudflare Global"
    netspeed --alert-below 50         # warn if download < 50 Mbps
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from rich.logging import RichHandler

from engine.catalog import Endpoint, catalog, regional_hubs
from engine.config import load_config, selection_config
from engine.constants import (
    DEBUG_ENV_VAR,
    MAX_CONNECTIONS,
    MAX_DURATION,
    MAX_PING_COUNT,
    MIN_CONNECTIONS,
    MIN_DURATION,
    MIN_PING_COUNT,
)
from engine.download import DownloadTester
from engine.geolocation import GeoLocator, LocationInfo
from engine.grading import compare_with_previous, format_delta, grade_speed, rate_connection
from engine.health import InMemoryHealthStore, JsonHealthStore
from engine.history import format_history_table, load_history, save_result, summarize_history
from engine.latency import LatencyTester
from engine.selector import NoResponsiveEndpoint, SelectionConfig, select_endpoint
from engine.transport import HttpTransport
from engine.upload import UploadTester
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_client_info,
    print_final_results,
    print_header,
    print_history,
    print_latency_details,
    print_server_selection,
    print_servers,
    print_speed_result,
    print_status,
)
from ui.output import create_result_json, format_csv_header, format_csv_row, save_json

logger = logging.getLogger("netspeed")


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(
    ping_count: int,
    download_duration: float,
    upload_duration: float,
    connections: int,
) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if not MIN_PING_COUNT <= ping_count <= MAX_PING_COUNT:
        raise ValueError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")
    if not MIN_DURATION <= download_duration <= MAX_DURATION:
        raise ValueError(f"Download duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_DURATION <= upload_duration <= MAX_DURATION:
        raise ValueError(f"Upload duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_CONNECTIONS <= connections <= MAX_CONNECTIONS:
        raise ValueError(f"Connections must be between {MIN_CONNECTIONS} and {MAX_CONNECTIONS}")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or os.environ.get(DEBUG_ENV_VAR) else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _build_pool(location: Optional[LocationInfo], server: Optional[str] = None) -> List[Endpoint]:
    """Global catalog plus regional hubs, optionally pinned to one name."""
    endpoints = catalog()
    names = {ep.name for ep in endpoints}
    endpoints.extend(hub for hub in regional_hubs(location) if hub.name not in names)

    if server:
        endpoints = [ep for ep in endpoints if ep.name.lower() == server.lower()]
        if not endpoints:
            raise ValueError(f"Server {server!r} not found (see --list-servers)")
    return endpoints


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
    server: Optional[str] = None,
    ping_count: int = 10,
    download_duration: float = 10.0,
    upload_duration: float = 10.0,
    connections: int = 4,
    plan_mbps: float = 0.0,
    alert_below: float = 0.0,
    selection_cfg: Optional[SelectionConfig] = None,
    persist_health: bool = True,
) -> Dict[str, Any]:
    """Run the full sequence and return a JSON-serialisable dict.

    Raises :class:`NoResponsiveEndpoint` when no server can be used.
    """
    show_ui = not json_output and not simple

    if show_ui:
        print_header()
        console.print("[dim]Detecting location...[/dim]")

    async with GeoLocator() as geo:
        location = await geo.locate()

    if show_ui:
        print_client_info(location)

    endpoints = _build_pool(location, server)
    health = JsonHealthStore() if persist_health else InMemoryHealthStore()

    async with HttpTransport() as transport:

        # -- Selection -----------------------------------------------------
        if show_ui:
            console.print("\n[bold]Testing server performance...[/bold]")

        selection = await select_endpoint(
            endpoints,
            location,
            selection_cfg,
            transport=transport,
            health_store=health,
            on_status=print_status if show_ui else None,
        )
        best = selection.chosen.endpoint

        if show_ui:
            print_server_selection(selection)
            console.print(f"\n[green]Selected server:[/green] {best.name} ({best.location})")

        # -- Latency -------------------------------------------------------
        if show_ui:
            console.print("\n[bold]Testing latency...[/bold]")

        latency = await LatencyTester(ping_count=ping_count).test(transport, best)

        if show_ui:
            print_latency_details(latency)

    # -- Download ----------------------------------------------------------
    dl_tester = DownloadTester(duration_seconds=download_duration)
    if show_ui and dl_tester.supports(best):
        console.print("\n[bold]Testing download speed...[/bold]")
        progress = ProgressDisplay()
        progress.start("Downloading")
        dl_tester.on_progress = progress.update
        try:
            dl_result = await dl_tester.test(best, connections=connections)
        finally:
            progress.stop()
    else:
        dl_result = await dl_tester.test(best, connections=connections)

    if show_ui:
        print_speed_result(dl_result, "Download Results", "green")

    # -- Upload ------------------------------------------------------------
    ul_tester = UploadTester(duration_seconds=upload_duration)
    if show_ui and ul_tester.supports(best):
        console.print("\n[bold]Testing upload speed...[/bold]")
        progress = ProgressDisplay()
        progress.start("Uploading")
        ul_tester.on_progress = progress.update
        try:
            ul_result = await ul_tester.test(best, connections=connections)
        finally:
            progress.stop()
    else:
        ul_result = await ul_tester.test(best, connections=connections)

    if show_ui:
        print_speed_result(ul_result, "Upload Results", "blue")

    # -- Summary -----------------------------------------------------------
    quality = rate_connection(
        dl_result.speed_mbps,
        None if ul_result.skipped else ul_result.speed_mbps,
        latency.latency_ms,
    )

    result_json = create_result_json(
        location=location.to_dict(),
        selection=selection.to_dict(),
        latency=latency.to_dict(),
        download=dl_result.to_dict(),
        upload=ul_result.to_dict(),
        quality=quality.value,
    )

    if show_ui:
        print_final_results(result_json, quality)
    elif simple:
        print(f"Server: {best.name}")
        print(f"Ping: {latency.latency_ms:.1f} ms")
        print(f"Download: {dl_result.speed_mbps:.2f} Mbps")
        if not ul_result.skipped:
            print(f"Upload: {ul_result.speed_mbps:.2f} Mbps")
        if latency.packet_loss > 0:
            print(f"Packet Loss: {latency.packet_loss:.1f}%")
        print(f"Quality: {quality.value}")

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    if csv_file:
        _append_csv(csv_file, result_json)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    # -- Compare with previous ---------------------------------------------
    if show_ui:
        delta = compare_with_previous(result_json, load_history(limit=1))
        if delta:
            console.print(
                f"  vs last: "
                f"Ping {format_delta(delta['ping_delta'], 'ms', invert=True)}  "
                f"DL {format_delta(delta['download_delta'], 'Mbps')}  "
                f"UL {format_delta(delta['upload_delta'], 'Mbps')}"
            )

    # -- Speed grade -------------------------------------------------------
    if plan_mbps > 0:
        dl_grade, dl_color, dl_pct = grade_speed(dl_result.speed_mbps, plan_mbps)
        if show_ui:
            console.print(
                f"\n  [bold]Plan: {plan_mbps:.0f} Mbps[/bold]\n"
                f"  Download: [{dl_color}]{dl_grade}[/{dl_color}] ({dl_pct:.0%} of plan)"
            )
        elif simple:
            print(f"Grade (Download): {dl_grade} ({dl_pct:.0%} of {plan_mbps:.0f} Mbps plan)")

    # -- Alert -------------------------------------------------------------
    if alert_below > 0 and dl_result.speed_mbps < alert_below:
        msg = (
            f"ALERT: Download speed {dl_result.speed_mbps:.2f} Mbps "
            f"is below threshold {alert_below:.0f} Mbps"
        )
        if show_ui:
            console.print(f"\n[bold red]{msg}[/bold red]")
        else:
            print(msg, file=sys.stderr)

    save_result(result_json)
    return result_json


def _append_csv(path: str, result: Dict[str, Any]) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(result) + "\n")


async def _list_servers() -> None:
    async with GeoLocator() as geo:
        location = await geo.locate()
    print_servers(_build_pool(location))


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netspeed",
        description="netspeed -- adaptive endpoint selection and speed testing",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # Server selection
    parser.add_argument("--server", type=str, metavar="NAME", help="Use a specific server by name")
    parser.add_argument("--list-servers", action="store_true", help="List candidate servers and exit")
    parser.add_argument("--retries", type=int, metavar="N", help="Probe retries per server (default: 2)")
    parser.add_argument("--probe-timeout", type=float, metavar="SECS", help="Per-probe timeout (default: 2)")
    parser.add_argument("--concurrency", type=int, metavar="N", help="Servers probed in parallel (default: 6)")
    parser.add_argument("--deadline", type=float, metavar="SECS", help="Overall selection deadline (default: 20)")
    parser.add_argument("--no-health-cache", action="store_true", help="Do not persist server health between runs")

    # Test parameters
    parser.add_argument("--ping-count", type=int, metavar="N", help="Number of latency samples (default: 10)")
    parser.add_argument("--download-duration", type=float, metavar="SECS", help="Download test duration (default: 10)")
    parser.add_argument("--upload-duration", type=float, metavar="SECS", help="Upload test duration (default: 10)")
    parser.add_argument("--connections", type=int, metavar="N", help="Concurrent connections (default: 4)")

    # Repeat mode
    parser.add_argument("--repeat", type=int, default=1, metavar="N", help="Run the test N times (default: 1)")
    parser.add_argument("--interval", type=float, default=60.0, metavar="SECS", help="Seconds between repeated tests (default: 60)")

    # Grading and alerting
    parser.add_argument("--plan", type=float, metavar="MBPS", help="Your plan speed in Mbps for grading")
    parser.add_argument("--alert-below", type=float, metavar="MBPS", help="Alert if download speed drops below this threshold")

    # History
    parser.add_argument("--history", action="store_true", help="Show past test results and exit")
    return parser


def _pick(cli_value: Any, config: Dict[str, Any], key: str) -> Any:
    return cli_value if cli_value is not None else config.get(key)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parser().parse_args(argv)
    _setup_logging(args.verbose)
    config = load_config()

    if args.history:
        entries = load_history()
        print_history(format_history_table(entries), summarize_history(entries))
        return

    overrides = {
        "max_retries": args.retries,
        "probe_timeout": args.probe_timeout,
        "concurrency": args.concurrency,
        "deadline": args.deadline,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})

    params = {
        "ping_count": _pick(args.ping_count, config, "ping_count"),
        "download_duration": _pick(args.download_duration, config, "download_duration"),
        "upload_duration": _pick(args.upload_duration, config, "upload_duration"),
        "connections": _pick(args.connections, config, "connections"),
    }

    try:
        _validate(**params)
        sel_cfg = selection_config(config)
        if args.repeat < 1:
            raise ValueError("--repeat must be >= 1")
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if args.list_servers:
        asyncio.run(_list_servers())
        return

    try:
        for run_idx in range(args.repeat):
            if args.repeat > 1 and not args.json:
                console.print(f"\n[bold cyan]--- Run {run_idx + 1}/{args.repeat} ---[/bold cyan]")

            asyncio.run(
                run_speedtest(
                    json_output=args.json,
                    output_file=args.output,
                    csv_file=args.csv or config.get("csv_file") or None,
                    simple=args.simple,
                    server=_pick(args.server, config, "server"),
                    plan_mbps=_pick(args.plan, config, "plan") or 0.0,
                    alert_below=_pick(args.alert_below, config, "alert_below") or 0.0,
                    selection_cfg=sel_cfg,
                    persist_health=not args.no_health_cache and bool(config.get("persist_health", True)),
                    **params,
                )
            )

            if run_idx < args.repeat - 1:
                if not args.json:
                    console.print(f"[dim]Next run in {args.interval:.0f}s...[/dim]")
                time.sleep(args.interval)

    except NoResponsiveEndpoint as exc:
        console.print(f"\n[red]{exc}[/red]")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as exc:
        logger.debug("unexpected failure", exc_info=True)
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
