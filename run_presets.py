#!/usr/bin/env python3
"""
🎯 Preset Upload Stress Test Scenarios
=====================================
Pre-configured runs from a gentle smoke test to a rate-limit probe.

Usage:
    python run_presets.py http://localhost:3000/process-pdf-svg gentle --pdf sample.pdf --svg template.svg
    python run_presets.py http://localhost:3000/process-pdf-svg workers
    GEMINI_API_KEY=... python run_presets.py $GEMINI_URL rate-limit-probe --pdf med.pdf --i-know-what-im-doing
"""

import argparse
import asyncio
import os
import sys
from typing import Any, Dict, Optional

from rich.panel import Panel
from rich.prompt import Confirm

from config import DispatchMode, RunConfig
from errors import ConfigurationError, ResourceError
from reporting import ReportFormat, ReportWriter, console, print_aborted
from stress_test import (
    API_KEY_ENV,
    EXIT_ABORTED,
    EXIT_OK,
    build_payload_builder,
    run_harness,
)

# =============================================================================
# PRESET CONFIGURATIONS
# =============================================================================

PRESETS: Dict[str, Dict[str, Any]] = {
    # -------------------------------------------------------------------------
    # BATCH PRESETS
    # -------------------------------------------------------------------------
    "gentle": {
        "name": "🌱 Gentle Smoke Test",
        "description": "A handful of uploads to verify the endpoint responds",
        "payload": "multipart",
        "params": {
            "total_requests": 10,
            "concurrency": 2,
            "inter_batch_delay": 0.1,
            "timeout": 60.0,
        },
    },
    "original": {
        "name": "📄 PDF to SVG Processing",
        "description": "100 uploads, 10 at a time, 50ms between batches",
        "payload": "multipart",
        "params": {
            "total_requests": 100,
            "concurrency": 10,
            "inter_batch_delay": 0.05,
            "timeout": 60.0,
        },
    },
    "heavy": {
        "name": "🏋️ Heavy Uploads",
        "description": "1000 uploads, 50 at a time, no delay",
        "payload": "multipart",
        "params": {
            "total_requests": 1000,
            "concurrency": 50,
            "inter_batch_delay": 0,
            "timeout": 120.0,
        },
        "dangerous": True,
    },

    # -------------------------------------------------------------------------
    # WORKER PRESETS
    # -------------------------------------------------------------------------
    "workers": {
        "name": "🧵 Worker Partitions",
        "description": "100 uploads split across one worker per spare CPU core",
        "payload": "multipart",
        "params": {
            "total_requests": 100,
            "mode": DispatchMode.WORKERS,
            "timeout": 60.0,
        },
    },

    # -------------------------------------------------------------------------
    # RATE LIMIT PRESETS
    # -------------------------------------------------------------------------
    "rate-limit-probe": {
        "name": "🔍 Rate Limit Probe",
        "description": "Gemini JSON requests, 10 per batch, until the first 429",
        "payload": "gemini",
        "stop_on_rate_limit": True,
        "params": {
            "total_requests": 100_000,
            "concurrency": 10,
            "inter_batch_delay": 0,
            "timeout": 120.0,
        },
        "dangerous": True,
    },
}


def preset_config(preset_name: str) -> RunConfig:
    """Build the RunConfig for a named preset."""
    if preset_name not in PRESETS:
        raise ConfigurationError(f"Unknown preset: {preset_name}")
    return RunConfig(**PRESETS[preset_name]["params"])


def print_presets():
    """Print all available presets."""
    console.print("\n[bold]Available Presets:[/bold]\n")

    categories = [
        ("Batch", ["gentle", "original", "heavy"]),
        ("Workers", ["workers"]),
        ("Rate Limit", ["rate-limit-probe"]),
    ]

    for category, preset_names in categories:
        console.print(f"[bold cyan]{category}:[/bold cyan]")
        for name in preset_names:
            preset = PRESETS[name]
            danger_flag = "[red]⚠️ DANGEROUS[/red] " if preset.get("dangerous") else ""
            console.print(f"  {name:<18} {preset['name']:<28} {danger_flag}- {preset['description']}")
        console.print("")


async def run_preset(
    url: str,
    preset_name: str,
    pdf_path: str,
    svg_path: Optional[str],
    dangerous_confirmed: bool = False,
    report_format: str = "console",
    output_path: Optional[str] = None,
) -> int:
    """Run a preset scenario and return the process exit code."""
    if preset_name not in PRESETS:
        console.print(f"[red]Unknown preset: {preset_name}[/red]")
        print_presets()
        return EXIT_ABORTED

    preset = PRESETS[preset_name]

    # Safety check for dangerous presets
    if preset.get("dangerous") and not dangerous_confirmed:
        console.print(Panel(
            f"[bold red]⚠️  WARNING: {preset['name']} is DANGEROUS![/bold red]\n\n"
            f"{preset['description']}\n\n"
            f"This can overwhelm servers or burn through paid API quota.\n\n"
            f"[yellow]Only use on systems you own or have permission to test![/yellow]",
            title="⚠️ Dangerous Preset",
            border_style="red"
        ))
        if not Confirm.ask("Do you want to proceed?"):
            console.print("[dim]Cancelled.[/dim]")
            return EXIT_OK

    console.print(Panel(
        f"[bold]{preset['name']}[/bold]\n\n{preset['description']}",
        title=f"Running Preset: {preset_name}",
        border_style="blue"
    ))

    test_name = f"{preset['name']} - {preset_name}"
    try:
        config = preset_config(preset_name)
        api_key = os.environ.get(API_KEY_ENV) if preset["payload"] == "gemini" else None
        builder = build_payload_builder(preset["payload"], pdf_path, svg_path, api_key)
        await run_harness(
            url,
            builder,
            config,
            stop_on_429=preset.get("stop_on_rate_limit", False),
            report_writer=ReportWriter(
                format=ReportFormat(report_format),
                output_path=output_path,
                test_name=test_name,
                target_url=url,
                run_config=config.to_dict(),
            ),
            test_name=test_name,
        )
    except (ResourceError, ConfigurationError) as e:
        print_aborted(str(e))
        return EXIT_ABORTED

    return EXIT_OK


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="🎯 Preset upload stress tests")
    parser.add_argument("url", nargs="?", help="Target endpoint URL")
    parser.add_argument("preset", nargs="?", help="Preset name")
    parser.add_argument("--pdf", default="./sample.pdf")
    parser.add_argument("--svg", default="./template.svg")
    parser.add_argument("--report", choices=[f.value for f in ReportFormat], default="console")
    parser.add_argument("--output", "-o")
    parser.add_argument("--i-know-what-im-doing", dest="confirmed", action="store_true")
    args = parser.parse_args(argv)

    if not args.url or not args.preset:
        console.print("[bold]Usage:[/bold] python run_presets.py <URL> <PRESET> [--pdf PATH] [--svg PATH] [--i-know-what-im-doing] [--report json|markdown]")
        print_presets()
        return EXIT_OK if not args.url else EXIT_ABORTED

    return asyncio.run(run_preset(
        args.url,
        args.preset,
        args.pdf,
        args.svg,
        dangerous_confirmed=args.confirmed,
        report_format=args.report,
        output_path=args.output,
    ))


if __name__ == "__main__":
    sys.exit(main())
