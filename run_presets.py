#!/usr/bin/env python3
"""
🎯 Preset Load Test Runs
========================
Ready-made stage plans, scenario mixes and thresholds for the shop services.

Usage:
    python run_presets.py http://localhost:8080 smoke
    python run_presets.py http://localhost:8080 catalog --output catalog.json
    python run_presets.py --list
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from stress_config import LoadTestConfig
from stress_errors import ConfigurationError
from stress_test import run_cli, setup_logging

console = Console()

# =============================================================================
# PRESET CONFIGURATIONS
# =============================================================================

HTTP_THRESHOLDS = {
    "http_req_duration": ["p(95)<500"],
    "http_req_failed": ["rate<0.1"],
}

PRESETS: Dict[str, Dict[str, Any]] = {
    "smoke": {
        "name": "🌱 Smoke",
        "description": "2 VUs for 30s across all services",
        "stages": [
            {"duration": "5s", "target": 2},
            {"duration": "20s", "target": 2},
            {"duration": "5s", "target": 0},
        ],
        "scenarios": [
            {"name": "catalog", "weight": 0.4, "exec": "catalog_quick_workflow"},
            {"name": "cart", "weight": 0.4, "exec": "cart_quick_workflow"},
            {"name": "frontend", "weight": 0.2, "exec": "frontend_workflow"},
        ],
        "thresholds": HTTP_THRESHOLDS,
    },
    "catalog": {
        "name": "📦 Catalog Service",
        "description": "Catalog browsing, 10 → 20 VUs over 16 minutes",
        "stages": [
            {"duration": "2m", "target": 10},
            {"duration": "5m", "target": 10},
            {"duration": "2m", "target": 20},
            {"duration": "5m", "target": 20},
            {"duration": "2m", "target": 0},
        ],
        "scenarios": [
            {"name": "catalog", "weight": 1.0, "exec": "catalog_workflow"},
        ],
        "thresholds": {
            **HTTP_THRESHOLDS,
            "catalog_response_time": ["p(95)<300"],
            "product_search_time": ["p(95)<400"],
            "product_detail_time": ["p(95)<200"],
        },
    },
    "cart": {
        "name": "🛒 Cart Service",
        "description": "Cart add/update/remove/clear, 10 → 20 VUs over 16 minutes",
        "stages": [
            {"duration": "2m", "target": 10},
            {"duration": "5m", "target": 10},
            {"duration": "2m", "target": 20},
            {"duration": "5m", "target": 20},
            {"duration": "2m", "target": 0},
        ],
        "scenarios": [
            {"name": "cart", "weight": 1.0, "exec": "cart_workflow"},
        ],
        "thresholds": {
            **HTTP_THRESHOLDS,
            "cart_response_time": ["p(95)<300"],
            "add_item_time": ["p(95)<400"],
            "get_cart_time": ["p(95)<200"],
            "remove_item_time": ["p(95)<300"],
            "clear_cart_time": ["p(95)<200"],
        },
    },
    "comprehensive": {
        "name": "🏬 Comprehensive",
        "description": "Catalog 40% / cart 40% / frontend 20%, 5 → 15 VUs over 13 minutes",
        "stages": [
            {"duration": "1m", "target": 5},
            {"duration": "3m", "target": 5},
            {"duration": "1m", "target": 10},
            {"duration": "3m", "target": 10},
            {"duration": "1m", "target": 15},
            {"duration": "3m", "target": 15},
            {"duration": "1m", "target": 0},
        ],
        "scenarios": [
            {"name": "catalog", "weight": 0.4, "exec": "catalog_quick_workflow"},
            {"name": "cart", "weight": 0.4, "exec": "cart_quick_workflow"},
            {"name": "frontend", "weight": 0.2, "exec": "frontend_workflow"},
        ],
        "thresholds": {
            **HTTP_THRESHOLDS,
            "overall_response_time": ["p(95)<400"],
        },
    },
}


def build_preset_config(
    url: Optional[str],
    preset_name: str,
    environ: Optional[Dict[str, str]] = None,
) -> LoadTestConfig:
    """Turn a preset into a validated run config. BASE_URL still overrides `url`."""
    if preset_name not in PRESETS:
        raise ConfigurationError(f"Unknown preset: {preset_name}")
    preset = PRESETS[preset_name]
    raw: Dict[str, Any] = {key: preset[key] for key in ("stages", "scenarios", "thresholds")}
    if url:
        raw["base_url"] = url
    return LoadTestConfig.from_dict(raw, environ=environ)


def print_presets():
    """Print all available presets."""
    table = Table(title="Available Presets")
    table.add_column("Preset", style="cyan")
    table.add_column("Name")
    table.add_column("Description", style="dim")
    for key, preset in PRESETS.items():
        table.add_row(key, preset["name"], preset["description"])
    console.print(table)


async def run_preset(url: str, preset_name: str, output: Optional[str] = None) -> bool:
    """Run a preset and return whether its thresholds passed."""
    # Explicit URL argument wins over BASE_URL for presets
    config = build_preset_config(url, preset_name, environ={})
    report = await run_cli(config, output, title=PRESETS[preset_name]["name"])
    return report.passed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="🎯 Preset load test runs")
    parser.add_argument("url", nargs="?", help="Target root URL")
    parser.add_argument("preset", nargs="?", help="Preset name")
    parser.add_argument("--list", action="store_true", help="List presets and exit")
    parser.add_argument("--output", "-o", type=str, help="Write the JSON report to this file")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...)")

    args = parser.parse_args(argv)

    if args.list or not args.url:
        print_presets()
        return 0
    if not args.preset:
        console.print("[red]Please provide both URL and preset name[/red]")
        print_presets()
        return 2
    if args.preset not in PRESETS:
        console.print(f"[red]Unknown preset: {escape(args.preset)}[/red]")
        print_presets()
        return 2

    setup_logging(args.log_level)
    passed = asyncio.run(run_preset(args.url, args.preset, args.output))
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
