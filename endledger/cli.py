"""Command line helpers for EndLedger."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .app import EndLedgerApp
from .config import EndLedgerConfig
from .domain.exceptions import EndLedgerError
from .domain.models import Ledger
from .gacha.service import normalize_import
from .gacha.statistics import GachaView, build_gacha_view

console = Console()


def run_stats() -> None:
    parser = argparse.ArgumentParser(description="Summarise an Endfield pull history ledger")
    parser.add_argument("ledger", help="Path to a ledger JSON file")
    parser.add_argument("--rares", action="store_true", help="List the recent 6-star pulls of every pool")
    args = parser.parse_args()

    path = Path(args.ledger)
    try:
        ledger = Ledger.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        sys.exit(1)

    view = build_gacha_view(ledger)
    console.print(render_pool_table(view))
    if args.rares:
        for pool in view.pools:
            if pool.logs:
                console.print(render_rare_table(pool.title, pool.logs))


def run_import() -> None:
    parser = argparse.ArgumentParser(description="Merge an exported pull history into the ledger directory")
    parser.add_argument("role_id", help="Game role id (UID) owning the records")
    parser.add_argument("file", help="JSON export: a ledger or a pool -> records map")
    parser.add_argument("--ledger-dir", help="Override ENDLEDGER_LEDGER_DIR")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    config = EndLedgerConfig.from_env()
    if args.ledger_dir:
        config.storage.ledger_dir = args.ledger_dir

    try:
        payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read {args.file}: {exc}[/red]")
        sys.exit(1)

    chars, weapons = normalize_import(payload)
    if not chars and not weapons:
        console.print("[red]No pull records found in the file[/red]")
        sys.exit(1)

    try:
        result = asyncio.run(_import(config, args.role_id, chars, weapons))
    except EndLedgerError as exc:
        console.print(f"[red]Import failed: {exc}[/red]")
        sys.exit(1)
    console.print(
        f"UID:{result.role_id} +{result.new_char_count} character, +{result.new_weapon_count} weapon "
        f"(total {result.total_char}/{result.total_weapon}) -> {result.path}"
    )


async def _import(config: EndLedgerConfig, role_id: str, chars, weapons):
    app = EndLedgerApp(config)
    try:
        return await app.synchronizer.import_records(role_id, chars, weapons)
    finally:
        await app.close()


def render_pool_table(view: GachaView) -> Table:
    table = Table(title=f"UID:{view.role_id or '-'}  updated {view.export_time}  total {view.total}")
    table.add_column("Pool")
    table.add_column("Pulls", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("6*", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Pity", justify="right")
    table.add_column("Range")
    for pool in view.pools:
        stats = pool.stats
        table.add_row(
            pool.title,
            str(stats.total),
            "-" if stats.free is None else str(stats.free),
            str(stats.six),
            stats.avg_text,
            f"{pool.pity}/{pool.cap}",
            pool.time_range,
        )
    return table


def render_rare_table(title: str, logs) -> Table:
    table = Table(title=f"{title}: recent 6*")
    table.add_column("Time")
    table.add_column("Name")
    table.add_column("Pulls", justify="right")
    for row in logs:
        name = f"[dim]{row.name}[/dim]" if row.pending else row.name
        table.add_row(row.time, name + (" (free)" if row.is_free else ""), str(row.count))
    return table
