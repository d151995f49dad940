"""
cli.py – Command line entry point for Retail Pulse maintenance tasks.

Usage
-----
Check the database connection:
    retail-pulse test-db

Create the tables:
    retail-pulse init-db

Recompute stored derived fields (carbon_kg, green_score, esg_score, risk_level):
    retail-pulse rescore --dry-run
    retail-pulse rescore --entity products

DATABASE_URL and RETAIL_PULSE_SECRET are read from the environment or .env.
"""
from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.table import Table

from retail_pulse import db
from retail_pulse.config import Config, get_config
from retail_pulse.rescore import ENTITIES, RescoreSummary, rescore_entity

console = Console()


def _load_config() -> Config | None:
    try:
        return get_config()
    except EnvironmentError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        return None


# ─────────────────────────────────────────────────────────────
# Sub-commands
# ─────────────────────────────────────────────────────────────

def cmd_test_db(_args: argparse.Namespace) -> int:
    """Handle: retail-pulse test-db."""
    cfg = _load_config()
    if cfg is None:
        return 1
    ok, err = db.test_connection(cfg.database_url)
    if ok:
        console.print("[green]PostgreSQL connection OK.[/]")
        return 0
    console.print(f"[red]PostgreSQL connection failed:[/] {err}")
    return 1


def cmd_init_db(_args: argparse.Namespace) -> int:
    """Handle: retail-pulse init-db. Apply schema/retail_pulse.sql."""
    cfg = _load_config()
    if cfg is None:
        return 1
    console.print("[cyan]Applying schema (schema/retail_pulse.sql) …[/]")
    ok, err = db.apply_schema(cfg.database_url)
    if ok:
        console.print("[green]Schema applied successfully.[/]")
        return 0
    console.print(f"[red]Schema apply failed:[/] {err}")
    return 1


def cmd_rescore(args: argparse.Namespace) -> int:
    """Handle: retail-pulse rescore. Returns 1 if any row failed."""
    cfg = _load_config()
    if cfg is None:
        return 1
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )

    entities = list(ENTITIES) if args.entity == "all" else [args.entity]
    conn = db.get_connection(cfg.database_url)
    try:
        summaries = [rescore_entity(conn, e, dry_run=args.dry_run) for e in entities]
    finally:
        conn.close()

    _print_summary(summaries, dry_run=args.dry_run)
    for s in summaries:
        for error in s.errors:
            console.print(f"  [red]✗[/] {error}")
    return 1 if any(s.errors for s in summaries) else 0


def _print_summary(summaries: list[RescoreSummary], *, dry_run: bool) -> None:
    title = "Rescore (dry run, nothing written)" if dry_run else "Rescore complete"
    table = Table(title=title)
    table.add_column("Entity", style="cyan")
    table.add_column("Scanned", justify="right")
    table.add_column("Changed", justify="right", style="green")
    table.add_column("Errors", justify="right")
    for s in summaries:
        errors = f"[red]{len(s.errors)}[/]" if s.errors else "0"
        table.add_row(s.entity, str(s.scanned), str(s.changed), errors)
    console.print(table)


# ─────────────────────────────────────────────────────────────
# Argument parsing
# ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    root = argparse.ArgumentParser(
        prog="retail-pulse",
        description="Retail Pulse maintenance commands.",
    )
    sub = root.add_subparsers(dest="command", required=True)

    sub.add_parser("test-db", help="Test PostgreSQL connection using DATABASE_URL.")
    sub.add_parser("init-db", help="Create the Retail Pulse tables (schema/retail_pulse.sql).")

    p_rescore = sub.add_parser("rescore", help="Recompute stored derived sustainability fields.")
    p_rescore.add_argument(
        "--entity",
        choices=["all", *ENTITIES],
        default="all",
        help="Entity type to rescore (default: all)",
    )
    p_rescore.add_argument(
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="Report changes without writing them",
    )
    return root


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the sub-command; returns the exit code."""
    args = build_parser().parse_args(argv)
    dispatch = {
        "test-db": cmd_test_db,
        "init-db": cmd_init_db,
        "rescore": cmd_rescore,
    }
    return dispatch[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
