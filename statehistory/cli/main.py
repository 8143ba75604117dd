"""``statehistory`` command-line interface.

Commands:
    serve                      Run the REST API (same as ``python -m statehistory``).
    history list               Print entries, newest first, optionally filtered.
    history show ENTRY_ID      Print one entry with both snapshots.
    history clear              Remove all entries, or one entity type's.
    history export             Write the history as JSON or CSV.

History commands open the configured durable slot directly, so they must not
run against a slot a live server is writing to.
"""

from __future__ import annotations

import asyncio
import csv
import json
from typing import IO

import click

from statehistory.app import build_slot
from statehistory.config import load_config
from statehistory.history.store import HistoryStore
from statehistory.models.config import StateHistoryConfig
from statehistory.models.entries import ChangeEntry
from statehistory.observability.logging import setup_logging

_CSV_COLUMNS = ("id", "timestamp", "action", "entityType", "entityId", "userId", "userName")


def _open_store(config: StateHistoryConfig) -> HistoryStore:
    store = HistoryStore(build_slot(config.storage), max_entries=config.history.max_entries)
    store.load_from_durable_storage()
    return store


def _validate_filter(entity_type: str | None, entity_id: str | None) -> None:
    if entity_id and not entity_type:
        raise click.UsageError("--id requires --type")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override STATEHISTORY_LOG_LEVEL.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Inspect and manage the change history."""
    config = load_config()
    if log_level:
        config.log.level = log_level
    setup_logging(config.log.level, json_output=False)
    ctx.obj = config


@cli.command()
@click.pass_obj
def serve(config: StateHistoryConfig) -> None:
    """Run the REST API until interrupted."""
    from statehistory.app import main

    asyncio.run(main(config))


@cli.group()
def history() -> None:
    """Read or modify the recorded history."""


@history.command("list")
@click.option("--type", "entity_type", default=None, help="Only entries of this entity type.")
@click.option("--id", "entity_id", default=None, help="Only entries of this entity id (needs --type).")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Print at most this many entries.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_obj
def list_entries(
    config: StateHistoryConfig,
    entity_type: str | None,
    entity_id: str | None,
    limit: int | None,
    as_json: bool,
) -> None:
    """List entries, newest first."""
    _validate_filter(entity_type, entity_id)
    entries = _open_store(config).query_history(entity_type, entity_id)
    if limit is not None:
        entries = entries[:limit]

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2))
        return
    if not entries:
        click.echo("No history entries found.")
        return
    for entry in entries:
        click.echo(_format_row(entry))
    click.echo(f"({len(entries)} entries)")


@history.command("show")
@click.argument("entry_id")
@click.pass_obj
def show_entry(config: StateHistoryConfig, entry_id: str) -> None:
    """Show one entry with its previous and current state."""
    entry = _open_store(config).get_entry(entry_id)
    if entry is None:
        raise click.ClickException(f"No history entry with id {entry_id!r}")
    click.echo(_format_row(entry))
    click.echo("Previous state:")
    click.echo(json.dumps(entry.previous_state, indent=2))
    click.echo("Current state:")
    click.echo(json.dumps(entry.current_state, indent=2))


@history.command("clear")
@click.option("--type", "entity_type", default=None, help="Only clear entries of this entity type.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def clear_entries(config: StateHistoryConfig, entity_type: str | None, yes: bool) -> None:
    """Clear history.  This cannot be undone."""
    scope = f"all '{entity_type}' history" if entity_type else "all history"
    if not yes:
        click.confirm(f"Clear {scope}? This cannot be undone.", abort=True)
    removed = _open_store(config).clear_history(entity_type)
    click.echo(f"Removed {removed} entries.")


@history.command("export")
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", show_default=True)
@click.option("--type", "entity_type", default=None, help="Only export entries of this entity type.")
@click.option("--output", "-o", type=click.File("w", encoding="utf-8"), default="-", help="Destination file.")
@click.pass_obj
def export_entries(config: StateHistoryConfig, fmt: str, entity_type: str | None, output: IO[str]) -> None:
    """Export history.  CSV omits the snapshots."""
    entries = _open_store(config).query_history(entity_type)
    if fmt == "json":
        output.write(json.dumps([e.to_dict() for e in entries], indent=2))
        output.write("\n")
        return
    writer = csv.DictWriter(output, fieldnames=_CSV_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for entry in entries:
        writer.writerow(entry.to_dict())


def _format_row(entry: ChangeEntry) -> str:
    ts = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    return f"{entry.id}  {ts}  [{entry.kind.value}] {entry.action}  {entry.entity_type}#{entry.entity_id}  by {entry.user_name}"
