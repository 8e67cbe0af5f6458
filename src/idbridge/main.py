"""
idbridge - CLI Entry Point.

Inspect and maintain the persisted id map.

Usage:
    idbridge stats              Show live mappings and counters
    idbridge encode TEXT        Translate application text for the agent
    idbridge decode TEXT        Translate agent text back to platform ids
    idbridge rebuild TURNS      Rebuild ref counts from a JSON list of turns
    idbridge reset              Clear the id map
    idbridge --help             Show help
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="idbridge",
    help="idbridge - numeric id translation between the mail client and the agent.",
    add_completion=False,
)
console = Console()


def _open_session(store_path: Optional[Path]):
    from idbridge.config import settings
    from idbridge.session import TranslationSession
    from idbridge.storage.store import JsonFileIdMapStore

    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    if store_path is None:
        return TranslationSession.from_settings()
    return TranslationSession(
        store=JsonFileIdMapStore(store_path),
        debounce_seconds=settings.persist_debounce_seconds,
    )


StorePathOption = typer.Option(None, "--store", "-s", help="Snapshot file (default: IDBRIDGE_STORE_PATH)")


@app.command()
def stats(store: Optional[Path] = StorePathOption) -> None:
    """Show the persisted id map."""
    with _open_session(store) as session:
        data = session.stats()

    console.print(
        f"\n[bold]Id map[/bold]  mappings={data['total_mappings']}  "
        f"next={data['next_numeric_id']}  free={data['free_ids']}  "
        f"referenced={data['referenced_ids']}\n"
    )

    if not data["mappings"]:
        console.print("[dim]No mappings.[/dim]")
        return

    table = Table("Id", "Type", "Refs", "External id")
    for mapping in data["mappings"]:
        table.add_row(
            str(mapping["numeric_id"]),
            mapping["type"],
            str(mapping["ref_count"]),
            mapping["real_id"],
        )
    console.print(table)


@app.command()
def encode(
    text: str = typer.Argument(..., help="Text containing platform ids"),
    store: Optional[Path] = StorePathOption,
) -> None:
    """Translate platform ids to numeric ids (allocations are persisted)."""
    with _open_session(store) as session:
        console.print(session.encode(text), markup=False, highlight=False)


@app.command()
def decode(
    text: str = typer.Argument(..., help="Agent text containing numeric ids"),
    store: Optional[Path] = StorePathOption,
) -> None:
    """Translate numeric ids back to platform ids."""
    with _open_session(store) as session:
        console.print(session.decode(text), markup=False, highlight=False)


@app.command()
def rebuild(
    turns_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of persisted turns"),
    store: Optional[Path] = StorePathOption,
) -> None:
    """Rebuild reference counts from turns and free orphaned ids."""
    from idbridge.memory.turns import Turn

    try:
        raw = json.loads(turns_file.read_text(encoding="utf-8"))
        turns = [Turn.model_validate(t) for t in raw]
    except (ValueError, TypeError) as e:
        console.print(f"\n[red]❌ Could not read turns: {e}[/red]")
        raise typer.Exit(1)

    with _open_session(store) as session:
        referenced, orphans = session.rebuild(turns)

    console.print(f"✅ {referenced} ids referenced, {orphans} orphans freed")


@app.command()
def reset(
    store: Optional[Path] = StorePathOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Clear every mapping."""
    if not yes:
        typer.confirm("Clear the id map?", abort=True)
    with _open_session(store) as session:
        session.reset()
    console.print("✅ Id map cleared")


@app.command()
def version() -> None:
    """Show version information."""
    from idbridge import __version__

    console.print(f"idbridge version {__version__}")


if __name__ == "__main__":
    app()
