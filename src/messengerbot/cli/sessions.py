from __future__ import annotations

from pathlib import Path

import anyio
import msgspec
import typer

from ..config import DEFAULT_SESSION_FILE
from ..sessions import FileSessionStore, SessionStoreError


def _open_store(path: Path) -> FileSessionStore:
    if not path.is_file():
        typer.echo(f"error: session file {path} does not exist", err=True)
        raise typer.Exit(code=1)
    return FileSessionStore(path)


def sessions_show(
    session_id: str = typer.Argument(..., help="User id (sender PSID)."),
    path: Path = typer.Option(
        Path(DEFAULT_SESSION_FILE), "--path", help="Session file to read."
    ),
) -> None:
    """Print one stored session as JSON."""
    store = _open_store(path.expanduser())
    try:
        session = anyio.run(store.get, session_id)
    except SessionStoreError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(msgspec.json.format(msgspec.json.encode(session), indent=2).decode())


def sessions_clear(
    session_id: str = typer.Argument(..., help="User id (sender PSID)."),
    path: Path = typer.Option(
        Path(DEFAULT_SESSION_FILE), "--path", help="Session file to rewrite."
    ),
) -> None:
    """Remove one stored session."""
    store = _open_store(path.expanduser())
    try:
        anyio.run(store.clear, session_id)
    except SessionStoreError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"cleared {session_id}")
