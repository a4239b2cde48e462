"""Per-user session storage.

Every store implements the same three coroutine methods (`get`, `set`,
`clear`). `get` never fails for an unknown id; it hands back an empty
mapping instead.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import anyio
import msgspec

from .config import DEFAULT_SESSION_FILE, SESSION_KINDS, ConfigError
from .logging import get_logger
from .model import Session

if TYPE_CHECKING:
    from .context import Context

logger = get_logger(__name__)

DEFAULT_SESSION_ID = "default"

__all__ = [
    "DEFAULT_SESSION_ID",
    "FileSessionStore",
    "load_session",
    "MemorySessionStore",
    "SessionStore",
    "SessionStoreError",
    "open_session_store",
    "resolve_session_id",
    "save_session",
    "session_middleware",
]


class SessionStoreError(RuntimeError):
    pass


@runtime_checkable
class SessionStore(Protocol):
    async def get(self, session_id: str) -> Session: ...

    async def set(self, session_id: str, session: Session) -> None: ...

    async def clear(self, session_id: str) -> None: ...


class MemorySessionStore:
    """Volatile store; sessions are kept as live objects."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            return {}
        return session

    async def set(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = session

    async def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class FileSessionStore:
    """Durable store keeping every session in one JSON object on disk.

    The file is fully read on each access and fully rewritten on each
    mutation. An in-process lock serializes read-modify-write cycles;
    several processes sharing one file are not coordinated.
    """

    def __init__(self, path: str | Path = DEFAULT_SESSION_FILE) -> None:
        self.path = Path(path)
        self._lock = anyio.Lock()
        if not self.path.exists():
            self._write({})

    def _read(self) -> dict[str, Session]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise SessionStoreError(
                f"Failed to read session file {self.path}: {exc}"
            ) from exc
        if not raw.strip():
            return {}
        try:
            data = msgspec.json.decode(raw)
        except msgspec.DecodeError as exc:
            raise SessionStoreError(
                f"Malformed session file {self.path}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise SessionStoreError(
                f"Malformed session file {self.path}: expected a JSON object"
            )
        return data

    def _write(self, sessions: dict[str, Session]) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            payload = msgspec.json.format(msgspec.json.encode(sessions), indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, msgspec.EncodeError) as exc:
            raise SessionStoreError(
                f"Failed to write session file {self.path}: {exc}"
            ) from exc

    async def get(self, session_id: str) -> Session:
        async with self._lock:
            return self._read().get(session_id) or {}

    async def set(self, session_id: str, session: Session) -> None:
        async with self._lock:
            sessions = self._read()
            sessions[session_id] = session
            self._write(sessions)
            logger.debug("sessions.saved", path=str(self.path), session_id=session_id)

    async def clear(self, session_id: str) -> None:
        async with self._lock:
            sessions = self._read()
            if sessions.pop(session_id, None) is None:
                return
            self._write(sessions)
            logger.debug("sessions.cleared", path=str(self.path), session_id=session_id)


def open_session_store(
    kind: str = "memory", path: str | Path | None = None
) -> SessionStore:
    if kind == "memory":
        return MemorySessionStore()
    if kind == "file":
        return FileSessionStore(path if path is not None else DEFAULT_SESSION_FILE)
    raise ConfigError(
        f"Unknown session store {kind!r}; expected one of {', '.join(SESSION_KINDS)}."
    )


def resolve_session_id(ctx: Context) -> str:
    return ctx.chat_id or DEFAULT_SESSION_ID


async def load_session(ctx: Context, store: SessionStore) -> bool:
    """Make ``ctx.session`` the session ``store`` holds for the sender.

    Returns ``False`` when the context already carries that store's session,
    in which case whoever loaded it also saves it. Otherwise the stored
    session replaces the one on the context, keeping any keys written
    upstream in this pass, and the caller becomes responsible for saving.
    """
    if ctx.session_store is store:
        return False
    session = await store.get(resolve_session_id(ctx))
    if ctx.session_store is not None and session is not ctx.session:
        session.update(ctx.session)
    ctx.session = session
    ctx.session_store = store
    return True


async def save_session(store: SessionStore, session_id: str, session: Session) -> bool:
    try:
        await store.set(session_id, session)
    except SessionStoreError as exc:
        logger.error("sessions.save_failed", session_id=session_id, error=str(exc))
        return False
    return True


def session_middleware(
    store: SessionStore | None = None,
    *,
    kind: str = "memory",
    path: str | Path | None = None,
) -> Callable[[Context, Callable[[], Awaitable[None]]], Awaitable[None]]:
    """Load the sender's session before the rest of the chain and save it after."""
    active_store = store if store is not None else open_session_store(kind, path)

    async def _middleware(ctx: Context, proceed: Callable[[], Awaitable[None]]) -> None:
        session_id = resolve_session_id(ctx)
        owned = await load_session(ctx, active_store)
        try:
            await proceed()
        finally:
            if owned:
                await save_session(active_store, session_id, ctx.session)

    return _middleware
