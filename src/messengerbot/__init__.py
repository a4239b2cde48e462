from __future__ import annotations

__version__ = "0.3.0"

from .bot import MessengerBot  # noqa: E402
from .config import BotConfig, ConfigError, load_config  # noqa: E402
from .context import Context  # noqa: E402
from .dispatch import DispatchResult, Dispatcher, MatchOutcome  # noqa: E402
from .markup import Markup  # noqa: E402
from .middleware import MiddlewareChain, logger_middleware  # noqa: E402
from .scenes import Scene, SceneManager  # noqa: E402
from .sessions import (  # noqa: E402
    FileSessionStore,
    MemorySessionStore,
    SessionStore,
    SessionStoreError,
    open_session_store,
    session_middleware,
)

session = session_middleware

__all__ = [
    "BotConfig",
    "ConfigError",
    "Context",
    "DispatchResult",
    "Dispatcher",
    "FileSessionStore",
    "Markup",
    "MatchOutcome",
    "MemorySessionStore",
    "MessengerBot",
    "MiddlewareChain",
    "Scene",
    "SceneManager",
    "SessionStore",
    "SessionStoreError",
    "load_config",
    "logger_middleware",
    "open_session_store",
    "session",
    "session_middleware",
]
