"""Multi-step conversation flows.

A scene keeps its cursor in the session under two keys: ``__scene`` (the
active scene name) and ``step`` (zero-based index of the next step to run).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .logging import get_logger
from .middleware import Middleware, Proceed, resolve
from .sessions import (
    MemorySessionStore,
    SessionStore,
    load_session,
    open_session_store,
    resolve_session_id,
    save_session,
)

if TYPE_CHECKING:
    from .context import Context

logger = get_logger(__name__)

SCENE_KEY = "__scene"
STEP_KEY = "step"

Step = Callable[["Context"], Any]

__all__ = ["SCENE_KEY", "STEP_KEY", "Scene", "SceneManager", "Step"]


def _current_step(session: dict[str, Any]) -> int:
    value = session.get(STEP_KEY)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


class Scene:
    def __init__(self, name: str, steps: Iterable[Step]) -> None:
        if not name:
            raise ValueError("scene name is empty")
        self._name = name
        self._steps = tuple(steps)

    def __repr__(self) -> str:
        return f"Scene({self._name!r}, steps={len(self._steps)})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    async def enter(self, ctx: Context) -> None:
        ctx.session[SCENE_KEY] = self._name
        ctx.session[STEP_KEY] = 0
        ctx.scene = self
        ctx.scene_stopped = False
        logger.debug("scenes.entered", scene=self._name, chat_id=ctx.chat_id)
        await self.handle(ctx)

    async def leave(self, ctx: Context) -> None:
        ctx.session.clear()
        ctx.scene = None
        ctx.scene_stopped = True
        logger.debug("scenes.left", scene=self._name, chat_id=ctx.chat_id)

    async def handle(self, ctx: Context) -> None:
        """Run the current step, then advance unless the step held it.

        The index moves forward by one only when the step left it untouched,
        the event carried text, and the step did not return ``False``.
        Returning ``False`` keeps the user on the same step so it can
        re-prompt. Once the index reaches the step count the scene is left.
        """
        step = _current_step(ctx.session)
        if step >= len(self._steps):
            await self.leave(ctx)
            return

        result = await resolve(self._steps[step](ctx))
        if ctx.session.get(STEP_KEY) == step and ctx.text and result is not False:
            ctx.session[STEP_KEY] = step + 1


class SceneManager:
    def __init__(self, session_store: SessionStore | None = None) -> None:
        self._scenes: dict[str, Scene] = {}
        self.session_store: SessionStore = (
            session_store if session_store is not None else MemorySessionStore()
        )

    @classmethod
    def from_config(
        cls, kind: str = "memory", path: str | Path | None = None
    ) -> SceneManager:
        return cls(open_session_store(kind, path))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._scenes)

    def register(self, scene: Scene) -> Scene:
        if scene.name in self._scenes:
            logger.debug("scenes.replaced", scene=scene.name)
        self._scenes[scene.name] = scene
        return scene

    def get(self, name: str) -> Scene | None:
        return self._scenes.get(name)

    def middleware(self) -> Middleware:
        async def _middleware(ctx: Context, proceed: Proceed) -> None:
            session_id = resolve_session_id(ctx)
            owned = await load_session(ctx, self.session_store)
            try:
                scene_name = ctx.session.get(SCENE_KEY)
                scene = self._scenes.get(scene_name) if isinstance(scene_name, str) else None
                if scene is not None and not ctx.scene_stopped:
                    ctx.scene = scene
                    logger.debug(
                        "scenes.resumed",
                        scene=scene.name,
                        step=ctx.session.get(STEP_KEY),
                        chat_id=ctx.chat_id,
                    )
                    await scene.handle(ctx)
                else:
                    await proceed()
            finally:
                if owned:
                    await save_session(self.session_store, session_id, ctx.session)

        return _middleware

    def enter(self, name: str) -> Callable[[Context], Any]:
        async def _enter(ctx: Context) -> None:
            scene = self._scenes.get(name)
            if scene is None:
                logger.debug("scenes.unknown", scene=name, chat_id=ctx.chat_id)
                return
            await scene.enter(ctx)

        return _enter

    def leave(self) -> Callable[[Context], Any]:
        async def _leave(ctx: Context) -> None:
            scene = ctx.scene
            if scene is None:
                name = ctx.session.get(SCENE_KEY)
                scene = self._scenes.get(name) if isinstance(name, str) else None
            if scene is not None:
                await scene.leave(ctx)

        return _leave
