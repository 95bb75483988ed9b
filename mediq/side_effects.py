"""
Best-effort side effects of a committed mutation

Services build a SideEffects list while they work (broadcasts, notifications,
emails, stats invalidation) and dispatch it once the store mutation has been
committed. A failing effect is logged and never reaches the caller.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Strong references to in-flight async effects so they are not garbage collected
_background_tasks: set = set()


async def _guarded(name: str, awaitable) -> None:
    try:
        await awaitable
    except Exception as e:
        logger.error(f"❌ Side effect '{name}' failed: {e}")


def _schedule(name: str, awaitable) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No loop in this thread (worker scripts, sync tests) - run it inline
        asyncio.run(_guarded(name, awaitable))
        return

    task = loop.create_task(_guarded(name, awaitable))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


class SideEffects:
    """Ordered list of fire-and-forget calls attached to one mutation"""

    def __init__(self):
        self._effects: list[tuple[str, Callable, tuple, dict]] = []

    def add(self, name: str, func: Callable, *args: Any, **kwargs: Any) -> None:
        self._effects.append((name, func, args, kwargs))

    def extend(self, other: "SideEffects") -> None:
        self._effects.extend(other._effects)

    def __len__(self) -> int:
        return len(self._effects)

    def dispatch(self) -> int:
        """Run every effect once; returns how many failed synchronously"""
        failures = 0
        effects, self._effects = self._effects, []
        for name, func, args, kwargs in effects:
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    _schedule(name, result)
            except Exception as e:
                failures += 1
                logger.error(f"❌ Side effect '{name}' failed: {e}")
        if failures:
            logger.warning(f"⚠️ {failures}/{len(effects)} side effects failed (mutation already committed)")
        return failures
