from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Literal

from blinker import Namespace, Signal

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[], Awaitable[None] | None]
ConnectivityState = Literal["online", "offline"]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Track reachability of the API and signal transitions.

    Transport outcomes feed :meth:`mark_online` / :meth:`mark_offline`;
    listeners only fire on an actual change of state.
    """

    def __init__(self, *, online: bool = True, probe: Probe | None = None) -> None:
        self._online = online
        self._probe = probe
        self._namespace = Namespace()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def online(self) -> bool:
        return self._online

    def signal(self, state: ConnectivityState) -> Signal:
        return self._namespace.signal(state)

    def mark_online(self) -> None:
        if self._online:
            return
        self._online = True
        logger.info("Connectivity restored")
        self._notify(self.signal("online"))

    def mark_offline(self) -> None:
        if not self._online:
            return
        self._online = False
        logger.info("Connectivity lost")
        self._notify(self.signal("offline"))

    def subscribe(
        self,
        listener: ConnectivityListener,
        *,
        state: ConnectivityState = "online",
    ) -> Callable[[], None]:
        """Call ``listener`` whenever the monitor transitions to ``state``."""

        def _receiver(sender: Any, **_: Any) -> Awaitable[None] | None:
            return listener()

        sig = self.signal(state)
        sig.connect(_receiver, sender=self, weak=False)

        def unsubscribe() -> None:
            sig.disconnect(_receiver, sender=self)

        return unsubscribe

    def _notify(self, signal: Signal) -> None:
        for receiver in list(signal.receivers_for(self)):
            try:
                result = receiver(self)
            except Exception:
                logger.exception("Connectivity listener failed for %s", signal.name)
                continue
            self._schedule(result)

    def _schedule(self, result: Any) -> None:
        if not asyncio.iscoroutine(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(result)
            return
        task = loop.create_task(result)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Connectivity listener task failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for listener tasks scheduled by past transitions."""

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def probe(self) -> bool:
        """Run the configured reachability probe and record its outcome."""

        if self._probe is None:
            return self._online
        try:
            reachable = await self._probe()
        except Exception:
            logger.debug("Connectivity probe raised", exc_info=True)
            reachable = False
        if reachable:
            self.mark_online()
        else:
            self.mark_offline()
        return reachable

    def watch(self, interval: float) -> asyncio.Task[None]:
        """Start probing every ``interval`` seconds in the background."""

        if self._watch_task is not None and not self._watch_task.done():
            return self._watch_task

        async def _loop() -> None:
            try:
                while True:
                    await self.probe()
                    await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.debug("Connectivity watch cancelled")
                raise

        self._watch_task = asyncio.create_task(
            _loop(), name="moodjournal-connectivity-watch"
        )
        return self._watch_task

    async def stop(self) -> None:
        task = self._watch_task
        self._watch_task = None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.drain()


__all__ = ["ConnectivityMonitor", "ConnectivityListener"]
