"""
Continuous reconcile supervisor for quorumctl

A watcher task polls the store for desired state changes and feeds a bounded
queue. The dispatcher debounces events per cluster and runs each reconcile on
a worker thread with its own deadline. A periodic resync re-reconciles every
cluster so that substrate-side changes (member status) are picked up too.
"""

import asyncio
import signal
from dataclasses import dataclass

from .cancellation import CancellationToken
from .constants import KIND_CLUSTER
from .engine import Engine
from .log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A cluster needs reconciling"""

    cluster: str
    resource_version: int | None = None
    reason: str = "changed"


class Supervisor:
    """
    Long-running reconcile loop

    At most one reconcile per cluster runs at a time; an event arriving while
    one is in flight schedules exactly one follow-up. Shutdown cancels the
    shared token, which in-flight reconciles observe between steps.
    """

    def __init__(
        self,
        engine: Engine,
        token: CancellationToken | None = None,
        install_signal_handlers: bool = True,
    ):
        self.engine = engine
        self.settings = engine.settings
        self.monotonic = engine.ctx.monotonic
        self.token = token or CancellationToken(clock=self.monotonic)
        self.install_signal_handlers = install_signal_handlers
        self.queue: asyncio.Queue[ChangeEvent] | None = None
        self._stop: asyncio.Event | None = None
        self._known_versions: dict[str, int] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._running: set[str] = set()
        self._dirty: set[str] = set()
        self._slots: asyncio.Semaphore | None = None
        self.completed = 0

    @property
    def stopping(self) -> bool:
        return self.token.cancelled or (
            self._stop is not None and self._stop.is_set()
        )

    def stop(self, reason: str = "shutdown requested"):
        logger.info("Stopping supervisor", extra={"reason": reason})
        self.token.cancel(reason)
        if self._stop is not None:
            self._stop.set()

    async def run(self):
        """Run until stop() is called or the token is cancelled"""
        self.queue = asyncio.Queue(maxsize=self.settings.queue_size)
        self._stop = asyncio.Event()
        self._slots = asyncio.Semaphore(self.settings.workers)

        if self.install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.stop, f"received {sig.name}")

        await asyncio.to_thread(self.engine.store.ensure_tables)
        logger.info(
            "Supervisor started",
            extra={
                "interval": self.settings.reconcile_interval,
                "deadline": self.settings.reconcile_deadline,
                "debounce": self.settings.debounce,
                "workers": self.settings.workers,
                "dry_run": self.settings.dry_run,
            },
        )

        watcher = asyncio.create_task(self._watch(), name="watcher")
        resync = asyncio.create_task(self._resync(), name="resync")
        try:
            await self._dispatch()
        finally:
            pending = [watcher, resync, *self._timers.values()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(
                "Supervisor stopped", extra={"reconciles": self.completed}
            )

    async def _sleep(self, seconds: float):
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _watch(self):
        """Emit an event whenever a cluster's version token moves"""
        while not self.stopping:
            try:
                versions = await asyncio.to_thread(
                    self.engine.store.list_versions, KIND_CLUSTER
                )
            except Exception as e:
                logger.error(
                    "Error polling for cluster changes",
                    extra={"error": str(e)},
                    exc_info=True,
                )
                versions = None

            if versions is not None:
                for name, version in sorted(versions.items()):
                    if not self._selected(name):
                        continue
                    if self._known_versions.get(name) != version:
                        self._known_versions[name] = version
                        await self.queue.put(ChangeEvent(name, version))
                for name in set(self._known_versions) - set(versions):
                    logger.info("Cluster removed", extra={"cluster": name})
                    del self._known_versions[name]

            await self._sleep(self.settings.watch_poll_interval)

    async def _resync(self):
        """Periodically reconcile every cluster"""
        while not self.stopping:
            await self._sleep(self.settings.reconcile_interval)
            if self.stopping:
                break
            for name in sorted(self._known_versions):
                await self.queue.put(ChangeEvent(name, reason="resync"))

    def _selected(self, name: str) -> bool:
        pattern = self.settings.cluster_filter
        return not pattern or self.engine.store.matches_filter(name, pattern)

    async def _dispatch(self):
        tick = min(0.5, self.settings.watch_poll_interval)
        while not self.stopping:
            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=tick)
            except TimeoutError:
                continue
            logger.debug(
                "Change event",
                extra={
                    "cluster": event.cluster,
                    "reason": event.reason,
                    "resource_version": event.resource_version,
                },
            )
            self._schedule(event.cluster)

        # Let in-flight reconciles observe the cancelled token and return
        while self._running:
            await asyncio.sleep(0.05)

    def _schedule(self, name: str):
        if name in self._running:
            self._dirty.add(name)
            return
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()
        self._timers[name] = asyncio.create_task(
            self._debounced(name), name=f"reconcile-{name}"
        )

    async def _debounced(self, name: str):
        await asyncio.sleep(self.settings.debounce)
        self._timers.pop(name, None)
        self._running.add(name)
        try:
            async with self._slots:
                await self._reconcile(name)
        finally:
            self._running.discard(name)

        if name in self._dirty and not self.stopping:
            self._dirty.discard(name)
            self._schedule(name)

    async def _reconcile(self, name: str):
        if self.stopping:
            return
        token = self.token.child(self.settings.reconcile_deadline)
        started = self.monotonic()
        result = await asyncio.to_thread(
            self.engine.reconcile_cluster, name, self.settings.dry_run, token
        )
        self.completed += 1
        logger.info(
            "Reconcile finished",
            extra={
                "cluster": name,
                "phase": result.phase.value if result else None,
                "actions": len(result.actions) if result else 0,
                "duration": round(self.monotonic() - started, 3),
            },
        )
