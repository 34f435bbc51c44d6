from __future__ import annotations

import asyncio
import datetime
import logging
import time

from app.config.settings import Settings, settings as default_settings
from app.config.validation import validate_settings
from app.engine.cancel import sleep_or_cancel
from app.engine.credential import CredentialMonitor
from app.engine.retry import FetchTask, run_with_retry
from app.errors import Canceled, FetchError
from app.jobs.refresh import build_fetch_tasks
from app.schemas.snapshot import Snapshot
from app.store import SnapshotStore

logger = logging.getLogger(__name__)


class RefreshEngine:
    """Keeps the snapshot fresh: warm-up once, then one timer per FetchTask.

    ``start`` must be called from a running event loop. ``stop`` sets the shared
    cancel signal and joins every task the engine spawned.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SnapshotStore | None = None,
        tasks: list[FetchTask] | None = None,
        monitor: CredentialMonitor | None = None,
        stop_grace_seconds: float = 5.0,
    ) -> None:
        self.settings = settings or default_settings
        validate_settings(self.settings)

        self.store = store or SnapshotStore()
        self.tasks = tasks if tasks is not None else build_fetch_tasks(self.settings, self.store)
        self.monitor = monitor or CredentialMonitor(
            lambda: self.settings.ranking.api_token,
            threshold_days=self.settings.credential.warning_threshold_days,
        )
        self.started_at: datetime.datetime | None = None
        self._started_monotonic: float | None = None
        self._stop_grace_seconds = stop_grace_seconds
        self._cancel: asyncio.Event | None = None
        self._runner: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._stopped = False
        self.warmup_done = asyncio.Event()

    @property
    def task_names(self) -> list[str]:
        return [task.name for task in self.tasks]

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._stopped

    def snapshot(self) -> Snapshot:
        return self.store.read()

    def uptime_seconds(self) -> float:
        if self._started_monotonic is None:
            return 0.0
        return time.monotonic() - self._started_monotonic

    def start(self) -> None:
        if self._runner is not None:
            raise RuntimeError("engine already started")
        self._cancel = asyncio.Event()
        self.started_at = datetime.datetime.now(datetime.UTC)
        self._started_monotonic = time.monotonic()
        self._runner = asyncio.create_task(self._run(), name="refresh-engine")
        logger.info("refresh engine started with tasks: %s", ", ".join(self.task_names))

    async def stop(self) -> None:
        if self._runner is None or self._stopped:
            return
        self._stopped = True
        self._cancel.set()

        pending = [self._runner, *self._inflight]
        _, not_done = await asyncio.wait(pending, timeout=self._stop_grace_seconds)
        for task in not_done:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("refresh engine stopped")

    def refresh(self, name: str) -> asyncio.Task:
        """Run one named FetchTask now, outside its schedule."""
        if not self.running:
            raise RuntimeError("engine is not running")
        for task in self.tasks:
            if task.name == name:
                return self._spawn(task)
        raise KeyError(name)

    def _spawn(self, task: FetchTask) -> asyncio.Task:
        invocation = asyncio.create_task(self._invoke(task), name=f"fetch-{task.name}")
        self._inflight.add(invocation)
        invocation.add_done_callback(self._inflight.discard)
        return invocation

    async def _invoke(self, task: FetchTask) -> bool:
        try:
            await run_with_retry(
                task, self._cancel, deadline_seconds=self.settings.retry.deadline_seconds
            )
        except Canceled as exc:
            logger.debug("task=%s canceled: %s", task.name, exc.message)
            return False
        except FetchError as exc:
            logger.error(
                "task=%s kind=%s fetch failed, keeping previous data: %s",
                task.name,
                exc.kind.value,
                exc.message,
            )
            return False
        except Exception:
            logger.exception("task=%s unexpected failure, keeping previous data", task.name)
            return False
        logger.debug("task=%s fetch succeeded", task.name)
        return True

    async def _run(self) -> None:
        if self.settings.warmup:
            results = await asyncio.gather(*(self._invoke(task) for task in self.tasks))
            failed = [task.name for task, ok in zip(self.tasks, results) if not ok]
            if failed:
                logger.warning("warm-up finished with failures: %s", ", ".join(failed))
            else:
                logger.info("warm-up finished")
        self.warmup_done.set()

        loops = [
            asyncio.create_task(self._timer_loop(task), name=f"timer-{task.name}")
            for task in self.tasks
        ]
        loops.append(asyncio.create_task(self._credential_loop(), name="timer-credential"))
        try:
            await asyncio.gather(*loops)
        finally:
            for loop_task in loops:
                loop_task.cancel()

    async def _timer_loop(self, task: FetchTask) -> None:
        while not await sleep_or_cancel(task.interval, self._cancel):
            self._spawn(task)

    async def _credential_loop(self) -> None:
        interval = self.settings.credential.check_interval_seconds
        while not self._cancel.is_set():
            try:
                self.monitor.check()
            except Exception:
                logger.exception("credential check failed")
            if await sleep_or_cancel(interval, self._cancel):
                return
