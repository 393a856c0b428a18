"""
shadowapi/data/blackbox.py
The session flight recorder: a single-writer persistence actor.

Responsibilities:
1.  Funnel every session write through one worker so writes never interleave.
2.  Keep the traffic path non-blocking: request_save() only flips a flag and
    schedules work on the writer's own thread.
3.  Coalesce bursts. While a save is pending, further requests are absorbed;
    the snapshot is taken when the write actually runs, so the latest state
    is what lands on disk.

The writer owns a dedicated daemon thread hosting an asyncio loop, because
traffic events arrive on arbitrary worker threads that have no loop of their
own and the database layer is loop-bound.

A failed write is logged and dropped. The next mutation schedules a new one.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Callable, Iterable, Optional

from shadowapi.data.db import SessionDatabase
from shadowapi.data.session_codec import serialize
from shadowapi.discovery.models import Finding
from shadowapi.errors import ErrorCode, ShadowError

logger = logging.getLogger(__name__)

_SAVE = "save"


class SessionWriter:
    def __init__(
        self,
        db: SessionDatabase,
        session_key: str,
        snapshot: Callable[[], Iterable[Finding]],
        io_timeout: float = 10.0,
    ):
        self.db = db
        self.session_key = session_key
        self._snapshot = snapshot
        self.io_timeout = io_timeout

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._queue: Optional[asyncio.Queue] = None
        self._worker_task: Optional[asyncio.Task] = None

        self._pending_lock = threading.Lock()
        self._save_pending = False
        self._draining = False
        self.writes_completed = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._draining

    def start(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="SessionWriter", daemon=True
        )
        self._thread.start()
        try:
            self._call(self._bootstrap())
        except Exception as e:
            raise ShadowError(
                ErrorCode.PERSIST_NOT_RUNNING,
                f"Session database could not be opened: {e}",
                details={"db_path": self.db.db_path},
            ) from e
        logger.info("[SessionWriter] Writer loop started.")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    async def _bootstrap(self) -> None:
        self._queue = asyncio.Queue()
        self._worker_task = asyncio.get_running_loop().create_task(
            self._writer_loop(), name="SessionWriter-Loop"
        )
        await self.db.init()

    def _call(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the writer loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout if timeout is not None else self.io_timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Drain pending writes, close the database and stop the thread."""
        if self._thread is None:
            return
        logger.info("[SessionWriter] Initiating shutdown.")
        self.flush(timeout)
        self._draining = True
        try:
            self._call(self._stop_worker(), timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("[SessionWriter] Worker did not stop in time.")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout if timeout is not None else self.io_timeout)
        self._thread = None
        logger.info("[SessionWriter] Shutdown complete.")

    async def _stop_worker(self) -> None:
        await self._queue.put(None)
        if self._worker_task is not None:
            await self._worker_task
        await self.db.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_save(self) -> None:
        """Schedule a save of the latest snapshot. Non-blocking, thread-safe."""
        if not self.running:
            logger.debug("[SessionWriter] Not running, save request dropped.")
            return
        with self._pending_lock:
            if self._save_pending:
                return
            self._save_pending = True
        self._loop.call_soon_threadsafe(self._queue.put_nowait, _SAVE)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued write has run. False on timeout."""
        if not self.running:
            return True
        try:
            self._call(self._queue.join(), timeout)
            return True
        except concurrent.futures.TimeoutError:
            logger.warning("[SessionWriter] Flush timed out.")
            return False

    def load(self, timeout: Optional[float] = None) -> Optional[str]:
        """Read the persisted blob for this session key (None if absent)."""
        if not self.running:
            raise ShadowError(ErrorCode.PERSIST_NOT_RUNNING, "Session writer is not running")
        try:
            return self._call(self.db.load_blob(self.session_key), timeout)
        except Exception as e:
            raise ShadowError(
                ErrorCode.PERSIST_LOAD_FAILED,
                f"Could not load session {self.session_key!r}: {e}",
                details={"db_path": self.db.db_path},
            ) from e

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _writer_loop(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    break
                await self._write_snapshot()
            except Exception as e:
                logger.error(f"[SessionWriter] Write failure: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def _write_snapshot(self) -> None:
        # Clear the flag first: a mutation racing with this write re-queues a save
        with self._pending_lock:
            self._save_pending = False
        blob = serialize(self._snapshot())
        try:
            await self.db.save_blob(self.session_key, blob)
        except Exception as e:
            raise ShadowError(
                ErrorCode.PERSIST_WRITE_FAILED,
                f"Session write failed: {e}",
                details={"db_path": self.db.db_path},
            ) from e
        self.writes_completed += 1
        logger.debug(f"[SessionWriter] Saved {len(blob)} bytes under {self.session_key!r}")
