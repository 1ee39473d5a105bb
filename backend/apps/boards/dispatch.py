"""Fire-and-forget submission of automation triggers.

Card mutations call ``fire_trigger`` after their own write. Processing starts
once the surrounding transaction commits and never blocks or fails the
caller: every error is logged here and dropped.
"""
from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import logging
import threading
from typing import Callable

from asgiref.sync import async_to_sync, sync_to_async
from django.db import close_old_connections, transaction

from .automation import AutomationEngine, automation_setting

logger = logging.getLogger(__name__)


class AutomationDispatcher:
    """Schedules AutomationEngine.process_trigger without awaiting it.

    Thread-safe. ``submit`` can be called from request threads, from async
    views, or from any worker thread.
    """

    def __init__(self, engine_factory: Callable[[], AutomationEngine] | None = None):
        self._engine_factory = engine_factory or self._default_engine
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._atexit_registered = False

    @staticmethod
    def _default_engine() -> AutomationEngine:
        return AutomationEngine(timeout=automation_setting("TIMEOUT_SECONDS"))

    def submit(
        self,
        board_id: str,
        trigger_type: str,
        trigger_val: str | None,
        card_id: str,
    ):
        """
        Start processing a trigger in the background.

        Returns:
            The asyncio task or concurrent future running the trigger, or
            None when it already ran inline (eager mode).
        """
        coro_args = (str(board_id), trigger_type, trigger_val, str(card_id))

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is not None:
            task = running_loop.create_task(self._run(*coro_args))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return task

        if automation_setting("EAGER"):
            async_to_sync(self._run)(*coro_args)
            return None

        future = asyncio.run_coroutine_threadsafe(
            self._run(*coro_args, background=True), self._background_loop()
        )
        future.add_done_callback(self._log_unhandled)
        return future

    async def _run(
        self,
        board_id: str,
        trigger_type: str,
        trigger_val: str | None,
        card_id: str,
        background: bool = False,
    ) -> None:
        if background:
            await sync_to_async(close_old_connections)()
        try:
            engine = self._engine_factory()
            await engine.process_trigger(
                board_id, trigger_type, trigger_val, {"card_id": card_id}
            )
        except Exception:
            logger.exception(
                "Automation trigger %s failed for card %s on board %s",
                trigger_type,
                card_id,
                board_id,
            )
        finally:
            if background:
                await sync_to_async(close_old_connections)()

    def _background_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever,
                    name="board-automation",
                    daemon=True,
                )
                thread.start()
                self._loop, self._thread = loop, thread
                if not self._atexit_registered:
                    atexit.register(self.shutdown)
                    self._atexit_registered = True
                logger.info("Automation background loop started")
            return self._loop

    @staticmethod
    def _log_unhandled(future: concurrent.futures.Future) -> None:
        if future.cancelled():
            logger.warning("Automation trigger cancelled")
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Automation trigger crashed: %s", exc, exc_info=exc)

    @staticmethod
    async def _drain(timeout: float) -> int:
        """Wait for in-flight triggers; return how many are still running."""
        pending = asyncio.all_tasks() - {asyncio.current_task()}
        if not pending:
            return 0
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return len(still_running)

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Stop the background loop, if one was started.

        Triggers already submitted get up to ``timeout`` seconds to finish.
        Registered with ``atexit`` when the loop starts.
        """
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or loop.is_closed():
            return

        try:
            unfinished = asyncio.run_coroutine_threadsafe(
                self._drain(timeout), loop
            ).result(timeout + 1)
        except Exception:
            logger.exception("Could not drain automation background loop")
        else:
            if unfinished:
                logger.warning(
                    "Automation shutdown abandoned %s running trigger(s)", unfinished
                )

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Automation background loop did not stop within %ss", timeout)
                return
        loop.close()
        logger.info("Automation background loop stopped")


_dispatcher: AutomationDispatcher | None = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> AutomationDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = AutomationDispatcher()
        return _dispatcher


def fire_trigger(
    board_id: str,
    trigger_type: str,
    trigger_val: str | None,
    card_id: str,
    using: str | None = None,
) -> None:
    """Submit a trigger once the current transaction commits."""

    def _submit():
        try:
            get_dispatcher().submit(board_id, trigger_type, trigger_val, card_id)
        except Exception:
            logger.exception(
                "Could not submit automation trigger %s for card %s", trigger_type, card_id
            )

    transaction.on_commit(_submit, using=using)
