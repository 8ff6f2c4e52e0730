"""Timer state machine: Idle -> Running -> Paused -> Running -> Idle."""

import asyncio
from typing import Callable

from models import TimerSession
from utils import format_elapsed, now_ms, round_minutes


class TimerStateMachine:
    """Elapsed-time accounting for one TimerSession.

    While running, two periodic tasks run on the event loop: a display tick
    pushing the formatted time through on_update, and an auth check that
    force-stops the timer when the Jira credentials go away.

    Callbacks:
        on_update(time: str, running: bool)
        on_notification(level: str, message: str)  # level: info | warning | error
    """

    def __init__(
        self,
        session: TimerSession,
        auth,
        clock: Callable[[], int] = now_ms,
        on_update: Callable[[str, bool], None] | None = None,
        on_notification: Callable[[str, str], None] | None = None,
        tick_seconds: float = 1.0,
        auth_check_seconds: float = 30.0,
    ):
        self.session = session
        self.auth = auth
        self.clock = clock
        self.on_update = on_update
        self.on_notification = on_notification
        self.tick_seconds = tick_seconds
        self.auth_check_seconds = auth_check_seconds
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self.session.running

    def start(self) -> bool:
        """Start (or continue) timing. Returns False if the start was rejected."""
        if self.session.running:
            self._notify("warning", "Timer is already running")
            return False
        if not self.session.ticket_id:
            self._notify("warning", "No ticket selected. Select a ticket before starting the timer.")
            return False
        if not self.auth.is_authenticated():
            self._notify("warning", "Please sign in to Jira before starting the timer.")
            return False

        self.session.start_time = self.clock() - self.session.elapsed
        self.session.running = True
        self._start_ticks()
        self._push_update()
        return True

    def stop(self) -> bool:
        """Pause timing; elapsed time is kept. No-op when not running."""
        if not self.session.running:
            return False
        self.session.elapsed = max(self.clock() - self.session.start_time, 0)
        self.session.running = False
        self._cancel_ticks()
        self._push_update()
        return True

    def resume(self) -> bool:
        if self.session.running:
            self._notify("warning", "Timer is already running")
            return False
        if self.session.elapsed == 0:
            self._notify("warning", "Nothing to resume. Start the timer first.")
            return False
        return self.start()

    def reset(self) -> None:
        self._cancel_ticks()
        self.session.elapsed = 0
        self.session.start_time = 0
        self.session.running = False
        self._push_update()

    def elapsed_ms(self) -> int:
        if self.session.running:
            return max(self.clock() - self.session.start_time, 0)
        return self.session.elapsed

    def display(self) -> str:
        """Elapsed time as HH:MM:SS."""
        return format_elapsed(self.elapsed_ms())

    def elapsed_minutes(self) -> int:
        """Elapsed time rounded to the nearest minute, as submitted to Jira and Productive."""
        return round_minutes(self.elapsed_ms())

    def dispose(self) -> None:
        self._cancel_ticks()

    def _start_ticks(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no event loop: display ticks are driven by the caller
            return
        self._tasks = [
            loop.create_task(self._display_loop()),
            loop.create_task(self._auth_loop()),
        ]

    def _cancel_ticks(self) -> None:
        current = asyncio.current_task() if self._has_loop() else None
        for task in self._tasks:
            if task is not current:
                task.cancel()
        self._tasks = []

    @staticmethod
    def _has_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    async def _display_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self._push_update()

    async def _auth_loop(self) -> None:
        while True:
            await asyncio.sleep(self.auth_check_seconds)
            if not self.auth.is_authenticated():
                self.stop()
                self._notify("warning", "Authentication lost. Timer stopped, please sign in again.")
                return

    def _push_update(self) -> None:
        if self.on_update:
            self.on_update(self.display(), self.session.running)

    def _notify(self, level: str, message: str) -> None:
        if self.on_notification:
            self.on_notification(level, message)
        else:
            print(f"[!] {message}")
