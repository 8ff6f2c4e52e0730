"""Time tracker: branch monitor -> ticket -> timer -> dual logging.

The host (an editor panel, or the console in `track.py watch`) receives
messages through post_message and sends commands to handle_command():

    outgoing: ticket-info, branch-info, update, notification
    incoming: startTimer, stopTimer, resumeTimer, submitTime, manualTimeLog
"""

import asyncio
from dataclasses import asdict
from typing import Callable

from auth import ConfigAuth
from branch_monitor import BranchMonitor
from clients import ApiError, JiraClient, ProductiveClient
from logging_pipeline import LoggingError, LoggingPipeline, PipelineBusyError
from models import BranchChangeEvent, CommitEvent, LogResult, TicketInfo, TimerSession
from ticket_resolver import TicketResolver, extract_project_key
from timer import TimerStateMachine
from utils import now_ms


def print_message(message: dict) -> None:
    """Console host: print messages with the usual status markers."""
    kind = message["type"]
    if kind == "notification":
        marker = "[+]" if message["level"] == "info" else "[!]"
        print(f"{marker} {message['message']}")
    elif kind == "ticket-info":
        ticket = message["ticket"]
        if ticket:
            print(f"[+] Ticket: {ticket['ticket_id']} - {ticket['summary']} ({ticket['project_name']})")
        else:
            print("[*] No ticket selected")
    elif kind == "branch-info":
        print(f"[*] Branch: {message['branch']} (ticket: {message['ticket'] or '-'})")
    # update ticks are not printed


class TimeTracker:
    """Holds the single TimerSession and current ticket for one workspace."""

    def __init__(
        self,
        config: dict,
        jira: JiraClient,
        productive: ProductiveClient | None = None,
        post_message: Callable[[dict], None] | None = None,
        monitor: BranchMonitor | None = None,
        pipeline: LoggingPipeline | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        tracker_config = config.get("tracker") or {}
        self.auto_start = bool(tracker_config.get("auto_start", False))
        self.auto_log = bool(tracker_config.get("auto_log", False))

        self.auth = ConfigAuth(config)
        self.resolver = TicketResolver(jira)
        self.pipeline = pipeline or LoggingPipeline(jira, productive, self.auth)
        self.post_message = post_message or print_message
        self.session = TimerSession()
        self.timer = TimerStateMachine(
            self.session,
            self.auth,
            clock=clock,
            on_update=self._on_timer_update,
            on_notification=self.notify,
        )
        self.ticket: TicketInfo | None = None
        self.branch: str | None = None
        self._tasks: set[asyncio.Task] = set()

        self.monitor = monitor
        if monitor is not None:
            monitor.on_branch_change(self.on_branch_change)
            monitor.on_commit(self.on_commit)

    # -- host messages ---------------------------------------------------

    def _post(self, kind: str, **payload) -> None:
        self.post_message({"type": kind, **payload})

    def notify(self, level: str, message: str) -> None:
        self._post("notification", level=level, message=message)

    def _on_timer_update(self, time: str, running: bool) -> None:
        self._post("update", time=time, running=running)

    # -- ticket state ----------------------------------------------------

    def set_ticket(self, ticket: TicketInfo) -> None:
        self.ticket = ticket
        self.session.ticket_id = ticket.ticket_id
        self.session.project_key = ticket.project_key or extract_project_key(ticket.ticket_id)
        self._post("ticket-info", ticket=asdict(ticket))

    def clear_ticket(self) -> None:
        self.ticket = None
        self.session.ticket_id = None
        self.session.project_key = None
        self._post("ticket-info", ticket=None)

    def apply_branch(self, branch: str, ticket: TicketInfo | None) -> None:
        """Update the current ticket after a branch change."""
        self.branch = branch
        self._post("branch-info", branch=branch, ticket=ticket.ticket_id if ticket else None)

        if self.ticket and (ticket is None or ticket.ticket_id != self.ticket.ticket_id):
            self._drop_session(f"Switched away from {self.ticket.ticket_id}")

        if ticket is None:
            if self.ticket:
                self.clear_ticket()
            self.notify("info", f"No ticket found for branch '{branch}'. Select a ticket manually.")
            return

        self.set_ticket(ticket)
        if self.auto_start and not self.timer.running:
            self.timer.start()

    def _drop_session(self, reason: str) -> None:
        if self.timer.elapsed_ms() == 0:
            return
        self.timer.stop()
        self.notify("warning", f"{reason}: {self.timer.display()} not logged, timer reset")
        self.timer.reset()

    # -- monitor listeners -----------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_branch_change(self, event: BranchChangeEvent) -> None:
        self._spawn(self.handle_branch_change(event))

    def on_commit(self, event: CommitEvent) -> None:
        self._spawn(self.handle_commit(event))

    async def handle_branch_change(self, event: BranchChangeEvent) -> None:
        loop = asyncio.get_running_loop()
        ticket = await loop.run_in_executor(None, self.resolver.resolve, event.new_branch)
        self.apply_branch(event.new_branch, ticket)

    async def handle_commit(self, event: CommitEvent) -> LogResult | None:
        if not self.auto_log or not self.timer.running or self.ticket is None:
            return None
        if self.timer.elapsed_minutes() < 1:
            print("[*] Less than 1 minute elapsed, not logging")
            return None
        return await self.finish_and_log(commit_message=event.commit_message)

    # -- logging ---------------------------------------------------------

    async def finish_and_log(self, description: str | None = None, commit_message: str | None = None) -> LogResult | None:
        """Stop the timer, log its time to both backends, then reset."""
        if self.ticket is None:
            self.notify("warning", "No ticket selected. Select a ticket before submitting time.")
            return None

        self.timer.stop()
        minutes = self.timer.elapsed_minutes()
        if minutes < 1:
            self.notify("warning", "Less than 1 minute elapsed, nothing to log.")
            return None

        result = await self._run_pipeline(self.ticket.ticket_id, minutes, description, commit_message)
        if result is not None:
            self.timer.reset()
            self.clear_ticket()
        return result

    async def manual_time_log(self, ticket_id: str, duration, description: str | None = None) -> LogResult | None:
        if not ticket_id:
            self.notify("warning", "Please provide a ticket, e.g. PROJ-123.")
            return None
        return await self._run_pipeline(ticket_id.strip().upper(), duration, description, None)

    async def _run_pipeline(self, ticket_id, duration, description, commit_message) -> LogResult | None:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None, self.pipeline.log_time, ticket_id, duration, description, commit_message
            )
        except (LoggingError, PipelineBusyError) as e:
            self.notify("error", str(e))
            return None

        message = f"Logged {result.minutes} min to {result.ticket_id} in Jira"
        if result.secondary_succeeded:
            via = " (FALLBACK project)" if result.via_fallback else ""
            self.notify("info", f"{message} and Productive: {result.project_name}{via}")
        else:
            self.notify("warning", f"{message} only. {result.secondary_error}")
        return result

    # -- host commands ---------------------------------------------------

    async def select_ticket(self, ticket_id: str) -> TicketInfo | None:
        """Manual ticket selection (no ticket in the branch name)."""
        loop = asyncio.get_running_loop()
        try:
            ticket = await loop.run_in_executor(None, self.resolver.jira.get_ticket_details, ticket_id.strip().upper())
        except ApiError as e:
            self.notify("error", str(e))
            return None
        if ticket is None:
            self.notify("warning", f"Ticket {ticket_id} not found or not accessible in Jira")
            return None
        if self.ticket and self.ticket.ticket_id != ticket.ticket_id:
            self._drop_session(f"Switched away from {self.ticket.ticket_id}")
        self.set_ticket(ticket)
        return ticket

    async def handle_command(self, message: dict):
        command = message.get("command")
        if command == "startTimer":
            if message.get("ticket"):
                await self.select_ticket(message["ticket"])
            return self.timer.start()
        if command == "stopTimer":
            return self.timer.stop()
        if command == "resumeTimer":
            return self.timer.resume()
        if command == "submitTime":
            return await self.finish_and_log(description=message.get("description"))
        if command == "manualTimeLog":
            return await self.manual_time_log(message.get("ticket"), message.get("time"), message.get("description"))
        print(f"[!] Unknown command: {command}")
        return None

    # -- lifecycle -------------------------------------------------------

    async def run(self) -> None:
        """Watch the workspace until cancelled."""
        try:
            if self.monitor is not None:
                await self.monitor.start()
            await asyncio.Event().wait()
        finally:
            self.dispose()

    def dispose(self) -> None:
        self.timer.dispose()
        if self.monitor is not None:
            self.monitor.dispose()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
