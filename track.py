#!/usr/bin/env python3
"""Automatic Jira -> Productive time tracking from the command line.

Commands:
    log TICKET TIME      Log time to Jira and Productive (e.g. "1h 30m", "1.5h", "90m")
    resolve BRANCH       Show the ticket and Productive project a branch maps to
    watch                Watch the workspace and run the timer interactively
    check                Test the Jira and Productive connections
    map NAME PROJECT_ID  Save a Jira project -> Productive project mapping
"""

import argparse
import asyncio

from auth import ConfigAuth
from branch_monitor import POLL_INTERVAL, BranchMonitor
from clients import ApiError, JiraClient, ProductiveClient
from logging_pipeline import LoggingError, LoggingPipeline, PipelineBusyError
from models import NoMatchingProjectError
from project_matcher import ProjectMatcher
from ticket_resolver import TicketResolver, extract_ticket_id
from tracker import TimeTracker
from utils import CONFIG_FILE, load_config_safe, save_config

WATCH_HELP = """    Commands:
      start [TICKET]     start the timer (optionally on another ticket)
      stop               pause the timer
      resume             continue a paused timer
      submit [NOTE]      stop and log the elapsed time
      log TICKET TIME    log time manually, e.g. log PROJ-1 1h 30m
      status             show the timer
      quit               exit"""


def build_clients(config: dict) -> tuple[JiraClient, ProductiveClient | None]:
    jira = JiraClient(config)
    productive = ProductiveClient(config) if ConfigAuth(config).has_productive() else None
    return jira, productive


def cmd_log(config: dict, args) -> int:
    jira, productive = build_clients(config)
    pipeline = LoggingPipeline(jira, productive, ConfigAuth(config))

    print("=" * 70)
    print(f"Logging {args.time} to {args.ticket.upper()}")
    print("=" * 70)
    try:
        result = pipeline.log_time(args.ticket.upper(), args.time, description=args.message)
    except (LoggingError, PipelineBusyError) as e:
        print(f"[!] {e}")
        return 1

    print()
    print(f"[+] Jira: {result.minutes} min on {result.ticket_id}")
    if result.secondary_succeeded:
        marker = " (FALLBACK)" if result.via_fallback else ""
        print(f"[+] Productive: {result.project_name} / {result.service.service_name}{marker}")
        print(f"    Service confidence: {result.service.confidence} ({result.service.reason})")
    else:
        print(f"[!] {result.secondary_error}")
    return 0


def cmd_resolve(config: dict, args) -> int:
    jira, productive = build_clients(config)
    ticket_id = extract_ticket_id(args.branch)
    if not ticket_id:
        print(f"[!] No ticket id in branch '{args.branch}'")
        return 1
    print(f"[*] Branch {args.branch} -> {ticket_id}")

    ticket = TicketResolver(jira).resolve(args.branch)
    if ticket is None:
        return 1
    print(f"[+] {ticket.ticket_id}: {ticket.summary}")
    print(f"    Project: {ticket.project_name} ({ticket.project_key})")
    print(f"    Status: {ticket.status or '-'}  Assignee: {ticket.assignee or '-'}")

    if productive is None:
        print("[*] Productive not configured, skipping project match")
        return 0
    matcher = ProjectMatcher(productive, config.get("productive"))
    try:
        match = matcher.resolve(ticket.project_name or ticket.project_key, ticket.project_key)
    except (NoMatchingProjectError, ApiError) as e:
        print(f"[!] {e}")
        print(f"    Save a mapping with: track.py map \"{ticket.project_name}\" <productive project id>")
        return 1
    print(f"[+] Productive project: {match.name} (ID: {match.id}, {match.tier})")
    return 0


def cmd_check(config: dict, args) -> int:
    jira, productive = build_clients(config)
    ok = True

    print("[*] Testing Jira connection...")
    try:
        account_id = jira.get_my_account_id()
        print(f"    [+] Connected, account ID {account_id}")
    except ApiError as e:
        print(f"    [!] {e}")
        ok = False

    print()
    if productive is None:
        print("[*] Productive not configured (no 'productive' section in config.json)")
        return 0 if ok else 1

    print("[*] Testing Productive connection...")
    try:
        person = productive.get_current_person()
        print(f"    [+] Connected as {person['name']} (person ID {person['id']})")
        projects = productive.list_projects(1)
        print(f"    [+] {len(projects)} projects on the first page")
    except ApiError as e:
        print(f"    [!] {e}")
        ok = False
    return 0 if ok else 1


def cmd_map(config: dict, args) -> int:
    productive = config.setdefault("productive", {})
    productive.setdefault("project_mapping", {})[args.name] = args.project_id
    save_config(config, args.config)
    print(f"[+] Saved mapping: {args.name} -> {args.project_id}")
    return 0


async def _console(tracker: TimeTracker) -> None:
    """Read watch-mode commands from stdin."""
    loop = asyncio.get_running_loop()
    print(WATCH_HELP)
    while True:
        line = await loop.run_in_executor(None, input)
        parts = line.strip().split(maxsplit=1)
        if not parts:
            continue
        word, rest = parts[0].lower(), parts[1] if len(parts) > 1 else ""

        if word in ("quit", "exit"):
            return
        if word == "start":
            await tracker.handle_command({"command": "startTimer", "ticket": rest or None})
        elif word == "stop":
            await tracker.handle_command({"command": "stopTimer"})
        elif word == "resume":
            await tracker.handle_command({"command": "resumeTimer"})
        elif word == "submit":
            await tracker.handle_command({"command": "submitTime", "description": rest or None})
        elif word == "log":
            ticket, _, time = rest.partition(" ")
            await tracker.handle_command({"command": "manualTimeLog", "ticket": ticket, "time": time})
        elif word == "status":
            ticket = tracker.ticket.ticket_id if tracker.ticket else "-"
            state = "running" if tracker.timer.running else "stopped"
            print(f"    {ticket}  {tracker.timer.display()}  {state}")
        else:
            print(WATCH_HELP)


async def watch(config: dict) -> None:
    jira, productive = build_clients(config)
    tracker_config = config.get("tracker") or {}
    monitor = BranchMonitor(
        tracker_config.get("workspaces") or ["."],
        poll_interval=tracker_config.get("poll_interval", POLL_INTERVAL),
    )
    tracker = TimeTracker(config, jira, productive, monitor=monitor)

    runner = asyncio.get_running_loop().create_task(tracker.run())
    try:
        await _console(tracker)
    finally:
        runner.cancel()
        if tracker.timer.elapsed_ms():
            print(f"[!] Exiting with {tracker.timer.display()} not logged")


def cmd_watch(config: dict, args) -> int:
    tracker_config = config.setdefault("tracker", {})
    if args.auto_start:
        tracker_config["auto_start"] = True
    if args.auto_log:
        tracker_config["auto_log"] = True
    if args.workspace:
        tracker_config["workspaces"] = args.workspace

    print("=" * 70)
    print("Watching for branch changes (Ctrl+C or 'quit' to stop)")
    print("=" * 70)
    try:
        asyncio.run(watch(config))
    except KeyboardInterrupt:
        print()
        print("[*] Stopped")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Automatic Jira -> Productive time tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Log 1.5 hours to a ticket (Jira + Productive)
    python track.py log PROJ-123 "1h 30m" -m "Code review"

    # Which ticket / Productive project does a branch belong to?
    python track.py resolve feature/PROJ-123-login

    # Watch the workspace, start the timer on branch switch, log on commit
    python track.py watch --auto-start --auto-log
        """,
    )
    parser.add_argument("--config", default=CONFIG_FILE, help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("log", help="Log time to Jira and Productive")
    p.add_argument("ticket", help="Jira ticket, e.g. PROJ-123")
    p.add_argument("time", help='Duration: "1h 30m", "1.5h", "90m" or minutes')
    p.add_argument("-m", "--message", help="Worklog note")
    p.set_defaults(func=cmd_log)

    p = sub.add_parser("resolve", help="Resolve a branch to its ticket and Productive project")
    p.add_argument("branch")
    p.set_defaults(func=cmd_resolve)

    p = sub.add_parser("watch", help="Watch git branches and run the timer")
    p.add_argument("--auto-start", action="store_true", help="Start the timer when a branch has a ticket")
    p.add_argument("--auto-log", action="store_true", help="Log elapsed time on every commit")
    p.add_argument("--workspace", action="append", help="Folder to watch (repeatable)")
    p.set_defaults(func=cmd_watch)

    p = sub.add_parser("check", help="Test the Jira and Productive connections")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("map", help="Save a Jira project -> Productive project mapping")
    p.add_argument("name", help="Jira project name or key")
    p.add_argument("project_id", help="Productive project ID")
    p.set_defaults(func=cmd_map)

    args = parser.parse_args()

    config = load_config_safe(args.config)
    if config is None:
        return 1
    return args.func(config, args)


if __name__ == "__main__":
    exit(main())
