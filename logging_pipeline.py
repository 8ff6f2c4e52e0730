"""Dual logging: Jira worklog first, then the matching Productive time entry."""

import threading

from auth import ConfigAuth
from clients import WORKLOG_COMMENT, ApiError, JiraClient, ProductiveClient
from models import LogResult, NoMatchingProjectError, ProjectMatch, ResolutionError, ServiceCandidate, TicketInfo
from project_matcher import ProjectMatcher
from service_discovery import PermissionProbe, ServiceDiscovery
from utils import local_date, parse_duration

SECONDARY_PREFIX = "Productive integration failed: "


class LoggingError(Exception):
    """A log_time run failed before or while logging to Jira."""


class PipelineBusyError(Exception):
    """log_time was called while another run is still in progress."""


class LoggingPipeline:
    """Logs time to Jira (fatal on failure) and then to Productive (best effort).

    A Productive failure never fails the run: the result carries
    secondary_succeeded=False and the reason in secondary_error.
    """

    def __init__(
        self,
        jira: JiraClient,
        productive: ProductiveClient | None,
        auth: ConfigAuth,
        matcher: ProjectMatcher | None = None,
        discovery: ServiceDiscovery | None = None,
    ):
        self.jira = jira
        self.productive = productive
        self.auth = auth
        settings = auth.settings
        if productive is not None and matcher is None:
            matcher = ProjectMatcher(productive, settings)
        if productive is not None and discovery is None:
            probe = PermissionProbe(productive) if settings.get("verify_service_permissions") else None
            discovery = ServiceDiscovery(productive, settings, probe)
        self.matcher = matcher
        self.discovery = discovery
        self._lock = threading.Lock()

    def log_time(
        self,
        ticket_id: str,
        duration: int | float | str,
        description: str | None = None,
        commit_message: str | None = None,
    ) -> LogResult:
        if not self._lock.acquire(blocking=False):
            raise PipelineBusyError("A time log is already in progress. Wait for it to finish.")
        try:
            return self._log_time(ticket_id, duration, description, commit_message)
        finally:
            self._lock.release()

    def _log_time(self, ticket_id, duration, description, commit_message) -> LogResult:
        if not self.auth.is_authenticated():
            raise LoggingError("Failed to log time: not signed in to Jira. Check config.json!")
        try:
            minutes = parse_duration(duration)
        except ValueError as e:
            raise LoggingError(str(e)) from e

        print(f"[*] Logging {minutes} min to {ticket_id}...")

        try:
            ticket = None
            if self.jira.verify_ticket_exists(ticket_id):
                ticket = self.jira.get_ticket_details(ticket_id)
        except ApiError as e:
            raise LoggingError(f"Failed to log time: {e}") from e
        if ticket is None:
            raise LoggingError(f"Failed to log time: Ticket {ticket_id} not found or not accessible in Jira")

        try:
            self.jira.submit_worklog(ticket_id, minutes, description or commit_message or WORKLOG_COMMENT)
        except ApiError as e:
            raise LoggingError(f"Failed to log time: {e}") from e
        print(f"    [+] Jira: {minutes} min logged to {ticket_id}")

        result = LogResult(ticket_id=ticket_id, minutes=minutes)
        note = commit_message or description or f"{ticket_id}: {WORKLOG_COMMENT}"

        if self.productive is None:
            result.secondary_error = f"{SECONDARY_PREFIX}Productive is not configured in config.json"
            print(f"    [!] {result.secondary_error}")
            return result

        try:
            self._log_to_productive(ticket, minutes, note, result)
        except (ApiError, ResolutionError) as e:
            result.secondary_error = f"{SECONDARY_PREFIX}{e}"
            print(f"    [!] {result.secondary_error}")
        except Exception as e:
            # Jira already has the time; nothing here may fail the run
            result.secondary_error = f"{SECONDARY_PREFIX}unexpected {type(e).__name__}: {e}"
            print(f"    [!] {result.secondary_error}")
        return result

    def _log_to_productive(self, ticket: TicketInfo, minutes: int, note: str, result: LogResult) -> None:
        person = self.productive.get_current_person()
        print(f"    Productive person: {person['name']} (ID: {person['id']})")

        try:
            project = self.matcher.resolve(ticket.project_name or ticket.project_key, ticket.project_key)
        except NoMatchingProjectError as e:
            print(f"    [!] FALLBACK: {e}")
            project, service = self._fallback(person["id"])
            result.via_fallback = True
        else:
            service = self.discovery.resolve(person["id"], project.id)

        entry_id = self.productive.create_time_entry(
            person_id=person["id"],
            project_id=project.id,
            service_id=service.service_id,
            minutes=minutes,
            date=local_date(),
            note=note,
            external_ref={
                "jira_issue_id": ticket.ticket_id,
                "jira_organization": self.jira.base_url,
            },
        )
        result.secondary_succeeded = True
        result.project_name = project.name
        result.service = service
        result.entry_id = entry_id
        print(f"    [+] Productive: {minutes} min on {project.name} / {service.service_name} (entry {entry_id})")

    def _fallback(self, person_id: str) -> tuple[ProjectMatch, ServiceCandidate]:
        """First available project plus the last used service."""
        projects = self.productive.list_projects(1)
        if not projects:
            raise NoMatchingProjectError("No projects available in Productive")
        project = ProjectMatch(id=projects[0]["id"], name=projects[0]["name"], score=0, tier="fallback")
        print(f"    [!] FALLBACK: using first available project {project.name} (ID: {project.id})")

        try:
            service = self.discovery.last_used_service(person_id)
        except ApiError as e:
            print(f"    [!] Could not read last used service: {e}")
            service = None

        if service:
            print(f"    [!] FALLBACK: using last used service {service.service_name} ({service.service_id})")
        else:
            service = self.discovery.resolve(person_id, project.id)
        return project, service
