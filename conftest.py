"""Shared fixtures: in-memory Jira and Productive stores."""

import pytest

from clients import ApiError
from models import TicketInfo, TimeEntry

JIRA_URL = "https://example.atlassian.net"


def make_ticket(ticket_id: str = "PROJ-42", project_name: str = "Phoenix", summary: str = "Login page") -> TicketInfo:
    return TicketInfo(
        ticket_id=ticket_id,
        project_key=ticket_id.rsplit("-", 1)[0],
        project_name=project_name,
        summary=summary,
        status="In Progress",
    )


class FakeJira:
    """Records calls; tickets are looked up in a dict."""

    base_url = JIRA_URL

    def __init__(self, tickets=None, worklog_error: ApiError | None = None, lookup_error: ApiError | None = None):
        self.tickets = {t.ticket_id: t for t in tickets or []}
        self.worklog_error = worklog_error
        self.lookup_error = lookup_error
        self.worklogs = []
        self.calls = []

    def verify_ticket_exists(self, ticket_id):
        self.calls.append(("verify_ticket_exists", ticket_id))
        if self.lookup_error:
            raise self.lookup_error
        return ticket_id in self.tickets

    def get_ticket_details(self, ticket_id):
        self.calls.append(("get_ticket_details", ticket_id))
        if self.lookup_error:
            raise self.lookup_error
        return self.tickets.get(ticket_id)

    def submit_worklog(self, ticket_id, minutes, comment="Time logged via automatic time tracker"):
        self.calls.append(("submit_worklog", ticket_id))
        if self.worklog_error:
            raise self.worklog_error
        self.worklogs.append((ticket_id, minutes, comment))
        return {"id": str(len(self.worklogs))}

    def get_my_account_id(self):
        return "account-1"

    def list_projects(self):
        return [{"key": "PROJ", "name": "Phoenix"}]

    def search_issues(self, project_key, term="", limit=50):
        return [
            {"key": t.ticket_id, "summary": t.summary}
            for t in self.tickets.values()
            if t.project_key == project_key and term.lower() in t.summary.lower()
        ]

    def get_recent_tickets(self, limit=10):
        return [{"key": t.ticket_id, "summary": t.summary} for t in self.tickets.values()][:limit]


class FakeProductive:
    """Projects are served in pages; entries are (person_id, TimeEntry) pairs."""

    def __init__(
        self,
        projects=None,
        entries=None,
        services=None,
        project_services=None,
        page_size: int = 100,
        rejected_services=(),
        errors=None,
    ):
        self.projects = projects or []
        self.entries = entries or []
        self.services = services or []
        self.project_services = project_services or {}
        self.page_size = page_size
        self.rejected_services = set(rejected_services)
        self.errors = errors or {}
        self.created = []
        self.deleted = []
        self.calls = []

    def _call(self, name):
        self.calls.append(name)
        if name in self.errors:
            raise self.errors[name]

    def get_current_person(self):
        self._call("get_current_person")
        return {"id": "person-1", "name": "Dev One", "email": "dev@example.com"}

    def list_projects(self, page=1):
        self._call("list_projects")
        start = (page - 1) * self.page_size
        return self.projects[start:start + self.page_size]

    def get_service(self, service_id):
        self._call("get_service")
        for service in self.services:
            if service["id"] == service_id:
                return service
        raise ApiError("Productive: Resource not found. Check the URL in config.json!", 404)

    def list_services(self, project_id=None):
        self._call("list_services")
        if project_id:
            return self.project_services.get(project_id, [])
        return self.services

    def get_time_entries(self, person_id=None, project_id=None, page_size=50):
        self._call("get_time_entries")
        found = [
            entry
            for owner, entry in self.entries
            if (person_id is None or owner == person_id) and (project_id is None or entry.project_id == project_id)
        ]
        return found[:page_size]

    def create_time_entry(self, **kwargs):
        self._call("create_time_entry")
        if kwargs["service_id"] in self.rejected_services:
            raise ApiError("Productive: Request rejected by validation. (Service is not available)", 422)
        self.created.append(kwargs)
        return f"entry-{len(self.created)}"

    def delete_time_entry(self, entry_id):
        self._call("delete_time_entry")
        self.deleted.append(entry_id)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeAuth:
    def __init__(self, authenticated: bool = True, settings: dict | None = None):
        self.authenticated = authenticated
        self.settings = settings if settings is not None else {}

    def is_authenticated(self):
        return self.authenticated


def entry(entry_id, service_id, project_id="proj-1", service_name=None, date="2026-10-01"):
    return TimeEntry(
        id=entry_id,
        date=date,
        minutes=60,
        service_id=service_id,
        service_name=service_name or f"Service {service_id}",
        project_id=project_id,
    )


@pytest.fixture
def ticket():
    return make_ticket()


@pytest.fixture
def jira(ticket):
    return FakeJira(tickets=[ticket])


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def config():
    return {
        "jira": {"base_url": JIRA_URL, "user_email": "dev@example.com", "api_token": "secret"},
        "productive": {"api_token": "token", "organization_id": "999"},
        "tracker": {"workspaces": []},
    }
