"""Branch name -> Jira ticket resolution."""

from clients import ApiError, JiraClient
from models import CommitEvent, TicketInfo
from patterns import Patterns


def extract_ticket_id(branch: str | None) -> str | None:
    """Pull a ticket id out of a branch name.

    Patterns are tried most specific first; the first match wins and the
    project part is upper-cased: "feature/proj-123-login" -> "PROJ-123".
    """
    if not branch:
        return None
    for _tag, pattern in Patterns.BRANCH_TICKET:
        m = pattern.search(branch)
        if m:
            key, number = m.group(1).rsplit("-", 1)
            return f"{key.upper()}-{number}"
    return None


def extract_project_key(ticket_id: str) -> str:
    """PROJ-123 -> PROJ (split on the trailing numeric suffix)."""
    m = Patterns.TICKET_SUFFIX.match(ticket_id)
    return m.group(1) if m else ticket_id


class TicketResolver:
    """Turns branch names and commit events into verified TicketInfo."""

    def __init__(self, jira: JiraClient):
        self.jira = jira

    def resolve(self, branch: str | None) -> TicketInfo | None:
        """Resolve a branch to a ticket. None means: pick a ticket manually."""
        ticket_id = extract_ticket_id(branch)
        if not ticket_id:
            return None

        try:
            if not self.jira.verify_ticket_exists(ticket_id):
                print(f"[!] Ticket {ticket_id} not found or not accessible in Jira")
                return None
            ticket = self.jira.get_ticket_details(ticket_id)
        except ApiError as e:
            print(f"[!] Could not look up {ticket_id}: {e}")
            return None

        if ticket and not ticket.project_key:
            ticket.project_key = extract_project_key(ticket.ticket_id)
        return ticket

    def resolve_commit(self, event: CommitEvent) -> TicketInfo | None:
        return self.resolve(event.branch)

    def list_projects(self) -> list[dict]:
        return self.jira.list_projects()

    def search_issues(self, project_key: str, term: str = "") -> list[dict]:
        return self.jira.search_issues(project_key, term)

    def recent_tickets(self, limit: int = 10) -> list[dict]:
        return self.jira.get_recent_tickets(limit)
