"""Data models for automatic Jira -> Productive time logging."""

from dataclasses import dataclass, field

# Confidence tiers for inferred Productive matches
HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"

# Where a service candidate came from
FROM_CONFIG = "configured"
FROM_HISTORY = "history"
FROM_PROJECT = "project-pattern"
FROM_FALLBACK = "fallback"


@dataclass
class BranchChangeEvent:
    """HEAD moved to another branch in a watched repository."""

    workspace_path: str
    previous_branch: str | None
    new_branch: str
    timestamp: int  # ms since epoch


@dataclass
class CommitEvent:
    """A new commit landed in a watched repository."""

    workspace_path: str
    branch: str
    commit_hash: str
    commit_message: str
    timestamp: int  # ms since epoch


@dataclass
class TicketInfo:
    """A Jira ticket confirmed against the ticket store."""

    ticket_id: str
    project_key: str
    project_name: str
    summary: str
    status: str | None = None
    assignee: str | None = None
    description: str | None = None


@dataclass
class TimerSession:
    """Timer state for one workspace. Owned by the tracker."""

    start_time: int = 0  # ms; wall-clock origin while running
    elapsed: int = 0  # ms accumulated up to the last stop
    running: bool = False
    ticket_id: str | None = None
    project_key: str | None = None


@dataclass
class Credentials:
    """Read-only snapshot of both backends' credentials."""

    jira_base_url: str
    jira_email: str
    jira_token: str
    productive_token: str | None = None
    productive_org_id: str | None = None
    productive_base_url: str | None = None
    productive_person_id: str | None = None


@dataclass
class ProjectMatch:
    """A Productive project picked for a Jira project name."""

    id: str
    name: str
    score: int
    tier: str


@dataclass
class ServiceCandidate:
    """A Productive service (cost code) picked for a time entry."""

    service_id: str
    service_name: str
    provenance: str  # configured | history | project-pattern | fallback
    confidence: str  # HIGH | MEDIUM | LOW
    reason: str = ""


@dataclass
class TimeEntry:
    """A Productive time entry, reduced to what discovery needs."""

    id: str
    date: str  # YYYY-MM-DD
    minutes: int
    service_id: str | None
    service_name: str | None = None
    project_id: str | None = None


@dataclass
class LogResult:
    """Outcome of one dual logging run."""

    ticket_id: str
    minutes: int
    primary_succeeded: bool = True
    secondary_succeeded: bool = False
    secondary_error: str | None = None
    via_fallback: bool = False
    project_name: str | None = None
    service: ServiceCandidate | None = None
    entry_id: str | None = None
    notes: list[str] = field(default_factory=list)


class ResolutionError(Exception):
    """A Productive project or service could not be resolved."""


class NoMatchingProjectError(ResolutionError):
    """No Productive project matches the Jira project name."""


class NoServiceAvailableError(ResolutionError):
    """Every service discovery tier came up empty."""
