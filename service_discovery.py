"""Productive service (cost code) discovery from time entry history."""

from collections import Counter

from clients import ApiError, ProductiveClient
from models import (
    FROM_CONFIG,
    FROM_FALLBACK,
    FROM_HISTORY,
    FROM_PROJECT,
    HIGH,
    LOW,
    MEDIUM,
    NoServiceAvailableError,
    ServiceCandidate,
    TimeEntry,
)
from utils import local_date

UNKNOWN_SERVICE = "Unknown Service"
PROBE_NOTE = "Permission check by time tracker (deleted automatically)"


def _service_counts(entries: list[TimeEntry]) -> tuple[Counter, dict[str, str]]:
    """Count entries per service id, keeping the first name seen for each."""
    counts = Counter()
    names = {}
    for entry in entries:
        if not entry.service_id:
            continue
        counts[entry.service_id] += 1
        if entry.service_name and entry.service_id not in names:
            names[entry.service_id] = entry.service_name
    return counts, names


class PermissionProbe:
    """Checks write access to a service by creating and deleting a 1-minute entry.

    This writes to Productive, so it is only used when
    productive.verify_service_permissions is enabled.
    """

    def __init__(self, productive: ProductiveClient):
        self.productive = productive

    def verify(self, person_id: str, project_id: str, service_id: str) -> bool:
        try:
            entry_id = self.productive.create_time_entry(
                person_id=person_id,
                project_id=project_id,
                service_id=service_id,
                minutes=1,
                date=local_date(),
                note=PROBE_NOTE,
            )
        except ApiError as e:
            print(f"    Service {service_id} rejected: {e}")
            return False

        try:
            self.productive.delete_time_entry(entry_id)
        except ApiError as e:
            print(f"    [!] Could not delete probe entry {entry_id}, remove it manually: {e}")
        return True


class ServiceDiscovery:
    """Picks the service for a time entry, strongest evidence first.

    Tiers: configured default, own history (project, then everywhere),
    project-wide usage, probing the project's services, organization default.
    An ApiError inside a tier moves on to the next tier.
    """

    def __init__(self, productive: ProductiveClient, settings: dict | None = None, probe: PermissionProbe | None = None):
        self.productive = productive
        self.settings = settings if settings is not None else {}
        self.probe = probe

    def resolve(self, person_id: str, project_id: str) -> ServiceCandidate:
        print("[*] Discovering Productive service...")
        tiers = [
            ("Configured service", self._configured),
            ("History", self._history),
            ("Project pattern", self._project_pattern),
            ("Project services", self._probe_project_services),
            ("Organization default", self._most_active),
            ("Service list", self._first_service),
        ]
        for label, tier in tiers:
            try:
                candidate = tier(person_id, project_id)
            except ApiError as e:
                print(f"    [!] {label} lookup failed: {e}")
                continue
            if candidate:
                print(f"    [+] {candidate.service_name} ({candidate.service_id}) {candidate.confidence}: {candidate.reason}")
                return candidate

        raise NoServiceAvailableError("No services available in Productive")

    def last_used_service(self, person_id: str) -> ServiceCandidate | None:
        """The service on the person's most recent time entry, if any."""
        for entry in self.productive.get_time_entries(person_id=person_id, page_size=10):
            if entry.service_id:
                return ServiceCandidate(
                    service_id=entry.service_id,
                    service_name=entry.service_name or UNKNOWN_SERVICE,
                    provenance=FROM_FALLBACK,
                    confidence=LOW,
                    reason="last used service",
                )
        return None

    def _configured(self, person_id, project_id) -> ServiceCandidate | None:
        service_id = self.settings.get("default_service_id")
        if not service_id:
            return None
        print(f"    Checking configured default service: {service_id}")
        service = self.productive.get_service(str(service_id))
        return ServiceCandidate(service["id"], service["name"], FROM_CONFIG, HIGH, "configured default service")

    def _history(self, person_id, project_id) -> ServiceCandidate | None:
        entries = self.productive.get_time_entries(person_id=person_id, project_id=project_id)
        counts, names = _service_counts(entries)
        scope = "this project"
        if not counts:
            print("    No previous services on this project, checking all projects...")
            entries = self.productive.get_time_entries(person_id=person_id)
            counts, names = _service_counts(entries)
            scope = "all projects"

        if not counts:
            return None
        print(f"    Found {len(entries)} previous entries ({scope}), {len(counts)} services")

        if self.probe:
            for service_id, _count in counts.most_common():
                if self.probe.verify(person_id, project_id, service_id):
                    return ServiceCandidate(
                        service_id,
                        names.get(service_id, UNKNOWN_SERVICE),
                        FROM_HISTORY,
                        HIGH,
                        "history + permission verified",
                    )
            return None

        service_id, _count = counts.most_common(1)[0]
        name = names.get(service_id, UNKNOWN_SERVICE)
        if len(counts) == 1:
            return ServiceCandidate(service_id, name, FROM_HISTORY, HIGH, f"historical consistency ({scope})")
        return ServiceCandidate(service_id, name, FROM_HISTORY, MEDIUM, f"most used from history ({scope})")

    def _project_pattern(self, person_id, project_id) -> ServiceCandidate | None:
        entries = self.productive.get_time_entries(project_id=project_id)
        counts, names = _service_counts(entries)
        if not counts:
            return None

        service_id, _count = counts.most_common(1)[0]
        name = names.get(service_id, UNKNOWN_SERVICE)
        if len(counts) == 1:
            return ServiceCandidate(service_id, name, FROM_PROJECT, HIGH, "project uses single service")
        return ServiceCandidate(service_id, name, FROM_PROJECT, MEDIUM, "most used in project")

    def _probe_project_services(self, person_id, project_id) -> ServiceCandidate | None:
        if not self.probe:
            return None
        for service in self.productive.list_services(project_id):
            if self.probe.verify(person_id, project_id, service["id"]):
                return ServiceCandidate(
                    service["id"],
                    service["name"],
                    FROM_PROJECT,
                    MEDIUM,
                    "project service + permission verified",
                )
        return None

    def _most_active(self, person_id, project_id) -> ServiceCandidate | None:
        print("    [!] Falling back to an organization-wide service.")
        print("        Set productive.default_service_id in config.json for reliable service selection.")

        counts, names = _service_counts(self.productive.get_time_entries(page_size=200))
        if counts:
            service_id, _count = counts.most_common(1)[0]
            return ServiceCandidate(
                service_id,
                names.get(service_id, UNKNOWN_SERVICE),
                FROM_FALLBACK,
                LOW,
                "most active service in organization",
            )
        return None

    def _first_service(self, person_id, project_id) -> ServiceCandidate | None:
        services = self.productive.list_services()
        if services:
            return ServiceCandidate(services[0]["id"], services[0]["name"], FROM_FALLBACK, LOW, "first available service")
        return None
