"""Authentication collaborator backed by config.json."""

from models import Credentials


class ConfigAuth:
    """Exposes credentials and saved Productive settings from the config dict.

    The config dict is re-read on every call, so edits made while the tracker
    runs (for example a saved project mapping) are picked up immediately.
    """

    def __init__(self, config: dict):
        self.config = config

    def is_authenticated(self) -> bool:
        jira = self.config.get("jira") or {}
        return all(jira.get(key) for key in ("base_url", "user_email", "api_token"))

    def has_productive(self) -> bool:
        productive = self.config.get("productive") or {}
        return bool(productive.get("api_token") and productive.get("organization_id"))

    def get_current_credentials(self) -> Credentials:
        jira = self.config.get("jira") or {}
        productive = self.config.get("productive") or {}
        org_id = productive.get("organization_id")
        person_id = productive.get("person_id")
        return Credentials(
            jira_base_url=jira.get("base_url", ""),
            jira_email=jira.get("user_email", ""),
            jira_token=jira.get("api_token", ""),
            productive_token=productive.get("api_token"),
            productive_org_id=str(org_id) if org_id else None,
            productive_base_url=productive.get("base_url"),
            productive_person_id=str(person_id) if person_id else None,
        )

    @property
    def settings(self) -> dict:
        """The productive section: mappings, aliases, default service."""
        return self.config.get("productive") or {}
