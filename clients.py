"""API clients for Jira (ticket store) and Productive (billing store)."""

import functools

import requests

from models import TicketInfo, TimeEntry

PRODUCTIVE_BASE_URL = "https://api.productive.io/api/v2"
PRODUCTIVE_PAGE_SIZE = 100
WORKLOG_COMMENT = "Time logged via automatic time tracker"

# Jira answers these when a ticket does not exist or is not visible to us
NO_ACCESS_STATUSES = (401, 403, 404)


class ApiError(Exception):
    """User-friendly API error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: requests.Response) -> str:
    """Pull title/detail/message fields out of an error body, if any."""
    try:
        data = response.json()
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""

    parts = []
    errors = data.get("errors")
    if isinstance(errors, list):
        # JSON:API (Productive)
        for err in errors:
            if isinstance(err, dict):
                text = err.get("detail") or err.get("title")
                if text:
                    parts.append(str(text))
    elif isinstance(errors, dict):
        # Jira field errors
        parts.extend(f"{field}: {msg}" for field, msg in errors.items())
    parts.extend(str(m) for m in data.get("errorMessages") or [])
    if not parts and data.get("message"):
        parts.append(str(data["message"]))
    return "; ".join(parts)


def _handle_api_error(response: requests.Response, service: str) -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found. Check the URL in config.json!",
        422: f"{service}: Request rejected by validation.",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    message = messages.get(status, f"{service}: HTTP {status} - {response.reason}")
    detail = _error_detail(response)
    if detail:
        message = f"{message} ({detail})"
    return message


def _send(service: str, host: str, method: str, url: str, **kwargs) -> requests.Response:
    """Issue a request, turning every requests failure into ApiError."""
    try:
        return requests.request(method, url, **kwargs)
    except requests.exceptions.ConnectionError:
        raise ApiError(f"{service}: Cannot connect to {host}. Check your network!")
    except requests.exceptions.Timeout:
        raise ApiError(f"{service}: Connection timed out. The server may be slow.")
    except requests.exceptions.RequestException as e:
        # MissingSchema, InvalidURL and friends: usually a bad base_url
        raise ApiError(f"{service}: Request failed ({e}). Check the URL in config.json!")


def _json(response: requests.Response, service: str):
    """Response body as JSON; a non-JSON body is an ApiError."""
    try:
        return response.json()
    except ValueError:
        raise ApiError(f"{service}: Unexpected response, expected JSON.", response.status_code)


def _unexpected_payload(service: str):
    """Turn a missing or mistyped field in a response body into ApiError."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (KeyError, IndexError, TypeError, AttributeError) as e:
                raise ApiError(f"{service}: Unexpected response format ({type(e).__name__}: {e}).")

        return wrapper

    return decorator


class JiraClient:
    """Client for Jira REST API."""

    def __init__(self, config: dict):
        self.base_url = config["jira"]["base_url"].rstrip("/")
        self.email = config["jira"]["user_email"]
        self.token = config["jira"]["api_token"]

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return _send(
            "Jira",
            self.base_url,
            method,
            f"{self.base_url}{path}",
            auth=(self.email, self.token),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=kwargs.pop("timeout", 10),
            **kwargs,
        )

    @_unexpected_payload("Jira")
    def get_my_account_id(self) -> str:
        """Get the current user's Jira account ID."""
        r = self._request("GET", "/rest/api/3/myself")
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Jira"), r.status_code)
        return _json(r, "Jira")["accountId"]

    def verify_ticket_exists(self, ticket_id: str) -> bool:
        """True if the ticket exists and is visible to us."""
        r = self._request("GET", f"/rest/api/3/issue/{ticket_id}", params={"fields": "key"})
        if r.status_code == 200:
            return True
        if r.status_code in NO_ACCESS_STATUSES:
            return False
        raise ApiError(_handle_api_error(r, "Jira"), r.status_code)

    @_unexpected_payload("Jira")
    def get_ticket_details(self, ticket_id: str) -> TicketInfo | None:
        """Fetch ticket details. None if the ticket is missing or not visible."""
        r = self._request(
            "GET",
            f"/rest/api/3/issue/{ticket_id}",
            params={"fields": "summary,project,status,assignee,description"},
        )
        if r.status_code in NO_ACCESS_STATUSES:
            return None
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Jira"), r.status_code)

        data = _json(r, "Jira")
        fields = data.get("fields", {})
        project = fields.get("project") or {}
        status = fields.get("status") or {}
        assignee = fields.get("assignee") or {}
        description = fields.get("description")
        if not isinstance(description, str):
            # API v3 returns ADF documents; keep only plain strings
            description = None

        return TicketInfo(
            ticket_id=data.get("key", ticket_id),
            project_key=project.get("key", ""),
            project_name=project.get("name", ""),
            summary=fields.get("summary", ""),
            status=status.get("name"),
            assignee=assignee.get("displayName"),
            description=description,
        )

    def submit_worklog(self, ticket_id: str, minutes: int, comment: str = WORKLOG_COMMENT) -> dict:
        """Add a worklog to a ticket."""
        r = self._request(
            "POST",
            f"/rest/api/2/issue/{ticket_id}/worklog",
            json={"timeSpentSeconds": minutes * 60, "comment": comment},
        )
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Jira"), r.status_code)
        return _json(r, "Jira")

    @_unexpected_payload("Jira")
    def list_projects(self) -> list[dict]:
        """Projects visible to the authenticated user."""
        r = self._request("GET", "/rest/api/3/project")
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Jira"), r.status_code)
        return [{"key": p["key"], "name": p["name"]} for p in _json(r, "Jira")]

    def search_issues(self, project_key: str, term: str = "", limit: int = 50) -> list[dict]:
        """Search a project's issues, optionally by text."""
        jql = f'project = "{project_key}"'
        if term:
            escaped = term.replace('"', '\\"')
            jql += f' AND text ~ "{escaped}"'
        jql += " ORDER BY updated DESC"
        return self._search(jql, limit)

    def get_recent_tickets(self, limit: int = 10) -> list[dict]:
        """Tickets assigned to the current user, most recently updated first."""
        return self._search("assignee = currentUser() ORDER BY updated DESC", limit)

    @_unexpected_payload("Jira")
    def _search(self, jql: str, limit: int) -> list[dict]:
        r = self._request(
            "POST",
            "/rest/api/3/search/jql",
            json={"jql": jql, "maxResults": limit, "fields": ["key", "summary"]},
        )
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Jira"), r.status_code)
        return [
            {"key": issue["key"], "summary": issue.get("fields", {}).get("summary", "")}
            for issue in _json(r, "Jira").get("issues", [])
        ]


class ProductiveClient:
    """Client for Productive JSON:API."""

    def __init__(self, config: dict):
        productive = config["productive"]
        self.token = productive["api_token"]
        self.organization_id = str(productive["organization_id"])
        self.base_url = (productive.get("base_url") or PRODUCTIVE_BASE_URL).rstrip("/")
        self.person_id = productive.get("person_id")

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return _send(
            "Productive",
            self.base_url,
            method,
            f"{self.base_url}{path}",
            headers={
                "Content-Type": "application/vnd.api+json",
                "X-Auth-Token": self.token,
                "X-Organization-Id": self.organization_id,
            },
            timeout=kwargs.pop("timeout", 30),
            **kwargs,
        )

    def _get(self, path: str, params: dict | None = None) -> dict:
        r = self._request("GET", path, params=params)
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Productive"), r.status_code)
        return _json(r, "Productive")

    @_unexpected_payload("Productive")
    def get_current_person(self) -> dict:
        """The person behind the API token (or the configured person_id)."""
        person_id = self.person_id
        if not person_id:
            memberships = self._get("/organization_memberships").get("data", [])
            if not memberships:
                raise ApiError("Productive: No organization memberships found for this token.")
            membership = memberships[0]
            person_ref = membership.get("relationships", {}).get("person", {}).get("data") or {}
            person_id = person_ref.get("id") or membership["id"]

        person = self._get(f"/people/{person_id}")["data"]
        attrs = person.get("attributes", {})
        name = attrs.get("name") or f"{attrs.get('first_name', '')} {attrs.get('last_name', '')}".strip()
        return {"id": str(person["id"]), "name": name, "email": attrs.get("email", "")}

    @_unexpected_payload("Productive")
    def list_projects(self, page: int = 1) -> list[dict]:
        """One page of active projects."""
        data = self._get(
            "/projects",
            params={
                "page[number]": page,
                "page[size]": PRODUCTIVE_PAGE_SIZE,
                "filter[archived]": "false",
            },
        )
        return [{"id": str(p["id"]), "name": p["attributes"]["name"]} for p in data.get("data", [])]

    @_unexpected_payload("Productive")
    def get_service(self, service_id: str) -> dict:
        data = self._get(f"/services/{service_id}")["data"]
        return {"id": str(data["id"]), "name": data["attributes"]["name"]}

    @_unexpected_payload("Productive")
    def list_services(self, project_id: str | None = None) -> list[dict]:
        """Services in the organization, or those enabled for one project."""
        params = {"page[size]": 200}
        if project_id:
            params["filter[project_id]"] = project_id
        data = self._get("/services", params=params)
        return [{"id": str(s["id"]), "name": s["attributes"]["name"]} for s in data.get("data", [])]

    @_unexpected_payload("Productive")
    def get_time_entries(
        self,
        person_id: str | None = None,
        project_id: str | None = None,
        page_size: int = 50,
    ) -> list[TimeEntry]:
        """Recent time entries, newest first, with service names resolved."""
        params = {"page[size]": page_size, "include": "service", "sort": "-date"}
        if person_id:
            params["filter[person_id]"] = person_id
        if project_id:
            params["filter[project_id]"] = project_id
        data = self._get("/time_entries", params=params)

        service_names = {
            str(item["id"]): item.get("attributes", {}).get("name")
            for item in data.get("included", [])
            if item.get("type") == "services"
        }

        entries = []
        for item in data.get("data", []):
            relationships = item.get("relationships", {})
            service_ref = (relationships.get("service") or {}).get("data") or {}
            project_ref = (relationships.get("project") or {}).get("data") or {}
            service_id = str(service_ref["id"]) if service_ref.get("id") else None
            attrs = item.get("attributes", {})
            entries.append(
                TimeEntry(
                    id=str(item["id"]),
                    date=attrs.get("date", ""),
                    minutes=attrs.get("time", 0),
                    service_id=service_id,
                    service_name=service_names.get(service_id),
                    project_id=str(project_ref["id"]) if project_ref.get("id") else project_id,
                )
            )
        return entries

    @_unexpected_payload("Productive")
    def create_time_entry(
        self,
        person_id: str,
        project_id: str,
        service_id: str,
        minutes: int,
        date: str,
        note: str,
        external_ref: dict | None = None,
    ) -> str:
        """Create a time entry and return its id.

        external_ref links the entry back to Jira:
        {"jira_issue_id": "PROJ-1", "jira_organization": "https://x.atlassian.net"}
        """
        attributes = {
            "date": date,
            "time": minutes,
            "note": note,
            "track_method_id": 1,  # manual entry
            "overhead": False,
        }
        if external_ref:
            attributes.update(external_ref)

        payload = {
            "data": {
                "type": "time_entries",
                "attributes": attributes,
                "relationships": {
                    "person": {"data": {"type": "people", "id": person_id}},
                    "project": {"data": {"type": "projects", "id": project_id}},
                    "service": {"data": {"type": "services", "id": service_id}},
                    "organization": {"data": {"type": "organizations", "id": self.organization_id}},
                },
            }
        }
        r = self._request("POST", "/time_entries", json=payload)
        if not r.ok:
            raise ApiError(_handle_api_error(r, "Productive"), r.status_code)
        return str(_json(r, "Productive")["data"]["id"])

    def delete_time_entry(self, entry_id: str) -> None:
        r = self._request("DELETE", f"/time_entries/{entry_id}")
        if not r.ok and r.status_code != 404:
            raise ApiError(_handle_api_error(r, "Productive"), r.status_code)
