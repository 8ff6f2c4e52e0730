"""Tests for the Jira + Productive logging pipeline."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from clients import ApiError, ProductiveClient
from conftest import JIRA_URL, FakeAuth, FakeJira, FakeProductive, entry, make_ticket
from logging_pipeline import LoggingError, LoggingPipeline, PipelineBusyError
from service_discovery import PermissionProbe
from utils import local_date

ME = "person-1"


def _pipeline(jira, productive, settings=None, authenticated=True):
    return LoggingPipeline(jira, productive, FakeAuth(authenticated, settings if settings is not None else {}))


@pytest.fixture
def productive():
    return FakeProductive(
        projects=[{"id": "9", "name": "Internal Tools"}, {"id": "10", "name": "Phoenix"}],
        entries=[(ME, entry("e1", "s-dev", project_id="10", service_name="Development"))],
    )


class TestHappyPath:

    def test_logs_to_both_backends(self, jira, productive):
        result = _pipeline(jira, productive).log_time("PROJ-42", "1h 30m", description="Code review")

        assert result.primary_succeeded is True
        assert result.secondary_succeeded is True
        assert result.secondary_error is None
        assert result.via_fallback is False
        assert result.minutes == 90
        assert result.project_name == "Phoenix"
        assert result.service.service_id == "s-dev"
        assert result.entry_id == "entry-1"
        assert jira.worklogs == [("PROJ-42", 90, "Code review")]

        created = productive.created[0]
        assert created["person_id"] == ME
        assert created["project_id"] == "10"
        assert created["service_id"] == "s-dev"
        assert created["minutes"] == 90
        assert created["date"] == local_date()
        assert created["external_ref"] == {"jira_issue_id": "PROJ-42", "jira_organization": JIRA_URL}

    @pytest.mark.parametrize(
        "description, commit_message, note",
        [
            ("Code review", "Fix login redirect", "Fix login redirect"),
            ("Code review", None, "Code review"),
            (None, None, "PROJ-42: Time logged via automatic time tracker"),
        ],
    )
    def test_note_prefers_commit_message(self, jira, productive, description, commit_message, note):
        _pipeline(jira, productive).log_time("PROJ-42", 30, description, commit_message)
        assert productive.created[0]["note"] == note

    def test_saved_mapping_is_used(self, jira, productive):
        result = _pipeline(jira, productive, {"project_mapping": {"PROJ": "9"}}).log_time("PROJ-42", 15)
        assert productive.created[0]["project_id"] == "9"
        assert result.project_name == "Phoenix"  # saved mappings carry no Productive name

    def test_permission_probe_enabled_by_setting(self, jira, productive):
        pipeline = _pipeline(jira, productive, {"verify_service_permissions": True})
        assert isinstance(pipeline.discovery.probe, PermissionProbe)
        assert _pipeline(jira, productive).discovery.probe is None


class TestFallback:

    def test_unmatched_project_uses_fallback_path(self, capsys):
        jira = FakeJira(tickets=[make_ticket("PROJ-42", project_name="Phoenix")])
        productive = FakeProductive(
            projects=[{"id": "1", "name": "Internal Tools"}, {"id": "2", "name": "Acme Website"}],
            entries=[(ME, entry("e1", "s-pm", project_id="2", service_name="Project Management"))],
        )

        result = _pipeline(jira, productive).log_time("PROJ-42", "45m")

        assert result.primary_succeeded is True
        assert result.secondary_succeeded is True
        assert result.via_fallback is True
        assert result.project_name == "Internal Tools"
        assert result.service.service_id == "s-pm"
        assert productive.created[0]["project_id"] == "1"
        assert "FALLBACK" in capsys.readouterr().out

    def test_fallback_without_history_runs_discovery(self):
        jira = FakeJira(tickets=[make_ticket()])
        productive = FakeProductive(
            projects=[{"id": "1", "name": "Internal Tools"}],
            services=[{"id": "s-dev", "name": "Development"}],
        )
        result = _pipeline(jira, productive).log_time("PROJ-42", 30)
        assert result.via_fallback is True
        assert result.service.service_id == "s-dev"

    def test_no_projects_at_all_is_partial_success(self):
        jira = FakeJira(tickets=[make_ticket()])
        result = _pipeline(jira, FakeProductive()).log_time("PROJ-42", 30)
        assert result.primary_succeeded is True
        assert result.secondary_succeeded is False
        assert result.secondary_error == "Productive integration failed: No projects available in Productive"


class TestFailures:

    def test_missing_ticket_never_touches_productive(self, productive):
        jira = FakeJira(tickets=[make_ticket("PROJ-42")])
        with pytest.raises(LoggingError, match="PROJ-99"):
            _pipeline(jira, productive).log_time("PROJ-99", "1h")
        assert productive.calls == []
        assert jira.worklogs == []

    def test_jira_lookup_error_is_fatal(self, productive):
        jira = FakeJira(lookup_error=ApiError("Jira: Server error.", 500))
        with pytest.raises(LoggingError, match="Failed to log time: Jira: Server error"):
            _pipeline(jira, productive).log_time("PROJ-42", "1h")
        assert productive.calls == []

    def test_worklog_failure_is_fatal(self, productive):
        jira = FakeJira(tickets=[make_ticket()], worklog_error=ApiError("Jira: Access denied.", 403))
        with pytest.raises(LoggingError, match="Access denied"):
            _pipeline(jira, productive).log_time("PROJ-42", "1h")
        assert productive.calls == []

    def test_unauthenticated(self, jira, productive):
        with pytest.raises(LoggingError, match="not signed in"):
            _pipeline(jira, productive, authenticated=False).log_time("PROJ-42", "1h")
        assert jira.calls == []

    @pytest.mark.parametrize("duration", ["abc", "0h 0m", -10])
    def test_bad_duration(self, jira, productive, duration):
        with pytest.raises(LoggingError, match="Invalid time format"):
            _pipeline(jira, productive).log_time("PROJ-42", duration)
        assert jira.calls == []

    def test_productive_error_is_partial_success(self, jira, productive):
        productive.errors["create_time_entry"] = ApiError("Productive: Request rejected by validation.", 422)
        result = _pipeline(jira, productive).log_time("PROJ-42", 60)
        assert result.primary_succeeded is True
        assert result.secondary_succeeded is False
        assert result.secondary_error.startswith("Productive integration failed: ")
        assert "rejected by validation" in result.secondary_error
        assert jira.worklogs == [("PROJ-42", 60, "Time logged via automatic time tracker")]

    def test_no_service_is_partial_success(self, jira):
        productive = FakeProductive(projects=[{"id": "10", "name": "Phoenix"}])
        result = _pipeline(jira, productive).log_time("PROJ-42", 60)
        assert result.secondary_succeeded is False
        assert "No services available" in result.secondary_error

    def test_productive_not_configured(self, jira, capsys):
        result = _pipeline(jira, None).log_time("PROJ-42", 60)
        assert result.primary_succeeded is True
        assert result.secondary_succeeded is False
        assert "not configured" in result.secondary_error
        assert "[!] Productive integration failed" in capsys.readouterr().out


class TestBrokenProductiveResponses:
    """Whatever Productive does after the Jira worklog, log_time returns a result."""

    def _run(self, config, jira, **request_kwargs):
        pipeline = LoggingPipeline(jira, ProductiveClient(config), FakeAuth())
        with patch("clients.requests.request", **request_kwargs):
            result = pipeline.log_time("PROJ-42", 30)
        assert result.primary_succeeded is True
        assert result.secondary_succeeded is False
        assert jira.worklogs == [("PROJ-42", 30, "Time logged via automatic time tracker")]
        return result

    def test_non_json_body(self, config, jira):
        response = MagicMock(status_code=200, ok=True)
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)
        result = self._run(config, jira, return_value=response)
        assert result.secondary_error == "Productive integration failed: Productive: Unexpected response, expected JSON."

    def test_bad_base_url(self, config, jira):
        config["productive"]["base_url"] = "api.productive.io"
        result = self._run(config, jira, side_effect=requests.exceptions.MissingSchema("No scheme supplied"))
        assert "Check the URL in config.json" in result.secondary_error

    def test_missing_field_in_payload(self, config, jira):
        config["productive"]["person_id"] = "77"
        response = MagicMock(status_code=200, ok=True)
        response.json.return_value = {"meta": {}}
        result = self._run(config, jira, return_value=response)
        assert "Unexpected response format (KeyError" in result.secondary_error

    def test_unexpected_error_in_matching(self, jira, productive, capsys):
        matcher = MagicMock()
        matcher.resolve.side_effect = RuntimeError("boom")
        pipeline = LoggingPipeline(jira, productive, FakeAuth(), matcher=matcher)

        result = pipeline.log_time("PROJ-42", 30)

        assert result.primary_succeeded is True
        assert result.secondary_error == "Productive integration failed: unexpected RuntimeError: boom"
        assert productive.created == []
        assert "[!] Productive integration failed" in capsys.readouterr().out


class TestInFlightGuard:

    def test_second_call_while_running_is_rejected(self, productive):
        rejected = []

        class ReentrantJira(FakeJira):
            def submit_worklog(self, ticket_id, minutes, comment=""):
                with pytest.raises(PipelineBusyError):
                    pipeline.log_time("PROJ-42", 30)
                rejected.append(ticket_id)
                return super().submit_worklog(ticket_id, minutes, comment)

        pipeline = _pipeline(ReentrantJira(tickets=[make_ticket()]), productive)
        pipeline.log_time("PROJ-42", 30)
        assert rejected == ["PROJ-42"]
        assert len(productive.created) == 1

    def test_guard_released_after_failure(self, jira, productive):
        pipeline = _pipeline(jira, productive)
        with pytest.raises(LoggingError):
            pipeline.log_time("PROJ-99", 30)
        assert pipeline.log_time("PROJ-42", 30).secondary_succeeded is True
