"""Tests for regex patterns.

These cover the raw patterns; ticket extraction and duration parsing built
on top of them are tested in test_ticket_resolver.py and test_utils.py.
"""

import pytest

from patterns import Patterns


def _first_tag(branch: str) -> str | None:
    for tag, pattern in Patterns.BRANCH_TICKET:
        if pattern.search(branch):
            return tag
    return None


# ---------------------------------------------------------------------------
# BRANCH_TICKET: ordered, tagged branch patterns
# ---------------------------------------------------------------------------

class TestBranchTicketPatterns:
    """The most specific pattern must win for every branch shape."""

    @pytest.mark.parametrize(
        "branch, expected_tag",
        [
            ("feature/PROJ-123", "conventional-prefix"),
            ("feature/PROJ-123-add-login", "conventional-prefix"),
            ("feat/ABC-1", "conventional-prefix"),
            ("fix/proj-7-typo", "conventional-prefix"),
            ("bugfix/CLUB59-234", "conventional-prefix"),
            ("hotfix/PROJ-9", "conventional-prefix"),
            ("release/PROJ-10", "conventional-prefix"),
            ("branch/PROJ-11", "conventional-prefix"),
            ("b/PROJ-12", "conventional-prefix"),
            ("users/alice/PROJ-5-spike", "any-prefix"),
            ("wip/PROJ-5", "any-prefix"),
            ("users/alice/proj-5-spike", "any-prefix"),
            ("chore/PROJ-8", "conventional-prefix"),
            ("story/PROJ-8", "conventional-prefix"),
            ("PROJ-123", "standalone"),
            ("proj-123", "standalone"),
            ("PROJ-123-add-login", "standalone-prefix"),
            ("proj-123_spike", "standalone-prefix"),
        ],
    )
    def test_tag(self, branch, expected_tag):
        assert _first_tag(branch) == expected_tag

    @pytest.mark.parametrize(
        "branch",
        [
            "main",
            "develop",
            "feature/login-page",
            "PROJ-123add",
            "release/2024-10",
            "detached",
        ],
    )
    def test_no_match(self, branch):
        assert _first_tag(branch) is None


# ---------------------------------------------------------------------------
# TICKET_SUFFIX / HEAD_REF
# ---------------------------------------------------------------------------

class TestTicketSuffix:

    @pytest.mark.parametrize(
        "ticket, key",
        [
            ("PROJ-123", "PROJ"),
            ("CLUB59-234", "CLUB59"),
            ("MY-TEAM-42", "MY-TEAM"),
        ],
    )
    def test_splits_on_last_numeric_suffix(self, ticket, key):
        m = Patterns.TICKET_SUFFIX.match(ticket)
        assert m is not None
        assert m.group(1) == key


class TestHeadRef:

    def test_branch_ref(self):
        m = Patterns.HEAD_REF.match("ref: refs/heads/feature/PROJ-1")
        assert m.group(1) == "feature/PROJ-1"

    def test_detached_hash_does_not_match(self):
        assert Patterns.HEAD_REF.match("3f2c1a9b8e7d6c5b4a39281706f5e4d3c2b1a090") is None


# ---------------------------------------------------------------------------
# Duration patterns
# ---------------------------------------------------------------------------

class TestDurationPatterns:

    @pytest.mark.parametrize("text", ["90", "90m", "90 m"])
    def test_minutes(self, text):
        assert Patterns.DURATION_MINUTES.match(text).group(1) == "90"

    @pytest.mark.parametrize("text", ["1.5h", "2h", "1.5"])
    def test_decimal_hours(self, text):
        assert Patterns.DURATION_DECIMAL_HOURS.match(text) is not None

    @pytest.mark.parametrize(
        "text, hours, minutes",
        [
            ("1h 30m", "1", "30"),
            ("1h30m", "1", "30"),
            ("2h", "2", None),
            ("45m", None, "45"),
        ],
    )
    def test_combined(self, text, hours, minutes):
        m = Patterns.DURATION_COMBINED.match(text)
        assert m is not None
        assert m.group(1) == hours
        assert m.group(2) == minutes

    @pytest.mark.parametrize("text", ["abc", "1h 30", "h", "1,5h"])
    def test_combined_rejects(self, text):
        m = Patterns.DURATION_COMBINED.match(text)
        assert m is None or not (m.group(1) or m.group(2))


class TestNameSeparators:

    def test_splits_on_space_hyphen_underscore(self):
        assert Patterns.NAME_SEPARATORS.split("acme web-shop_v2") == ["acme", "web", "shop", "v2"]
