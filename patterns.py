"""Centralized regex patterns for branch and duration parsing."""

import re


class Patterns:
    """Regex patterns used throughout the tracker."""

    # Jira ticket key inside a branch name: PROJ-123, CLUB59-234
    TICKET_KEY = r"[A-Z][A-Z0-9]*-\d+"

    # Branch -> ticket patterns, most specific first. First match wins.
    BRANCH_TICKET = [
        (
            "conventional-prefix",
            re.compile(
                rf"^(?:feature|feat|fix|bugfix|hotfix|release|chore|task|story|bug|branch|b)/({TICKET_KEY})",
                re.IGNORECASE,
            ),
        ),
        ("any-prefix", re.compile(rf"/({TICKET_KEY})", re.IGNORECASE)),
        ("standalone", re.compile(rf"^({TICKET_KEY})$", re.IGNORECASE)),
        # Jira's "create branch" default: PROJ-123-add-login
        ("standalone-prefix", re.compile(rf"^({TICKET_KEY})(?:[-_/].*)?$", re.IGNORECASE)),
    ]

    # Trailing numeric part of a ticket id: PROJ-123 -> PROJ
    TICKET_SUFFIX = re.compile(r"^(.+)-(\d+)$")

    # .git/HEAD pointing at a branch
    HEAD_REF = re.compile(r"^ref:\s*refs/heads/(.+)$")

    # Durations: "90", "90m", "1.5h", "1.5", "1h 30m", "1h30m"
    DURATION_MINUTES = re.compile(r"^(\d+)\s*m?$")
    DURATION_DECIMAL_HOURS = re.compile(r"^(\d+(?:\.\d+)?)\s*h$|^(\d+\.\d+)$")
    DURATION_COMBINED = re.compile(r"^(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?$")

    # Word separators in project names
    NAME_SEPARATORS = re.compile(r"[\s\-_]+")
