"""Utility functions for the Jira -> Productive time tracker."""

import json
import math
import os
import time
from datetime import datetime

from patterns import Patterns

# File paths
CONFIG_FILE = "config.json"

DURATION_HINT = 'Invalid time format. Please use format like "1h 30m", "1.5h", or "90m"'


def load_config(path: str = CONFIG_FILE) -> dict:
    """Load config.json with Jira and Productive credentials."""
    with open(path) as f:
        return json.load(f)


def save_config(config: dict, path: str = CONFIG_FILE) -> None:
    """Write config.json back (used when saving project mappings)."""
    with open(path, "w") as f:
        json.dump(config, f, indent=2, ensure_ascii=False)


def validate_config(config: dict) -> list[str]:
    """Validate config structure and return list of error messages.

    Returns:
        Empty list if valid, otherwise list of error messages.
    """
    errors = []

    if "jira" not in config:
        errors.append("Missing section 'jira' in config.json")
    else:
        for key in ["base_url", "user_email", "api_token"]:
            if not config["jira"].get(key):
                errors.append(f"Missing jira.{key}")

    # Productive is optional; without it only Jira is logged
    if "productive" in config:
        for key in ["api_token", "organization_id"]:
            if not config["productive"].get(key):
                errors.append(f"Missing productive.{key}")
        for key in ["project_mapping", "project_aliases"]:
            value = config["productive"].get(key, {})
            if not isinstance(value, dict):
                errors.append(f"productive.{key} must be an object")

    if "tracker" in config:
        workspaces = config["tracker"].get("workspaces", [])
        if not isinstance(workspaces, list):
            errors.append("tracker.workspaces must be a list of folders")

    return errors


def load_config_safe(path: str = CONFIG_FILE) -> dict | None:
    """Load config with user-friendly error messages.

    Returns:
        Config dict if valid, None if errors occurred.
    """
    if not os.path.exists(path):
        print(f"[!] ERROR: {path} not found!")
        print()
        print("    Create config.json based on config.example.json:")
        print("    $ cp config.example.json config.json")
        print("    $ nano config.json  # Fill in your credentials")
        print()
        return None

    try:
        config = load_config(path)
    except json.JSONDecodeError as e:
        print(f"[!] ERROR: {path} is not valid JSON!")
        print(f"    Line {e.lineno}, column {e.colno}: {e.msg}")
        print()
        print("    Check for missing commas, quotes, or brackets.")
        return None

    errors = validate_config(config)
    if errors:
        print(f"[!] ERROR: {path} is incomplete:")
        for err in errors:
            print(f"    - {err}")
        print()
        print("    See config.example.json for the required structure.")
        return None

    return config


def now_ms() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def local_date() -> str:
    """Today's local calendar day as YYYY-MM-DD (not UTC)."""
    return datetime.now().strftime("%Y-%m-%d")


def format_elapsed(elapsed_ms: int) -> str:
    """Format milliseconds as HH:MM:SS of whole seconds."""
    total_seconds = max(elapsed_ms, 0) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def round_minutes(elapsed_ms: int) -> int:
    """Round milliseconds to the nearest whole minute (half up)."""
    return math.floor(elapsed_ms / 60000 + 0.5)


def parse_duration(value: int | float | str) -> int:
    """Convert a duration to whole minutes.

    Accepts integer minutes, "90m", decimal hours ("1.5h" or "1.5") and
    combined notation ("1h 30m", "1h30m").

    Raises:
        ValueError: if the value does not parse or is not positive.
    """
    if isinstance(value, bool):
        raise ValueError(DURATION_HINT)

    if isinstance(value, (int, float)):
        minutes = math.floor(value + 0.5)
    else:
        text = value.strip().lower()
        minutes = None

        m = Patterns.DURATION_MINUTES.match(text)
        if m:
            minutes = int(m.group(1))

        if minutes is None:
            m = Patterns.DURATION_DECIMAL_HOURS.match(text)
            if m:
                hours = float(m.group(1) or m.group(2))
                minutes = math.floor(hours * 60 + 0.5)

        if minutes is None:
            m = Patterns.DURATION_COMBINED.match(text)
            if m and (m.group(1) or m.group(2)):
                minutes = int(m.group(1) or 0) * 60 + int(m.group(2) or 0)

        if minutes is None:
            raise ValueError(DURATION_HINT)

    if minutes <= 0:
        raise ValueError("Invalid time format. Please provide a positive number of minutes.")
    return minutes
