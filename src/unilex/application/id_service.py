"""Stable identifiers for sessions, items and attempts."""

from ulid import ULID


def generate_session_id() -> str:
    """Generate a session ID using ULID, so ids sort by creation time."""
    return f"ses_{ULID()}"


def generate_item_id() -> str:
    return f"itm_{ULID()}"


def generate_attempt_id() -> str:
    return f"att_{ULID()}"
