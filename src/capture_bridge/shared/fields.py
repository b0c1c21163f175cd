"""
Field-candidate resolution for loosely shaped upstream payloads.

Each logical field is described by an ordered tuple of paths. A path is a
tuple of keys (str) and list indexes (int). Rules are applied left to right and
the first non-empty value wins, so supporting a new tenant shape means adding a
path to a table rather than another branch.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

FieldPath = tuple[str | int, ...]


def dig(record: Any, path: FieldPath) -> Any:
    """Follow ``path`` into nested dicts/lists, returning None on any miss."""
    current = record
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, Sequence) or isinstance(current, (str, bytes)):
                return None
            if step >= len(current) or step < -len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def first_present(record: Any, paths: Iterable[FieldPath]) -> Any:
    for path in paths:
        value = dig(record, path)
        if _present(value):
            return value
    return None


def all_present(record: Any, paths: Iterable[FieldPath]) -> list[Any]:
    """Every non-empty value in rule order, duplicates removed."""
    seen: list[Any] = []
    for path in paths:
        value = dig(record, path)
        if _present(value) and value not in seen:
            seen.append(value)
    return seen


def as_str(value: Any) -> str | None:
    if not _present(value):
        return None
    return str(value).strip()


def to_epoch_ms(value: Any) -> int | None:
    """Coerce epoch seconds/milliseconds, numeric strings and ISO-8601 to epoch ms."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            return int(parsed.timestamp() * 1000)
    else:
        return None
    # Values below 1e11 cannot be millisecond timestamps after 1973.
    if abs(number) < 1e11:
        number *= 1000
    return int(number)


def collect_emails(record: Any, paths: Iterable[FieldPath]) -> set[str]:
    return {
        value.strip().lower()
        for value in all_present(record, paths)
        if isinstance(value, str) and "@" in value
    }


def participant_emails(participants: Any, agent_roles: frozenset[str]) -> set[str]:
    """Emails of participants tagged with an agent role (or untagged)."""
    emails: set[str] = set()
    if not isinstance(participants, list):
        return emails
    for participant in participants:
        if not isinstance(participant, Mapping):
            continue
        agent_email = participant.get("agentEmail")
        if isinstance(agent_email, str) and agent_email.strip():
            emails.add(agent_email.strip().lower())
        role = first_present(participant, (("role",), ("type",), ("participantType",)))
        if role is not None and str(role).lower() not in agent_roles:
            continue
        email = participant.get("email")
        if isinstance(email, str) and email.strip():
            emails.add(email.strip().lower())
    return emails
