"""
Join interactions with captures and build the list items returned to the widget.

Interaction timestamps are the source of truth for `createdAt` and
`durationSec`: on some tenants capture timestamps record when the capture
request was processed rather than when the call happened. Capture-side timing
is used only when no interaction timing is available; a joined interaction
with a start but no end time yields a null `durationSec`.
"""

from __future__ import annotations

from typing import Iterable, Literal

from capture_bridge.captures.models import CaptureRecord, InteractionRecord, NormalizedResultItem
from capture_bridge.upstream.search import matches_agent

DEFAULT_LIMIT = 200
MAX_LIMIT = 1000

AgentEmailPolicy = Literal["permissive", "strict"]


def clamp_limit(limit: int | None, default: int = DEFAULT_LIMIT, ceiling: int = MAX_LIMIT) -> int:
    if limit is None:
        return min(default, ceiling)
    return max(1, min(int(limit), ceiling))


def duration_seconds(start: int | None, end: int | None) -> int | None:
    if start is None or end is None:
        return None
    return max(0, round((end - start) / 1000))


def best_media_url(capture: CaptureRecord) -> str | None:
    return capture.media_urls[0] if capture.media_urls else None


def _index(interactions: Iterable[InteractionRecord]) -> dict[str, InteractionRecord]:
    lookup: dict[str, InteractionRecord] = {}
    for interaction in interactions:
        for key in interaction.join_keys:
            lookup.setdefault(str(key), interaction)
    return lookup


def _join(capture: CaptureRecord, lookup: dict[str, InteractionRecord]) -> InteractionRecord | None:
    for key in (capture.interaction_id, capture.task_id):
        if key is not None and str(key) in lookup:
            return lookup[str(key)]
    return None


def _duration(capture: CaptureRecord, interaction: InteractionRecord | None) -> int | None:
    # Same source as createdAt.
    if interaction is not None and interaction.start_time is not None:
        return duration_seconds(interaction.start_time, interaction.end_time)
    from_capture = duration_seconds(capture.created_at, capture.end_time)
    if from_capture is not None:
        return from_capture
    if capture.duration is not None:
        return max(0, round(capture.duration))
    return None


def normalize(
    interactions: Iterable[InteractionRecord],
    captures: Iterable[CaptureRecord],
    *,
    agent_email: str | None = None,
    limit: int | None = DEFAULT_LIMIT,
    policy: AgentEmailPolicy = "permissive",
) -> list[NormalizedResultItem]:
    lookup = _index(interactions)
    permissive = policy == "permissive"
    items: list[NormalizedResultItem] = []

    for capture in captures:
        url = best_media_url(capture)
        if url is None:
            continue

        interaction = _join(capture, lookup)
        emails = set(capture.agent_emails)
        if interaction is not None:
            emails.update(interaction.agent_emails)
        if not matches_agent(tuple(sorted(emails)), agent_email, permissive):
            continue

        created_at = capture.created_at
        if interaction is not None and interaction.start_time is not None:
            created_at = interaction.start_time

        items.append(
            NormalizedResultItem(
                capture_id=capture.capture_id,
                interaction_id=capture.interaction_id or (interaction.interaction_id if interaction else None),
                task_id=capture.task_id or (interaction.task_id if interaction else None),
                created_at=created_at,
                url=url,
                ani=interaction.ani if interaction else None,
                queue_name=interaction.queue_name if interaction else None,
                disposition=interaction.disposition if interaction else None,
                duration_sec=_duration(capture, interaction),
            )
        )

    # sorted() is stable, so ties keep capture order.
    items = sorted(
        items,
        key=lambda item: item.created_at if item.created_at is not None else float("-inf"),
        reverse=True,
    )
    return items[: clamp_limit(limit)]
