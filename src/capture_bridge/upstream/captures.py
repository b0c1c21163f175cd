"""
Batched capture lookups against the media-capture store.

The batch endpoint accepts at most ``capture_batch_size`` ids, so ids are sent
in sequential chunks until the list is exhausted or enough captures have been
collected. A chunk rejected with 404/400 is retried id by id against the
per-field search endpoint; other chunks are unaffected.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Sequence

from capture_bridge.captures.models import CaptureRecord
from capture_bridge.config import Settings
from capture_bridge.shared.batching import collect, iter_batches
from capture_bridge.shared.exceptions import UpstreamError
from capture_bridge.shared.fields import (
    FieldPath,
    all_present,
    as_str,
    collect_emails,
    first_present,
    participant_emails,
    to_epoch_ms,
)
from capture_bridge.shared.logging import get_logger
from capture_bridge.upstream.client import UpstreamClient
from capture_bridge.upstream.fallback import FallbackChain
from capture_bridge.upstream.search import extract_list

logger = get_logger(__name__)

IdField = Literal["taskIds", "interactionIds"]

AGENT_ROLES = frozenset({"agent"})

NESTED_KEYS = ("recording", "recordings", "captures")

# Ordered by preference: the first path that yields a value is the playback URL.
MEDIA_URL_FIELDS: tuple[FieldPath, ...] = (
    ("url",),
    ("playbackUrl",),
    ("downloadUrl",),
    ("mediaFiles", 0, "url"),
    ("files", 0, "url"),
    ("links", "playback"),
    ("links", "download"),
    ("attributes", "filePath"),
)

CAPTURE_FIELDS: dict[str, tuple[FieldPath, ...]] = {
    "capture_id": (("captureId",), ("recordingId",), ("id",)),
    "interaction_id": (("interactionId",), ("attributes", "interactionId")),
    "task_id": (("taskId",), ("attributes", "taskId")),
    "created_at": (
        ("createdAt",),
        ("createdTime",),
        ("startTime",),
        ("attributes", "startTime"),
    ),
    "end_time": (("endTime",), ("stopTime",), ("attributes", "stopTime")),
    "duration": (("duration",), ("durationSec",), ("attributes", "duration")),
}

AGENT_EMAIL_FIELDS: tuple[FieldPath, ...] = (
    ("agentEmail",),
    ("agent", "email"),
    ("attributes", "agentEmail"),
)

PARENT_KEYS = ("taskId", "interactionId")


def _flatten(rows: list[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Expand ``{taskId, recording: [...]}`` envelopes into one row per child."""
    flat: list[Mapping[str, Any]] = []
    for row in rows:
        children = next(
            (row[key] for key in NESTED_KEYS if isinstance(row.get(key), list)),
            None,
        )
        if children is None:
            flat.append(row)
            continue
        inherited = {key: row[key] for key in PARENT_KEYS if row.get(key) is not None}
        for child in children:
            if isinstance(child, Mapping):
                flat.append({**inherited, **child})
    return flat


def _to_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_capture(raw: Mapping[str, Any]) -> CaptureRecord | None:
    values = {name: first_present(raw, paths) for name, paths in CAPTURE_FIELDS.items()}
    capture_id = as_str(values["capture_id"])
    if capture_id is None:
        return None

    urls = tuple(u for u in all_present(raw, MEDIA_URL_FIELDS) if isinstance(u, str))
    emails = collect_emails(raw, AGENT_EMAIL_FIELDS)
    emails |= participant_emails(first_present(raw, (("participants",), ("attributes", "participants"))), AGENT_ROLES)

    return CaptureRecord(
        capture_id=capture_id,
        interaction_id=as_str(values["interaction_id"]),
        task_id=as_str(values["task_id"]),
        created_at=to_epoch_ms(values["created_at"]),
        end_time=to_epoch_ms(values["end_time"]),
        media_urls=urls,
        duration=_to_float(values["duration"]),
        agent_emails=tuple(sorted(emails)),
        raw=dict(raw),
    )


def parse_captures(payload: Any) -> list[CaptureRecord]:
    records = (parse_capture(row) for row in _flatten(extract_list(payload)))
    return [r for r in records if r is not None]


class CaptureLookup:
    def __init__(self, settings: Settings, client: UpstreamClient) -> None:
        self._settings = settings
        self._client = client

    async def lookup(
        self,
        ids: Sequence[str],
        *,
        token: str,
        limit: int,
        id_field: IdField | None = None,
        org_id: str | None = None,
    ) -> list[CaptureRecord]:
        """Captures for ``ids``, fetched chunk by chunk until ``limit`` is reached.

        Raises:
            UpstreamError: Non-fallback failure of a chunk, or failure of its fallback.
        """
        field = id_field or self._settings.capture_id_field
        unique_ids = list(dict.fromkeys(str(i) for i in ids if i))
        if not unique_ids:
            return []

        async def fetch(chunk: list[str]) -> list[CaptureRecord]:
            return await self._fetch_chunk(chunk, token=token, id_field=field, org_id=org_id)

        batches = iter_batches(unique_ids, self._settings.capture_batch_size, fetch)
        captures = await collect(batches, stop_when=lambda acc: len(acc) >= limit)

        logger.info(
            "Capture lookup complete",
            extra={"ids": len(unique_ids), "captures": len(captures), "id_field": field},
        )
        return captures

    def _query(self, org_id: str | None, **fields: Any) -> dict[str, Any]:
        query: dict[str, Any] = {"urlExpiration": self._settings.capture_url_expiration, **fields}
        if org_id:
            query["orgId"] = org_id
        return {"query": query}

    async def _fetch_chunk(
        self,
        chunk: list[str],
        *,
        token: str,
        id_field: IdField,
        org_id: str | None,
    ) -> list[CaptureRecord]:
        async def primary() -> list[CaptureRecord]:
            body = await self._client.request_json(
                "POST",
                self._settings.captures_query_path,
                token=token,
                json=self._query(org_id, **{id_field: chunk}),
            )
            return parse_captures(body)

        async def per_field(_: UpstreamError) -> list[CaptureRecord]:
            field = "taskId" if id_field == "taskIds" else "interactionId"
            found: dict[str, CaptureRecord] = {}
            for value in chunk:
                body = await self._client.request_json(
                    "POST",
                    self._settings.captures_search_path,
                    token=token,
                    json=self._query(org_id, field=field, value=value),
                )
                for capture in parse_captures(body):
                    found.setdefault(capture.capture_id, capture)
            return list(found.values())

        chain: FallbackChain[list[CaptureRecord]] = FallbackChain("capture-lookup", primary)
        chain.on_status(404, per_field).on_status(400, per_field)
        return await chain.run()
