"""
Capture service: orchestrates search, capture lookup and normalization.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

from capture_bridge.captures.models import (
    InteractionRecord,
    InteractionsResponse,
    RecentCapturesResponse,
    RecordingMatch,
    ResultWindow,
)
from capture_bridge.captures.normalizer import clamp_limit, normalize
from capture_bridge.config import Settings
from capture_bridge.shared.exceptions import ValidationError
from capture_bridge.shared.logging import get_logger, log_with_context
from capture_bridge.upstream.captures import CaptureLookup, IdField
from capture_bridge.upstream.search import InteractionSearch

logger = get_logger(__name__)

MAX_LOOKBACK_HOURS = 366 * 24


def _parse_number(name: str, value: str | None) -> float | None:
    if value is None or not str(value).strip():
        return None
    try:
        number = float(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number", {"field": name}) from e
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a number", {"field": name})
    if number <= 0:
        raise ValidationError(f"{name} must be positive", {"field": name})
    return number


def require_agent_email(agent_email: str | None) -> str:
    if agent_email is None or not agent_email.strip():
        raise ValidationError("agentEmail is required")
    return agent_email.strip()


def require_recording_id(task_id: str | None, interaction_id: str | None) -> tuple[IdField, str]:
    task_id = (task_id or "").strip() or None
    interaction_id = (interaction_id or "").strip() or None
    if task_id:
        return "taskIds", task_id
    if interaction_id:
        return "interactionIds", interaction_id
    raise ValidationError("taskId or interactionId is required")


def _capture_key(record: InteractionRecord, id_field: IdField) -> str | None:
    if id_field == "taskIds":
        return record.task_id or record.interaction_id
    return record.interaction_id or record.task_id


class CaptureService:
    """Service for listing interactions and their recordings."""

    def __init__(
        self,
        settings: Settings,
        search: InteractionSearch,
        lookup: CaptureLookup,
    ) -> None:
        self._settings = settings
        self._search = search
        self._lookup = lookup

    def resolve_window(
        self,
        *,
        hours: str | None = None,
        days_back: str | None = None,
        limit: str | None = None,
        now: datetime | None = None,
    ) -> ResultWindow:
        """Build the query window from request parameters.

        ``hours`` wins over ``daysBack``; with neither the configured default
        lookback applies.

        Raises:
            ValidationError: If a parameter is not a positive finite number, or the
                lookback exceeds MAX_LOOKBACK_HOURS.
        """
        hours_value = _parse_number("hours", hours)
        days_value = _parse_number("daysBack", days_back)
        limit_value = _parse_number("limit", limit)

        if hours_value is not None:
            lookback = hours_value
        elif days_value is not None:
            lookback = days_value * 24
        elif self._settings.default_lookback_hours is not None:
            lookback = float(self._settings.default_lookback_hours)
        else:
            lookback = float(self._settings.default_days_back * 24)
        if lookback > MAX_LOOKBACK_HOURS:
            field = "hours" if hours_value is not None else "daysBack"
            raise ValidationError(
                f"{field} must not exceed {MAX_LOOKBACK_HOURS // 24} days",
                {"field": field},
            )

        bounded = clamp_limit(
            int(limit_value) if limit_value is not None else None,
            default=self._settings.default_limit,
            ceiling=self._settings.max_limit,
        )
        return ResultWindow.lookback(lookback, bounded, now=now)

    async def list_interactions(
        self,
        *,
        token: str,
        agent_email: str,
        window: ResultWindow,
        org_id: str | None = None,
    ) -> InteractionsResponse:
        records = await self._search.search(
            token=token,
            window=window,
            agent_email=agent_email,
            org_id=org_id,
        )
        return InteractionsResponse(items=records, window=window)

    async def recent_captures(
        self,
        *,
        token: str,
        agent_email: str,
        window: ResultWindow,
        org_id: str | None = None,
    ) -> RecentCapturesResponse:
        interactions = await self._search.search(
            token=token,
            window=window,
            agent_email=agent_email,
            org_id=org_id,
        )
        id_field = self._settings.capture_id_field
        ids = [key for key in (_capture_key(r, id_field) for r in interactions) if key]

        captures = []
        if ids:
            captures = await self._lookup.lookup(
                ids,
                token=token,
                limit=window.limit,
                id_field=id_field,
                org_id=org_id,
            )

        items = normalize(
            interactions,
            captures,
            agent_email=agent_email,
            limit=window.limit,
            policy=self._settings.agent_email_policy,
        )
        log_with_context(
            logger,
            logging.INFO,
            "Recent captures resolved",
            interactions=len(interactions),
            captures=len(captures),
            items=len(items),
            dropped=len(captures) - len(items),
        )
        return RecentCapturesResponse(items=items, window=window)

    async def find_recording(
        self,
        *,
        token: str,
        task_id: str | None = None,
        interaction_id: str | None = None,
        org_id: str | None = None,
    ) -> RecordingMatch | None:
        """Best (most recent) playable recording for one task or interaction.

        Raises:
            ValidationError: If neither id is given.
        """
        id_field, record_id = require_recording_id(task_id, interaction_id)
        captures = await self._lookup.lookup(
            [record_id],
            token=token,
            limit=self._settings.capture_batch_size,
            id_field=id_field,
            org_id=org_id,
        )
        items = normalize([], captures, limit=1)
        if not items:
            logger.info("No playable recording found", extra={"id_field": id_field, "id": record_id})
            return None

        best = items[0]
        return RecordingMatch(recording_id=best.capture_id, url=best.url, start_time=best.created_at)
