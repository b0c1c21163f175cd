"""
Interaction/task search against the historical index.

Two backends:

* ``rest``: filter/sort/fields JSON body. A 404 (search not enabled for the
  tenant) retries once against the legacy analytics endpoint; a 400 (tenant
  rejects the agent-email filter) retries without it and matches the agent
  client-side.
* ``graphql``: cursor-paginated task query, bounded by ``search_max_pages``,
  agent matched client-side per page.
"""

from __future__ import annotations

from typing import Any, Mapping

from capture_bridge.captures.models import InteractionRecord, ResultWindow
from capture_bridge.config import Settings
from capture_bridge.shared.batching import collect, iter_pages
from capture_bridge.shared.exceptions import MissingOrgIdError, UpstreamError
from capture_bridge.shared.fields import (
    FieldPath,
    as_str,
    collect_emails,
    dig,
    first_present,
    participant_emails,
    to_epoch_ms,
)
from capture_bridge.shared.logging import get_logger
from capture_bridge.upstream.client import UpstreamClient
from capture_bridge.upstream.fallback import FallbackChain

logger = get_logger(__name__)

AGENT_ROLES = frozenset({"agent", "user", "owner"})

LIST_KEYS: tuple[FieldPath, ...] = (
    ("items",),
    ("data",),
    ("interactions",),
    ("tasks",),
    ("captures",),
    ("recordings",),
    ("data", "items"),
    ("data", "task", "tasks"),
)

INTERACTION_FIELDS: dict[str, tuple[FieldPath, ...]] = {
    "interaction_id": (("interactionId",), ("interaction", "id"), ("sessionId",), ("id",)),
    "task_id": (("taskId",), ("task", "id"), ("id",)),
    "start_time": (("startTime",), ("createdTime",), ("start_time",), ("timestamps", "start")),
    "end_time": (("endTime",), ("endedTime",), ("stopTime",), ("end_time",), ("timestamps", "end")),
    "ani": (("ani",), ("origin",), ("callerId",), ("customer", "phoneNumber")),
    "dnis": (("dnis",), ("destination",), ("entryPoint", "dnis")),
    "queue_name": (("queueName",), ("queue", "name"), ("lastQueue", "name")),
    "disposition": (("disposition",), ("wrapUpCode",), ("lastWrapupCodeName",), ("wrapup", "name")),
}

AGENT_EMAIL_FIELDS: tuple[FieldPath, ...] = (
    ("agentEmail",),
    ("agent", "email"),
    ("owner", "email"),
    ("lastAgent", "email"),
)

SEARCH_FIELDS = [
    "interactionId",
    "taskId",
    "startTime",
    "endTime",
    "ani",
    "dnis",
    "queueName",
    "disposition",
    "agentEmail",
]

TASK_QUERY = """
query RecentTasks($from: Long!, $to: Long!, $after: String, $first: Int) {
  task(from: $from, to: $to, pagination: {cursor: $after, first: $first}) {
    tasks {
      id
      createdTime
      endedTime
      origin
      destination
      status
      lastQueue { name }
      lastWrapupCodeName
      owner { email }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


def extract_list(payload: Any) -> list[Mapping[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, Mapping)]
    for path in LIST_KEYS:
        value = dig(payload, path)
        if isinstance(value, list):
            return [row for row in value if isinstance(row, Mapping)]
    return []


def parse_interaction(raw: Mapping[str, Any]) -> InteractionRecord | None:
    values = {name: first_present(raw, paths) for name, paths in INTERACTION_FIELDS.items()}
    interaction_id = as_str(values["interaction_id"])
    task_id = as_str(values["task_id"])
    if interaction_id is None and task_id is None:
        return None

    emails = collect_emails(raw, AGENT_EMAIL_FIELDS)
    emails |= participant_emails(raw.get("participants"), AGENT_ROLES)

    return InteractionRecord(
        interaction_id=interaction_id,
        task_id=task_id,
        start_time=to_epoch_ms(values["start_time"]),
        end_time=to_epoch_ms(values["end_time"]),
        ani=as_str(values["ani"]),
        dnis=as_str(values["dnis"]),
        queue_name=as_str(values["queue_name"]),
        disposition=as_str(values["disposition"]),
        agent_emails=tuple(sorted(emails)),
    )


def matches_agent(emails: tuple[str, ...], agent_email: str | None, permissive: bool) -> bool:
    """Case-insensitive agent match; records with no email metadata follow the policy."""
    if not agent_email:
        return True
    if not emails:
        return permissive
    return agent_email.strip().lower() in emails


def sort_recent_first(records: list[InteractionRecord]) -> list[InteractionRecord]:
    return sorted(
        records,
        key=lambda r: r.start_time if r.start_time is not None else float("-inf"),
        reverse=True,
    )


class InteractionSearch:
    def __init__(self, settings: Settings, client: UpstreamClient) -> None:
        self._settings = settings
        self._client = client
        self._permissive = settings.agent_email_policy == "permissive"

    async def search(
        self,
        *,
        token: str,
        window: ResultWindow,
        agent_email: str | None = None,
        org_id: str | None = None,
    ) -> list[InteractionRecord]:
        """Most recent interactions in ``window``, optionally for one agent.

        Raises:
            UpstreamError: Non-fallback upstream failure, or failure of the fallback call.
            MissingOrgIdError: GraphQL backend with no org id.
        """
        if self._settings.search_backend == "graphql":
            records = await self._search_graphql(token, window, agent_email, org_id)
        else:
            records = await self._search_rest(token, window, agent_email, org_id)

        records = sort_recent_first(records)[: window.limit]
        logger.info(
            "Interaction search complete",
            extra={
                "backend": self._settings.search_backend,
                "count": len(records),
                "agent_filter": bool(agent_email),
            },
        )
        return records

    # REST ------------------------------------------------------------------

    def _rest_payload(
        self,
        window: ResultWindow,
        agent_email: str | None,
        org_id: str | None,
    ) -> dict[str, Any]:
        filters: dict[str, Any] = {"from": window.start_ms, "to": window.end_ms}
        if agent_email:
            filters["agentEmail"] = agent_email
        payload: dict[str, Any] = {
            "filter": filters,
            "sort": [{"field": "startTime", "order": "desc"}],
            "fields": SEARCH_FIELDS,
            "limit": window.limit,
        }
        if org_id:
            payload["orgId"] = org_id
        return payload

    async def _post_search(self, path: str, token: str, payload: dict[str, Any]) -> list[InteractionRecord]:
        body = await self._client.request_json("POST", path, token=token, json=payload)
        records = (parse_interaction(row) for row in extract_list(body))
        return [r for r in records if r is not None]

    async def _search_rest(
        self,
        token: str,
        window: ResultWindow,
        agent_email: str | None,
        org_id: str | None,
    ) -> list[InteractionRecord]:
        payload = self._rest_payload(window, agent_email, org_id)

        async def primary() -> list[InteractionRecord]:
            return await self._post_search(self._settings.search_path, token, payload)

        async def legacy(_: UpstreamError) -> list[InteractionRecord]:
            return await self._post_search(self._settings.legacy_search_path, token, payload)

        async def relaxed(_: UpstreamError) -> list[InteractionRecord]:
            broad = self._rest_payload(window, None, org_id)
            records = await self._post_search(self._settings.search_path, token, broad)
            return [r for r in records if matches_agent(r.agent_emails, agent_email, self._permissive)]

        chain: FallbackChain[list[InteractionRecord]] = FallbackChain("interaction-search", primary)
        chain.on_status(404, legacy)
        if agent_email:
            chain.on_status(400, relaxed)
        return await chain.run()

    # GraphQL ---------------------------------------------------------------

    async def _search_graphql(
        self,
        token: str,
        window: ResultWindow,
        agent_email: str | None,
        org_id: str | None,
    ) -> list[InteractionRecord]:
        if not org_id:
            raise MissingOrgIdError("interaction-search")

        async def fetch_page(cursor: str | None) -> tuple[list[InteractionRecord], str | None]:
            variables: dict[str, Any] = {
                "from": window.start_ms,
                "to": window.end_ms,
                "first": self._settings.search_page_size,
            }
            if cursor:
                variables["after"] = cursor
            body = await self._client.request_json(
                "POST",
                self._settings.graphql_search_path,
                token=token,
                json={"query": TASK_QUERY, "variables": variables},
                params={"orgId": org_id},
            )
            if isinstance(body, Mapping) and body.get("errors") and not body.get("data"):
                raise UpstreamError(
                    502,
                    self._client.url(self._settings.graphql_search_path),
                    body,
                    message="Search query rejected",
                )
            rows = extract_list(body)
            records = [r for r in (parse_interaction(row) for row in rows) if r is not None]
            records = [r for r in records if matches_agent(r.agent_emails, agent_email, self._permissive)]

            page_info = dig(body, ("data", "task", "pageInfo")) or {}
            next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
            return records, next_cursor

        async def primary() -> list[InteractionRecord]:
            pages = iter_pages(fetch_page, max_pages=self._settings.search_max_pages)
            return await collect(pages, stop_when=lambda acc: len(acc) >= window.limit)

        async def legacy(_: UpstreamError) -> list[InteractionRecord]:
            payload = self._rest_payload(window, agent_email, org_id)
            return await self._post_search(self._settings.legacy_search_path, token, payload)

        chain: FallbackChain[list[InteractionRecord]] = FallbackChain("task-search", primary)
        chain.on_status(404, legacy)
        return await chain.run()
