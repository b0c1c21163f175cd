"""Tests for the interaction search and its fallbacks."""

import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

from capture_bridge.captures.models import ResultWindow
from capture_bridge.shared.exceptions import MissingOrgIdError, UpstreamError
from capture_bridge.upstream.client import UpstreamClient
from capture_bridge.upstream.search import InteractionSearch, extract_list, parse_interaction

from conftest import API_BASE, ORG_ID, make_settings

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
SEARCH_URL = f"{API_BASE}/v1/interactions/search"
LEGACY_URL = f"{API_BASE}/v1/analytics/interactions/search"
GRAPHQL_URL = f"{API_BASE}/search"


def _window(limit: int = 50) -> ResultWindow:
    return ResultWindow.lookback(24, limit, now=NOW)


def _row(task_id: str, start: int, email: str | None = "agent@example.com") -> dict:
    row = {"taskId": task_id, "interactionId": f"X-{task_id}", "startTime": start, "endTime": start + 60_000}
    if email:
        row["agentEmail"] = email
    return row


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


async def _search(settings, **kwargs):
    client = UpstreamClient(settings)
    try:
        return await InteractionSearch(settings, client).search(token="tok", **kwargs)
    finally:
        await client.close()


@pytest.mark.asyncio
class TestRest:
    @respx.mock
    async def test_request_shape(self) -> None:
        route = respx.post(SEARCH_URL).mock(
            return_value=httpx.Response(200, json={"items": [_row("T1", 1_000), _row("T2", 2_000)]})
        )
        window = _window()

        records = await _search(make_settings(), window=window, agent_email="agent@example.com", org_id=ORG_ID)

        assert [r.task_id for r in records] == ["T2", "T1"]
        request = route.calls.last.request
        assert request.headers["authorization"] == "Bearer tok"
        body = _body(request)
        assert body["filter"] == {
            "from": window.start_ms,
            "to": window.end_ms,
            "agentEmail": "agent@example.com",
        }
        assert body["sort"] == [{"field": "startTime", "order": "desc"}]
        assert body["limit"] == 50
        assert body["orgId"] == ORG_ID
        assert "taskId" in body["fields"]

    @respx.mock
    async def test_404_retries_legacy_once(self) -> None:
        primary = respx.post(SEARCH_URL).mock(return_value=httpx.Response(404, json={"error": "not found"}))
        legacy = respx.post(LEGACY_URL).mock(
            return_value=httpx.Response(200, json={"data": [_row("T1", 1_000)]})
        )

        records = await _search(make_settings(), window=_window(), agent_email="agent@example.com")

        assert [r.task_id for r in records] == ["T1"]
        assert primary.call_count == 1
        assert legacy.call_count == 1
        assert _body(legacy.calls.last.request) == _body(primary.calls.last.request)

    @respx.mock
    async def test_legacy_failure_propagates(self) -> None:
        respx.post(SEARCH_URL).mock(return_value=httpx.Response(404))
        respx.post(LEGACY_URL).mock(return_value=httpx.Response(404, json={"error": "gone"}))

        with pytest.raises(UpstreamError) as exc_info:
            await _search(make_settings(), window=_window())

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == LEGACY_URL

    @respx.mock
    async def test_400_relaxes_agent_filter(self) -> None:
        route = respx.post(SEARCH_URL).mock(
            side_effect=[
                httpx.Response(400, json={"error": "unsupported filter agentEmail"}),
                httpx.Response(
                    200,
                    json={
                        "items": [
                            _row("T1", 1_000),
                            _row("T2", 2_000, email="other@example.com"),
                            _row("T3", 3_000, email=None),
                        ]
                    },
                ),
            ]
        )

        records = await _search(make_settings(), window=_window(), agent_email="AGENT@example.com")

        # T3 has no email metadata and is kept under the permissive policy.
        assert [r.task_id for r in records] == ["T3", "T1"]
        assert "agentEmail" not in _body(route.calls[1].request)["filter"]

    @respx.mock
    async def test_400_without_agent_filter_propagates(self) -> None:
        respx.post(SEARCH_URL).mock(return_value=httpx.Response(400, json={"error": "bad"}))

        with pytest.raises(UpstreamError) as exc_info:
            await _search(make_settings(), window=_window())

        assert exc_info.value.status_code == 400

    @respx.mock(assert_all_called=False)
    async def test_other_status_propagates(self, respx_mock: respx.MockRouter) -> None:
        respx_mock.post(SEARCH_URL).mock(return_value=httpx.Response(503, text="unavailable"))
        legacy = respx_mock.post(LEGACY_URL)

        with pytest.raises(UpstreamError) as exc_info:
            await _search(make_settings(), window=_window())

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "unavailable"
        assert legacy.call_count == 0

    @respx.mock
    async def test_limit_applied(self) -> None:
        rows = [_row(f"T{n}", n * 1_000) for n in range(10)]
        respx.post(SEARCH_URL).mock(return_value=httpx.Response(200, json={"items": rows}))

        records = await _search(make_settings(), window=_window(limit=3))

        assert [r.task_id for r in records] == ["T9", "T8", "T7"]


@pytest.mark.asyncio
class TestGraphql:
    @staticmethod
    def _page(tasks: list[dict], cursor: str | None) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": {
                    "task": {
                        "tasks": tasks,
                        "pageInfo": {"hasNextPage": cursor is not None, "endCursor": cursor},
                    }
                }
            },
        )

    @staticmethod
    def _task(task_id: str, created: int, email: str = "agent@example.com") -> dict:
        return {
            "id": task_id,
            "createdTime": created,
            "endedTime": created + 30_000,
            "lastQueue": {"name": "Sales"},
            "owner": {"email": email},
        }

    async def test_requires_org_id(self) -> None:
        with pytest.raises(MissingOrgIdError):
            await _search(make_settings(search_backend="graphql"), window=_window(), org_id=None)

    @respx.mock
    async def test_paginates_and_filters(self) -> None:
        route = respx.post(GRAPHQL_URL).mock(
            side_effect=[
                self._page([self._task("T1", 1_000), self._task("T2", 2_000, "other@example.com")], "c1"),
                self._page([self._task("T3", 3_000)], None),
            ]
        )

        records = await _search(
            make_settings(search_backend="graphql"),
            window=_window(),
            agent_email="agent@example.com",
            org_id=ORG_ID,
        )

        assert [r.task_id for r in records] == ["T3", "T1"]
        assert records[0].queue_name == "Sales"
        assert route.call_count == 2
        assert route.calls[0].request.url.params["orgId"] == ORG_ID
        assert "after" not in _body(route.calls[0].request)["variables"]
        assert _body(route.calls[1].request)["variables"]["after"] == "c1"

    @respx.mock
    async def test_page_cap(self) -> None:
        route = respx.post(GRAPHQL_URL).mock(
            side_effect=[self._page([self._task(f"T{n}", n)], f"c{n}") for n in range(5)]
        )

        records = await _search(
            make_settings(search_backend="graphql", search_max_pages=3),
            window=_window(),
            org_id=ORG_ID,
        )

        assert route.call_count == 3
        assert len(records) == 3

    @respx.mock
    async def test_errors_only_response(self) -> None:
        respx.post(GRAPHQL_URL).mock(
            return_value=httpx.Response(200, json={"errors": [{"message": "bad field"}]})
        )

        with pytest.raises(UpstreamError) as exc_info:
            await _search(make_settings(search_backend="graphql"), window=_window(), org_id=ORG_ID)

        assert exc_info.value.status_code == 502

    @respx.mock
    async def test_404_uses_legacy_rest(self) -> None:
        respx.post(GRAPHQL_URL).mock(return_value=httpx.Response(404))
        legacy = respx.post(LEGACY_URL).mock(
            return_value=httpx.Response(200, json={"items": [_row("T1", 1_000)]})
        )

        records = await _search(make_settings(search_backend="graphql"), window=_window(), org_id=ORG_ID)

        assert [r.task_id for r in records] == ["T1"]
        assert legacy.call_count == 1


def test_extract_list_shapes() -> None:
    assert extract_list([{"a": 1}, "x"]) == [{"a": 1}]
    assert extract_list({"data": {"items": [{"a": 1}]}}) == [{"a": 1}]
    assert extract_list({"unexpected": True}) == []


def test_parse_interaction_participants() -> None:
    record = parse_interaction(
        {
            "id": "T1",
            "startTime": "2024-03-01T11:00:00Z",
            "participants": [
                {"role": "agent", "email": "Agent@Example.com"},
                {"role": "customer", "email": "caller@example.com"},
            ],
        }
    )

    assert record is not None
    assert record.task_id == "T1"
    assert record.agent_emails == ("agent@example.com",)
    assert record.start_time == int(datetime(2024, 3, 1, 11, tzinfo=timezone.utc).timestamp() * 1000)


def test_parse_interaction_without_ids() -> None:
    assert parse_interaction({"startTime": 1}) is None
