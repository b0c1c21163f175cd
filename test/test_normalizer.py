"""Tests for field resolution and the interaction/capture join."""

import pytest

from capture_bridge.captures.models import CaptureRecord, InteractionRecord
from capture_bridge.captures.normalizer import clamp_limit, duration_seconds, normalize
from capture_bridge.shared.fields import (
    all_present,
    dig,
    first_present,
    participant_emails,
    to_epoch_ms,
)
from capture_bridge.upstream.captures import parse_captures

T0 = 1_700_000_000_000


def _interaction(**overrides) -> InteractionRecord:
    values = {
        "interaction_id": "X1",
        "task_id": "T1",
        "start_time": T0,
        "end_time": T0 + 300_000,
        "ani": "+15551234567",
        "queue_name": "Support",
        "disposition": "Resolved",
        "agent_emails": ("agent@example.com",),
    }
    values.update(overrides)
    return InteractionRecord(**values)


def _capture(**overrides) -> CaptureRecord:
    values = {
        "capture_id": "C1",
        "interaction_id": "X1",
        "media_urls": ("https://media.test/c1.mp3",),
    }
    values.update(overrides)
    return CaptureRecord(**values)


class TestFields:
    def test_dig_mixed_path(self) -> None:
        record = {"mediaFiles": [{"url": "u0"}, {"url": "u1"}]}
        assert dig(record, ("mediaFiles", 0, "url")) == "u0"
        assert dig(record, ("mediaFiles", 5, "url")) is None
        assert dig(record, ("mediaFiles", "url")) is None

    def test_first_present_skips_blank(self) -> None:
        record = {"url": "  ", "playbackUrl": "https://p"}
        assert first_present(record, (("url",), ("playbackUrl",))) == "https://p"

    def test_all_present_keeps_rule_order(self) -> None:
        record = {"downloadUrl": "d", "url": "u", "playbackUrl": "u"}
        assert all_present(record, (("url",), ("playbackUrl",), ("downloadUrl",))) == ["u", "d"]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (1_700_000_000, 1_700_000_000_000),
            (1_700_000_000_000, 1_700_000_000_000),
            ("1700000000000", 1_700_000_000_000),
            ("2023-11-14T22:13:20Z", 1_700_000_000_000),
            ("not a date", None),
            (None, None),
        ],
    )
    def test_to_epoch_ms(self, value, expected) -> None:
        assert to_epoch_ms(value) == expected

    def test_participant_emails_filters_roles(self) -> None:
        participants = [
            {"role": "agent", "email": "Agent@Example.com"},
            {"role": "customer", "email": "caller@example.com"},
            {"email": "untagged@example.com"},
        ]
        assert participant_emails(participants, frozenset({"agent"})) == {
            "agent@example.com",
            "untagged@example.com",
        }


class TestNormalize:
    def test_interaction_timing_wins(self) -> None:
        capture = _capture(created_at=T0 + 900_000, end_time=T0 + 960_000, duration=12)

        [item] = normalize([_interaction()], [capture], agent_email="agent@example.com")

        assert item.capture_id == "C1"
        assert item.task_id == "T1"
        assert item.created_at == T0
        assert item.duration_sec == 300
        assert item.url == "https://media.test/c1.mp3"
        assert item.queue_name == "Support"
        assert item.ani == "+15551234567"

    def test_wire_shape(self) -> None:
        [item] = normalize([_interaction()], [_capture()])

        body = item.model_dump(by_alias=True)
        assert body["captureId"] == "C1"
        assert body["durationSec"] == 300
        assert body["createdAt"] == T0

    def test_joins_on_task_id(self) -> None:
        capture = _capture(interaction_id=None, task_id="T1")

        [item] = normalize([_interaction()], [capture])

        assert item.interaction_id == "X1"
        assert item.disposition == "Resolved"

    def test_capture_timing_when_unjoined(self) -> None:
        capture = _capture(interaction_id="other", created_at=T0, end_time=T0 + 61_000)

        [item] = normalize([_interaction()], [capture])

        assert item.created_at == T0
        assert item.duration_sec == 61
        assert item.queue_name is None

    def test_open_ended_interaction_has_no_duration(self) -> None:
        capture = _capture(created_at=T0 + 900_000, end_time=T0 + 960_000, duration=12)

        [item] = normalize([_interaction(end_time=None)], [capture])

        assert item.created_at == T0
        assert item.duration_sec is None

    def test_capture_duration_last_resort(self) -> None:
        [item] = normalize([], [_capture(duration=42.4)])
        assert item.duration_sec == 42

    def test_capture_without_url_dropped(self) -> None:
        captures = [_capture(), _capture(capture_id="C2", media_urls=())]

        items = normalize([_interaction()], captures)

        assert [i.capture_id for i in items] == ["C1"]

    def test_sorted_newest_first_missing_last(self) -> None:
        captures = [
            _capture(capture_id="old", interaction_id=None, created_at=T0),
            _capture(capture_id="undated", interaction_id=None),
            _capture(capture_id="new", interaction_id=None, created_at=T0 + 1000),
        ]

        items = normalize([], captures)

        assert [i.capture_id for i in items] == ["new", "old", "undated"]

    def test_limit_applied_after_sort(self) -> None:
        captures = [
            _capture(capture_id=f"C{n}", interaction_id=None, created_at=T0 + n)
            for n in range(5)
        ]

        items = normalize([], captures, limit=2)

        assert [i.capture_id for i in items] == ["C4", "C3"]

    def test_agent_mismatch_dropped(self) -> None:
        capture = _capture(agent_emails=("someone@example.com",), interaction_id=None)

        assert normalize([], [capture], agent_email="agent@example.com") == []

    def test_agent_match_is_case_insensitive(self) -> None:
        items = normalize([_interaction()], [_capture()], agent_email="Agent@Example.COM")
        assert len(items) == 1

    def test_missing_email_metadata_policy(self) -> None:
        capture = _capture(interaction_id=None)

        assert len(normalize([], [capture], agent_email="a@example.com", policy="permissive")) == 1
        assert normalize([], [capture], agent_email="a@example.com", policy="strict") == []


class TestParseCaptures:
    def test_nested_recordings_inherit_parent_ids(self) -> None:
        payload = {
            "data": [
                {
                    "taskId": "T1",
                    "recording": [
                        {"id": "R1", "attributes": {"filePath": "https://media.test/r1.wav", "startTime": T0}},
                        {"id": "R2", "mediaFiles": [{"url": "https://media.test/r2.wav"}]},
                    ],
                },
                {"captureId": "C3", "taskId": "T2", "playbackUrl": "https://media.test/c3.mp3"},
            ]
        }

        captures = parse_captures(payload)

        assert [(c.capture_id, c.task_id) for c in captures] == [("R1", "T1"), ("R2", "T1"), ("C3", "T2")]
        assert captures[0].media_urls == ("https://media.test/r1.wav",)
        assert captures[0].created_at == T0

    def test_rows_without_id_skipped(self) -> None:
        assert parse_captures({"captures": [{"url": "https://x"}]}) == []


def test_clamp_limit() -> None:
    assert clamp_limit(None) == 200
    assert clamp_limit(5000) == 1000
    assert clamp_limit(0) == 1
    assert clamp_limit(None, default=50, ceiling=20) == 20


def test_duration_seconds_never_negative() -> None:
    assert duration_seconds(T0 + 1000, T0) == 0
    assert duration_seconds(None, T0) is None
