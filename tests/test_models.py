from datetime import datetime, timedelta, timezone

import pytest

from issue_scout.models import (
    DeviceFlowState,
    Issue,
    Label,
    LinkedPullRequest,
    RateLimitSnapshot,
    format_timestamp,
    parse_timestamp,
)

UTC = timezone.utc


class TestTimestamps:
    def test_github_iso(self):
        assert parse_timestamp("2025-11-29T10:30:00Z") == datetime(2025, 11, 29, 10, 30, tzinfo=UTC)

    def test_offset(self):
        parsed = parse_timestamp("2025-11-29T12:30:00+02:00")
        assert parsed == datetime(2025, 11, 29, 10, 30, tzinfo=UTC)

    @pytest.mark.parametrize("value", [1893456000, "1893456000"])
    def test_epoch(self, value):
        assert parse_timestamp(value) == datetime(2030, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None

    def test_format(self):
        assert format_timestamp(datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)) == "2025-01-02T03:04:05Z"
        assert format_timestamp(None) is None


class TestRateLimitSnapshot:
    def test_seconds_until_reset(self):
        now = datetime(2030, 1, 1, tzinfo=UTC)
        snapshot = RateLimitSnapshot(remaining=0, reset_at=now + timedelta(minutes=3))
        assert snapshot.seconds_until_reset(now) == 180
        assert snapshot.is_exhausted

    def test_reset_in_past_is_zero(self):
        now = datetime(2030, 1, 1, tzinfo=UTC)
        snapshot = RateLimitSnapshot(remaining=10, reset_at=now - timedelta(seconds=5))
        assert snapshot.seconds_until_reset(now) == 0
        assert not snapshot.is_exhausted

    def test_unknown_reset(self):
        assert RateLimitSnapshot(remaining=1).seconds_until_reset() is None


class TestIssue:
    def test_flags(self):
        issue = Issue(1, "t", "u", datetime(2025, 1, 1, tzinfo=UTC))
        assert issue.has_zero_comments
        assert not issue.has_linked_pull_request
        linked = Issue(
            2, "t", "u", datetime(2025, 1, 1, tzinfo=UTC), comment_count=4,
            linked_pull_requests=(LinkedPullRequest(9, "OPEN", "https://github.com/o/r/pull/9"),),
        )
        assert not linked.has_zero_comments
        assert linked.has_linked_pull_request

    def test_to_dict_wire_shape(self):
        issue = Issue(
            7, "Fix docs", "https://github.com/o/r/issues/7", datetime(2025, 1, 1, tzinfo=UTC),
            comment_count=2, labels=(Label("docs", "0075ca"),),
        )
        assert issue.to_dict() == {
            "number": 7,
            "title": "Fix docs",
            "url": "https://github.com/o/r/issues/7",
            "createdAt": "2025-01-01T00:00:00Z",
            "updatedAt": None,
            "comments": {"totalCount": 2},
            "labels": {"nodes": [{"name": "docs", "color": "0075ca"}]},
        }


def test_terminal_states():
    terminal = {s for s in DeviceFlowState if s.is_terminal}
    assert terminal == {
        DeviceFlowState.AUTHENTICATED,
        DeviceFlowState.FAILED,
        DeviceFlowState.EXPIRED,
        DeviceFlowState.CANCELLED,
    }
