"""Tests for identifier normalisation (conductor/core/identifiers.py)."""
from __future__ import annotations

from datetime import date

import pytest

from conductor.core.identifiers import date_range_for_last_days, parse_video_id, parse_video_ids

VID = "dQw4w9WgXcQ"


class TestParseVideoId:

    @pytest.mark.parametrize("value", [
        VID,
        f"  {VID}  ",
        f"https://www.youtube.com/watch?v={VID}",
        f"https://www.youtube.com/watch?v={VID}&t=42s&list=PL123",
        f"youtube.com/watch?v={VID}",
        f"https://m.youtube.com/watch?v={VID}",
        f"https://youtu.be/{VID}",
        f"https://youtu.be/{VID}?si=abc",
        f"https://www.youtube.com/shorts/{VID}",
        f"https://www.youtube.com/embed/{VID}",
        f"https://www.youtube.com/live/{VID}?feature=share",
        f"http://youtube.com/v/{VID}",
    ])
    def test_accepted_forms(self, value: str) -> None:
        assert parse_video_id(value) == VID

    @pytest.mark.parametrize("value", [
        "",
        "   ",
        "short",
        "https://vimeo.com/123456789",
        f"https://evil.example/watch?v={VID}",
        "https://www.youtube.com/watch?v=tooShort",
        "https://www.youtube.com/channel/UC1234567890",
        "https://youtu.be/",
    ])
    def test_rejected(self, value: str) -> None:
        assert parse_video_id(value) is None


class TestParseVideoIds:

    def test_deduplicates_in_order(self) -> None:
        values = [f"https://youtu.be/{VID}", "9bZkp7q19f0", VID, "garbage"]
        assert parse_video_ids(values) == [VID, "9bZkp7q19f0"]

    def test_empty(self) -> None:
        assert parse_video_ids([]) == []


class TestDateRange:

    def test_ends_yesterday(self) -> None:
        assert date_range_for_last_days(7, today=date(2024, 3, 10)) == ("2024-03-03", "2024-03-09")

    def test_single_day(self) -> None:
        assert date_range_for_last_days(1, today=date(2024, 1, 1)) == ("2023-12-31", "2023-12-31")

    def test_non_positive_days_clamped(self) -> None:
        assert date_range_for_last_days(0, today=date(2024, 1, 10)) == ("2024-01-09", "2024-01-09")
