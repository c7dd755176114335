"""Tests for text rendering."""

import re
from datetime import datetime, timezone

from roomlog.chat import formatting
from roomlog.chat.manager import RoomStats
from roomlog.core.models import LogEntry


def make_entry(sender: str, content: str) -> LogEntry:
    return LogEntry(
        id="id-1",
        sender=sender,
        content=content,
        timestamp=datetime(2024, 3, 1, 12, 30, 45, tzinfo=timezone.utc),
    )


class TestFormatting:
    """Test formatting helpers."""

    def test_format_entry(self):
        """Test one line per entry with a clock time."""
        line = formatting.format_entry(make_entry("Hans", "hello"))

        assert re.fullmatch(r"\[\d{2}:\d{2}:45\] Hans: hello", line)

    def test_format_entries_empty(self):
        """Test the placeholder for no entries."""
        assert formatting.format_entries([]) == "(No messages found)"

    def test_format_read(self):
        """Test the read header."""
        text = formatting.format_read("Greta", [make_entry("Hans", "a"), make_entry("Otto", "b")])
        lines = text.splitlines()

        assert lines[0] == "You are: Greta"
        assert lines[2] == "Messages retrieved: 2"
        assert lines[3].endswith("Hans: a")
        assert lines[4].endswith("Otto: b")

    def test_format_labels(self):
        """Test agents are joined on one line."""
        text = formatting.format_labels("Greta", ["Greta", "Hans"])

        assert text.splitlines()[-1] == "Greta, Hans"

    def test_format_stats_without_senders(self):
        """Test stats for a room with only system entries."""
        stats = RoomStats(
            created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
            total_entries=0,
            distinct_senders=[],
        )

        text = formatting.format_stats("Greta", "/proj", stats)

        assert "Created: 2024-03-01T00:00:00+00:00" in text
        assert text.endswith("Agents: (none)")
