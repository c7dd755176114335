"""Tests for logging helpers."""

import pytest
from structlog.testing import capture_logs

from roomlog.utils.logging import configure_logging, get_logger, log_duration

logger = get_logger(__name__)


class TestLogDuration:
    """Test log_duration."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Test a finished block logs its duration at info."""
        with capture_logs() as logs:
            async with log_duration(logger, "Did work", resource_id="/proj"):
                pass

        assert len(logs) == 1
        assert logs[0]["event"] == "Did work"
        assert logs[0]["log_level"] == "info"
        assert logs[0]["resource_id"] == "/proj"
        assert logs[0]["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_failure(self):
        """Test a failing block logs an error and re-raises."""
        with capture_logs() as logs:
            with pytest.raises(RuntimeError):
                async with log_duration(logger, "Did work"):
                    raise RuntimeError("boom")

        assert len(logs) == 1
        assert logs[0]["event"] == "Did work (failed)"
        assert logs[0]["log_level"] == "error"
        assert logs[0]["error"] == "boom"


class TestConfigureLogging:
    """Test configure_logging."""

    def test_unknown_level(self):
        """Test an unknown level name is rejected before anything is configured."""
        with pytest.raises(ValueError, match="Unknown log level: LOUD"):
            configure_logging(log_level="LOUD")
