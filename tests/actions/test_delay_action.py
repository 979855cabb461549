from datetime import datetime, timedelta, UTC

import pytest

from fieldflow.actions.delay import DelayAction, parse_duration
from fieldflow.errors import StepValidationError


@pytest.mark.parametrize(
    "duration, ms",
    [("30s", 30_000), ("5m", 300_000), ("2h", 7_200_000), ("3d", 259_200_000), ("1w", 604_800_000)],
)
def test_parse_duration(duration, ms):
    assert parse_duration(duration) == ms


@pytest.mark.parametrize("bad", ["5x", "m5", "1.5h", "", None, 30, "2h\n", " 2h", "٢h", "-1m"])
def test_parse_duration_rejects(bad):
    with pytest.raises(ValueError, match="Invalid duration format"):
        parse_duration(bad)


@pytest.mark.asyncio
async def test_delay_returns_due_time(instance):
    before = datetime.now(UTC)
    result = await DelayAction()(instance, {"action": "delay", "config": {"duration": "1m"}}, {})

    assert result["delay_ms"] == 60_000
    assert result["duration"] == "1m"
    due = datetime.fromisoformat(result["delay_until"])
    assert due.tzinfo is not None
    assert before + timedelta(seconds=59) <= due <= datetime.now(UTC) + timedelta(seconds=61)


@pytest.mark.asyncio
async def test_delay_requires_duration(instance):
    with pytest.raises(StepValidationError, match="Delay action requires duration in config"):
        await DelayAction()(instance, {"action": "delay", "config": {}}, {})


@pytest.mark.asyncio
async def test_delay_invalid_format_message(instance):
    with pytest.raises(StepValidationError, match="Invalid duration format: 10y"):
        await DelayAction()(instance, {"action": "delay", "config": {"duration": "10y"}}, {})
