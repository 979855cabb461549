"""Delay action: computes when the next step may run.

The handler itself never sleeps. The engine persists ``delay_until`` and
enqueues a job due at that time.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import model_validator

from fieldflow.actions.base import ActionHandler
from fieldflow.dsl.definition_model import ActionConfig
from fieldflow.utils.timefmt import to_iso, utcnow

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"([0-9]+)([smhdw])")

UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}


def parse_duration(duration: Any) -> int:
    """'30s', '5m', '2h', '3d', '1w' → milliseconds."""
    match = DURATION_PATTERN.fullmatch(duration) if isinstance(duration, str) else None
    if not match:
        raise ValueError(
            f"Invalid duration format: {duration}. Use format like 30s, 5m, 2h, 3d, 1w"
        )
    return int(match.group(1)) * UNIT_MS[match.group(2)]


class DelayConfig(ActionConfig):
    duration: Optional[Any] = None

    @model_validator(mode="after")
    def check_duration(self):
        if not self.duration:
            raise ValueError("Delay action requires duration in config")
        parse_duration(self.duration)
        return self


class DelayAction(ActionHandler):
    action_type = "delay"
    config_model = DelayConfig

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)
        delay_ms = parse_duration(cfg.duration)
        delay_until = utcnow() + timedelta(milliseconds=delay_ms)

        logger.info(
            "[DelayAction] instance=%s duration=%s delay_ms=%s until=%s",
            instance.id, cfg.duration, delay_ms, delay_until,
        )
        return {
            "delay_until": to_iso(delay_until),
            "delay_ms": delay_ms,
            "duration": cfg.duration,
        }
