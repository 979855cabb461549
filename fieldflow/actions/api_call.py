# fieldflow/actions/api_call.py

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

import aiohttp
from pydantic import Field, model_validator

from fieldflow.actions.base import ActionHandler
from fieldflow.actions.templating import interpolate, render_template
from fieldflow.dsl.definition_model import ActionConfig
from fieldflow.errors import ExternalCallError, ExternalCallTimeoutError

logger = logging.getLogger(__name__)

VALID_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


class ApiCallConfig(ActionConfig):
    url: Optional[str] = None
    method: str = "POST"
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    timeout: int = Field(default=30000, gt=0)           # milliseconds
    expected_status: Union[int, List[int]] = Field(default_factory=lambda: [200, 201, 204])

    @model_validator(mode="after")
    def check_request(self):
        if not self.url:
            raise ValueError("API call action requires url in config")
        self.method = self.method.upper()
        if self.method not in VALID_METHODS:
            raise ValueError(f"Invalid method: {self.method}")
        return self

    def status_ok(self, status: int) -> bool:
        if isinstance(self.expected_status, list):
            return status in self.expected_status
        return status == self.expected_status


class ApiCallAction(ActionHandler):
    """HTTP request to an external API. The request timeout is enforced here;
    nothing else in the engine bounds how long a step runs."""

    action_type = "api_call"
    config_model = ApiCallConfig

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)

        variables = {
            **(context or {}),
            "entity_type": instance.entity_type,
            "entity_id": instance.entity_id,
            "instance_id": instance.id,
        }
        url = render_template(cfg.url, variables)
        headers = {"Content-Type": "application/json", **interpolate(cfg.headers, variables)}
        body = interpolate(cfg.body, variables) if cfg.body is not None else None

        logger.info("[ApiCallAction] instance=%s %s %s", instance.id, cfg.method, url)

        start = time.perf_counter()
        timeout = aiohttp.ClientTimeout(total=cfg.timeout / 1000)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    cfg.method,
                    url,
                    headers={k: str(v) for k, v in headers.items()},
                    data=json.dumps(body) if body is not None else None,
                ) as response:
                    if "application/json" in (response.headers.get("Content-Type") or ""):
                        payload = await response.json(content_type=None)
                    else:
                        payload = await response.text()
                    status = response.status
        except asyncio.TimeoutError:
            raise ExternalCallTimeoutError(f"API call timed out after {cfg.timeout}ms") from None

        elapsed = int((time.perf_counter() - start) * 1000)
        if not cfg.status_ok(status):
            raise ExternalCallError(
                f"API call failed with status {status}: {json.dumps(payload, default=str)}",
                status=status,
            )

        logger.info("[ApiCallAction] instance=%s status=%s elapsed=%sms", instance.id, status, elapsed)
        return {"success": True, "status": status, "response": payload}
