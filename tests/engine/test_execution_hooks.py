import logging

import pytest
from prometheus_client import REGISTRY

from fieldflow.hooks.dispatcher import HookDispatcher
from fieldflow.hooks.log_hook import LogHook
from fieldflow.hooks.metrics_hook import MetricsHook


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_dispatcher_fans_out(hook):
    other = type(hook)()
    dispatcher = HookDispatcher([hook, other])

    await dispatcher.on_workflow_start("i-1", "d-1")
    await dispatcher.on_step_enter("i-1", 0, "delay")
    await dispatcher.on_step_success("i-1", 0, "delay", 3, {})
    await dispatcher.on_workflow_end("i-1", "completed")

    assert hook.names() == other.names() == ["workflow_start", "step_enter", "step_success", "workflow_end"]


@pytest.mark.asyncio
async def test_metrics_hook_counts_steps():
    before = sample("fieldflow_step_results_total", action="hook_test", status="failed")
    await MetricsHook().on_step_fail("i-1", 0, "hook_test", 12, "nope")
    assert sample("fieldflow_step_results_total", action="hook_test", status="failed") == before + 1


@pytest.mark.asyncio
async def test_log_hook_logs_lifecycle(caplog):
    with caplog.at_level(logging.INFO, logger="fieldflow.lifecycle"):
        await LogHook().on_workflow_end("i-9", "failed")
        await LogHook().on_control_signal("i-9", "cancel", True, "duplicate")
    assert "workflow ended: failed" in caplog.text
    assert "control cancel applied=True duplicate" in caplog.text
