from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from fieldflow.actions.registry import ActionRegistry
from fieldflow.engine.step_executor import StepExecutor
from fieldflow.persistence.repositories.step_log_repository import StepLogRepository

INSTANCE = SimpleNamespace(id="inst-x", entity_type="job", entity_id="j-1")


async def ok_handler(instance, step, context):
    return {"echo": step["config"].get("value"), "amount": Decimal("1.50")}


async def failing_handler(instance, step, context):
    raise RuntimeError("vendor rejected the request")


async def db_failing_handler(instance, step, context):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture
def registry():
    return ActionRegistry({
        "ok": ok_handler,
        "boom": failing_handler,
        "db_boom": db_failing_handler,
    })


async def run_step(session_factory, registry, hook, step, index=0):
    async with session_factory() as session:
        repo = StepLogRepository(session)
        outcome = await StepExecutor(registry, repo, hook).execute(INSTANCE, index, step, {})
        logs = await repo.list_for_instance(INSTANCE.id)
    return outcome, logs


@pytest.mark.asyncio
async def test_success_closes_log_completed(session_factory, registry, hook):
    step = {"name": "first", "action": "ok", "config": {"value": 7}}
    outcome, logs = await run_step(session_factory, registry, hook, step)

    assert outcome == {"status": "completed", "result": {"echo": 7, "amount": "1.50"}}
    assert len(logs) == 1
    log = logs[0]
    assert log.status == "completed"
    assert log.step_name == "first"
    assert log.action_type == "ok"
    assert log.action_config == {"value": 7}
    assert log.result == {"echo": 7, "amount": "1.50"}
    assert log.attempt_number == 1
    assert log.duration_ms >= 0
    assert log.completed_at is not None
    assert hook.names() == ["step_enter", "step_success"]


@pytest.mark.asyncio
async def test_handler_exception_fails_step(session_factory, registry, hook):
    outcome, logs = await run_step(session_factory, registry, hook, {"action": "boom", "config": {}})

    assert outcome == {"status": "failed", "error": "vendor rejected the request"}
    assert logs[0].status == "failed"
    assert logs[0].error_message == "vendor rejected the request"
    assert logs[0].result is None
    assert hook.calls[-1] == ("step_fail", INSTANCE.id, 0, "boom", "vendor rejected the request")


@pytest.mark.asyncio
async def test_database_error_inside_handler_fails_step(session_factory, registry, hook):
    outcome, logs = await run_step(session_factory, registry, hook, {"action": "db_boom", "config": {}})
    assert outcome["status"] == "failed"
    assert "database is locked" in outcome["error"]
    assert logs[0].status == "failed"


@pytest.mark.asyncio
async def test_unknown_action(session_factory, registry, hook):
    outcome, logs = await run_step(session_factory, registry, hook, {"action": "teleport", "config": {}})
    assert outcome == {"status": "failed", "error": "Unknown action type: teleport"}
    assert logs[0].action_type == "teleport"
    assert logs[0].status == "failed"


@pytest.mark.asyncio
async def test_attempt_number_counts_previous_logs(session_factory, registry, hook):
    step = {"action": "boom", "config": {}}
    await run_step(session_factory, registry, hook, step, index=2)
    _, logs = await run_step(session_factory, registry, hook, step, index=2)

    assert [log.attempt_number for log in logs] == [1, 2]
    assert all(log.step_index == 2 for log in logs)
