import uuid
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import text

from fieldflow.actions.registry import ActionRegistry, build_default_registry
from fieldflow.engine.workflow_engine import WorkflowEngine
from fieldflow.hooks.base import ExecutionHooks
from fieldflow.persistence.database import init_models, make_session_factory
from fieldflow.persistence.models import WorkflowDefinition, WorkflowTrigger
from fieldflow.queue.job_queue import JobQueue

# tables owned by the CRM sync pipeline; the engine only reads them
ENTITY_DDL = (
    """CREATE TABLE customers (
        st_id TEXT PRIMARY KEY, name TEXT, phone TEXT, email TEXT,
        status TEXT, balance REAL)""",
    """CREATE TABLE jobs (
        st_id TEXT PRIMARY KEY, customer_id TEXT, status TEXT, total REAL)""",
    """CREATE TABLE invoices (
        st_id TEXT PRIMARY KEY, customer_id TEXT, status TEXT, balance REAL)""",
    """CREATE TABLE estimates (
        st_id TEXT PRIMARY KEY, customer_id TEXT, status TEXT, total REAL)""",
    """CREATE TABLE locations (
        st_id TEXT PRIMARY KEY, customer_id TEXT, address TEXT)""",
    """CREATE TABLE contacts (
        id INTEGER PRIMARY KEY AUTOINCREMENT, st_customer_id TEXT,
        custom_stage TEXT, updated_at TIMESTAMP)""",
)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = make_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'fieldflow-test.db'}")
    await init_models(engine)
    async with engine.begin() as conn:
        for ddl in ENTITY_DDL:
            await conn.execute(text(ddl))
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def run_sql(session_factory):
    """Execute raw SQL in its own committed session; returns the result rows."""

    async def _run(statement: str, params=None):
        async with session_factory() as session:
            res = await session.execute(text(statement), params or {})
            rows = res.mappings().all() if res.returns_rows else []
            await session.commit()
            return [dict(r) for r in rows]

    return _run


@pytest.fixture
def queue(session_factory):
    return JobQueue(session_factory)


@pytest.fixture
def registry(session_factory, queue) -> ActionRegistry:
    return build_default_registry(session_factory, queue)


@pytest.fixture
def engine(registry, session_factory, queue, hook) -> WorkflowEngine:
    return WorkflowEngine(registry, session_factory=session_factory, queue=queue, hook=hook)


@pytest_asyncio.fixture
async def make_definition(session_factory):
    """Insert a definition (and its trigger binding) without going through validation."""

    async def _make(steps, *, name=None, event="job.completed", conditions=None, enabled=True, priority=0):
        definition = WorkflowDefinition(
            id=str(uuid.uuid4()),
            name=name or f"wf-{uuid.uuid4().hex[:6]}",
            version=1,
            trigger_event=event,
            trigger_conditions=conditions or {},
            steps=steps,
            enabled=enabled,
        )
        async with session_factory() as session:
            session.add(definition)
            if event:
                session.add(WorkflowTrigger(
                    id=str(uuid.uuid4()),
                    event_name=event,
                    definition_id=definition.id,
                    enabled=True,
                    priority=priority,
                ))
            await session.commit()
        return definition

    return _make


@pytest.fixture
def instance():
    """Stand-in instance for calling handlers directly."""
    return SimpleNamespace(id="inst-1", entity_type="customer", entity_id="c-1", context={})


class RecordingHook(ExecutionHooks):
    """Collects hook calls as (name, instance_id, *details) tuples."""

    def __init__(self):
        self.calls = []

    def names(self):
        return [c[0] for c in self.calls]

    async def on_workflow_start(self, instance_id, definition_id):
        self.calls.append(("workflow_start", instance_id))

    async def on_step_enter(self, instance_id, step_index, action):
        self.calls.append(("step_enter", instance_id, step_index, action))

    async def on_step_success(self, instance_id, step_index, action, duration_ms, result):
        self.calls.append(("step_success", instance_id, step_index, action))

    async def on_step_fail(self, instance_id, step_index, action, duration_ms, error):
        self.calls.append(("step_fail", instance_id, step_index, action, error))

    async def on_workflow_end(self, instance_id, status):
        self.calls.append(("workflow_end", instance_id, status))

    async def on_control_signal(self, instance_id, signal, applied, reason=None):
        self.calls.append(("control", instance_id, signal, applied))


@pytest.fixture
def hook():
    return RecordingHook()
