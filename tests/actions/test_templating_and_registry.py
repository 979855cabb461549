import pytest

from fieldflow.actions.registry import ActionRegistry
from fieldflow.actions.templating import interpolate, render_template
from fieldflow.persistence.repositories.entity_repository import EntityRepository


def test_render_template():
    out = render_template("Hi {{name}}, {{ missing }} / {{ empty }}", {"name": "Ann", "empty": None})
    assert out == "Hi Ann, {{ missing }} / "
    assert render_template(5, {"x": 1}) == 5


def test_interpolate_nested():
    value = {"a": ["{{x}}", {"b": "{{y}}-{{x}}"}], "n": 1}
    assert interpolate(value, {"x": 1, "y": "z"}) == {"a": ["1", {"b": "z-1"}], "n": 1}


def test_default_registry_has_builtins(registry):
    assert set(registry.action_types()) == {
        "delay", "condition", "send_sms", "send_email", "update_stage", "api_call",
    }
    assert registry.config_model("delay").__name__ == "DelayConfig"


def test_registry_substitution():
    async def fake(instance, step, context):
        return {}

    reg = ActionRegistry({"delay": fake})
    assert reg.get("delay") is fake
    assert "api_call" not in reg
    assert len(reg) == 1
    with pytest.raises(TypeError):
        reg.register("broken", "not callable")
    with pytest.raises(ValueError):
        reg.register("", fake)


@pytest.mark.asyncio
async def test_entity_repository(session_factory, run_sql):
    await run_sql("INSERT INTO customers (st_id, name, phone, email) VALUES ('c-1', 'Ann', '555', '')")
    async with session_factory() as session:
        repo = EntityRepository(session)
        assert (await repo.fetch("customer", "c-1"))["name"] == "Ann"
        assert await repo.fetch("customer", "nope") is None
        assert await repo.fetch("spaceship", "x") is None
        assert await repo.customer_contact("c-1", "phone") == "555"
        assert await repo.customer_contact("c-1", "email") is None

    assert EntityRepository(None, schema="master").table_for("job") == "master.jobs"
