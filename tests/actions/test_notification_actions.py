import uuid
from types import SimpleNamespace

import pytest

from fieldflow.actions.notifications import SendEmailAction, SendSmsAction
from fieldflow.errors import HandlerError
from fieldflow.persistence.models import MessagingTemplate
from fieldflow.persistence.repositories.queue_job_repository import QueueJobRepository
from fieldflow.queue.job_queue import QueueName


async def add_template(session_factory, name, channel, body, subject=None, active=True):
    async with session_factory() as session:
        session.add(MessagingTemplate(
            id=str(uuid.uuid4()), name=name, channel=channel,
            subject_template=subject, body_template=body, active=active,
        ))
        await session.commit()


async def notification_jobs(session_factory):
    async with session_factory() as session:
        return await QueueJobRepository(session).list_for_queue(QueueName.NOTIFICATIONS)


def sms(**config):
    return {"action": "send_sms", "config": config}


def email(**config):
    return {"action": "send_email", "config": config}


@pytest.mark.asyncio
async def test_sms_explicit_recipient_and_message(session_factory, queue, instance):
    result = await SendSmsAction(session_factory, queue)(instance, sms(to="+15550001", message="Hi there"), {})

    assert result["queued"] is True
    assert result["to"] == "+15550001"
    assert result["message_length"] == len("Hi there")

    jobs = await notification_jobs(session_factory)
    assert len(jobs) == 1
    assert jobs[0].id == result["job_id"]
    assert jobs[0].job_name == "send-sms"
    assert jobs[0].payload["message"] == "Hi there"
    assert jobs[0].payload["workflow_instance_id"] == instance.id


@pytest.mark.asyncio
async def test_sms_recipient_from_customer(session_factory, queue, run_sql, instance):
    await run_sql("INSERT INTO customers (st_id, name, phone) VALUES ('c-1', 'Ann', '+15550002')")
    result = await SendSmsAction(session_factory, queue)(instance, sms(message="Hello"), {})
    assert result["to"] == "+15550002"


@pytest.mark.asyncio
async def test_sms_recipient_from_entity_customer_id(session_factory, queue, run_sql):
    await run_sql("INSERT INTO customers (st_id, name, phone) VALUES ('c-7', 'Bo', '+15550007')")
    await run_sql("INSERT INTO jobs (st_id, customer_id, status) VALUES ('j-1', 'c-7', 'completed')")
    inst = SimpleNamespace(id="inst-2", entity_type="job", entity_id="j-1")

    result = await SendSmsAction(session_factory, queue)(inst, sms(message="Done"), {})
    assert result["to"] == "+15550007"


@pytest.mark.asyncio
async def test_sms_template_rendering(session_factory, queue, run_sql, instance):
    await run_sql("INSERT INTO customers (st_id, name, phone) VALUES ('c-1', 'Ann', '+15550002')")
    await add_template(session_factory, "thanks", "sms", "Thanks {{ name }}, job {{job_no}} is {{ status }}. {{unknown}}")

    result = await SendSmsAction(session_factory, queue)(
        instance,
        sms(template="thanks", variables={"status": "done"}),
        {"job_no": 42, "status": "scheduled"},
    )
    jobs = await notification_jobs(session_factory)
    assert jobs[0].payload["message"] == "Thanks Ann, job 42 is done. {{unknown}}"
    assert result["message_length"] == len(jobs[0].payload["message"])


@pytest.mark.asyncio
async def test_sms_failures(session_factory, queue, run_sql, instance):
    action = SendSmsAction(session_factory, queue)

    with pytest.raises(HandlerError, match="No phone number available for SMS"):
        await action(instance, sms(message="x"), {})

    await add_template(session_factory, "inactive", "sms", "x", active=False)
    with pytest.raises(HandlerError, match="SMS template not found: inactive"):
        await action(instance, sms(to="+1", template="inactive"), {})

    with pytest.raises(HandlerError, match="No message content for SMS"):
        await action(instance, sms(to="+1"), {})

    assert await notification_jobs(session_factory) == []


@pytest.mark.asyncio
async def test_email_with_template_fills_missing_parts(session_factory, queue, run_sql, instance):
    await run_sql("INSERT INTO customers (st_id, name, email) VALUES ('c-1', 'Ann', 'ann@example.com')")
    await add_template(session_factory, "invoice", "email", "Balance: {{balance}}", subject="Invoice for {{name}}")

    result = await SendEmailAction(session_factory, queue)(
        instance, email(template="invoice", variables={"balance": "$10"}), {}
    )
    assert result["to"] == "ann@example.com"
    assert result["subject"] == "Invoice for Ann"

    jobs = await notification_jobs(session_factory)
    assert jobs[0].job_name == "send-email"
    assert jobs[0].payload["body"] == "Balance: $10"


@pytest.mark.asyncio
async def test_email_failures(session_factory, queue, instance):
    action = SendEmailAction(session_factory, queue)

    with pytest.raises(HandlerError, match="No email address available"):
        await action(instance, email(subject="s", body="b"), {})
    with pytest.raises(HandlerError, match="Email template not found: nope"):
        await action(instance, email(to="a@b.c", template="nope"), {})
    with pytest.raises(HandlerError, match="No subject or body for email"):
        await action(instance, email(to="a@b.c", subject="only subject"), {})
