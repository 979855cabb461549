"""SMS and email actions.

Neither sends anything itself: the rendered message is queued on the
notifications queue and delivered by the notification worker.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import Field

from fieldflow.actions.base import ActionHandler
from fieldflow.actions.templating import render_template
from fieldflow.dsl.definition_model import ActionConfig
from fieldflow.errors import HandlerError
from fieldflow.persistence.repositories.entity_repository import EntityRepository
from fieldflow.persistence.repositories.messaging_template_repository import MessagingTemplateRepository
from fieldflow.queue.job_queue import QueueName

logger = logging.getLogger(__name__)


class SendSmsConfig(ActionConfig):
    to: Optional[str] = None
    message: Optional[str] = None
    template: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class SendEmailConfig(ActionConfig):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    template: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class _NotificationAction(ActionHandler):
    channel: str = ""
    contact_column: str = ""

    def __init__(self, session_factory, queue):
        self.session_factory = session_factory
        self.queue = queue

    async def resolve_recipient(self, instance, explicit: Optional[str]) -> Optional[str]:
        if explicit:
            return explicit
        async with self.session_factory() as session:
            entities = EntityRepository(session)
            if instance.entity_type == "customer":
                return await entities.customer_contact(instance.entity_id, self.contact_column)
            row = await entities.fetch(instance.entity_type, instance.entity_id)
            if row and row.get("customer_id"):
                return await entities.customer_contact(row["customer_id"], self.contact_column)
        return None

    async def load_template(self, instance, name: str, context, variables):
        """Active template for this channel plus the variables to render it with."""
        async with self.session_factory() as session:
            template = await MessagingTemplateRepository(session).get_active(name, self.channel)
            if template is None:
                return None, {}
            entity = await EntityRepository(session).fetch(instance.entity_type, instance.entity_id)
        merged = {**(entity or {}), **(context or {}), **(variables or {})}
        return template, merged

    def job_payload(self, instance, **fields) -> Dict[str, Any]:
        return {
            **fields,
            "workflow_instance_id": instance.id,
            "entity_type": instance.entity_type,
            "entity_id": instance.entity_id,
        }


class SendSmsAction(_NotificationAction):
    action_type = "send_sms"
    config_model = SendSmsConfig
    channel = "sms"
    contact_column = "phone"

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)

        phone = await self.resolve_recipient(instance, cfg.to)
        if not phone:
            raise HandlerError("No phone number available for SMS")

        message = cfg.message
        if cfg.template and not message:
            template, variables = await self.load_template(instance, cfg.template, context, cfg.variables)
            if template is None:
                raise HandlerError(f"SMS template not found: {cfg.template}")
            message = render_template(template.body_template, variables)

        if not message:
            raise HandlerError("No message content for SMS")

        job = await self.queue.add_job(
            QueueName.NOTIFICATIONS,
            "send-sms",
            self.job_payload(instance, type="send-sms", to=phone, message=message),
        )
        logger.info(
            "[SendSmsAction] instance=%s queued sms to=%s length=%s job_id=%s",
            instance.id, phone, len(message), job.id,
        )
        return {
            "queued": True,
            "job_id": job.id,
            "to": phone,
            "message_length": len(message),
        }


class SendEmailAction(_NotificationAction):
    action_type = "send_email"
    config_model = SendEmailConfig
    channel = "email"
    contact_column = "email"

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)

        address = await self.resolve_recipient(instance, cfg.to)
        if not address:
            raise HandlerError("No email address available")

        subject, body = cfg.subject, cfg.body
        if cfg.template and (not subject or not body):
            template, variables = await self.load_template(instance, cfg.template, context, cfg.variables)
            if template is None:
                raise HandlerError(f"Email template not found: {cfg.template}")
            subject = subject or render_template(template.subject_template or "", variables)
            body = body or render_template(template.body_template, variables)

        if not subject or not body:
            raise HandlerError("No subject or body for email")

        job = await self.queue.add_job(
            QueueName.NOTIFICATIONS,
            "send-email",
            self.job_payload(instance, type="send-email", to=address, subject=subject, body=body),
        )
        logger.info(
            "[SendEmailAction] instance=%s queued email to=%s subject=%r job_id=%s",
            instance.id, address, subject, job.id,
        )
        return {
            "queued": True,
            "job_id": job.id,
            "to": address,
            "subject": subject,
        }
