# fieldflow/persistence/models.py

from sqlalchemy import (
    Column, String, Integer, Text, ForeignKey, DateTime, Boolean,
    JSON, Index, text
)

from .database import Base


class WorkflowStatus:
    PENDING   = "pending"
    RUNNING   = "running"
    PAUSED    = "paused"
    COMPLETED = "completed"
    FAILED    = "failed"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


class StepStatus:
    RUNNING   = "running"
    COMPLETED = "completed"
    FAILED    = "failed"
    SKIPPED   = "skipped"


class JobStatus:
    SCHEDULED = "scheduled"
    CLAIMED   = "claimed"
    COMPLETED = "completed"
    FAILED    = "failed"


# -----------------------
# workflow_definitions
# -----------------------
class WorkflowDefinition(Base):
    __tablename__ = "workflow_definitions"
    __table_args__ = (
        Index("idx_wf_def_event", "trigger_event", "enabled"),
    )

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    version = Column(Integer, nullable=False, server_default=text("1"))
    trigger_event = Column(String(255))
    trigger_conditions = Column(JSON)
    steps = Column(JSON, nullable=False)
    enabled = Column(Boolean, nullable=False, server_default=text("1"))
    # stored for the definition editor; the run loop does not consult them
    max_retries = Column(Integer, nullable=False, server_default=text("0"))
    retry_delay_seconds = Column(Integer, nullable=False, server_default=text("60"))
    timeout_seconds = Column(Integer)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))


# -----------------------
# workflow_triggers
# -----------------------
class WorkflowTrigger(Base):
    __tablename__ = "workflow_triggers"
    __table_args__ = (
        Index("idx_wf_trigger_event", "event_name", "enabled"),
    )

    id = Column(String(36), primary_key=True)
    event_name = Column(String(255), nullable=False)
    definition_id = Column(String(36), ForeignKey("workflow_definitions.id"), nullable=False)
    enabled = Column(Boolean, nullable=False, server_default=text("1"))
    priority = Column(Integer, nullable=False, server_default=text("0"))


# -----------------------
# workflow_instances
# -----------------------
class WorkflowInstance(Base):
    __tablename__ = "workflow_instances"
    __table_args__ = (
        Index("idx_wf_instance_status", "status"),
        Index("idx_wf_instance_entity", "entity_type", "entity_id"),
    )

    id = Column(String(36), primary_key=True)
    definition_id = Column(String(36), ForeignKey("workflow_definitions.id"), nullable=False)
    definition_version = Column(Integer, nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(String(255))
    status = Column(String(50), nullable=False)
    context = Column(JSON)
    current_step = Column(Integer, nullable=False, server_default=text("0"))
    step_results = Column(JSON)
    error_message = Column(Text)
    next_step_at = Column(DateTime)
    triggered_by = Column(String(255))

    # compare-and-swap execution lock
    lock_token = Column(String(36))
    locked_at = Column(DateTime)
    version = Column(Integer, nullable=False, server_default=text("1"))

    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime)


# -----------------------
# workflow_step_logs
# -----------------------
class StepLog(Base):
    __tablename__ = "workflow_step_logs"
    __table_args__ = (
        Index("idx_step_log_instance", "instance_id", "step_index", "attempt_number"),
    )

    id = Column(String(36), primary_key=True)
    instance_id = Column(String(36), ForeignKey("workflow_instances.id"), nullable=False)
    step_index = Column(Integer, nullable=False)
    step_name = Column(String(255))
    action_type = Column(String(100), nullable=False)
    action_config = Column(JSON)
    status = Column(String(50), nullable=False)
    result = Column(JSON)
    error_message = Column(Text)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    duration_ms = Column(Integer)
    attempt_number = Column(Integer, nullable=False, server_default=text("1"))


# -----------------------
# messaging_templates
# -----------------------
class MessagingTemplate(Base):
    __tablename__ = "messaging_templates"
    __table_args__ = (
        Index("idx_msg_template_name", "name", "channel"),
    )

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    channel = Column(String(20), nullable=False)      # sms / email
    subject_template = Column(Text)
    body_template = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, server_default=text("1"))


# -----------------------
# queue_jobs
# -----------------------
class QueueJob(Base):
    __tablename__ = "queue_jobs"
    __table_args__ = (
        Index("idx_queue_jobs_due", "queue_name", "status", "run_at"),
    )

    id = Column(String(36), primary_key=True)
    queue_name = Column(String(100), nullable=False)
    job_name = Column(String(100), nullable=False)
    payload = Column(JSON)
    status = Column(String(50), nullable=False)
    run_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, nullable=False, server_default=text("0"))
    max_attempts = Column(Integer, nullable=False, server_default=text("3"))
    last_error = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    claimed_at = Column(DateTime)
    completed_at = Column(DateTime)
