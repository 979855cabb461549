"""Exception types raised by the workflow engine and its action handlers."""


class WorkflowError(Exception):
    """Base class for engine errors."""


class StepValidationError(WorkflowError, ValueError):
    """A step's config is missing or malformed."""


class HandlerError(WorkflowError):
    """Raised by an action handler while performing its side effect."""


class UnknownActionError(HandlerError):
    def __init__(self, action: str):
        super().__init__(f"Unknown action type: {action}")
        self.action = action


class ExternalCallError(HandlerError):
    """An outbound HTTP call returned an unexpected status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ExternalCallTimeoutError(ExternalCallError):
    pass


class InstanceNotFoundError(WorkflowError, LookupError):
    def __init__(self, instance_id: str):
        super().__init__(f"Workflow instance not found: {instance_id}")
        self.instance_id = instance_id


class DefinitionValidationError(WorkflowError, ValueError):
    """A workflow definition was rejected when it was created or edited."""
