from typing import Dict, List, Optional


class TaskWorkflowError(Exception):
    """Base class for errors raised by the task workflow engine."""


class NotFoundError(TaskWorkflowError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id '{entity_id}' not found")


class ValidationError(TaskWorkflowError):
    """Schema or business-rule violation. Carries a field -> messages map."""

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        if message is None:
            message = "Validation failed: " + ", ".join(
                msg for messages in errors.values() for msg in messages
            )
        super().__init__(message)


class StateConflictError(ValidationError):
    """The request is well-formed but conflicts with the entity's current state."""
