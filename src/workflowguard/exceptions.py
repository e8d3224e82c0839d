"""Domain exceptions for the version history core."""

from __future__ import annotations


class WorkflowGuardError(Exception):
    """Base exception for all WorkflowGuard domain errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowGuardError):
    """Referenced workflow or version does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: object, message: str | None = None) -> None:
        super().__init__(message or f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = str(entity_id)


class ConflictError(WorkflowGuardError):
    """Version number was already taken or is out of sequence.

    Raised at write time. Callers may re-read the latest version number
    and resubmit.
    """

    status_code = 409

    def __init__(
        self,
        workflow_id: object,
        version_number: int,
        expected_version_number: int | None = None,
    ) -> None:
        if expected_version_number is None:
            message = (
                f"Version {version_number} already exists for workflow {workflow_id}"
            )
        else:
            message = (
                f"Version conflict for workflow {workflow_id}: "
                f"expected {expected_version_number}, got {version_number}"
            )
        super().__init__(message)
        self.workflow_id = str(workflow_id)
        self.version_number = version_number
        self.expected_version_number = expected_version_number


class InvalidStateError(WorkflowGuardError):
    """Operation is not possible with the workflow's current history."""

    status_code = 400


class InternalError(WorkflowGuardError):
    """Unexpected failure (database error, malformed payload)."""

    status_code = 500
