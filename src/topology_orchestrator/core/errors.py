"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
EntityNotFound should stop an update before any remote mutation.
RemoteAPIError aborts the remaining sequence without rollback.
AutomationError reports a failed inventory or automation tool run.
ValidationError rejects malformed topology or procedure input.
"""


class OrchestratorError(Exception):
    """Base class for all orchestrator exceptions."""


class RemoteAPIError(OrchestratorError):
    """Raised when a control plane call fails for any reason."""


class PreconditionFailed(OrchestratorError):
    """Raised when the remote state does not allow the requested run."""


class EntityNotFound(PreconditionFailed):
    """Raised when an entity that must exist remotely is missing."""


class EntityAlreadyExists(PreconditionFailed):
    """Raised when an entity that must not exist remotely is present."""


class AutomationError(OrchestratorError):
    """Raised when the inventory file or the automation tool fails."""


class ValidationError(OrchestratorError):
    """Raised when topology or procedure input is malformed."""
