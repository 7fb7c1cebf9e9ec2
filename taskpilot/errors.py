"""Custom exception hierarchy for the task orchestration client."""


class TaskpilotError(Exception):
    """Base exception for the client."""


class NotFoundError(TaskpilotError):
    """The server does not know the requested resource."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier!r} not found")


class TransportError(TaskpilotError):
    """Network failure, timeout, non-2xx response or unreadable body.

    Always transient from the client's point of view: the task may still be
    progressing server-side.
    """

    retriable = True

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class ValidationError(TaskpilotError):
    """Input rejected locally, before any request is sent."""


class ConfigError(TaskpilotError):
    """Invalid client configuration."""
