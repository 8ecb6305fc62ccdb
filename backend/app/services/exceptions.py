"""Job pipeline error taxonomy.

``PipelineError`` subclasses are terminal task failures: the orchestrator
records ``status_code`` and the message on the task. The remaining classes
are raised to the caller and never touch a task.
"""

from __future__ import annotations


class TaskNotFoundError(Exception):
    """Raised when a task identifier does not exist in the task store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class TaskStoreUnavailableError(Exception):
    """Raised when the task store cannot be reached."""


class ConfigurationError(Exception):
    """Missing provider credentials or project identity. Fatal, never retried."""


class PipelineError(Exception):
    """Terminal failure of one pipeline step, with a diagnostic code."""

    status_code: str = "internal_error"

    def __init__(self, message: str, status_code: str | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InputResolutionError(PipelineError):
    """The remote input image could not be retrieved."""

    status_code = "input_unreachable"


class ProviderError(PipelineError):
    """Non-2xx (or unreachable) provider call; status_code is the upstream status."""

    status_code = "provider_error"


class ThrottledError(ProviderError):
    """Provider kept answering 429 after every retry."""

    status_code = "429"


class NoContentError(PipelineError):
    """Provider response carried neither inline media nor a file handle."""

    status_code = "no_content"


class MaterializationError(PipelineError):
    """Fetching a remote output handle failed."""

    status_code = "output_unreachable"


class PublishError(PipelineError):
    """Uploading the final bytes to storage failed."""

    status_code = "storage_error"
