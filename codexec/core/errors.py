"""
Execution error taxonomy.

Raised to the caller:
  - ProvisioningError: the container could not be created or started
  - AttachmentError:   the output channel could not be attached before start
  - ExecutionTimeout:  the deadline fired before the script finished

Never raised out of execute(), only logged and reported:
  - HarvestError: one output file could not be read or deleted
  - CleanupError: the container could not be removed
"""

from typing import Optional


class ExecutionError(Exception):
    """Base class for every failure the engine reports."""

    def __init__(self, message: str, request_id: str = ""):
        super().__init__(message)
        self.request_id = request_id


class ProvisioningError(ExecutionError):
    pass


class AttachmentError(ExecutionError):
    pass


class ExecutionTimeout(ExecutionError, TimeoutError):
    """The deadline elapsed before the container exited.

    partial_stdout / partial_stderr hold whatever was captured up to the
    moment the deadline fired. They are informational only.
    """

    def __init__(
        self,
        timeout: float,
        request_id: str = "",
        partial_stdout: str = "",
        partial_stderr: str = "",
    ):
        super().__init__(f"Code execution timed out after {timeout:g}s", request_id)
        self.timeout = timeout
        self.partial_stdout = partial_stdout
        self.partial_stderr = partial_stderr


class HarvestError(ExecutionError):
    def __init__(self, path: str, reason: str, request_id: str = ""):
        super().__init__(f"{path}: {reason}", request_id)
        self.path = path
        self.reason = reason


class CleanupError(ExecutionError):
    def __init__(self, container_id: str, reason: str, request_id: str = "",
                 cause: Optional[BaseException] = None):
        super().__init__(f"Failed to remove container {container_id}: {reason}", request_id)
        self.container_id = container_id
        self.cause = cause
