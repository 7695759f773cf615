"""
Abstract Sandbox Interface — the contract for code execution backends.

This is the ONLY interface through which callers run untrusted scripts.

Integration contract:
  - (script, input file) in → ExecutionResult out
  - Isolation, memory, process and time limits are fixed by the backend,
    never chosen per call
  - Failures are ExecutionError subclasses (see core/errors.py)
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from codexec.models.events import EventEmitter
from codexec.models.types import ExecutionResult


class ExecutionBackend(ABC):
    """Abstract interface for isolated script execution."""

    @abstractmethod
    async def execute(
        self,
        script: str,
        input_path: Union[str, Path],
        emitter: Optional[EventEmitter] = None,
    ) -> ExecutionResult:
        """Run script against a read-only copy of input_path.

        Args:
            script: Complete Python source, run with `python -c`
            input_path: Host file mounted read-only at /data/input.csv
            emitter: Optional sink for lifecycle events

        Returns:
            ExecutionResult with stdout, stderr and base64 artifacts from
            /data/output.

        Raises:
            ProvisioningError, AttachmentError, ExecutionTimeout
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the backend is operational."""
        ...

    @abstractmethod
    async def cleanup(self) -> None:
        """Remove any containers left behind by earlier executions."""
        ...
