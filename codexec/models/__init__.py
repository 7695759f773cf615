# Module: models
# Depends on: (none, leaf module)
#
# Shared data contracts used by every engine component.

from codexec.models.types import (
    ExecutionRequest,
    ExecutionResult,
    HarvestResult,
    SandboxHandle,
    SandboxState,
)
from codexec.models.events import ExecutionEvent, EventType, EventEmitter
