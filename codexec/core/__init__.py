# Module: core
# Depends on: models (docker SDK for the container backend)
#
# Sandboxed execution: environment manager, output demultiplexer,
# deadline guard, artifact harvester and the orchestrator that ties them.

from codexec.core.config import SandboxConfig
from codexec.core.errors import (
    ExecutionError,
    ProvisioningError,
    AttachmentError,
    ExecutionTimeout,
    HarvestError,
    CleanupError,
)
from codexec.core.sandbox_interface import ExecutionBackend
from codexec.core.docker_sandbox import DockerSandbox
from codexec.core.sandbox_factory import create_sandbox
