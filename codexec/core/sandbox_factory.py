"""
Sandbox Factory — returns the execution backend configured for this process.

Configuration comes from CODEXEC_* environment variables (see config.py).
There is no unisolated fallback: if Docker is unreachable,
execute() raises ProvisioningError instead of running the script locally.
"""

import logging
from typing import Optional

from codexec.core.config import SandboxConfig
from codexec.core.docker_sandbox import DockerSandbox
from codexec.core.sandbox_interface import ExecutionBackend

logger = logging.getLogger(__name__)


def create_sandbox(config: Optional[SandboxConfig] = None, client=None) -> ExecutionBackend:
    """Build the Docker backend from config (or the environment)."""
    config = config or SandboxConfig.from_env()
    logger.info(
        "Using Docker sandbox backend (image=%s, timeout=%gs, max_output=%d bytes)",
        config.image, config.timeout_seconds, config.max_output_bytes,
    )
    return DockerSandbox(config=config, client=client)
