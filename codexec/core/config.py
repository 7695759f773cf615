"""Configuration for the execution engine.

Isolation limits and in-container paths are fixed constants. Only
deployment concerns (which image, where to stage output, how much output
to keep) can be changed, and only through the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

# Isolation (fixed)
MEMORY_LIMIT_BYTES = 50 * 1024 * 1024
PIDS_LIMIT = 100
NETWORK_MODE = "none"
CAP_DROP = ["ALL"]
EXECUTION_TIMEOUT_SECONDS = 10.0

# Container paths (fixed)
CONTAINER_INPUT_PATH = "/data/input.csv"
CONTAINER_OUTPUT_DIR = "/data/output"

# Labels used to find containers this engine created
MANAGED_LABEL = "codexec.managed"
REQUEST_LABEL = "codexec.request_id"

# Defaults for the environment-tunable settings
DEFAULT_IMAGE = "python:3.9-slim"
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
OUTPUT_DIR_PREFIX = "codexec-"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SandboxConfig:
    image: str = DEFAULT_IMAGE
    timeout_seconds: float = EXECUTION_TIMEOUT_SECONDS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    work_root: Optional[str] = None
    pull_missing_image: bool = True

    @classmethod
    def from_env(cls) -> "SandboxConfig":
        """Build a config from CODEXEC_* environment variables."""
        max_output = os.environ.get("CODEXEC_MAX_OUTPUT_BYTES")
        pull = os.environ.get("CODEXEC_PULL_IMAGE")
        return cls(
            image=os.environ.get("CODEXEC_IMAGE", DEFAULT_IMAGE),
            max_output_bytes=int(max_output) if max_output else DEFAULT_MAX_OUTPUT_BYTES,
            work_root=os.environ.get("CODEXEC_WORK_ROOT") or None,
            pull_missing_image=pull.strip().lower() in _TRUTHY if pull is not None else True,
        )
