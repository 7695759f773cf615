"""Shared data contracts for the execution engine.

Every component consumes and produces these types. The caller only ever
sees ExecutionRequest going in and ExecutionResult (or an ExecutionError)
coming out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


# ── Request ─────────────────────────────────────────────────

@dataclass(frozen=True)
class ExecutionRequest:
    """One script run against one read-only input file."""
    script: str
    input_path: Path
    request_id: str = ""


# ── Sandbox lifecycle ───────────────────────────────────────

class SandboxState(str, Enum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    EXITED = "EXITED"
    TIMED_OUT = "TIMED_OUT"
    REMOVED = "REMOVED"


@dataclass
class SandboxHandle:
    """A provisioned container, owned by exactly one execution."""
    container: Any
    request_id: str
    output_dir: Path
    state: SandboxState = SandboxState.CREATED
    exit_code: Optional[int] = None
    oom_killed: bool = False

    @property
    def container_id(self) -> str:
        return getattr(self.container, "id", "") or ""

    @property
    def short_id(self) -> str:
        return self.container_id[:12]


# ── Harvest ─────────────────────────────────────────────────

@dataclass
class HarvestResult:
    """Artifacts collected from an output directory, in harvest order."""
    artifacts: list[str] = field(default_factory=list)     # base64
    names: list[str] = field(default_factory=list)         # relative to output dir
    errors: list[str] = field(default_factory=list)        # one line per skipped file


# ── Result ──────────────────────────────────────────────────

@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a script that ran to natural completion.

    A non-zero exit_code still produces a result: the script ran, it just
    failed (syntax error, uncaught exception, OOM kill). Only provisioning,
    attachment and timeout failures are raised instead.
    """
    stdout: str
    stderr: str
    artifacts: list[str] = field(default_factory=list)
    artifact_names: list[str] = field(default_factory=list)
    exit_code: int = 0
    oom_killed: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    harvest_errors: list[str] = field(default_factory=list)
    duration_ms: Optional[float] = None
    request_id: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "success": self.success,
            "exit_code": self.exit_code,
            "oom_killed": self.oom_killed,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "stdout_truncated": self.stdout_truncated,
            "stderr_truncated": self.stderr_truncated,
            "artifacts": list(self.artifacts),
            "artifact_names": list(self.artifact_names),
            "harvest_errors": list(self.harvest_errors),
            "duration_ms": self.duration_ms,
        }
