"""
FastAPI Server — thin HTTP adapter over the execution engine.

  GET  /api/health   — is the Docker backend reachable and the image present?
  POST /api/execute  — run {script, input_path}; returns the result plus the
                       lifecycle events emitted while it ran

Error mapping:
  ExecutionTimeout  -> 504
  ProvisioningError -> 503
  AttachmentError   -> 502

The engine knows nothing about HTTP; everything here is translation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from codexec import __version__
from codexec.core.errors import AttachmentError, ExecutionTimeout, ProvisioningError
from codexec.core.sandbox_factory import create_sandbox
from codexec.core.sandbox_interface import ExecutionBackend
from codexec.models.events import EventEmitter

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════
# App Setup
# ═══════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    if _sandbox is not None:
        await _sandbox.cleanup()


app = FastAPI(
    title="codexec",
    description="Sandboxed script execution against a read-only dataset",
    version=__version__,
    lifespan=lifespan,
)

_sandbox: Optional[ExecutionBackend] = None


def get_sandbox() -> ExecutionBackend:
    global _sandbox
    if _sandbox is None:
        _sandbox = create_sandbox()
    return _sandbox


# ═══════════════════════════════════════════════════════════
# Request/Response Models
# ═══════════════════════════════════════════════════════════

class ExecuteRequest(BaseModel):
    script: str
    input_path: str


class ExecuteResponse(BaseModel):
    request_id: str
    success: bool
    exit_code: int
    oom_killed: bool
    stdout: str
    stderr: str
    stdout_truncated: bool
    stderr_truncated: bool
    artifacts: list[str]
    artifact_names: list[str]
    harvest_errors: list[str]
    duration_ms: Optional[float] = None
    events: list[dict] = []


class HealthResponse(BaseModel):
    status: str
    version: str


# ═══════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════

@app.get("/api/health", response_model=HealthResponse)
async def health(sandbox: ExecutionBackend = Depends(get_sandbox)):
    healthy = await sandbox.health_check()
    return HealthResponse(status="ok" if healthy else "degraded", version=__version__)


@app.post("/api/execute", response_model=ExecuteResponse)
async def execute(request: ExecuteRequest, sandbox: ExecutionBackend = Depends(get_sandbox)):
    """Run one script. Blocks until the container exits or the deadline fires."""
    emitter = EventEmitter()
    try:
        result = await sandbox.execute(request.script, request.input_path, emitter=emitter)
    except ExecutionTimeout as exc:
        raise HTTPException(504, str(exc))
    except ProvisioningError as exc:
        logger.error("Provisioning failed: %s", exc)
        raise HTTPException(503, str(exc))
    except AttachmentError as exc:
        logger.error("Attachment failed: %s", exc)
        raise HTTPException(502, str(exc))

    return ExecuteResponse(
        **result.to_dict(),
        events=[e.to_dict() for e in emitter.events],
    )


# ═══════════════════════════════════════════════════════════
# Run
# ═══════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000)
