"""
Docker-based sandbox — the execution orchestrator.

One call to execute() is one asyncio task that owns one container and one
output directory from start to finish:

  1. create a request-scoped output directory on the host
  2. provision the container (input bound ro, output dir bound rw)
  3. attach the demultiplexer to the output channel
  4. start the container
  5. race (end-of-stream + exit) against the deadline
  6. on natural completion, harvest artifacts
  7. ALWAYS remove the container and the output directory

Short blocking Docker SDK and filesystem calls go through asyncio.to_thread.
Draining the output channel blocks for the whole run, so each execution
drains on a thread of its own, outside the shared default executor. A
saturated pool therefore cannot eat into another run's deadline. There is
no shared lock: nothing is shared between executions.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import docker

from codexec.core.config import OUTPUT_DIR_PREFIX, SandboxConfig
from codexec.core.deadline import race_to_outcome
from codexec.core.demux import OutputDemultiplexer
from codexec.core.environment import DAEMON_ERRORS, SandboxEnvironment
from codexec.core.errors import (
    AttachmentError,
    ExecutionError,
    ExecutionTimeout,
    ProvisioningError,
)
from codexec.core.harvester import ArtifactHarvester
from codexec.core.sandbox_interface import ExecutionBackend
from codexec.models.events import EventEmitter, EventType
from codexec.models.types import ExecutionRequest, ExecutionResult, SandboxHandle, SandboxState

logger = logging.getLogger(__name__)


class DockerSandbox(ExecutionBackend):

    def __init__(
        self,
        config: Optional[SandboxConfig] = None,
        client: Optional[docker.DockerClient] = None,
        environment: Optional[SandboxEnvironment] = None,
        harvester: Optional[ArtifactHarvester] = None,
    ):
        self.config = config or SandboxConfig.from_env()
        self.environment = environment or SandboxEnvironment(client=client, config=self.config)
        self.harvester = harvester or ArtifactHarvester()

    # ═══════════════════════════════════════════════════════════
    # Execute
    # ═══════════════════════════════════════════════════════════

    async def execute(
        self,
        script: str,
        input_path: Union[str, Path],
        emitter: Optional[EventEmitter] = None,
    ) -> ExecutionResult:
        request = ExecutionRequest(
            script=script,
            input_path=Path(input_path),
            request_id=uuid.uuid4().hex[:12],
        )
        rid = request.request_id
        started_at = time.perf_counter()

        def emit(event_type: EventType, message: str, **data):
            if emitter:
                emitter.emit(event_type, "sandbox", message, request_id=rid, data=data or None)

        try:
            _check_input(request)
            output_dir = await asyncio.to_thread(self._make_output_dir, rid)
        except ProvisioningError as exc:
            if emitter:
                emitter.error("sandbox", str(exc), request_id=rid)
            raise

        handle: Optional[SandboxHandle] = None
        stream = None
        raced = False
        demux = OutputDemultiplexer(self.config.max_output_bytes)
        try:
            handle = await asyncio.to_thread(self.environment.provision, request, output_dir)
            emit(EventType.SANDBOX_CREATED, f"Created container {handle.short_id}",
                 container_id=handle.container_id, image=self.config.image)

            stream = await asyncio.to_thread(self.environment.attach, handle)
            emit(EventType.STREAM_ATTACHED, "Output channel attached")

            await asyncio.to_thread(self.environment.start, handle)
            emit(EventType.SANDBOX_STARTED, f"Started container {handle.short_id}")

            raced = True
            try:
                exit_code = await race_to_outcome(
                    self._run_to_exit(handle, stream, demux),
                    self.config.timeout_seconds,
                    request_id=rid,
                    on_timeout=demux.snapshot,
                )
            except ExecutionTimeout:
                handle.state = SandboxState.TIMED_OUT
                logger.warning("[%s] Execution timed out after %gs", rid, self.config.timeout_seconds)
                emit(EventType.EXECUTION_TIMEOUT,
                     f"Timed out after {self.config.timeout_seconds:g}s",
                     timeout=self.config.timeout_seconds)
                raise

            emit(EventType.SANDBOX_EXITED, f"Container exited with code {exit_code}",
                 exit_code=exit_code, oom_killed=handle.oom_killed)

            harvest = await self.harvester.harvest(output_dir, request_id=rid, emitter=emitter)
            stdout, stderr = demux.snapshot()
            result = ExecutionResult(
                stdout=stdout,
                stderr=stderr,
                artifacts=harvest.artifacts,
                artifact_names=harvest.names,
                exit_code=exit_code,
                oom_killed=handle.oom_killed,
                stdout_truncated=demux.stdout_truncated,
                stderr_truncated=demux.stderr_truncated,
                harvest_errors=harvest.errors,
                duration_ms=(time.perf_counter() - started_at) * 1000,
                request_id=rid,
            )
            emit(EventType.EXECUTION_COMPLETE,
                 f"Execution finished: exit {exit_code}, {len(result.artifacts)} artifact(s)",
                 exit_code=exit_code, artifacts=len(result.artifacts))
            return result

        except ExecutionError as exc:
            if emitter and not isinstance(exc, ExecutionTimeout):
                emitter.error("sandbox", str(exc), request_id=rid)
            raise

        finally:
            if handle is not None:
                await self._remove(handle, emitter)
            if stream is not None and not raced:
                # Never consumed, so nothing else will end it.
                _close_stream(stream)
            await asyncio.to_thread(_discard_output_dir, output_dir)

    # ─────────────────────────────────────────────
    # Steps
    # ─────────────────────────────────────────────

    async def _run_to_exit(self, handle: SandboxHandle, stream: Iterable, demux: OutputDemultiplexer) -> int:
        """Completion source for the deadline race: end-of-stream, then exit code."""
        try:
            return await _in_own_thread(
                self._drain_and_wait, handle, stream, demux, name=f"codexec-drain-{handle.request_id}"
            )
        except DAEMON_ERRORS + (OSError,) as exc:
            raise AttachmentError(
                f"Lost the output channel of container {handle.short_id}: {exc}",
                handle.request_id,
            ) from exc

    def _drain_and_wait(self, handle: SandboxHandle, stream: Iterable, demux: OutputDemultiplexer) -> int:
        demux.consume(stream)
        return self.environment.wait(handle)

    async def _remove(self, handle: SandboxHandle, emitter: Optional[EventEmitter]) -> None:
        err = await asyncio.to_thread(self.environment.remove, handle)
        if not emitter:
            return
        if err is None:
            emitter.emit(EventType.SANDBOX_REMOVED, "sandbox", f"Removed container {handle.short_id}",
                         request_id=handle.request_id)
        else:
            emitter.emit(EventType.CLEANUP_FAILED, "sandbox", str(err), request_id=handle.request_id,
                         data={"container_id": handle.container_id})

    def _make_output_dir(self, request_id: str) -> Path:
        try:
            path = Path(tempfile.mkdtemp(prefix=f"{OUTPUT_DIR_PREFIX}{request_id}-", dir=self.config.work_root))
            # Container root has no CAP_DAC_OVERRIDE, so it needs plain write permission.
            os.chmod(path, 0o777)
        except OSError as exc:
            raise ProvisioningError(f"Cannot create output directory: {exc}", request_id) from exc
        return path

    # ═══════════════════════════════════════════════════════════
    # Health / cleanup
    # ═══════════════════════════════════════════════════════════

    async def health_check(self) -> bool:
        if not await asyncio.to_thread(self.environment.ping):
            return False
        try:
            await asyncio.to_thread(self.environment.ensure_image)
        except ProvisioningError as exc:
            logger.warning("Sandbox image unavailable: %s", exc)
            return False
        return True

    async def cleanup(self) -> None:
        try:
            removed = await asyncio.to_thread(self.environment.remove_orphans)
        except ProvisioningError as exc:
            logger.error("Orphan cleanup failed: %s", exc)
            return
        if removed:
            logger.info("Removed %d orphaned sandbox container(s)", removed)


def _check_input(request: ExecutionRequest) -> None:
    path = request.input_path
    if not path.is_file() or not os.access(path, os.R_OK):
        raise ProvisioningError(f"Input file is not a readable file: {path}", request.request_id)


def _close_stream(stream) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        close()
    except DAEMON_ERRORS + (OSError,) as exc:
        logger.debug("Closing output channel failed: %s", exc)


def _in_own_thread(fn: Callable[..., Any], *args: Any, name: Optional[str] = None) -> "asyncio.Future[Any]":
    """Run fn(*args) on a fresh daemon thread; the returned future settles with its outcome.

    Unlike asyncio.to_thread, this never queues behind other work on the
    default executor, so the caller's clock starts when the work does.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def settle(outcome: Any, failed: bool) -> None:
        if future.done():
            return
        if failed:
            future.set_exception(outcome)
        else:
            future.set_result(outcome)

    def run() -> None:
        try:
            outcome, failed = fn(*args), False
        except Exception as exc:
            outcome, failed = exc, True
        try:
            loop.call_soon_threadsafe(settle, outcome, failed)
        except RuntimeError:
            # Loop already closed; nobody is waiting for this outcome.
            logger.debug("Dropping outcome of %s: event loop closed", name or fn)

    threading.Thread(target=run, name=name, daemon=True).start()
    return future


def _discard_output_dir(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove output directory %s: %s", path, exc)
