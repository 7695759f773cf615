"""
Environment Manager — provisions and tears down one Docker container per
execution.

Lifecycle: provision → attach → start → wait | (deadline) → remove.

Every container gets the same isolation, with nothing tunable per request:
  - no network
  - read-only root filesystem
  - all capabilities dropped
  - 50 MiB memory, swap equal to memory (exceeding it OOM-kills the container)
  - at most 100 processes/threads
  - exactly two bind mounts: the input file (ro) and the output dir (rw)

All methods are blocking Docker SDK calls. Errors from the daemon, whether
API or transport, come out as ProvisioningError, AttachmentError or a
returned CleanupError.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from requests.exceptions import RequestException

from codexec.core.config import (
    CAP_DROP,
    CONTAINER_INPUT_PATH,
    CONTAINER_OUTPUT_DIR,
    MANAGED_LABEL,
    MEMORY_LIMIT_BYTES,
    NETWORK_MODE,
    PIDS_LIMIT,
    REQUEST_LABEL,
    SandboxConfig,
)
from codexec.core.errors import AttachmentError, CleanupError, ProvisioningError
from codexec.models.types import ExecutionRequest, SandboxHandle, SandboxState

logger = logging.getLogger(__name__)

# docker-py lets transport failures (connection reset, read timeout) through as
# plain requests exceptions.
DAEMON_ERRORS = (DockerException, RequestException)


def build_container_config(request: ExecutionRequest, output_dir: Path, image: str) -> dict[str, Any]:
    """Keyword arguments for client.containers.create()."""
    return {
        "image": image,
        "command": ["python", "-c", request.script],
        "stdin_open": False,
        "tty": False,
        "network_mode": NETWORK_MODE,
        "read_only": True,
        "cap_drop": list(CAP_DROP),
        "mem_limit": MEMORY_LIMIT_BYTES,
        "memswap_limit": MEMORY_LIMIT_BYTES,
        "pids_limit": PIDS_LIMIT,
        "volumes": {
            str(Path(request.input_path).resolve()): {"bind": CONTAINER_INPUT_PATH, "mode": "ro"},
            str(Path(output_dir).resolve()): {"bind": CONTAINER_OUTPUT_DIR, "mode": "rw"},
        },
        "labels": {MANAGED_LABEL: "true", REQUEST_LABEL: request.request_id},
    }


class SandboxEnvironment:

    def __init__(self, client: Optional[docker.DockerClient] = None, config: Optional[SandboxConfig] = None):
        self._client = client
        self.config = config or SandboxConfig()

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DAEMON_ERRORS as exc:
                raise ProvisioningError(f"Docker daemon unavailable: {exc}") from exc
        return self._client

    # ─────────────────────────────────────────────
    # Provisioning
    # ─────────────────────────────────────────────

    def ensure_image(self) -> None:
        image = self.config.image
        try:
            self.client.images.get(image)
            return
        except ImageNotFound:
            if not self.config.pull_missing_image:
                raise ProvisioningError(f"Image {image} not present and pulling is disabled")
        except DAEMON_ERRORS as exc:
            raise ProvisioningError(f"Cannot inspect image {image}: {exc}") from exc
        logger.info("Pulling sandbox image %s", image)
        try:
            self.client.images.pull(image)
        except DAEMON_ERRORS as exc:
            raise ProvisioningError(f"Failed to pull image {image}: {exc}") from exc

    def provision(self, request: ExecutionRequest, output_dir: Path) -> SandboxHandle:
        try:
            self.ensure_image()
            container = self.client.containers.create(
                **build_container_config(request, output_dir, self.config.image)
            )
        except ProvisioningError as exc:
            exc.request_id = request.request_id
            raise
        except DAEMON_ERRORS as exc:
            raise ProvisioningError(f"Container creation failed: {exc}", request.request_id) from exc

        handle = SandboxHandle(container=container, request_id=request.request_id, output_dir=output_dir)
        logger.debug("[%s] Created container %s", request.request_id, handle.short_id)
        return handle

    def attach(self, handle: SandboxHandle) -> Iterable:
        """Open the combined output channel. Must happen before start()."""
        try:
            return handle.container.attach(stdout=True, stderr=True, stream=True, demux=True)
        except DAEMON_ERRORS as exc:
            raise AttachmentError(f"Attach to {handle.short_id} failed: {exc}", handle.request_id) from exc

    def start(self, handle: SandboxHandle) -> None:
        try:
            handle.container.start()
        except DAEMON_ERRORS as exc:
            raise ProvisioningError(f"Container {handle.short_id} failed to start: {exc}", handle.request_id) from exc
        handle.state = SandboxState.STARTED

    # ─────────────────────────────────────────────
    # Exit
    # ─────────────────────────────────────────────

    def wait(self, handle: SandboxHandle) -> int:
        """Block until the container exits; return its exit code."""
        status = handle.container.wait()
        exit_code = int(status.get("StatusCode", -1))
        handle.exit_code = exit_code
        if exit_code != 0:
            handle.oom_killed = self._was_oom_killed(handle)
            if handle.oom_killed:
                logger.warning("[%s] Container %s exceeded the memory limit", handle.request_id, handle.short_id)
        if handle.state == SandboxState.STARTED:
            handle.state = SandboxState.EXITED
        return exit_code

    @staticmethod
    def _was_oom_killed(handle: SandboxHandle) -> bool:
        try:
            handle.container.reload()
            return bool(handle.container.attrs.get("State", {}).get("OOMKilled", False))
        except DAEMON_ERRORS:
            return False

    # ─────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────

    def remove(self, handle: SandboxHandle) -> Optional[CleanupError]:
        """Force-remove the container. Never raises; returns the failure, if any."""
        if handle.state == SandboxState.REMOVED:
            return None
        try:
            handle.container.remove(force=True)
        except NotFound:
            logger.debug("[%s] Container %s already gone", handle.request_id, handle.short_id)
        except DAEMON_ERRORS as exc:
            err = CleanupError(handle.short_id, str(exc), handle.request_id, cause=exc)
            logger.error("[%s] %s", handle.request_id, err)
            return err
        handle.state = SandboxState.REMOVED
        return None

    def remove_orphans(self) -> int:
        """Force-remove every container carrying the managed label. Returns how many went."""
        removed = 0
        try:
            containers = self.client.containers.list(all=True, filters={"label": f"{MANAGED_LABEL}=true"})
        except DAEMON_ERRORS as exc:
            raise ProvisioningError(f"Cannot list sandbox containers: {exc}") from exc
        for container in containers:
            try:
                container.remove(force=True)
                removed += 1
            except NotFound:
                pass
            except DAEMON_ERRORS as exc:
                logger.error("Failed to remove orphaned container %s: %s", container.id[:12], exc)
        return removed

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except DAEMON_ERRORS + (ProvisioningError,):
            return False
