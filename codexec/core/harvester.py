"""
Artifact Harvester — collects files a script wrote to its output directory.

Runs only after the container exited on its own. Every regular file in the
output directory is an artifact, whatever its name or extension. Each one
is read in full, base64-encoded and deleted from the host. Artifacts are
returned sorted by their path relative to the output directory.

Per-file failures are logged and skipped, never raised: the script's
stdout/stderr stay valid even if some artifacts are lost.

Symlinks are never followed. The output directory is writable from inside
the container, so a link there could point anywhere on the host.
"""

import asyncio
import base64
import logging
import os
from pathlib import Path
from typing import Optional

from codexec.core.errors import HarvestError
from codexec.models.events import EventEmitter, EventType
from codexec.models.types import HarvestResult

logger = logging.getLogger(__name__)


def list_output_files(output_dir: Path) -> tuple[list[Path], list[Path]]:
    """Return (regular files, skipped entries) under output_dir, sorted by relative path."""
    files: list[Path] = []
    skipped: list[Path] = []
    for root, dirs, names in os.walk(output_dir, followlinks=False):
        for name in names:
            path = Path(root) / name
            if path.is_symlink() or not path.is_file():
                skipped.append(path)
            else:
                files.append(path)
        skipped.extend(Path(root) / d for d in dirs if (Path(root) / d).is_symlink())

    def relative(p: Path) -> str:
        return p.relative_to(output_dir).as_posix()

    return sorted(files, key=relative), sorted(skipped, key=relative)


def _read_encoded(path: Path) -> tuple[str, int]:
    data = path.read_bytes()
    return base64.b64encode(data).decode("ascii"), len(data)


class ArtifactHarvester:

    async def harvest(
        self,
        output_dir: Path,
        request_id: str = "",
        emitter: Optional[EventEmitter] = None,
    ) -> HarvestResult:
        result = HarvestResult()

        def warn(name: str, reason: str):
            err = HarvestError(name, reason, request_id)
            logger.warning("[%s] Skipping artifact %s", request_id, err)
            result.errors.append(str(err))
            if emitter:
                emitter.emit(EventType.HARVEST_WARNING, "harvester", str(err),
                             request_id=request_id, data={"path": name})

        try:
            files, skipped = await asyncio.to_thread(list_output_files, output_dir)
        except OSError as exc:
            warn(str(output_dir), f"cannot list output directory: {exc}")
            return result

        for path in skipped:
            warn(path.relative_to(output_dir).as_posix(), "not a regular file")

        for path in files:
            name = path.relative_to(output_dir).as_posix()
            try:
                encoded, size = await asyncio.to_thread(_read_encoded, path)
            except OSError as exc:
                warn(name, f"read failed: {exc.strerror or exc}")
                continue

            result.artifacts.append(encoded)
            result.names.append(name)
            if emitter:
                emitter.emit(EventType.ARTIFACT_HARVESTED, "harvester",
                             f"Harvested {name} ({size} bytes)",
                             request_id=request_id, data={"path": name, "size": size})

            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                pass
            except OSError as exc:
                warn(name, f"delete failed: {exc.strerror or exc}")

        return result
