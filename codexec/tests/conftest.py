"""
Shared fixtures: an in-process stand-in for the Docker SDK client.

FakeDockerClient mimics the parts of docker.DockerClient the engine uses
(images.get/pull, containers.create/list, ping). Each created container
plays back a ScriptBehavior: the attach frames it emits, the files the
"script" writes into the bound output directory, its exit code, and
whether it hangs until removed.

The *_error knobs take True (raise an APIError) or an exception instance
to raise instead, e.g. a requests ConnectionError for a dropped daemon.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pytest
from docker.errors import APIError, ImageNotFound, NotFound

from codexec.core.config import CONTAINER_OUTPUT_DIR, SandboxConfig
from codexec.core.docker_sandbox import DockerSandbox


@dataclass
class ScriptBehavior:
    frames: list = field(default_factory=list)
    files: dict[str, bytes] = field(default_factory=dict)
    exit_code: int = 0
    oom_killed: bool = False
    frame_delay: float = 0.0
    hang: bool = False
    attach_error: Any = False
    start_error: Any = False
    remove_error: Any = False


def raise_if(knob: Any, message: str) -> None:
    if isinstance(knob, BaseException):
        raise knob
    if knob:
        raise APIError(message)


class FakeContainer:

    def __init__(self, client: "FakeDockerClient", kwargs: dict, behavior: ScriptBehavior):
        self.client = client
        self.kwargs = kwargs
        self.behavior = behavior
        self.id = uuid.uuid4().hex + uuid.uuid4().hex
        self.labels = kwargs.get("labels", {})
        self.attrs = {"State": {"OOMKilled": behavior.oom_killed}}
        self.attach_kwargs: Optional[dict] = None
        self.started = False
        self.removed = False
        self.remove_calls = 0
        self._gone = threading.Event()

    @property
    def output_dir(self) -> Path:
        for host, bind in self.kwargs["volumes"].items():
            if bind["bind"] == CONTAINER_OUTPUT_DIR:
                return Path(host)
        raise AssertionError("no output mount")

    def attach(self, **kwargs):
        self.client.calls.append(("attach", self.id))
        raise_if(self.behavior.attach_error, "attach refused")
        self.attach_kwargs = kwargs
        return self._frames()

    def _frames(self):
        for frame in self.behavior.frames:
            if self.behavior.frame_delay:
                time.sleep(self.behavior.frame_delay)
            yield frame
        if self.behavior.hang:
            self._gone.wait(timeout=5)

    def start(self):
        self.client.calls.append(("start", self.id))
        raise_if(self.behavior.start_error, "start refused")
        self.started = True
        for name, data in self.behavior.files.items():
            path = self.output_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

    def wait(self):
        if self.removed:
            raise NotFound("No such container")
        return {"StatusCode": self.behavior.exit_code}

    def reload(self):
        pass

    def remove(self, force=False):
        self.client.calls.append(("remove", self.id))
        self.remove_calls += 1
        raise_if(self.behavior.remove_error, "device or resource busy")
        if self.removed:
            raise NotFound("No such container")
        self.removed = True
        self._gone.set()


class FakeImages:

    def __init__(self, present=("python:3.9-slim",)):
        self.present = set(present)
        self.pulled: list[str] = []
        self.get_error: Any = False

    def get(self, name):
        raise_if(self.get_error, "inspect failed")
        if name not in self.present:
            raise ImageNotFound(f"No such image: {name}")
        return object()

    def pull(self, name):
        self.pulled.append(name)
        self.present.add(name)
        return object()


class FakeContainers:

    def __init__(self, client: "FakeDockerClient"):
        self.client = client
        self.created: list[FakeContainer] = []
        self.create_error: Any = False
        self.list_error: Any = False

    def create(self, **kwargs):
        raise_if(self.create_error, "invalid mount config")
        script = kwargs["command"][-1]
        behavior = self.client.behaviors.get(script, self.client.default_behavior)
        container = FakeContainer(self.client, kwargs, behavior)
        self.created.append(container)
        self.client.calls.append(("create", container.id))
        return container

    def list(self, all=False, filters=None):
        raise_if(self.list_error, "list failed")
        label = (filters or {}).get("label", "")
        key = label.split("=")[0]
        return [c for c in self.created if not c.removed and key in c.labels]


class FakeDockerClient:

    def __init__(self):
        self.images = FakeImages()
        self.containers = FakeContainers(self)
        self.behaviors: dict[str, ScriptBehavior] = {}
        self.default_behavior = ScriptBehavior()
        self.calls: list[tuple[str, str]] = []
        self.reachable = True

    def ping(self):
        if not self.reachable:
            raise APIError("daemon unreachable")
        return True

    def script(self, script: str, **behavior) -> str:
        """Register how the container running `script` behaves; returns script."""
        self.behaviors[script] = ScriptBehavior(**behavior)
        return script


@pytest.fixture
def fake_docker():
    return FakeDockerClient()


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "input.csv"
    path.write_text("")
    return path


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def sandbox(fake_docker, work_root):
    config = SandboxConfig(timeout_seconds=0.5, work_root=str(work_root))
    return DockerSandbox(config=config, client=fake_docker)
