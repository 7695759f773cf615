"""Tests for core/deadline.py"""

import asyncio
import time

import pytest

from codexec.core.deadline import race_to_outcome
from codexec.core.errors import ExecutionError, ExecutionTimeout


@pytest.mark.asyncio
async def test_completion_wins():
    async def finish():
        await asyncio.sleep(0.01)
        return 0

    assert await race_to_outcome(finish(), timeout=1.0) == 0


@pytest.mark.asyncio
async def test_completion_error_propagates():
    async def fail():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await race_to_outcome(fail(), timeout=1.0)


@pytest.mark.asyncio
async def test_deadline_wins():
    async def never():
        await asyncio.sleep(10)

    start = time.monotonic()
    with pytest.raises(ExecutionTimeout) as info:
        await race_to_outcome(never(), timeout=0.1, request_id="abc")
    elapsed = time.monotonic() - start

    assert elapsed < 1.0
    assert info.value.timeout == 0.1
    assert info.value.request_id == "abc"
    assert "timed out" in str(info.value)


@pytest.mark.asyncio
async def test_timeout_is_a_builtin_timeout_error():
    async def never():
        await asyncio.sleep(10)

    with pytest.raises(TimeoutError):
        await race_to_outcome(never(), timeout=0.05)
    with pytest.raises(ExecutionError):
        await race_to_outcome(never(), timeout=0.05)


@pytest.mark.asyncio
async def test_partial_output_attached_on_timeout():
    async def never():
        await asyncio.sleep(10)

    with pytest.raises(ExecutionTimeout) as info:
        await race_to_outcome(never(), timeout=0.05, on_timeout=lambda: ("half a line", "warn"))
    assert info.value.partial_stdout == "half a line"
    assert info.value.partial_stderr == "warn"


@pytest.mark.asyncio
async def test_late_completion_is_discarded():
    outcomes = []
    release = asyncio.Event()

    async def slow():
        await release.wait()
        outcomes.append("finished")
        raise RuntimeError("container vanished")

    with pytest.raises(ExecutionTimeout):
        await race_to_outcome(slow(), timeout=0.05)

    # The loser still runs to completion; its exception goes nowhere.
    release.set()
    await asyncio.sleep(0.05)
    assert outcomes == ["finished"]
