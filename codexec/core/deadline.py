"""
Deadline Guard — races natural completion against a wall-clock deadline.

Two independent completion sources feed one decision point:
  1. the completion task (stream end-of-stream + container exit)
  2. the deadline timer

Whichever resolves first decides the outcome. The loser is not cancelled
cooperatively: if the deadline wins, the completion task keeps running
until the container is removed underneath it, and its eventual result or
exception is retrieved and dropped so it can never resolve the request a
second time.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from codexec.core.errors import ExecutionTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_outcome(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Discarding late completion after timeout: %r", exc)
    else:
        logger.debug("Discarding late completion after timeout: %r", task.result())


async def race_to_outcome(
    completion: Awaitable[T],
    timeout: float,
    request_id: str = "",
    on_timeout: Optional[Callable[[], tuple[str, str]]] = None,
) -> T:
    """Return completion's result, or raise ExecutionTimeout after `timeout` seconds.

    on_timeout, if given, returns the (stdout, stderr) captured so far;
    it is attached to the raised ExecutionTimeout as partial output.
    """
    task = asyncio.ensure_future(completion)
    done, _ = await asyncio.wait({task}, timeout=timeout)

    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_outcome)
    partial_stdout, partial_stderr = on_timeout() if on_timeout else ("", "")
    raise ExecutionTimeout(
        timeout,
        request_id=request_id,
        partial_stdout=partial_stdout,
        partial_stderr=partial_stderr,
    )
