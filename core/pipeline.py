"""
Cooperative cancellation shared by the mix and mastering passes.

Both passes await checkpoint() between stages. The ``asyncio.sleep(0)``
lets a pending ``Task.cancel()`` land at a stage boundary, and an optional
``asyncio.Event`` token gives callers cancellation without owning the task.
"""

from __future__ import annotations

import asyncio


class PassCancelledError(RuntimeError):
    """Raised at a stage boundary when the pass's cancel token is set.

    Stages that already ran stay applied to the effects; call ``reset()``
    to discard them.
    """

    def __init__(self, stage: str) -> None:
        super().__init__(f"Pass cancelled before stage {stage!r}")
        self.stage = stage


async def checkpoint(cancel: asyncio.Event | None, stage: str) -> None:
    """Yield to the event loop, then honour the cancel token.

    Args:
        cancel: Optional token; when set, the pass stops here.
        stage:  Name of the stage about to run (reported in the error).

    Raises:
        PassCancelledError: If ``cancel`` is set.
    """
    await asyncio.sleep(0)
    if cancel is not None and cancel.is_set():
        raise PassCancelledError(stage)
