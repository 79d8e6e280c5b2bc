"""Registry of pending cleanup actions.

Every Framework registers its teardown here at the start of before_each and
removes it at the start of after_each. If the run is aborted before the
normal teardown fires, the pytest plugin drains the registry so that every
still-pending action runs anyway.

Example:
    >>> registry = CleanupRegistry()
    >>> handle = registry.add(lambda: print("bye"))
    >>> registry.remove(handle)
    >>> registry.remove(handle)  # no-op
    >>> registry.drain()
    []
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

CleanupAction = Callable[[], object]


@dataclass(frozen=True, order=True)
class CleanupHandle:
    """Opaque reference to one registered cleanup action."""

    id: int


@dataclass(frozen=True)
class CleanupFailure:
    """An action that raised while the registry was drained."""

    handle: CleanupHandle
    error: BaseException


class CleanupRegistry:
    """Lock-protected, ordered collection of deferred cleanup actions.

    Handles are never reused within one registry, so a handle is unique among
    the live ones. Removing an unknown handle is a silent no-op.

    Thread Safety:
        add, remove and drain share one lock. Actions themselves run outside
        the lock so an action may touch the registry.
    """

    def __init__(self) -> None:
        self._actions: dict[CleanupHandle, CleanupAction] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._actions

    def add(self, action: CleanupAction) -> CleanupHandle:
        """Register an action and return its handle.

        Args:
            action: Zero-argument callable to run on drain.

        Returns:
            Handle that can be passed to remove().
        """
        with self._lock:
            handle = CleanupHandle(next(self._ids))
            self._actions[handle] = action
        logger.debug("cleanup.action_added", handle=handle.id)
        return handle

    def remove(self, handle: CleanupHandle | None) -> None:
        """Unregister the action behind ``handle``, if it is still registered."""
        if handle is None:
            return
        with self._lock:
            removed = self._actions.pop(handle, None)
        if removed is not None:
            logger.debug("cleanup.action_removed", handle=handle.id)

    def drain(self) -> list[CleanupFailure]:
        """Run every registered action, last registered first.

        The registry is emptied before any action runs, so each action runs
        exactly once even if it registers or removes other actions. An action
        that raises is logged and recorded, and the remaining actions still
        run.

        Returns:
            Failures in the order they occurred. Empty if all actions succeeded.
        """
        with self._lock:
            pending = sorted(self._actions.items(), reverse=True)
            self._actions.clear()

        if pending:
            logger.info("cleanup.drain_started", pending=len(pending))

        failures: list[CleanupFailure] = []
        for handle, action in pending:
            try:
                action()
            except (KeyboardInterrupt, SystemExit):
                raise
            except BaseException as e:  # noqa: BLE001 - pytest outcomes are BaseExceptions
                logger.error(
                    "cleanup.drain_action_failed",
                    handle=handle.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failures.append(CleanupFailure(handle, e))

        if pending:
            logger.info("cleanup.drain_completed", ran=len(pending), failed=len(failures))
        return failures


__all__ = ["CleanupAction", "CleanupFailure", "CleanupHandle", "CleanupRegistry"]
