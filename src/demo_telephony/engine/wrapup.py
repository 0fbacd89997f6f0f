"""Post-call wrap-up timers.

Each entry moves NONE → PENDING when the agent's interaction fully ends and
PENDING → COMPLETED either when its timer fires or when the agent finishes
wrap-up early. Only a firing timer reports completion to the owner.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from enum import StrEnum

logger = logging.getLogger(__name__)

DEFAULT_WRAPUP_DELAY = 5.0


class WrapupState(StrEnum):
    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"


@dataclasses.dataclass
class WrapupEntry:
    call_id: str
    deadline: float
    handle: asyncio.TimerHandle | None = None
    state: WrapupState = WrapupState.PENDING


class WrapupTimerManager:
    """Schedules and cancels one wrap-up timer per ended interaction."""

    def __init__(
        self,
        on_fire: Callable[[str], None],
        delay: float = DEFAULT_WRAPUP_DELAY,
    ) -> None:
        self._on_fire = on_fire
        self.delay = delay
        self._entries: dict[str, WrapupEntry] = {}

    def state(self, call_id: str) -> WrapupState:
        entry = self._entries.get(call_id)
        return entry.state if entry is not None else WrapupState.NONE

    @property
    def pending(self) -> list[str]:
        return list(self._entries)

    def schedule(self, call_id: str) -> bool:
        """Start the wrap-up timer for *call_id*.

        Returns False without touching the existing timer when one is
        already pending for the same call.
        """
        if call_id in self._entries:
            logger.debug("Wrap-up already pending for %s", call_id)
            return False
        loop = asyncio.get_running_loop()
        entry = WrapupEntry(call_id=call_id, deadline=loop.time() + self.delay)
        entry.handle = loop.call_at(entry.deadline, self._fire, call_id)
        self._entries[call_id] = entry
        logger.info("Wrap-up pending for %s (%.1fs)", call_id, self.delay)
        return True

    def cancel(self, call_id: str) -> bool:
        entry = self._entries.pop(call_id, None)
        if entry is None:
            return False
        _complete(entry)
        logger.debug("Wrap-up for %s cancelled", call_id)
        return True

    def cancel_all(self) -> list[str]:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            _complete(entry)
        return [entry.call_id for entry in entries]

    def _fire(self, call_id: str) -> None:
        # Popping first makes a racing cancel() a no-op and vice versa.
        entry = self._entries.pop(call_id, None)
        if entry is None:
            return
        _complete(entry)
        logger.info("Wrap-up timer fired for %s", call_id)
        self._on_fire(call_id)


def _complete(entry: WrapupEntry) -> None:
    entry.state = WrapupState.COMPLETED
    if entry.handle is not None:
        entry.handle.cancel()
        entry.handle = None
