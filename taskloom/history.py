"""Bounded in-memory record of past workflow runs."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional

from .constants import DEFAULT_HISTORY_SIZE
from .contracts import HistoryEntry

logger = logging.getLogger(__name__)


class ExecutionHistory:
    """Keep the most recent workflow runs in local memory.

    Oldest entries are dropped once ``max_size`` is exceeded. Nothing is
    persisted; the history lives as long as the engine that owns it.
    """

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._entries.maxlen or 0

    def record(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)
        logger.debug(
            f"Recorded run of workflow {entry.workflow_id} (success={entry.success})"
        )

    def list(self) -> List[HistoryEntry]:
        """Return entries oldest to newest."""
        return list(self._entries)

    def last(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Execution history cleared")

    def __len__(self) -> int:
        return len(self._entries)
