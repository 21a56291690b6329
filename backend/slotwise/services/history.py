from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from slotwise.schemas.session import HistorySummary, HistoryTimelineEntry
from slotwise.services.grid import Grid, deep_copy


def add_to_history(
    history: Sequence[Grid],
    index: int,
    grid: Grid,
    *,
    max_entries: int | None = None,
) -> tuple[list[Grid], int]:
    """Drop everything after ``index``, append a deep copy of ``grid``.

    When ``max_entries`` is exceeded the oldest snapshots are discarded.
    """
    updated = list(history[: index + 1])
    updated.append(deep_copy(grid))
    if max_entries is not None and len(updated) > max_entries:
        del updated[: len(updated) - max_entries]
    return updated, len(updated) - 1


def can_undo(index: int) -> bool:
    return index > 0


def can_redo(history: Sequence[Grid], index: int) -> bool:
    return index < len(history) - 1


def undo(history: Sequence[Grid], index: int) -> tuple[Grid, int] | None:
    if not can_undo(index):
        return None
    return deep_copy(history[index - 1]), index - 1


def redo(history: Sequence[Grid], index: int) -> tuple[Grid, int] | None:
    if not can_redo(history, index):
        return None
    return deep_copy(history[index + 1]), index + 1


@dataclass(frozen=True)
class HistoryEntry:
    grid: Grid
    action: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict = field(default_factory=dict)


class HistoryManager:
    """Undo/redo stack of one session, bounded at ``max_entries`` snapshots."""

    def __init__(self, initial: Grid, *, max_entries: int = 50) -> None:
        self.max_entries = max(1, max_entries)
        self._entries: list[HistoryEntry] = [HistoryEntry(grid=deep_copy(initial), action="initial")]
        self.index = 0

    def __len__(self) -> int:
        return len(self._entries)

    def current(self) -> Grid:
        return deep_copy(self._entries[self.index].grid)

    def record(self, grid: Grid, action: str, details: dict | None = None) -> None:
        entries = self._entries[: self.index + 1]
        entries.append(HistoryEntry(grid=deep_copy(grid), action=action, details=dict(details or {})))
        if len(entries) > self.max_entries:
            del entries[: len(entries) - self.max_entries]
        self._entries = entries
        self.index = len(entries) - 1

    def can_undo(self) -> bool:
        return can_undo(self.index)

    def can_redo(self) -> bool:
        return can_redo(self._entries, self.index)

    def undo(self) -> Grid | None:
        if not self.can_undo():
            return None
        self.index -= 1
        return self.current()

    def redo(self) -> Grid | None:
        if not self.can_redo():
            return None
        self.index += 1
        return self.current()

    def clear(self, grid: Grid) -> None:
        self._entries = [HistoryEntry(grid=deep_copy(grid), action="initial")]
        self.index = 0

    def timeline(self, limit: int = 10) -> list[HistoryTimelineEntry]:
        start = max(0, len(self._entries) - limit)
        return [
            HistoryTimelineEntry(
                position=position,
                action=entry.action,
                timestamp=entry.timestamp,
                occupied_cells=entry.grid.occupied_count(),
                is_current=position == self.index,
                details=entry.details,
            )
            for position, entry in enumerate(self._entries[start:], start=start)
        ]

    def summary(self) -> HistorySummary:
        return HistorySummary(
            total_states=len(self._entries),
            current_index=self.index,
            can_undo=self.can_undo(),
            can_redo=self.can_redo(),
        )
