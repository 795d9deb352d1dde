from __future__ import annotations

from collections import deque
from typing import Deque, List, Set

from .utils import history_label

DEFAULT_CAPACITY = 20


class HistoryCache:
    """Bounded ring of recently submitted questions with a de-duplicated label view."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Purpose: Initialize an empty FIFO ring of literal question texts.
        Inputs/Outputs: Input is the ring capacity; no return value.
        Side Effects / State: Holds entries in memory for the life of the client.
        Dependencies: collections.deque with maxlen enforces eviction.
        Failure Modes: Raises ValueError for a non-positive capacity.
        If Removed: History chips and question recall disappear from the UI.
        Testing Notes: Record capacity + 1 entries and ensure the oldest is gone.
        """
        if capacity <= 0:
            raise ValueError("history capacity must be positive")
        self._entries: Deque[str] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[str]:
        """Return stored texts, oldest first."""
        return list(self._entries)

    def record(self, text: str) -> None:
        """Purpose: Append a submitted question, evicting the oldest beyond capacity.
        Inputs/Outputs: Input is the normalized question text; no return value.
        Side Effects / State: Mutates the ring.
        Dependencies: deque(maxlen) drops from the left on overflow.
        Failure Modes: Empty text is ignored.
        If Removed: Recent questions are never remembered.
        Testing Notes: Duplicates are stored; de-duplication happens in recent_labels.
        """
        if not text:
            return
        self._entries.append(text)

    def recent_labels(self, limit: int = 6, display_cap: int = 8) -> List[str]:
        """Purpose: Build the chip labels for the most recent distinct questions.
        Inputs/Outputs: Inputs are the distinct-entry limit and display cap; output is
            labels ordered most-recent-first.
        Side Effects / State: None.
        Dependencies: Uses history_label for truncation.
        Failure Modes: None; returns an empty list when nothing is stored.
        If Removed: The presentation layer has no history chips to render.
        Testing Notes: Same text recorded three times yields a single label.
        """
        # Distinct on full text, then on label so equal chips never render twice.
        seen_texts: Set[str] = set()
        seen_labels: Set[str] = set()
        labels: List[str] = []
        for text in reversed(self._entries):
            if len(labels) >= limit:
                break
            if text in seen_texts:
                continue
            seen_texts.add(text)
            label = history_label(text)
            if label in seen_labels:
                continue
            seen_labels.add(label)
            labels.append(label)
        return labels[:display_cap]

    def resolve(self, label: str) -> str:
        """Map a display label back to the first stored full text producing it."""
        for text in self._entries:
            if history_label(text) == label:
                return text
        return label

    def remove(self, label: str) -> int:
        """Purpose: Forget a remembered question identified by its display label.
        Inputs/Outputs: Input is a label (or literal text); returns the count removed.
        Side Effects / State: Rebuilds the ring without every occurrence of the text.
        Dependencies: Uses resolve for label-to-text lookup.
        Failure Modes: Unknown labels remove nothing and return 0.
        If Removed: Users cannot delete history chips.
        Testing Notes: An evicted entry can no longer be removed.
        """
        text = self.resolve(label)
        kept = [entry for entry in self._entries if entry != text]
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = deque(kept, maxlen=self._entries.maxlen)
        return removed

    def reset(self) -> None:
        # History outlives a conversation reset; nothing to clear.
        return None
