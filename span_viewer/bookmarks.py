"""
Bookmarks: per-view selections of rows, kept in timestamp order.

Bookmarks hold record identities rather than row objects, so a saved list of
identities can be restored against a fresh parse of the same text.
"""
from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bookmark:
    identity: int
    timestamp: int
    display_time: str

    @property
    def sort_key(self):
        return (self.timestamp, self.identity)


@dataclass(frozen=True)
class BookmarkStep:
    bookmark: Bookmark
    step_delta: Optional[int]  # gap to the previous bookmark
    cumulative: int  # gap from the first bookmark


class BookmarkSet:
    """Ordered selection for one view."""

    def __init__(self, name: str):
        self.name = name
        self._items: List[Bookmark] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Bookmark]:
        return iter(self._items)

    def __contains__(self, identity: object) -> bool:
        return any(b.identity == identity for b in self._items)

    def toggle(self, identity: int, timestamp: int, display_time: str = "") -> bool:
        """
        Remove the identity if bookmarked, otherwise add it.

        Returns True when the identity is bookmarked after the call.
        """
        for i, existing in enumerate(self._items):
            if existing.identity == identity:
                del self._items[i]
                return False
        bookmark = Bookmark(identity, timestamp, display_time)
        keys = [b.sort_key for b in self._items]
        self._items.insert(bisect.bisect_right(keys, bookmark.sort_key), bookmark)
        return True

    def clear(self) -> None:
        self._items.clear()

    def identities(self) -> List[int]:
        return [b.identity for b in self._items]

    def steps(self) -> List[BookmarkStep]:
        out: List[BookmarkStep] = []
        if not self._items:
            return out
        first = self._items[0].timestamp
        previous: Optional[int] = None
        for b in self._items:
            out.append(
                BookmarkStep(
                    bookmark=b,
                    step_delta=b.timestamp - previous if previous is not None else None,
                    cumulative=b.timestamp - first,
                )
            )
            previous = b.timestamp
        return out

    def restore(self, identities: Iterable[int], lookup: Mapping[int, Any]) -> int:
        """
        Rebuild from a saved identity list.

        `lookup` maps identity → row (anything with `timestamp` and `time_str`).
        Identities missing from the lookup are skipped. Returns how many were
        restored.
        """
        self.clear()
        restored = 0
        for identity in identities:
            row = lookup.get(identity)
            if row is None:
                logger.debug("%s: bookmark %s not found in current parse", self.name, identity)
                continue
            if identity in self:
                continue
            self.toggle(identity, row.timestamp, getattr(row, "time_str", ""))
            restored += 1
        return restored


class BookmarkTracker:
    """The two independent bookmark sets: message grid and DN grid."""

    MESSAGES = "messages"
    DN_GRID = "dn_grid"

    def __init__(self):
        self.messages = BookmarkSet(self.MESSAGES)
        self.dn_grid = BookmarkSet(self.DN_GRID)

    def view(self, name: str) -> BookmarkSet:
        if name == self.MESSAGES:
            return self.messages
        if name in (self.DN_GRID, "dn-grid"):
            return self.dn_grid
        raise ValueError(f"Unknown bookmark view: {name}")

    def clear(self) -> None:
        self.messages.clear()
        self.dn_grid.clear()

    def to_saved(self) -> Dict[str, List[int]]:
        """Identity lists under the saved-log record keys."""
        return {
            "sipBookmarks": self.messages.identities(),
            "kazimirBookmarks": self.dn_grid.identities(),
        }

    def restore_saved(self, saved: Mapping[str, Any], message_rows: Mapping[int, Any], grid_rows: Mapping[int, Any]) -> None:
        self.messages.restore(saved.get("sipBookmarks") or [], message_rows)
        self.dn_grid.restore(saved.get("kazimirBookmarks") or [], grid_rows)
