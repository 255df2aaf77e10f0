"""
Saved-log store: a newest-first JSON list of raw traces and their bookmarks.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

MAX_SAVED_LOGS = 20
CID_PREVIEW_COUNT = 5


class SaveStatus(str, Enum):
    SAVED = "saved"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    LIMIT_REACHED = "limit-reached"


@dataclass
class SaveResult:
    status: SaveStatus
    record: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == SaveStatus.SAVED


class SavedLogStore:
    """
    Persists saved-log records to a JSON file.

    The store never evicts on its own; when the limit is reached `save()`
    reports LIMIT_REACHED and the caller decides whether to `evict_oldest()`.
    """

    def __init__(self, path, max_logs: int = MAX_SAVED_LOGS):
        self.path = Path(path)
        self.max_logs = max_logs

    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Saved logs at %s are unreadable, starting empty: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.warning("Saved logs at %s are not a list, starting empty", self.path)
            return []
        return [d for d in data if isinstance(d, dict) and "id" in d]

    def _write(self, logs: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(logs, indent=2, ensure_ascii=False), encoding="utf-8")

    def list(self) -> List[Dict[str, Any]]:
        return self._read()

    def get(self, log_id: str) -> Optional[Dict[str, Any]]:
        for log in self._read():
            if log.get("id") == log_id:
                return log
        return None

    def save(
        self,
        content: str,
        result,
        sip_bookmarks: Sequence[int] = (),
        kazimir_bookmarks: Sequence[int] = (),
    ) -> SaveResult:
        """
        Store a parsed trace.

        Args:
            content: Raw trace text
            result: ParseResult of `content`
            sip_bookmarks: Identities bookmarked in the message grid
            kazimir_bookmarks: Identities bookmarked in the DN grid
        """
        content = content.strip()
        if not content or result.is_empty:
            return SaveResult(SaveStatus.EMPTY)

        logs = self._read()
        if any(log.get("content") == content for log in logs):
            return SaveResult(SaveStatus.DUPLICATE)
        if len(logs) >= self.max_logs:
            return SaveResult(SaveStatus.LIMIT_REACHED)

        now_ms = int(time.time() * 1000)
        log_id = f"log_{now_ms}"
        existing = {log.get("id") for log in logs}
        suffix = 1
        while log_id in existing:
            log_id = f"log_{now_ms}_{suffix}"
            suffix += 1

        cids = list(result.index.call_ids.keys())
        record = {
            "id": log_id,
            "savedAt": now_ms,
            "messageCount": len(result.records),
            "cidCount": len(cids),
            "cids": cids[:CID_PREVIEW_COUNT],
            "content": content,
            "sipBookmarks": list(sip_bookmarks),
            "kazimirBookmarks": list(kazimir_bookmarks),
        }
        logs.insert(0, record)
        self._write(logs)
        logger.info("Saved log %s (%d messages)", log_id, record["messageCount"])
        return SaveResult(SaveStatus.SAVED, record)

    def update_bookmarks(self, log_id: str, sip_bookmarks: Sequence[int], kazimir_bookmarks: Sequence[int]) -> bool:
        logs = self._read()
        for log in logs:
            if log.get("id") == log_id:
                log["sipBookmarks"] = list(sip_bookmarks)
                log["kazimirBookmarks"] = list(kazimir_bookmarks)
                self._write(logs)
                return True
        return False

    def delete(self, log_id: str) -> bool:
        logs = self._read()
        kept = [log for log in logs if log.get("id") != log_id]
        if len(kept) == len(logs):
            return False
        self._write(kept)
        logger.info("Deleted log %s", log_id)
        return True

    def evict_oldest(self) -> Optional[str]:
        logs = self._read()
        if not logs:
            return None
        # List is newest-first; scan from the tail so ties resolve to the older entry.
        oldest = min(reversed(logs), key=lambda log: log.get("savedAt") or 0)
        self._write([log for log in logs if log is not oldest])
        logger.info("Evicted oldest log %s", oldest.get("id"))
        return oldest.get("id")

    def clear(self) -> None:
        self._write([])
