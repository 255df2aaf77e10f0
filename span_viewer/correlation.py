"""
Correlation index: color slots for Call-IDs and Connection-IDs, and
Reference-ID grouping.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .records import Record, RecordKind, is_reference, reference_of

# Ten-color palette shared by the message grid, the DN grid and the call-setup diagram.
PALETTE = [
    '#ff6b6b', '#4ecdc4', '#ffe66d', '#a78bfa', '#22d3ee',
    '#f472b6', '#34d399', '#fb923c', '#60a5fa', '#c084fc',
]
PALETTE_SIZE = len(PALETTE)


def palette_color(slot: int) -> str:
    return PALETTE[slot % PALETTE_SIZE]


@dataclass
class CorrelationIndex:
    """Key → palette slot maps in first-appearance order, plus Reference-ID groups."""
    call_ids: Dict[str, int] = field(default_factory=dict)
    conn_ids: Dict[str, int] = field(default_factory=dict)
    reference_groups: Dict[str, List[Record]] = field(default_factory=dict)

    def slot_for(self, record: Record) -> Optional[int]:
        """Palette slot used to color a record: Call-ID for SIP, Connection-ID otherwise."""
        if record.kind == RecordKind.SIP:
            return self.call_ids.get(record.call_id)
        return self.conn_ids.get(record.conn_id)

    def group(self, ref_id: str) -> List[Record]:
        return self.reference_groups.get(ref_id, [])


def build_index(records: Sequence[Record]) -> CorrelationIndex:
    """
    Scan records once, left to right.

    A key keeps the slot it got on first sight for the whole pass. Slots wrap
    modulo the palette size, so keys beyond the palette share colors.
    """
    index = CorrelationIndex()
    cid_counter = 0
    connid_counter = 0

    for record in records:
        if record.kind == RecordKind.SIP:
            if record.call_id and record.call_id not in index.call_ids:
                index.call_ids[record.call_id] = cid_counter % PALETTE_SIZE
                cid_counter += 1
        else:
            if record.conn_id and record.conn_id not in index.conn_ids:
                index.conn_ids[record.conn_id] = connid_counter % PALETTE_SIZE
                connid_counter += 1

        ref_id = reference_of(record)
        if ref_id:
            index.reference_groups.setdefault(ref_id, []).append(record)

    return index


__all__ = [
    "PALETTE",
    "PALETTE_SIZE",
    "CorrelationIndex",
    "build_index",
    "is_reference",
    "palette_color",
]
