"""
Timing metrics over parsed records.

Three independent deltas:
  * per-key sequential delta (Call-ID for SIP, Reference-ID for Events/Requests),
    computed once per parse and stored on the record;
  * request → event round-trip delta via Reference-ID, stored on Event records;
  * cross-filter delta between consecutive *visible* records, recomputed from
    scratch on every filter change and never stored on a record.

Timestamps are expected to be non-decreasing within a key. Out-of-order input
gives negative deltas; they are reported by the parsing log, not clamped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from .records import Record, RecordKind, reference_of


def _correlation_key(record: Record) -> str:
    if record.kind == RecordKind.SIP:
        return record.call_id
    return reference_of(record)


def assign_sequential_deltas(records: Sequence[Record]) -> None:
    """Set `sequential_delta` on every record; None for the first record of its key."""
    last_seen: Dict[tuple, int] = {}
    for record in records:
        key = _correlation_key(record)
        if not key:
            record.sequential_delta = None
            continue
        # SIP Call-IDs and Reference-IDs live in separate key spaces.
        scoped = (record.kind == RecordKind.SIP, key)
        previous = last_seen.get(scoped)
        record.sequential_delta = record.timestamp - previous if previous is not None else None
        last_seen[scoped] = record.timestamp


def assign_round_trip_deltas(records: Sequence[Record]) -> None:
    """Set `round_trip_delta` on Events: time since the first earlier Request with the same Reference-ID."""
    first_request: Dict[str, int] = {}
    for record in records:
        if record.kind == RecordKind.REQUEST:
            ref_id = reference_of(record)
            if ref_id and ref_id not in first_request:
                first_request[ref_id] = record.timestamp
        elif record.kind == RecordKind.EVENT:
            ref_id = reference_of(record)
            started = first_request.get(ref_id) if ref_id else None
            record.round_trip_delta = record.timestamp - started if started is not None else None


@dataclass(frozen=True)
class FilterState:
    """
    What the message grid currently shows.

    An empty `enabled_call_ids` means every Call-ID is shown. The Call-ID
    filter only applies to SIP records that carry a Call-ID.
    """
    show_sip: bool = True
    show_events: bool = True
    show_requests: bool = True
    enabled_call_ids: FrozenSet[str] = field(default_factory=frozenset)

    def with_call_ids(self, call_ids: Iterable[str]) -> "FilterState":
        return FilterState(self.show_sip, self.show_events, self.show_requests, frozenset(call_ids))

    def call_id_enabled(self, call_id: str) -> bool:
        return not self.enabled_call_ids or call_id in self.enabled_call_ids

    def accepts(self, record: Record) -> bool:
        kind = record.kind
        if kind == RecordKind.SIP:
            if not self.show_sip:
                return False
            return not record.call_id or self.call_id_enabled(record.call_id)
        if kind == RecordKind.EVENT:
            return self.show_events
        return self.show_requests


@dataclass(frozen=True)
class VisibleRow:
    record: Record
    cross_delta: Optional[int]


def visible_records(records: Iterable[Record], filters: FilterState) -> List[Record]:
    return [r for r in records if filters.accepts(r)]


def compute_cross_filter_deltas(records: Iterable[Record]) -> List[VisibleRow]:
    """Delta to the immediately preceding record of the given sequence, regardless of key."""
    rows: List[VisibleRow] = []
    previous: Optional[int] = None
    for record in records:
        delta = record.timestamp - previous if previous is not None else None
        rows.append(VisibleRow(record=record, cross_delta=delta))
        previous = record.timestamp
    return rows


def apply_filters(records: Iterable[Record], filters: FilterState) -> List[VisibleRow]:
    """Visible rows for `filters`, with cross-filter deltas recomputed from scratch."""
    return compute_cross_filter_deltas(visible_records(records, filters))
