"""
Device Number grid: Events and Requests laid out one column per DN.

This is an independent pass over the raw text. It shares the classifier's
Event/Request line pattern but keeps its own rows and identities.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .records import RecordKind, is_reference
from .span_parser import TELEPHONY_LINE_RE, decode_timestamp, parse_event_params

logger = logging.getLogger(__name__)

DEFAULT_SWITCH_SUFFIX = "_SW"


class ColumnKind(str, Enum):
    DN = "dn"
    NO_DN = "no-dn"
    SWITCH = "switch"


@dataclass(frozen=True)
class GridColumn:
    kind: ColumnKind
    key: str
    label: str


@dataclass
class GridRow:
    identity: int
    kind: RecordKind
    timestamp: int
    time_str: str
    message_type: str
    dn: str
    odn: str
    conn_id: str
    ref_id: str
    msg_id: str
    is_switch: bool
    raw_line: str
    delta_from_previous: Optional[int] = None
    delta_from_matching_request: Optional[int] = None


@dataclass
class DnGrid:
    rows: List[GridRow] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    has_no_dn_column: bool = False
    switch_dn: Optional[str] = None

    def column_layout(self) -> List[GridColumn]:
        """DN columns in first-appearance order, then the no-DN column, then the switch column."""
        layout = [GridColumn(ColumnKind.DN, dn, dn) for dn in self.columns]
        if self.has_no_dn_column:
            layout.append(GridColumn(ColumnKind.NO_DN, "", "(no DN)"))
        if self.switch_dn is not None:
            layout.append(GridColumn(ColumnKind.SWITCH, self.switch_dn, self.switch_dn))
        return layout

    def column_for(self, row: GridRow) -> Optional[int]:
        """
        Index into column_layout() of the single column a row is drawn in.

        Every switch row lands in the switch column, whose label is the last
        switch DN seen. None means the row is drawn empty.
        """
        if not row.dn:
            return len(self.columns) if self.has_no_dn_column else None
        if row.is_switch:
            if self.switch_dn is None:
                return None
            return len(self.columns) + (1 if self.has_no_dn_column else 0)
        try:
            return self.columns.index(row.dn)
        except ValueError:
            return None

    @property
    def is_empty(self) -> bool:
        return not self.rows


class DnGridBuilder:
    """Builds a DnGrid from raw trace text."""

    def __init__(self, switch_suffix: str = DEFAULT_SWITCH_SUFFIX):
        self.switch_suffix = switch_suffix

    def is_switch(self, dn: str) -> bool:
        return bool(dn) and dn.endswith(self.switch_suffix)

    def build(self, text: str) -> DnGrid:
        grid = DnGrid()
        seen_dns = set()
        first_request_time: Dict[str, int] = {}
        previous_time: Optional[int] = None

        for line in text.splitlines():
            trimmed = line.strip()
            if not trimmed:
                continue
            match = TELEPHONY_LINE_RE.match(trimmed)
            if not match:
                continue
            hh, mm, ss, ms, message_type, prefix, params = match.groups()
            timestamp = decode_timestamp(hh, mm, ss, ms)
            if timestamp is None:
                continue

            p = parse_event_params(params)
            dn = p["dn"]
            kind = RecordKind.EVENT if prefix == "Event" else RecordKind.REQUEST
            row = GridRow(
                identity=len(grid.rows),
                kind=kind,
                timestamp=timestamp,
                time_str=f"{hh}:{mm}:{ss}.{ms}",
                message_type=message_type,
                dn=dn,
                odn=p["odn"],
                conn_id=p["connid"],
                ref_id=p["refid"],
                msg_id=p["msgid"],
                is_switch=self.is_switch(dn),
                raw_line=trimmed,
            )

            if not dn:
                grid.has_no_dn_column = True
            elif row.is_switch:
                grid.switch_dn = dn  # last one wins
            elif dn not in seen_dns:
                seen_dns.add(dn)
                grid.columns.append(dn)

            row.delta_from_previous = timestamp - previous_time if previous_time is not None else None
            previous_time = timestamp

            if is_reference(row.ref_id):
                if kind == RecordKind.REQUEST:
                    first_request_time.setdefault(row.ref_id, timestamp)
                else:
                    started = first_request_time.get(row.ref_id)
                    row.delta_from_matching_request = timestamp - started if started is not None else None

            grid.rows.append(row)

        logger.debug(
            "DN grid: %d rows, %d DN columns, no-DN=%s, switch=%s",
            len(grid.rows), len(grid.columns), grid.has_no_dn_column, grid.switch_dn,
        )
        return grid
