"""
Call-setup diagram: pairs INVITE and ACK per (Call-ID, CSeq) and lays the
setups out as lanes and boxes for the timeline diagram editor.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .correlation import palette_color
from .records import Record, RecordKind, SipMessage

logger = logging.getLogger(__name__)

DIAGRAM_TITLE = "SIP Call Setup (INVITE → ACK)"
DIAGRAM_CONFIG = {
    "timeFormatThreshold": 1000,
    "showAlignmentLines": True,
    "showBoxLabels": True,
}
MIN_BOX_DURATION_MS = 1


class DiagramStatus(str, Enum):
    OK = "ok"
    NO_RECORDS = "no-records"
    NO_PAIRS = "no-pairs"


@dataclass
class CallSetup:
    call_id: str
    cseq: int
    invite_time: int
    ack_time: int
    from_uri: str
    to_uri: str

    @property
    def duration(self) -> int:
        return self.ack_time - self.invite_time


@dataclass
class PairingResult:
    setups: List[CallSetup] = field(default_factory=list)
    # INVITEs still waiting for an ACK when the trace ends.
    pending: Dict[Tuple[str, int], SipMessage] = field(default_factory=dict)
    orphan_acks: List[SipMessage] = field(default_factory=list)
    endpoints: Dict[str, Tuple[str, str]] = field(default_factory=dict)


@dataclass
class DiagramOutcome:
    status: DiagramStatus
    setups: List[CallSetup] = field(default_factory=list)
    payload: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == DiagramStatus.OK


def format_start_time(ms: int) -> str:
    """Diagram start time: "HH:MM:SS mmm"."""
    hours = ms // 3600000
    minutes = (ms % 3600000) // 60000
    seconds = (ms % 60000) // 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d} {ms % 1000:03d}"


def pair_call_setups(records: Iterable[Record], enabled_call_ids: Iterable[str] = ()) -> PairingResult:
    """
    Match each ACK to the pending INVITE with the same (Call-ID, CSeq).

    The first INVITE of a key wins; a matched INVITE is consumed so a later ACK
    cannot pair with it again. An empty `enabled_call_ids` includes every Call-ID.
    """
    enabled = frozenset(enabled_call_ids)
    result = PairingResult()

    for msg in records:
        if msg.kind != RecordKind.SIP:
            continue
        if not msg.call_id or msg.cseq is None:
            continue
        if enabled and msg.call_id not in enabled:
            continue

        key = (msg.call_id, msg.cseq)
        if msg.method == "INVITE":
            result.endpoints.setdefault(msg.call_id, (msg.from_uri, msg.to_uri))
            if key not in result.pending:
                result.pending[key] = msg
        elif msg.method == "ACK":
            invite = result.pending.pop(key, None)
            if invite is None:
                result.orphan_acks.append(msg)
                continue
            result.setups.append(
                CallSetup(
                    call_id=msg.call_id,
                    cseq=msg.cseq,
                    invite_time=invite.timestamp,
                    ack_time=msg.timestamp,
                    from_uri=invite.from_uri,
                    to_uri=invite.to_uri,
                )
            )

    return result


def build_diagram_payload(
    setups: Sequence[CallSetup],
    endpoints: Dict[str, Tuple[str, str]],
    title: str = DIAGRAM_TITLE,
) -> Dict[str, Any]:
    origin = min(s.invite_time for s in setups)
    cids = sorted({s.call_id for s in setups})

    lanes = []
    for index, cid in enumerate(cids):
        from_uri, to_uri = endpoints.get(cid, ("", ""))
        lanes.append({
            "id": index + 1,
            "name": f"{cid} | f:{from_uri or '?'} → t:{to_uri or '?'}",
            "color": palette_color(index),
        })

    lane_ids = {cid: i + 1 for i, cid in enumerate(cids)}
    boxes = []
    for n, setup in enumerate(setups, start=1):
        lane_id = lane_ids[setup.call_id]
        boxes.append({
            "id": f"box-{n}",
            "laneId": lane_id,
            "startOffset": setup.invite_time - origin,
            "duration": max(setup.duration, MIN_BOX_DURATION_MS),
            "color": palette_color(lane_id - 1),
            "label": f"CSeq {setup.cseq} ({setup.duration}ms)",
        })

    return {
        "title": title,
        "startTime": format_start_time(origin),
        "lanes": lanes,
        "boxes": boxes,
        "config": dict(DIAGRAM_CONFIG),
    }


def generate_call_setup_diagram(
    records: Sequence[Record],
    enabled_call_ids: Iterable[str] = (),
    title: str = DIAGRAM_TITLE,
) -> DiagramOutcome:
    """
    Build the call-setup diagram for the enabled Call-IDs.

    Returns a DiagramOutcome whose status separates "no records at all" from
    "records but no INVITE/ACK pair"; neither is an error.
    """
    if not records:
        return DiagramOutcome(status=DiagramStatus.NO_RECORDS)

    pairing = pair_call_setups(records, enabled_call_ids)
    if not pairing.setups:
        logger.info("No INVITE → ACK pairs among %d records", len(records))
        return DiagramOutcome(status=DiagramStatus.NO_PAIRS)

    payload = build_diagram_payload(pairing.setups, pairing.endpoints, title)
    logger.debug("Call-setup diagram: %d lanes, %d boxes", len(payload["lanes"]), len(payload["boxes"]))
    return DiagramOutcome(status=DiagramStatus.OK, setups=pairing.setups, payload=payload)
