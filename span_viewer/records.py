"""
Record types produced by the SIP Span parser.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

# refid value meaning "no correlation" (unset 32-bit unsigned)
REFERENCE_SENTINEL = "4294967295"


class RecordKind(str, Enum):
    SIP = "sip"
    EVENT = "event"
    REQUEST = "request"


class Direction(str, Enum):
    OUTBOUND = "->"
    INBOUND = "<-"


@dataclass
class SpanRecord:
    """Fields shared by every record variant."""
    identity: int
    timestamp: int  # ms since local midnight
    time_str: str
    raw_line: str

    def __post_init__(self):
        # Derived once per parse pass by the delta engine.
        self.sequential_delta: Optional[int] = None


@dataclass
class SipMessage(SpanRecord):
    direction: Direction = Direction.OUTBOUND
    method: str = ""
    is_response: bool = False
    from_uri: str = ""
    to_uri: str = ""
    cseq: Optional[int] = None
    cseq_method: str = ""
    call_id: str = ""
    content_type: str = ""

    @property
    def kind(self) -> RecordKind:
        return RecordKind.SIP


@dataclass
class _TelephonyMessage(SpanRecord):
    message_type: str = ""
    dn: str = ""
    odn: str = ""
    conn_id: str = ""
    ref_id: str = ""
    msg_id: str = ""


@dataclass
class EventMessage(_TelephonyMessage):
    def __post_init__(self):
        super().__post_init__()
        self.round_trip_delta: Optional[int] = None

    @property
    def kind(self) -> RecordKind:
        return RecordKind.EVENT

    @property
    def direction(self) -> Direction:
        return Direction.OUTBOUND


@dataclass
class RequestMessage(_TelephonyMessage):
    @property
    def kind(self) -> RecordKind:
        return RecordKind.REQUEST

    @property
    def direction(self) -> Direction:
        return Direction.INBOUND


Record = Union[SipMessage, EventMessage, RequestMessage]


def is_reference(ref_id: Optional[str]) -> bool:
    """True for a Reference-ID that actually correlates records."""
    return bool(ref_id) and ref_id != REFERENCE_SENTINEL


def reference_of(record: Record) -> str:
    """Reference-ID of an Event/Request record, or "" for SIP and sentinel values."""
    ref_id = getattr(record, "ref_id", "")
    return ref_id if is_reference(ref_id) else ""
