"""
SIP Span log parser: turns raw trace text into typed records.

A trace mixes three line shapes:

    HH:MM:SS.mmm ->INVITE [f: FROM |t: TO |cs: 1 INVITE | CALLID] application/sdp
    HH:MM:SS.mmm EventRinging(dn=...|odn=...|connid=...|refid=...|msgid=...)
    HH:MM:SS.mmm RequestMakeCall(dn=...|odn=...|connid=...|refid=...|msgid=...)

Anything else is dropped and counted.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .correlation import CorrelationIndex, build_index
from .deltas import assign_round_trip_deltas, assign_sequential_deltas
from .records import (
    Direction,
    EventMessage,
    Record,
    RecordKind,
    RequestMessage,
    SipMessage,
    SpanRecord,
)

logger = logging.getLogger(__name__)


TIMESTAMP_PATTERN = r"(\d{2}):(\d{2}):(\d{2})\.(\d{3})"

SIP_LINE_RE = re.compile(
    TIMESTAMP_PATTERN + r"\s+(<-|->)(\d{3}|\w+)\s+\[([^\]]+)\](.*)$"
)
TELEPHONY_LINE_RE = re.compile(
    TIMESTAMP_PATTERN + r"\s+((Event|Request)[A-Z]\w*)\(([^),]*)\)"
)

FROM_RE = re.compile(r"f:\s*([^|]*)")
TO_RE = re.compile(r"t:\s*([^|]*)")
CSEQ_RE = re.compile(r"cs:\s*(\d+)\s+(\w+)")
CALL_ID_RE = re.compile(r"\|\s*([A-Za-z][\w-]*\d+)\s*$")
CONTENT_TYPE_RE = re.compile(r"^(application/[\w.-]+|text/[\w.-]+)")
STATUS_CODE_RE = re.compile(r"\d{3}")

# Parameters are matched independently; the boundary keeps "dn" from matching inside "odn".
PARAM_RES = {
    name: re.compile(r"(?:^|\|)\s*" + name + r"='?([^'|]*)'?")
    for name in ("dn", "odn", "connid", "refid", "msgid")
}
NULLABLE_PARAMS = ("dn", "odn")


def decode_timestamp(hours: str, minutes: str, seconds: str, millis: str) -> Optional[int]:
    """Decode HH, MM, SS, mmm into milliseconds since midnight, or None when out of range."""
    try:
        h, m, s, ms = int(hours), int(minutes), int(seconds), int(millis)
    except ValueError:
        return None
    if h > 23 or m > 59 or s > 59:
        return None
    return ((h * 60 + m) * 60 + s) * 1000 + ms


def parse_timestamp(time_str: str) -> Optional[int]:
    """Parse a "HH:MM:SS.mmm" token into milliseconds since midnight."""
    match = re.fullmatch(TIMESTAMP_PATTERN, time_str.strip())
    if not match:
        return None
    return decode_timestamp(*match.groups())


def parse_event_params(params: str) -> Dict[str, str]:
    result = {}
    for name, regex in PARAM_RES.items():
        match = regex.search(params)
        value = match.group(1).strip() if match else ""
        if name in NULLABLE_PARAMS and value == "null":
            value = ""
        result[name] = value
    return result


def _parse_sip(match: re.Match, line: str, identity: int) -> Optional[SipMessage]:
    hh, mm, ss, ms, direction, method, bracketed, rest = match.groups()
    timestamp = decode_timestamp(hh, mm, ss, ms)
    if timestamp is None:
        return None

    from_match = FROM_RE.search(bracketed)
    to_match = TO_RE.search(bracketed)
    cseq_match = CSEQ_RE.search(bracketed)
    cid_match = CALL_ID_RE.search(bracketed)
    content_match = CONTENT_TYPE_RE.match(rest.strip())

    cseq = None
    cseq_method = ""
    if cseq_match:
        try:
            cseq = int(cseq_match.group(1))
        except ValueError:
            cseq = None
        cseq_method = cseq_match.group(2)

    return SipMessage(
        identity=identity,
        timestamp=timestamp,
        time_str=f"{hh}:{mm}:{ss}.{ms}",
        raw_line=line,
        direction=Direction(direction),
        method=method,
        is_response=bool(STATUS_CODE_RE.fullmatch(method)),
        from_uri=from_match.group(1).strip() if from_match else "",
        to_uri=to_match.group(1).strip() if to_match else "",
        cseq=cseq,
        cseq_method=cseq_method,
        call_id=cid_match.group(1) if cid_match else "",
        content_type=content_match.group(1) if content_match else "",
    )


def _parse_telephony(match: re.Match, line: str, identity: int) -> Optional[Union[EventMessage, RequestMessage]]:
    hh, mm, ss, ms, message_type, prefix, params = match.groups()
    timestamp = decode_timestamp(hh, mm, ss, ms)
    if timestamp is None:
        return None

    p = parse_event_params(params)
    cls = EventMessage if prefix == "Event" else RequestMessage
    return cls(
        identity=identity,
        timestamp=timestamp,
        time_str=f"{hh}:{mm}:{ss}.{ms}",
        raw_line=line,
        message_type=message_type,
        dn=p["dn"],
        odn=p["odn"],
        conn_id=p["connid"],
        ref_id=p["refid"],
        msg_id=p["msgid"],
    )


def classify_line(line: str, identity: int = 0) -> Optional[Record]:
    """
    Turn one line of trace text into a typed record.

    Args:
        line: Raw line, surrounding whitespace is ignored
        identity: Identity to stamp on the record if the line is recognized

    Returns:
        SipMessage, EventMessage or RequestMessage, or None for blank and
        unrecognized lines
    """
    trimmed = line.strip()
    if not trimmed:
        return None

    sip_match = SIP_LINE_RE.match(trimmed)
    if sip_match:
        return _parse_sip(sip_match, trimmed, identity)

    tel_match = TELEPHONY_LINE_RE.match(trimmed)
    if tel_match:
        return _parse_telephony(tel_match, trimmed, identity)

    return None


@dataclass
class ParseContext:
    """All mutable state of a single parse pass."""
    records: List[Record] = field(default_factory=list)
    dropped_lines: List[int] = field(default_factory=list)
    dropped_text: Dict[int, str] = field(default_factory=dict)
    next_identity: int = 0

    def take_identity(self) -> int:
        identity = self.next_identity
        self.next_identity += 1
        return identity


@dataclass
class ParseResult:
    records: List[Record]
    index: CorrelationIndex
    dropped_lines: List[int]
    dropped_text: Dict[int, str]

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_lines)

    def by_identity(self) -> Dict[int, Record]:
        return {r.identity: r for r in self.records}

    def sip_messages(self) -> List[SipMessage]:
        return [r for r in self.records if isinstance(r, SipMessage)]


class SpanParser:
    """Parser for SIP Span trace text."""

    def __init__(self):
        self.result: Optional[ParseResult] = None
        self._lock = threading.Lock()

    @property
    def records(self) -> List[Record]:
        return self.result.records if self.result else []

    def parse_text(self, text: str) -> ParseResult:
        """
        Parse a whole trace and compute correlation and per-key deltas.

        Each call starts from a fresh ParseContext; nothing carries over from
        a previous parse.
        """
        with self._lock:
            ctx = ParseContext()
            for line_no, line in enumerate(text.splitlines(), start=1):
                if not line.strip():
                    continue
                record = classify_line(line, ctx.next_identity)
                if record is None:
                    ctx.dropped_lines.append(line_no)
                    ctx.dropped_text[line_no] = line.strip()
                    continue
                ctx.take_identity()
                ctx.records.append(record)

            index = build_index(ctx.records)
            assign_sequential_deltas(ctx.records)
            assign_round_trip_deltas(ctx.records)

            result = ParseResult(
                records=ctx.records,
                index=index,
                dropped_lines=ctx.dropped_lines,
                dropped_text=ctx.dropped_text,
            )
            logger.debug(
                "Parsed %d records (%d call-ids, %d conn-ids), dropped %d lines",
                len(result.records), len(index.call_ids), len(index.conn_ids), result.dropped_count,
            )
            self.result = result
            return result

    def parse_file(self, file_path: str) -> ParseResult:
        """
        Parse a trace file.

        Raises:
            FileNotFoundError: If file doesn't exist
            UnicodeDecodeError: If the file is not UTF-8 text
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        logger.info("Parsing %s", path)
        return self.parse_text(path.read_text(encoding="utf-8"))


