"""
Utility functions for the SIP Span viewer: statistics and display helpers.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .records import RecordKind


@dataclass
class ParseStats:
    sip_messages: int
    call_ids: int
    invites: int
    events: int
    requests: int
    duration_ms: int


def summarize(result) -> ParseStats:
    """Counts and overall duration of a ParseResult."""
    records = result.records
    sip = [r for r in records if r.kind == RecordKind.SIP]

    duration = 0
    if len(records) > 1:
        times = [r.timestamp for r in records]
        duration = max(times) - min(times)

    return ParseStats(
        sip_messages=len(sip),
        call_ids=len(result.index.call_ids),
        invites=sum(1 for r in sip if r.method == "INVITE"),
        events=sum(1 for r in records if r.kind == RecordKind.EVENT),
        requests=sum(1 for r in records if r.kind == RecordKind.REQUEST),
        duration_ms=duration,
    )


def format_duration(ms: int) -> str:
    """
    Format a duration in human-readable form.

    Args:
        ms: Duration in milliseconds

    Returns:
        "850ms", "1.5s" or "2.0m"
    """
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    return f"{ms / 60000:.1f}m"


def format_delta(delta: Optional[int]) -> str:
    if delta is None:
        return "—"
    return f"{delta:+d}ms"


def delta_class(delta: Optional[int]) -> str:
    """Speed bucket used to color a delta badge."""
    if delta is None:
        return "first"
    if delta < 0:
        return "negative"
    if delta < 100:
        return "fast"
    if delta < 500:
        return "medium"
    return "slow"


def format_clock(ms: int) -> str:
    """Milliseconds since midnight as "HH:MM:SS.mmm"."""
    hours, rem = divmod(ms, 3600000)
    minutes, rem = divmod(rem, 60000)
    seconds, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def short_conn_id(conn_id: str) -> str:
    """Last eight characters of a Connection-ID, as shown in the grid."""
    return conn_id[-8:] if conn_id else "—"


def validate_trace_file(file_path: str) -> tuple[bool, str]:
    """
    Validate if a file appears to be a readable trace file.

    Args:
        file_path: Path to the file to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not os.path.exists(file_path):
        return False, "File does not exist"

    if not os.path.isfile(file_path):
        return False, "Path is not a file"

    try:
        # An empty trace is not an error; it parses to "nothing parsed".
        size = os.path.getsize(file_path)
        if size > 100 * 1024 * 1024:  # 100MB limit
            return False, "File is too large (>100MB)"
    except OSError as e:
        return False, f"Cannot access file: {e}"

    return True, ""
