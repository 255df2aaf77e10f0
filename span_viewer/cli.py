"""Headless CLI for the SIP Span viewer.

This module intentionally avoids importing Qt/PySide6 so it can be used in
non-GUI contexts (CI, scripts, console exe).

Usage:
  python -m span_viewer.cli messages path/to/trace.log
  python -m span_viewer.cli call-setup path/to/trace.log --cid CID1 --format json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import app_config
from span_viewer.bookmarks import BookmarkTracker
from span_viewer.call_setup import DiagramStatus, generate_call_setup_diagram
from span_viewer.deltas import FilterState, apply_filters
from span_viewer.dn_grid import DnGridBuilder
from span_viewer.log_setup import configure_logging
from span_viewer.records import RecordKind
from span_viewer.saved_logs import SavedLogStore, SaveStatus
from span_viewer.span_parser import ParseResult, SpanParser
from span_viewer.utils import format_delta, format_duration, short_conn_id, summarize, validate_trace_file
from span_viewer.validation import ValidationManager, ValidationSeverity

logger = logging.getLogger(__name__)

# Exit code for a distinct "nothing to show" outcome (not an error).
EXIT_EMPTY = 1


def _write_output(text: str, out_path: Optional[str]) -> None:
    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(text)
    else:
        sys.stdout.write(text)


def _write_json(payload: Any, out_path: Optional[str]) -> None:
    _write_output(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", out_path)


def _read_trace(file_path: str) -> str:
    is_valid, error_msg = validate_trace_file(file_path)
    if not is_valid:
        raise ValueError(f"Cannot open file: {error_msg}")
    logger.info("Reading %s", file_path)
    return Path(file_path).read_text(encoding="utf-8")


def _parse(file_path: str) -> ParseResult:
    return SpanParser().parse_text(_read_trace(file_path))


def _nothing_parsed(args: argparse.Namespace) -> int:
    if args.format == "json":
        _write_json({"file": args.trace_file, "status": "nothing-parsed"}, args.out)
    else:
        _write_output("No SIP messages, Events, or Requests found in the input\n", args.out)
    return EXIT_EMPTY


def _record_to_obj(record, cross_delta: Optional[int] = None) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "identity": record.identity,
        "type": record.kind.value,
        "time": record.time_str,
        "timestamp": record.timestamp,
        "direction": record.direction.value,
        "delta": record.sequential_delta,
        "crossDelta": cross_delta,
    }
    if record.kind == RecordKind.SIP:
        obj.update({
            "method": record.method,
            "isResponse": record.is_response,
            "from": record.from_uri,
            "to": record.to_uri,
            "cseq": record.cseq,
            "cseqMethod": record.cseq_method,
            "cid": record.call_id,
            "contentType": record.content_type,
        })
    else:
        obj.update({
            "messageType": record.message_type,
            "dn": record.dn,
            "odn": record.odn,
            "connid": record.conn_id,
            "refid": record.ref_id,
            "msgid": record.msg_id,
        })
        if record.kind == RecordKind.EVENT:
            obj["roundTripDelta"] = record.round_trip_delta
    return obj


def _render_row_text(record, cross_delta: Optional[int]) -> str:
    d = record.direction.value
    if record.kind == RecordKind.SIP:
        cseq = f"{record.cseq} {record.cseq_method}" if record.cseq is not None else "—"
        return (
            f"{record.time_str} {format_delta(cross_delta):>9} SIP {d}{record.method:<8} "
            f"f:{record.from_uri or '—'} t:{record.to_uri or '—'} cs:{cseq} cid:{record.call_id or '—'}"
        )
    badge = "EVT" if record.kind == RecordKind.EVENT else "REQ"
    return (
        f"{record.time_str} {format_delta(cross_delta):>9} {badge} {d}{record.message_type} "
        f"dn:{record.dn or '—'} odn:{record.odn or '—'} refid:{record.ref_id or '—'} "
        f"connid:{short_conn_id(record.conn_id)}"
    )


def _filters_from_args(args: argparse.Namespace) -> FilterState:
    return FilterState(
        show_sip=not getattr(args, "no_sip", False),
        show_events=not getattr(args, "no_events", False),
        show_requests=not getattr(args, "no_requests", False),
        enabled_call_ids=frozenset(getattr(args, "cid", None) or []),
    )


def cmd_messages(args: argparse.Namespace) -> int:
    result = _parse(args.trace_file)
    if result.is_empty:
        return _nothing_parsed(args)

    filters = _filters_from_args(args)
    rows = apply_filters(result.records, filters)

    if args.format == "json":
        payload = {
            "file": args.trace_file,
            "filters": {
                "sip": filters.show_sip,
                "events": filters.show_events,
                "requests": filters.show_requests,
                "cids": sorted(filters.enabled_call_ids),
            },
            "droppedLines": result.dropped_count,
            "messages": [_record_to_obj(r.record, r.cross_delta) for r in rows],
        }
        _write_json(payload, args.out)
        return 0

    lines = [f"File: {args.trace_file}", f"Messages: {len(rows)} of {len(result.records)}"]
    if result.dropped_count:
        lines.append(f"Unrecognized lines: {result.dropped_count}")
    lines.append("")
    lines.extend(_render_row_text(r.record, r.cross_delta) for r in rows)
    lines.append("")
    _write_output("\n".join(lines), args.out)
    return 0


def _grid_builder() -> DnGridBuilder:
    cfg = app_config.load_config()
    return DnGridBuilder(switch_suffix=cfg["grid"]["switch_suffix"])


def cmd_dn_grid(args: argparse.Namespace) -> int:
    text = _read_trace(args.trace_file)
    grid = _grid_builder().build(text)
    if grid.is_empty:
        return _nothing_parsed(args)

    layout = grid.column_layout()
    if args.format == "json":
        payload = {
            "file": args.trace_file,
            "columns": [{"kind": c.kind.value, "key": c.key, "label": c.label} for c in layout],
            "rows": [
                {
                    "identity": row.identity,
                    "type": row.kind.value,
                    "time": row.time_str,
                    "messageType": row.message_type,
                    "dn": row.dn,
                    "isSwitch": row.is_switch,
                    "column": grid.column_for(row),
                    "deltaFromPrevious": row.delta_from_previous,
                    "deltaFromMatchingRequest": row.delta_from_matching_request,
                }
                for row in grid.rows
            ],
        }
        _write_json(payload, args.out)
        return 0

    lines = [f"File: {args.trace_file}", "Columns: " + " | ".join(c.label for c in layout), ""]
    for row in grid.rows:
        col = grid.column_for(row)
        where = layout[col].label if col is not None else "-"
        req = format_delta(row.delta_from_matching_request) if row.kind == RecordKind.EVENT else ""
        lines.append(
            f"{row.time_str} {format_delta(row.delta_from_previous):>9} {req:>9} [{where}] {row.message_type}"
        )
    lines.append("")
    _write_output("\n".join(lines), args.out)
    return 0


def cmd_call_setup(args: argparse.Namespace) -> int:
    result = _parse(args.trace_file)
    outcome = generate_call_setup_diagram(result.records, getattr(args, "cid", None) or [])

    if outcome.status == DiagramStatus.NO_RECORDS:
        return _nothing_parsed(args)

    if outcome.status == DiagramStatus.NO_PAIRS:
        if args.format == "json":
            _write_json({"file": args.trace_file, "status": outcome.status.value}, args.out)
        else:
            _write_output("No INVITE → ACK pairs found to import.\n", args.out)
        return EXIT_EMPTY

    if args.format == "json":
        _write_json(outcome.payload, args.out)
        return 0

    payload = outcome.payload
    lines = [f"{payload['title']} starting {payload['startTime']}"]
    lanes = {lane["id"]: lane["name"] for lane in payload["lanes"]}
    for lane_id, name in lanes.items():
        lines.append(f"Lane {lane_id}: {name}")
        for box in payload["boxes"]:
            if box["laneId"] == lane_id:
                lines.append(f"  +{box['startOffset']}ms {box['label']}")
    lines.append("")
    _write_output("\n".join(lines), args.out)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    result = _parse(args.trace_file)
    if result.is_empty:
        return _nothing_parsed(args)
    stats = summarize(result)

    if args.format == "json":
        payload = {
            "file": args.trace_file,
            "messages": stats.sip_messages,
            "cids": stats.call_ids,
            "invites": stats.invites,
            "events": stats.events,
            "requests": stats.requests,
            "durationMs": stats.duration_ms,
            "droppedLines": result.dropped_count,
            "cidList": list(result.index.call_ids.keys()),
        }
        _write_json(payload, args.out)
        return 0

    lines = [
        f"File: {args.trace_file}",
        f"SIP messages: {stats.sip_messages}  CIDs: {stats.call_ids}  INVITEs: {stats.invites}",
        f"Events: {stats.events}  Requests: {stats.requests}  Duration: {format_duration(stats.duration_ms)}",
        f"Unrecognized lines: {result.dropped_count}",
        "",
    ]
    _write_output("\n".join(lines), args.out)
    return 0


def _parse_severities(args: argparse.Namespace) -> Optional[set[ValidationSeverity]]:
    if getattr(args, "all", False):
        return None

    mapping = {
        "info": ValidationSeverity.INFO,
        "warning": ValidationSeverity.WARNING,
        "critical": ValidationSeverity.CRITICAL,
    }
    raw = getattr(args, "severity", None) or []
    if not raw:
        raw = ["warning", "critical"]
    return {mapping[s] for s in raw}


def cmd_parsing_log(args: argparse.Namespace) -> int:
    result = _parse(args.trace_file)
    vm = ValidationManager()
    vm.validate(result)

    sevset = _parse_severities(args)
    issues = [i for i in vm.issues if not sevset or i.severity in sevset]

    if args.format == "json":
        payload = {
            "file": args.trace_file,
            "severities": sorted([s.value for s in sevset], key=str) if sevset else ["ALL"],
            "summary": vm.get_summary(),
            "issues": [
                {
                    "severity": iss.severity.value,
                    "category": iss.category,
                    "message": iss.message,
                    "index": iss.line_or_identity,
                    "timestamp": iss.timestamp,
                    "raw_data": iss.raw_data,
                    "cid": iss.call_id,
                    "refid": iss.ref_id,
                }
                for iss in issues
            ],
        }
        _write_json(payload, args.out)
        return 0

    sev_label = ",".join(sorted([s.value for s in sevset], key=str)) if sevset else "ALL"
    lines = [f"File: {args.trace_file}", vm.get_summary(), f"Issues ({sev_label}): {len(issues)}", ""]
    for iss in issues:
        ts = iss.timestamp or ""
        idx = "" if iss.line_or_identity is None else iss.line_or_identity
        lines.append(f"[{iss.severity.value}] idx={idx} {ts} {iss.category}: {iss.message}")
    lines.append("")
    _write_output("\n".join(lines), args.out)
    return 0


def cmd_bookmarks(args: argparse.Namespace) -> int:
    tracker = BookmarkTracker()
    bookmarks = tracker.view(args.view)

    if args.view == "messages":
        result = _parse(args.trace_file)
        rows = result.by_identity()
    else:
        grid = _grid_builder().build(_read_trace(args.trace_file))
        rows = {row.identity: row for row in grid.rows}
    if not rows:
        return _nothing_parsed(args)

    for identity in args.id or []:
        row = rows.get(identity)
        if row is None:
            raise ValueError(f"No row with identity {identity} in {args.view} view")
        bookmarks.toggle(identity, row.timestamp, row.time_str)

    steps = bookmarks.steps()
    if args.format == "json":
        payload = {
            "file": args.trace_file,
            "view": args.view,
            "identities": bookmarks.identities(),
            "steps": [
                {
                    "identity": s.bookmark.identity,
                    "time": s.bookmark.display_time,
                    "step": s.step_delta,
                    "cumulative": s.cumulative,
                }
                for s in steps
            ],
        }
        _write_json(payload, args.out)
        return 0

    lines = [f"Bookmarks ({args.view}): {len(steps)}"]
    for s in steps:
        lines.append(
            f"#{s.bookmark.identity} {s.bookmark.display_time} step={format_delta(s.step_delta)} total=+{s.cumulative}ms"
        )
    lines.append("")
    _write_output("\n".join(lines), args.out)
    return 0


def _saved_store() -> SavedLogStore:
    cfg = app_config.load_config()
    return SavedLogStore(app_config.saved_logs_path(cfg), max_logs=cfg["storage"]["max_saved_logs"])


def cmd_saved(args: argparse.Namespace) -> int:
    store = _saved_store()
    action = args.action

    if action == "list":
        logs = store.list()
        if args.format == "json":
            summary = [{k: v for k, v in log.items() if k != "content"} for log in logs]
            _write_json({"logs": summary}, args.out)
            return 0
        lines = [f"Saved logs: {len(logs)}/{store.max_logs}"]
        for log in logs:
            preview = ", ".join(log.get("cids") or [])
            lines.append(f"{log['id']}  {log.get('messageCount', 0)} messages, {log.get('cidCount', 0)} CIDs  {preview}")
        lines.append("")
        _write_output("\n".join(lines), args.out)
        return 0

    if action == "save":
        if not args.target:
            raise ValueError("Usage: saved save <trace file>")
        content = _read_trace(args.target)
        result = SpanParser().parse_text(content)
        res = store.save(content, result, args.sip_bookmark or [], args.grid_bookmark or [])
        if args.format == "json":
            _write_json({"status": res.status.value, "id": res.record["id"] if res.record else None}, args.out)
        else:
            messages = {
                SaveStatus.SAVED: f"Saved as {res.record['id'] if res.record else ''}",
                SaveStatus.EMPTY: "Nothing parsed, not saved",
                SaveStatus.DUPLICATE: "This log is already saved",
                SaveStatus.LIMIT_REACHED: f"Save limit of {store.max_logs} reached; run 'saved evict' first",
            }
            _write_output(messages[res.status] + "\n", args.out)
        return 0 if res.ok else EXIT_EMPTY

    if action == "show":
        log = store.get(args.target or "")
        if log is None:
            raise ValueError(f"Unknown saved log: {args.target}")
        if args.format == "json":
            _write_json(log, args.out)
        else:
            _write_output(log.get("content", "") + "\n", args.out)
        return 0

    if action == "delete":
        if not store.delete(args.target or ""):
            raise ValueError(f"Unknown saved log: {args.target}")
        _write_output(f"Deleted {args.target}\n", args.out)
        return 0

    if action == "evict":
        evicted = store.evict_oldest()
        _write_output((f"Evicted {evicted}" if evicted else "Nothing to evict") + "\n", args.out)
        return 0 if evicted else EXIT_EMPTY

    store.clear()
    _write_output("Cleared saved logs\n", args.out)
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="spanview",
        description="Headless CLI for SIP Span trace analysis",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging on stderr")

    sub = ap.add_subparsers(dest="command", required=True)

    def add_output(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )
        p.add_argument(
            "--out",
            default=None,
            help="Write output to a file instead of stdout",
        )

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("trace_file", help="Path to a SIP Span trace")
        add_output(p)

    p_msg = sub.add_parser("messages", help="Print the message grid with filter-aware deltas")
    add_common(p_msg)
    p_msg.add_argument("--no-sip", action="store_true", help="Hide SIP messages")
    p_msg.add_argument("--no-events", action="store_true", help="Hide Events")
    p_msg.add_argument("--no-requests", action="store_true", help="Hide Requests")
    p_msg.add_argument(
        "--cid",
        action="append",
        default=[],
        help="Only show SIP messages of this Call-ID (repeatable). Default: all",
    )
    p_msg.set_defaults(func=cmd_messages)

    p_grid = sub.add_parser("dn-grid", help="Print Events/Requests by Device Number")
    add_common(p_grid)
    p_grid.set_defaults(func=cmd_dn_grid)

    p_setup = sub.add_parser("call-setup", help="Build the INVITE → ACK call-setup diagram")
    add_common(p_setup)
    p_setup.add_argument(
        "--cid",
        action="append",
        default=[],
        help="Only include this Call-ID (repeatable). Default: all",
    )
    p_setup.set_defaults(func=cmd_call_setup)

    p_stats = sub.add_parser("stats", help="Print message counts and trace duration")
    add_common(p_stats)
    p_stats.set_defaults(func=cmd_stats)

    p_log = sub.add_parser("parsing-log", help="Print Parsing Log (validation issues)")
    add_common(p_log)
    p_log.add_argument(
        "--severity",
        action="append",
        choices=["info", "warning", "critical"],
        default=[],
        help="Include a severity (repeatable). Default: warning+critical",
    )
    p_log.add_argument(
        "--all",
        action="store_true",
        help="Show all severities (info+warning+critical)",
    )
    p_log.set_defaults(func=cmd_parsing_log)

    p_bm = sub.add_parser("bookmarks", help="Toggle bookmarks and print step deltas")
    add_common(p_bm)
    p_bm.add_argument("--view", choices=["messages", "dn-grid"], default="messages", help="Which grid the identities refer to")
    p_bm.add_argument("--id", type=int, action="append", default=[], help="Row identity to toggle (repeatable)")
    p_bm.set_defaults(func=cmd_bookmarks)

    p_saved = sub.add_parser("saved", help="Manage saved logs")
    p_saved.add_argument("action", choices=["list", "save", "show", "delete", "evict", "clear"])
    p_saved.add_argument("target", nargs="?", help="Trace file (save) or log id (show/delete)")
    p_saved.add_argument("--sip-bookmark", type=int, action="append", default=[], help="Message grid bookmark identity")
    p_saved.add_argument("--grid-bookmark", type=int, action="append", default=[], help="DN grid bookmark identity")
    add_output(p_saved)
    p_saved.set_defaults(func=cmd_saved)

    return ap


def main(argv: Optional[list[str]] = None) -> int:
    ap = build_arg_parser()
    args = ap.parse_args(argv)
    configure_logging(app_config.load_config().get("debugging"), verbose=args.verbose)
    try:
        return int(args.func(args))
    except BrokenPipeError:
        # e.g. piping to `head`/`more` and downstream closes
        return 0
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        sys.stderr.write(f"Error: {e}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
