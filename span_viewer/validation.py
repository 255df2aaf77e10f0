"""
Parsing log: anomalies found while parsing a SIP Span trace.
"""
from typing import Dict, List, Optional
from dataclasses import dataclass
from enum import Enum

from .call_setup import pair_call_setups
from .records import RecordKind, reference_of


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    INFO = "INFO"       # informational
    WARNING = "WARNING" # potential issues
    CRITICAL = "CRITICAL"  # nothing usable in the trace


@dataclass
class ValidationIssue:
    """Represents a validation issue found during parsing."""
    severity: ValidationSeverity
    category: str
    message: str
    line_or_identity: Optional[int]
    timestamp: Optional[str]
    raw_data: Optional[str]
    call_id: Optional[str] = None
    ref_id: Optional[str] = None

    def __str__(self):
        return f"[{self.severity.value}] {self.category}: {self.message}"


class ValidationManager:
    """Collects parsing-log issues for one ParseResult."""

    def __init__(self):
        self.issues: List[ValidationIssue] = []
        self.processed_count = 0

    def validate(self, result) -> List[ValidationIssue]:
        """Run every check against a ParseResult and return the collected issues."""
        self.issues = []
        self.processed_count = len(result.records)

        if result.is_empty:
            self.add_issue(
                ValidationSeverity.CRITICAL,
                "Nothing Parsed",
                "No SIP messages, Events, or Requests found in the input",
                None,
            )

        self._check_dropped_lines(result)
        self._check_timestamp_order(result)
        self._check_call_setup_pairs(result)
        self._check_event_references(result)
        return self.issues

    def _check_dropped_lines(self, result):
        for line_no in result.dropped_lines:
            text = result.dropped_text.get(line_no, "")
            self.add_issue(
                ValidationSeverity.INFO,
                "Unrecognized Line",
                f"Line {line_no} is neither SIP, Event nor Request",
                line_no,
                raw_data=text,
            )

    def _check_timestamp_order(self, result):
        # Negative per-key deltas mean the trace went backwards within a Call-ID/Reference-ID.
        for record in result.records:
            delta = record.sequential_delta
            if delta is None or delta >= 0:
                continue
            key = record.call_id if record.kind == RecordKind.SIP else reference_of(record)
            self.add_issue(
                ValidationSeverity.WARNING,
                "Timestamp Order",
                f"Timestamp goes back {-delta}ms for {key}",
                record.identity,
                record.time_str,
                record.raw_line,
                call_id=key if record.kind == RecordKind.SIP else None,
                ref_id=key if record.kind != RecordKind.SIP else None,
            )

    def _check_call_setup_pairs(self, result):
        pairing = pair_call_setups(result.records)
        for ack in pairing.orphan_acks:
            self.add_issue(
                ValidationSeverity.WARNING,
                "Orphan ACK",
                f"ACK for CSeq {ack.cseq} has no pending INVITE",
                ack.identity,
                ack.time_str,
                ack.raw_line,
                call_id=ack.call_id,
            )
        for (call_id, cseq), invite in pairing.pending.items():
            self.add_issue(
                ValidationSeverity.INFO,
                "Unmatched INVITE",
                f"INVITE CSeq {cseq} was never acknowledged",
                invite.identity,
                invite.time_str,
                invite.raw_line,
                call_id=call_id,
            )

    def _check_event_references(self, result):
        requested: Dict[str, int] = {}
        for record in result.records:
            ref_id = reference_of(record)
            if not ref_id:
                continue
            if record.kind == RecordKind.REQUEST:
                requested.setdefault(ref_id, record.identity)
            elif record.kind == RecordKind.EVENT and ref_id not in requested:
                self.add_issue(
                    ValidationSeverity.INFO,
                    "Unanswered Event Reference",
                    f"{record.message_type} refid={ref_id} has no preceding Request",
                    record.identity,
                    record.time_str,
                    record.raw_line,
                    ref_id=ref_id,
                )

    def add_issue(self, severity: ValidationSeverity, category: str, message: str,
                  line_or_identity: Optional[int], timestamp: Optional[str] = None,
                  raw_data: Optional[str] = None, call_id: Optional[str] = None,
                  ref_id: Optional[str] = None):
        """Add a validation issue."""
        issue = ValidationIssue(
            severity=severity,
            category=category,
            message=message,
            line_or_identity=line_or_identity,
            timestamp=timestamp,
            raw_data=raw_data,
            call_id=call_id,
            ref_id=ref_id,
        )
        self.issues.append(issue)

    def get_issues_by_severity(self, severity: ValidationSeverity) -> List[ValidationIssue]:
        """Get all issues of a specific severity."""
        return [issue for issue in self.issues if issue.severity == severity]

    def get_critical_issues(self) -> List[ValidationIssue]:
        return self.get_issues_by_severity(ValidationSeverity.CRITICAL)

    def get_warning_issues(self) -> List[ValidationIssue]:
        return self.get_issues_by_severity(ValidationSeverity.WARNING)

    def get_info_issues(self) -> List[ValidationIssue]:
        return self.get_issues_by_severity(ValidationSeverity.INFO)

    def get_summary(self) -> str:
        """Get validation summary."""
        critical_count = len(self.get_critical_issues())
        warning_count = len(self.get_warning_issues())
        info_count = len(self.get_info_issues())

        return (f"Validation complete: {self.processed_count} records processed. "
                f"Issues: {critical_count} critical, {warning_count} warnings, {info_count} info")
