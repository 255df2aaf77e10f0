import os
import sys
import pytest

# Ensure repo package import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from span_viewer.records import Direction, EventMessage, RecordKind, RequestMessage, SipMessage
from span_viewer.span_parser import SpanParser, classify_line, parse_event_params, parse_timestamp


TRACE = """\
10:00:00.000 ->INVITE [f: 1001 |t: 2002 |cs: 1 INVITE | CallA1] application/sdp
garbage line that is not a trace record
10:00:00.050 <-100 [f: 1001 |t: 2002 |cs: 1 INVITE | CallA1]

10:00:00.120 ->ACK [f: 1001 |t: 2002 |cs: 1 ACK | CallA1]
10:00:01.000 RequestMakeCall(dn=1001|odn=null|connid=00a1b2c3d4e5f6a7|refid=7|msgid=1)
10:00:01.080 EventDialing(dn=1001|odn=2002|connid=00a1b2c3d4e5f6a7|refid=7|msgid=2)
"""


def test_sip_line_fields():
    rec = classify_line("10:00:00.000 ->INVITE [f: 1001 |t: 2002 |cs: 1 INVITE | CallA1] application/sdp", 4)
    assert isinstance(rec, SipMessage)
    assert rec.kind == RecordKind.SIP
    assert rec.identity == 4
    assert rec.timestamp == 36000000
    assert rec.time_str == "10:00:00.000"
    assert rec.direction == Direction.OUTBOUND
    assert rec.method == "INVITE"
    assert not rec.is_response
    assert rec.from_uri == "1001"
    assert rec.to_uri == "2002"
    assert rec.cseq == 1
    assert rec.cseq_method == "INVITE"
    assert rec.call_id == "CallA1"
    assert rec.content_type == "application/sdp"


def test_sip_response_and_inbound_direction():
    rec = classify_line("00:00:01.005 <-200 [f: a |t: b |cs: 2 BYE | X9]")
    assert rec.is_response
    assert rec.method == "200"
    assert rec.direction == Direction.INBOUND
    assert rec.timestamp == 1005


def test_missing_call_id_is_empty_not_failure():
    rec = classify_line("10:00:00.000 ->OPTIONS [f: a |t: b |cs: 3 OPTIONS]")
    assert isinstance(rec, SipMessage)
    assert rec.call_id == ""


def test_timestamp_matches_decoded_prefix():
    for ts in ("00:00:00.000", "01:02:03.004", "23:59:59.999"):
        rec = classify_line(f"{ts} ->INVITE [f: a |t: b |cs: 1 INVITE | C1]")
        assert rec.timestamp == parse_timestamp(ts)
    assert parse_timestamp("23:59:59.999") == 86399999


def test_bad_timestamp_rejects_line():
    assert classify_line("25:00:00.000 ->INVITE [f: a |t: b |cs: 1 INVITE | C1]") is None
    assert classify_line("10:61:00.000 EventRinging(dn=1)") is None
    assert parse_timestamp("nonsense") is None


def test_blank_lines_are_none():
    assert classify_line("") is None
    assert classify_line("    \t ") is None


def test_event_and_request_params():
    req = classify_line("10:00:01.000 RequestMakeCall(dn=1001|odn=null|connid=00a1|refid=7|msgid=1)")
    assert isinstance(req, RequestMessage)
    assert req.kind == RecordKind.REQUEST
    assert req.direction == Direction.INBOUND
    assert req.message_type == "RequestMakeCall"
    assert req.dn == "1001"
    assert req.odn == ""
    assert req.conn_id == "00a1"
    assert req.ref_id == "7"
    assert req.msg_id == "1"

    evt = classify_line("10:00:01.080 EventRinging(odn=2002)")
    assert isinstance(evt, EventMessage)
    assert evt.direction == Direction.OUTBOUND
    assert evt.dn == ""
    assert evt.odn == "2002"
    assert evt.ref_id == ""


def test_dn_param_does_not_match_inside_odn():
    params = parse_event_params("odn=2002|connid=abc")
    assert params["dn"] == ""
    assert params["odn"] == "2002"


def test_parse_text_identities_and_dropped_lines():
    result = SpanParser().parse_text(TRACE)
    assert [r.identity for r in result.records] == [0, 1, 2, 3, 4]
    assert result.dropped_count == 1
    assert result.dropped_lines == [2]
    assert "garbage" in result.dropped_text[2]
    assert not result.is_empty
    assert len(result.sip_messages()) == 3
    assert set(result.by_identity()) == {0, 1, 2, 3, 4}


def test_parse_text_deltas_and_index():
    result = SpanParser().parse_text(TRACE)
    invite, trying, ack, req, evt = result.records
    assert invite.sequential_delta is None
    assert trying.sequential_delta == 50
    assert ack.sequential_delta == 70
    assert req.sequential_delta is None
    assert evt.sequential_delta == 80
    assert evt.round_trip_delta == 80
    assert result.index.call_ids == {"CallA1": 0}
    assert result.index.conn_ids == {"00a1b2c3d4e5f6a7": 0}


def test_reparse_starts_fresh():
    parser = SpanParser()
    first = parser.parse_text(TRACE)
    second = parser.parse_text("10:00:00.000 ->INVITE [f: a |t: b |cs: 1 INVITE | Other7]")
    assert [r.identity for r in second.records] == [0]
    assert list(second.index.call_ids) == ["Other7"]
    assert parser.result is second
    assert len(first.records) == 5


def test_empty_input_is_empty_result():
    result = SpanParser().parse_text("\n\n   \n")
    assert result.is_empty
    assert result.dropped_count == 0


def test_parse_file(tmp_path):
    p = tmp_path / "trace.log"
    p.write_text(TRACE, encoding="utf-8")
    result = SpanParser().parse_file(str(p))
    assert len(result.records) == 5

    with pytest.raises(FileNotFoundError):
        SpanParser().parse_file(str(tmp_path / "missing.log"))
