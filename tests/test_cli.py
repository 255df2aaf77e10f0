import os
import sys
import json
import pytest

# Ensure repo package import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app_config
from span_viewer import cli


TRACE = """\
10:00:00.000 ->INVITE [f: 1001 |t: 2002 |cs: 1 INVITE | CallA1] application/sdp
10:00:00.040 RequestMakeCall(dn=1001|odn=2002|connid=00a1b2c3d4e5f6a7|refid=7|msgid=1)
10:00:00.090 EventDialing(dn=1001|odn=2002|connid=00a1b2c3d4e5f6a7|refid=7|msgid=2)
10:00:00.120 ->ACK [f: 1001 |t: 2002 |cs: 1 ACK | CallA1]
10:00:00.200 EventRouteUsed(dn=RP1_SW|connid=00a1b2c3d4e5f6a7|msgid=3)
10:00:00.300 ->INVITE [f: 3003 |t: 4004 |cs: 1 INVITE | CallB2]
"""


@pytest.fixture
def trace_file(tmp_path):
    p = tmp_path / "trace.log"
    p.write_text(TRACE, encoding="utf-8")
    return str(p)


@pytest.fixture
def fake_config(monkeypatch, tmp_path):
    real_load_config = app_config.load_config

    def fake_load_config():
        cfg = real_load_config()
        cfg["storage"]["saved_logs_path"] = str(tmp_path / "saved.json")
        cfg["storage"]["max_saved_logs"] = 1
        cfg["debugging"]["enable_logging"] = False
        return cfg

    monkeypatch.setattr(app_config, "load_config", fake_load_config)


def test_messages_text(fake_config, trace_file, capsys):
    rc = cli.main(["messages", trace_file])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Messages: 6 of 6" in out
    assert "->INVITE" in out
    assert "EventDialing" in out


def test_messages_json_filters(fake_config, trace_file, capsys):
    rc = cli.main(["messages", trace_file, "--no-events", "--cid", "CallB2", "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["filters"]["cids"] == ["CallB2"]
    assert [m["type"] for m in payload["messages"]] == ["request", "sip"]
    assert [m["crossDelta"] for m in payload["messages"]] == [None, 260]


def test_messages_nothing_parsed(fake_config, tmp_path, capsys):
    p = tmp_path / "noise.log"
    p.write_text("hello\nworld\n", encoding="utf-8")
    rc = cli.main(["messages", str(p)])
    assert rc == 1
    assert "No SIP messages" in capsys.readouterr().out


def test_dn_grid_json(fake_config, trace_file, capsys):
    rc = cli.main(["dn-grid", trace_file, "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert [c["label"] for c in payload["columns"]] == ["1001", "RP1_SW"]
    assert [r["column"] for r in payload["rows"]] == [0, 0, 1]
    assert payload["rows"][1]["deltaFromMatchingRequest"] == 50


def test_dn_grid_uses_configured_suffix(monkeypatch, trace_file, capsys):
    real_load_config = app_config.load_config

    def fake_load_config():
        cfg = real_load_config()
        cfg["grid"]["switch_suffix"] = "_XX"
        return cfg

    monkeypatch.setattr(app_config, "load_config", fake_load_config)
    rc = cli.main(["dn-grid", trace_file, "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert all(c["kind"] == "dn" for c in payload["columns"])


def test_call_setup_json(fake_config, trace_file, capsys):
    rc = cli.main(["call-setup", trace_file, "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert len(payload["lanes"]) == 1
    assert payload["boxes"][0]["label"] == "CSeq 1 (120ms)"


def test_call_setup_no_pairs(fake_config, trace_file, capsys):
    rc = cli.main(["call-setup", trace_file, "--cid", "CallB2"])
    assert rc == 1
    assert "No INVITE" in capsys.readouterr().out


def test_stats_to_file(fake_config, trace_file, tmp_path):
    out_path = tmp_path / "stats.json"
    rc = cli.main(["stats", trace_file, "--format", "json", "--out", str(out_path)])
    assert rc == 0
    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert payload["messages"] == 3
    assert payload["cids"] == 2
    assert payload["durationMs"] == 300
    assert payload["cidList"] == ["CallA1", "CallB2"]


def test_parsing_log_default_and_all(fake_config, trace_file, capsys):
    rc = cli.main(["parsing-log", trace_file, "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["issues"] == []

    rc = cli.main(["parsing-log", trace_file, "--all", "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert [i["category"] for i in payload["issues"]] == ["Unmatched INVITE"]


def test_bookmarks(fake_config, trace_file, capsys):
    rc = cli.main(["bookmarks", trace_file, "--id", "3", "--id", "0", "--format", "json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["identities"] == [0, 3]
    assert [s["step"] for s in payload["steps"]] == [None, 120]


def test_bookmarks_unknown_identity_is_error(fake_config, trace_file, capsys):
    rc = cli.main(["bookmarks", trace_file, "--view", "dn-grid", "--id", "9"])
    assert rc == 2
    assert "Error:" in capsys.readouterr().err


def test_saved_lifecycle(fake_config, trace_file, tmp_path, capsys):
    assert cli.main(["saved", "save", trace_file, "--sip-bookmark", "0"]) == 0
    assert "Saved as log_" in capsys.readouterr().out

    assert cli.main(["saved", "save", trace_file]) == 1
    assert "already saved" in capsys.readouterr().out

    other = tmp_path / "other.log"
    other.write_text("10:00:00.000 EventRinging(dn=1)\n", encoding="utf-8")
    assert cli.main(["saved", "save", str(other)]) == 1
    assert "limit" in capsys.readouterr().out

    assert cli.main(["saved", "list", "--format", "json"]) == 0
    logs = json.loads(capsys.readouterr().out)["logs"]
    assert len(logs) == 1
    assert "content" not in logs[0]
    assert logs[0]["sipBookmarks"] == [0]

    log_id = logs[0]["id"]
    assert cli.main(["saved", "show", log_id]) == 0
    assert "CallA1" in capsys.readouterr().out

    assert cli.main(["saved", "evict"]) == 0
    assert cli.main(["saved", "evict"]) == 1
    assert cli.main(["saved", "delete", log_id]) == 2


def test_missing_file_is_error(fake_config, tmp_path, capsys):
    rc = cli.main(["stats", str(tmp_path / "missing.log")])
    assert rc == 2
    assert "Error: Cannot open file: File does not exist" in capsys.readouterr().err


def test_directory_is_rejected_before_reading(fake_config, tmp_path, capsys):
    rc = cli.main(["dn-grid", str(tmp_path)])
    assert rc == 2
    assert "Path is not a file" in capsys.readouterr().err


def test_empty_file_is_nothing_parsed(fake_config, tmp_path, capsys):
    p = tmp_path / "empty.log"
    p.write_text("", encoding="utf-8")
    assert cli.main(["stats", str(p)]) == 1
    assert "No SIP messages" in capsys.readouterr().out
