"""Tests for the debug CLI."""

import pytest

from auto_accept.debug import _build_parser, cmd_lease, describe_lease
from auto_accept.storage import SQLiteKV, lease_key


def test_describe_lease_none_or_malformed():
    assert describe_lease(None, 0) == "Lease: none"
    assert describe_lease({"acquired_at": 1}, 0) == "Lease: none"


def test_describe_lease_fresh_and_stale():
    raw = {"holder_id": "ab12cd34", "acquired_at": 0, "last_heartbeat": 1_000}
    assert describe_lease(raw, 3_500, ttl_ms=10_000) == "Lease: ab12cd34 (fresh, heartbeat 2.5s ago)"
    assert describe_lease(raw, 20_000, ttl_ms=10_000).startswith("Lease: ab12cd34 (stale")


def test_parser_accepts_global_options():
    args = _build_parser().parse_args(["--db", "/tmp/x.db", "--ide", "cursor", "lease"])
    assert args.command == "lease"
    assert args.db == "/tmp/x.db"
    assert args.ide == "cursor"


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


def test_cmd_lease_prints_holder(tmp_path, capsys):
    db = str(tmp_path / "state.db")
    SQLiteKV(db).set_sync(lease_key("Cursor"), {"holder_id": "abc", "acquired_at": 0, "last_heartbeat": 0})
    cmd_lease(db, "Cursor")
    out = capsys.readouterr().out
    assert out.startswith("Lease: abc (stale")
