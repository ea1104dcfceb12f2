from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

from xdomain_members.logging import audit_log
from xdomain_members.logging.audit_log import AuditLogBuffer, PersistenceError
from xdomain_members.models.membership_request import MembershipRequest
from xdomain_members.models.operation_record import AUDIT_COLUMNS, OperationRecord, OperationStatus

STARTED = datetime(2026, 3, 14, 9, 26, 53)


def _record(user: str, status: OperationStatus = OperationStatus.SUCCESS) -> OperationRecord:
    return OperationRecord.for_request(
        MembershipRequest("contoso.com", user, "fabrikam.com", "Readers", 1),
        operation_id=OperationRecord.new_operation_id(),
        status=status,
        message=f"Added contoso.com\\{user}",
        duration_seconds=0.12345,
        processed_by="tester",
        computer_name="host01",
        test_mode=False,
        source_user_dn=f"CN={user},CN=Users,DC=contoso,DC=com",
        timestamp=STARTED,
    )


def test_file_name_from_start_time(tmp_path: Path):
    buf = AuditLogBuffer(tmp_path, started_at=STARTED)
    assert buf.file_name == "membership-audit-20260314-092653.csv"
    assert buf.file_path == tmp_path / buf.file_name


def test_buffer_keeps_order(tmp_path: Path):
    buf = AuditLogBuffer(tmp_path, started_at=STARTED)
    for user in ("c", "a", "b"):
        buf.append(_record(user))
    assert len(buf) == 3
    assert [r.source_user for r in buf.records] == ["c", "a", "b"]


def test_flush_writes_csv_with_fixed_columns(tmp_path: Path):
    buf = AuditLogBuffer(tmp_path / "logs", started_at=STARTED)
    buf.append(_record("jdoe"))
    buf.append(_record("asmith", OperationStatus.ALREADY_MEMBER))

    outcome = buf.flush()

    assert not outcome.used_fallback
    assert outcome.path.exists()
    df = pd.read_csv(outcome.path, dtype=str, keep_default_na=False)
    assert list(df.columns) == list(AUDIT_COLUMNS)
    assert list(df["Status"]) == ["Success", "AlreadyMember"]
    assert list(df["Timestamp"]) == ["2026-03-14 09:26:53"] * 2
    assert df.iloc[0]["DurationSeconds"] == "0.123"


def test_flush_falls_back_to_temp_dir(tmp_path: Path, monkeypatch):
    blocked = tmp_path / "blocked"
    blocked.write_text("not a directory", encoding="utf-8")
    fallback_dir = tmp_path / "tmp"
    fallback_dir.mkdir()
    monkeypatch.setattr(audit_log.tempfile, "gettempdir", lambda: str(fallback_dir))

    buf = AuditLogBuffer(blocked / "logs", started_at=STARTED)
    buf.append(_record("jdoe"))
    outcome = buf.flush()

    assert outcome.used_fallback
    assert outcome.path == fallback_dir / buf.file_name
    assert outcome.path.exists()
    assert "instead" in (outcome.warning or "")


def test_flush_raises_when_both_paths_fail(tmp_path: Path, monkeypatch):
    blocked = tmp_path / "blocked"
    blocked.write_text("x", encoding="utf-8")
    monkeypatch.setattr(audit_log.tempfile, "gettempdir", lambda: str(blocked / "tmp"))

    buf = AuditLogBuffer(blocked / "logs", started_at=STARTED)
    buf.append(_record("jdoe"))
    with pytest.raises(PersistenceError):
        buf.flush()
