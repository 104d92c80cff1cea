"""
Tests for persistence — the audit ledger.
"""

import json
from pathlib import Path

from rsprovision.core.persistence.audit import AuditEntry, AuditWriter


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        path = tmp_path / ".state" / "audit.ndjson"
        writer = AuditWriter(path=path)
        writer.write(AuditEntry(operation_id="op-1", status="ok"))
        writer.write(AuditEntry(operation_id="op-2", status="failed", halted_at="make-build"))

        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["op-1", "op-2"]
        assert entries[1].halted_at == "make-build"
        assert writer.entry_count() == 2

    def test_one_json_object_per_line(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path=path)
        writer.write(AuditEntry(operation_id="op-1", context={"repository": "x"}))
        lines = path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["context"] == {"repository": "x"}

    def test_root_layout(self, tmp_path: Path):
        writer = AuditWriter(root=tmp_path)
        assert writer.path == tmp_path / ".state" / "audit.ndjson"

    def test_missing_ledger(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "absent.ndjson")
        assert writer.read_all() == []
        assert writer.entry_count() == 0

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path=path)
        writer.write(AuditEntry(operation_id="op-1"))
        with path.open("a") as f:
            f.write("{not json\n")
            f.write('{"exit_code": "not-a-number"}\n')
        writer.write(AuditEntry(operation_id="op-2"))

        assert [e.operation_id for e in writer.read_all()] == ["op-1", "op-2"]

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["op-3", "op-4"]
        assert writer.read_recent(0) == []

    def test_read_recent_by_mode(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        for i, mode in enumerate(["live", "dry-run", "mock", "live", "dry-run"]):
            writer.write(AuditEntry(operation_id=f"op-{i}", mode=mode))
        live = writer.read_recent(5, modes=("live",))
        assert [e.operation_id for e in live] == ["op-0", "op-3"]
        assert [e.operation_id for e in writer.read_recent(1, modes=["live"])] == ["op-3"]
