"""Adversarial tests — ledger tampering and chain integrity.

These tests verify that the Run Ledger detects:
1. Corrupted entry hashes (tampered content)
2. Broken chain links (reordered/deleted entries)
3. Forged approval decisions written straight into the database
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from stagegate.core.run_ledger import LedgerIntegrityError, RunLedger
from stagegate.models.ledger import LedgerEntry


def _execute(db_path: Path, sql: str, params: tuple = ()) -> None:
    conn = sqlite3.connect(str(db_path))
    conn.execute(sql, params)
    conn.commit()
    conn.close()


class TestLedgerTamperDetection:
    """Direct SQLite manipulation to simulate an attacker with DB access."""

    @pytest.fixture
    def seeded_ledger(self, tmp_path: Path) -> tuple[RunLedger, str]:
        """Seed a ledger with 5 entries for a single run."""
        ledger = RunLedger(tmp_path / "ledger.db")
        run_id = "sg-adversarial-001"
        for name in ("Source", "Build", "Deploy", "Approve", "Production"):
            ledger.append(LedgerEntry(
                run_id=run_id,
                stage_name=name,
                state_transition="pending->running",
            ))
        return ledger, run_id

    def test_corrupted_entry_hash_detected(self, seeded_ledger):
        """Overwrite an entry_hash directly in SQLite. verify_chain must catch it."""
        ledger, run_id = seeded_ledger
        _execute(
            ledger.db_path,
            "UPDATE run_ledger SET entry_hash = 'TAMPERED' "
            "WHERE id = (SELECT id FROM run_ledger WHERE run_id = ? ORDER BY id ASC LIMIT 1 OFFSET 2)",
            (run_id,),
        )
        with pytest.raises(LedgerIntegrityError, match="(Chain broken|Tampered)"):
            ledger.verify_chain(run_id)

    def test_corrupted_payload_detected(self, seeded_ledger):
        """Modify a state_transition field. Hash recomputation must detect it."""
        ledger, run_id = seeded_ledger
        _execute(
            ledger.db_path,
            "UPDATE run_ledger SET state_transition = 'running->succeeded' "
            "WHERE id = (SELECT id FROM run_ledger WHERE run_id = ? ORDER BY id ASC LIMIT 1 OFFSET 1)",
            (run_id,),
        )
        with pytest.raises(LedgerIntegrityError, match="Tampered"):
            ledger.verify_chain(run_id)

    def test_deleted_entry_breaks_chain(self, seeded_ledger):
        """Delete a middle entry. Chain linkage must fail."""
        ledger, run_id = seeded_ledger
        _execute(
            ledger.db_path,
            "DELETE FROM run_ledger WHERE id = "
            "(SELECT id FROM run_ledger WHERE run_id = ? ORDER BY id ASC LIMIT 1 OFFSET 1)",
            (run_id,),
        )
        with pytest.raises(LedgerIntegrityError, match="Chain broken"):
            ledger.verify_chain(run_id)

    def test_broken_chain_link_detected(self, seeded_ledger):
        """Corrupt a previous_entry_hash link. Chain linkage must fail."""
        ledger, run_id = seeded_ledger
        _execute(
            ledger.db_path,
            "UPDATE run_ledger SET previous_entry_hash = 'WRONG_LINK' "
            "WHERE id = (SELECT id FROM run_ledger WHERE run_id = ? ORDER BY id ASC LIMIT 1 OFFSET 2)",
            (run_id,),
        )
        with pytest.raises(LedgerIntegrityError, match="Chain broken"):
            ledger.verify_chain(run_id)

    def test_duplicate_entry_hash_rejected_by_schema(self, seeded_ledger):
        """Replaying a sealed entry verbatim violates the UNIQUE constraint."""
        ledger, run_id = seeded_ledger
        latest = ledger.get_latest(run_id)
        with pytest.raises(sqlite3.IntegrityError):
            ledger._insert(latest)


class TestForgedRunHistory:
    """Tamper with a real pipeline run and check the projection notices."""

    def test_forged_approval_marks_chain_broken(self, make_orchestrator):
        orch = make_orchestrator()
        run = orch.run()
        assert run.awaiting_approval

        # Attacker appends a fake "approved" transition without sealing it
        _execute(
            orch.ledger.db_path,
            "INSERT INTO run_ledger (entry_id, run_id, stage_name, state_transition, "
            "timestamp_utc, previous_entry_hash, entry_hash) VALUES (?, ?, ?, ?, ?, ?, ?)",
            ("forged-1", run.run_id, "Approve", "running->succeeded",
             "2026-01-01T00:00:00+00:00", "", "forged-hash"),
        )

        forged = orch.get_run(run.run_id)
        assert forged.chain_valid is False
        with pytest.raises(LedgerIntegrityError):
            orch.verify_chain(run.run_id)

    def test_rewritten_commit_message_detected(self, make_orchestrator):
        orch = make_orchestrator(commit_message="fix login bug")
        run = orch.run()

        _execute(
            orch.ledger.db_path,
            "UPDATE run_ledger SET variables_json = replace(variables_json, 'fix login bug', 'harmless') "
            "WHERE run_id = ? AND stage_name = 'Source'",
            (run.run_id,),
        )

        tampered = orch.get_run(run.run_id)
        assert tampered.variables["SourceVariables"]["commit_message"] == "harmless"
        assert tampered.chain_valid is False
