"""
Test suite for audit module

Tests the hash-chained audit log: append, queries, tamper detection and
participation in the caller's unit of work.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from bank_ops.storage import InMemoryStorage, SQLiteStorage, AUDIT_TABLE
from bank_ops.audit import AuditLog, AuditEntry, AuditOperation
from bank_ops.roles import Actor, Role, SYSTEM_ACTOR


ANALYST = Actor(user_id="analyst-1", role=Role.INTERNAL_ANALYST)
SUPERVISOR = Actor(user_id="supervisor-1", role=Role.COMPANY_SUPERVISOR)


class TestAuditEntry:
    """Test AuditEntry functionality"""

    def test_detail_serialization(self):
        """Decimals, datetimes and enums in detail become plain values"""
        now = datetime.now(timezone.utc)

        entry = AuditEntry(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=1,
            operation_type=AuditOperation.TRANSFER_EXECUTED,
            actor_user_id="user-1",
            actor_role=Role.PERSON_CLIENT,
            affected_product_id="T1",
            detail={
                "amount": Decimal("150000.00"),
                "at": now,
                "status": AuditOperation.TRANSFER_EXECUTED
            },
            previous_hash="",
            current_hash=""
        )

        assert entry.detail["amount"] == "150000.00"
        assert entry.detail["at"] == now.isoformat()
        assert entry.detail["status"] == "transfer_executed"
        assert entry.timestamp == now

    def test_hash_round_trip(self):
        now = datetime.now(timezone.utc)
        entry = AuditEntry(
            id="AUDIT002",
            created_at=now,
            updated_at=now,
            sequence=1,
            operation_type=AuditOperation.LOAN_APPROVED,
            actor_user_id="analyst-1",
            actor_role=Role.INTERNAL_ANALYST,
            affected_product_id="L1",
            detail={"approved_amount": "1000000.00"},
            previous_hash="",
            current_hash=""
        )
        entry.current_hash = entry.calculate_hash()

        restored = AuditEntry.from_dict(entry.to_dict())

        assert restored.verify_hash()
        assert restored.operation_type == AuditOperation.LOAN_APPROVED
        assert restored.actor_role == Role.INTERNAL_ANALYST


class TestAuditLog:
    """Test AuditLog functionality"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_log = AuditLog(self.storage)

    def test_record_chains_entries(self):
        first = self.audit_log.record(AuditOperation.ACCOUNT_OPENED, ANALYST, "1234567890", {"owner_id": "CC1"})
        second = self.audit_log.record(AuditOperation.ACCOUNT_STATUS_CHANGED, ANALYST, "1234567890",
                                       {"old_status": "active", "new_status": "blocked"})

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert self.audit_log.count() == 2

    def test_actor_is_stamped(self):
        entry = self.audit_log.record(AuditOperation.TRANSFER_EXPIRED, SYSTEM_ACTOR, "T1")

        assert entry.actor_user_id == "system"
        assert entry.actor_role == Role.SYSTEM

    def test_entries_for_product(self):
        self.audit_log.record(AuditOperation.TRANSFER_HELD, SUPERVISOR, "T1")
        self.audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, "L1")
        self.audit_log.record(AuditOperation.TRANSFER_APPROVED, SUPERVISOR, "T1")

        entries = self.audit_log.entries_for_product("T1")

        assert [e.operation_type for e in entries] == [
            AuditOperation.TRANSFER_HELD, AuditOperation.TRANSFER_APPROVED
        ]

    def test_all_entries_filter_and_limit(self):
        for i in range(5):
            self.audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, f"L{i}")
        self.audit_log.record(AuditOperation.LOAN_REJECTED, ANALYST, "L0")

        rejected = self.audit_log.all_entries(operation_type=AuditOperation.LOAN_REJECTED)
        latest = self.audit_log.all_entries(limit=2)

        assert len(rejected) == 1
        assert [e.sequence for e in latest] == [5, 6]

    def test_get_entry(self):
        entry = self.audit_log.record(AuditOperation.USER_CREATED, SYSTEM_ACTOR, "u1")

        assert self.audit_log.get_entry(entry.id).current_hash == entry.current_hash
        assert self.audit_log.get_entry("missing") is None

    def test_integrity_of_untouched_chain(self):
        for i in range(4):
            self.audit_log.record(AuditOperation.ACCOUNT_OPENED, ANALYST, f"A{i}", {"i": i})

        result = self.audit_log.verify_integrity()

        assert result["valid"]
        assert result["total_entries"] == 4
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampered_detail_is_detected(self):
        self.audit_log.record(AuditOperation.TRANSFER_EXECUTED, SUPERVISOR, "T1", {"amount": "100.00"})
        entry = self.audit_log.record(AuditOperation.TRANSFER_EXECUTED, SUPERVISOR, "T2", {"amount": "200.00"})

        data = self.storage.load(AUDIT_TABLE, entry.id)
        data["detail"]["amount"] = "2000000.00"
        self.storage.save(AUDIT_TABLE, entry.id, data)

        result = self.audit_log.verify_integrity()

        assert not result["valid"]
        assert result["hash_errors"][0]["entry_id"] == entry.id

    def test_deleted_entry_breaks_chain(self):
        entries = [self.audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, f"L{i}") for i in range(3)]
        self.storage.delete(AUDIT_TABLE, entries[1].id)

        result = self.audit_log.verify_integrity()

        assert not result["valid"]
        assert result["chain_breaks"]

    def test_append_reads_only_the_tail(self):
        """Appending never scans the whole log"""
        class TailOnlyStorage(InMemoryStorage):
            def find(self, table, filters):
                raise AssertionError(f"scanned {table}")

            def load_all(self, table):
                raise AssertionError(f"scanned {table}")

        audit_log = AuditLog(TailOnlyStorage(), log_entries=False)
        entries = [audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, f"L{i}") for i in range(4)]

        assert [e.sequence for e in entries] == [1, 2, 3, 4]
        for previous, entry in zip(entries, entries[1:]):
            assert entry.previous_hash == previous.current_hash

    def test_append_after_deleted_entry_continues_from_tail(self):
        entries = [self.audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, f"L{i}") for i in range(3)]
        self.storage.delete(AUDIT_TABLE, entries[1].id)

        entry = self.audit_log.record(AuditOperation.LOAN_APPROVED, ANALYST, "L0")

        assert entry.sequence == 4
        assert entry.previous_hash == entries[2].current_hash
        assert not self.audit_log.verify_integrity()["valid"]

    def test_record_joins_enclosing_unit(self):
        """An audit entry written inside a failed unit disappears with it"""
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_log.record(AuditOperation.ACCOUNT_OPENED, ANALYST, "A1")
                raise RuntimeError("business write failed")

        assert self.audit_log.count() == 0

    def test_sqlite_backend(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "audit.db")
        audit_log = AuditLog(storage, log_entries=False)

        audit_log.record(AuditOperation.LOAN_APPLIED, ANALYST, "L1", {"requested_amount": Decimal("5.00")})
        audit_log.record(AuditOperation.LOAN_APPROVED, ANALYST, "L1")

        assert audit_log.verify_integrity()["valid"]
        assert audit_log.entries_for_product("L1")[0].detail["requested_amount"] == "5.00"
        storage.close()
