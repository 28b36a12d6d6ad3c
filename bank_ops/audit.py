"""
Audit Log Module

Hash-chained, append-only audit log with SHA-256 for tamper detection.
Every state-changing operation is recorded here with a structured
snapshot of the values it changed.

Entries are written inside the caller's unit of work: if the audit write
fails, the business operation that triggered it fails and rolls back too.
"""

import hashlib
import json
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .roles import Actor, Role
from .storage import StorageInterface, StorageRecord, AUDIT_TABLE, to_storable
from .logging_config import get_logger, log_action


class AuditOperation(Enum):
    """Types of audited operations"""
    # Account events
    ACCOUNT_OPENED = "account_opened"
    ACCOUNT_STATUS_CHANGED = "account_status_changed"

    # Transfer events
    TRANSFER_EXECUTED = "transfer_executed"
    TRANSFER_HELD = "transfer_held"
    TRANSFER_APPROVED = "transfer_approved"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSFER_EXPIRED = "transfer_expired"

    # Loan events
    LOAN_APPLIED = "loan_applied"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_DISBURSED = "loan_disbursed"

    # User and client registry events
    USER_CREATED = "user_created"
    USER_STATUS_CHANGED = "user_status_changed"
    PERSON_CLIENT_REGISTERED = "person_client_registered"
    COMPANY_CLIENT_REGISTERED = "company_client_registered"


@dataclass
class AuditEntry(StorageRecord):
    """
    Immutable audit entry with hash chaining for tamper detection
    """
    sequence: int                 # Position in the chain, starting at 1
    operation_type: AuditOperation
    actor_user_id: str
    actor_role: Role
    affected_product_id: str      # Account number, loan id, transfer id, ...
    detail: Dict[str, Any]        # Before/after snapshot of the transition
    previous_hash: str
    current_hash: str

    def __post_init__(self):
        # Keep detail JSON serializable and hash-stable
        self.detail = to_storable(self.detail or {})

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'operation_type': self.operation_type.value,
            'actor_user_id': self.actor_user_id,
            'actor_role': self.actor_role.value,
            'affected_product_id': self.affected_product_id,
            'previous_hash': self.previous_hash,
            'detail': self.detail
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        """Create AuditEntry from its stored dictionary"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sequence=data['sequence'],
            operation_type=AuditOperation(data['operation_type']),
            actor_user_id=data['actor_user_id'],
            actor_role=Role(data['actor_role']),
            affected_product_id=data['affected_product_id'],
            detail=data.get('detail', {}),
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash']
        )


class AuditLog:
    """
    Append-only, hash-chained audit log
    """

    def __init__(self, storage: StorageInterface, table_name: str = AUDIT_TABLE,
                 log_entries: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.log_entries = log_entries
        self.logger = get_logger("bank_ops.audit")

    def record(
        self,
        operation_type: AuditOperation,
        actor: Actor,
        affected_product_id: str,
        detail: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """
        Append an audit entry

        Args:
            operation_type: Tag of the audited operation
            actor: User (or the system actor) that performed it
            affected_product_id: ID of the account, loan, transfer or user affected
            detail: Structured snapshot with prior and new values

        Returns:
            Created AuditEntry
        """
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            last = self._last_entry()

            entry = AuditEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=(last.sequence + 1) if last else 1,
                operation_type=operation_type,
                actor_user_id=actor.user_id,
                actor_role=actor.role,
                affected_product_id=str(affected_product_id),
                detail=detail or {},
                previous_hash=last.current_hash if last else "",
                current_hash=""  # Calculated below
            )
            entry.current_hash = entry.calculate_hash()

            self.storage.insert(self.table_name, entry.id, entry.to_dict())

        if self.log_entries:
            log_action(
                self.logger, "info", f"Audit: {operation_type.value}",
                user_id=actor.user_id, role=actor.role.value,
                action=operation_type.value, resource=entry.affected_product_id,
                extra=entry.detail
            )

        return entry

    def _last_entry(self) -> Optional[AuditEntry]:
        """Tail of the chain; entries are insert-only so it is the last row written"""
        data = self.storage.last(self.table_name)
        if data:
            return AuditEntry.from_dict(data)
        return None

    def entries_for_product(self, affected_product_id: str) -> List[AuditEntry]:
        """
        Get all audit entries for a specific product

        Args:
            affected_product_id: Account number, loan id, transfer id, ...

        Returns:
            List of AuditEntry objects in chain order
        """
        data = self.storage.find(self.table_name, {'affected_product_id': str(affected_product_id)})
        entries = [AuditEntry.from_dict(d) for d in data]
        entries.sort(key=lambda e: e.sequence)
        return entries

    def all_entries(
        self,
        operation_type: Optional[AuditOperation] = None,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        """
        Get audit entries, optionally filtered by operation type

        Args:
            operation_type: Only entries with this tag
            limit: Return only the most recent N entries

        Returns:
            List of AuditEntry objects in chain order
        """
        entries = [AuditEntry.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if operation_type:
            entries = [e for e in entries if e.operation_type == operation_type]
        entries.sort(key=lambda e: e.sequence)

        if limit:
            entries = entries[-limit:]

        return entries

    def get_entry(self, entry_id: str) -> Optional[AuditEntry]:
        """Get a specific audit entry by ID"""
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return AuditEntry.from_dict(data)
        return None

    def count(self) -> int:
        """Get total number of audit entries"""
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        entries = self.all_entries()
        result['total_entries'] = len(entries)

        previous_hash = ""
        for position, entry in enumerate(entries, start=1):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'entry_id': entry.id,
                    'sequence': entry.sequence,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })

            if entry.previous_hash != previous_hash or entry.sequence != position:
                result['valid'] = False
                result['chain_breaks'].append({
                    'entry_id': entry.id,
                    'sequence': entry.sequence,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result
