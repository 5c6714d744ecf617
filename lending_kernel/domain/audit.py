"""
Audit -- what the kernel tells the audit log after every mutation.

Responsibility:
    Defines the audit entry value object and the emitter interface the
    request boundary calls once a unit of work has committed (or once an
    attempt has been rejected).  Storage of the entries is owned by the
    platform's audit vertical; the kernel only hands them over.

Architecture position:
    Kernel > Domain -- pure value objects plus two trivial emitters.

Invariants enforced:
    - Every entry carries the operator id and email, the mandatory reason,
      before/after snapshots where an entity changed, and a SHA-256 hash of
      the canonical JSON payload.
    - Entries are frozen once built.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lending_kernel.logging_config import get_logger
from lending_kernel.utils.hashing import hash_payload


class AuditAction(str, Enum):
    """Mutations that produce an audit entry."""

    FINANCING_CREATED = "financing_created"
    INSTALLMENT_PAID = "installment_paid"
    PENALTY_WAIVED = "penalty_waived"
    DUE_DATE_EXTENDED = "due_date_extended"
    INSTALLMENT_MARKED_OVERDUE = "installment_marked_overdue"
    FINANCING_LIQUIDATED = "financing_liquidated"
    INVESTMENT_CREATED = "investment_created"
    INVESTMENT_VALUE_ADJUSTED = "investment_value_adjusted"
    INVESTMENT_LIQUIDATED = "investment_liquidated"


class AuditOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuditEntry:
    """
    One audit record.

    ``resource`` is the collection name ("financings", "investments");
    ``resource_id`` the entity the operator targeted.  For rejected attempts
    ``after`` is None and ``error_code`` names the refusal.
    """

    action: AuditAction
    resource: str
    resource_id: str
    user_id: str | None
    operator_id: str
    operator_email: str
    reason: str
    description: str
    outcome: AuditOutcome
    occurred_at: datetime
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    details: dict[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    payload_hash: str = ""

    def payload(self) -> dict[str, Any]:
        """The hashed part of the entry."""
        return {
            "action": self.action.value,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "user_id": self.user_id,
            "operator_id": self.operator_id,
            "operator_email": self.operator_email,
            "reason": self.reason,
            "description": self.description,
            "outcome": self.outcome.value,
            "occurred_at": self.occurred_at,
            "before": self.before,
            "after": self.after,
            "details": self.details,
            "error_code": self.error_code,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.payload(), "payload_hash": self.payload_hash}

    @classmethod
    def build(cls, **fields: Any) -> "AuditEntry":
        """Construct an entry with its payload hash filled in."""
        draft = cls(**fields)
        return cls(**{**fields, "payload_hash": hash_payload(draft.payload())})

    def verify(self) -> bool:
        """True if the stored hash still matches the payload."""
        return self.payload_hash == hash_payload(self.payload())


class AuditEmitter(ABC):
    """Hands audit entries to whatever stores them."""

    @abstractmethod
    def emit(self, entry: AuditEntry) -> None:
        ...


class LoggingAuditEmitter(AuditEmitter):
    """Writes each entry as one structured log line on ``lending_kernel.audit``."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or get_logger("audit")

    def emit(self, entry: AuditEntry) -> None:
        self._logger.info(
            "audit_entry",
            extra={"audit": entry.to_dict()},
        )


class InMemoryAuditEmitter(AuditEmitter):
    """Collects entries in a list."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def emit(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def for_action(self, action: AuditAction) -> list[AuditEntry]:
        return [e for e in self.entries if e.action == action]

    @property
    def last(self) -> AuditEntry | None:
        return self.entries[-1] if self.entries else None
