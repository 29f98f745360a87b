"""
Audit Models for Household Ledger

Every contract mutation and every generation pass is logged for audit
purposes. This provides:
1. Complete traceability of what the engine created, patched or purged
2. Debugging information when a regeneration surprises a user
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Contract lifecycle
    CONTRACT_CREATED = "contract_created"
    CONTRACT_UPDATED = "contract_updated"
    CONTRACT_DELETED = "contract_deleted"
    PAYMENT_INFO_UPDATED = "payment_info_updated"
    TIERS_REPLACED = "tiers_replaced"

    # Obligation generation
    OBLIGATIONS_GENERATED = "obligations_generated"
    OBLIGATIONS_PATCHED = "obligations_patched"
    OBLIGATIONS_PURGED = "obligations_purged"
    INSTALLMENTS_GENERATED = "installments_generated"
    REGENERATION_CONFLICT = "regeneration_conflict"

    # Payments
    PAYMENT_RECORDED = "payment_recorded"

    # System events
    VALIDATION_FAILED = "validation_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'contract', 'obligation', 'plan')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - all events of one service call share an ID
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.contract_created(contract_id, name, correlation_id)
        event = AuditEventBuilder.obligations_generated(contract_id, 12, correlation_id)
    """

    @staticmethod
    def contract_created(
        contract_id: UUID,
        contract_name: str,
        tier_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_CREATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract created: {contract_name}",
            details={
                "contract_name": contract_name,
                "tier_count": tier_count,
            },
        )

    @staticmethod
    def contract_updated(
        contract_id: UUID,
        changed_fields: list[str],
        regenerated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_UPDATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract updated ({len(changed_fields)} fields)",
            details={
                "changed_fields": changed_fields,
                "regenerated": regenerated,
            },
        )

    @staticmethod
    def contract_deleted(
        contract_id: UUID,
        contract_name: str,
        purged_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract deleted: {contract_name}",
            details={
                "contract_name": contract_name,
                "purged_obligations": purged_count,
            },
        )

    @staticmethod
    def payment_info_updated(
        contract_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_INFO_UPDATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description="Contract payment info updated",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def tiers_replaced(
        contract_id: UUID,
        tier_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TIERS_REPLACED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Price tiers replaced with {tier_count} tiers",
            details={"tier_count": tier_count},
        )

    @staticmethod
    def obligations_generated(
        contract_id: UUID,
        generated_count: int,
        month_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATIONS_GENERATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Generated {generated_count} obligations",
            details={
                "generated_count": generated_count,
                "month_keys": month_keys,
            },
        )

    @staticmethod
    def obligations_patched(
        contract_id: UUID,
        patches: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATIONS_PATCHED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Patched amounts of {len(patches)} unpaid obligations",
            details={"patches": patches},
        )

    @staticmethod
    def obligations_purged(
        contract_id: UUID,
        purged_count: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATIONS_PURGED,
            severity=AuditSeverity.WARNING,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Purged {purged_count} unpaid obligations ({reason})",
            details={
                "purged_count": purged_count,
                "reason": reason,
            },
        )

    @staticmethod
    def installments_generated(
        plan_id: UUID,
        item_id: UUID,
        installment_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENTS_GENERATED,
            entity_type="installment_plan",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Generated {installment_count} installments",
            details={
                "item_id": str(item_id),
                "installment_count": installment_count,
            },
        )

    @staticmethod
    def regeneration_conflict(
        contract_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REGENERATION_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description="Concurrent regeneration detected; nothing was written",
            error_code="regeneration_conflict",
            error_message=error_message,
        )

    @staticmethod
    def payment_recorded(
        obligation_id: UUID,
        amount: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Payment recorded: {amount}",
            details={
                "amount": amount,
                "status": status,
            },
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="contract",
            correlation_id=correlation_id,
            description=f"Validation of {subject} failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
