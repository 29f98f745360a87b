"""
Audit Logger

DESIGN DECISION: Every contract mutation and generation pass is logged.
This provides:
1. Complete traceability of what the engine wrote
2. Debugging capability when a regeneration surprises a user

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events

CRITICAL: Callers log after their storage transaction has finished.
An audit write never shares a transaction with ledger data.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from household_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the standard library at the given level.

    Call once at startup, typically with get_settings().app.log_level.
    """
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("household_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_contract_created(
        self,
        contract_id: UUID,
        contract_name: str,
        tier_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log contract creation."""
        await self.log(AuditEventBuilder.contract_created(
            contract_id=contract_id,
            contract_name=contract_name,
            tier_count=tier_count,
            correlation_id=correlation_id,
        ))

    async def log_contract_updated(
        self,
        contract_id: UUID,
        changed_fields: list[str],
        regenerated: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a contract definition change."""
        await self.log(AuditEventBuilder.contract_updated(
            contract_id=contract_id,
            changed_fields=changed_fields,
            regenerated=regenerated,
            correlation_id=correlation_id,
        ))

    async def log_contract_deleted(
        self,
        contract_id: UUID,
        contract_name: str,
        purged_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.contract_deleted(
            contract_id=contract_id,
            contract_name=contract_name,
            purged_count=purged_count,
            correlation_id=correlation_id,
        ))

    async def log_payment_info_updated(
        self,
        contract_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.payment_info_updated(
            contract_id=contract_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_tiers_replaced(
        self,
        contract_id: UUID,
        tier_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tiers_replaced(
            contract_id=contract_id,
            tier_count=tier_count,
            correlation_id=correlation_id,
        ))

    async def log_obligations_generated(
        self,
        contract_id: UUID,
        month_keys: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log creation of new monthly obligations."""
        await self.log(AuditEventBuilder.obligations_generated(
            contract_id=contract_id,
            generated_count=len(month_keys),
            month_keys=month_keys,
            correlation_id=correlation_id,
        ))

    async def log_obligations_patched(
        self,
        contract_id: UUID,
        patches: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log amount patches applied to unpaid obligations."""
        await self.log(AuditEventBuilder.obligations_patched(
            contract_id=contract_id,
            patches=patches,
            correlation_id=correlation_id,
        ))

    async def log_obligations_purged(
        self,
        contract_id: UUID,
        purged_count: int,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.obligations_purged(
            contract_id=contract_id,
            purged_count=purged_count,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_installments_generated(
        self,
        plan_id: UUID,
        item_id: UUID,
        installment_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.installments_generated(
            plan_id=plan_id,
            item_id=item_id,
            installment_count=installment_count,
            correlation_id=correlation_id,
        ))

    async def log_regeneration_conflict(
        self,
        contract_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a regeneration that lost a race and was rolled back."""
        await self.log(AuditEventBuilder.regeneration_conflict(
            contract_id=contract_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_payment_recorded(
        self,
        obligation_id: UUID,
        amount: str,
        status: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.payment_recorded(
            obligation_id=obligation_id,
            amount=amount,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call (e.g., a contract update).
    Pass it through all subsequent operations.
    """
    return uuid4()
