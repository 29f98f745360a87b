"""
SQL Storage Implementation

DESIGN DECISION: A relational database (SQLite by default, PostgreSQL in
deployments) backs the ledger because:
1. Regeneration must be all-or-nothing across many rows
2. The (contract_id, month_key) rule is enforced by a unique index,
   so two racing regenerations cannot both insert the same month
3. Contracts, tiers, obligations and payments are naturally relational

TRADEOFFS:
- Calls are synchronous SQLAlchemy calls made from async methods. The
  ledger is single-household scale; a threadpool is not worth it here.
- Only one outer transaction runs at a time per storage instance.

The implementation follows the abstract interface, so the coordinator
never sees SQLAlchemy types.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    create_engine,
    delete,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_ledger.config import get_settings
from household_ledger.config.settings import DatabaseSettings
from household_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from household_ledger.models.contract import (
    ContractDocument,
    PriceTier,
    RentalContract,
)
from household_ledger.models.obligation import (
    Category,
    InstallmentPlan,
    Obligation,
    PaymentRecord,
    Project,
)
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger("household_ledger.storage")

Base = declarative_base()

AMOUNT = Numeric(12, 2)


# =============================================================================
# TABLES
# =============================================================================

class ProjectRow(Base):
    __tablename__ = "payment_projects"

    id = Column(Uuid, primary_key=True)
    project_name = Column(String(255), nullable=False)
    project_type = Column(String(50), nullable=False, default="general")
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)


class CategoryRow(Base):
    __tablename__ = "debt_categories"

    id = Column(Uuid, primary_key=True)
    category_name = Column(String(255), nullable=False)
    category_type = Column(String(20), nullable=False)
    description = Column(Text)
    is_deleted = Column(Boolean, nullable=False, default=False)


class ContractRow(Base):
    __tablename__ = "rental_contracts"

    id = Column(Uuid, primary_key=True)
    project_id = Column(Uuid, ForeignKey("payment_projects.id"), nullable=False, index=True)
    contract_name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_years = Column(Integer, nullable=False, default=0)
    total_months = Column(Integer, nullable=False, default=0)
    base_amount = Column(AMOUNT, nullable=False)
    has_buffer_period = Column(Boolean, nullable=False, default=False)
    buffer_months = Column(Integer, nullable=False, default=0)
    buffer_included_in_term = Column(Boolean, nullable=False, default=True)
    tenant_name = Column(String(255))
    tenant_phone = Column(String(50))
    tenant_address = Column(Text)
    payee_name = Column(String(255))
    payee_unit = Column(String(255))
    bank_code = Column(String(10))
    account_number = Column(String(50))
    contract_payment_day = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class PriceTierRow(Base):
    __tablename__ = "rental_price_tiers"

    id = Column(Uuid, primary_key=True)
    contract_id = Column(Uuid, ForeignKey("rental_contracts.id"), nullable=False, index=True)
    year_start = Column(Integer, nullable=False)
    year_end = Column(Integer, nullable=False)
    monthly_amount = Column(AMOUNT, nullable=False)
    created_at = Column(DateTime, nullable=False)


class DocumentRow(Base):
    __tablename__ = "contract_documents"

    id = Column(Uuid, primary_key=True)
    contract_id = Column(Uuid, ForeignKey("rental_contracts.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    version = Column(String(50), nullable=False)
    is_latest = Column(Boolean, nullable=False, default=False)
    uploaded_at = Column(DateTime, nullable=False)
    uploaded_by = Column(String(255))
    notes = Column(Text)


class ObligationRow(Base):
    __tablename__ = "payment_items"

    id = Column(Uuid, primary_key=True)
    category_id = Column(Uuid, ForeignKey("debt_categories.id"), nullable=False)
    project_id = Column(Uuid, ForeignKey("payment_projects.id"), index=True)
    contract_id = Column(
        Uuid,
        ForeignKey("rental_contracts.id", ondelete="SET NULL"),
        index=True,
    )
    month_key = Column(String(7))
    item_name = Column(String(255), nullable=False)
    total_amount = Column(AMOUNT, nullable=False)
    item_type = Column(String(20), nullable=False)
    payment_type = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    paid_amount = Column(AMOUNT, nullable=False, default=Decimal("0.00"))
    status = Column(String(20), nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    notes = Column(Text)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        # One live obligation per contract month; soft-deleted rows are exempt
        Index(
            "uq_payment_items_contract_month",
            "contract_id",
            "month_key",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )


class PaymentRecordRow(Base):
    __tablename__ = "payment_records"

    id = Column(Uuid, primary_key=True)
    obligation_id = Column(Uuid, ForeignKey("payment_items.id"), nullable=False, index=True)
    amount_paid = Column(AMOUNT, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method = Column(String(20))
    is_partial_payment = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False)


class InstallmentPlanRow(Base):
    __tablename__ = "installment_plans"

    id = Column(Uuid, primary_key=True)
    item_id = Column(Uuid, ForeignKey("payment_items.id"), nullable=False)
    total_amount = Column(AMOUNT, nullable=False)
    installment_count = Column(Integer, nullable=False)
    monthly_amount = Column(AMOUNT, nullable=False)
    amounts = Column(JSON, nullable=False)
    start_date = Column(Date, nullable=False)
    start_type = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(Uuid, primary_key=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(Uuid, index=True)
    correlation_id = Column(Uuid, index=True)
    description = Column(String(500), nullable=False)
    details = Column(JSON, nullable=False)
    error_code = Column(String(100))
    error_message = Column(Text)


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================

def build_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """
    Create a SQLAlchemy engine from database settings.

    In-memory SQLite gets a single shared connection; otherwise every
    session would see its own empty database.
    """
    settings = settings or get_settings().database
    kwargs: dict[str, Any] = {"echo": settings.echo}

    if settings.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if settings.url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 300

    return create_engine(settings.url, **kwargs)


def initialize_schema(engine: Engine, attempts: int = 3) -> None:
    """
    Create every table that does not exist yet.

    Retries with exponential backoff; a database that is still starting
    up usually answers on the second try.

    Raises:
        ConnectionError: If the database is unreachable after all attempts
    """
    try:
        for attempt in Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        ):
            with attempt:
                Base.metadata.create_all(engine)
    except OperationalError as e:
        raise ConnectionError(f"Failed to initialize database schema: {e}")


def _column_values(row_cls, model, **overrides) -> dict[str, Any]:
    """Model fields that map to columns of row_cls, enums unwrapped."""
    columns = row_cls.__table__.columns.keys()
    data = model.model_dump(include=set(columns))
    data.update(overrides)
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in data.items()
    }


def _to_model(model_cls, row, **overrides):
    data = {column: getattr(row, column) for column in row.__table__.columns.keys()}
    data.update(overrides)
    return model_cls.model_validate(data)


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class SqlLedgerStorage(LedgerStorageInterface):
    """
    SQLAlchemy implementation of ledger storage.

    The active Session lives in a context variable. Every method opens a
    transaction scope, so a call made inside the caller's
    `async with storage.transaction()` block joins it, and a call made
    outside commits on its own.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or build_engine()
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self._engine,
        )
        self._session: ContextVar[Optional[Session]] = ContextVar(
            f"ledger_session_{id(self)}", default=None
        )
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def engine(self) -> Engine:
        return self._engine

    def initialize(self, attempts: Optional[int] = None) -> None:
        """Create the schema, retrying while the database comes up."""
        initialize_schema(
            self._engine,
            attempts or get_settings().database.connect_retries,
        )

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @asynccontextmanager
    async def transaction(self):
        if self._session.get() is not None:
            yield
            return

        async with self._get_lock():
            session = self._session_factory()
            token = self._session.set(session)
            try:
                yield
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateError(f"Integrity violation: {e.orig}")
            except BaseException:
                session.rollback()
                raise
            finally:
                self._session.reset(token)
                session.close()

    def _current(self) -> Session:
        session = self._session.get()
        if session is None:
            raise StorageError("No active transaction")
        return session

    def _flush(self, session: Session, what: str) -> None:
        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateError(f"Duplicate {what}: {e.orig}")

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _plan_to_row(self, plan: InstallmentPlan) -> InstallmentPlanRow:
        """Installment amounts are stored as a JSON list of decimal strings."""
        return InstallmentPlanRow(**_column_values(
            InstallmentPlanRow,
            plan,
            amounts=[str(amount) for amount in plan.amounts],
        ))

    def _row_to_plan(self, row: InstallmentPlanRow) -> InstallmentPlan:
        return _to_model(
            InstallmentPlan,
            row,
            amounts=[Decimal(amount) for amount in row.amounts or []],
        )

    # -------------------------------------------------------------------------
    # Projects and categories
    # -------------------------------------------------------------------------

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        async with self.transaction():
            row = self._current().get(ProjectRow, project_id)
            if row is None or row.is_deleted:
                return None
            return _to_model(Project, row)

    async def insert_project(self, project: Project) -> Project:
        async with self.transaction():
            session = self._current()
            session.add(ProjectRow(**_column_values(ProjectRow, project)))
            self._flush(session, "project")
        return project

    async def find_category(
        self,
        category_name: str,
        category_type: str,
    ) -> Optional[Category]:
        async with self.transaction():
            stmt = (
                select(CategoryRow)
                .where(CategoryRow.category_name == category_name)
                .where(CategoryRow.category_type == category_type)
                .where(CategoryRow.is_deleted.is_(False))
                .limit(1)
            )
            row = self._current().scalars(stmt).first()
            return _to_model(Category, row) if row else None

    async def insert_category(self, category: Category) -> Category:
        async with self.transaction():
            session = self._current()
            session.add(CategoryRow(**_column_values(CategoryRow, category)))
            self._flush(session, "category")
        return category

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    async def get_contract(self, contract_id: UUID) -> Optional[RentalContract]:
        async with self.transaction():
            row = self._current().get(ContractRow, contract_id)
            return _to_model(RentalContract, row) if row else None

    async def list_contracts(
        self,
        project_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
    ) -> list[RentalContract]:
        async with self.transaction():
            stmt = select(ContractRow).order_by(ContractRow.created_at.desc())
            if project_id is not None:
                stmt = stmt.where(ContractRow.project_id == project_id)
            if is_active is not None:
                stmt = stmt.where(ContractRow.is_active.is_(is_active))
            rows = self._current().scalars(stmt).all()
            return [_to_model(RentalContract, row) for row in rows]

    async def insert_contract(self, contract: RentalContract) -> RentalContract:
        async with self.transaction():
            session = self._current()
            session.add(ContractRow(**_column_values(ContractRow, contract)))
            self._flush(session, "contract")
        return contract

    async def update_contract(self, contract: RentalContract) -> RentalContract:
        async with self.transaction():
            session = self._current()
            row = session.get(ContractRow, contract.id)
            if row is None:
                raise NotFoundError(f"Contract not found: {contract.id}")
            for key, value in _column_values(ContractRow, contract).items():
                setattr(row, key, value)
            self._flush(session, "contract")
        return contract

    async def delete_contract(self, contract_id: UUID) -> bool:
        async with self.transaction():
            session = self._current()
            row = session.get(ContractRow, contract_id)
            if row is None:
                return False
            session.execute(
                update(ObligationRow)
                .where(ObligationRow.contract_id == contract_id)
                .values(contract_id=None)
            )
            session.delete(row)
            session.flush()
        return True

    # -------------------------------------------------------------------------
    # Price tiers
    # -------------------------------------------------------------------------

    async def find_tiers(self, contract_id: UUID) -> list[PriceTier]:
        async with self.transaction():
            stmt = (
                select(PriceTierRow)
                .where(PriceTierRow.contract_id == contract_id)
                .order_by(PriceTierRow.year_start)
            )
            rows = self._current().scalars(stmt).all()
            return [_to_model(PriceTier, row) for row in rows]

    async def insert_tiers(self, tiers: list[PriceTier]) -> None:
        async with self.transaction():
            session = self._current()
            session.add_all([
                PriceTierRow(**_column_values(PriceTierRow, tier)) for tier in tiers
            ])
            self._flush(session, "price tier")

    async def delete_tiers(self, contract_id: UUID) -> int:
        async with self.transaction():
            result = self._current().execute(
                delete(PriceTierRow).where(PriceTierRow.contract_id == contract_id)
            )
            return result.rowcount

    # -------------------------------------------------------------------------
    # Obligations
    # -------------------------------------------------------------------------

    async def find_contract_obligations(
        self,
        contract: RentalContract,
        include_deleted: bool = False,
    ) -> list[Obligation]:
        async with self.transaction():
            stmt = (
                select(ObligationRow)
                .where(ObligationRow.contract_id == contract.id)
                .order_by(ObligationRow.start_date, ObligationRow.item_name)
            )
            if not include_deleted:
                stmt = stmt.where(ObligationRow.is_deleted.is_(False))
            rows = self._current().scalars(stmt).all()
            return [_to_model(Obligation, row) for row in rows]

    async def get_obligation(self, obligation_id: UUID) -> Optional[Obligation]:
        async with self.transaction():
            row = self._current().get(ObligationRow, obligation_id)
            return _to_model(Obligation, row) if row else None

    async def insert_obligations(self, obligations: list[Obligation]) -> None:
        async with self.transaction():
            session = self._current()
            session.add_all([
                ObligationRow(**_column_values(ObligationRow, obligation))
                for obligation in obligations
            ])
            self._flush(session, "obligation")

    async def update_obligation(
        self,
        obligation_id: UUID,
        patch: dict[str, Any],
    ) -> Obligation:
        async with self.transaction():
            session = self._current()
            row = session.get(ObligationRow, obligation_id)
            if row is None:
                raise NotFoundError(f"Obligation not found: {obligation_id}")
            for key, value in patch.items():
                setattr(row, key, value.value if isinstance(value, Enum) else value)
            self._flush(session, "obligation")
            return _to_model(Obligation, row)

    async def delete_obligations(self, obligation_ids: list[UUID]) -> int:
        if not obligation_ids:
            return 0
        async with self.transaction():
            result = self._current().execute(
                delete(ObligationRow).where(ObligationRow.id.in_(obligation_ids))
            )
            return result.rowcount

    # -------------------------------------------------------------------------
    # Payment records
    # -------------------------------------------------------------------------

    async def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        async with self.transaction():
            session = self._current()
            if session.get(ObligationRow, record.obligation_id) is None:
                raise NotFoundError(f"Obligation not found: {record.obligation_id}")
            session.add(PaymentRecordRow(**_column_values(PaymentRecordRow, record)))
            self._flush(session, "payment record")
        return record

    async def find_payment_records(
        self,
        obligation_ids: list[UUID],
    ) -> list[PaymentRecord]:
        if not obligation_ids:
            return []
        async with self.transaction():
            stmt = (
                select(PaymentRecordRow)
                .where(PaymentRecordRow.obligation_id.in_(obligation_ids))
                .order_by(
                    PaymentRecordRow.payment_date.desc(),
                    PaymentRecordRow.created_at.desc(),
                )
            )
            rows = self._current().scalars(stmt).all()
            return [_to_model(PaymentRecord, row) for row in rows]

    async def delete_payment_records(self, obligation_ids: list[UUID]) -> int:
        if not obligation_ids:
            return 0
        async with self.transaction():
            result = self._current().execute(
                delete(PaymentRecordRow)
                .where(PaymentRecordRow.obligation_id.in_(obligation_ids))
            )
            return result.rowcount

    # -------------------------------------------------------------------------
    # Contract documents
    # -------------------------------------------------------------------------

    async def find_documents(self, contract_id: UUID) -> list[ContractDocument]:
        async with self.transaction():
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.contract_id == contract_id)
                .order_by(DocumentRow.uploaded_at.desc())
            )
            rows = self._current().scalars(stmt).all()
            return [_to_model(ContractDocument, row) for row in rows]

    async def insert_document(self, document: ContractDocument) -> ContractDocument:
        async with self.transaction():
            session = self._current()
            session.add(DocumentRow(**_column_values(DocumentRow, document)))
            self._flush(session, "document")
        return document

    async def delete_documents(self, contract_id: UUID) -> int:
        async with self.transaction():
            result = self._current().execute(
                delete(DocumentRow).where(DocumentRow.contract_id == contract_id)
            )
            return result.rowcount

    # -------------------------------------------------------------------------
    # Installment plans
    # -------------------------------------------------------------------------

    async def insert_installment_plan(self, plan: InstallmentPlan) -> InstallmentPlan:
        async with self.transaction():
            session = self._current()
            session.add(self._plan_to_row(plan))
            self._flush(session, "installment plan")
        return plan

    async def get_installment_plan(self, plan_id: UUID) -> Optional[InstallmentPlan]:
        async with self.transaction():
            row = self._current().get(InstallmentPlanRow, plan_id)
            return self._row_to_plan(row) if row else None


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """
    SQLAlchemy implementation of audit log storage.

    Audit events are append-only. Each append commits on its own session,
    independent of any ledger transaction.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        write_attempts: int = 3,
        write_wait=None,
    ):
        self._engine = engine or build_engine()
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self._engine,
        )
        self._write_attempts = write_attempts
        self._write_wait = write_wait or wait_exponential(multiplier=1, min=2, max=10)

    def _event_to_row(self, event: AuditEvent) -> AuditEventRow:
        """Details are stored in their JSON-safe form."""
        return AuditEventRow(
            event_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=event.correlation_id,
            description=event.description,
            details=event.model_dump(mode="json")["details"],
            error_code=event.error_code,
            error_message=event.error_message,
        )

    def _row_to_event(self, row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
        )

    def _write_event(self, event: AuditEvent) -> None:
        with self._session_factory() as session:
            session.add(self._event_to_row(event))
            session.commit()

    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event.

        Transient database errors (OperationalError) are retried with
        backoff; anything still failing is logged and reported as False.
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._write_attempts),
                wait=self._write_wait,
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            ):
                with attempt:
                    self._write_event(event)
            return True
        except SQLAlchemyError as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    def _query(self, stmt) -> list[AuditEvent]:
        try:
            with self._session_factory() as session:
                return [self._row_to_event(row) for row in session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == correlation_id)
            .order_by(AuditEventRow.timestamp)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .where(AuditEventRow.entity_type == entity_type)
            .where(AuditEventRow.entity_id == entity_id)
            .order_by(AuditEventRow.timestamp)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )
