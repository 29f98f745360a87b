"""
Tests for the SQLAlchemy storage backend.

Runs against SQLite in memory; the schema is created per test.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from tenacity import wait_none

from household_ledger.audit import AuditLogger
from household_ledger.config.settings import DatabaseSettings
from household_ledger.models.audit import AuditEventBuilder, AuditEventType
from household_ledger.models.contract import ContractChanges, ContractInput, RentalContract
from household_ledger.models.obligation import (
    Category,
    InstallmentPlan,
    Obligation,
    ObligationStatus,
    Project,
)
from household_ledger.orchestrator import RentalContractService
from household_ledger.services.storage import (
    DuplicateError,
    SqlAuditStorage,
    SqlLedgerStorage,
    build_engine,
    initialize_schema,
)


@pytest.fixture
def sql_engine():
    engine = build_engine(DatabaseSettings(url="sqlite://"))
    initialize_schema(engine, attempts=1)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_storage(sql_engine):
    return SqlLedgerStorage(sql_engine)


@pytest.fixture
def sql_project(sql_storage):
    return asyncio.run(sql_storage.insert_project(Project(project_name="Downtown Shops")))


@pytest.fixture
def sql_contract(sql_storage, sql_project):
    contract = RentalContract(
        project_id=sql_project.id,
        contract_name="Shop A",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 3, 31),
        base_amount=Decimal("800.00"),
        total_years=1,
        total_months=3,
    )
    return asyncio.run(sql_storage.insert_contract(contract))


def rent_row(contract, key, **overrides):
    fields = {
        "category_id": uuid4(),
        "project_id": contract.project_id,
        "contract_id": contract.id,
        "month_key": key,
        "item_name": f"{key}-{contract.contract_name}",
        "total_amount": Decimal("800.00"),
        "start_date": date(2024, 1, 31),
    }
    fields.update(overrides)
    return Obligation(**fields)


class FlakyAuditStorage(SqlAuditStorage):
    """Fails the first `failures` writes with a transient database error."""

    def __init__(self, engine, failures, **kwargs):
        super().__init__(engine, **kwargs)
        self.failures = failures
        self.calls = 0

    def _write_event(self, event):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("INSERT INTO audit_events", {}, Exception("database is locked"))
        super()._write_event(event)


class TestSqlLedgerStorage:
    """Tests for row mapping and constraints."""

    def test_contract_round_trip(self, sql_storage, sql_contract):
        """Test a contract reads back with the same values."""
        stored = asyncio.run(sql_storage.get_contract(sql_contract.id))

        assert stored.contract_name == "Shop A"
        assert stored.base_amount == Decimal("800.00")
        assert stored.start_date == date(2024, 1, 1)
        assert stored.project_id == sql_contract.project_id

    def test_category_lookup(self, sql_storage):
        """Test categories are found by name and type."""
        asyncio.run(sql_storage.insert_category(Category(category_name="租金")))

        found = asyncio.run(sql_storage.find_category("租金", "project"))
        missing = asyncio.run(sql_storage.find_category("租金", "household"))

        assert found.category_name == "租金"
        assert missing is None

    def test_duplicate_month_is_rejected(self, sql_storage, sql_contract):
        """Test the unique index allows one live row per contract month."""
        asyncio.run(sql_storage.insert_obligations([rent_row(sql_contract, "2024-01")]))

        with pytest.raises(DuplicateError):
            asyncio.run(sql_storage.insert_obligations([rent_row(sql_contract, "2024-01")]))

        assert len(asyncio.run(sql_storage.find_contract_obligations(sql_contract))) == 1

    def test_soft_deleted_rows_are_exempt(self, sql_storage, sql_contract):
        """Test a soft-deleted row does not block a new live row for the month."""
        asyncio.run(sql_storage.insert_obligations([
            rent_row(sql_contract, "2024-01", is_deleted=True),
            rent_row(sql_contract, "2024-01"),
        ]))

        live = asyncio.run(sql_storage.find_contract_obligations(sql_contract))
        everything = asyncio.run(
            sql_storage.find_contract_obligations(sql_contract, include_deleted=True)
        )

        assert len(live) == 1
        assert len(everything) == 2

    def test_failed_transaction_rolls_back(self, sql_storage, sql_project):
        """Test nothing written inside a failed transaction survives."""
        contract = RentalContract(
            project_id=sql_project.id,
            contract_name="Shop B",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            base_amount=Decimal("500.00"),
        )

        async def fail_midway():
            async with sql_storage.transaction():
                await sql_storage.insert_contract(contract)
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(fail_midway())

        assert asyncio.run(sql_storage.get_contract(contract.id)) is None

    def test_update_obligation_unwraps_enums(self, sql_storage, sql_contract):
        """Test status patches are stored and read back as enums."""
        row = rent_row(sql_contract, "2024-02")
        asyncio.run(sql_storage.insert_obligations([row]))

        updated = asyncio.run(sql_storage.update_obligation(row.id, {
            "paid_amount": Decimal("800.00"),
            "status": ObligationStatus.PAID,
        }))

        assert updated.status == ObligationStatus.PAID
        assert asyncio.run(sql_storage.get_obligation(row.id)).paid_amount == Decimal("800.00")

    def test_delete_contract_detaches_obligations(self, sql_storage, sql_contract):
        """Test deleting a contract keeps its obligations without a contract link."""
        row = rent_row(sql_contract, "2024-01", paid_amount=Decimal("800.00"))
        asyncio.run(sql_storage.insert_obligations([row]))

        assert asyncio.run(sql_storage.delete_contract(sql_contract.id)) is True
        assert asyncio.run(sql_storage.get_obligation(row.id)).contract_id is None
        assert asyncio.run(sql_storage.delete_contract(sql_contract.id)) is False

    def test_installment_plan_round_trip(self, sql_storage, sql_contract):
        """Test the installment schedule survives storage as decimals."""
        row = rent_row(sql_contract, "2024-01")
        asyncio.run(sql_storage.insert_obligations([row]))
        plan = InstallmentPlan(
            item_id=row.id,
            total_amount=Decimal("800.00"),
            installment_count=3,
            monthly_amount=Decimal("266.66"),
            amounts=[Decimal("266.66"), Decimal("266.66"), Decimal("266.68")],
            start_date=date(2024, 2, 1),
        )
        asyncio.run(sql_storage.insert_installment_plan(plan))

        stored = asyncio.run(sql_storage.get_installment_plan(plan.id))

        assert stored.amounts == plan.amounts
        assert stored.start_type == plan.start_type

    def test_empty_id_lists(self, sql_storage):
        assert asyncio.run(sql_storage.delete_obligations([])) == 0
        assert asyncio.run(sql_storage.find_payment_records([])) == []


class TestSqlAuditStorage:
    """Tests for the append-only audit table."""

    def test_append_and_query(self, sql_engine):
        """Test events are found by correlation ID and by entity."""
        audit_storage = SqlAuditStorage(sql_engine)
        contract_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.obligations_generated(
            contract_id=contract_id,
            generated_count=1,
            month_keys=["2024-01"],
            correlation_id=correlation_id,
        )

        assert asyncio.run(audit_storage.append_event(event)) is True

        by_correlation = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        by_entity = asyncio.run(audit_storage.get_events_by_entity("contract", contract_id))

        assert [e.event_id for e in by_correlation] == [event.event_id]
        assert by_entity[0].details["month_keys"] == ["2024-01"]
        assert by_entity[0].event_type == AuditEventType.OBLIGATIONS_GENERATED

    def test_transient_write_failure_is_retried(self, sql_engine):
        """Test an OperationalError on the first write is retried and succeeds."""
        audit_storage = FlakyAuditStorage(sql_engine, failures=1, write_wait=wait_none())
        event = AuditEventBuilder.contract_deleted(uuid4(), "Shop A", 0)

        assert asyncio.run(audit_storage.append_event(event)) is True
        assert audit_storage.calls == 2
        assert len(asyncio.run(audit_storage.get_recent_events())) == 1

    def test_persistent_write_failure_returns_false(self, sql_engine):
        """Test a write that keeps failing is reported, not raised."""
        audit_storage = FlakyAuditStorage(
            sql_engine, failures=5, write_attempts=3, write_wait=wait_none(),
        )
        event = AuditEventBuilder.contract_deleted(uuid4(), "Shop A", 0)

        assert asyncio.run(audit_storage.append_event(event)) is False
        assert audit_storage.calls == 3


class TestServiceOnSql:
    """End-to-end coordinator flows on the relational backend."""

    @pytest.fixture
    def sql_service(self, sql_engine, sql_storage, engine_settings):
        asyncio.run(sql_storage.insert_category(Category(
            category_name=engine_settings.rent_category_name,
            category_type=engine_settings.rent_category_type,
        )))
        return RentalContractService(
            storage=sql_storage,
            audit_logger=AuditLogger(SqlAuditStorage(sql_engine)),
            engine_settings=engine_settings,
        )

    def test_generate_twice_and_rename(self, sql_service, sql_storage, sql_project):
        """Test idempotent generation and a rename that keeps the paid month."""
        contract = asyncio.run(sql_service.create_rental_contract(ContractInput(
            project_id=sql_project.id,
            contract_name="Shop A",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 31),
            base_amount=Decimal("800.00"),
        )))

        first = asyncio.run(sql_service.generate_rental_payments(contract.id))
        second = asyncio.run(sql_service.generate_rental_payments(contract.id))
        assert (first.generated_count, second.generated_count) == (3, 0)

        stored = asyncio.run(sql_storage.find_contract_obligations(contract))
        asyncio.run(sql_service.record_payment(stored[0].id, Decimal("800.00"), date(2024, 1, 5)))

        renamed = asyncio.run(sql_service.update_rental_contract(
            contract.id,
            ContractChanges(contract_name="Shop B"),
        ))
        stored = asyncio.run(sql_storage.find_contract_obligations(renamed))

        assert [o.item_name for o in stored] == [
            "2024-01-Shop A", "2024-02-Shop B", "2024-03-Shop B",
        ]
        assert stored[0].status == ObligationStatus.PAID
