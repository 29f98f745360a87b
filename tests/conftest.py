"""
Shared fixtures.

Storage-backed tests run against the in-memory store; async calls are
driven with asyncio.run() from plain synchronous tests.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from household_ledger.audit import AuditLogger
from household_ledger.config.settings import EngineSettings
from household_ledger.models.contract import ContractInput, RentalContract
from household_ledger.models.obligation import Category, Project
from household_ledger.orchestrator import RentalContractService
from household_ledger.queries import ContractQueries
from household_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)


@pytest.fixture
def engine_settings():
    return EngineSettings()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def project(storage):
    return asyncio.run(storage.insert_project(Project(project_name="Downtown Shops")))


@pytest.fixture
def rent_category(storage, engine_settings):
    return asyncio.run(storage.insert_category(Category(
        category_name=engine_settings.rent_category_name,
        category_type=engine_settings.rent_category_type,
    )))


@pytest.fixture
def service(storage, audit_storage, engine_settings):
    return RentalContractService(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        engine_settings=engine_settings,
    )


@pytest.fixture
def queries(storage):
    return ContractQueries(storage)


@pytest.fixture
def contract_input(project):
    """Factory for contract definitions owned by the fixture project."""
    def build(**overrides) -> ContractInput:
        fields = {
            "project_id": project.id,
            "contract_name": "Shop A",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 12, 31),
            "base_amount": Decimal("800.00"),
        }
        fields.update(overrides)
        return ContractInput(**fields)
    return build


@pytest.fixture
def make_contract():
    """Factory for unsaved contracts, for pure engine tests."""
    def build(**overrides) -> RentalContract:
        fields = {
            "project_id": Project(project_name="Unsaved").id,
            "contract_name": "Shop A",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 12, 31),
            "base_amount": Decimal("800.00"),
        }
        fields.update(overrides)
        return RentalContract(**fields)
    return build
