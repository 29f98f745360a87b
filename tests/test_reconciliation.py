"""
Tests for the reconciliation engine.

Test strategy:
1. Reconciling an empty store creates every month
2. Reconciling twice with no change writes nothing
3. Paid and replaced obligations are never patched; unpaid ones are
4. Only live obligations of the same contract count as existing
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

from household_ledger.engine.materializer import materialize
from household_ledger.engine.reconciliation import (
    apply_reconciliation,
    extract_month_key,
    reconcile,
)
from household_ledger.models.contract import PriceTier
from household_ledger.models.obligation import (
    Obligation,
    ObligationStatus,
    PaymentType,
)


CATEGORY_ID = uuid4()


def first_pass(contract, tiers=()):
    materialized = materialize(contract, list(tiers))
    return materialized, reconcile(contract, materialized, [], CATEGORY_ID)


class TestExtractMonthKey:
    """Tests for reading the month out of legacy item names."""

    def test_generated_name(self):
        assert extract_month_key("2024-05-Shop A") == "2024-05"

    def test_name_without_month(self):
        assert extract_month_key("Electricity") is None


class TestReconcile:
    """Tests for the create / patch / skip decisions."""

    def test_empty_store_creates_every_month(self, make_contract):
        """Test every materialized month becomes a pending obligation."""
        contract = make_contract()
        materialized, result = first_pass(contract)

        assert result.generated_count == len(materialized) == 12
        assert result.patched == []

        first = result.created[0]
        assert first.item_name == "2024-01-Shop A"
        assert first.month_key == "2024-01"
        assert first.contract_id == contract.id
        assert first.project_id == contract.project_id
        assert first.category_id == CATEGORY_ID
        assert first.start_date == date(2024, 1, 31)
        assert first.status == ObligationStatus.PENDING
        assert first.payment_type == PaymentType.SINGLE
        assert first.paid_amount == Decimal("0")
        assert first.notes == "Shop A 第1年租金"

    def test_second_pass_is_noop(self, make_contract):
        """Test reconciling against the first pass's output writes nothing."""
        contract = make_contract()
        materialized, result = first_pass(contract)

        again = reconcile(contract, materialized, result.created, CATEGORY_ID)

        assert again.is_noop
        assert again.generated_count == 0

    def test_paid_obligation_is_never_patched(self, make_contract):
        """Test a paid month keeps its amount even if the tier changed."""
        contract = make_contract()
        _, result = first_pass(contract)
        may = result.created[4].model_copy(update={
            "paid_amount": Decimal("800.00"),
            "status": ObligationStatus.PAID,
        })
        existing = [o for o in result.created if o.id != may.id] + [may]

        tiers = [PriceTier(contract_id=contract.id, year_start=1, year_end=1,
                           monthly_amount=Decimal("1200.00"))]
        again = reconcile(contract, materialize(contract, tiers), existing, CATEGORY_ID)

        assert may.id not in {p.obligation_id for p in again.patched}
        assert again.generated_count == 0
        assert len(again.patched) == 11

    def test_replaced_obligation_is_never_patched(self, make_contract):
        """Test a month split into installments keeps its amount and note."""
        contract = make_contract()
        _, result = first_pass(contract)
        january = result.created[0].model_copy(update={
            "status": ObligationStatus.REPLACED,
            "notes": "已轉為2期分期付款",
        })
        existing = [january] + result.created[1:]

        tiers = [PriceTier(contract_id=contract.id, year_start=1, year_end=1,
                           monthly_amount=Decimal("1200.00"))]
        again = reconcile(contract, materialize(contract, tiers), existing, CATEGORY_ID)

        assert january.id not in {p.obligation_id for p in again.patched}
        assert again.generated_count == 0
        assert len(again.patched) == 11

    def test_unpaid_obligation_is_patched(self, make_contract):
        """Test an unpaid month takes the new amount and an updated note."""
        contract = make_contract()
        _, result = first_pass(contract)

        tiers = [PriceTier(contract_id=contract.id, year_start=1, year_end=1,
                           monthly_amount=Decimal("1200.00"))]
        again = reconcile(contract, materialize(contract, tiers), result.created, CATEGORY_ID)

        patch = again.patched[0]
        assert patch.month_key == "2024-01"
        assert patch.previous_amount == Decimal("800.00")
        assert patch.total_amount == Decimal("1200.00")
        assert patch.notes == "Shop A 第1年租金 (已更新)"

    def test_equal_amount_with_different_scale_is_unchanged(self, make_contract):
        """Test 800 and 800.00 compare equal."""
        contract = make_contract(base_amount=Decimal("800"))
        materialized, result = first_pass(contract)
        existing = [
            o.model_copy(update={"total_amount": Decimal("800.00")})
            for o in result.created
        ]

        assert reconcile(contract, materialized, existing, CATEGORY_ID).is_noop

    def test_soft_deleted_rows_do_not_count(self, make_contract):
        """Test a soft-deleted month is created again."""
        contract = make_contract()
        materialized, result = first_pass(contract)
        existing = list(result.created)
        existing[0] = existing[0].model_copy(update={"is_deleted": True})

        again = reconcile(contract, materialized, existing, CATEGORY_ID)

        assert [o.month_key for o in again.created] == ["2024-01"]

    def test_other_contract_rows_do_not_count(self, make_contract):
        """Test obligations of another contract with the same name are ignored."""
        contract = make_contract()
        other = make_contract(project_id=contract.project_id)
        materialized, _ = first_pass(contract)
        _, other_result = first_pass(other)

        again = reconcile(contract, materialized, other_result.created, CATEGORY_ID)

        assert again.generated_count == 12

    def test_legacy_row_matched_by_item_name(self, make_contract):
        """Test a stored row without month_key is matched through its name."""
        contract = make_contract(end_date=date(2024, 1, 31))
        legacy = Obligation(
            category_id=CATEGORY_ID,
            project_id=contract.project_id,
            contract_id=contract.id,
            item_name="2024-01-Shop A",
            total_amount=Decimal("800.00"),
            start_date=date(2024, 1, 31),
        )

        result = reconcile(contract, materialize(contract, []), [legacy], CATEGORY_ID)

        assert result.is_noop

    def test_generated_count_excludes_patches(self, make_contract):
        """Test extending the term reports only the new months as generated."""
        contract = make_contract()
        _, result = first_pass(contract)

        longer = contract.model_copy(update={
            "end_date": date(2025, 2, 28),
            "base_amount": Decimal("900.00"),
        })
        again = reconcile(longer, materialize(longer, []), result.created, CATEGORY_ID)

        assert again.generated_count == 2
        assert len(again.patched) == 12


class TestApplyReconciliation:
    """Tests for persisting a reconciliation result."""

    def test_writes_creates_and_patches(self, storage, make_contract):
        """Test created rows are inserted and patches touch amount and notes."""
        contract = make_contract()
        _, result = first_pass(contract)
        asyncio.run(apply_reconciliation(storage, result))

        tiers = [PriceTier(contract_id=contract.id, year_start=1, year_end=1,
                           monthly_amount=Decimal("1000.00"))]
        stored = asyncio.run(storage.find_contract_obligations(contract))
        patch_result = reconcile(contract, materialize(contract, tiers), stored, CATEGORY_ID)
        asyncio.run(apply_reconciliation(storage, patch_result))

        stored = asyncio.run(storage.find_contract_obligations(contract))
        assert len(stored) == 12
        assert all(o.total_amount == Decimal("1000.00") for o in stored)
        assert all(o.notes.endswith("(已更新)") for o in stored)
        assert all(o.item_name.endswith("-Shop A") for o in stored)
