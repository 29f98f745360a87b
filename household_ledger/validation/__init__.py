"""Validation package."""

from household_ledger.validation.validator import ContractValidator

__all__ = ["ContractValidator"]
