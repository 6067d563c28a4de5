"""Request model validation: closed bodies and major-unit amounts."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from campus_finance.schemas import (
    AllocationCreate,
    BulkFeeRequest,
    FeeCreate,
    JournalEntryCreate,
    PaymentCreate,
)
from campus_finance.services.fee_service import BulkFeeAction

FEE = {"student_id": 1, "due_date": "2026-04-01", "description": "Tuition"}


class TestMoneyInput:

    def test_minor_units_pass_through(self):
        assert FeeCreate(**FEE, amount=50000).amount == 50000

    def test_major_units_are_rounded(self):
        fee = FeeCreate(**FEE, amount_major=Decimal("19.999"))
        assert fee.amount == 2000

    def test_major_units_from_json_string(self):
        fee = FeeCreate.model_validate({**FEE, "amount_major": "125.50"})
        assert fee.amount == 12550

    def test_both_amounts_rejected(self):
        with pytest.raises(PydanticValidationError):
            FeeCreate(**FEE, amount=100, amount_major=Decimal("1.00"))

    def test_neither_amount_rejected(self):
        with pytest.raises(PydanticValidationError):
            FeeCreate(**FEE)

    def test_major_amount_rounding_to_zero_rejected(self):
        with pytest.raises(PydanticValidationError):
            FeeCreate(**FEE, amount_major=Decimal("0.004"))

    def test_payment_defaults_to_completed(self):
        payment = PaymentCreate(
            student_id=1, amount=100, payment_date="2026-03-01", payment_method="cash"
        )
        assert payment.status.value == "completed"


class TestClosedBodies:

    def test_unknown_field_rejected(self):
        with pytest.raises(PydanticValidationError):
            AllocationCreate(payment_id=1, student_fee_id=2, amount=100, note="extra")

    def test_allocation_amount_positive(self):
        with pytest.raises(PydanticValidationError):
            AllocationCreate(payment_id=1, student_fee_id=2, amount=0)

    def test_bulk_action_names(self):
        assert BulkFeeRequest(action="paid", ids=[1]).action == BulkFeeAction.MARK_PAID
        assert BulkFeeRequest(action="delete", ids=[1]).action == BulkFeeAction.DELETE
        with pytest.raises(PydanticValidationError):
            BulkFeeRequest(action="refund", ids=[1])
        with pytest.raises(PydanticValidationError):
            BulkFeeRequest(action="delete", ids=[])

    def test_journal_entry_needs_two_lines(self):
        with pytest.raises(PydanticValidationError):
            JournalEntryCreate(
                description="x", lines=[{"account_id": 1, "debit": 5, "credit": 0}]
            )
