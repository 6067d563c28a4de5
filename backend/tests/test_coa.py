"""Chart of accounts: normal balance derivation and overrides."""

import pytest
from sqlalchemy import select

from campus_finance.models.audit import AuditLog
from campus_finance.models.gl import AccountType, NormalBalance
from campus_finance.services.errors import DuplicateAccountCode, NormalBalanceMismatch
from campus_finance.services.gl import coa_service


class TestCreateAccount:

    @pytest.mark.asyncio
    async def test_liability_defaults_to_credit(self, db):
        acct = await coa_service.create_account(
            db, account_code="2200", account_name="Student Deposits",
            account_type=AccountType.LIABILITY,
        )
        assert acct.normal_balance == NormalBalance.CREDIT
        assert acct.normal_balance_override_reason is None

    @pytest.mark.asyncio
    async def test_mismatch_without_reason_rejected(self, db):
        with pytest.raises(NormalBalanceMismatch) as exc:
            await coa_service.create_account(
                db, account_code="2200", account_name="Student Deposits",
                account_type=AccountType.LIABILITY, normal_balance=NormalBalance.DEBIT,
            )
        assert exc.value.context["expected_normal_balance"] == "credit"

    @pytest.mark.asyncio
    async def test_override_with_reason_is_audited(self, db):
        acct = await coa_service.create_account(
            db, account_code="1190", account_name="Allowance for Doubtful Accounts",
            account_type=AccountType.ASSET, normal_balance=NormalBalance.CREDIT,
            override_reason="Contra-asset", created_by=7,
        )
        assert acct.normal_balance == NormalBalance.CREDIT
        assert acct.normal_balance_override_reason == "Contra-asset"
        await db.flush()
        audit = (await db.execute(
            select(AuditLog).where(AuditLog.entity_type == "gl_account")
        )).scalar_one()
        assert audit.action == "normal_balance_override"
        assert audit.entity_id == acct.id

    @pytest.mark.asyncio
    async def test_duplicate_code(self, seeded_db):
        with pytest.raises(DuplicateAccountCode):
            await coa_service.create_account(
                seeded_db, account_code="1000", account_name="Petty cash",
                account_type=AccountType.ASSET,
            )

    @pytest.mark.asyncio
    async def test_list_filters(self, seeded_db):
        revenue = await coa_service.list_accounts(seeded_db, account_type=AccountType.REVENUE)
        assert [a.account_code for a in revenue] == ["4000", "4100", "4200"]
        found = await coa_service.list_accounts(seeded_db, search="donation")
        assert [a.account_code for a in found] == ["4200"]
