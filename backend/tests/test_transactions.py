"""Transaction runner, command wrapper and error persistence.

Covers:
- Retry on serialization failure and on generated-number collisions,
  no retry on other DB errors
- run_command leaves FinanceError alone and logs anything unexpected
- log_error records a rejected command's kind and context
- log_error_standalone never raises
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from campus_finance.api.deps import run_command
from campus_finance.database import run_in_transaction
from campus_finance.models.error_log import ErrorLog, ErrorSeverity
from campus_finance.services.error_logger import log_error, log_error_standalone
from campus_finance.services.errors import OverAllocation


class _Conflict(Exception):
    sqlstate = "40001"


class _Broken(Exception):
    sqlstate = "23505"


class _UniqueViolation(Exception):
    """asyncpg-style cause carrying the violated constraint."""

    def __init__(self, constraint_name):
        super().__init__(constraint_name)
        self.constraint_name = constraint_name


def _duplicate(constraint_name):
    orig = _Broken()
    orig.__cause__ = _UniqueViolation(constraint_name)
    return IntegrityError("INSERT", {}, orig)


# ===================================================================
# run_in_transaction
# ===================================================================


class TestRunInTransaction:

    @pytest.mark.asyncio
    async def test_retries_serialization_failure(self, session_factory):
        fn = AsyncMock(side_effect=[OperationalError("UPDATE", {}, _Conflict()), "ok"])
        with patch("campus_finance.database.asyncio.sleep", new=AsyncMock()):
            result = await run_in_transaction(fn, session_factory=session_factory, attempts=3)
        assert result == "ok"
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, session_factory):
        fn = AsyncMock(side_effect=OperationalError("UPDATE", {}, _Conflict()))
        with patch("campus_finance.database.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(OperationalError):
                await run_in_transaction(fn, session_factory=session_factory, attempts=2)
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_other_db_errors_are_not_retried(self, session_factory):
        fn = AsyncMock(side_effect=OperationalError("INSERT", {}, _Broken()))
        with pytest.raises(OperationalError):
            await run_in_transaction(fn, session_factory=session_factory, attempts=3)
        assert fn.await_count == 1

    @pytest.mark.parametrize("constraint", [
        "payments_payment_number_key",
        "gl_journal_entries_entry_number_key",
    ])
    @pytest.mark.asyncio
    async def test_retries_generated_number_collision(self, session_factory, constraint):
        fn = AsyncMock(side_effect=[_duplicate(constraint), "ok"])
        with patch("campus_finance.database.asyncio.sleep", new=AsyncMock()):
            result = await run_in_transaction(fn, session_factory=session_factory, attempts=3)
        assert result == "ok"
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_other_unique_violations_are_not_retried(self, session_factory):
        fn = AsyncMock(side_effect=_duplicate("donors_donor_code_key"))
        with pytest.raises(IntegrityError):
            await run_in_transaction(fn, session_factory=session_factory, attempts=3)
        assert fn.await_count == 1


# ===================================================================
# run_command
# ===================================================================


class TestRunCommand:

    @pytest.mark.asyncio
    async def test_finance_errors_are_not_logged(self, session_factory):
        fn = AsyncMock(side_effect=OverAllocation("too much", remaining_fee_balance=5))
        with patch("campus_finance.api.deps.log_error_standalone", new=AsyncMock()) as log:
            with pytest.raises(OverAllocation):
                await run_command(session_factory, fn, module="m", function_name="f")
        log.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_logged_and_reraised(self, session_factory):
        fn = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await run_command(session_factory, fn, module="api.x", function_name="go", user_id=3)

        async with session_factory() as db:
            log = (await db.execute(select(ErrorLog))).scalar_one()
        assert log.severity == ErrorSeverity.ERROR
        assert log.error_type == "RuntimeError"
        assert log.error_kind is None
        assert log.source == "api.x.go"
        assert "RuntimeError: boom" in log.traceback
        assert log.user_id == 3


class TestLogErrorStandalone:

    @pytest.mark.asyncio
    async def test_failing_session_is_swallowed(self):
        factory = MagicMock(side_effect=RuntimeError("db down"))
        assert await log_error_standalone(ValueError("x"), session_factory=factory) is None


class TestLogError:

    @pytest.mark.asyncio
    async def test_finance_error_keeps_kind_and_context(self, db):
        exc = OverAllocation("too much", remaining_fee_balance=5, fee_id=12)
        entry = await log_error(exc, db=db, source="api.payments.allocate", user_id=3)
        assert entry.severity == ErrorSeverity.WARNING
        assert entry.error_type == "OverAllocation"
        assert entry.error_kind == "OverAllocation"
        assert entry.message == "too much"
        assert entry.context == {"remaining_fee_balance": 5, "fee_id": 12}
        assert entry.traceback is None

    @pytest.mark.asyncio
    async def test_without_session_only_logs(self, caplog):
        with caplog.at_level("WARNING", logger="campus_finance.errors"):
            assert await log_error(OverAllocation("too much"), source="api.x") is None
        assert "OverAllocation" in caplog.text
