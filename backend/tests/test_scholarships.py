"""Scholarship types, applications and awards."""

from datetime import date

import pytest
from sqlalchemy import select

from campus_finance.models.audit import AuditLog
from campus_finance.models.scholarship import ApplicationStatus, AwardStatus, ScholarshipAmountType
from campus_finance.services import scholarship_service
from campus_finance.services.errors import (
    DuplicateReference,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)


async def _fixed_type(db, **kw):
    return await scholarship_service.create_scholarship_type(
        db,
        name=kw.pop("name", "Merit Award"),
        code=kw.pop("code", "merit"),
        amount_type=ScholarshipAmountType.FIXED,
        amount=kw.pop("amount", 100000),
        **kw,
    )


class TestScholarshipTypes:

    @pytest.mark.asyncio
    async def test_code_is_normalised_and_unique(self, db):
        stype = await _fixed_type(db, code=" merit ")
        assert stype.code == "MERIT"
        with pytest.raises(DuplicateReference):
            await _fixed_type(db, code="MERIT")

    @pytest.mark.asyncio
    async def test_fixed_needs_amount(self, db):
        with pytest.raises(ValidationError):
            await scholarship_service.create_scholarship_type(
                db, name="X", code="X", amount_type=ScholarshipAmountType.FIXED
            )

    @pytest.mark.parametrize("bps", [None, 0, 10001])
    @pytest.mark.asyncio
    async def test_percentage_bounds(self, db, bps):
        with pytest.raises(ValidationError):
            await scholarship_service.create_scholarship_type(
                db, name="Need", code="NEED",
                amount_type=ScholarshipAmountType.PERCENTAGE, percentage=bps,
            )


class TestAwards:

    @pytest.mark.asyncio
    async def test_fixed_award_uses_type_amount(self, db):
        stype = await _fixed_type(db)
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id
        )
        assert award.awarded_amount == 100000
        assert award.status == AwardStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_percentage_award_of_reference_amount(self, db):
        stype = await scholarship_service.create_scholarship_type(
            db, name="Half", code="HALF",
            amount_type=ScholarshipAmountType.PERCENTAGE, percentage=5000,
        )
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id, reference_amount=250001
        )
        assert award.awarded_amount == 125001
        assert award.reference_amount == 250001

        with pytest.raises(ValidationError):
            await scholarship_service.award_scholarship(
                db, student_id=3, scholarship_type_id=stype.id
            )

    @pytest.mark.asyncio
    async def test_explicit_amount_wins(self, db):
        stype = await _fixed_type(db)
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id, awarded_amount=4200
        )
        assert award.awarded_amount == 4200

    @pytest.mark.asyncio
    async def test_award_does_not_touch_fees(self, db, make_fee):
        fee = await make_fee(student_id=3, amount=50000, due_date=date(2026, 4, 1))
        stype = await _fixed_type(db, amount=50000)
        await scholarship_service.award_scholarship(db, student_id=3, scholarship_type_id=stype.id)
        assert fee.paid_amount == 0
        assert fee.balance == 50000

    @pytest.mark.asyncio
    async def test_inactive_type_rejected(self, db):
        stype = await _fixed_type(db)
        stype.is_active = False
        await db.flush()
        with pytest.raises(ValidationError):
            await scholarship_service.award_scholarship(
                db, student_id=3, scholarship_type_id=stype.id
            )

    @pytest.mark.asyncio
    async def test_status_transitions(self, db):
        stype = await _fixed_type(db)
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id
        )
        await scholarship_service.update_award_status(db, award.id, AwardStatus.SUSPENDED)
        await scholarship_service.update_award_status(db, award.id, AwardStatus.REVOKED)
        with pytest.raises(InvalidStatusTransition):
            await scholarship_service.update_award_status(db, award.id, AwardStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_disbursement_is_timestamped(self, db):
        stype = await _fixed_type(db)
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id
        )
        assert award.disbursed_at is None

        await scholarship_service.update_award_status(
            db, award.id, AwardStatus.DISBURSED, user_id=9
        )
        assert award.status == AwardStatus.DISBURSED
        assert award.disbursed_at is not None
        assert award.disbursed_by == 9

        audit = (await db.execute(
            select(AuditLog).where(AuditLog.entity_type == "student_scholarship")
        )).scalars().one()
        assert audit.new_values["status"] == "disbursed"
        assert "disbursed_at" in audit.new_values

        await scholarship_service.update_award_status(db, award.id, AwardStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransition):
            await scholarship_service.update_award_status(db, award.id, AwardStatus.DISBURSED)

    @pytest.mark.asyncio
    async def test_suspended_award_cannot_be_disbursed(self, db):
        stype = await _fixed_type(db)
        award = await scholarship_service.award_scholarship(
            db, student_id=3, scholarship_type_id=stype.id
        )
        await scholarship_service.update_award_status(db, award.id, AwardStatus.SUSPENDED)
        with pytest.raises(InvalidStatusTransition):
            await scholarship_service.update_award_status(db, award.id, AwardStatus.DISBURSED)
        assert award.disbursed_at is None


class TestApplications:

    @pytest.mark.asyncio
    async def test_submit_review_award(self, db):
        stype = await _fixed_type(db)
        application = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id, requested_amount=60000,
            statement="First-generation student", application_date=date(2026, 2, 1),
            submitted_by=7,
        )
        assert application.status == ApplicationStatus.SUBMITTED

        await scholarship_service.review_application(
            db, application.id, ApplicationStatus.APPROVED, reviewed_by=8, notes="Strong case"
        )
        assert application.status == ApplicationStatus.APPROVED
        assert application.reviewed_by == 8
        assert application.reviewed_at is not None

        award = await scholarship_service.award_application(db, application.id, awarded_by=8)
        assert award.awarded_amount == 60000
        assert award.student_id == 3
        assert application.status == ApplicationStatus.AWARDED
        assert application.student_scholarship_id == award.id

    @pytest.mark.asyncio
    async def test_award_without_request_uses_type_amount(self, db):
        stype = await _fixed_type(db)
        application = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id
        )
        await scholarship_service.review_application(db, application.id, ApplicationStatus.APPROVED)
        award = await scholarship_service.award_application(db, application.id)
        assert award.awarded_amount == 100000

    @pytest.mark.asyncio
    async def test_unapproved_application_cannot_be_awarded(self, db):
        stype = await _fixed_type(db)
        application = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id
        )
        with pytest.raises(InvalidStatusTransition):
            await scholarship_service.award_application(db, application.id)

        await scholarship_service.review_application(db, application.id, ApplicationStatus.REJECTED)
        with pytest.raises(InvalidStatusTransition):
            await scholarship_service.review_application(
                db, application.id, ApplicationStatus.APPROVED
            )
        awards = await scholarship_service.list_awards(db, student_id=3)
        assert awards == []

    @pytest.mark.asyncio
    async def test_review_decision_must_be_approve_or_reject(self, db):
        stype = await _fixed_type(db)
        application = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id
        )
        with pytest.raises(ValidationError):
            await scholarship_service.review_application(
                db, application.id, ApplicationStatus.AWARDED
            )

    @pytest.mark.asyncio
    async def test_one_open_application_per_type_and_period(self, db):
        stype = await _fixed_type(db)
        first = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id, academic_period_id=1
        )
        with pytest.raises(DuplicateReference):
            await scholarship_service.submit_application(
                db, student_id=3, scholarship_type_id=stype.id, academic_period_id=1
            )
        # another period is fine, and so is reapplying after a rejection
        await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id, academic_period_id=2
        )
        await scholarship_service.review_application(db, first.id, ApplicationStatus.REJECTED)
        await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id, academic_period_id=1
        )

    @pytest.mark.asyncio
    async def test_list_filters(self, db):
        stype = await _fixed_type(db)
        a = await scholarship_service.submit_application(
            db, student_id=3, scholarship_type_id=stype.id, application_date=date(2026, 1, 5)
        )
        b = await scholarship_service.submit_application(
            db, student_id=4, scholarship_type_id=stype.id, application_date=date(2026, 1, 9)
        )
        await scholarship_service.review_application(db, b.id, ApplicationStatus.APPROVED)

        everything = await scholarship_service.list_applications(db)
        assert [x.id for x in everything] == [b.id, a.id]
        submitted = await scholarship_service.list_applications(
            db, status=ApplicationStatus.SUBMITTED
        )
        assert [x.id for x in submitted] == [a.id]
        assert [x.id for x in await scholarship_service.list_applications(db, student_id=4)] == [b.id]

    @pytest.mark.asyncio
    async def test_missing_application(self, db):
        with pytest.raises(NotFoundError):
            await scholarship_service.review_application(db, 999, ApplicationStatus.APPROVED)
