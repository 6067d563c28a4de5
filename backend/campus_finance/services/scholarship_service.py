"""Scholarship types and awards.

An award stores a snapshot amount at grant time.  It does not adjust any
StudentFee; reconciling awards against invoices is a separate manual step.
Applications go submitted -> approved|rejected, and an approved one becomes
an award.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campus_finance.models.scholarship import (
    ApplicationStatus,
    AwardStatus,
    DisbursementType,
    ScholarshipAmountType,
    ScholarshipApplication,
    ScholarshipType,
    StudentScholarship,
)
from campus_finance.services.audit import record_audit
from campus_finance.services.errors import (
    DuplicateReference,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from campus_finance.services.money import BPS_DENOMINATOR, apply_bps, require_positive

logger = logging.getLogger(__name__)

AWARD_TRANSITIONS: dict[AwardStatus, set[AwardStatus]] = {
    AwardStatus.ACTIVE: {
        AwardStatus.SUSPENDED, AwardStatus.DISBURSED, AwardStatus.COMPLETED, AwardStatus.REVOKED,
    },
    AwardStatus.SUSPENDED: {AwardStatus.ACTIVE, AwardStatus.REVOKED},
    AwardStatus.DISBURSED: {AwardStatus.COMPLETED},
    AwardStatus.COMPLETED: set(),
    AwardStatus.REVOKED: set(),
}

APPLICATION_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.SUBMITTED: {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.APPROVED: {ApplicationStatus.AWARDED, ApplicationStatus.REJECTED},
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.AWARDED: set(),
}

_OPEN_APPLICATION = (ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED)


async def create_scholarship_type(
    db: AsyncSession,
    *,
    name: str,
    code: str,
    amount_type: ScholarshipAmountType,
    amount: int | None = None,
    percentage: int | None = None,
    description: str | None = None,
) -> ScholarshipType:
    code = code.strip().upper()
    if amount_type == ScholarshipAmountType.FIXED:
        if amount is None:
            raise ValidationError("Fixed scholarships need an amount")
        require_positive(amount)
        percentage = None
    else:
        if percentage is None or not 0 < percentage <= BPS_DENOMINATOR:
            raise ValidationError(
                f"Percentage scholarships need a percentage in basis points (1-{BPS_DENOMINATOR})"
            )
        amount = None

    existing = await db.execute(select(ScholarshipType.id).where(ScholarshipType.code == code))
    if existing.scalar_one_or_none() is not None:
        raise DuplicateReference(f"Scholarship code '{code}' already exists", code=code)

    stype = ScholarshipType(
        name=name,
        code=code,
        description=description,
        amount_type=amount_type,
        amount=amount,
        percentage=percentage,
        is_active=True,
    )
    db.add(stype)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateReference(f"Scholarship code '{code}' already exists", code=code) from exc
    await db.refresh(stype)
    return stype


async def list_scholarship_types(
    db: AsyncSession, *, active_only: bool = False
) -> list[ScholarshipType]:
    q = select(ScholarshipType).order_by(ScholarshipType.code)
    if active_only:
        q = q.where(ScholarshipType.is_active.is_(True))
    result = await db.execute(q)
    return list(result.scalars().all())


def resolve_award_amount(
    stype: ScholarshipType,
    *,
    awarded_amount: int | None,
    reference_amount: int | None,
) -> int:
    """Amount to grant.  An explicit ``awarded_amount`` always wins.

    Otherwise fixed types use their configured amount and percentage types
    take ``percentage`` of ``reference_amount``.
    """
    if awarded_amount is not None:
        return require_positive(awarded_amount, "awarded_amount")
    if stype.amount_type == ScholarshipAmountType.FIXED:
        return require_positive(stype.amount or 0, "awarded_amount")
    if reference_amount is None:
        raise ValidationError(
            "Percentage scholarships need awarded_amount or reference_amount"
        )
    require_positive(reference_amount, "reference_amount")
    return require_positive(apply_bps(reference_amount, stype.percentage or 0), "awarded_amount")


async def award_scholarship(
    db: AsyncSession,
    *,
    student_id: int,
    scholarship_type_id: int,
    awarded_amount: int | None = None,
    reference_amount: int | None = None,
    academic_period_id: int | None = None,
    disbursement_type: DisbursementType = DisbursementType.ONE_TIME,
    notes: str | None = None,
    awarded_by: int | None = None,
) -> StudentScholarship:
    stype = await db.get(ScholarshipType, scholarship_type_id)
    if stype is None:
        raise NotFoundError(f"Scholarship type {scholarship_type_id} not found")
    if not stype.is_active:
        raise ValidationError(f"Scholarship type {stype.code} is inactive")

    amount = resolve_award_amount(
        stype, awarded_amount=awarded_amount, reference_amount=reference_amount
    )
    award = StudentScholarship(
        student_id=student_id,
        scholarship_type_id=stype.id,
        awarded_amount=amount,
        reference_amount=reference_amount,
        academic_period_id=academic_period_id,
        status=AwardStatus.ACTIVE,
        disbursement_type=disbursement_type,
        notes=notes,
        awarded_by=awarded_by,
    )
    db.add(award)
    await db.flush()
    await db.refresh(award)
    logger.info(
        "Awarded scholarship %s to student %d: %d", stype.code, student_id, amount
    )
    return award


async def list_awards(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    status: AwardStatus | None = None,
) -> list[StudentScholarship]:
    q = (
        select(StudentScholarship)
        .options(selectinload(StudentScholarship.scholarship_type))
        .order_by(StudentScholarship.id)
    )
    if student_id is not None:
        q = q.where(StudentScholarship.student_id == student_id)
    if status is not None:
        q = q.where(StudentScholarship.status == status)
    result = await db.execute(q)
    return list(result.scalars().all())


async def update_award_status(
    db: AsyncSession,
    award_id: int,
    new_status: AwardStatus,
    *,
    user_id: int | None = None,
    reason: str | None = None,
) -> StudentScholarship:
    award = await db.get(StudentScholarship, award_id)
    if award is None:
        raise NotFoundError(f"Scholarship award {award_id} not found")
    if new_status not in AWARD_TRANSITIONS[award.status]:
        raise InvalidStatusTransition(
            f"Cannot move award from {award.status.value} to {new_status.value}",
            current_status=award.status.value,
        )
    old = award.status
    award.status = new_status
    new_values = {"status": new_status.value}
    if new_status == AwardStatus.DISBURSED:
        award.disbursed_at = datetime.now(timezone.utc)
        award.disbursed_by = user_id
        new_values["disbursed_at"] = award.disbursed_at.isoformat()
    record_audit(
        db,
        entity_type="student_scholarship",
        entity_id=award.id,
        student_id=award.student_id,
        action="status_change",
        user_id=user_id,
        old_values={"status": old.value},
        new_values=new_values,
        details=reason,
    )
    await db.flush()
    return award


# ── Applications ────────────────────────────────────────────


async def submit_application(
    db: AsyncSession,
    *,
    student_id: int,
    scholarship_type_id: int,
    academic_period_id: int | None = None,
    requested_amount: int | None = None,
    statement: str | None = None,
    application_date: date | None = None,
    submitted_by: int | None = None,
) -> ScholarshipApplication:
    """Record an application.  One open application per student, type and period."""
    stype = await db.get(ScholarshipType, scholarship_type_id)
    if stype is None:
        raise NotFoundError(f"Scholarship type {scholarship_type_id} not found")
    if not stype.is_active:
        raise ValidationError(f"Scholarship type {stype.code} is inactive")
    if requested_amount is not None:
        require_positive(requested_amount, "requested_amount")

    open_q = select(ScholarshipApplication.id).where(
        ScholarshipApplication.student_id == student_id,
        ScholarshipApplication.scholarship_type_id == stype.id,
        ScholarshipApplication.status.in_(_OPEN_APPLICATION),
    )
    if academic_period_id is None:
        open_q = open_q.where(ScholarshipApplication.academic_period_id.is_(None))
    else:
        open_q = open_q.where(ScholarshipApplication.academic_period_id == academic_period_id)
    existing = (await db.execute(open_q)).scalars().first()
    if existing is not None:
        raise DuplicateReference(
            f"Student {student_id} already has an open {stype.code} application",
            application_id=existing,
        )

    application = ScholarshipApplication(
        student_id=student_id,
        scholarship_type_id=stype.id,
        academic_period_id=academic_period_id,
        requested_amount=requested_amount,
        statement=statement,
        status=ApplicationStatus.SUBMITTED,
        application_date=application_date or date.today(),
        submitted_by=submitted_by,
    )
    db.add(application)
    await db.flush()
    await db.refresh(application)
    logger.info(
        "Scholarship application %d submitted for student %d (%s)",
        application.id, student_id, stype.code,
    )
    return application


async def list_applications(
    db: AsyncSession,
    *,
    student_id: int | None = None,
    status: ApplicationStatus | None = None,
) -> list[ScholarshipApplication]:
    q = select(ScholarshipApplication).order_by(
        ScholarshipApplication.application_date.desc(), ScholarshipApplication.id.desc()
    )
    if student_id is not None:
        q = q.where(ScholarshipApplication.student_id == student_id)
    if status is not None:
        q = q.where(ScholarshipApplication.status == status)
    result = await db.execute(q)
    return list(result.scalars().all())


async def _lock_application(db: AsyncSession, application_id: int) -> ScholarshipApplication:
    result = await db.execute(
        select(ScholarshipApplication)
        .where(ScholarshipApplication.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError(f"Scholarship application {application_id} not found")
    return application


def _check_application_transition(
    application: ScholarshipApplication, new_status: ApplicationStatus
) -> None:
    if new_status not in APPLICATION_TRANSITIONS[application.status]:
        raise InvalidStatusTransition(
            f"Cannot move application from {application.status.value} to {new_status.value}",
            current_status=application.status.value,
        )


def _move_application(
    db: AsyncSession,
    application: ScholarshipApplication,
    new_status: ApplicationStatus,
    *,
    user_id: int | None,
    details: str | None = None,
) -> None:
    _check_application_transition(application, new_status)
    old = application.status
    application.status = new_status
    record_audit(
        db,
        entity_type="scholarship_application",
        entity_id=application.id,
        student_id=application.student_id,
        action="status_change",
        user_id=user_id,
        old_values={"status": old.value},
        new_values={"status": new_status.value},
        details=details,
    )


async def review_application(
    db: AsyncSession,
    application_id: int,
    decision: ApplicationStatus,
    *,
    reviewed_by: int | None = None,
    notes: str | None = None,
) -> ScholarshipApplication:
    if decision not in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
        raise ValidationError("A review decision must be approved or rejected")
    application = await _lock_application(db, application_id)
    _move_application(db, application, decision, user_id=reviewed_by, details=notes)
    application.reviewed_by = reviewed_by
    application.reviewed_at = datetime.now(timezone.utc)
    application.review_notes = notes
    await db.flush()
    return application


async def award_application(
    db: AsyncSession,
    application_id: int,
    *,
    awarded_amount: int | None = None,
    reference_amount: int | None = None,
    disbursement_type: DisbursementType = DisbursementType.ONE_TIME,
    notes: str | None = None,
    awarded_by: int | None = None,
) -> StudentScholarship:
    """Turn an approved application into an award.

    Without an explicit amount the requested amount is granted, falling back
    to the scholarship type's own rule.
    """
    application = await _lock_application(db, application_id)
    _check_application_transition(application, ApplicationStatus.AWARDED)
    if awarded_amount is None and reference_amount is None:
        awarded_amount = application.requested_amount

    award = await award_scholarship(
        db,
        student_id=application.student_id,
        scholarship_type_id=application.scholarship_type_id,
        awarded_amount=awarded_amount,
        reference_amount=reference_amount,
        academic_period_id=application.academic_period_id,
        disbursement_type=disbursement_type,
        notes=notes,
        awarded_by=awarded_by,
    )
    _move_application(db, application, ApplicationStatus.AWARDED, user_id=awarded_by)
    application.student_scholarship_id = award.id
    await db.flush()
    return award
