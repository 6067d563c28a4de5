"""Accounts-receivable reports over open student fees."""

from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_finance.models.fees import StudentFee
from campus_finance.models.payment import Payment, PaymentAllocation, PaymentStatus
from campus_finance.services.fee_service import compute_fee_status

AGING_BUCKETS = ("current", "1-30", "31-60", "61-90", "90+")


def aging_bucket(due_date: date, today: date) -> str:
    days = (today - due_date).days
    if days <= 0:
        return "current"
    if days <= 30:
        return "1-30"
    if days <= 60:
        return "31-60"
    if days <= 90:
        return "61-90"
    return "90+"


async def aging_report(
    db: AsyncSession, *, today: date | None = None, student_id: int | None = None
) -> dict:
    """Outstanding balances grouped by days past due."""
    today = today or date.today()
    q = select(StudentFee).where(
        StudentFee.is_archived.is_(False),
        StudentFee.paid_amount < StudentFee.amount,
    )
    if student_id is not None:
        q = q.where(StudentFee.student_id == student_id)
    fees = (await db.execute(q)).scalars().all()

    totals = {b: 0 for b in AGING_BUCKETS}
    counts = {b: 0 for b in AGING_BUCKETS}
    per_student: dict[int, dict[str, int]] = defaultdict(lambda: {b: 0 for b in AGING_BUCKETS})
    for fee in fees:
        bucket = aging_bucket(fee.due_date, today)
        totals[bucket] += fee.balance
        counts[bucket] += 1
        per_student[fee.student_id][bucket] += fee.balance

    students = [
        {"student_id": sid, "buckets": buckets, "total": sum(buckets.values())}
        for sid, buckets in sorted(per_student.items())
    ]
    return {
        "as_of_date": today.isoformat(),
        "buckets": [
            {"bucket": b, "amount": totals[b], "fee_count": counts[b]} for b in AGING_BUCKETS
        ],
        "students": students,
        "total_outstanding": sum(totals.values()),
    }


async def student_statement(
    db: AsyncSession, student_id: int, *, today: date | None = None
) -> dict:
    """Fees, payments and allocations for one student with running totals."""
    fees = (await db.execute(
        select(StudentFee)
        .where(StudentFee.student_id == student_id, StudentFee.is_archived.is_(False))
        .order_by(StudentFee.due_date, StudentFee.id)
    )).scalars().all()
    payments = (await db.execute(
        select(Payment)
        .where(Payment.student_id == student_id)
        .order_by(Payment.payment_date, Payment.id)
    )).scalars().all()
    allocations = (await db.execute(
        select(PaymentAllocation)
        .join(Payment, PaymentAllocation.payment_id == Payment.id)
        .where(Payment.student_id == student_id)
        .order_by(PaymentAllocation.id)
    )).scalars().all()

    allocated_by_payment: dict[int, int] = defaultdict(int)
    for a in allocations:
        allocated_by_payment[a.payment_id] += a.amount

    completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]
    total_billed = sum(f.amount for f in fees)
    total_paid = sum(f.paid_amount for f in fees)
    return {
        "student_id": student_id,
        "fees": [
            {
                "id": f.id,
                "fee_type": f.fee_type.value,
                "description": f.description,
                "due_date": f.due_date.isoformat(),
                "amount": f.amount,
                "paid_amount": f.paid_amount,
                "balance": f.balance,
                "status": compute_fee_status(f.amount, f.paid_amount, f.due_date, today).value,
            }
            for f in fees
        ],
        "payments": [
            {
                "id": p.id,
                "payment_number": p.payment_number,
                "payment_date": p.payment_date.isoformat(),
                "amount": p.amount,
                "status": p.status.value,
                "allocated": allocated_by_payment[p.id],
                "unallocated": p.amount - allocated_by_payment[p.id],
            }
            for p in payments
        ],
        "allocations": [
            {
                "id": a.id,
                "payment_id": a.payment_id,
                "student_fee_id": a.student_fee_id,
                "amount": a.amount,
            }
            for a in allocations
        ],
        "total_billed": total_billed,
        "total_paid": total_paid,
        "outstanding_balance": total_billed - total_paid,
        "unallocated_credit": sum(p.amount - allocated_by_payment[p.id] for p in completed),
    }
