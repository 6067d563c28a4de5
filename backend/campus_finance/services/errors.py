"""Structured finance errors.

Every failure inside the finance core is raised as a :class:`FinanceError`
subclass and rendered to callers as ``{"kind", "message", **context}``.
Raising one inside a transaction rolls the whole command back.
"""

from typing import Any


class FinanceError(Exception):
    """Base class. ``kind`` is the machine-readable error name."""

    status_code = 400
    kind = "FinanceError"

    def __init__(self, message: str, *, kind: str | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.context}


class ValidationError(FinanceError):
    """Malformed or out-of-range input, rejected before any mutation."""

    kind = "ValidationError"


class NotFoundError(FinanceError):
    status_code = 404
    kind = "NotFound"


class InvariantViolation(FinanceError):
    """The command would break a ledger invariant."""

    status_code = 409
    kind = "InvariantViolation"


class SettledError(FinanceError):
    """Target is already settled; refresh state and retry."""

    status_code = 409
    kind = "AlreadySettled"


# ── Allocation ─────────────────────────────────────────────


class InsufficientPaymentBalance(InvariantViolation):
    kind = "InsufficientPaymentBalance"


class OverAllocation(InvariantViolation):
    kind = "OverAllocation"


class FeeAlreadySettled(SettledError):
    kind = "FeeAlreadySettled"


# ── Fees ───────────────────────────────────────────────────


class FeeHasAllocations(InvariantViolation):
    kind = "FeeHasAllocations"


class InvalidStatusTransition(ValidationError):
    kind = "InvalidStatusTransition"


class DuplicateReference(ValidationError):
    kind = "DuplicateReference"


# ── General ledger ─────────────────────────────────────────


class AlreadyPosted(SettledError):
    kind = "AlreadyPosted"


class UnbalancedEntry(InvariantViolation):
    kind = "UnbalancedEntry"


class InvalidJournalLine(ValidationError):
    kind = "InvalidJournalLine"


class DuplicateAccountCode(ValidationError):
    kind = "DuplicateAccountCode"


class NormalBalanceMismatch(ValidationError):
    kind = "NormalBalanceMismatch"


class AccountInactive(ValidationError):
    kind = "AccountInactive"
