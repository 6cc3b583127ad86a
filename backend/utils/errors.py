"""
Ledger error hierarchy.

Engine and store functions raise these; main.py maps them onto HTTP
responses with a single exception handler.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""
    status_code = 400
    error = "ledger_error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.__doc__.strip()
        super().__init__(self.detail)


class AccountingInvariantViolation(LedgerError):
    """Split amounts do not satisfy the accounting invariant."""
    status_code = 422
    error = "accounting_invariant_violation"


class NotFound(LedgerError):
    """Record not found."""
    status_code = 404
    error = "not_found"


class NotAuthorized(LedgerError):
    """You are not allowed to perform this action."""
    status_code = 403
    error = "not_authorized"


class AccumulatorDriftDetected(LedgerError):
    """Spend accumulator does not match the ledger."""
    status_code = 409
    error = "accumulator_drift_detected"

    def __init__(self, drifts, detail: str = None):
        self.drifts = drifts
        super().__init__(detail or f"{len(drifts)} spend record(s) drifted from the ledger")
