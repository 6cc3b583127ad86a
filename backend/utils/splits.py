"""Split validation and equal-split calculation."""

import math

import schemas
from utils.errors import AccountingInvariantViolation


# Maximum allowed difference between the split sum and the expense amount
SPLIT_TOLERANCE = 0.01

# Slack for binary float error when comparing against SPLIT_TOLERANCE
FLOAT_EPSILON = 1e-9


def validate_splits(amount: float, splits: list[schemas.SplitEntry]) -> None:
    """
    Enforce the accounting invariant on a candidate split list.

    Raises AccountingInvariantViolation when the list is empty, a value is
    not finite, a share is negative, a participant appears twice, or the
    shares do not sum to the amount within SPLIT_TOLERANCE.
    """
    if amount is None or not math.isfinite(amount):
        raise AccountingInvariantViolation("Expense amount must be a finite number")
    if amount <= 0:
        raise AccountingInvariantViolation("Expense amount must be greater than 0")

    if not splits:
        raise AccountingInvariantViolation("At least one person must be included in the split")

    seen = set()
    for split in splits:
        if split.amount_owed is None or not math.isfinite(split.amount_owed):
            raise AccountingInvariantViolation(
                f"Split amount must be a finite number (user {split.user_id})"
            )
        if split.amount_owed < 0:
            raise AccountingInvariantViolation(
                f"Split amount cannot be negative (user {split.user_id})"
            )
        if split.user_id in seen:
            raise AccountingInvariantViolation(
                f"User {split.user_id} appears more than once in the split"
            )
        seen.add(split.user_id)

    total_split = sum(split.amount_owed for split in splits)
    if abs(total_split - amount) > SPLIT_TOLERANCE + FLOAT_EPSILON:
        raise AccountingInvariantViolation(
            f"Split amounts do not sum to total expense amount. Total: {amount}, Sum: {total_split}"
        )


def calculate_equal_splits(
    amount: float,
    participant_ids: list[int],
    payer_id: int
) -> list[schemas.SplitEntry]:
    """Split the amount equally; the payer's own share is marked as paid."""
    if not participant_ids:
        raise AccountingInvariantViolation("At least one person must be included in the split")

    share = amount / len(participant_ids)
    splits = [
        schemas.SplitEntry(user_id=user_id, amount_owed=share, paid=(user_id == payer_id))
        for user_id in participant_ids
    ]

    # Computed splits go through the same check as manual ones
    validate_splits(amount, splits)
    return splits
