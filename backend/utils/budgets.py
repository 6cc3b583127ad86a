"""
Spend accumulator (budgets).

Each Budget row holds the running total of one user's shares for a
category and month. Rows are updated one at a time with single-row
increments; an expense with N splits causes N independent writes, so a
failure part way through leaves the accumulator out of step with the
ledger. Such failures are reported back as a partial AccumulatorUpdate,
and reconcile_spend() is the way to repair drift.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas
from utils.errors import AccumulatorDriftDetected, NotFound, NotAuthorized
from utils.ledger import LedgerEntry, expense_period, load_splits

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = 80

# Recorded and expected spend closer than this are considered equal
DRIFT_TOLERANCE = 0.01


def _budget_filter(query, user_id: int, category: str, month: int, year: int):
    return query.filter(
        models.Budget.user_id == user_id,
        models.Budget.category == category,
        models.Budget.month == month,
        models.Budget.year == year
    )


def apply_spend_delta(db: Session, user_id: int, category: str, month: int, year: int, delta: float) -> None:
    """
    Add delta to one accumulator row, creating the row if it does not exist.

    The increment is a single UPDATE so concurrent writers do not lose
    updates. Commits on its own.
    """
    updated = _budget_filter(db.query(models.Budget), user_id, category, month, year).update(
        {models.Budget.spent_amount: models.Budget.spent_amount + delta},
        synchronize_session=False
    )
    if updated:
        db.commit()
        return

    db.add(models.Budget(
        user_id=user_id,
        category=category,
        month=month,
        year=year,
        limit_amount=0,
        spent_amount=delta,
        alert_threshold=DEFAULT_ALERT_THRESHOLD
    ))
    try:
        db.commit()
    except IntegrityError:
        # Another writer created the row first
        db.rollback()
        _budget_filter(db.query(models.Budget), user_id, category, month, year).update(
            {models.Budget.spent_amount: models.Budget.spent_amount + delta},
            synchronize_session=False
        )
        db.commit()


def increment_spend(db: Session, user_id: int, category: str, month: int, year: int, amount: float) -> None:
    apply_spend_delta(db, user_id, category, month, year, amount)


def decrement_spend(db: Session, user_id: int, category: str, month: int, year: int, amount: float) -> None:
    apply_spend_delta(db, user_id, category, month, year, -amount)


def apply_spend_keys(db: Session, keys: list[schemas.AccumulatorKey]) -> schemas.AccumulatorUpdate:
    """Apply each key's delta independently and report which ones landed."""
    applied = []
    failed = []

    for key in keys:
        try:
            if key.delta >= 0:
                increment_spend(db, key.user_id, key.category, key.month, key.year, key.delta)
            else:
                decrement_spend(db, key.user_id, key.category, key.month, key.year, -key.delta)
            applied.append(key)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Spend update failed for user {key.user_id} {key.category} "
                f"{key.month}/{key.year} (delta {key.delta}): {e}"
            )
            failed.append(key)

    if failed:
        logger.warning(
            f"Partial accumulator update: {len(applied)} applied, {len(failed)} failed"
        )

    return schemas.AccumulatorUpdate(
        status="partial" if failed else "complete",
        applied=applied,
        failed=failed
    )


def expense_spend_keys(entry: LedgerEntry, sign: int, category: Optional[str] = None) -> list[schemas.AccumulatorKey]:
    """One key per split; sign is +1 when the expense is added and -1 when it is reversed."""
    month, year = expense_period(entry.expense)
    category = category or entry.expense.category
    return [
        schemas.AccumulatorKey(
            user_id=split.user_id,
            category=category,
            month=month,
            year=year,
            delta=sign * split.amount_owed
        )
        for split in entry.splits
    ]


def apply_expense_spend(
    db: Session,
    entry: LedgerEntry,
    sign: int,
    category: Optional[str] = None
) -> schemas.AccumulatorUpdate:
    return apply_spend_keys(db, expense_spend_keys(entry, sign, category))


def move_expense_spend(db: Session, entry: LedgerEntry, old_category: str) -> schemas.AccumulatorUpdate:
    """Move an expense's spend from its previous category to its current one."""
    keys = expense_spend_keys(entry, -1, old_category) + expense_spend_keys(entry, 1)
    return apply_spend_keys(db, keys)


def budget_view(budget: models.Budget) -> schemas.BudgetView:
    """Budget with derived fields."""
    limit = budget.limit_amount or 0
    spent = budget.spent_amount or 0

    if limit > 0:
        utilization = spent / limit * 100
    else:
        # No limit set: any spend counts as fully used
        utilization = 100.0 if spent > 0 else 0.0

    return schemas.BudgetView(
        id=budget.id,
        user_id=budget.user_id,
        category=budget.category,
        month=budget.month,
        year=budget.year,
        limit_amount=limit,
        spent_amount=spent,
        alert_threshold=budget.alert_threshold,
        color=budget.color or "#3b82f6",
        remaining=max(0, limit - spent),
        utilization_percent=utilization,
        is_exceeded=spent > limit,
        alert_triggered=utilization >= budget.alert_threshold
    )


def get_spend_snapshot(db: Session, user_id: int, month: int, year: int) -> list[schemas.BudgetView]:
    budgets = db.query(models.Budget).filter(
        models.Budget.user_id == user_id,
        models.Budget.month == month,
        models.Budget.year == year
    ).order_by(models.Budget.category).all()
    return [budget_view(b) for b in budgets]


def budget_overview(db: Session, user_id: int, month: int, year: int) -> schemas.BudgetOverview:
    views = get_spend_snapshot(db, user_id, month, year)
    total_limit = sum(v.limit_amount for v in views)
    total_spent = sum(v.spent_amount for v in views)
    return schemas.BudgetOverview(
        month=month,
        year=year,
        total_limit=total_limit,
        total_spent=total_spent,
        total_remaining=max(0, total_limit - total_spent),
        exceeded_count=sum(1 for v in views if v.is_exceeded),
        alert_count=sum(1 for v in views if v.alert_triggered),
        budgets=views
    )


def set_budget_limit(db: Session, user_id: int, data: schemas.BudgetCreate) -> models.Budget:
    """Create a budget, or set the limit on the row the accumulator already created."""
    budget = _budget_filter(db.query(models.Budget), user_id, data.category, data.month, data.year).first()
    if not budget:
        budget = models.Budget(
            user_id=user_id,
            category=data.category,
            month=data.month,
            year=data.year,
            spent_amount=0
        )
        db.add(budget)

    budget.limit_amount = data.limit_amount
    budget.alert_threshold = data.alert_threshold
    budget.color = data.color
    db.commit()
    db.refresh(budget)
    return budget


def get_budget_for_user(db: Session, budget_id: int, user_id: int) -> models.Budget:
    budget = db.query(models.Budget).filter(models.Budget.id == budget_id).first()
    if not budget:
        raise NotFound("Budget not found")
    if budget.user_id != user_id:
        raise NotAuthorized("Not authorized to access this budget")
    return budget


def _period_prefix(month: Optional[int], year: Optional[int]) -> Optional[str]:
    if year is None:
        return None
    if month is None:
        return f"{year:04d}-"
    return f"{year:04d}-{month:02d}-"


def expected_spend(
    db: Session,
    user_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None
) -> dict[tuple[int, str, int, int], float]:
    """
    Recompute spend from the ledger, keyed by (user_id, category, month, year).

    Settled expenses still count; only deleted ones do not.
    """
    query = db.query(models.Expense)
    prefix = _period_prefix(month, year)
    if prefix:
        query = query.filter(models.Expense.date.like(f"{prefix}%"))
    if user_id is not None:
        query = query.filter(models.Expense.id.in_(
            select(models.ExpenseSplit.expense_id).where(models.ExpenseSplit.user_id == user_id)
        ))

    totals = {}
    for entry in load_splits(db, query.all()):
        entry_month, entry_year = expense_period(entry.expense)
        # A month without a year matches that month in every year
        if month is not None and entry_month != month:
            continue
        for split in entry.splits:
            if user_id is not None and split.user_id != user_id:
                continue
            key = (split.user_id, entry.expense.category, entry_month, entry_year)
            totals[key] = totals.get(key, 0.0) + split.amount_owed

    return totals


def reconcile_spend(
    db: Session,
    user_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    repair: bool = True
) -> list[schemas.AccumulatorDrift]:
    """
    Compare accumulator rows in scope against spend recomputed from the ledger.

    Every drifted key is logged. With repair=True the recomputed value
    overwrites spent_amount (missing rows are created); this is the only
    path that corrects drift.
    """
    expected = expected_spend(db, user_id, month, year)

    query = db.query(models.Budget)
    if user_id is not None:
        query = query.filter(models.Budget.user_id == user_id)
    if year is not None:
        query = query.filter(models.Budget.year == year)
    if month is not None:
        query = query.filter(models.Budget.month == month)
    recorded = {(b.user_id, b.category, b.month, b.year): b for b in query.all()}

    drifts = []
    for key in sorted(set(expected) | set(recorded)):
        expected_amount = expected.get(key, 0.0)
        budget = recorded.get(key)
        recorded_amount = (budget.spent_amount or 0.0) if budget else 0.0

        if abs(recorded_amount - expected_amount) <= DRIFT_TOLERANCE:
            continue

        drift_user_id, category, drift_month, drift_year = key
        logger.warning(
            f"AccumulatorDriftDetected: user {drift_user_id} {category} {drift_month}/{drift_year} "
            f"recorded {recorded_amount:.2f}, ledger {expected_amount:.2f}"
        )

        if repair:
            if budget:
                budget.spent_amount = expected_amount
            else:
                db.add(models.Budget(
                    user_id=drift_user_id,
                    category=category,
                    month=drift_month,
                    year=drift_year,
                    limit_amount=0,
                    spent_amount=expected_amount,
                    alert_threshold=DEFAULT_ALERT_THRESHOLD
                ))

        drifts.append(schemas.AccumulatorDrift(
            user_id=drift_user_id,
            category=category,
            month=drift_month,
            year=drift_year,
            recorded=recorded_amount,
            expected=expected_amount,
            repaired=repair
        ))

    if repair and drifts:
        db.commit()
        logger.info(f"Repaired {len(drifts)} drifted spend record(s)")

    return drifts


def verify_spend(
    db: Session,
    user_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None
) -> None:
    """Raise AccumulatorDriftDetected if any row in scope disagrees with the ledger."""
    drifts = reconcile_spend(db, user_id, month, year, repair=False)
    if drifts:
        raise AccumulatorDriftDetected(drifts)
