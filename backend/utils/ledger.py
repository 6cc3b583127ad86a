"""Ledger store: expense records, their splits, and scoped queries."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

import models
import schemas
from utils.errors import NotFound
from utils.splits import validate_splits, calculate_equal_splits

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    """An expense together with its splits, in split order."""
    expense: models.Expense
    splits: list[models.ExpenseSplit] = field(default_factory=list)


@dataclass(frozen=True)
class GlobalScope:
    """Every record where the user is the payer or a split participant."""
    user_id: int


@dataclass(frozen=True)
class GroupScope:
    """Every record tagged with the group."""
    group_id: int


@dataclass(frozen=True)
class PairScope:
    """Records where both users are involved."""
    user_id: int
    other_user_id: int


@dataclass(frozen=True)
class UsersScope:
    """Records where any of the users is involved."""
    user_ids: tuple[int, ...]


Scope = Union[GlobalScope, GroupScope, PairScope, UsersScope]


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    settled: Optional[bool] = None


def normalize_date(date_str: Optional[str]) -> str:
    """Normalize date string to YYYY-MM-DD format for consistent sorting."""
    if not date_str:
        return date.today().isoformat()
    # Handle ISO format with time component (e.g., 2025-12-27T00:00:00.000Z)
    if 'T' in date_str:
        date_str = date_str.split('T')[0]
    # Raises ValueError for anything that is not a calendar date
    return date.fromisoformat(date_str).isoformat()


def expense_period(expense: models.Expense) -> tuple[int, int]:
    """Return (month, year) of the expense date."""
    expense_date = date.fromisoformat(expense.date)
    return expense_date.month, expense_date.year


def _involves(user_id: int):
    """SQL condition: user paid the expense or has a split in it."""
    split_subquery = select(models.ExpenseSplit.expense_id).where(models.ExpenseSplit.user_id == user_id)
    return or_(models.Expense.payer_id == user_id, models.Expense.id.in_(split_subquery))


def _scope_condition(scope: Scope):
    if isinstance(scope, GlobalScope):
        return _involves(scope.user_id)
    if isinstance(scope, GroupScope):
        return models.Expense.group_id == scope.group_id
    if isinstance(scope, PairScope):
        return and_(_involves(scope.user_id), _involves(scope.other_user_id))
    if isinstance(scope, UsersScope):
        split_subquery = select(models.ExpenseSplit.expense_id).where(models.ExpenseSplit.user_id.in_(scope.user_ids))
        return or_(
            models.Expense.payer_id.in_(scope.user_ids),
            models.Expense.id.in_(split_subquery)
        )
    raise TypeError(f"Unknown scope: {scope!r}")


def scoped_query(db: Session, scope: Scope, filters: Optional[ExpenseFilters] = None):
    """Build the expense query for a scope; callers may paginate it further."""
    query = db.query(models.Expense).filter(_scope_condition(scope))

    if filters:
        if filters.category:
            query = query.filter(models.Expense.category == filters.category)
        if filters.settled is not None:
            query = query.filter(models.Expense.settled == filters.settled)
        if filters.start_date:
            query = query.filter(models.Expense.date >= normalize_date(filters.start_date))
        if filters.end_date:
            query = query.filter(models.Expense.date <= normalize_date(filters.end_date))

    return query.order_by(models.Expense.date.desc(), models.Expense.id.desc())


def load_splits(db: Session, expenses: list[models.Expense]) -> list[LedgerEntry]:
    """Attach splits to expenses with a single query."""
    if not expenses:
        return []

    expense_ids = [e.id for e in expenses]
    all_splits = db.query(models.ExpenseSplit).filter(
        models.ExpenseSplit.expense_id.in_(expense_ids)
    ).order_by(models.ExpenseSplit.id).all()

    splits_by_expense = {}
    for split in all_splits:
        splits_by_expense.setdefault(split.expense_id, []).append(split)

    return [LedgerEntry(expense=e, splits=splits_by_expense.get(e.id, [])) for e in expenses]


def query_scoped(
    db: Session,
    scope: Scope,
    filters: Optional[ExpenseFilters] = None
) -> list[LedgerEntry]:
    """Return the ledger entries in a scope, newest first."""
    expenses = scoped_query(db, scope, filters).all()
    return load_splits(db, expenses)


def get_expense(db: Session, expense_id: int) -> models.Expense:
    expense = db.query(models.Expense).filter(models.Expense.id == expense_id).first()
    if not expense:
        raise NotFound("Expense not found")
    return expense


def get_entry(db: Session, expense_id: int) -> LedgerEntry:
    return load_splits(db, [get_expense(db, expense_id)])[0]


def create_expense(
    db: Session,
    data: schemas.ExpenseCreate,
    created_by_id: int
) -> tuple[LedgerEntry, bool]:
    """
    Validate and store a new expense with its splits.

    Returns the entry and whether it was newly created. When a dedup_key is
    given and the creator already stored an expense with that key, the
    existing entry is returned untouched.
    """
    if data.dedup_key:
        existing = db.query(models.Expense).filter(
            models.Expense.created_by_id == created_by_id,
            models.Expense.dedup_key == data.dedup_key
        ).first()
        if existing:
            logger.info(f"Duplicate submission {data.dedup_key} returned expense {existing.id}")
            return load_splits(db, [existing])[0], False

    if data.participant_ids is not None:
        splits = calculate_equal_splits(data.amount, data.participant_ids, data.payer_id)
    else:
        splits = data.splits
        validate_splits(data.amount, splits)

    db_expense = models.Expense(
        description=data.description,
        amount=data.amount,
        category=data.category,
        date=normalize_date(data.date),
        payer_id=data.payer_id,
        group_id=data.group_id,
        created_by_id=created_by_id,
        notes=data.notes,
        receipt_url=data.receipt_url,
        settled=False,
        dedup_key=data.dedup_key
    )
    db.add(db_expense)
    db.flush()

    db_splits = []
    for split in splits:
        db_split = models.ExpenseSplit(
            expense_id=db_expense.id,
            user_id=split.user_id,
            amount_owed=split.amount_owed,
            paid=split.paid or split.user_id == data.payer_id
        )
        db.add(db_split)
        db_splits.append(db_split)

    # Expense and splits are written together
    db.commit()
    db.refresh(db_expense)

    logger.info(f"Created expense {db_expense.id} ({db_expense.amount} {db_expense.category}) with {len(db_splits)} splits")
    return LedgerEntry(expense=db_expense, splits=db_splits), True


def update_expense(db: Session, entry: LedgerEntry, changes: schemas.ExpenseUpdate) -> LedgerEntry:
    """Apply description/notes/category changes; amount and splits never change here."""
    expense = entry.expense

    if changes.description is not None:
        expense.description = changes.description
    if changes.notes is not None:
        expense.notes = changes.notes
    if changes.category is not None:
        expense.category = changes.category

    validate_splits(expense.amount, entry.splits)

    expense.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(expense)
    return entry


def delete_expense(db: Session, entry: LedgerEntry) -> None:
    expense_id = entry.expense.id
    db.query(models.ExpenseSplit).filter(models.ExpenseSplit.expense_id == expense_id).delete()
    db.delete(entry.expense)
    db.commit()
    logger.info(f"Deleted expense {expense_id}")


def set_settled(db: Session, entry: LedgerEntry) -> LedgerEntry:
    """Mark the expense settled and every split paid."""
    entry.expense.settled = True
    for split in entry.splits:
        split.paid = True
    entry.expense.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(entry.expense)
    logger.info(f"Expense {entry.expense.id} marked as settled")
    return entry


def is_involved(entry: LedgerEntry, user_id: int) -> bool:
    return entry.expense.payer_id == user_id or any(s.user_id == user_id for s in entry.splits)
