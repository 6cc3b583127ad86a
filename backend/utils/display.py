"""
Display utilities for user names

The ledger engine only works with user IDs; names are looked up here and
passed in.
"""
from typing import Iterable

from sqlalchemy.orm import Session

import models
import schemas
from utils.ledger import LedgerEntry


def get_user_display_name(user: models.User) -> str:
    """Prefer full_name, fall back to email."""
    if not user:
        return "Unknown User"
    return user.full_name or user.email


def resolve_user_names(db: Session, user_ids: Iterable[int]) -> dict[int, str]:
    """
    Batch-fetch display names for a set of user IDs.

    Args:
        db: Database session
        user_ids: IDs to look up

    Returns:
        Dictionary mapping user_id to display name. Unknown IDs map to
        "Unknown User".
    """
    user_ids = set(user_ids)
    if not user_ids:
        return {}

    users = db.query(models.User).filter(models.User.id.in_(user_ids)).all()
    names = {u.id: get_user_display_name(u) for u in users}
    return {user_id: names.get(user_id, "Unknown User") for user_id in user_ids}


def entry_user_ids(entries: Iterable[LedgerEntry]) -> set[int]:
    user_ids = set()
    for entry in entries:
        user_ids.add(entry.expense.payer_id)
        user_ids.update(split.user_id for split in entry.splits)
    return user_ids


def expense_with_splits(entry: LedgerEntry, names: dict[int, str]) -> schemas.ExpenseWithSplits:
    """Build the expense response with participant names."""
    expense = entry.expense
    return schemas.ExpenseWithSplits(
        id=expense.id,
        description=expense.description,
        amount=expense.amount,
        category=expense.category,
        date=expense.date,
        payer_id=expense.payer_id,
        group_id=expense.group_id,
        created_by_id=expense.created_by_id,
        notes=expense.notes,
        receipt_url=expense.receipt_url,
        settled=expense.settled,
        created_at=expense.created_at,
        updated_at=expense.updated_at,
        payer_name=names.get(expense.payer_id, "Unknown User"),
        splits=[
            schemas.ExpenseSplitDetail(
                user_id=split.user_id,
                user_name=names.get(split.user_id, "Unknown User"),
                amount_owed=split.amount_owed,
                paid=split.paid
            )
            for split in entry.splits
        ],
        is_fully_paid=all(split.paid for split in entry.splits)
    )


def expenses_with_splits(db: Session, entries: list[LedgerEntry]) -> list[schemas.ExpenseWithSplits]:
    names = resolve_user_names(db, entry_user_ids(entries))
    return [expense_with_splits(entry, names) for entry in entries]
