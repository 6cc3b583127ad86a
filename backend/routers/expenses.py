"""Expenses router: submit, read, update, reverse and settle expenses."""

import math
from datetime import date
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user, get_expense_entry
from utils import ledger
from utils.balances import category_totals
from utils.budgets import apply_expense_spend, move_expense_spend
from utils.display import expense_with_splits, expenses_with_splits, resolve_user_names, entry_user_ids
from utils.ledger import LedgerEntry, ExpenseFilters, GlobalScope
from utils.validation import (
    validate_expense_participants,
    verify_expense_access,
    verify_expense_creator,
    verify_expense_payer,
)

router = APIRouter(tags=["expenses"])


def render_entry(db: Session, entry: LedgerEntry) -> schemas.ExpenseWithSplits:
    return expense_with_splits(entry, resolve_user_names(db, entry_user_ids([entry])))


def _date_param(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@router.post("/expenses", response_model=schemas.ExpenseMutationResult, status_code=201)
def create_expense(
    expense: schemas.ExpenseCreate,
    response: Response,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    validate_expense_participants(db, expense)

    entry, created = ledger.create_expense(db, expense, created_by_id=current_user.id)

    if created:
        # One accumulator write per split; a failure leaves the ledger write in place
        accumulator = apply_expense_spend(db, entry, 1)
    else:
        response.status_code = 200
        accumulator = schemas.AccumulatorUpdate(status="duplicate")

    return schemas.ExpenseMutationResult(
        expense=render_entry(db, entry),
        accumulator=accumulator
    )


@router.get("/expenses", response_model=schemas.ExpenseList)
def read_expenses(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    settled: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100)
):
    # Return expenses where user is involved (payer or splitter)
    filters = ExpenseFilters(
        category=category,
        start_date=_date_param(start_date),
        end_date=_date_param(end_date),
        settled=settled
    )
    query = ledger.scoped_query(db, GlobalScope(current_user.id), filters)

    total = query.count()
    expenses = query.offset((page - 1) * limit).limit(limit).all()
    entries = ledger.load_splits(db, expenses)

    return schemas.ExpenseList(
        expenses=expenses_with_splits(db, entries),
        pagination=schemas.Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit)
        )
    )


@router.get("/expenses/stats", response_model=list[schemas.CategoryStat])
def get_expense_stats(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
):
    """Per-category total of the current user's shares."""
    filters = ExpenseFilters(start_date=_date_param(start_date), end_date=_date_param(end_date))
    entries = ledger.query_scoped(db, GlobalScope(current_user.id), filters)
    return category_totals(entries, current_user.id)


@router.get("/expenses/{expense_id}", response_model=schemas.ExpenseWithSplits)
def get_expense(
    current_user: Annotated[models.User, Depends(get_current_user)],
    entry: Annotated[LedgerEntry, Depends(get_expense_entry)],
    db: Session = Depends(get_db)
):
    verify_expense_access(db, entry, current_user.id)
    return render_entry(db, entry)


@router.put("/expenses/{expense_id}", response_model=schemas.ExpenseMutationResult)
def update_expense(
    expense_update: schemas.ExpenseUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    entry: Annotated[LedgerEntry, Depends(get_expense_entry)],
    db: Session = Depends(get_db)
):
    # Only creator can update
    verify_expense_creator(entry, current_user.id, "update")

    old_category = entry.expense.category
    ledger.update_expense(db, entry, expense_update)

    if entry.expense.category != old_category:
        accumulator = move_expense_spend(db, entry, old_category)
    else:
        accumulator = schemas.AccumulatorUpdate(status="complete")

    return schemas.ExpenseMutationResult(
        expense=render_entry(db, entry),
        accumulator=accumulator
    )


@router.delete("/expenses/{expense_id}", response_model=schemas.ExpenseDeleteResult)
def delete_expense(
    current_user: Annotated[models.User, Depends(get_current_user)],
    entry: Annotated[LedgerEntry, Depends(get_expense_entry)],
    db: Session = Depends(get_db)
):
    # Only creator can delete
    verify_expense_creator(entry, current_user.id, "delete")

    # Reverse the original splits before the record goes away
    accumulator = apply_expense_spend(db, entry, -1)
    ledger.delete_expense(db, entry)

    return schemas.ExpenseDeleteResult(
        message="Expense deleted successfully",
        accumulator=accumulator
    )


@router.put("/expenses/{expense_id}/settle", response_model=schemas.ExpenseWithSplits)
def settle_expense(
    current_user: Annotated[models.User, Depends(get_current_user)],
    entry: Annotated[LedgerEntry, Depends(get_expense_entry)],
    db: Session = Depends(get_db)
):
    # Only payer can settle
    verify_expense_payer(entry, current_user.id)
    ledger.set_settled(db, entry)
    return render_entry(db, entry)
