"""Budgets router: spend limits, spend snapshots and accumulator reconciliation."""

from datetime import date
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils.budgets import (
    apply_spend_keys,
    budget_overview,
    budget_view,
    get_budget_for_user,
    get_spend_snapshot,
    reconcile_spend,
    set_budget_limit,
    verify_spend,
)
from utils.errors import NotAuthorized


router = APIRouter(prefix="/budgets", tags=["budgets"])


def current_period(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
    today = date.today()
    return month or today.month, year or today.year


@router.post("", response_model=schemas.BudgetView, status_code=201)
def create_budget(
    budget: schemas.BudgetCreate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return budget_view(set_budget_limit(db, current_user.id, budget))


@router.get("", response_model=list[schemas.BudgetView])
def read_budgets(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    year: Optional[int] = None
):
    query = db.query(models.Budget).filter(models.Budget.user_id == current_user.id)
    if year is not None:
        query = query.filter(models.Budget.year == year)
    budgets = query.order_by(
        models.Budget.year.desc(), models.Budget.month.desc(), models.Budget.category
    ).all()
    return [budget_view(b) for b in budgets]


@router.get("/snapshot", response_model=list[schemas.BudgetView])
def read_spend_snapshot(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2020)
):
    """Spend per category for one month, with limit utilization."""
    month, year = current_period(month, year)
    return get_spend_snapshot(db, current_user.id, month, year)


@router.get("/overview", response_model=schemas.BudgetOverview)
def read_budget_overview(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2020)
):
    month, year = current_period(month, year)
    return budget_overview(db, current_user.id, month, year)


@router.post("/reconcile", response_model=schemas.ReconcileResult)
def reconcile_budgets(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2020),
    dry_run: bool = False
):
    """Recompute the current user's spend from the ledger and overwrite drifted records."""
    drifts = reconcile_spend(db, current_user.id, month, year, repair=not dry_run)
    return schemas.ReconcileResult(drift_detected=bool(drifts), drifts=drifts)


@router.get("/verify")
def verify_budgets(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2020)
):
    """409 when any of the current user's spend records disagrees with the ledger."""
    verify_spend(db, current_user.id, month, year)
    return {"status": "consistent"}


@router.post("/retry", response_model=schemas.AccumulatorUpdate)
def retry_accumulator_keys(
    retry: schemas.AccumulatorRetry,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    """Re-apply failed keys from a partial accumulator update. Only your own keys."""
    if any(key.user_id != current_user.id for key in retry.keys):
        raise NotAuthorized("You can only retry your own spend records")
    return apply_spend_keys(db, retry.keys)


@router.get("/{budget_id}", response_model=schemas.BudgetView)
def read_budget(
    budget_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return budget_view(get_budget_for_user(db, budget_id, current_user.id))


@router.put("/{budget_id}", response_model=schemas.BudgetView)
def update_budget(
    budget_id: int,
    budget_update: schemas.BudgetUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    budget = get_budget_for_user(db, budget_id, current_user.id)

    # spent_amount is owned by the accumulator and never set here
    if budget_update.limit_amount is not None:
        budget.limit_amount = budget_update.limit_amount
    if budget_update.alert_threshold is not None:
        budget.alert_threshold = budget_update.alert_threshold
    if budget_update.color is not None:
        budget.color = budget_update.color

    db.commit()
    db.refresh(budget)
    return budget_view(budget)


@router.delete("/{budget_id}")
def delete_budget(
    budget_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    budget = get_budget_for_user(db, budget_id, current_user.id)
    db.delete(budget)
    db.commit()
    return {"message": "Budget deleted successfully"}
