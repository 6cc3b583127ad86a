"""Balances router: net balances and debt simplification over a scope."""

from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils import ledger
from utils.balances import (
    balance_view,
    build_balances,
    calculate_net_balances,
    collect_involved_users,
    summarize_position,
)
from utils.display import resolve_user_names
from utils.ledger import ExpenseFilters, GlobalScope, GroupScope, PairScope, Scope, UsersScope
from utils.settlements import optimize_settlements, residual_balances
from utils.validation import get_group_or_404, verify_group_membership


router = APIRouter(tags=["balances"])

UNSETTLED = ExpenseFilters(settled=False)


def parse_user_ids(user_ids: Optional[str]) -> Optional[list[int]]:
    """Parse a comma separated list of user IDs."""
    if not user_ids:
        return None
    try:
        return [int(part) for part in user_ids.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail="user_ids must be a comma separated list of integers")


def scoped_balances(
    db: Session,
    scope: Scope,
    initiator_id: Optional[int] = None,
    involved_user_ids: Optional[list[int]] = None
) -> list[schemas.Balance]:
    """Net balances over the unsettled expenses of a scope."""
    entries = ledger.query_scoped(db, scope, UNSETTLED)
    if involved_user_ids is None:
        involved_user_ids = collect_involved_users(entries, initiator_id)

    net_balances = calculate_net_balances(entries, involved_user_ids)
    names = resolve_user_names(db, net_balances.keys())
    return build_balances(net_balances, names)


def user_scope(current_user: models.User, user_ids: Optional[str]) -> tuple[Scope, Optional[list[int]]]:
    """Global scope for the current user, or an explicit user list that always includes them."""
    explicit = parse_user_ids(user_ids)
    if explicit is None:
        return GlobalScope(current_user.id), None

    if current_user.id not in explicit:
        explicit.append(current_user.id)
    involved = list(dict.fromkeys(explicit))
    return UsersScope(tuple(involved)), involved


def settlement_result(balances: list[schemas.Balance]) -> schemas.SettlementResult:
    transfers = optimize_settlements(balances)
    return schemas.SettlementResult(
        transfers=transfers,
        balances=[balance_view(b) for b in balances],
        unmatched=residual_balances(balances, transfers)
    )


@router.get("/balances", response_model=list[schemas.BalanceView])
def get_balances(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    user_ids: Optional[str] = None
):
    scope, involved = user_scope(current_user, user_ids)
    balances = scoped_balances(db, scope, initiator_id=current_user.id, involved_user_ids=involved)
    return [balance_view(b) for b in balances]


@router.get("/groups/{group_id}/balances", response_model=list[schemas.BalanceView])
def get_group_balances(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    balances = scoped_balances(db, GroupScope(group_id))
    return [balance_view(b) for b in balances]


@router.get("/settlements", response_model=schemas.SettlementResult)
def get_settlements(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db),
    user_ids: Optional[str] = None
):
    """Simplify debts between the current user and everyone they share expenses with."""
    scope, involved = user_scope(current_user, user_ids)
    balances = scoped_balances(db, scope, initiator_id=current_user.id, involved_user_ids=involved)
    return settlement_result(balances)


@router.get("/settlements/summary", response_model=schemas.SettlementSummary)
def get_settlement_summary(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    entries = ledger.query_scoped(db, GlobalScope(current_user.id), UNSETTLED)
    return summarize_position(entries, current_user.id)


@router.get("/settlements/group/{group_id}", response_model=schemas.SettlementResult)
def get_group_settlements(
    group_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    get_group_or_404(db, group_id)
    verify_group_membership(db, group_id, current_user.id)

    balances = scoped_balances(db, GroupScope(group_id))
    return settlement_result(balances)


@router.get("/settlements/pair/{other_user_id}", response_model=schemas.SettlementResult)
def get_pair_settlements(
    other_user_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    """Settle only the expenses shared by the current user and one other user."""
    if other_user_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot settle with yourself")
    if not db.query(models.User).filter(models.User.id == other_user_id).first():
        raise HTTPException(status_code=404, detail="User not found")

    balances = scoped_balances(
        db,
        PairScope(current_user.id, other_user_id),
        involved_user_ids=[current_user.id, other_user_id]
    )
    return settlement_result(balances)
