"""Validation utilities for group membership, access control, and expense participants."""

from sqlalchemy.orm import Session
from fastapi import HTTPException

import models
import schemas
from utils.errors import NotAuthorized
from utils.ledger import LedgerEntry, is_involved


def get_user_by_email(db: Session, email: str):
    """Get a user by their email address."""
    return db.query(models.User).filter(models.User.email == email).first()


def get_group_or_404(db: Session, group_id: int):
    """Get a group by ID or raise 404 if not found."""
    group = db.query(models.Group).filter(models.Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


def is_group_member(db: Session, group_id: int, user_id: int) -> bool:
    return db.query(models.GroupMember).filter(
        models.GroupMember.group_id == group_id,
        models.GroupMember.user_id == user_id
    ).first() is not None


def verify_group_membership(db: Session, group_id: int, user_id: int):
    """Verify that a user is a member of a group, raise 403 if not."""
    if not is_group_member(db, group_id, user_id):
        raise HTTPException(status_code=403, detail="You are not a member of this group")


def validate_expense_participants(db: Session, expense: schemas.ExpenseCreate) -> None:
    """Validate that the payer and every split participant exist (and belong to the group, if any)."""
    if expense.participant_ids is not None:
        participant_ids = list(expense.participant_ids)
    else:
        participant_ids = [split.user_id for split in expense.splits]

    user_ids = set(participant_ids) | {expense.payer_id}
    found = {
        u.id for u in db.query(models.User.id).filter(models.User.id.in_(user_ids)).all()
    }

    if expense.payer_id not in found:
        raise HTTPException(status_code=400, detail=f"User payer with ID {expense.payer_id} not found")
    for user_id in participant_ids:
        if user_id not in found:
            raise HTTPException(status_code=400, detail=f"User with ID {user_id} not found in splits")

    if expense.group_id is not None:
        get_group_or_404(db, expense.group_id)
        members = {
            m.user_id for m in db.query(models.GroupMember.user_id).filter(
                models.GroupMember.group_id == expense.group_id,
                models.GroupMember.user_id.in_(user_ids)
            ).all()
        }
        outsiders = sorted(user_ids - members)
        if outsiders:
            raise HTTPException(
                status_code=400,
                detail=f"Users {outsiders} are not members of group {expense.group_id}"
            )


def verify_expense_access(db: Session, entry: LedgerEntry, user_id: int) -> None:
    """Payer, split participants and members of the expense's group may view it."""
    if is_involved(entry, user_id):
        return
    if entry.expense.group_id and is_group_member(db, entry.expense.group_id, user_id):
        return
    raise NotAuthorized("Not authorized to view this expense")


def verify_expense_creator(entry: LedgerEntry, user_id: int, action: str) -> None:
    if entry.expense.created_by_id != user_id:
        raise NotAuthorized(f"Not authorized to {action} this expense")


def verify_expense_payer(entry: LedgerEntry, user_id: int) -> None:
    if entry.expense.payer_id != user_id:
        raise NotAuthorized("Only the payer can mark expense as settled")
