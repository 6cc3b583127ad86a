from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, UniqueConstraint
from database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    full_name = Column(String)
    is_active = Column(Boolean, default=True)

class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    description = Column(String, nullable=True)
    created_by_id = Column(Integer)

class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, index=True)
    user_id = Column(Integer, index=True)

class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (UniqueConstraint("created_by_id", "dedup_key", name="uq_expense_dedup_key"),)

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String)
    amount = Column(Float)
    category = Column(String, default="Other", index=True)
    date = Column(String, index=True) # ISO date string (YYYY-MM-DD)
    payer_id = Column(Integer, index=True)
    group_id = Column(Integer, nullable=True, index=True)
    created_by_id = Column(Integer)
    notes = Column(String, nullable=True)
    receipt_url = Column(String, nullable=True)
    settled = Column(Boolean, default=False, index=True)
    dedup_key = Column(String, nullable=True) # Caller-supplied idempotency key
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (UniqueConstraint("expense_id", "user_id", name="uq_split_participant"),)

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, index=True)
    user_id = Column(Integer, index=True)
    amount_owed = Column(Float) # This participant's share of the expense
    paid = Column(Boolean, default=False)

class Budget(Base):
    """Per-user spend accumulator for one category and month."""
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "category", "month", "year", name="uq_budget_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True)
    category = Column(String)
    month = Column(Integer)
    year = Column(Integer)
    limit_amount = Column(Float, default=0)
    spent_amount = Column(Float, default=0)
    alert_threshold = Column(Integer, default=80) # Percent of limit
    color = Column(String, default="#3b82f6")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
