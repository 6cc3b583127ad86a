from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import BaseModel, EmailStr, Field, PlainSerializer, field_validator, model_validator

VALID_CATEGORIES = ['Food', 'Transport', 'Shopping', 'Entertainment', 'Bills', 'Healthcare', 'Other']

# Monetary values keep full precision internally and are rounded when rendered
Money = Annotated[float, PlainSerializer(lambda v: round(v, 2), return_type=float)]


def check_category(v):
    if v not in VALID_CATEGORIES:
        raise ValueError(f'Category must be one of {VALID_CATEGORIES}')
    return v


class UserBase(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None

class UserCreate(UserBase):
    password: str

class User(UserBase):
    id: int
    is_active: bool

    class Config:
        from_attributes = True

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    email: Optional[str] = None

class GroupCreate(BaseModel):
    name: str = Field(min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)

class Group(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_by_id: int

    class Config:
        from_attributes = True

class GroupMemberAdd(BaseModel):
    email: str

class GroupMember(BaseModel):
    id: int
    user_id: int
    full_name: str
    email: str

class GroupWithMembers(Group):
    members: list[GroupMember]


class SplitEntry(BaseModel):
    """One participant's share of an expense."""
    user_id: int
    amount_owed: float = Field(allow_inf_nan=False)
    paid: bool = False

class ExpenseCreate(BaseModel):
    description: str = Field(min_length=3, max_length=200)
    amount: float = Field(allow_inf_nan=False)
    category: str = "Other"
    date: Optional[str] = None  # Defaults to today
    payer_id: int
    group_id: Optional[int] = None
    participant_ids: Optional[list[int]] = None  # Equal split among these users
    splits: Optional[list[SplitEntry]] = None  # Explicit shares
    notes: Optional[str] = Field(default=None, max_length=500)
    receipt_url: Optional[str] = None
    dedup_key: Optional[str] = None  # Retrying with the same key returns the original expense

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return check_category(v)

    @field_validator('date')
    @classmethod
    def validate_date(cls, v):
        if v:
            # Accepts YYYY-MM-DD with an optional time component
            date.fromisoformat(v.split('T')[0])
        return v

    @model_validator(mode='after')
    def check_split_source(self):
        if self.participant_ids is None and self.splits is None:
            raise ValueError('Provide either participant_ids or splits')
        if self.participant_ids is not None and self.splits is not None:
            raise ValueError('Provide participant_ids or splits, not both')
        return self

class ExpenseUpdate(BaseModel):
    """Only these fields may change once an expense exists."""
    description: Optional[str] = Field(default=None, min_length=3, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = None

    class Config:
        extra = "forbid"

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        if v is None:
            return v
        return check_category(v)

class Expense(BaseModel):
    id: int
    description: str
    amount: Money
    category: str
    date: str
    payer_id: int
    group_id: Optional[int] = None
    created_by_id: Optional[int] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    settled: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ExpenseSplitDetail(BaseModel):
    user_id: int
    user_name: str
    amount_owed: Money
    paid: bool

class ExpenseWithSplits(Expense):
    payer_name: str
    splits: list[ExpenseSplitDetail]
    is_fully_paid: bool

class AccumulatorKey(BaseModel):
    user_id: int
    category: str
    month: int
    year: int
    delta: float = Field(allow_inf_nan=False)  # Signed change to spent_amount, not rounded

class AccumulatorUpdate(BaseModel):
    """Outcome of applying an expense to the spend accumulator, one key per split."""
    status: str  # complete, partial or duplicate
    applied: list[AccumulatorKey] = []
    failed: list[AccumulatorKey] = []

class ExpenseMutationResult(BaseModel):
    expense: ExpenseWithSplits
    accumulator: AccumulatorUpdate

class ExpenseDeleteResult(BaseModel):
    message: str
    accumulator: AccumulatorUpdate

class AccumulatorRetry(BaseModel):
    keys: list[AccumulatorKey]

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class ExpenseList(BaseModel):
    expenses: list[ExpenseWithSplits]
    pagination: Pagination

class CategoryStat(BaseModel):
    category: str
    total: Money
    count: int


class Balance(BaseModel):
    """Net position of one user. Positive means they are owed, negative means they owe."""
    user_id: int
    user_name: str
    net_amount: Money

class BalanceView(Balance):
    owes: bool
    is_owed: bool

class SettlementTransfer(BaseModel):
    from_user_id: int
    from_user_name: str
    to_user_id: int
    to_user_name: str
    amount: Money

class SettlementResult(BaseModel):
    transfers: list[SettlementTransfer]
    balances: list[BalanceView]
    unmatched: list[Balance] = []  # Residue left by a partial scope

class SettlementSummary(BaseModel):
    total_owed: Money
    total_owing: Money
    net_balance: Money
    status: str  # owed, owing or settled


class BudgetCreate(BaseModel):
    category: str
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020)
    limit_amount: float = Field(ge=0, allow_inf_nan=False)
    alert_threshold: int = Field(default=80, ge=0, le=100)
    color: str = Field(default="#3b82f6", pattern=r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return check_category(v)

class BudgetUpdate(BaseModel):
    limit_amount: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    color: Optional[str] = Field(default=None, pattern=r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

class BudgetView(BaseModel):
    id: int
    user_id: int
    category: str
    month: int
    year: int
    limit_amount: Money
    spent_amount: Money
    alert_threshold: int
    color: str
    remaining: Money
    utilization_percent: Money
    is_exceeded: bool
    alert_triggered: bool

class BudgetOverview(BaseModel):
    month: int
    year: int
    total_limit: Money
    total_spent: Money
    total_remaining: Money
    exceeded_count: int
    alert_count: int
    budgets: list[BudgetView]

class AccumulatorDrift(BaseModel):
    user_id: int
    category: str
    month: int
    year: int
    recorded: Money
    expected: Money
    repaired: bool = False

class ReconcileResult(BaseModel):
    drift_detected: bool
    drifts: list[AccumulatorDrift]
