"""Balance calculation over ledger snapshots."""

from typing import Dict, Iterable, Optional

import schemas
from utils.ledger import LedgerEntry
from utils.settlements import SETTLEMENT_THRESHOLD


def collect_involved_users(entries: Iterable[LedgerEntry], initiator_id: Optional[int] = None) -> list[int]:
    """
    Every payer and split participant in the entries, in first-seen order.

    The initiator is always included, even when no entry mentions them.
    """
    user_ids = {}
    if initiator_id is not None:
        user_ids[initiator_id] = True

    for entry in entries:
        user_ids[entry.expense.payer_id] = True
        for split in entry.splits:
            user_ids[split.user_id] = True

    return list(user_ids)


def calculate_net_balances(
    entries: Iterable[LedgerEntry],
    involved_user_ids: Iterable[int]
) -> Dict[int, float]:
    """
    Calculate the net balance of each involved user.

    Args:
        entries: Ledger entries to aggregate (callers pass unsettled ones)
        involved_user_ids: Users to report on

    Returns:
        Dictionary mapping user_id to net amount. Positive means the user is
        owed money, negative means they owe. Contributions of users outside
        the involved set are skipped. Values are not rounded.
    """
    net_balances = {user_id: 0.0 for user_id in involved_user_ids}

    for entry in entries:
        # Creditor (payer) increases balance by the full amount
        payer_id = entry.expense.payer_id
        if payer_id in net_balances:
            net_balances[payer_id] += entry.expense.amount

        # Each participant decreases balance by their share
        for split in entry.splits:
            if split.user_id in net_balances:
                net_balances[split.user_id] -= split.amount_owed

    return net_balances


def build_balances(net_balances: Dict[int, float], names: Dict[int, str]) -> list[schemas.Balance]:
    """Attach pre-resolved display names to net balances."""
    return [
        schemas.Balance(
            user_id=user_id,
            user_name=names.get(user_id, "Unknown User"),
            net_amount=amount
        )
        for user_id, amount in net_balances.items()
    ]


def balance_view(balance: schemas.Balance) -> schemas.BalanceView:
    rounded = round(balance.net_amount, 2)
    return schemas.BalanceView(
        user_id=balance.user_id,
        user_name=balance.user_name,
        net_amount=balance.net_amount,
        owes=rounded < 0,
        is_owed=rounded > 0
    )


def summarize_position(entries: Iterable[LedgerEntry], user_id: int) -> schemas.SettlementSummary:
    """
    Summarize what a user is owed and owes across unsettled entries.

    When the user paid, everyone else's shares count as owed to them; when
    someone else paid, the user's own share counts as owing.
    """
    total_owed = 0.0
    total_owing = 0.0

    for entry in entries:
        if entry.expense.payer_id == user_id:
            total_owed += sum(s.amount_owed for s in entry.splits if s.user_id != user_id)
        else:
            total_owing += sum(s.amount_owed for s in entry.splits if s.user_id == user_id)

    net_balance = total_owed - total_owing
    if net_balance > SETTLEMENT_THRESHOLD:
        status = "owed"
    elif net_balance < -SETTLEMENT_THRESHOLD:
        status = "owing"
    else:
        status = "settled"

    return schemas.SettlementSummary(
        total_owed=total_owed,
        total_owing=total_owing,
        net_balance=net_balance,
        status=status
    )


def category_totals(entries: Iterable[LedgerEntry], user_id: int) -> list[schemas.CategoryStat]:
    """Total of the user's own shares per category, largest first."""
    totals = {}
    for entry in entries:
        for split in entry.splits:
            if split.user_id != user_id:
                continue
            total, count = totals.get(entry.expense.category, (0.0, 0))
            totals[entry.expense.category] = (total + split.amount_owed, count + 1)

    stats = [
        schemas.CategoryStat(category=category, total=total, count=count)
        for category, (total, count) in totals.items()
    ]
    stats.sort(key=lambda s: s.total, reverse=True)
    return stats
