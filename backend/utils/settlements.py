"""
Debt simplification.

Greedy matching of the largest creditor against the largest debtor. This
collapses two-party chains to a single transfer and emits at most
creditors + debtors - 1 transfers (every step retires at least one
party), but it is a heuristic: for interleaved chains between more than
two parties it is not guaranteed to find the smallest possible number of
transfers.
"""

import schemas


# Balances within this distance of zero count as settled
SETTLEMENT_THRESHOLD = 0.01


def optimize_settlements(balances: list[schemas.Balance]) -> list[schemas.SettlementTransfer]:
    """
    Compute transfers that drive every balance to within SETTLEMENT_THRESHOLD of zero.

    Algorithm:
    1. Split into creditors (> 0.01) and debtors (< -0.01), dropping the rest
    2. Sort creditors descending and debtors ascending (most negative first);
       the sort is stable so ties keep their input order
    3. Walk both lists, paying min(credit, debt) from debtor to creditor

    The input balances are not modified. If creditors and debtors do not
    cancel out (partial scope), the loop stops when one side runs out and
    the residue is left unmatched.
    """
    creditors = [
        {'id': b.user_id, 'name': b.user_name, 'amount': b.net_amount}
        for b in balances if b.net_amount > SETTLEMENT_THRESHOLD
    ]
    debtors = [
        {'id': b.user_id, 'name': b.user_name, 'amount': b.net_amount}
        for b in balances if b.net_amount < -SETTLEMENT_THRESHOLD
    ]

    creditors.sort(key=lambda x: x['amount'], reverse=True)
    debtors.sort(key=lambda x: x['amount'])

    transfers = []
    i = 0
    j = 0

    while i < len(creditors) and j < len(debtors):
        creditor = creditors[i]
        debtor = debtors[j]

        amount = min(creditor['amount'], -debtor['amount'])

        if amount > SETTLEMENT_THRESHOLD:
            transfers.append(schemas.SettlementTransfer(
                from_user_id=debtor['id'],
                from_user_name=debtor['name'],
                to_user_id=creditor['id'],
                to_user_name=creditor['name'],
                amount=round(amount, 2)
            ))

        creditor['amount'] -= amount
        debtor['amount'] += amount

        if creditor['amount'] < SETTLEMENT_THRESHOLD:
            i += 1
        if debtor['amount'] > -SETTLEMENT_THRESHOLD:
            j += 1

    return transfers


def residual_balances(
    balances: list[schemas.Balance],
    transfers: list[schemas.SettlementTransfer]
) -> list[schemas.Balance]:
    """Apply transfers to balances and return what is left outside the settled threshold."""
    remaining = {b.user_id: b.net_amount for b in balances}
    for transfer in transfers:
        remaining[transfer.from_user_id] = remaining.get(transfer.from_user_id, 0) + transfer.amount
        remaining[transfer.to_user_id] = remaining.get(transfer.to_user_id, 0) - transfer.amount

    return [
        schemas.Balance(user_id=b.user_id, user_name=b.user_name, net_amount=remaining[b.user_id])
        for b in balances
        if abs(remaining[b.user_id]) > SETTLEMENT_THRESHOLD
    ]
