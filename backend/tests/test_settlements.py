"""Tests for the greedy settlement optimizer."""

from schemas import Balance
from utils.settlements import optimize_settlements, residual_balances


def balances(*pairs):
    return [Balance(user_id=uid, user_name=f"User {uid}", net_amount=amount) for uid, amount in pairs]


def apply(transfers, start):
    remaining = {b.user_id: b.net_amount for b in start}
    for t in transfers:
        remaining[t.from_user_id] += t.amount
        remaining[t.to_user_id] -= t.amount
    return remaining


def test_single_payer_collects_from_everyone():
    # 2400 split four ways, paid by user 1
    start = balances((1, 1800.0), (2, -600.0), (3, -600.0), (4, -600.0))

    transfers = optimize_settlements(start)

    assert [(t.from_user_id, t.to_user_id, t.amount) for t in transfers] == [
        (2, 1, 600.0),
        (3, 1, 600.0),
        (4, 1, 600.0),
    ]


def test_transfers_clear_every_balance():
    start = balances((1, 50.0), (2, 30.0), (3, -45.0), (4, -20.0), (5, -15.0))

    transfers = optimize_settlements(start)

    for amount in apply(transfers, start).values():
        assert abs(amount) <= 0.01 * len(start)
    assert all(t.amount > 0.01 for t in transfers)


def test_one_creditor_needs_one_transfer_per_debtor():
    start = balances((1, 90.0), (2, -30.0), (3, -30.0), (4, -30.0))

    transfers = optimize_settlements(start)

    assert len(transfers) == 3
    assert {t.to_user_id for t in transfers} == {1}


def test_transfer_count_bounded_for_mixed_sides():
    start = balances((1, 60.0), (2, 40.0), (3, -70.0), (4, -30.0))

    transfers = optimize_settlements(start)

    # creditors + debtors - 1
    assert len(transfers) <= 3


def test_chain_collapses_to_one_transfer():
    # A owes B 10 and B owes C 10: B nets to zero
    start = balances((1, -10.0), (2, 0.0), (3, 10.0))

    transfers = optimize_settlements(start)

    assert len(transfers) == 1
    assert (transfers[0].from_user_id, transfers[0].to_user_id, transfers[0].amount) == (1, 3, 10.0)


def test_all_settled_yields_no_transfers():
    assert optimize_settlements(balances((1, 0.0), (2, 0.004), (3, -0.005))) == []
    assert optimize_settlements([]) == []


def test_largest_creditor_is_matched_with_largest_debtor():
    start = balances((1, 20.0), (2, 80.0), (3, -30.0), (4, -70.0))

    transfers = optimize_settlements(start)

    first = transfers[0]
    assert (first.from_user_id, first.to_user_id, first.amount) == (4, 2, 70.0)


def test_ties_keep_input_order():
    start = balances((3, -50.0), (1, -50.0), (2, 100.0))

    transfers = optimize_settlements(start)

    assert [t.from_user_id for t in transfers] == [3, 1]


def test_amounts_are_rounded_to_cents():
    start = balances((1, 66.666666), (2, -33.333333), (3, -33.333333))

    transfers = optimize_settlements(start)

    assert [t.amount for t in transfers] == [33.33, 33.33]


def test_input_balances_are_not_modified():
    start = balances((1, 100.0), (2, -100.0))

    optimize_settlements(start)

    assert [b.net_amount for b in start] == [100.0, -100.0]


def test_partial_scope_leaves_unmatched_residue():
    # Creditors and debtors do not cancel out
    start = balances((1, 100.0), (2, -40.0))

    transfers = optimize_settlements(start)
    residue = residual_balances(start, transfers)

    assert [(t.from_user_id, t.to_user_id, t.amount) for t in transfers] == [(2, 1, 40.0)]
    assert [(b.user_id, b.net_amount) for b in residue] == [(1, 60.0)]


def test_no_residue_when_balances_cancel():
    start = balances((1, 100.0), (2, -60.0), (3, -40.0))

    assert residual_balances(start, optimize_settlements(start)) == []
