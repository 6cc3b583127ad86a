"""Tests for balance aggregation and the balance/settlement endpoints."""

import pytest

import models
from utils.balances import (
    calculate_net_balances,
    collect_involved_users,
    summarize_position,
    category_totals,
)
from utils.ledger import LedgerEntry


def entry(expense_id, amount, payer_id, shares, category="Other"):
    expense = models.Expense(
        id=expense_id,
        description=f"Expense {expense_id}",
        amount=amount,
        category=category,
        date="2025-06-15",
        payer_id=payer_id,
        settled=False
    )
    splits = [
        models.ExpenseSplit(expense_id=expense_id, user_id=user_id, amount_owed=share, paid=user_id == payer_id)
        for user_id, share in shares
    ]
    return LedgerEntry(expense=expense, splits=splits)


@pytest.fixture
def two_expenses():
    # 800 between users 1 and 2 paid by 2, 350 between users 1 and 3 paid by 1
    return [
        entry(1, 800.0, 2, [(1, 400.0), (2, 400.0)]),
        entry(2, 350.0, 1, [(1, 175.0), (3, 175.0)]),
    ]


def test_net_balances_across_expenses(two_expenses):
    net = calculate_net_balances(two_expenses, [1, 2, 3])

    assert net == {1: -225.0, 2: 400.0, 3: -175.0}


def test_balances_over_closed_set_sum_to_zero(two_expenses):
    net = calculate_net_balances(two_expenses, collect_involved_users(two_expenses))

    assert abs(sum(net.values())) <= 0.01


def test_result_does_not_depend_on_entry_order(two_expenses):
    forward = calculate_net_balances(two_expenses, [1, 2, 3])
    backward = calculate_net_balances(list(reversed(two_expenses)), [1, 2, 3])

    assert forward == backward


def test_users_outside_involved_set_are_skipped(two_expenses):
    net = calculate_net_balances(two_expenses, [1, 2])

    assert net == {1: -225.0, 2: 400.0}


def test_initiator_is_included_without_records():
    assert collect_involved_users([], initiator_id=7) == [7]
    assert calculate_net_balances([], [7]) == {7: 0.0}


def test_involved_users_in_first_seen_order(two_expenses):
    assert collect_involved_users(two_expenses, initiator_id=3) == [3, 2, 1]


def test_values_are_not_rounded_mid_computation():
    entries = [entry(i, 10.0, 1, [(1, 10 / 3), (2, 10 / 3), (3, 10 / 3)]) for i in range(3)]

    net = calculate_net_balances(entries, [1, 2, 3])

    assert net[2] == pytest.approx(-10.0)
    assert net[1] == pytest.approx(20.0)


def test_summarize_position(two_expenses):
    summary = summarize_position(two_expenses, 1)

    assert summary.total_owed == 175.0
    assert summary.total_owing == 400.0
    assert summary.net_balance == -225.0
    assert summary.status == "owing"


def test_summarize_position_settled_within_threshold():
    summary = summarize_position([entry(1, 10.0, 1, [(1, 9.995), (2, 0.005)])], 1)

    assert summary.status == "settled"


def test_category_totals_largest_first():
    entries = [
        entry(1, 30.0, 1, [(1, 15.0), (2, 15.0)], category="Food"),
        entry(2, 100.0, 2, [(1, 50.0), (2, 50.0)], category="Bills"),
        entry(3, 20.0, 1, [(1, 10.0), (2, 10.0)], category="Food"),
    ]

    stats = category_totals(entries, 1)

    assert [(s.category, s.total, s.count) for s in stats] == [("Bills", 50.0, 1), ("Food", 25.0, 2)]


# API

@pytest.fixture
def users(test_user, make_user):
    bob, bob_headers = make_user("Bob")
    carol, carol_headers = make_user("Carol")
    return {"alice": test_user, "bob": bob, "bob_headers": bob_headers, "carol": carol, "carol_headers": carol_headers}


def add_expense(client, headers, amount, payer_id, participant_ids, **extra):
    payload = {
        "description": "Shared cost",
        "amount": amount,
        "payer_id": payer_id,
        "participant_ids": participant_ids,
        "date": "2025-06-15",
    }
    payload.update(extra)
    response = client.post("/expenses", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()["expense"]


@pytest.fixture
def shared_expenses(client, auth_headers, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    first = add_expense(client, auth_headers, 800.0, bob.id, [alice.id, bob.id])
    second = add_expense(client, auth_headers, 350.0, alice.id, [alice.id, carol.id])
    return first, second


def by_user(balances):
    return {b["user_id"]: b["net_amount"] for b in balances}


def test_get_balances(client, auth_headers, users, shared_expenses):
    response = client.get("/balances", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()

    assert by_user(data) == {users["alice"].id: -225.0, users["bob"].id: 400.0, users["carol"].id: -175.0}
    flags = {b["user_id"]: (b["owes"], b["is_owed"]) for b in data}
    assert flags[users["alice"].id] == (True, False)
    assert flags[users["bob"].id] == (False, True)
    names = {b["user_id"]: b["user_name"] for b in data}
    assert names[users["carol"].id] == "Carol"


def test_balances_without_expenses_report_initiator(client, auth_headers, test_user):
    response = client.get("/balances", headers=auth_headers)
    assert response.status_code == 200
    assert by_user(response.json()) == {test_user.id: 0.0}


def test_get_settlements(client, auth_headers, users, shared_expenses):
    response = client.get("/settlements", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()

    transfers = [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in data["transfers"]]
    assert transfers == [
        (users["alice"].id, users["bob"].id, 225.0),
        (users["carol"].id, users["bob"].id, 175.0),
    ]
    assert data["unmatched"] == []


def test_settlements_for_explicit_users_report_residue(client, auth_headers, users, shared_expenses):
    bob = users["bob"]
    response = client.get(f"/settlements?user_ids={bob.id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()

    # Carol's share is outside the requested users
    assert by_user(data["balances"]) == {bob.id: 400.0, users["alice"].id: -225.0}
    assert [(t["from_user_id"], t["amount"]) for t in data["transfers"]] == [(users["alice"].id, 225.0)]
    assert by_user(data["unmatched"]) == {bob.id: 175.0}


def test_invalid_user_ids_rejected(client, auth_headers):
    response = client.get("/balances?user_ids=1,abc", headers=auth_headers)
    assert response.status_code == 400


def test_pair_settlement(client, auth_headers, users, shared_expenses):
    carol = users["carol"]
    response = client.get(f"/settlements/pair/{carol.id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()

    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in data["transfers"]] == [
        (carol.id, users["alice"].id, 175.0)
    ]
    assert by_user(data["balances"]) == {users["alice"].id: 175.0, carol.id: -175.0}


def test_pair_settlement_with_self_rejected(client, auth_headers, test_user):
    response = client.get(f"/settlements/pair/{test_user.id}", headers=auth_headers)
    assert response.status_code == 400


def test_pair_settlement_unknown_user(client, auth_headers):
    response = client.get("/settlements/pair/999", headers=auth_headers)
    assert response.status_code == 404


def test_settled_expenses_are_excluded(client, auth_headers, users, shared_expenses):
    first, _ = shared_expenses
    response = client.put(f"/expenses/{first['id']}/settle", headers=users["bob_headers"])
    assert response.status_code == 200

    response = client.get("/balances", headers=auth_headers)
    assert by_user(response.json()) == {users["alice"].id: 175.0, users["carol"].id: -175.0}


def test_settlement_summary(client, auth_headers, shared_expenses):
    response = client.get("/settlements/summary", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "total_owed": 175.0,
        "total_owing": 400.0,
        "net_balance": -225.0,
        "status": "owing",
    }


def test_group_balances_and_settlements(client, auth_headers, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    group_id = client.post("/groups", headers=auth_headers, json={"name": "Trip"}).json()["id"]
    client.post(f"/groups/{group_id}/members", headers=auth_headers, json={"email": bob.email})

    add_expense(client, auth_headers, 90.0, alice.id, [alice.id, bob.id], group_id=group_id)
    # Outside the group: must not show up in group balances
    add_expense(client, auth_headers, 50.0, carol.id, [alice.id, carol.id])

    response = client.get(f"/groups/{group_id}/balances", headers=auth_headers)
    assert response.status_code == 200
    assert by_user(response.json()) == {alice.id: 45.0, bob.id: -45.0}

    response = client.get(f"/settlements/group/{group_id}", headers=users["bob_headers"])
    assert response.status_code == 200
    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in response.json()["transfers"]] == [
        (bob.id, alice.id, 45.0)
    ]


def test_group_balances_require_membership(client, auth_headers, users):
    group_id = client.post("/groups", headers=auth_headers, json={"name": "Private"}).json()["id"]

    response = client.get(f"/groups/{group_id}/balances", headers=users["carol_headers"])
    assert response.status_code == 403

    response = client.get("/groups/999/balances", headers=auth_headers)
    assert response.status_code == 404


def test_balances_require_auth(client):
    assert client.get("/balances").status_code == 401
