import random

import pytest

from models import Debt, ExpenseRecord, Participant, SettlementRecord
from errors import InvalidMembersError, LedgerImbalanceError, MalformedRecordError, UnknownMemberError
from settlement_optimizer import (
    SettlementOptimizer,
    apportion_cents,
    compute_balances,
    minimize_debts,
)


def expense(paid_by, amount, shares):
    return ExpenseRecord(
        paid_by=paid_by,
        amount=amount,
        participants=[Participant(member=m, share=s) for m, s in shares],
    )


def settle(balances, debts):
    after = dict(balances)
    for d in debts:
        after[d.debtor] += d.amount
        after[d.creditor] -= d.amount
    return after


def test_empty_ledger_is_all_zero():
    assert compute_balances(["A", "B", "C"], []) == {"A": 0.0, "B": 0.0, "C": 0.0}


def test_members_required():
    with pytest.raises(InvalidMembersError):
        compute_balances([], [])


def test_duplicate_members_rejected():
    with pytest.raises(InvalidMembersError):
        compute_balances(["A", "A"], [])


def test_self_consumed_expense_nets_to_zero():
    balances = compute_balances(["A", "B"], [expense("A", 42.5, [("A", 42.5)])])
    assert balances == {"A": 0.0, "B": 0.0}


def test_two_member_expense():
    balances = compute_balances(["A", "B"], [expense("A", 100, [("A", 50), ("B", 50)])])
    assert balances == {"A": 50.0, "B": -50.0}

    debts = minimize_debts(balances)
    assert debts == [Debt(debtor="B", creditor="A", amount=50.0)]


def test_three_way_even_split():
    balances = compute_balances(
        ["A", "B", "C"], [expense("A", 90, [("A", 30), ("B", 30), ("C", 30)])]
    )
    assert balances == {"A": 60.0, "B": -30.0, "C": -30.0}

    debts = minimize_debts(balances)
    assert debts == [
        Debt(debtor="B", creditor="A", amount=30.0),
        Debt(debtor="C", creditor="A", amount=30.0),
    ]


def test_settlement_clears_balances():
    records = [
        expense("A", 100, [("A", 50), ("B", 50)]),
        SettlementRecord(payer="B", payee="A", amount=50),
    ]
    assert compute_balances(["A", "B"], records) == {"A": 0.0, "B": 0.0}


def test_single_debtor_pays_two_creditors():
    balances = {"A": 20.0, "B": 20.0, "C": -40.0}
    debts = minimize_debts(balances)

    assert len(debts) == 2
    assert all(d.debtor == "C" for d in debts)
    assert {d.creditor for d in debts} == {"A", "B"}
    assert sum(d.amount for d in debts) == pytest.approx(40.0)
    assert all(v == pytest.approx(0.0) for v in settle(balances, debts).values())


def test_odd_amount_split_three_ways_stays_balanced():
    share = 100 / 3
    balances = compute_balances(
        ["A", "B", "C"], [expense("A", 100, [("A", share), ("B", share), ("C", share)])]
    )
    assert sum(balances.values()) == pytest.approx(0.0, abs=1e-9)
    # the leftover cent lands on the first participant
    assert balances == {"A": 66.66, "B": -33.33, "C": -33.33}


def test_shares_off_by_a_cent_are_reconciled():
    balances = compute_balances(
        ["A", "B", "C"], [expense("B", 100, [("A", 33.33), ("B", 33.33), ("C", 33.33)])]
    )
    assert sum(balances.values()) == pytest.approx(0.0, abs=1e-9)
    assert balances["A"] == -33.34


def test_unknown_member_is_ignored_by_default():
    records = [expense("A", 90, [("A", 30), ("B", 30), ("Z", 30)])]
    assert compute_balances(["A", "B"], records) == {"A": 60.0, "B": -30.0}


def test_unknown_member_raises_in_strict_mode():
    records = [SettlementRecord(payer="A", payee="Z", amount=10)]
    with pytest.raises(UnknownMemberError) as excinfo:
        compute_balances(["A", "B"], records, strict=True)
    assert excinfo.value.member == "Z"


def test_store_documents_are_accepted():
    docs = [
        {"paidBy": "A", "amount": 60, "participants": [{"uid": "A", "amount": 30}, {"uid": "B", "amount": 30}]},
        {"type": "settlement", "from": "B", "to": "A", "amount": 10},
    ]
    assert compute_balances(["A", "B"], docs) == {"A": 20.0, "B": -20.0}


def test_unbalanced_input_raises():
    with pytest.raises(LedgerImbalanceError):
        minimize_debts({"A": 50.0, "B": -20.0})


def test_sub_cent_noise_is_ignored():
    assert minimize_debts({"A": 0.004, "B": -0.004}) == []


def test_half_cent_balances_across_many_members_settle():
    balances = {"A": 0.005, "B": 0.005, "C": 0.005, "D": 0.005, "E": -0.02}
    debts = minimize_debts(balances)

    assert len(debts) <= len(balances) - 1
    assert all(d.debtor == "E" for d in debts)
    assert all(abs(v) <= 0.01 for v in settle(balances, debts).values())


def test_imbalance_within_a_cent_is_accepted():
    debts = minimize_debts({"A": 33.34, "B": -33.33})
    assert debts == [Debt(debtor="B", creditor="A", amount=33.33)]


def test_allow_imbalance_settles_what_matches():
    debts = minimize_debts({"A": 50.0, "B": -20.0}, allow_imbalance=True)
    assert debts == [Debt(debtor="B", creditor="A", amount=20.0)]


def test_ties_keep_member_order():
    debts = minimize_debts({"A": -10.0, "B": -10.0, "C": 10.0, "D": 10.0})
    assert [(d.debtor, d.creditor) for d in debts] == [("A", "C"), ("B", "D")]


def test_apportion_hands_out_leftover_cents():
    assert apportion_cents(1000, [10 / 7] * 7) == [143, 143, 143, 143, 143, 143, 142]
    assert sum(apportion_cents(1000, [10 / 7] * 7)) == 1000


def test_optimize_settlements_returns_both_views():
    result = SettlementOptimizer.optimize_settlements(
        ["A", "B"], [expense("A", 10, [("B", 10)])]
    )
    assert result["balances"] == {"A": 10.0, "B": -10.0}
    assert result["optimal_settlements"] == [Debt(debtor="B", creditor="A", amount=10.0)]


def test_member_summary():
    balances = {"A": 60.0, "B": -30.0, "C": -30.0}
    debts = minimize_debts(balances)

    summary = SettlementOptimizer.summarize_member("A", balances, debts)
    assert summary.you_owe == []
    assert summary.total_owed_to_you == 60.0
    assert summary.net_balance == 60.0

    summary = SettlementOptimizer.summarize_member("B", balances, debts)
    assert summary.total_you_owe == 30.0
    assert summary.owes_you == []


@pytest.mark.parametrize("seed", range(25))
def test_random_ledgers_settle_completely(seed):
    rng = random.Random(seed)
    members = [f"m{i}" for i in range(rng.randint(2, 8))]

    records = []
    for _ in range(rng.randint(1, 15)):
        payer = rng.choice(members)
        if rng.random() < 0.2:
            payee = rng.choice([m for m in members if m != payer])
            records.append(SettlementRecord(payer=payer, payee=payee, amount=round(rng.uniform(1, 50), 2)))
            continue
        amount = round(rng.uniform(1, 500), 2)
        sharing = rng.sample(members, rng.randint(1, len(members)))
        records.append(expense(payer, amount, [(m, amount / len(sharing)) for m in sharing]))

    balances = compute_balances(members, records)
    assert sum(balances.values()) == pytest.approx(0.0, abs=1e-6)

    debts = minimize_debts(balances)
    assert len(debts) <= len(members) - 1
    assert all(d.debtor != d.creditor for d in debts)
    assert all(d.amount > 0 for d in debts)
    assert all(abs(v) < 1e-2 for v in settle(balances, debts).values())


def test_unknown_member_does_not_block_settle_up():
    records = [
        expense("A", 90, [("A", 30), ("B", 30), ("Z", 30)]),
        SettlementRecord(payer="B", payee="Z", amount=5),
    ]
    result = SettlementOptimizer.optimize_settlements(["A", "B"], records)

    assert result["balances"] == {"A": 60.0, "B": -25.0}
    assert result["optimal_settlements"] == [Debt(debtor="B", creditor="A", amount=25.0)]


def test_unbalanced_ledger_still_raises_without_unknown_members():
    records = [expense("A", 90, [("A", 30), ("B", 30)])]
    with pytest.raises(LedgerImbalanceError):
        SettlementOptimizer.optimize_settlements(["A", "B"], records)


def test_expense_document_without_participants_is_skipped():
    docs = [
        {"paidBy": "A", "amount": 10},
        {"paidBy": "A", "amount": 10, "participants": "B"},
        {"paidBy": "B", "amount": 8, "participants": [{"uid": "A", "amount": 8}]},
    ]
    result = SettlementOptimizer.optimize_settlements(["A", "B"], docs)

    assert result["balances"] == {"A": -8.0, "B": 8.0}
    assert result["optimal_settlements"] == [Debt(debtor="A", creditor="B", amount=8.0)]


@pytest.mark.parametrize(
    "doc",
    [
        {"id": "t1", "amount": 10, "participants": [{"uid": "A", "amount": 10}]},
        {"id": "t2", "type": "settlement", "from": "A", "amount": 5},
        {"id": "t3", "paidBy": "A", "amount": -1, "participants": []},
        {"id": "t4", "paidBy": "A", "amount": 10, "participants": [{"member": "A"}]},
    ],
)
def test_malformed_documents_raise(doc):
    with pytest.raises(MalformedRecordError, match=doc["id"]):
        compute_balances(["A", "B"], [doc])
