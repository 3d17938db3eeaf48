from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from pydantic import ValidationError
from typing import Dict, Iterable, List, Mapping, Tuple
import logging

from errors import LedgerImbalanceError, MalformedRecordError, UnknownMemberError
from models import (
    BalanceMap,
    Debt,
    ExpenseRecord,
    MemberSummary,
    SettlementRecord,
    record_from_document,
    validate_members,
)

logger = logging.getLogger(__name__)

# A split may disagree with its expense amount by up to one cent.
SPLIT_TOLERANCE_CENTS = 1
# Balances may sum this far from zero before settling is refused.
IMBALANCE_TOLERANCE = Decimal("0.01")


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> float:
    return float(Decimal(cents) / 100)


def apportion_cents(amount_cents: int, shares: List[float]) -> List[int]:
    """
    Convert participant shares to cents that add up to amount_cents.

    Uses largest remainder: every share is floored to a cent and the leftover
    cents go to the shares with the largest fractional part, earlier
    participants first on ties. Shares that disagree with the amount by more
    than SPLIT_TOLERANCE_CENTS are only rounded, never rescaled.
    """
    if not shares:
        return []
    exact = [Decimal(str(share)) * 100 for share in shares]
    total = sum(exact, Decimal(0))
    if abs(total - amount_cents) > SPLIT_TOLERANCE_CENTS:
        logger.warning(
            f"Split shares total {total / 100} but expense amount is {from_cents(amount_cents)}"
        )
        return [to_cents(share) for share in shares]

    cents = [int(x.to_integral_value(rounding=ROUND_FLOOR)) for x in exact]
    order = sorted(range(len(exact)), key=lambda k: exact[k] - cents[k], reverse=True)
    residue = amount_cents - sum(cents)

    k = 0
    while residue > 0:
        cents[order[k % len(order)]] += 1
        residue -= 1
        k += 1
    for idx in reversed(order):
        if residue == 0:
            break
        if cents[idx] > 0:
            cents[idx] -= 1
            residue += 1
    return cents


def _load_record(doc: dict):
    try:
        return record_from_document(doc)
    except (KeyError, TypeError, ValidationError) as e:
        raise MalformedRecordError(f"Malformed ledger document {doc.get('id', '?')}: {e!r}") from e


def _fold_cents(members: Iterable[str], records: Iterable, strict: bool) -> Tuple[Dict[str, int], int]:
    """Balances in cents plus the number of contributions dropped for unknown members"""
    cents = {member: 0 for member in validate_members(members)}
    dropped = 0

    def apply(member, delta):
        nonlocal dropped
        if member in cents:
            cents[member] += delta
        elif strict:
            raise UnknownMemberError(member)
        else:
            dropped += 1
            logger.debug(f"Ignoring {from_cents(delta)} for unknown member {member}")

    for record in records:
        if isinstance(record, dict):
            record = _load_record(record)
            if record is None:
                logger.debug("Skipping expense document without participants")
                continue

        if isinstance(record, SettlementRecord):
            amount = to_cents(record.amount)
            apply(record.payer, amount)
            apply(record.payee, -amount)
        elif isinstance(record, ExpenseRecord):
            amount = to_cents(record.amount)
            apply(record.paid_by, amount)
            shares = apportion_cents(amount, [p.share for p in record.participants])
            for participant, share in zip(record.participants, shares):
                apply(participant.member, -share)
        else:
            raise TypeError(f"Unsupported ledger record: {record!r}")

    return cents, dropped


class SettlementOptimizer:
    @staticmethod
    def compute_balances(members: Iterable[str], records: Iterable, strict: bool = False) -> BalanceMap:
        """
        Fold ledger records into a net balance per member.

        Positive balances are owed to the member, negative balances are owed
        by the member. Amounts are accumulated as integer cents so the result
        sums to exactly zero for a consistent ledger.

        Records that mention members outside ``members`` have that part of
        their contribution dropped, unless ``strict`` is set, in which case
        UnknownMemberError is raised. Store documents may be passed in place
        of records; expense documents without participants are skipped and
        documents missing required fields raise MalformedRecordError.
        """
        cents, _ = _fold_cents(members, records, strict)
        return {member: from_cents(value) for member, value in cents.items()}

    @staticmethod
    def minimize_debts(balances: Mapping[str, float], allow_imbalance: bool = False) -> List[Debt]:
        """
        Greedy settle-up: largest debtor pays largest creditor until one side runs out.

        Raises LedgerImbalanceError when the balances sum further than
        IMBALANCE_TOLERANCE from zero, unless ``allow_imbalance`` is set, in
        which case only the matchable part is settled. Sub-cent rounding
        left over after matching is dropped.
        """
        total = sum((Decimal(str(balance)) for balance in balances.values()), Decimal(0))
        if abs(total) > IMBALANCE_TOLERANCE and not allow_imbalance:
            raise LedgerImbalanceError(f"Balances sum to {total} instead of zero; ledger is inconsistent")

        entries = [[member, to_cents(balance)] for member, balance in balances.items()]

        creditors = [e for e in entries if e[1] > 0]
        debtors = [e for e in entries if e[1] < 0]

        # sort() is stable, so ties keep the order of the balance map
        creditors.sort(key=lambda e: e[1], reverse=True)
        debtors.sort(key=lambda e: e[1])

        debts = []
        i = j = 0
        while i < len(debtors) and j < len(creditors):
            debtor = debtors[i]
            creditor = creditors[j]

            amount = min(-debtor[1], creditor[1])
            debts.append(Debt(debtor=debtor[0], creditor=creditor[0], amount=from_cents(amount)))

            debtor[1] += amount
            creditor[1] -= amount

            if debtor[1] == 0:
                i += 1
            if creditor[1] == 0:
                j += 1

        residue = sum(abs(e[1]) for e in debtors[i:] + creditors[j:])
        if residue:
            logger.debug(f"Left {from_cents(residue)} unsettled after matching")

        return debts

    @staticmethod
    def summarize_member(member: str, balances: Mapping[str, float], debts: List[Debt]) -> MemberSummary:
        """Split a settle-up list into what ``member`` owes and what is owed to them"""
        you_owe = [d for d in debts if d.debtor == member]
        owes_you = [d for d in debts if d.creditor == member]

        return MemberSummary(
            member=member,
            you_owe=you_owe,
            owes_you=owes_you,
            total_you_owe=from_cents(sum(to_cents(d.amount) for d in you_owe)),
            total_owed_to_you=from_cents(sum(to_cents(d.amount) for d in owes_you)),
            net_balance=balances.get(member, 0.0),
        )

    @staticmethod
    def optimize_settlements(members: Iterable[str], records: Iterable, strict: bool = False) -> Dict:
        """Main method to calculate optimal settlements"""
        cents, dropped = _fold_cents(members, records, strict)
        balances = {member: from_cents(value) for member, value in cents.items()}

        if dropped:
            logger.warning(
                f"Dropped {dropped} contributions for members outside the group; "
                f"balances are off by {from_cents(sum(cents.values()))}, settling only what matches"
            )
        settlements = SettlementOptimizer.minimize_debts(balances, allow_imbalance=dropped > 0)

        return {
            "balances": balances,
            "optimal_settlements": settlements
        }


def compute_balances(members: Iterable[str], records: Iterable, strict: bool = False) -> BalanceMap:
    return SettlementOptimizer.compute_balances(members, records, strict=strict)


def minimize_debts(balances: Mapping[str, float], allow_imbalance: bool = False) -> List[Debt]:
    return SettlementOptimizer.minimize_debts(balances, allow_imbalance=allow_imbalance)
