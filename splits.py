"""
Turn an expense amount and a participant selection into per-member shares.

Two modes are supported: ``equal`` divides the amount evenly, handing the
leftover cents to the first participants, and ``custom`` takes explicit
amounts that must add up to the total within one cent.
"""
from typing import Dict, List, Optional

from models import ExpenseCreate, ExpenseRecord, Participant
from settlement_optimizer import SPLIT_TOLERANCE_CENTS, from_cents, to_cents


class SplitError(ValueError):
    pass


def _check_participants(members: List[str]) -> None:
    if not members:
        raise SplitError("No participants selected")
    if len(set(members)) != len(members):
        raise SplitError("Participants must be unique")


def equal_split(amount: float, members: List[str]) -> List[Participant]:
    _check_participants(members)
    base, remainder = divmod(to_cents(amount), len(members))
    return [
        Participant(member=member, share=from_cents(base + (1 if i < remainder else 0)))
        for i, member in enumerate(members)
    ]


def custom_split(amount: float, members: List[str], splits: Optional[Dict[str, float]]) -> List[Participant]:
    _check_participants(members)
    splits = splits or {}

    extra = [member for member in splits if member not in members]
    if extra:
        raise SplitError(f"Custom split given for non-participants: {', '.join(extra)}")

    participants = []
    for member in members:
        value = splits.get(member)
        if value is None or value < 0:
            raise SplitError(f"Invalid custom split amount for {member}")
        participants.append(Participant(member=member, share=value))

    total = sum(to_cents(p.share) for p in participants)
    if abs(total - to_cents(amount)) > SPLIT_TOLERANCE_CENTS:
        raise SplitError("Custom splits must sum to total amount")
    return participants


def build_expense(expense: ExpenseCreate) -> ExpenseRecord:
    if expense.split_mode == "custom":
        participants = custom_split(expense.amount, expense.split_between, expense.custom_splits)
    else:
        participants = equal_split(expense.amount, expense.split_between)

    return ExpenseRecord(
        paid_by=expense.paid_by,
        amount=expense.amount,
        participants=participants,
        description=expense.description,
        category=expense.category or "Miscellaneous",
    )
