from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Union

from errors import InvalidMembersError

Member = str
BalanceMap = Dict[Member, float]


def validate_members(members: Iterable[str]) -> List[str]:
    members = list(members)
    if not members:
        raise InvalidMembersError("At least one member is required")
    if len(set(members)) != len(members):
        raise InvalidMembersError(f"Duplicate members in {members}")
    return members


# ===== LEDGER RECORDS =====
class Participant(BaseModel):
    member: Member
    share: float = Field(..., ge=0)


class ExpenseRecord(BaseModel):
    type: Literal["expense"] = "expense"
    paid_by: Member
    amount: float = Field(..., ge=0)
    participants: List[Participant]
    description: str = ""
    category: Optional[str] = None


class SettlementRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["settlement"] = "settlement"
    payer: Member = Field(..., alias="from")
    payee: Member = Field(..., alias="to")
    amount: float = Field(..., ge=0)


LedgerRecord = Annotated[Union[ExpenseRecord, SettlementRecord], Field(discriminator="type")]


class Debt(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    debtor: Member = Field(..., alias="from")
    creditor: Member = Field(..., alias="to")
    amount: float = Field(..., gt=0)


def record_from_document(doc: dict):
    """Build a ledger record from a stored transaction document.

    Settlements carry ``type: "settlement"`` with ``from``/``to``; anything
    else is an expense with ``paidBy`` and ``participants: [{uid, amount}]``.
    Expense documents without a participants list are not part of the
    ledger and give None.
    """
    if doc.get("type") == "settlement":
        return SettlementRecord(payer=doc["from"], payee=doc["to"], amount=doc["amount"])
    if not isinstance(doc.get("participants"), list):
        return None
    return ExpenseRecord(
        paid_by=doc["paidBy"],
        amount=doc["amount"],
        participants=[
            Participant(member=p["uid"], share=p["amount"]) for p in doc["participants"]
        ],
        description=doc.get("description", ""),
        category=doc.get("category"),
    )


def record_to_document(record) -> dict:
    """Inverse of record_from_document."""
    if isinstance(record, SettlementRecord):
        return {
            "type": "settlement",
            "from": record.payer,
            "to": record.payee,
            "amount": record.amount,
        }
    return {
        "paidBy": record.paid_by,
        "amount": record.amount,
        "participants": [{"uid": p.member, "amount": p.share} for p in record.participants],
        "description": record.description,
        "category": record.category,
    }


# ===== API MODELS =====
class GroupCreate(BaseModel):
    name: str = Field(..., description="Name of the group")
    member_ids: List[Member] = Field(..., description="Unique member identifiers")

    @field_validator("member_ids")
    @classmethod
    def members_unique(cls, value):
        return validate_members(value)


class GroupResponse(BaseModel):
    id: str
    name: str
    members: List[Member]
    created_at: str


class ExpenseCreate(BaseModel):
    description: str = Field("", description="Description of the expense")
    amount: float = Field(..., gt=0, description="Amount of the expense")
    paid_by: Member = Field(..., description="Member who paid the expense")
    split_between: List[Member] = Field(..., description="Members sharing the expense")
    split_mode: Literal["equal", "custom"] = "equal"
    custom_splits: Optional[Dict[Member, float]] = Field(
        None, description="Share per member when split_mode is 'custom'"
    )
    category: Optional[str] = Field(None, description="Category of the expense")


class SettlementCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payer: Member = Field(..., alias="from")
    payee: Member = Field(..., alias="to")
    amount: float = Field(..., gt=0)


class BalancesResponse(BaseModel):
    group_id: str
    balances: BalanceMap


class SettlementResult(BaseModel):
    group_id: str
    balances: BalanceMap
    optimal_settlements: List[Debt]


class MemberSummary(BaseModel):
    member: Member
    you_owe: List[Debt]
    owes_you: List[Debt]
    total_you_owe: float
    total_owed_to_you: float
    net_balance: float


class SpendingResponse(BaseModel):
    group_id: str
    spending_by_category: Dict[str, float]
    total_spent: float


class TransactionResponse(BaseModel):
    id: str
    group_id: str
    record: LedgerRecord
    created_at: str
