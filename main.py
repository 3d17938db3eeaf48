from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, List
from datetime import datetime
import logging

from config import Settings, get_settings
from models import (
    BalancesResponse,
    Debt,
    ExpenseCreate,
    ExpenseRecord,
    GroupCreate,
    GroupResponse,
    MemberSummary,
    SettlementCreate,
    SettlementRecord,
    SettlementResult,
    SpendingResponse,
    TransactionResponse,
    record_from_document,
    record_to_document,
)
from errors import SettlementError
from settlement_optimizer import SettlementOptimizer, from_cents, to_cents
from splits import SplitError, build_expense

# Configure logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Settle Up API",
    description="Group expense ledger with balance and settle-up computation",
    version="1.0.0"
)

# CORS middleware to allow frontend connections
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mock document store (in production, use a real database)
groups_db = {}
transactions_db = {}


# ===== HELPERS =====
def _get_group(group_id: str) -> dict:
    if group_id not in groups_db:
        raise HTTPException(status_code=404, detail="Group not found")
    return groups_db[group_id]


def _require_members(group: dict, member_ids: List[str]):
    for member_id in member_ids:
        if member_id not in group["members"]:
            raise HTTPException(status_code=400, detail=f"Member {member_id} is not in group {group['id']}")


def _group_documents(group_id: str) -> List[dict]:
    return [txn for txn in transactions_db.values() if txn["groupId"] == group_id]


def _append_record(group_id: str, record) -> dict:
    txn_id = str(len(transactions_db) + 1)
    transactions_db[txn_id] = {
        "id": txn_id,
        "groupId": group_id,
        **record_to_document(record),
        "createdAt": datetime.now().isoformat(),
    }
    logger.info(f"Recorded {record.type} {txn_id} in group {group_id}")
    return _to_response(transactions_db[txn_id])


def _to_response(doc: dict) -> dict:
    return {
        "id": doc["id"],
        "group_id": doc["groupId"],
        "record": record_from_document(doc),
        "created_at": doc["createdAt"],
    }


def _optimize(group: dict, settings: Settings) -> dict:
    try:
        return SettlementOptimizer.optimize_settlements(
            group["members"], _group_documents(group["id"]), strict=settings.strict_members
        )
    except SettlementError as e:
        logger.error(f"Error settling group {group['id']}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error computing settlements: {str(e)}")


# ===== API ENDPOINTS =====
@app.get("/")
async def root():
    return {"message": "Settle Up API"}


@app.post("/groups/", response_model=GroupResponse)
async def create_group(group: GroupCreate):
    """Create a new group"""
    group_id = str(len(groups_db) + 1)
    groups_db[group_id] = {
        "id": group_id,
        "name": group.name,
        "members": group.member_ids,
        "created_at": datetime.now().isoformat()
    }
    logger.info(f"Created group {group_id} with {len(group.member_ids)} members")
    return groups_db[group_id]


@app.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(group_id: str):
    """Get group details"""
    return _get_group(group_id)


@app.get("/groups/", response_model=Dict[str, GroupResponse])
async def list_groups():
    """List all groups"""
    return groups_db


@app.post("/groups/{group_id}/expenses", response_model=TransactionResponse)
async def add_expense(group_id: str, expense: ExpenseCreate):
    """Log a shared expense split equally or by custom amounts"""
    group = _get_group(group_id)
    _require_members(group, [expense.paid_by, *expense.split_between])

    try:
        record = build_expense(expense)
    except SplitError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _append_record(group_id, record)


@app.post("/groups/{group_id}/settlements", response_model=TransactionResponse)
async def add_settlement(group_id: str, settlement: SettlementCreate):
    """Record a direct payment between two members"""
    group = _get_group(group_id)
    _require_members(group, [settlement.payer, settlement.payee])
    if settlement.payer == settlement.payee:
        raise HTTPException(status_code=400, detail="A member cannot pay themselves")

    record = SettlementRecord(payer=settlement.payer, payee=settlement.payee, amount=settlement.amount)
    return _append_record(group_id, record)


@app.post("/groups/{group_id}/settle", response_model=TransactionResponse)
async def settle_debt(group_id: str, debt: Debt):
    """Confirm a suggested debt by recording it as a settlement"""
    group = _get_group(group_id)
    _require_members(group, [debt.debtor, debt.creditor])

    record = SettlementRecord(payer=debt.debtor, payee=debt.creditor, amount=debt.amount)
    return _append_record(group_id, record)


@app.get("/groups/{group_id}/transactions", response_model=List[TransactionResponse])
async def list_transactions(group_id: str):
    """List the group's ledger in the order it was recorded"""
    _get_group(group_id)
    responses = [_to_response(doc) for doc in _group_documents(group_id)]
    return [r for r in responses if r["record"] is not None]


@app.get("/groups/{group_id}/balances", response_model=BalancesResponse)
async def get_balances(group_id: str, settings: Settings = Depends(get_settings)):
    """Net balance per member; positive means the group owes them"""
    group = _get_group(group_id)
    try:
        balances = SettlementOptimizer.compute_balances(
            group["members"], _group_documents(group_id), strict=settings.strict_members
        )
    except SettlementError as e:
        logger.error(f"Error computing balances for group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error computing balances: {str(e)}")

    return {"group_id": group_id, "balances": balances}


@app.get("/groups/{group_id}/settlements", response_model=SettlementResult)
async def calculate_settlements(group_id: str, settings: Settings = Depends(get_settings)):
    """Calculate optimal settlements for a group"""
    group = _get_group(group_id)
    settlement_data = _optimize(group, settings)

    return {
        "group_id": group_id,
        **settlement_data
    }


@app.get("/groups/{group_id}/members/{member_id}/summary", response_model=MemberSummary)
async def get_member_summary(group_id: str, member_id: str, settings: Settings = Depends(get_settings)):
    """What a member owes and is owed after settling up"""
    group = _get_group(group_id)
    if member_id not in group["members"]:
        raise HTTPException(status_code=404, detail="Member not found")

    settlement_data = _optimize(group, settings)
    return SettlementOptimizer.summarize_member(
        member_id, settlement_data["balances"], settlement_data["optimal_settlements"]
    )


@app.get("/groups/{group_id}/spending", response_model=SpendingResponse)
async def get_group_spending(group_id: str):
    """Get spending breakdown by category for a specific group"""
    _get_group(group_id)

    spending_cents = {}
    for doc in _group_documents(group_id):
        record = record_from_document(doc)
        if not isinstance(record, ExpenseRecord):
            continue
        category = record.category or "Miscellaneous"
        spending_cents[category] = spending_cents.get(category, 0) + to_cents(record.amount)

    return {
        "group_id": group_id,
        "spending_by_category": {k: from_cents(v) for k, v in spending_cents.items()},
        "total_spent": from_cents(sum(spending_cents.values()))
    }


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
