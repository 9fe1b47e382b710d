# src/esc_transaction/api/router.py
"""Transaction REST API — all endpoints require JWT authentication."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.authz import Actor, require_staff
from src.esc_common.database import get_db_session
from src.esc_common.response import ApiResponse, success_response
from src.esc_gateway.auth.dependencies import get_current_actor
from src.esc_transaction.application.engine import get_transaction_engine
from src.esc_transaction.application.schemas import (
    EscrowRequestedResponse,
    PaymentResponse,
    SweepResponse,
    TransactionListResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("")
async def list_transactions(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    role: str | None = Query(None, description="buyer or seller; both when omitted"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor"),
) -> ApiResponse:
    txs, next_cursor, has_more = await get_transaction_engine().list_transactions(
        actor, role, cursor, limit, db
    )
    data = TransactionListResponse(
        items=[TransactionResponse.from_domain(tx) for tx in txs],
        next_cursor=next_cursor,
        has_more=has_more,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/sweep")
async def sweep_verification(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    require_staff(actor, "running the verification sweep")
    result = await get_transaction_engine().sweep_verification_deadlines(db)
    return success_response(SweepResponse.from_domain(result).model_dump(), request)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().get_transaction(transaction_id, actor, db)
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)


@router.get("/{transaction_id}/payments")
async def list_payments(
    transaction_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    payments = await get_transaction_engine().list_payments(transaction_id, actor, db)
    data = [PaymentResponse.from_domain(p).model_dump(mode="json") for p in payments]
    return success_response(data, request)


@router.post("/{transaction_id}/escrow")
async def request_escrow(
    transaction_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx, payment = await get_transaction_engine().request_escrow(transaction_id, actor, db)
    data = EscrowRequestedResponse(
        transaction=TransactionResponse.from_domain(tx),
        payment=PaymentResponse.from_domain(payment),
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{transaction_id}/verification")
async def start_verification(
    transaction_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().start_verification(transaction_id, actor, db)
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)


@router.post("/{transaction_id}/close")
async def close_transaction(
    transaction_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().close(transaction_id, actor, db)
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)
