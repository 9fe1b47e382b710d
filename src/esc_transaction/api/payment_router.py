# src/esc_transaction/api/payment_router.py
"""Payment gateway callbacks — authenticated by the `verif-hash` header, not JWT.

Gateways deliver at least once; replays with a known provider_ref return
success without re-applying the transition.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.authz import Actor
from src.esc_common.database import get_db_session
from src.esc_common.response import ApiResponse, success_response
from src.esc_gateway.auth.dependencies import require_gateway_signature
from src.esc_transaction.application.engine import get_transaction_engine
from src.esc_transaction.application.schemas import (
    PaymentEventRequest,
    PaymentFailedRequest,
    PaymentResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/payments/webhook", tags=["payments"])


@router.post("/funding")
async def funding_webhook(
    body: PaymentEventRequest,
    gateway: Annotated[Actor, Depends(require_gateway_signature)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().report_funding(
        body.transaction_id, body.provider_ref, body.amount_minor, db, actor=gateway
    )
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)


@router.post("/payout")
async def payout_webhook(
    body: PaymentEventRequest,
    gateway: Annotated[Actor, Depends(require_gateway_signature)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().report_payout(
        body.transaction_id, body.provider_ref, body.amount_minor, db, actor=gateway
    )
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)


@router.post("/refund")
async def refund_webhook(
    body: PaymentEventRequest,
    gateway: Annotated[Actor, Depends(require_gateway_signature)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    tx = await get_transaction_engine().report_refund(
        body.transaction_id, body.provider_ref, body.amount_minor, db, actor=gateway
    )
    return success_response(TransactionResponse.from_domain(tx).model_dump(mode="json"), request)


@router.post("/failed")
async def failed_webhook(
    body: PaymentFailedRequest,
    gateway: Annotated[Actor, Depends(require_gateway_signature)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    payment = await get_transaction_engine().report_payment_failed(
        body.transaction_id, body.direction, body.provider_ref, body.amount_minor,
        db, actor=gateway,
    )
    return success_response(PaymentResponse.from_domain(payment).model_dump(mode="json"), request)
