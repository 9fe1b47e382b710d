# src/esc_offer/api/router.py
"""Offer REST API — all endpoints require JWT authentication."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.authz import Actor, require_staff
from src.esc_common.database import get_db_session
from src.esc_common.response import ApiResponse, success_response
from src.esc_gateway.auth.dependencies import get_current_actor
from src.esc_offer.application.ledger import get_offer_ledger
from src.esc_offer.application.schemas import (
    ExpireOffersResponse,
    OfferListResponse,
    OfferResponse,
    OfferStatsResponse,
    RespondOfferRequest,
    RespondOfferResponse,
    SubmitOfferRequest,
)

router = APIRouter(prefix="/offers", tags=["offers"])


@router.post("", status_code=201)
async def submit_offer(
    body: SubmitOfferRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer = await get_offer_ledger().submit_offer(
        body.listing_id, body.amount_minor, actor, db, message=body.message
    )
    return success_response(OfferResponse.from_domain(offer).model_dump(mode="json"), request)


@router.get("")
async def list_offers(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    role: str = Query("sent", description="sent (as buyer) or received (as seller)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor"),
) -> ApiResponse:
    offers, next_cursor, has_more = await get_offer_ledger().list_offers(
        actor, role, cursor, limit, db
    )
    data = OfferListResponse(
        items=[OfferResponse.from_domain(o) for o in offers],
        next_cursor=next_cursor,
        has_more=has_more,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/expire")
async def expire_offers(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    require_staff(actor, "expiring offers")
    expired = await get_offer_ledger().sweep_expired(db, actor=actor)
    data = ExpireOffersResponse(expired_count=len(expired), offer_ids=expired)
    return success_response(data.model_dump(), request)


@router.get("/stats")
async def offer_stats(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    require_staff(actor, "viewing offer statistics")
    stats = await get_offer_ledger().expiry_stats(db)
    return success_response(OfferStatsResponse.from_domain(stats).model_dump(), request)


@router.get("/{offer_id}")
async def get_offer(
    offer_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer = await get_offer_ledger().get_offer(offer_id, actor, db)
    return success_response(OfferResponse.from_domain(offer).model_dump(mode="json"), request)


@router.post("/{offer_id}/respond")
async def respond_to_offer(
    offer_id: str,
    body: RespondOfferRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer, tx = await get_offer_ledger().respond_to_offer(
        offer_id, body.action, actor, db, counter_amount_minor=body.counter_amount_minor
    )
    data = RespondOfferResponse(
        offer=OfferResponse.from_domain(offer),
        transaction_id=tx.id if tx is not None else None,
    )
    return success_response(data.model_dump(mode="json"), request)
