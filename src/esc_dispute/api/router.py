# src/esc_dispute/api/router.py
"""Dispute REST API — parties open and discuss, staff review and resolve."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.authz import Actor
from src.esc_common.database import get_db_session
from src.esc_common.response import ApiResponse, success_response
from src.esc_dispute.application.schemas import (
    AddEvidenceRequest,
    DisputeEvidenceResponse,
    DisputeListResponse,
    DisputeMessageResponse,
    DisputeResponse,
    OpenDisputeRequest,
    PostMessageRequest,
    ResolveDisputeRequest,
    ResolveDisputeResponse,
)
from src.esc_dispute.application.service import get_dispute_engine
from src.esc_gateway.auth.dependencies import get_current_actor

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", status_code=201)
async def open_dispute(
    body: OpenDisputeRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    dispute = await get_dispute_engine().open(body.transaction_id, body.summary, actor, db)
    return success_response(DisputeResponse.from_domain(dispute).model_dump(mode="json"), request)


@router.get("")
async def list_disputes(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor"),
) -> ApiResponse:
    disputes, next_cursor, has_more = await get_dispute_engine().list_disputes(
        actor, cursor, limit, db
    )
    data = DisputeListResponse(
        items=[DisputeResponse.from_domain(d) for d in disputes],
        next_cursor=next_cursor,
        has_more=has_more,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.get("/{dispute_id}")
async def get_dispute(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    dispute = await get_dispute_engine().get_dispute(dispute_id, actor, db)
    return success_response(DisputeResponse.from_domain(dispute).model_dump(mode="json"), request)


@router.get("/{dispute_id}/messages")
async def list_messages(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    messages = await get_dispute_engine().list_messages(dispute_id, actor, db)
    data = [DisputeMessageResponse.from_domain(m).model_dump(mode="json") for m in messages]
    return success_response(data, request)


@router.post("/{dispute_id}/messages", status_code=201)
async def post_message(
    dispute_id: str,
    body: PostMessageRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    message = await get_dispute_engine().append_message(
        dispute_id, body.content, actor, db, sender_role=body.sender_role
    )
    return success_response(
        DisputeMessageResponse.from_domain(message).model_dump(mode="json"), request
    )


@router.get("/{dispute_id}/evidence")
async def list_evidence(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    evidence = await get_dispute_engine().list_evidence(dispute_id, actor, db)
    data = [DisputeEvidenceResponse.from_domain(e).model_dump(mode="json") for e in evidence]
    return success_response(data, request)


@router.post("/{dispute_id}/evidence", status_code=201)
async def add_evidence(
    dispute_id: str,
    body: AddEvidenceRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    evidence = await get_dispute_engine().add_evidence(
        dispute_id, body.url, actor, db,
        evidence_type=body.type, description=body.description, mime_type=body.mime_type,
    )
    return success_response(
        DisputeEvidenceResponse.from_domain(evidence).model_dump(mode="json"), request
    )


@router.post("/{dispute_id}/review")
async def review_dispute(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    dispute = await get_dispute_engine().advance(dispute_id, actor, db)
    return success_response(DisputeResponse.from_domain(dispute).model_dump(mode="json"), request)


@router.post("/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    dispute, tx = await get_dispute_engine().resolve(
        dispute_id, body.outcome, body.resolution, actor, db,
        split_seller_bps=body.split_seller_bps,
    )
    data = ResolveDisputeResponse(
        dispute=DisputeResponse.from_domain(dispute),
        transaction_id=tx.id,
        transaction_status=tx.status.value,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{dispute_id}/close")
async def close_dispute(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    dispute = await get_dispute_engine().close(dispute_id, actor, db)
    return success_response(DisputeResponse.from_domain(dispute).model_dump(mode="json"), request)
