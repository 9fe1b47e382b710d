# src/esc_dispute/infrastructure/persistence.py
"""DisputeRepository — raw SQL persistence implementation."""
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.enums import DisputeOutcome, DisputeStatus, EvidenceType, PartyRole
from src.esc_common.errors import ActiveDisputeExistsError
from src.esc_dispute.domain.models import Dispute, DisputeEvidence, DisputeMessage

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_DISPUTE_COLUMNS = """
    id, transaction_id, raised_by_id, summary, status, resolution, outcome,
    split_seller_bps, resolved_by_id, created_at, updated_at, resolved_at, closed_at
"""

_INSERT_DISPUTE_SQL = text("""
    INSERT INTO disputes (id, transaction_id, raised_by_id, summary, status,
        created_at, updated_at)
    VALUES (:id, :transaction_id, :raised_by_id, :summary, :status,
        :created_at, :updated_at)
""")

_UPDATE_DISPUTE_SQL = text("""
    UPDATE disputes
    SET status = :status, resolution = :resolution, outcome = :outcome,
        split_seller_bps = :split_seller_bps, resolved_by_id = :resolved_by_id,
        resolved_at = :resolved_at, closed_at = :closed_at, updated_at = :updated_at
    WHERE id = :id
""")

_GET_DISPUTE_SQL = text(f"SELECT {_DISPUTE_COLUMNS} FROM disputes WHERE id = :id")

_GET_DISPUTE_FOR_UPDATE_SQL = text(
    f"SELECT {_DISPUTE_COLUMNS} FROM disputes WHERE id = :id FOR UPDATE"
)

_GET_ACTIVE_BY_TX_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS}
    FROM disputes
    WHERE transaction_id = :transaction_id AND status IN ('OPEN', 'UNDER_REVIEW')
""")

_LIST_FOR_USER_SQL = text("""
    SELECT d.id, d.transaction_id, d.raised_by_id, d.summary, d.status, d.resolution,
        d.outcome, d.split_seller_bps, d.resolved_by_id, d.created_at, d.updated_at,
        d.resolved_at, d.closed_at
    FROM disputes d
    JOIN transactions t ON t.id = d.transaction_id
    WHERE (CAST(:include_all AS BOOLEAN) OR t.buyer_id = :user_id OR t.seller_id = :user_id)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR d.id < :cursor_id)
    ORDER BY d.id DESC
    LIMIT :limit
""")

_NEXT_SEQ_SQL = text("""
    SELECT COALESCE(MAX(seq), 0) + 1 AS next_seq
    FROM dispute_messages
    WHERE dispute_id = :dispute_id
""")

_INSERT_MESSAGE_SQL = text("""
    INSERT INTO dispute_messages (id, dispute_id, seq, sender_id, sender_role, content,
        created_at)
    VALUES (:id, :dispute_id, :seq, :sender_id, :sender_role, :content, :created_at)
""")

_LIST_MESSAGES_SQL = text("""
    SELECT id, dispute_id, seq, sender_id, sender_role, content, created_at
    FROM dispute_messages
    WHERE dispute_id = :dispute_id
    ORDER BY seq
""")

_INSERT_EVIDENCE_SQL = text("""
    INSERT INTO dispute_evidence (id, dispute_id, uploaded_by_id, uploader_role, type,
        url, description, mime_type, created_at)
    VALUES (:id, :dispute_id, :uploaded_by_id, :uploader_role, :type,
        :url, :description, :mime_type, :created_at)
""")

_LIST_EVIDENCE_SQL = text("""
    SELECT id, dispute_id, uploaded_by_id, uploader_role, type, url, description,
        mime_type, created_at
    FROM dispute_evidence
    WHERE dispute_id = :dispute_id
    ORDER BY id DESC
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_dispute(row: Any) -> Dispute:
    return Dispute(
        id=row.id,
        transaction_id=row.transaction_id,
        raised_by_id=row.raised_by_id,
        summary=row.summary,
        status=DisputeStatus(row.status),
        resolution=row.resolution,
        outcome=DisputeOutcome(row.outcome) if row.outcome else None,
        split_seller_bps=row.split_seller_bps,
        resolved_by_id=row.resolved_by_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        resolved_at=row.resolved_at,
        closed_at=row.closed_at,
    )


def _row_to_message(row: Any) -> DisputeMessage:
    return DisputeMessage(
        id=row.id,
        dispute_id=row.dispute_id,
        seq=row.seq,
        sender_id=row.sender_id,
        sender_role=PartyRole(row.sender_role),
        content=row.content,
        created_at=row.created_at,
    )


def _row_to_evidence(row: Any) -> DisputeEvidence:
    return DisputeEvidence(
        id=row.id,
        dispute_id=row.dispute_id,
        uploaded_by_id=row.uploaded_by_id,
        uploader_role=PartyRole(row.uploader_role),
        evidence_type=EvidenceType(row.type),
        url=row.url,
        description=row.description,
        mime_type=row.mime_type,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DisputeRepository:
    """Concrete implementation of DisputeRepositoryProtocol using raw SQL."""

    async def insert(self, dispute: Dispute, db: AsyncSession) -> None:
        params = {
            "id": dispute.id,
            "transaction_id": dispute.transaction_id,
            "raised_by_id": dispute.raised_by_id,
            "summary": dispute.summary,
            "status": dispute.status.value,
            "created_at": dispute.created_at,
            "updated_at": dispute.updated_at,
        }
        try:
            async with db.begin_nested():
                await db.execute(_INSERT_DISPUTE_SQL, params)
        except IntegrityError as exc:
            raise ActiveDisputeExistsError(dispute.transaction_id) from exc

    async def get_by_id(self, dispute_id: str, db: AsyncSession) -> Dispute | None:
        row = (await db.execute(_GET_DISPUTE_SQL, {"id": dispute_id})).fetchone()
        return _row_to_dispute(row) if row else None

    async def get_for_update(self, dispute_id: str, db: AsyncSession) -> Dispute | None:
        row = (await db.execute(_GET_DISPUTE_FOR_UPDATE_SQL, {"id": dispute_id})).fetchone()
        return _row_to_dispute(row) if row else None

    async def get_active_by_transaction(
        self, transaction_id: str, db: AsyncSession
    ) -> Dispute | None:
        row = (
            await db.execute(_GET_ACTIVE_BY_TX_SQL, {"transaction_id": transaction_id})
        ).fetchone()
        return _row_to_dispute(row) if row else None

    async def update(self, dispute: Dispute, db: AsyncSession) -> None:
        await db.execute(
            _UPDATE_DISPUTE_SQL,
            {
                "id": dispute.id,
                "status": dispute.status.value,
                "resolution": dispute.resolution,
                "outcome": dispute.outcome.value if dispute.outcome else None,
                "split_seller_bps": dispute.split_seller_bps,
                "resolved_by_id": dispute.resolved_by_id,
                "resolved_at": dispute.resolved_at,
                "closed_at": dispute.closed_at,
                "updated_at": dispute.updated_at,
            },
        )

    async def list_for_user(
        self,
        user_id: str,
        include_all: bool,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Dispute]:
        result = await db.execute(
            _LIST_FOR_USER_SQL,
            {
                "user_id": user_id,
                "include_all": include_all,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_dispute(row) for row in result.fetchall()]

    async def next_message_seq(self, dispute_id: str, db: AsyncSession) -> int:
        row = (await db.execute(_NEXT_SEQ_SQL, {"dispute_id": dispute_id})).fetchone()
        return int(row.next_seq)

    async def insert_message(self, message: DisputeMessage, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_MESSAGE_SQL,
            {
                "id": message.id,
                "dispute_id": message.dispute_id,
                "seq": message.seq,
                "sender_id": message.sender_id,
                "sender_role": message.sender_role.value,
                "content": message.content,
                "created_at": message.created_at,
            },
        )

    async def list_messages(
        self, dispute_id: str, db: AsyncSession
    ) -> list[DisputeMessage]:
        result = await db.execute(_LIST_MESSAGES_SQL, {"dispute_id": dispute_id})
        return [_row_to_message(row) for row in result.fetchall()]

    async def insert_evidence(self, evidence: DisputeEvidence, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_EVIDENCE_SQL,
            {
                "id": evidence.id,
                "dispute_id": evidence.dispute_id,
                "uploaded_by_id": evidence.uploaded_by_id,
                "uploader_role": evidence.uploader_role.value,
                "type": evidence.evidence_type.value,
                "url": evidence.url,
                "description": evidence.description,
                "mime_type": evidence.mime_type,
                "created_at": evidence.created_at,
            },
        )

    async def list_evidence(
        self, dispute_id: str, db: AsyncSession
    ) -> list[DisputeEvidence]:
        result = await db.execute(_LIST_EVIDENCE_SQL, {"dispute_id": dispute_id})
        return [_row_to_evidence(row) for row in result.fetchall()]
