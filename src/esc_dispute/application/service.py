# src/esc_dispute/application/service.py
"""DisputeEngine — dispute lifecycle and message thread.

All mutations run under the owning transaction's lock (shared with
TransactionEngine), so opening or resolving a dispute and the matching
transaction transition commit together or not at all. Row locks are always
taken transaction first, then dispute.
"""
import logging
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_audit.domain.models import AuditEvent
from src.esc_audit.domain.repository import AuditRepositoryProtocol
from src.esc_audit.infrastructure.persistence import AuditRepository
from src.esc_common.authz import Actor, party_roles, require_party, require_staff
from src.esc_common.datetime_utils import Clock, utc_now
from src.esc_common.enums import (
    DisputeOutcome,
    DisputeStatus,
    EvidenceType,
    NotificationEvent,
    PartyRole,
    TransactionStatus,
)
from src.esc_common.errors import (
    ActiveDisputeExistsError,
    AuthorizationError,
    DisputeNotAllowedError,
    DisputeNotFoundError,
    InvalidStateError,
    ValidationError,
)
from src.esc_common.id_generator import generate_id
from src.esc_common.money import BPS_DENOMINATOR, split_by_bps
from src.esc_common.pagination import cursor_decode, paginate
from src.esc_dispute.domain.models import (
    ACTIVE_STATUSES,
    OUTCOME_STATUS,
    RESOLVED_STATUSES,
    Dispute,
    DisputeEvidence,
    DisputeMessage,
)
from src.esc_dispute.domain.repository import DisputeRepositoryProtocol
from src.esc_dispute.infrastructure.persistence import DisputeRepository
from src.esc_notify.dispatcher import (
    NotificationDispatcherProtocol,
    get_dispatcher,
    notify,
)
from src.esc_transaction.application.engine import TransactionEngine, get_transaction_engine
from src.esc_transaction.domain.models import Transaction

logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 2000
MAX_MESSAGE_LENGTH = 2000
MIN_RESOLUTION_LENGTH = 10
MAX_EVIDENCE_URL_LENGTH = 2048
MAX_EVIDENCE_DESCRIPTION_LENGTH = 500
MAX_MIME_TYPE_LENGTH = 100

_DISPUTABLE = frozenset({TransactionStatus.FUNDED, TransactionStatus.VERIFICATION_PERIOD})
_RAISERS = frozenset({PartyRole.BUYER, PartyRole.SELLER})
_PARTIES = frozenset({PartyRole.BUYER, PartyRole.SELLER, PartyRole.ADMIN})


def _validate_resolution(
    outcome: DisputeOutcome, resolution_text: str, split_seller_bps: int | None
) -> None:
    if len(resolution_text.strip()) < MIN_RESOLUTION_LENGTH:
        raise ValidationError(
            f"resolution text must be at least {MIN_RESOLUTION_LENGTH} characters"
        )
    if outcome == DisputeOutcome.SPLIT:
        if split_seller_bps is None or not (0 < split_seller_bps < BPS_DENOMINATOR):
            raise ValidationError(
                f"SPLIT requires split_seller_bps between 1 and {BPS_DENOMINATOR - 1}"
            )
    elif split_seller_bps is not None:
        raise ValidationError(f"split_seller_bps is only valid for SPLIT, not {outcome.value}")


def _validate_evidence(url: str, description: str | None, mime_type: str | None) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("evidence url must be an absolute http(s) URL")
    if len(url) > MAX_EVIDENCE_URL_LENGTH:
        raise ValidationError(f"evidence url exceeds {MAX_EVIDENCE_URL_LENGTH} characters")
    if description is not None and len(description) > MAX_EVIDENCE_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"evidence description exceeds {MAX_EVIDENCE_DESCRIPTION_LENGTH} characters"
        )
    if mime_type is not None and len(mime_type) > MAX_MIME_TYPE_LENGTH:
        raise ValidationError(f"mime type exceeds {MAX_MIME_TYPE_LENGTH} characters")


def payout_amounts(
    tx: Transaction, outcome: DisputeOutcome, split_seller_bps: int | None
) -> tuple[int, int]:
    """(seller_amount, buyer_amount) implied by a resolution outcome."""
    if outcome == DisputeOutcome.SELLER:
        return tx.agreed_price_minor, 0
    if outcome == DisputeOutcome.BUYER:
        return 0, tx.agreed_price_minor
    return split_by_bps(tx.agreed_price_minor, split_seller_bps or 0)


class DisputeEngine:
    def __init__(
        self,
        repo: DisputeRepositoryProtocol | None = None,
        transactions: TransactionEngine | None = None,
        audit: AuditRepositoryProtocol | None = None,
        dispatcher: NotificationDispatcherProtocol | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repo or DisputeRepository()
        self._transactions = transactions or get_transaction_engine()
        self._audit = audit or AuditRepository()
        self._dispatcher = dispatcher or get_dispatcher()
        self._clock = clock

    async def open(
        self, transaction_id: str, summary: str, actor: Actor, db: AsyncSession
    ) -> Dispute:
        """Buyer or seller raises a dispute; the transaction moves to DISPUTED."""
        summary = summary.strip()
        if not summary:
            raise ValidationError("summary is required")
        if len(summary) > MAX_SUMMARY_LENGTH:
            raise ValidationError(f"summary exceeds {MAX_SUMMARY_LENGTH} characters")

        async with self._transactions.lock_for(transaction_id):
            try:
                tx = await self._transactions.load_for_update(transaction_id, db)
                require_party(actor, _RAISERS, tx.buyer_id, tx.seller_id, "opening a dispute")
                if await self._repo.get_active_by_transaction(tx.id, db) is not None:
                    raise ActiveDisputeExistsError(tx.id)
                if tx.status not in _DISPUTABLE:
                    raise DisputeNotAllowedError(tx.id, tx.status.value)

                now = self._clock()
                dispute = Dispute(
                    id=generate_id(),
                    transaction_id=tx.id,
                    raised_by_id=actor.id,
                    summary=summary,
                    status=DisputeStatus.OPEN,
                    created_at=now,
                    updated_at=now,
                )
                await self._repo.insert(dispute, db)
                await self._transactions.apply_dispute_opened(tx, dispute.id, actor, db)
                await self._append_audit(dispute, actor, "CREATE", {"to": dispute.status.value}, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Dispute %s opened on transaction %s by %s", dispute.id, tx.id, actor.id)
        await notify(
            self._dispatcher,
            NotificationEvent.DISPUTE_OPENED,
            {
                "dispute_id": dispute.id,
                "transaction_id": tx.id,
                "raised_by_id": actor.id,
                "buyer_id": tx.buyer_id,
                "seller_id": tx.seller_id,
                "amount_minor": tx.agreed_price_minor,
            },
        )
        return dispute

    async def append_message(
        self,
        dispute_id: str,
        content: str,
        actor: Actor,
        db: AsyncSession,
        sender_role: PartyRole | None = None,
    ) -> DisputeMessage:
        """Append to the thread; allowed until the dispute is CLOSED.

        A claimed sender_role must be one the caller actually holds.
        """
        content = content.strip()
        if not content:
            raise ValidationError("message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"message exceeds {MAX_MESSAGE_LENGTH} characters")

        existing = await self._get(dispute_id, db)
        async with self._transactions.lock_for(existing.transaction_id):
            try:
                tx = await self._transactions.load_for_update(existing.transaction_id, db)
                dispute = await self._load_for_update(dispute_id, db)
                role = require_party(
                    actor, _PARTIES, tx.buyer_id, tx.seller_id, "posting a dispute message"
                )
                if sender_role is not None:
                    if sender_role not in party_roles(actor, tx.buyer_id, tx.seller_id):
                        raise AuthorizationError(
                            f"caller cannot post as {sender_role.value}"
                        )
                    role = sender_role
                if dispute.status == DisputeStatus.CLOSED:
                    raise InvalidStateError(
                        "dispute", dispute.id, "post a message to", dispute.status.value
                    )

                message = DisputeMessage(
                    id=generate_id(),
                    dispute_id=dispute.id,
                    seq=await self._repo.next_message_seq(dispute.id, db),
                    sender_id=actor.id,
                    sender_role=role,
                    content=content,
                    created_at=self._clock(),
                )
                await self._repo.insert_message(message, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return message

    async def add_evidence(
        self,
        dispute_id: str,
        url: str,
        actor: Actor,
        db: AsyncSession,
        evidence_type: EvidenceType = EvidenceType.OTHER,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> DisputeEvidence:
        """Attach a link to an uploaded file while the dispute is OPEN or UNDER_REVIEW."""
        url = url.strip()
        if description is not None:
            description = description.strip() or None
        _validate_evidence(url, description, mime_type)

        existing = await self._get(dispute_id, db)
        async with self._transactions.lock_for(existing.transaction_id):
            try:
                tx = await self._transactions.load_for_update(existing.transaction_id, db)
                dispute = await self._load_for_update(dispute_id, db)
                role = require_party(
                    actor, _PARTIES, tx.buyer_id, tx.seller_id, "adding dispute evidence"
                )
                if dispute.status not in ACTIVE_STATUSES:
                    raise InvalidStateError(
                        "dispute", dispute.id, "add evidence to", dispute.status.value
                    )

                evidence = DisputeEvidence(
                    id=generate_id(),
                    dispute_id=dispute.id,
                    uploaded_by_id=actor.id,
                    uploader_role=role,
                    url=url,
                    evidence_type=evidence_type,
                    description=description,
                    mime_type=mime_type,
                    created_at=self._clock(),
                )
                await self._repo.insert_evidence(evidence, db)
                await self._append_audit(
                    dispute,
                    actor,
                    "UPLOAD_EVIDENCE",
                    {
                        "evidence_id": evidence.id,
                        "type": evidence_type.value,
                        "description": description,
                    },
                    db,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info(
            "Evidence %s (%s) added to dispute %s by %s",
            evidence.id, evidence_type.value, dispute.id, actor.id,
        )
        return evidence

    async def advance(
        self,
        dispute_id: str,
        actor: Actor,
        db: AsyncSession,
        new_status: DisputeStatus = DisputeStatus.UNDER_REVIEW,
    ) -> Dispute:
        """OPEN -> UNDER_REVIEW (staff only)."""
        require_staff(actor, "reviewing a dispute")
        if new_status != DisputeStatus.UNDER_REVIEW:
            raise ValidationError(f"disputes can only be advanced to UNDER_REVIEW, not {new_status.value}")

        existing = await self._get(dispute_id, db)
        async with self._transactions.lock_for(existing.transaction_id):
            try:
                dispute = await self._load_for_update(dispute_id, db)
                if dispute.status != DisputeStatus.OPEN:
                    raise InvalidStateError("dispute", dispute.id, "review", dispute.status.value)
                await self._set_status(dispute, new_status, actor, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("Dispute %s under review by %s", dispute.id, actor.id)
        return dispute

    async def resolve(
        self,
        dispute_id: str,
        outcome: DisputeOutcome,
        resolution_text: str,
        actor: Actor,
        db: AsyncSession,
        split_seller_bps: int | None = None,
    ) -> tuple[Dispute, Transaction]:
        """Resolve an active dispute and move its transaction in the same commit."""
        require_staff(actor, "resolving a dispute")
        _validate_resolution(outcome, resolution_text, split_seller_bps)

        existing = await self._get(dispute_id, db)
        async with self._transactions.lock_for(existing.transaction_id):
            try:
                tx = await self._transactions.load_for_update(existing.transaction_id, db)
                dispute = await self._load_for_update(dispute_id, db)
                if dispute.status not in ACTIVE_STATUSES:
                    raise InvalidStateError("dispute", dispute.id, "resolve", dispute.status.value)

                now = self._clock()
                dispute.resolution = resolution_text.strip()
                dispute.outcome = outcome
                dispute.split_seller_bps = split_seller_bps
                dispute.resolved_by_id = actor.id
                dispute.resolved_at = now
                await self._set_status(dispute, OUTCOME_STATUS[outcome], actor, db)
                await self._transactions.apply_dispute_resolved(
                    tx, outcome, split_seller_bps, actor, db
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        seller_amount, buyer_amount = payout_amounts(tx, outcome, split_seller_bps)
        logger.info(
            "Dispute %s resolved %s by %s: transaction %s -> %s",
            dispute.id, outcome.value, actor.id, tx.id, tx.status.value,
        )
        await notify(
            self._dispatcher,
            NotificationEvent.DISPUTE_RESOLVED,
            {
                "dispute_id": dispute.id,
                "transaction_id": tx.id,
                "outcome": outcome.value,
                "buyer_id": tx.buyer_id,
                "seller_id": tx.seller_id,
                "seller_amount_minor": seller_amount,
                "buyer_amount_minor": buyer_amount,
            },
        )
        return dispute, tx

    async def close(self, dispute_id: str, actor: Actor, db: AsyncSession) -> Dispute:
        """RESOLVED_* -> CLOSED (staff only). The thread becomes read-only."""
        require_staff(actor, "closing a dispute")
        existing = await self._get(dispute_id, db)
        async with self._transactions.lock_for(existing.transaction_id):
            try:
                dispute = await self._load_for_update(dispute_id, db)
                if dispute.status not in RESOLVED_STATUSES:
                    raise InvalidStateError("dispute", dispute.id, "close", dispute.status.value)
                dispute.closed_at = self._clock()
                await self._set_status(dispute, DisputeStatus.CLOSED, actor, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("Dispute %s closed by %s", dispute.id, actor.id)
        return dispute

    async def get_dispute(self, dispute_id: str, actor: Actor, db: AsyncSession) -> Dispute:
        dispute = await self._get(dispute_id, db)
        tx = await self._transactions.fetch(dispute.transaction_id, db)
        require_party(actor, _PARTIES, tx.buyer_id, tx.seller_id, "viewing a dispute")
        return dispute

    async def list_disputes(
        self, actor: Actor, cursor: str | None, limit: int, db: AsyncSession
    ) -> tuple[list[Dispute], str | None, bool]:
        rows = await self._repo.list_for_user(
            actor.id, actor.is_staff, cursor_decode(cursor), limit + 1, db
        )
        return paginate(rows, limit)

    async def list_messages(
        self, dispute_id: str, actor: Actor, db: AsyncSession
    ) -> list[DisputeMessage]:
        dispute = await self.get_dispute(dispute_id, actor, db)
        return await self._repo.list_messages(dispute.id, db)

    async def list_evidence(
        self, dispute_id: str, actor: Actor, db: AsyncSession
    ) -> list[DisputeEvidence]:
        """Newest first; same visibility as the dispute itself."""
        dispute = await self.get_dispute(dispute_id, actor, db)
        return await self._repo.list_evidence(dispute.id, db)

    async def _get(self, dispute_id: str, db: AsyncSession) -> Dispute:
        dispute = await self._repo.get_by_id(dispute_id, db)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def _load_for_update(self, dispute_id: str, db: AsyncSession) -> Dispute:
        dispute = await self._repo.get_for_update(dispute_id, db)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def _set_status(
        self, dispute: Dispute, status: DisputeStatus, actor: Actor, db: AsyncSession
    ) -> None:
        previous = dispute.status
        dispute.status = status
        dispute.updated_at = self._clock()
        await self._repo.update(dispute, db)
        diff: dict[str, object] = {"from": previous.value, "to": status.value}
        if dispute.outcome is not None and status in RESOLVED_STATUSES:
            diff["outcome"] = dispute.outcome.value
            diff["split_seller_bps"] = dispute.split_seller_bps
        await self._append_audit(dispute, actor, "STATUS_CHANGE", diff, db)

    async def _append_audit(
        self,
        dispute: Dispute,
        actor: Actor,
        action: str,
        diff: dict[str, object],
        db: AsyncSession,
    ) -> None:
        await self._audit.append(
            AuditEvent(
                entity_type="DISPUTE",
                entity_id=dispute.id,
                actor_id=actor.id,
                actor_type=actor.actor_type.value,
                action=action,
                diff=diff,
            ),
            db,
        )


_engine: DisputeEngine | None = None


def get_dispute_engine() -> DisputeEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = DisputeEngine()
    return _engine

