# src/esc_transaction/application/engine.py
"""TransactionEngine — owns every transaction status change.

Concurrency model: a KeyedLock per transaction id serialises work in
this process; `SELECT ... FOR UPDATE` on the row serialises it across
processes. Creation additionally takes a per-listing lock, backed by the
partial unique index on transactions(listing_id).

Public methods are units of work: they commit on success and roll back on
any error. The `apply_*` / `create_from_offer` hooks are for the offer and
dispute engines, which already hold the relevant lock and own the commit.
Notifications are emitted only after commit.
"""
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.esc_audit.domain.models import AuditEvent
from src.esc_audit.domain.repository import AuditRepositoryProtocol
from src.esc_audit.infrastructure.persistence import AuditRepository
from src.esc_common.authz import Actor, require_party
from src.esc_common.datetime_utils import Clock, utc_now
from src.esc_common.enums import (
    DisputeOutcome,
    NotificationEvent,
    PartyRole,
    PaymentDirection,
    PaymentStatus,
    TransactionEvent,
    TransactionStatus,
)
from src.esc_common.errors import (
    ActiveTransactionExistsError,
    ListingNotFoundError,
    ListingUnavailableError,
    PaymentMismatchError,
    ProviderRefConflictError,
    TransactionNotFoundError,
    ValidationError,
)
from src.esc_common.id_generator import generate_id, generate_provider_ref
from src.esc_common.keyed_lock import KeyedLock
from src.esc_common.pagination import cursor_decode, paginate
from src.esc_listing.domain.repository import ListingServiceProtocol
from src.esc_listing.infrastructure.persistence import ListingService
from src.esc_notify.dispatcher import (
    NotificationDispatcherProtocol,
    get_dispatcher,
    notify,
)
from src.esc_offer.domain.models import Offer
from src.esc_transaction.domain.models import Payment, Transaction
from src.esc_transaction.domain.repository import (
    PaymentRepositoryProtocol,
    TransactionRepositoryProtocol,
)
from src.esc_transaction.domain.state_machine import next_status, resolution_event
from src.esc_transaction.infrastructure.persistence import (
    PaymentRepository,
    TransactionRepository,
)

logger = logging.getLogger(__name__)

_PARTIES = frozenset({PartyRole.BUYER, PartyRole.SELLER, PartyRole.ADMIN})

# direction -> (state-machine event, notification emitted after commit)
_PAYMENT_EVENTS: dict[PaymentDirection, tuple[TransactionEvent, NotificationEvent]] = {
    PaymentDirection.FUNDING: (
        TransactionEvent.FUNDING_CONFIRMED,
        NotificationEvent.TRANSACTION_FUNDED,
    ),
    PaymentDirection.RELEASE: (
        TransactionEvent.PAYOUT_CONFIRMED,
        NotificationEvent.TRANSACTION_RELEASED,
    ),
    PaymentDirection.REFUND: (
        TransactionEvent.REFUND_CONFIRMED,
        NotificationEvent.TRANSACTION_REFUNDED,
    ),
}


@dataclass
class SweepResult:
    started: list[str] = field(default_factory=list)  # FUNDED -> VERIFICATION_PERIOD
    ready: list[str] = field(default_factory=list)  # VERIFICATION_PERIOD -> READY_TO_RELEASE
    failed: list[str] = field(default_factory=list)


class TransactionEngine:
    def __init__(
        self,
        repo: TransactionRepositoryProtocol | None = None,
        payments: PaymentRepositoryProtocol | None = None,
        listings: ListingServiceProtocol | None = None,
        audit: AuditRepositoryProtocol | None = None,
        dispatcher: NotificationDispatcherProtocol | None = None,
        clock: Clock = utc_now,
        escrow_hold_days: int | None = None,
    ) -> None:
        self._repo = repo or TransactionRepository()
        self._payments = payments or PaymentRepository()
        self._listings = listings or ListingService()
        self._audit = audit or AuditRepository()
        self._dispatcher = dispatcher or get_dispatcher()
        self._clock = clock
        self._hold = timedelta(
            days=settings.ESCROW_HOLD_DAYS if escrow_hold_days is None else escrow_hold_days
        )
        self._tx_locks = KeyedLock()
        self._listing_locks = KeyedLock()

    def lock_for(self, transaction_id: str) -> AbstractAsyncContextManager[None]:
        return self._tx_locks.hold(transaction_id)

    def listing_lock(self, listing_id: str) -> AbstractAsyncContextManager[None]:
        return self._listing_locks.hold(listing_id)

    # ------------------------------------------------------------------
    # Hooks for the offer / dispute engines (caller holds lock, owns commit)
    # ------------------------------------------------------------------

    async def create_from_offer(self, offer: Offer, actor: Actor, db: AsyncSession) -> Transaction:
        """Create the CREATED transaction for an accepted offer.

        Caller must hold listing_lock(offer.listing_id). The active-transaction
        check runs first so the loser of an acceptance race sees a conflict,
        not an unavailable listing.
        """
        if await self._repo.get_active_by_listing(offer.listing_id, db) is not None:
            raise ActiveTransactionExistsError(offer.listing_id)
        listing = await self._listings.get_listing(offer.listing_id, db)
        if listing is None:
            raise ListingNotFoundError(offer.listing_id)
        if not listing.is_active:
            raise ListingUnavailableError(offer.listing_id)

        now = self._clock()
        tx = Transaction(
            id=generate_id(),
            listing_id=offer.listing_id,
            offer_id=offer.id,
            buyer_id=offer.buyer_id,
            seller_id=listing.seller_id,
            agreed_price_minor=offer.amount_minor,
            status=TransactionStatus.CREATED,
            created_at=now,
            updated_at=now,
        )
        await self._repo.insert(tx, db)
        await self._listings.mark_sold(listing.id, db)
        await self._audit.append(
            AuditEvent(
                entity_type="TRANSACTION",
                entity_id=tx.id,
                actor_id=actor.id,
                actor_type=actor.actor_type.value,
                action="CREATE",
                diff={
                    "offer_id": offer.id,
                    "listing_id": tx.listing_id,
                    "agreed_price_minor": tx.agreed_price_minor,
                    "to": tx.status.value,
                },
            ),
            db,
        )
        return tx

    async def load_for_update(self, transaction_id: str, db: AsyncSession) -> Transaction:
        tx = await self._repo.get_for_update(transaction_id, db)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        return tx

    async def apply_dispute_opened(
        self, tx: Transaction, dispute_id: str, actor: Actor, db: AsyncSession
    ) -> Transaction:
        """FUNDED / VERIFICATION_PERIOD -> DISPUTED. Caller holds lock_for(tx.id)."""
        await self._transition(
            tx, TransactionEvent.DISPUTE_OPENED, actor, db, active_dispute_id=dispute_id
        )
        return tx

    async def apply_dispute_resolved(
        self,
        tx: Transaction,
        outcome: DisputeOutcome,
        split_seller_bps: int | None,
        actor: Actor,
        db: AsyncSession,
    ) -> Transaction:
        """DISPUTED -> READY_TO_RELEASE / REFUND_PENDING. Caller holds lock_for(tx.id)."""
        await self._transition(
            tx,
            resolution_event(outcome),
            actor,
            db,
            active_dispute_id=None,
            resolution_outcome=outcome,
            split_seller_bps=split_seller_bps if outcome == DisputeOutcome.SPLIT else None,
        )
        return tx

    # ------------------------------------------------------------------
    # Party actions
    # ------------------------------------------------------------------

    async def request_escrow(
        self, transaction_id: str, actor: Actor, db: AsyncSession
    ) -> tuple[Transaction, Payment]:
        """Buyer asks to fund: CREATED -> ESCROW_REQUESTED plus a PENDING funding payment."""
        async with self.lock_for(transaction_id):
            try:
                tx = await self.load_for_update(transaction_id, db)
                require_party(
                    actor, frozenset({PartyRole.BUYER}), tx.buyer_id, tx.seller_id,
                    "requesting escrow",
                )
                now = self._clock()
                await self._transition(
                    tx, TransactionEvent.REQUEST_ESCROW, actor, db, escrow_requested_at=now
                )
                payment = Payment(
                    id=generate_id(),
                    transaction_id=tx.id,
                    direction=PaymentDirection.FUNDING,
                    amount_minor=tx.agreed_price_minor,
                    status=PaymentStatus.PENDING,
                    provider_ref=generate_provider_ref("FND"),
                    created_at=now,
                    updated_at=now,
                )
                await self._payments.insert(payment, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Escrow requested: tx=%s ref=%s amount=%d",
            tx.id, payment.provider_ref, payment.amount_minor,
        )
        return tx, payment

    async def start_verification(
        self, transaction_id: str, actor: Actor, db: AsyncSession
    ) -> Transaction:
        """FUNDED -> VERIFICATION_PERIOD ahead of the sweep (seller or admin)."""
        async with self.lock_for(transaction_id):
            try:
                tx = await self.load_for_update(transaction_id, db)
                require_party(
                    actor, frozenset({PartyRole.SELLER, PartyRole.ADMIN}), tx.buyer_id,
                    tx.seller_id, "starting verification",
                )
                await self._start_verification(tx, actor, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return tx

    async def close(self, transaction_id: str, actor: Actor, db: AsyncSession) -> Transaction:
        """RELEASED / REFUNDED -> CLOSED (admin). A refunded listing goes back on sale."""
        async with self.lock_for(transaction_id):
            try:
                tx = await self.load_for_update(transaction_id, db)
                require_party(
                    actor, frozenset({PartyRole.ADMIN}), tx.buyer_id, tx.seller_id,
                    "closing a transaction",
                )
                was_refunded = tx.status == TransactionStatus.REFUNDED
                await self._transition(
                    tx, TransactionEvent.CLOSE, actor, db, closed_at=self._clock()
                )
                if was_refunded:
                    await self._listings.mark_available(tx.listing_id, db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("Transaction %s closed by %s", tx.id, actor.id)
        return tx

    # ------------------------------------------------------------------
    # Payment gateway events (idempotent on provider_ref)
    # ------------------------------------------------------------------

    async def report_funding(
        self, transaction_id: str, provider_ref: str, amount_minor: int,
        db: AsyncSession, actor: Actor | None = None,
    ) -> Transaction:
        return await self._apply_payment_event(
            transaction_id, PaymentDirection.FUNDING, provider_ref, amount_minor,
            actor or Actor.system(), db,
        )

    async def report_payout(
        self, transaction_id: str, provider_ref: str, amount_minor: int,
        db: AsyncSession, actor: Actor | None = None,
    ) -> Transaction:
        return await self._apply_payment_event(
            transaction_id, PaymentDirection.RELEASE, provider_ref, amount_minor,
            actor or Actor.system(), db,
        )

    async def report_refund(
        self, transaction_id: str, provider_ref: str, amount_minor: int,
        db: AsyncSession, actor: Actor | None = None,
    ) -> Transaction:
        return await self._apply_payment_event(
            transaction_id, PaymentDirection.REFUND, provider_ref, amount_minor,
            actor or Actor.system(), db,
        )

    async def report_payment_failed(
        self,
        transaction_id: str,
        direction: PaymentDirection,
        provider_ref: str,
        amount_minor: int,
        db: AsyncSession,
        actor: Actor | None = None,
    ) -> Payment:
        """Record a failed gateway attempt. Transaction status is unchanged."""
        actor = actor or Actor.system()
        async with self.lock_for(transaction_id):
            try:
                tx = await self.load_for_update(transaction_id, db)
                now = self._clock()
                payment = await self._payments.get_by_provider_ref(provider_ref, db)
                if payment is not None:
                    self._check_ref_owner(payment, tx, direction)
                    if payment.status != PaymentStatus.PENDING:
                        # SUCCESS is never downgraded; FAILED replays are no-ops
                        await db.rollback()
                        logger.info(
                            "Payment failure ignored: ref=%s already %s",
                            provider_ref, payment.status.value,
                        )
                        return payment
                    payment.status = PaymentStatus.FAILED
                    payment.updated_at = now
                    await self._payments.update_status(payment, db)
                else:
                    payment = Payment(
                        id=generate_id(),
                        transaction_id=tx.id,
                        direction=direction,
                        amount_minor=amount_minor,
                        status=PaymentStatus.FAILED,
                        provider_ref=provider_ref,
                        created_at=now,
                        updated_at=now,
                    )
                    await self._payments.insert(payment, db)
                await self._audit.append(
                    AuditEvent(
                        entity_type="PAYMENT",
                        entity_id=payment.id,
                        actor_id=actor.id,
                        actor_type=actor.actor_type.value,
                        action="PAYMENT_FAILED",
                        diff={
                            "transaction_id": tx.id,
                            "direction": direction.value,
                            "provider_ref": provider_ref,
                            "amount_minor": amount_minor,
                        },
                    ),
                    db,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.warning(
            "Payment failed: tx=%s direction=%s ref=%s", tx.id, direction.value, provider_ref
        )
        return payment

    # ------------------------------------------------------------------
    # Scheduled sweep
    # ------------------------------------------------------------------

    async def sweep_verification_deadlines(
        self, db: AsyncSession, now: datetime | None = None
    ) -> SweepResult:
        """Start verification on FUNDED transactions and release undisputed ones past deadline.

        Each transaction commits on its own; one failure is logged and the
        sweep moves on.
        """
        now = now or self._clock()
        actor = Actor.system()
        result = SweepResult()
        candidates = await self._repo.list_sweep_candidates(now, db)
        await db.rollback()

        for tx_id in candidates:
            async with self.lock_for(tx_id):
                try:
                    tx = await self.load_for_update(tx_id, db)
                    if tx.status == TransactionStatus.FUNDED:
                        await self._start_verification(tx, actor, db)
                        result.started.append(tx.id)
                    if (
                        tx.status == TransactionStatus.VERIFICATION_PERIOD
                        and tx.active_dispute_id is None
                        and tx.verification_deadline is not None
                        and now >= tx.verification_deadline
                    ):
                        await self._transition(
                            tx, TransactionEvent.DEADLINE_PASSED_NO_DISPUTE, actor, db
                        )
                        result.ready.append(tx.id)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    logger.exception("Verification sweep failed for transaction %s", tx_id)
                    result.failed.append(tx_id)

        if result.started or result.ready or result.failed:
            logger.info(
                "Verification sweep: started=%d ready=%d failed=%d",
                len(result.started), len(result.ready), len(result.failed),
            )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch(self, transaction_id: str, db: AsyncSession) -> Transaction:
        """Lock-free read for collaborators that run their own party checks."""
        tx = await self._repo.get_by_id(transaction_id, db)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        return tx

    async def get_transaction(
        self, transaction_id: str, actor: Actor, db: AsyncSession
    ) -> Transaction:
        tx = await self.fetch(transaction_id, db)
        require_party(actor, _PARTIES, tx.buyer_id, tx.seller_id, "viewing a transaction")
        return tx

    async def list_transactions(
        self,
        actor: Actor,
        role: str | None,
        cursor: str | None,
        limit: int,
        db: AsyncSession,
    ) -> tuple[list[Transaction], str | None, bool]:
        if role not in (None, "buyer", "seller"):
            raise ValidationError(f"role must be 'buyer' or 'seller', got {role!r}")
        rows = await self._repo.list_by_party(
            actor.id, role, cursor_decode(cursor), limit + 1, db
        )
        return paginate(rows, limit)

    async def list_payments(
        self, transaction_id: str, actor: Actor, db: AsyncSession
    ) -> list[Payment]:
        tx = await self.get_transaction(transaction_id, actor, db)
        return await self._payments.list_by_transaction(tx.id, db)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        tx: Transaction,
        event: TransactionEvent,
        actor: Actor,
        db: AsyncSession,
        **changes: object,
    ) -> None:
        """Apply one state-machine edge plus field changes, persist, and audit."""
        previous = tx.status
        tx.status = next_status(tx.id, tx.status, event)
        for name, value in changes.items():
            setattr(tx, name, value)
        tx.updated_at = self._clock()
        await self._repo.update(tx, db)
        await self._audit.append(
            AuditEvent(
                entity_type="TRANSACTION",
                entity_id=tx.id,
                actor_id=actor.id,
                actor_type=actor.actor_type.value,
                action="STATUS_CHANGE",
                diff={"event": event.value, "from": previous.value, "to": tx.status.value},
            ),
            db,
        )

    async def _start_verification(self, tx: Transaction, actor: Actor, db: AsyncSession) -> None:
        deadline = tx.verification_deadline or self._clock() + self._hold
        await self._transition(
            tx, TransactionEvent.VERIFICATION_STARTED, actor, db,
            verification_deadline=deadline,
        )

    @staticmethod
    def _check_ref_owner(payment: Payment, tx: Transaction, direction: PaymentDirection) -> None:
        if payment.transaction_id != tx.id or payment.direction != direction:
            raise ProviderRefConflictError(payment.provider_ref)

    def _expected_amount(self, tx: Transaction, direction: PaymentDirection) -> int:
        if direction == PaymentDirection.RELEASE:
            return tx.expected_payout_minor
        if direction == PaymentDirection.REFUND:
            return tx.expected_refund_minor
        return tx.agreed_price_minor

    async def _supersede_pending(
        self, tx: Transaction, confirmed: Payment, actor: Actor, db: AsyncSession
    ) -> None:
        """Fail PENDING attempts in the same direction once another ref has settled it."""
        for payment in await self._payments.list_by_transaction(tx.id, db):
            if (
                payment.id == confirmed.id
                or payment.direction != confirmed.direction
                or payment.status != PaymentStatus.PENDING
            ):
                continue
            payment.status = PaymentStatus.FAILED
            payment.updated_at = confirmed.updated_at
            await self._payments.update_status(payment, db)
            await self._audit.append(
                AuditEvent(
                    entity_type="PAYMENT",
                    entity_id=payment.id,
                    actor_id=actor.id,
                    actor_type=actor.actor_type.value,
                    action="PAYMENT_SUPERSEDED",
                    diff={
                        "transaction_id": tx.id,
                        "direction": payment.direction.value,
                        "provider_ref": payment.provider_ref,
                        "superseded_by": confirmed.provider_ref,
                    },
                ),
                db,
            )
            logger.info(
                "Pending payment superseded: tx=%s ref=%s by=%s",
                tx.id, payment.provider_ref, confirmed.provider_ref,
            )

    async def _apply_payment_event(
        self,
        transaction_id: str,
        direction: PaymentDirection,
        provider_ref: str,
        amount_minor: int,
        actor: Actor,
        db: AsyncSession,
    ) -> Transaction:
        event, notification = _PAYMENT_EVENTS[direction]
        async with self.lock_for(transaction_id):
            try:
                tx = await self.load_for_update(transaction_id, db)
                payment = await self._payments.get_by_provider_ref(provider_ref, db)
                if payment is not None:
                    self._check_ref_owner(payment, tx, direction)
                    if payment.status == PaymentStatus.SUCCESS:
                        await db.rollback()
                        logger.info(
                            "Payment idempotency hit: ref=%s tx=%s direction=%s",
                            provider_ref, tx.id, direction.value,
                        )
                        return tx

                next_status(tx.id, tx.status, event)  # raises before anything is written

                expected = self._expected_amount(tx, direction)
                if amount_minor != expected:
                    tx.needs_review = True
                    tx.review_reason = (
                        f"{direction.value} {provider_ref}: expected {expected}, "
                        f"reported {amount_minor}"
                    )
                    tx.updated_at = self._clock()
                    await self._repo.update(tx, db)
                    await self._audit.append(
                        AuditEvent(
                            entity_type="TRANSACTION",
                            entity_id=tx.id,
                            actor_id=actor.id,
                            actor_type=actor.actor_type.value,
                            action="PAYMENT_MISMATCH",
                            diff={
                                "direction": direction.value,
                                "provider_ref": provider_ref,
                                "expected_minor": expected,
                                "reported_minor": amount_minor,
                            },
                        ),
                        db,
                    )
                    await db.commit()
                    logger.warning(
                        "Payment mismatch flagged for review: tx=%s ref=%s expected=%d reported=%d",
                        tx.id, provider_ref, expected, amount_minor,
                    )
                    raise PaymentMismatchError(tx.id, expected, amount_minor)

                now = self._clock()
                if payment is not None:
                    payment.status = PaymentStatus.SUCCESS
                    payment.amount_minor = amount_minor
                    payment.updated_at = now
                    await self._payments.update_status(payment, db)
                else:
                    payment = Payment(
                        id=generate_id(),
                        transaction_id=tx.id,
                        direction=direction,
                        amount_minor=amount_minor,
                        status=PaymentStatus.SUCCESS,
                        provider_ref=provider_ref,
                        created_at=now,
                        updated_at=now,
                    )
                    if not await self._payments.insert(payment, db):
                        raise ProviderRefConflictError(provider_ref)
                await self._supersede_pending(tx, payment, actor, db)

                if direction == PaymentDirection.FUNDING:
                    changes: dict[str, object] = {
                        "funded_at": now,
                        "verification_deadline": now + self._hold,
                    }
                else:
                    changes = {"resolved_at": now}
                await self._transition(tx, event, actor, db, **changes)
                await db.commit()
            except PaymentMismatchError:
                raise
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Payment confirmed: tx=%s direction=%s ref=%s status=%s",
            tx.id, direction.value, provider_ref, tx.status.value,
        )
        await notify(
            self._dispatcher,
            notification,
            {
                "transaction_id": tx.id,
                "listing_id": tx.listing_id,
                "buyer_id": tx.buyer_id,
                "seller_id": tx.seller_id,
                "amount_minor": amount_minor,
            },
        )
        return tx


_engine: TransactionEngine | None = None


def get_transaction_engine() -> TransactionEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = TransactionEngine()
    return _engine
