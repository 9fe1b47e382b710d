# src/esc_offer/application/ledger.py
"""OfferLedger — offer submission, seller/buyer responses and expiry.

ACCEPT is the one compound operation: the offer update and the transaction
insert share one database transaction, taken under the offer lock and then
the listing lock (always in that order). Any failure rolls both back, so
the offer stays SENT.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.esc_audit.domain.models import AuditEvent
from src.esc_audit.domain.repository import AuditRepositoryProtocol
from src.esc_audit.infrastructure.persistence import AuditRepository
from src.esc_common.authz import Actor, require_party, require_staff_or_system
from src.esc_common.datetime_utils import Clock, utc_now
from src.esc_common.enums import NotificationEvent, OfferAction, OfferStatus, PartyRole
from src.esc_common.errors import (
    DuplicateActiveOfferError,
    InvalidAmountError,
    InvalidStateError,
    ListingNotFoundError,
    ListingUnavailableError,
    OfferExpiredError,
    OfferNotFoundError,
    SelfOfferError,
    ValidationError,
)
from src.esc_common.id_generator import generate_id
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
from src.esc_offer.domain.repository import OfferExpiryStats, OfferRepositoryProtocol
from src.esc_offer.infrastructure.persistence import OfferRepository
from src.esc_transaction.application.engine import TransactionEngine, get_transaction_engine
from src.esc_transaction.domain.models import Transaction

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000

_SELLER = frozenset({PartyRole.SELLER})
_BUYER = frozenset({PartyRole.BUYER})
_PARTIES = frozenset({PartyRole.BUYER, PartyRole.SELLER, PartyRole.ADMIN})

_ACTION_RULES: dict[OfferAction, tuple[frozenset[PartyRole], str]] = {
    OfferAction.ACCEPT: (_SELLER, "accepting an offer"),
    OfferAction.COUNTER: (_SELLER, "countering an offer"),
    OfferAction.WITHDRAW: (_BUYER, "withdrawing an offer"),
}

_ACTION_STATUS: dict[OfferAction, OfferStatus] = {
    OfferAction.ACCEPT: OfferStatus.ACCEPTED,
    OfferAction.COUNTER: OfferStatus.COUNTERED,
    OfferAction.WITHDRAW: OfferStatus.WITHDRAWN,
}


class OfferLedger:
    def __init__(
        self,
        repo: OfferRepositoryProtocol | None = None,
        transactions: TransactionEngine | None = None,
        listings: ListingServiceProtocol | None = None,
        audit: AuditRepositoryProtocol | None = None,
        dispatcher: NotificationDispatcherProtocol | None = None,
        clock: Clock = utc_now,
        offer_ttl_hours: int | None = None,
    ) -> None:
        self._repo = repo or OfferRepository()
        self._transactions = transactions or get_transaction_engine()
        self._listings = listings or ListingService()
        self._audit = audit or AuditRepository()
        self._dispatcher = dispatcher or get_dispatcher()
        self._clock = clock
        self._ttl = timedelta(
            hours=settings.OFFER_TTL_HOURS if offer_ttl_hours is None else offer_ttl_hours
        )
        self._offer_locks = KeyedLock()
        self._submit_locks = KeyedLock()

    async def submit_offer(
        self,
        listing_id: str,
        amount_minor: int,
        actor: Actor,
        db: AsyncSession,
        message: str | None = None,
    ) -> Offer:
        if amount_minor <= 0:
            raise InvalidAmountError(amount_minor)
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"message exceeds {MAX_MESSAGE_LENGTH} characters")

        async with self._submit_locks.hold((listing_id, actor.id)):
            try:
                listing = await self._listings.get_listing(listing_id, db)
                if listing is None:
                    raise ListingNotFoundError(listing_id)
                if listing.seller_id == actor.id:
                    raise SelfOfferError()
                if not listing.is_active:
                    raise ListingUnavailableError(listing_id)

                now = self._clock()
                pending = await self._repo.get_pending(listing_id, actor.id, db)
                if pending is not None:
                    if not pending.is_expired_at(now):
                        raise DuplicateActiveOfferError(listing_id, actor.id)
                    # Past its TTL but not swept yet: expire it so the new one can be SENT
                    await self._set_status(pending, OfferStatus.EXPIRED, actor, db, now)

                offer = Offer(
                    id=generate_id(),
                    listing_id=listing_id,
                    buyer_id=actor.id,
                    seller_id=listing.seller_id,
                    amount_minor=amount_minor,
                    status=OfferStatus.SENT,
                    message=message,
                    expires_at=now + self._ttl,
                    created_at=now,
                    updated_at=now,
                )
                await self._repo.insert(offer, db)
                await self._audit.append(
                    AuditEvent(
                        entity_type="OFFER",
                        entity_id=offer.id,
                        actor_id=actor.id,
                        actor_type=actor.actor_type.value,
                        action="CREATE",
                        diff={
                            "listing_id": listing_id,
                            "amount_minor": amount_minor,
                            "to": OfferStatus.SENT.value,
                        },
                    ),
                    db,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Offer submitted: offer=%s listing=%s buyer=%s amount=%d",
            offer.id, listing_id, actor.id, amount_minor,
        )
        await notify(
            self._dispatcher,
            NotificationEvent.OFFER_RECEIVED,
            {
                "offer_id": offer.id,
                "listing_id": listing_id,
                "buyer_id": offer.buyer_id,
                "seller_id": offer.seller_id,
                "amount_minor": amount_minor,
            },
        )
        return offer

    async def respond_to_offer(
        self,
        offer_id: str,
        action: OfferAction,
        actor: Actor,
        db: AsyncSession,
        counter_amount_minor: int | None = None,
    ) -> tuple[Offer, Transaction | None]:
        """Apply ACCEPT / COUNTER / WITHDRAW. Returns the offer and, for ACCEPT, the transaction."""
        if action == OfferAction.COUNTER:
            if counter_amount_minor is None:
                raise ValidationError("counter_amount_minor is required for COUNTER")
            if counter_amount_minor <= 0:
                raise InvalidAmountError(counter_amount_minor)
        elif counter_amount_minor is not None:
            raise ValidationError(f"counter_amount_minor is only valid for COUNTER, not {action.value}")

        allowed, verb = _ACTION_RULES[action]
        tx: Transaction | None = None
        async with self._offer_locks.hold(offer_id):
            try:
                offer = await self._repo.get_for_update(offer_id, db)
                if offer is None:
                    raise OfferNotFoundError(offer_id)
                require_party(actor, allowed, offer.buyer_id, offer.seller_id, verb)

                now = self._clock()
                if offer.is_expired_at(now):
                    raise OfferExpiredError(offer_id, action.value.lower())
                if not offer.is_pending:
                    raise InvalidStateError("offer", offer_id, action.value.lower(), offer.status.value)

                if action == OfferAction.COUNTER:
                    offer.counter_amount_minor = counter_amount_minor

                if action == OfferAction.ACCEPT:
                    async with self._transactions.listing_lock(offer.listing_id):
                        await self._set_status(offer, OfferStatus.ACCEPTED, actor, db, now)
                        tx = await self._transactions.create_from_offer(offer, actor, db)
                        await db.commit()
                else:
                    await self._set_status(offer, _ACTION_STATUS[action], actor, db, now)
                    await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Offer %s %s by %s", offer.id, offer.status.value, actor.id)
        if action == OfferAction.ACCEPT and tx is not None:
            await notify(
                self._dispatcher,
                NotificationEvent.OFFER_ACCEPTED,
                {
                    "offer_id": offer.id,
                    "transaction_id": tx.id,
                    "listing_id": offer.listing_id,
                    "buyer_id": offer.buyer_id,
                    "seller_id": offer.seller_id,
                    "amount_minor": offer.amount_minor,
                },
            )
        elif action == OfferAction.COUNTER:
            await notify(
                self._dispatcher,
                NotificationEvent.OFFER_COUNTERED,
                {
                    "offer_id": offer.id,
                    "listing_id": offer.listing_id,
                    "buyer_id": offer.buyer_id,
                    "seller_id": offer.seller_id,
                    "amount_minor": offer.amount_minor,
                    "counter_amount_minor": offer.counter_amount_minor,
                },
            )
        return offer, tx

    async def sweep_expired(
        self, db: AsyncSession, now: datetime | None = None, actor: Actor | None = None
    ) -> list[str]:
        """Expire every SENT offer past its deadline. Idempotent; safe to run concurrently."""
        actor = actor or Actor.system()
        require_staff_or_system(actor, "expiring offers")
        now = now or self._clock()
        try:
            expired = await self._repo.expire_due(now, db)
            if expired:
                await self._audit.append(
                    AuditEvent(
                        entity_type="OFFER",
                        entity_id="BATCH",
                        actor_id=actor.id,
                        actor_type=actor.actor_type.value,
                        action="BATCH_EXPIRE",
                        diff={"count": len(expired), "offer_ids": expired},
                    ),
                    db,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if expired:
            logger.info("Expired %d offers", len(expired))
        return expired

    async def get_offer(self, offer_id: str, actor: Actor, db: AsyncSession) -> Offer:
        offer = await self._repo.get_by_id(offer_id, db)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        require_party(actor, _PARTIES, offer.buyer_id, offer.seller_id, "viewing an offer")
        return offer

    async def list_offers(
        self,
        actor: Actor,
        role: str,
        cursor: str | None,
        limit: int,
        db: AsyncSession,
    ) -> tuple[list[Offer], str | None, bool]:
        if role not in ("sent", "received"):
            raise ValidationError(f"role must be 'sent' or 'received', got {role!r}")
        rows = await self._repo.list_for_user(
            actor.id, role, cursor_decode(cursor), limit + 1, db
        )
        return paginate(rows, limit)

    async def expiry_stats(
        self, db: AsyncSession, now: datetime | None = None, window_hours: int = 24
    ) -> OfferExpiryStats:
        now = now or self._clock()
        return await self._repo.expiry_stats(now, now + timedelta(hours=window_hours), db)

    async def _set_status(
        self,
        offer: Offer,
        status: OfferStatus,
        actor: Actor,
        db: AsyncSession,
        now: datetime,
    ) -> None:
        previous = offer.status
        offer.status = status
        offer.updated_at = now
        if status != OfferStatus.EXPIRED:
            offer.responded_at = now
        await self._repo.update(offer, db)
        diff: dict[str, object] = {"from": previous.value, "to": status.value}
        if offer.counter_amount_minor is not None:
            diff["counter_amount_minor"] = offer.counter_amount_minor
        await self._audit.append(
            AuditEvent(
                entity_type="OFFER",
                entity_id=offer.id,
                actor_id=actor.id,
                actor_type=actor.actor_type.value,
                action="STATUS_CHANGE",
                diff=diff,
            ),
            db,
        )


_ledger: OfferLedger | None = None


def get_offer_ledger() -> OfferLedger:
    global _ledger  # noqa: PLW0603
    if _ledger is None:
        _ledger = OfferLedger()
    return _ledger
