"""Tests for OfferLedger against in-memory repositories."""

from datetime import timedelta

import pytest

from src.esc_common.authz import Actor
from src.esc_common.enums import OfferAction, OfferStatus, TransactionStatus
from src.esc_common.errors import (
    ActiveTransactionExistsError,
    AuthorizationError,
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
from tests.fakes import ADMIN, BUYER, OTHER_BUYER, SELLER, STRANGER, World


class TestSubmitOffer:
    async def test_creates_sent_offer_with_ttl(self, world: World) -> None:
        world.add_listing()
        offer = await world.offers.submit_offer(
            "listing-1", 4_800_000, BUYER, world.session(), message="Cash buyer"
        )
        stored = world.committed_offer(offer.id)
        assert stored.status == OfferStatus.SENT
        assert stored.seller_id == SELLER.id
        assert stored.expires_at == world.clock.now + timedelta(hours=72)
        assert world.dispatcher.names() == ["offer.received"]
        assert [e.action for e in world.audit("OFFER", offer.id)] == ["CREATE"]

    @pytest.mark.parametrize("amount", [0, -1])
    async def test_rejects_non_positive_amount(self, world: World, amount: int) -> None:
        world.add_listing()
        with pytest.raises(InvalidAmountError):
            await world.offers.submit_offer("listing-1", amount, BUYER, world.session())

    async def test_rejects_long_message(self, world: World) -> None:
        world.add_listing()
        with pytest.raises(ValidationError):
            await world.offers.submit_offer(
                "listing-1", 100, BUYER, world.session(), message="x" * 1001
            )

    async def test_unknown_listing(self, world: World) -> None:
        with pytest.raises(ListingNotFoundError):
            await world.offers.submit_offer("missing", 100, BUYER, world.session())

    async def test_seller_cannot_offer_on_own_listing(self, world: World) -> None:
        world.add_listing()
        with pytest.raises(SelfOfferError):
            await world.offers.submit_offer("listing-1", 100, SELLER, world.session())

    async def test_inactive_listing(self, world: World) -> None:
        world.add_listing(is_active=False)
        with pytest.raises(ListingUnavailableError):
            await world.offers.submit_offer("listing-1", 100, BUYER, world.session())

    async def test_one_pending_offer_per_buyer_and_listing(self, world: World) -> None:
        world.add_listing()
        await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        db = world.session()
        with pytest.raises(DuplicateActiveOfferError):
            await world.offers.submit_offer("listing-1", 200, BUYER, db)
        assert db.rollbacks == 1
        # A different buyer is unaffected
        await world.offers.submit_offer("listing-1", 300, OTHER_BUYER, world.session())

    async def test_expired_pending_offer_is_replaced(self, world: World) -> None:
        world.add_listing()
        first = await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        world.clock.advance(hours=73)
        second = await world.offers.submit_offer("listing-1", 200, BUYER, world.session())
        assert world.committed_offer(first.id).status == OfferStatus.EXPIRED
        assert world.committed_offer(second.id).status == OfferStatus.SENT


class TestRespondToOffer:
    async def _offer(self, world: World, amount: int = 4_800_000) -> str:
        world.add_listing()
        offer = await world.offers.submit_offer("listing-1", amount, BUYER, world.session())
        return offer.id

    async def test_accept_creates_transaction_atomically(self, world: World) -> None:
        offer_id = await self._offer(world)
        offer, tx = await world.offers.respond_to_offer(
            offer_id, OfferAction.ACCEPT, SELLER, world.session()
        )
        assert offer.status == OfferStatus.ACCEPTED
        assert tx is not None
        stored = world.committed_tx(tx.id)
        assert stored.status == TransactionStatus.CREATED
        assert stored.agreed_price_minor == 4_800_000
        assert stored.offer_id == offer_id
        assert world.store.row("listings", "listing-1").is_active is False
        assert world.dispatcher.names() == ["offer.received", "offer.accepted"]

    async def test_buyer_cannot_accept(self, world: World) -> None:
        offer_id = await self._offer(world)
        with pytest.raises(AuthorizationError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.ACCEPT, BUYER, world.session()
            )
        assert world.committed_offer(offer_id).status == OfferStatus.SENT

    async def test_admin_cannot_accept_for_seller(self, world: World) -> None:
        offer_id = await self._offer(world)
        with pytest.raises(AuthorizationError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.ACCEPT, ADMIN, world.session()
            )

    async def test_counter_records_amount(self, world: World) -> None:
        offer_id = await self._offer(world)
        offer, tx = await world.offers.respond_to_offer(
            offer_id, OfferAction.COUNTER, SELLER, world.session(),
            counter_amount_minor=4_900_000,
        )
        assert tx is None
        stored = world.committed_offer(offer_id)
        assert stored.status == OfferStatus.COUNTERED
        assert stored.counter_amount_minor == 4_900_000
        assert world.dispatcher.names()[-1] == "offer.countered"

    async def test_counter_requires_amount(self, world: World) -> None:
        offer_id = await self._offer(world)
        with pytest.raises(ValidationError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.COUNTER, SELLER, world.session()
            )

    async def test_counter_amount_only_for_counter(self, world: World) -> None:
        offer_id = await self._offer(world)
        with pytest.raises(ValidationError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.ACCEPT, SELLER, world.session(), counter_amount_minor=1
            )

    async def test_buyer_withdraws(self, world: World) -> None:
        offer_id = await self._offer(world)
        offer, _ = await world.offers.respond_to_offer(
            offer_id, OfferAction.WITHDRAW, BUYER, world.session()
        )
        assert offer.status == OfferStatus.WITHDRAWN
        with pytest.raises(AuthorizationError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.WITHDRAW, SELLER, world.session()
            )

    async def test_accept_after_ttl_is_rejected(self, world: World) -> None:
        offer_id = await self._offer(world)
        world.clock.advance(hours=72, seconds=1)
        with pytest.raises(OfferExpiredError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.ACCEPT, SELLER, world.session()
            )
        assert world.committed_offer(offer_id).status == OfferStatus.SENT
        assert world.store.rows("transactions") == []

    async def test_answered_offer_cannot_be_answered_again(self, world: World) -> None:
        offer_id = await self._offer(world)
        await world.offers.respond_to_offer(
            offer_id, OfferAction.WITHDRAW, BUYER, world.session()
        )
        with pytest.raises(InvalidStateError):
            await world.offers.respond_to_offer(
                offer_id, OfferAction.ACCEPT, SELLER, world.session()
            )

    async def test_unknown_offer(self, world: World) -> None:
        with pytest.raises(OfferNotFoundError):
            await world.offers.respond_to_offer(
                "missing", OfferAction.ACCEPT, SELLER, world.session()
            )

    async def test_failed_transaction_creation_keeps_offer_sent(self, world: World) -> None:
        world.add_listing()
        first = await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        second = await world.offers.submit_offer("listing-1", 200, OTHER_BUYER, world.session())
        await world.offers.respond_to_offer(first.id, OfferAction.ACCEPT, SELLER, world.session())

        db = world.session()
        with pytest.raises(ActiveTransactionExistsError):
            await world.offers.respond_to_offer(second.id, OfferAction.ACCEPT, SELLER, db)
        assert db.rollbacks == 1
        assert world.committed_offer(second.id).status == OfferStatus.SENT
        assert len(world.store.rows("transactions")) == 1


class TestSweepExpired:
    async def test_expires_only_past_deadline(self, world: World) -> None:
        world.add_listing()
        old = await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        world.clock.advance(hours=48)
        fresh = await world.offers.submit_offer("listing-1", 200, OTHER_BUYER, world.session())
        world.clock.advance(hours=25)

        expired = await world.offers.sweep_expired(world.session())

        assert expired == [old.id]
        assert world.committed_offer(old.id).status == OfferStatus.EXPIRED
        assert world.committed_offer(fresh.id).status == OfferStatus.SENT
        batch = world.audit("OFFER", "BATCH")
        assert batch[0].action == "BATCH_EXPIRE"
        assert batch[0].diff["count"] == 1

    async def test_is_idempotent(self, world: World) -> None:
        world.add_listing()
        await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        world.clock.advance(days=4)
        assert len(await world.offers.sweep_expired(world.session())) == 1
        assert await world.offers.sweep_expired(world.session()) == []
        assert len(world.audit("OFFER", "BATCH")) == 1

    async def test_requires_staff_or_system(self, world: World) -> None:
        with pytest.raises(AuthorizationError):
            await world.offers.sweep_expired(world.session(), actor=BUYER)
        await world.offers.sweep_expired(world.session(), actor=ADMIN)
        await world.offers.sweep_expired(world.session(), actor=Actor.system())


class TestReads:
    async def test_get_offer_parties_only(self, world: World) -> None:
        world.add_listing()
        offer = await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        assert (await world.offers.get_offer(offer.id, SELLER, world.session())).id == offer.id
        await world.offers.get_offer(offer.id, ADMIN, world.session())
        with pytest.raises(AuthorizationError):
            await world.offers.get_offer(offer.id, STRANGER, world.session())

    async def test_list_offers_by_role(self, world: World) -> None:
        world.add_listing()
        world.add_listing("listing-2")
        a = await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        b = await world.offers.submit_offer("listing-2", 200, BUYER, world.session())

        page, cursor, has_more = await world.offers.list_offers(
            BUYER, "sent", None, 1, world.session()
        )
        assert [o.id for o in page] == [b.id]
        assert has_more is True
        page, _, has_more = await world.offers.list_offers(
            BUYER, "sent", cursor, 1, world.session()
        )
        assert [o.id for o in page] == [a.id]
        assert has_more is False

        received, _, _ = await world.offers.list_offers(
            SELLER, "received", None, 10, world.session()
        )
        assert len(received) == 2

    async def test_list_offers_rejects_unknown_role(self, world: World) -> None:
        with pytest.raises(ValidationError):
            await world.offers.list_offers(BUYER, "all", None, 10, world.session())

    async def test_expiry_stats(self, world: World) -> None:
        world.add_listing()
        await world.offers.submit_offer("listing-1", 100, BUYER, world.session())
        world.clock.advance(hours=60)
        await world.offers.submit_offer("listing-1", 100, OTHER_BUYER, world.session())

        stats = await world.offers.expiry_stats(world.session())
        assert stats.needs_expiry == 0
        assert stats.expiring_soon == 1
        assert stats.active == 2

        world.clock.advance(hours=13)
        stats = await world.offers.expiry_stats(world.session())
        assert stats.needs_expiry == 1
        assert stats.active == 1
