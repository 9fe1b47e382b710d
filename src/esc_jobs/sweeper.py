"""Periodic sweeps run inside the API process.

Each pass opens its own session (never a request's), expires overdue
offers, then advances verification deadlines. A failing pass is logged and
the loop waits for the next tick. Disabled when SWEEP_INTERVAL_SECONDS is 0;
deployments may instead call the staff sweep endpoints from cron.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.esc_common.database import async_session_factory
from src.esc_offer.application.ledger import OfferLedger, get_offer_ledger
from src.esc_transaction.application.engine import (
    SweepResult,
    TransactionEngine,
    get_transaction_engine,
)

logger = logging.getLogger(__name__)


async def run_sweeps_once(
    ledger: OfferLedger | None = None,
    engine: TransactionEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> tuple[list[str], SweepResult]:
    """One pass of both sweeps. Returns (expired offer ids, verification result)."""
    ledger = ledger or get_offer_ledger()
    engine = engine or get_transaction_engine()
    factory = session_factory or async_session_factory
    async with factory() as db:
        expired = await ledger.sweep_expired(db)
    async with factory() as db:
        result = await engine.sweep_verification_deadlines(db)
    return expired, result


async def sweep_forever(
    interval_seconds: float,
    ledger: OfferLedger | None = None,
    engine: TransactionEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    logger.info("Sweeper started: interval=%ss", interval_seconds)
    while True:
        try:
            await run_sweeps_once(ledger, engine, session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sweep pass failed")
        await asyncio.sleep(interval_seconds)


def start_sweeper(interval_seconds: float) -> asyncio.Task[None]:
    return asyncio.create_task(sweep_forever(interval_seconds), name="esc-sweeper")


async def stop_sweeper(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Sweeper stopped")
