# src/esc_transaction/domain/repository.py
"""Repository Protocols — dependency inversion for testability.

Unit tests inject in-memory fakes that conform to these Protocols.
Infrastructure layer provides the raw-SQL implementations.
"""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_transaction.domain.models import Payment, Transaction


class TransactionRepositoryProtocol(Protocol):
    async def insert(self, tx: Transaction, db: AsyncSession) -> None:
        """Raises ActiveTransactionExistsError if the listing already has an active one."""
        ...

    async def get_by_id(self, transaction_id: str, db: AsyncSession) -> Transaction | None: ...

    async def get_for_update(
        self, transaction_id: str, db: AsyncSession
    ) -> Transaction | None: ...

    async def get_active_by_listing(
        self, listing_id: str, db: AsyncSession
    ) -> Transaction | None: ...

    async def update(self, tx: Transaction, db: AsyncSession) -> None: ...

    async def list_sweep_candidates(self, now: datetime, db: AsyncSession) -> list[str]:
        """Ids of FUNDED transactions and of undisputed VERIFICATION_PERIOD ones past deadline."""
        ...

    async def list_by_party(
        self,
        user_id: str,
        role: str | None,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Transaction]: ...


class PaymentRepositoryProtocol(Protocol):
    async def get_by_provider_ref(
        self, provider_ref: str, db: AsyncSession
    ) -> Payment | None: ...

    async def insert(self, payment: Payment, db: AsyncSession) -> bool:
        """Insert unless provider_ref exists. Returns False on duplicate."""
        ...

    async def update_status(self, payment: Payment, db: AsyncSession) -> None: ...

    async def list_by_transaction(
        self, transaction_id: str, db: AsyncSession
    ) -> list[Payment]: ...
