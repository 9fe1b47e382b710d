# src/esc_dispute/domain/repository.py
"""Repository Protocol — dependency inversion for testability."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_dispute.domain.models import Dispute, DisputeEvidence, DisputeMessage


class DisputeRepositoryProtocol(Protocol):
    async def insert(self, dispute: Dispute, db: AsyncSession) -> None:
        """Raises ActiveDisputeExistsError if the transaction has an OPEN/UNDER_REVIEW dispute."""
        ...

    async def get_by_id(self, dispute_id: str, db: AsyncSession) -> Dispute | None: ...

    async def get_for_update(self, dispute_id: str, db: AsyncSession) -> Dispute | None: ...

    async def get_active_by_transaction(
        self, transaction_id: str, db: AsyncSession
    ) -> Dispute | None: ...

    async def update(self, dispute: Dispute, db: AsyncSession) -> None: ...

    async def list_for_user(
        self,
        user_id: str,
        include_all: bool,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Dispute]: ...

    async def next_message_seq(self, dispute_id: str, db: AsyncSession) -> int: ...

    async def insert_message(self, message: DisputeMessage, db: AsyncSession) -> None: ...

    async def list_messages(
        self, dispute_id: str, db: AsyncSession
    ) -> list[DisputeMessage]: ...

    async def insert_evidence(self, evidence: DisputeEvidence, db: AsyncSession) -> None: ...

    async def list_evidence(
        self, dispute_id: str, db: AsyncSession
    ) -> list[DisputeEvidence]:
        """Newest first."""
        ...
