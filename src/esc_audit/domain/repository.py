"""AuditRepository Protocol — writes happen inside the caller's transaction."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_audit.domain.models import AuditEvent


class AuditRepositoryProtocol(Protocol):
    async def append(self, event: AuditEvent, db: AsyncSession) -> None: ...
