"""005: create audit_events table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE audit_events (
            id           BIGSERIAL       PRIMARY KEY,
            entity_type  VARCHAR(20)     NOT NULL,
            entity_id    VARCHAR(64)     NOT NULL,
            actor_id     VARCHAR(64)     NOT NULL,
            actor_type   VARCHAR(10)     NOT NULL,
            action       VARCHAR(30)     NOT NULL,
            diff         JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at   TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_audit_entity_type CHECK (
                entity_type IN ('OFFER', 'TRANSACTION', 'PAYMENT', 'DISPUTE')
            ),
            CONSTRAINT ck_audit_actor_type  CHECK (actor_type IN ('USER', 'SYSTEM'))
        );
    """)
    op.execute("CREATE INDEX idx_audit_entity ON audit_events (entity_type, entity_id, id);")
    op.execute("COMMENT ON TABLE audit_events IS 'Append-only audit trail; written in the same transaction as the change';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS audit_events;")
