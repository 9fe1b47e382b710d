"""004: create disputes and dispute_messages tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE disputes (
            id                VARCHAR(32)     PRIMARY KEY,
            transaction_id    VARCHAR(32)     NOT NULL REFERENCES transactions (id),
            raised_by_id      VARCHAR(64)     NOT NULL,
            summary           VARCHAR(2000)   NOT NULL,
            status            VARCHAR(20)     NOT NULL DEFAULT 'OPEN',
            resolution        TEXT,
            outcome           VARCHAR(10),
            split_seller_bps  INT,
            resolved_by_id    VARCHAR(64),
            created_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at       TIMESTAMPTZ,
            closed_at         TIMESTAMPTZ,
            CONSTRAINT ck_disputes_status   CHECK (
                status IN ('OPEN', 'UNDER_REVIEW', 'RESOLVED_BUYER', 'RESOLVED_SELLER',
                           'RESOLVED_SPLIT', 'CLOSED')
            ),
            CONSTRAINT ck_disputes_outcome  CHECK (
                outcome IS NULL OR outcome IN ('BUYER', 'SELLER', 'SPLIT')
            ),
            CONSTRAINT ck_disputes_split    CHECK (
                (outcome = 'SPLIT' AND split_seller_bps BETWEEN 1 AND 9999)
                OR (outcome IS DISTINCT FROM 'SPLIT' AND split_seller_bps IS NULL)
            ),
            CONSTRAINT ck_disputes_resolution_length CHECK (
                resolution IS NULL OR length(resolution) >= 10
            )
        );
    """)
    # At most one active dispute per transaction
    op.execute("""
        CREATE UNIQUE INDEX uq_disputes_active_transaction
        ON disputes (transaction_id)
        WHERE status IN ('OPEN', 'UNDER_REVIEW');
    """)
    op.execute("""
        CREATE TRIGGER trg_disputes_updated_at
            BEFORE UPDATE ON disputes
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE dispute_messages (
            id           VARCHAR(32)     PRIMARY KEY,
            dispute_id   VARCHAR(32)     NOT NULL REFERENCES disputes (id),
            seq          INT             NOT NULL,
            sender_id    VARCHAR(64)     NOT NULL,
            sender_role  VARCHAR(10)     NOT NULL,
            content      VARCHAR(2000)   NOT NULL,
            created_at   TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_dispute_messages_seq     UNIQUE (dispute_id, seq),
            CONSTRAINT ck_dispute_messages_role    CHECK (sender_role IN ('BUYER', 'SELLER', 'ADMIN')),
            CONSTRAINT ck_dispute_messages_content CHECK (length(content) BETWEEN 1 AND 2000)
        );
    """)
    op.execute("COMMENT ON TABLE dispute_messages IS 'Append-only dispute thread';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS dispute_messages;")
    op.execute("DROP TABLE IF EXISTS disputes;")
