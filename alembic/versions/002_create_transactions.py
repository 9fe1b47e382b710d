"""002: create transactions table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transactions (
            id                     VARCHAR(32)     PRIMARY KEY,
            listing_id             VARCHAR(64)     NOT NULL,
            offer_id               VARCHAR(32)     REFERENCES offers (id),
            buyer_id               VARCHAR(64)     NOT NULL,
            seller_id              VARCHAR(64)     NOT NULL,
            agreed_price_minor     BIGINT          NOT NULL,
            status                 VARCHAR(30)     NOT NULL DEFAULT 'CREATED',
            escrow_requested_at    TIMESTAMPTZ,
            funded_at              TIMESTAMPTZ,
            verification_deadline  TIMESTAMPTZ,
            resolved_at            TIMESTAMPTZ,
            closed_at              TIMESTAMPTZ,
            active_dispute_id      VARCHAR(32),
            resolution_outcome     VARCHAR(10),
            split_seller_bps       INT,
            needs_review           BOOLEAN         NOT NULL DEFAULT FALSE,
            review_reason          TEXT,
            created_at             TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at             TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_transactions_offer           UNIQUE (offer_id),
            CONSTRAINT ck_transactions_price_positive  CHECK (agreed_price_minor > 0),
            CONSTRAINT ck_transactions_parties         CHECK (buyer_id <> seller_id),
            CONSTRAINT ck_transactions_status          CHECK (
                status IN ('CREATED', 'ESCROW_REQUESTED', 'FUNDED', 'VERIFICATION_PERIOD',
                           'DISPUTED', 'READY_TO_RELEASE', 'REFUND_PENDING',
                           'RELEASED', 'REFUNDED', 'CLOSED')
            ),
            CONSTRAINT ck_transactions_outcome         CHECK (
                resolution_outcome IS NULL OR resolution_outcome IN ('BUYER', 'SELLER', 'SPLIT')
            ),
            CONSTRAINT ck_transactions_split_bps       CHECK (
                split_seller_bps IS NULL OR split_seller_bps BETWEEN 1 AND 9999
            ),
            CONSTRAINT ck_transactions_disputed        CHECK (
                status <> 'DISPUTED' OR active_dispute_id IS NOT NULL
            )
        );
    """)
    # A listing cannot be double-sold while a transaction is active
    op.execute("""
        CREATE UNIQUE INDEX uq_transactions_active_listing
        ON transactions (listing_id)
        WHERE status NOT IN ('RELEASED', 'REFUNDED', 'CLOSED');
    """)
    op.execute("""
        CREATE INDEX idx_transactions_sweep
        ON transactions (status, verification_deadline)
        WHERE status IN ('FUNDED', 'VERIFICATION_PERIOD');
    """)
    op.execute("CREATE INDEX idx_transactions_buyer ON transactions (buyer_id, id DESC);")
    op.execute("CREATE INDEX idx_transactions_seller ON transactions (seller_id, id DESC);")
    op.execute("""
        CREATE TRIGGER trg_transactions_updated_at
            BEFORE UPDATE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE transactions IS 'Escrow transactions; rows are never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions;")
