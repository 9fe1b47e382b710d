"""001: create timestamp trigger function and offers table

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE offers (
            id                    VARCHAR(32)     PRIMARY KEY,
            listing_id            VARCHAR(64)     NOT NULL,
            buyer_id              VARCHAR(64)     NOT NULL,
            seller_id             VARCHAR(64)     NOT NULL,
            amount_minor          BIGINT          NOT NULL,
            status                VARCHAR(20)     NOT NULL DEFAULT 'SENT',
            message               VARCHAR(1000),
            counter_amount_minor  BIGINT,
            expires_at            TIMESTAMPTZ     NOT NULL,
            responded_at          TIMESTAMPTZ,
            created_at            TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at            TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_offers_amount_positive  CHECK (amount_minor > 0),
            CONSTRAINT ck_offers_counter_positive CHECK (
                counter_amount_minor IS NULL OR counter_amount_minor > 0
            ),
            CONSTRAINT ck_offers_not_self         CHECK (buyer_id <> seller_id),
            CONSTRAINT ck_offers_status           CHECK (
                status IN ('SENT', 'ACCEPTED', 'COUNTERED', 'EXPIRED', 'WITHDRAWN')
            )
        );
    """)
    # One pending offer per (listing, buyer)
    op.execute("""
        CREATE UNIQUE INDEX uq_offers_pending_per_buyer
        ON offers (listing_id, buyer_id)
        WHERE status = 'SENT';
    """)
    op.execute("""
        CREATE INDEX idx_offers_expiry
        ON offers (expires_at)
        WHERE status = 'SENT';
    """)
    op.execute("CREATE INDEX idx_offers_buyer ON offers (buyer_id, id DESC);")
    op.execute("CREATE INDEX idx_offers_seller ON offers (seller_id, id DESC);")
    op.execute("""
        CREATE TRIGGER trg_offers_updated_at
            BEFORE UPDATE ON offers
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE offers IS 'Buy-side offers against marketplace listings';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS offers;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
