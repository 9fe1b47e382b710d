"""003: create payments table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE payments (
            id              VARCHAR(32)     PRIMARY KEY,
            transaction_id  VARCHAR(32)     NOT NULL REFERENCES transactions (id),
            direction       VARCHAR(10)     NOT NULL,
            amount_minor    BIGINT          NOT NULL,
            status          VARCHAR(10)     NOT NULL DEFAULT 'PENDING',
            provider_ref    VARCHAR(128)    NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payments_provider_ref  UNIQUE (provider_ref),
            CONSTRAINT ck_payments_amount        CHECK (amount_minor >= 0),
            CONSTRAINT ck_payments_direction     CHECK (direction IN ('FUNDING', 'RELEASE', 'REFUND')),
            CONSTRAINT ck_payments_status        CHECK (status IN ('PENDING', 'SUCCESS', 'FAILED'))
        );
    """)
    # At most one successful payment per (transaction, direction)
    op.execute("""
        CREATE UNIQUE INDEX uq_payments_success_per_direction
        ON payments (transaction_id, direction)
        WHERE status = 'SUCCESS';
    """)
    op.execute("CREATE INDEX idx_payments_transaction ON payments (transaction_id, id);")
    op.execute("""
        CREATE TRIGGER trg_payments_updated_at
            BEFORE UPDATE ON payments
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE payments IS 'Gateway payment records; provider_ref is the idempotency key';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payments;")
