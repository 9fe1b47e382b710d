"""006: create dispute_evidence table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE dispute_evidence (
            id              VARCHAR(32)     PRIMARY KEY,
            dispute_id      VARCHAR(32)     NOT NULL REFERENCES disputes (id),
            uploaded_by_id  VARCHAR(64)     NOT NULL,
            uploader_role   VARCHAR(10)     NOT NULL,
            type            VARCHAR(10)     NOT NULL DEFAULT 'OTHER',
            url             VARCHAR(2048)   NOT NULL,
            description     VARCHAR(500),
            mime_type       VARCHAR(100),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_dispute_evidence_type CHECK (
                type IN ('PHOTO', 'DOCUMENT', 'VIDEO', 'OTHER')
            ),
            CONSTRAINT ck_dispute_evidence_role CHECK (
                uploader_role IN ('BUYER', 'SELLER', 'ADMIN')
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_dispute_evidence_dispute
        ON dispute_evidence (dispute_id, id DESC);
    """)
    op.execute("COMMENT ON TABLE dispute_evidence IS 'Append-only links to dispute files';")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_dispute_evidence_dispute;")
    op.execute("DROP TABLE IF EXISTS dispute_evidence;")
