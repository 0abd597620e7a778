"""Widen webhook_logs.document_version to text

Revision ID: 20261019_webhook_log_version_text
Revises: 20261019_collapse_legacy_connections
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_webhook_log_version_text"
down_revision: Union[str, None] = "20261019_collapse_legacy_connections"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    if "webhook_logs" not in sa.inspect(bind).get_table_names():
        return
    with op.batch_alter_table("webhook_logs") as batch:
        batch.alter_column(
            "document_version",
            existing_type=sa.String(length=64),
            type_=sa.Text(),
            existing_nullable=False,
        )


def downgrade() -> None:
    with op.batch_alter_table("webhook_logs") as batch:
        batch.alter_column(
            "document_version",
            existing_type=sa.Text(),
            type_=sa.String(length=64),
            existing_nullable=False,
        )
