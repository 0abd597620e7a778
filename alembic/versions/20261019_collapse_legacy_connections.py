"""Copy legacy user_connections rows into connections

Revision ID: 20261019_collapse_legacy_connections
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.connections import migrate_legacy_connections
from app.models.connection import Connection


# revision identifiers, used by Alembic.
revision: str = "20261019_collapse_legacy_connections"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    tables = sa.inspect(bind).get_table_names()

    if "connections" not in tables:
        Connection.__table__.create(bind)
    if "user_connections" not in tables:
        return

    session = Session(bind=bind)
    try:
        migrate_legacy_connections(session)
    finally:
        session.close()


def downgrade() -> None:
    # data copy only; legacy rows were never modified
    pass
