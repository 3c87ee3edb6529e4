"""unique_open_time_entry_per_user

Revision ID: 8b1e64c0a9d2
Revises: 3f9c2a71d5e4
Create Date: 2026-09-28 10:31:47.006125

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b1e64c0a9d2'
down_revision: Union[str, Sequence[str], None] = '3f9c2a71d5e4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_time_entries_open_per_user
        ON time_entries(user_id)
        WHERE end_time IS NULL;
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP INDEX IF EXISTS uq_time_entries_open_per_user;")
