"""postgis_location_column

Revision ID: c47d19e2b6a3
Revises: 8b1e64c0a9d2
Create Date: 2026-10-02 16:08:22.730514

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c47d19e2b6a3'
down_revision: Union[str, Sequence[str], None] = '8b1e64c0a9d2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _postgis_installed() -> bool:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return False
    found = bind.execute(
        sa.text("SELECT 1 FROM pg_extension WHERE extname = 'postgis'")
    ).scalar()
    return bool(found)


def upgrade() -> None:
    """Upgrade schema.

    Only where PostGIS is installed; elsewhere location_logs keeps plain
    latitude/longitude columns.
    """
    if not _postgis_installed():
        return

    op.execute("ALTER TABLE location_logs ADD COLUMN IF NOT EXISTS location geography(Point, 4326);")
    op.execute(
        """
        UPDATE location_logs
        SET location = ST_SetSRID(ST_MakePoint(longitude::float8, latitude::float8), 4326)::geography
        WHERE location IS NULL;
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_location_logs_location ON location_logs USING GIST (location);"
    )


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("DROP INDEX IF EXISTS ix_location_logs_location;")
    op.execute("ALTER TABLE location_logs DROP COLUMN IF EXISTS location;")
