"""create sobi_files table

Revision ID: 20261012_0001
Revises:
Create Date: 2026-10-12 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261012_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sobi_files",
        sa.Column("file_name", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("published_date_time", sa.DateTime(), nullable=False),
        sa.Column("encoding", sa.String(length=32), nullable=False),
        sa.Column("fragment_count", sa.Integer(), nullable=True),
        sa.Column(
            "staged_date_time",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("archived_date_time", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_sobi_files_archived_published",
        "sobi_files",
        ["archived", "published_date_time"],
    )


def downgrade() -> None:
    op.drop_index("ix_sobi_files_archived_published", table_name="sobi_files")
    op.drop_table("sobi_files")
