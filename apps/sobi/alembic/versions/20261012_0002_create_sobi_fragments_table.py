"""create sobi_fragments table

Revision ID: 20261012_0002
Revises: 20261012_0001
Create Date: 2026-10-12 09:45:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261012_0002"
down_revision: Union[str, Sequence[str], None] = "20261012_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sobi_fragments",
        sa.Column("fragment_id", sa.String(length=192), primary_key=True, nullable=False),
        sa.Column(
            "file_name",
            sa.String(length=128),
            sa.ForeignKey("sobi_files.file_name"),
            nullable=False,
        ),
        sa.Column("published_date_time", sa.DateTime(), nullable=False),
        sa.Column("fragment_type", sa.String(length=32), nullable=False),
        sa.Column("sequence_no", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column(
            "pending_processing",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_date_time", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("file_name", "sequence_no", name="uq_sobi_fragments_file_sequence"),
    )
    op.create_index(
        "ix_sobi_fragments_pending_order",
        "sobi_fragments",
        ["pending_processing", "published_date_time", "file_name", "sequence_no"],
    )


def downgrade() -> None:
    op.drop_index("ix_sobi_fragments_pending_order", table_name="sobi_fragments")
    op.drop_table("sobi_fragments")
