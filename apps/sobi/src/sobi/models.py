from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sobi.db import Base


class SobiFileRecord(Base):
    __tablename__ = "sobi_files"
    __table_args__ = (
        Index("ix_sobi_files_archived_published", "archived", "published_date_time"),
    )

    file_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    published_date_time: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    encoding: Mapped[str] = mapped_column(String(32), nullable=False)
    fragment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    staged_date_time: Mapped[datetime] = mapped_column(
        DateTime(),
        nullable=False,
        server_default=sql_text("CURRENT_TIMESTAMP"),
    )
    archived: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=sql_text("false"),
    )
    archived_date_time: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)


class SobiFragmentRecord(Base):
    __tablename__ = "sobi_fragments"
    __table_args__ = (
        UniqueConstraint("file_name", "sequence_no", name="uq_sobi_fragments_file_sequence"),
        Index(
            "ix_sobi_fragments_pending_order",
            "pending_processing",
            "published_date_time",
            "file_name",
            "sequence_no",
        ),
    )

    fragment_id: Mapped[str] = mapped_column(String(192), primary_key=True)
    file_name: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("sobi_files.file_name"),
        nullable=False,
    )
    published_date_time: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    fragment_type: Mapped[str] = mapped_column(String(32), nullable=False)
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    pending_processing: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=sql_text("false"),
    )
    processed_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=sql_text("0"),
    )
    processed_date_time: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(),
        nullable=False,
        server_default=sql_text("CURRENT_TIMESTAMP"),
    )


class CoordinatorLeaseRecord(Base):
    __tablename__ = "coordinator_leases"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    holder: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(),
        nullable=False,
        server_default=sql_text("CURRENT_TIMESTAMP"),
    )
