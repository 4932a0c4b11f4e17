"""SQLAlchemy ORM models for the Blood Bank document store."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Channel carrying the collection path of every changed document
NOTIFY_CHANNEL = "bloodbank_documents"


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class InventoryDocument(Base):
    """A JSON document addressed by collection path and document id."""

    __tablename__ = "bloodbank_documents"

    collection_path: Mapped[str] = mapped_column(Text, primary_key=True)
    doc_id: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    updated_ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_bloodbank_documents_path", "collection_path"),
    )


NOTIFY_FUNCTION_SQL = f"""
CREATE OR REPLACE FUNCTION bloodbank_documents_notify() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify('{NOTIFY_CHANNEL}', COALESCE(NEW.collection_path, OLD.collection_path));
    RETURN NULL;
END;
$$ LANGUAGE plpgsql
"""

NOTIFY_TRIGGER_SQL = """
CREATE TRIGGER bloodbank_documents_changed
AFTER INSERT OR UPDATE OR DELETE ON bloodbank_documents
FOR EACH ROW EXECUTE FUNCTION bloodbank_documents_notify()
"""
