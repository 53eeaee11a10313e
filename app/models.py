"""
SQLAlchemy ORM models for database tables.

The database only holds opaque blobs addressed by key, the same shape as a
browser's localStorage. For the message record itself, see schemas.py.
"""

from sqlalchemy import Column, String, Text

from app.storage import Base


class KeyValueEntry(Base):
    """
    One stored blob.

    Table: kv_store
    Primary Key: key (one blob per key, overwritten on every write)
    """
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)
