"""
Document Store backing table.

Every collection (cases, their activity and task child collections,
enquiries, client projects, RFQs) is stored as JSON documents in one table.
Child collections use path-style names, e.g. ``cases/<case_id>/activities``.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func

from ..core.database import Base


class StoredDocument(Base):
    """
    One document in one collection.

    Attributes:
        seq: Insertion sequence, breaks ties between equal timestamps
        collection: Collection path the document lives in
        doc_id: Document id, unique within its collection
        data: Document fields
        created_at: Row creation time
        updated_at: Last write time
    """

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        Index("ix_documents_collection_seq", "collection", "seq"),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(255), nullable=False, index=True)
    doc_id = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.current_timestamp(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )

    def __repr__(self) -> str:
        return (
            f"<StoredDocument(collection={self.collection}, "
            f"doc_id={self.doc_id}, seq={self.seq})>"
        )
