from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint, Index
from datetime import datetime
from db import Base

class Document(Base):
    """Documento chave/valor (uma linha por coleção + chave).

    Coleções usadas pelo pipeline:
    - judicial_processes: um documento por processId (CanonicalCase)
    - sync_logs: um documento por dia (YYYY-MM-DD) com mapa tribunal -> contadores
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String, nullable=False, index=True)
    key = Column(String, nullable=False, index=True)
    fields = Column(JSON, nullable=False, default=dict)
    write_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("collection", "key", name="uq_document_collection_key"),
        Index('ix_document_collection_updated', 'collection', 'updated_at'),
    )

    def __repr__(self):
        return f"<Document(collection={self.collection}, key={self.key}, writes={self.write_count})>"
