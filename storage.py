"""
Armazenamento de Documentos
===========================

Contrato chave/valor usado pelo writer com detecção de mudanças e pelo log
diário de sincronização: `get` devolve {exists, fields} e `set_merge` faz
merge de primeiro nível dos campos no documento.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

import models

CASES_COLLECTION = "judicial_processes"
SYNC_LOGS_COLLECTION = "sync_logs"


class StoredDocument(BaseModel):
    exists: bool
    fields: Dict[str, Any] = Field(default_factory=dict)


class DocumentStore:
    """Contrato base para o armazenamento de documentos (cobrado por escrita)."""

    def get(self, collection: str, key: str) -> StoredDocument:
        raise NotImplementedError

    def set_merge(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError


class SqlDocumentStore(DocumentStore):
    """Implementação sobre SQLAlchemy: uma linha por documento, payload em JSON."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def _find(self, db: Session, collection: str, key: str) -> Optional[models.Document]:
        stmt = select(models.Document).where(
            models.Document.collection == collection,
            models.Document.key == key
        )
        return db.execute(stmt).scalar_one_or_none()

    def get(self, collection: str, key: str) -> StoredDocument:
        db = self.session_factory()
        try:
            doc = self._find(db, collection, key)
            if doc is None:
                return StoredDocument(exists=False)
            return StoredDocument(exists=True, fields=dict(doc.fields or {}))
        finally:
            db.close()

    def set_merge(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            doc = self._find(db, collection, key)
            if doc is None:
                doc = models.Document(collection=collection, key=key, fields=dict(fields), write_count=1)
                db.add(doc)
            else:
                merged = dict(doc.fields or {})
                merged.update(fields)
                # Reatribuir o dict para o SQLAlchemy detectar a mudança na coluna JSON
                doc.fields = merged
                doc.write_count = (doc.write_count or 0) + 1
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
