"""SQL-backed document store with immutable version history"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint, func
from sqlmodel import Field, Session, SQLModel, select

from tsumugi.core.utils.diff import unified_diff
from tsumugi.core.utils.hashing import sha256
from tsumugi.store.base import DocumentNotFoundError, DocumentStore
from tsumugi.store.database import create_tables, make_engine, session_scope


class StoredDocument(SQLModel, table=True):
    __tablename__ = "documents"
    doc_id: str = Field(primary_key=True)
    text: str = Field(..., sa_column=Column(Text, nullable=False))
    hash: str = Field(..., sa_column=Column(String(64), nullable=False))
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


class DocumentVersion(SQLModel, table=True):
    __tablename__ = "document_versions"
    __table_args__ = (UniqueConstraint("doc_id", "version_num"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    doc_id: str = Field(foreign_key="documents.doc_id", index=True, nullable=False)
    version_num: int = Field(..., nullable=False)
    text: str = Field(..., sa_column=Column(Text, nullable=False))
    hash: str = Field(..., sa_column=Column(String(64), nullable=False))
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


def save_version(session: Session, doc: StoredDocument, max_versions: int = 10) -> DocumentVersion:
    """Snapshot the document's current text as the next version, then prune."""
    latest = session.exec(
        select(func.max(DocumentVersion.version_num))
        .where(DocumentVersion.doc_id == doc.doc_id)
    ).one()

    version = DocumentVersion(
        doc_id=doc.doc_id,
        version_num=(latest or 0) + 1,
        text=doc.text,
        hash=doc.hash,
    )
    session.add(version)
    session.flush()

    if max_versions > 0:
        prune_versions(session, doc.doc_id, max_versions)
    return version


def prune_versions(session: Session, doc_id: str, max_versions: int) -> int:
    """Delete oldest versions beyond max_versions. Returns count deleted. No-op if max_versions=0."""
    if max_versions == 0:
        return 0

    versions = session.exec(
        select(DocumentVersion)
        .where(DocumentVersion.doc_id == doc_id)
        .order_by(DocumentVersion.version_num.asc())
    ).all()

    excess = len(versions) - max_versions
    if excess <= 0:
        return 0
    for v in versions[:excess]:
        session.delete(v)
    session.flush()
    return excess


class SqlStore(DocumentStore):
    """Keeps the current text in `documents` and every replaced text in `document_versions`."""

    def __init__(self, engine, max_versions: int = 10):
        self.engine = engine
        self.max_versions = max_versions
        create_tables(engine)

    @classmethod
    def from_url(cls, db_url: str, max_versions: int = 10) -> "SqlStore":
        return cls(make_engine(db_url), max_versions=max_versions)

    def read(self, doc_id: str) -> str:
        with session_scope(self.engine) as session:
            doc = session.get(StoredDocument, doc_id)
            if doc is None:
                raise DocumentNotFoundError(doc_id)
            return doc.text

    def write(self, doc_id: str, text: str) -> None:
        digest = sha256(text)
        with session_scope(self.engine) as session:
            doc = session.get(StoredDocument, doc_id)
            if doc is None:
                session.add(StoredDocument(doc_id=doc_id, text=text, hash=digest))
            elif doc.hash != digest:
                if self.max_versions > 0:
                    save_version(session, doc, max_versions=self.max_versions)
                doc.text = text
                doc.hash = digest
                doc.updated_at = datetime.now()
                session.add(doc)
            session.commit()

    def list_versions(self, doc_id: str) -> list[DocumentVersion]:
        """All stored versions for a document, oldest first."""
        with session_scope(self.engine) as session:
            return list(
                session.exec(
                    select(DocumentVersion)
                    .where(DocumentVersion.doc_id == doc_id)
                    .order_by(DocumentVersion.version_num.asc())
                ).all()
            )

    def diff_versions(self, doc_id: str, from_num: int, to_num: Optional[int] = None, context: int = 3) -> list[str]:
        """Unified diff between two versions; to_num=None compares against the current text.

        Raises ValueError if a version is missing.
        """
        with session_scope(self.engine) as session:
            def _get(num: int) -> DocumentVersion:
                v = session.exec(
                    select(DocumentVersion)
                    .where(DocumentVersion.doc_id == doc_id)
                    .where(DocumentVersion.version_num == num)
                ).one_or_none()
                if v is None:
                    raise ValueError(f"Version {num} not found for document {doc_id}")
                return v

            old = _get(from_num).text
            if to_num is None:
                doc = session.get(StoredDocument, doc_id)
                if doc is None:
                    raise DocumentNotFoundError(doc_id)
                return unified_diff(old, doc.text, f"v{from_num}", "current", context)
            return unified_diff(old, _get(to_num).text, f"v{from_num}", f"v{to_num}", context)
