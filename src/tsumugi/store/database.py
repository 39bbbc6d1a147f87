from __future__ import annotations
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine


def make_engine(db_url: str):
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, or every session would see its own empty database
        return create_engine(
            db_url, echo=False,
            connect_args={"check_same_thread": False}, poolclass=StaticPool,
        )
    if db_url.startswith("sqlite"):
        return create_engine(db_url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(db_url, echo=False)


def create_tables(engine) -> None:
    SQLModel.metadata.create_all(engine)


def session_scope(engine) -> Session:
    return Session(engine)
