"""Tests for transaction scopes over SQLAlchemy and duck-typed resources."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from opline.errors import ConfigurationError
from opline.infrastructure.sql import current_transaction, transaction_scope

metadata = MetaData()
charges = Table(
    "charges",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, nullable=False),
    Column("note", String, nullable=True),
)


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


def _count(engine: Engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(charges)).scalar_one()


class TestEngineScope:
    def test_commits_on_success(self, engine: Engine) -> None:
        with transaction_scope(engine) as conn:
            conn.execute(insert(charges).values(user_id=7))
        assert _count(engine) == 1

    def test_rolls_back_on_exception(self, engine: Engine) -> None:
        with pytest.raises(RuntimeError), transaction_scope(engine) as conn:
            conn.execute(insert(charges).values(user_id=7))
            raise RuntimeError("declined")
        assert _count(engine) == 0

    def test_handle_published_while_open(self, engine: Engine) -> None:
        assert current_transaction() is None
        with transaction_scope(engine) as conn:
            assert current_transaction() is conn
        assert current_transaction() is None


class TestSessionScope:
    def test_session_begin_and_commit(self, engine: Engine) -> None:
        with Session(engine) as session:
            with transaction_scope(session) as handle:
                assert handle is session
                session.execute(insert(charges).values(user_id=3))
            assert not session.in_transaction()
        assert _count(engine) == 1

    def test_session_rollback(self, engine: Engine) -> None:
        with Session(engine) as session:
            with pytest.raises(ValueError), transaction_scope(session):
                session.execute(insert(charges).values(user_id=3))
                raise ValueError("bad")
        assert _count(engine) == 0


class TestDuckTypedScope:
    def test_uses_transaction_method(self, resource) -> None:
        with transaction_scope(resource) as handle:
            assert handle is resource
        assert resource.events == ["begin", "commit"]

    def test_rollback_event(self, resource) -> None:
        with pytest.raises(KeyError), transaction_scope(resource):
            raise KeyError("x")
        assert resource.events == ["begin", "rollback"]

    def test_non_transactional_resource(self) -> None:
        with pytest.raises(ConfigurationError, match="not a transactional resource"):
            with transaction_scope(object()):
                pass
