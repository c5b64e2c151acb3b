import sqlite3

import pytest
from sqlalchemy import create_engine, event, text

from packagebug.errors import PersistenceError
from packagebug.storage.token_store import TokenStore


@pytest.fixture()
def store(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tokens.db'}", connect_args={"check_same_thread": False}
    )
    s = TokenStore(engine)
    s.create_schema()
    return s


def test_missing_key_yields_empty_token(store):
    assert store.get_token("github.com/pyk/byten") == ""


def test_first_save_inserts_row(store):
    assert store.save_token("github.com/pyk/byten", '"v1"') is True
    assert store.get_token("github.com/pyk/byten") == '"v1"'


def test_save_replaces_token_it_was_based_on(store):
    store.save_token("github.com/pyk/byten", '"v1"')

    assert store.save_token("github.com/pyk/byten", '"v2"', expected='"v1"') is True
    assert store.get_token("github.com/pyk/byten") == '"v2"'


def test_save_based_on_outdated_token_keeps_newer_value(store):
    store.save_token("github.com/pyk/byten", '"v1"')
    store.save_token("github.com/pyk/byten", '"v2"', expected='"v1"')

    # A slower fetch that also started from v1 finishes last.
    assert store.save_token("github.com/pyk/byten", '"v1b"', expected='"v1"') is False
    assert store.get_token("github.com/pyk/byten") == '"v2"'


def test_null_token_row_counts_as_empty(store):
    with store._engine.begin() as conn:
        conn.execute(text("INSERT INTO packages (package_path, package_etag) VALUES ('github.com/a/b', NULL)"))

    assert store.get_token("github.com/a/b") == ""
    assert store.save_token("github.com/a/b", '"v1"', expected="") is True
    assert store.get_token("github.com/a/b") == '"v1"'


def test_keys_are_independent(store):
    store.save_token("github.com/a/one", '"x"')
    store.save_token("github.com/a/two", '"y"')

    assert store.get_token("github.com/a/one") == '"x"'
    assert store.get_token("github.com/a/two") == '"y"'


def test_database_errors_raise_persistence_error(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    s = TokenStore(engine)

    with pytest.raises(PersistenceError):
        s.get_token("github.com/pyk/byten")
    with pytest.raises(PersistenceError):
        s.save_token("github.com/pyk/byten", '"v1"')


def test_failed_write_rolls_back_and_keeps_prior_token(store):
    store.save_token("github.com/pyk/byten", '"v1"')
    engine = store._engine

    def fail_after_update(conn, cursor, statement, parameters, context, executemany):  # noqa: ARG001
        if statement.lstrip().upper().startswith("UPDATE"):
            raise sqlite3.OperationalError("disk I/O error")

    event.listen(engine, "after_cursor_execute", fail_after_update)
    try:
        with pytest.raises(PersistenceError):
            store.save_token("github.com/pyk/byten", '"v2"', expected='"v1"')
    finally:
        event.remove(engine, "after_cursor_execute", fail_after_update)

    assert store.get_token("github.com/pyk/byten") == '"v1"'
    assert store.save_token("github.com/pyk/byten", '"v2"', expected='"v1"') is True
