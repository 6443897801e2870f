import sqlite3
from datetime import datetime

import pytest

from gander.dialect import (
    Dialect,
    GetMigrationResult,
    ListMigrationsResult,
    Store,
    new_store,
)

TABLE = "goose_db_version"


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    s = new_store(Dialect.SQLITE3)
    s.create_version_table(conn, TABLE)
    return s


def test_dialect_from_string():
    assert Dialect("postgres") is Dialect.POSTGRES
    assert str(Dialect.TURSO) == "turso"


@pytest.mark.parametrize("dialect", list(Dialect))
def test_new_store_for_every_dialect(dialect):
    s = new_store(dialect)
    assert isinstance(s, Store)
    assert TABLE in s.querier.list_migrations(TABLE)


def test_new_store_picks_querier():
    sqlite_insert = "INSERT INTO tbl (version_id, is_applied) VALUES (?, ?)"
    assert new_store("sqlite3").querier.insert_version("tbl") == sqlite_insert
    assert new_store("turso").querier.insert_version("tbl") == sqlite_insert
    assert (
        new_store("postgres").querier.delete_version("tbl")
        == "DELETE FROM tbl WHERE version_id=$1"
    )
    assert "ENGINE = MergeTree()" in new_store(Dialect.CLICKHOUSE).querier.create_table("tbl")


def test_new_store_unknown_dialect():
    with pytest.raises(ValueError, match="unknown querier dialect: oracle"):
        new_store("oracle")


def test_list_empty_table(conn, store):
    assert store.list_migrations(conn, TABLE) == []


def test_insert_and_list_newest_first(conn, store):
    for version in (0, 1, 2):
        store.insert_version(conn, TABLE, version)
    assert store.list_migrations(conn, TABLE) == [
        ListMigrationsResult(version_id=2, is_applied=True),
        ListMigrationsResult(version_id=1, is_applied=True),
        ListMigrationsResult(version_id=0, is_applied=True),
    ]


def test_delete_version(conn, store):
    store.insert_version(conn, TABLE, 1)
    store.insert_version(conn, TABLE, 2)
    store.delete_version(conn, TABLE, 2)
    versions = [r.version_id for r in store.list_migrations(conn, TABLE)]
    assert versions == [1]


def test_get_migration(conn, store):
    store.insert_version(conn, TABLE, 5)
    result = store.get_migration(conn, TABLE, 5)
    assert isinstance(result, GetMigrationResult)
    assert result.is_applied is True
    assert isinstance(result.timestamp, datetime)


def test_get_missing_migration(conn, store):
    with pytest.raises(LookupError):
        store.get_migration(conn, TABLE, 42)


def test_missing_table_error_passes_through(conn):
    s = new_store(Dialect.SQLITE3)
    with pytest.raises(sqlite3.OperationalError):
        s.list_migrations(conn, "no_such_table")


def test_create_twice_fails(conn, store):
    with pytest.raises(sqlite3.OperationalError):
        store.create_version_table(conn, TABLE)