import sqlite3

import pytest

from gander.dialectquery import (
    Clickhouse,
    Mysql,
    Postgres,
    Querier,
    Redshift,
    Sqlite3,
    Sqlserver,
    Tidb,
    Turso,
    Vertica,
    Ydb,
)


def test_querier_is_abstract():
    with pytest.raises(TypeError):
        Querier()


def test_every_query_names_the_table():
    queriers = [
        Postgres(),
        Mysql(),
        Sqlite3(),
        Sqlserver(),
        Redshift(),
        Tidb(),
        Clickhouse(),
        Vertica(),
        Ydb(),
        Turso(),
    ]
    table = "goose_db_version"
    for q in queriers:
        queries = [
            q.create_table(table),
            q.insert_version(table),
            q.delete_version(table),
            q.get_migration_by_version(table),
            q.list_migrations(table),
        ]
        for query in queries:
            assert table in query
            assert "%s" not in query


def test_list_query_selects_version_and_applied():
    plain = "SELECT version_id, is_applied from t ORDER BY id DESC"
    assert Postgres().list_migrations("t") == plain
    assert Mysql().list_migrations("t") == plain
    assert Sqlite3().list_migrations("t") == plain
    assert Redshift().list_migrations("t") == plain
    assert Tidb().list_migrations("t") == plain
    assert Vertica().list_migrations("t") == plain
    assert Turso().list_migrations("t") == plain
    assert (
        Sqlserver().list_migrations("t")
        == "SELECT version_id, is_applied FROM t ORDER BY id DESC"
    )
    assert (
        Clickhouse().list_migrations("t")
        == "SELECT version_id, is_applied FROM t ORDER BY version_id DESC"
    )
    ydb_query = Ydb().list_migrations("t")
    assert "SELECT version_id, is_applied" in ydb_query
    assert "ORDER BY __discard_column_tstamp DESC" in ydb_query


def test_sqlite_insert_query():
    assert (
        Sqlite3().insert_version("tbl")
        == "INSERT INTO tbl (version_id, is_applied) VALUES (?, ?)"
    )


def test_postgres_uses_numbered_placeholders():
    assert Postgres().delete_version("tbl") == "DELETE FROM tbl WHERE version_id=$1"
    assert "$2" in Postgres().insert_version("tbl")


def test_sqlserver_uses_named_placeholders():
    assert Sqlserver().delete_version("tbl") == "DELETE FROM tbl WHERE version_id=@p1"
    assert Sqlserver().get_migration_by_version("tbl").startswith("SELECT TOP 1")


def test_clickhouse_specifics():
    assert "ENGINE = MergeTree()" in Clickhouse().create_table("tbl")
    assert "mutations_sync = 2" in Clickhouse().delete_version("tbl")


def test_turso_matches_sqlite():
    turso, lite = Turso(), Sqlite3()
    assert turso.create_table("x") == lite.create_table("x")
    assert turso.insert_version("x") == lite.insert_version("x")
    assert turso.delete_version("x") == lite.delete_version("x")
    assert turso.get_migration_by_version("x") == lite.get_migration_by_version("x")
    assert turso.list_migrations("x") == lite.list_migrations("x")


def test_sqlite_queries_execute():
    q = Sqlite3()
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute(q.create_table("versions"))
        conn.execute(q.insert_version("versions"), (7, True))
        conn.execute(q.insert_version("versions"), (9, True))
        rows = conn.execute(q.list_migrations("versions")).fetchall()
        assert rows == [(9, 1), (7, 1)]
        conn.execute(q.delete_version("versions"), (9,))
        row = conn.execute(q.get_migration_by_version("versions"), (7,)).fetchone()
        assert row[1] == 1
        assert conn.execute(q.list_migrations("versions")).fetchall() == [(7, 1)]
    finally:
        conn.close()