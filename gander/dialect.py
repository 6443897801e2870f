"""Database dialects and the store that reads and writes the version table."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from . import dialectquery
from .dialectquery import Querier


class Dialect(str, Enum):
    """A supported database dialect."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE3 = "sqlite3"
    SQLSERVER = "sqlserver"
    REDSHIFT = "redshift"
    TIDB = "tidb"
    CLICKHOUSE = "clickhouse"
    VERTICA = "vertica"
    YDB = "ydb"
    TURSO = "turso"

    def __str__(self) -> str:
        return self.value


_QUERIERS: dict[Dialect, type[Querier]] = {
    Dialect.POSTGRES: dialectquery.Postgres,
    Dialect.MYSQL: dialectquery.Mysql,
    Dialect.SQLITE3: dialectquery.Sqlite3,
    Dialect.SQLSERVER: dialectquery.Sqlserver,
    Dialect.REDSHIFT: dialectquery.Redshift,
    Dialect.TIDB: dialectquery.Tidb,
    Dialect.CLICKHOUSE: dialectquery.Clickhouse,
    Dialect.VERTICA: dialectquery.Vertica,
    Dialect.YDB: dialectquery.Ydb,
    Dialect.TURSO: dialectquery.Turso,
}


@dataclass(frozen=True)
class GetMigrationResult:
    """One version's applied flag and the time it was recorded."""

    is_applied: bool
    timestamp: datetime


@dataclass(frozen=True)
class ListMigrationsResult:
    """One row of the version table."""

    version_id: int
    is_applied: bool


def _to_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValueError(f"cannot interpret {value!r} as a timestamp")


@dataclass
class Store:
    """Runs version-table queries on a DB-API connection.

    The connection may be inside a transaction or not; committing is left to
    the caller, and database errors are passed through unchanged.
    """

    querier: Querier

    def _execute(self, conn, query: str, params: tuple = ()):
        cursor = conn.cursor()
        cursor.execute(query, params)
        return cursor

    def create_version_table(self, conn, table_name: str) -> None:
        """Create the version table."""
        with closing(self._execute(conn, self.querier.create_table(table_name))):
            pass

    def insert_version(self, conn, table_name: str, version: int) -> None:
        """Record ``version`` as applied."""
        query = self.querier.insert_version(table_name)
        with closing(self._execute(conn, query, (version, True))):
            pass

    def delete_version(self, conn, table_name: str, version: int) -> None:
        """Remove every record of ``version``."""
        query = self.querier.delete_version(table_name)
        with closing(self._execute(conn, query, (version,))):
            pass

    def get_migration(self, conn, table_name: str, version: int) -> GetMigrationResult:
        """Return the latest record of ``version``; raise LookupError if there is none."""
        query = self.querier.get_migration_by_version(table_name)
        with closing(self._execute(conn, query, (version,))) as cursor:
            row = cursor.fetchone()
        if row is None:
            raise LookupError("no rows in result set")
        return GetMigrationResult(is_applied=bool(row[1]), timestamp=_to_datetime(row[0]))

    def list_migrations(self, conn, table_name: str) -> list[ListMigrationsResult]:
        """Return all records, newest first; an empty list if there are none."""
        query = self.querier.list_migrations(table_name)
        with closing(self._execute(conn, query)) as cursor:
            rows = cursor.fetchall()
        return [
            ListMigrationsResult(version_id=int(row[0]), is_applied=bool(row[1]))
            for row in rows
        ]


def new_store(dialect: Dialect | str) -> Store:
    """Return a Store for ``dialect``; raise ValueError for an unknown one."""
    try:
        key = Dialect(dialect)
    except ValueError:
        raise ValueError(f"unknown querier dialect: {dialect}") from None
    return Store(querier=_QUERIERS[key]())