"""SQL text for the version table, one class per database dialect."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Querier(ABC):
    """Builds the dialect-specific queries that manage the version table."""

    @abstractmethod
    def create_table(self, table_name: str) -> str:
        """Return the query that creates the version table."""

    @abstractmethod
    def insert_version(self, table_name: str) -> str:
        """Return the query that records a version as applied."""

    @abstractmethod
    def delete_version(self, table_name: str) -> str:
        """Return the query that removes a version."""

    @abstractmethod
    def get_migration_by_version(self, table_name: str) -> str:
        """Return the query for one version's timestamp and is_applied columns."""

    @abstractmethod
    def list_migrations(self, table_name: str) -> str:
        """Return the query for all version_id and is_applied columns, newest first."""


class _TemplateQuerier(Querier):
    """A querier whose queries are class-level templates taking the table name."""

    _create_table: str
    _insert_version: str
    _delete_version: str
    _get_migration_by_version: str
    _list_migrations: str

    def create_table(self, table_name: str) -> str:
        return self._create_table % table_name

    def insert_version(self, table_name: str) -> str:
        return self._insert_version % table_name

    def delete_version(self, table_name: str) -> str:
        return self._delete_version % table_name

    def get_migration_by_version(self, table_name: str) -> str:
        return self._get_migration_by_version % table_name

    def list_migrations(self, table_name: str) -> str:
        return self._list_migrations % table_name


class Postgres(_TemplateQuerier):
    """PostgreSQL queries."""

    _create_table = """CREATE TABLE %s (
		id serial NOT NULL,
		version_id bigint NOT NULL,
		is_applied boolean NOT NULL,
		tstamp timestamp NULL default now(),
		PRIMARY KEY(id)
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = "DELETE FROM %s WHERE version_id=$1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Mysql(_TemplateQuerier):
    """MySQL queries."""

    _create_table = """CREATE TABLE %s (
		id serial NOT NULL,
		version_id bigint NOT NULL,
		is_applied boolean NOT NULL,
		tstamp timestamp NULL default now(),
		PRIMARY KEY(id)
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM %s WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Sqlite3(_TemplateQuerier):
    """SQLite queries."""

    _create_table = """CREATE TABLE %s (
		id INTEGER PRIMARY KEY AUTOINCREMENT,
		version_id INTEGER NOT NULL,
		is_applied INTEGER NOT NULL,
		tstamp TIMESTAMP DEFAULT (datetime('now'))
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM %s WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Sqlserver(_TemplateQuerier):
    """Microsoft SQL Server queries."""

    _create_table = """CREATE TABLE %s (
		id INT NOT NULL IDENTITY(1,1) PRIMARY KEY,
		version_id BIGINT NOT NULL,
		is_applied BIT NOT NULL,
		tstamp DATETIME NULL DEFAULT CURRENT_TIMESTAMP
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES (@p1, @p2)"
    _delete_version = "DELETE FROM %s WHERE version_id=@p1"
    _get_migration_by_version = (
        "SELECT TOP 1 tstamp, is_applied FROM %s WHERE version_id=@p1 ORDER BY tstamp DESC"
    )
    _list_migrations = "SELECT version_id, is_applied FROM %s ORDER BY id DESC"


class Redshift(_TemplateQuerier):
    """Amazon Redshift queries."""

    _create_table = """CREATE TABLE %s (
		id integer NOT NULL identity(1, 1),
		version_id bigint NOT NULL,
		is_applied boolean NOT NULL,
		tstamp timestamp NULL default sysdate,
		PRIMARY KEY(id)
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = "DELETE FROM %s WHERE version_id=$1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Tidb(_TemplateQuerier):
    """TiDB queries."""

    _create_table = """CREATE TABLE %s (
		id BIGINT UNSIGNED NOT NULL AUTO_INCREMENT UNIQUE,
		version_id bigint NOT NULL,
		is_applied boolean NOT NULL,
		tstamp timestamp NULL default now(),
		PRIMARY KEY(id)
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM %s WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Clickhouse(_TemplateQuerier):
    """ClickHouse queries."""

    _create_table = """CREATE TABLE IF NOT EXISTS %s (
		version_id Int64,
		is_applied UInt8,
		date Date default now(),
		tstamp DateTime default now()
	  )
	  ENGINE = MergeTree()
		ORDER BY (date)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = (
        "ALTER TABLE %s DELETE WHERE version_id = $1 SETTINGS mutations_sync = 2"
    )
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied FROM %s ORDER BY version_id DESC"


class Vertica(_TemplateQuerier):
    """Vertica queries."""

    _create_table = """CREATE TABLE %s (
		id identity(1,1) NOT NULL,
		version_id bigint NOT NULL,
		is_applied boolean NOT NULL,
		tstamp timestamp NULL default now(),
		PRIMARY KEY(id)
	)"""
    _insert_version = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM %s WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from %s ORDER BY id DESC"


class Ydb(_TemplateQuerier):
    """YDB queries."""

    _create_table = """CREATE TABLE %s (
		version_id Uint64,
		is_applied Bool,
		tstamp Timestamp,

		PRIMARY KEY(version_id)
	)"""
    _insert_version = """INSERT INTO %s (
		version_id, 
		is_applied, 
		tstamp
	) VALUES (
		CAST($1 AS Uint64), 
		$2, 
		CurrentUtcTimestamp()
	)"""
    _delete_version = "DELETE FROM %s WHERE version_id = $1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = """
	SELECT version_id, is_applied, tstamp AS __discard_column_tstamp 
	FROM %s ORDER BY __discard_column_tstamp DESC"""


class Turso(Sqlite3):
    """Turso (libSQL) queries, identical to SQLite."""