# gander

Versioned database migrations for Python DB-API connections.

Migrations are annotated `.sql` files, or functions you register, each named
`NNNN_description.<ext>` where `NNNN` is a positive version number. Every
applied version is recorded in a version table whose layout depends on the
database dialect. The dialects are postgres, mysql, sqlite3, sqlserver,
redshift, tidb, clickhouse, vertica, ydb and turso (`gander.dialect.Dialect`).

The package has no dependencies outside the standard library. You supply the
database connection yourself.

## SQL migration files

```sql
-- +goose Up
CREATE TABLE post (id int NOT NULL, title text, PRIMARY KEY(id));

-- +goose Down
DROP TABLE post;
```

Annotations a file may use:

- `-- +goose Up` must come first. `-- +goose Down` is optional.
- `-- +goose StatementBegin` / `-- +goose StatementEnd` enclose a statement
  that contains semicolons of its own, such as a PL/pgSQL function body.
  Outside these, a statement ends at a line whose last word before any `--`
  comment ends in `;`.
- `-- +goose NO TRANSACTION` runs the file outside a transaction.
- `-- +goose ENVSUB ON` / `-- +goose ENVSUB OFF` turn substitution of
  `$VAR` and `${VAR}` from the environment on and off. Supported forms are
  `${VAR:-word}`, `${VAR-word}`, `${VAR:?msg}`, `${VAR?msg}` and
  `${VAR:offset[:length]}`. `gander.sqlparser.expand_env` does the same
  substitution on its own.

Malformed files raise `gander.sqlparser.SQLParseError`.

## Parsing a file

```python
from gander.sqlparser import Direction, parse_all_from_fs, parse_sql_migration

with open("migrations/00001_create_post.sql") as f:
    statements, use_tx = parse_sql_migration(f, Direction.UP, False)

parsed = parse_all_from_fs("migrations", "00001_create_post.sql", False)
print(parsed.up, parsed.down, parsed.use_tx)
```

`parse_all_from_fs` also accepts a mapping of file names to contents in place
of a directory.

## Running migrations against sqlite

```python
import sqlite3

from gander.dialect import Dialect, new_store
from gander.migrate import MAX_VERSION, collect_migrations, ensure_db_version

db = sqlite3.connect("app.db")
store = new_store(Dialect.SQLITE3)
table = "goose_db_version"

current = ensure_db_version(db, store, table)
for migration in collect_migrations("migrations", current, MAX_VERSION, {}):
    migration.up(db, store, table)
```

- `ensure_db_version` creates the version table, with a version 0 row, the
  first time it is called; `get_db_version` does the same.
- `collect_migrations(dirpath, current, target, registered)` returns a sorted
  `Migrations` list holding the versions above `current` up to `target`
  (or, when `target < current`, those above `target` up to `current`). It
  raises `NoMigrationFilesError` when nothing matches, and
  `DuplicateVersionError` when two files share a version.
  `collect_migrations_fs` does the same under another root directory.
- `Migrations` has `current`, `next`, `previous` and `last` lookups.
- `Migration.up` and `Migration.down` apply or roll back one migration and
  record or delete its version. Failures raise
  `gander.migration.MigrationRunError`. Each run is logged as `OK` or `EMPTY`
  with its duration.

## Function migrations

```python
from gander.migration import MigrationFunc, new_go_migration

def add_index(conn):
    conn.cursor().execute("CREATE INDEX post_title ON post (title)")

m = new_go_migration(2, up=MigrationFunc(run_tx=add_index))
m.source = "00002_add_index.go"
registered = {m.version: m}
```

Pass `registered` to `collect_migrations`. A function migration is run only
when its `source` name ends in `.go`; that name also carries its version. Use
`run_tx` for a function run inside a transaction and `run_db` for one run
without. If a directory holds `.go` files, only those versions are included,
and a file with no registered migration fails when it is run.

## Inspecting migration files

```python
from gander.migrationstats import FileWalker, gather_stats

for s in gather_stats(FileWalker("migrations/00001_create_post.sql"), False):
    print(s.file_name, s.version, s.tx, s.up_count, s.down_count)
```

For `.go` files the counts come from the registration call
(`AddMigration`, `AddMigrationNoTx`, `AddMigrationContext` or
`AddMigrationNoTxContext`) in the file's `init` function. Files with any other
extension are skipped.

## Advisory locking

`gander.lock.PostgresSessionLocker` takes a PostgreSQL session-level advisory
lock with `session_lock(conn)` and releases it with `session_unlock(conn)`,
both on the same connection. Attempts are retried every `lock_period` seconds
up to `lock_failure_threshold` times (defaults 5 and 60), and every
`unlock_period` seconds up to `unlock_failure_threshold` times (defaults 2
and 30). When every attempt fails it raises `LockError`.

## Settings and logging

- `gander.cfg.list_vars()` reports `GOOSE_DRIVER`, `GOOSE_DBSTRING`,
  `GOOSE_MIGRATION_DIR` (default `.`) and `NO_COLOR` (default `false`).
  `NO_COLOR` turns off the grey colouring of verbose output.
- `gander.logger.set_logger` replaces the package logger. `StdLogger` writes
  timestamped lines to standard error; `NopLogger` discards everything.

## What it does not do

- There is no command-line program. Migrations are driven from Python code.
- It does not open database connections or pick drivers. You pass in a DB-API
  connection whose parameter style matches the dialect.
- It has no "migrate to version", "redo", "status" or "create new migration"
  operations. It gives you the collected `Migrations` and per-migration
  `up`/`down`.