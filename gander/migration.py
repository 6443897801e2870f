"""Single migrations, SQL or function based, and how they are applied."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from pathlib import Path, PurePath
from typing import Any

from .cfg import env_or
from .logger import get_logger
from .sqlparser import SQLParseError, from_bool, parse_sql_migration

_GRAY = "\033[90m"
_RESET = "\033[00m"

_SQL_COMMENTS = re.compile(r"(?m)^--.*$[\r\n]*")
_EMPTY_LINES = re.compile(r"(?m)^$[\r\n]*")

MigrationCallable = Callable[[Any], None]


class MigrationRunError(RuntimeError):
    """A migration could not be applied or rolled back."""


class MigrationType(str, Enum):
    """The kind of a migration."""

    GO = "go"
    SQL = "sql"

    def __str__(self) -> str:
        return self.value


class TransactionMode(IntEnum):
    """Whether a function migration runs inside a transaction."""

    ENABLED = 1
    DISABLED = 2

    def __str__(self) -> str:
        if self is TransactionMode.ENABLED:
            return "transaction_enabled"
        return "transaction_disabled"


@dataclass
class MigrationFunc:
    """A migration function and its transaction mode.

    At most one of ``run_tx`` and ``run_db`` should be set. When both are
    None the version is only recorded or deleted; ``mode`` then defaults to
    ``TransactionMode.ENABLED``.
    """

    run_tx: MigrationCallable | None = None
    run_db: MigrationCallable | None = None
    mode: TransactionMode | None = None


def _infer_mode(func: MigrationFunc) -> MigrationFunc:
    if func.mode:
        return func
    mode = func.mode
    if func.run_tx is not None and func.run_db is None:
        mode = TransactionMode.ENABLED
    if func.run_tx is None and func.run_db is not None:
        mode = TransactionMode.DISABLED
    if func.run_tx is None and func.run_db is None:
        mode = TransactionMode.ENABLED
    return replace(func, mode=mode)


@dataclass
class Migration:
    """A SQL or function migration.

    ``source`` is the path of the .sql or .go file; it may be empty for
    function migrations registered without a file.
    """

    version: int
    source: str = ""
    type: MigrationType | None = None
    registered: bool = False
    use_tx: bool = False
    next: int = -1
    previous: int = -1
    up_fn_tx: MigrationCallable | None = None
    down_fn_tx: MigrationCallable | None = None
    up_fn_no_tx: MigrationCallable | None = None
    down_fn_no_tx: MigrationCallable | None = None
    no_versioning: bool = False
    verbose: bool = False
    go_up: MigrationFunc = field(
        default_factory=lambda: MigrationFunc(mode=TransactionMode.ENABLED), repr=False
    )
    go_down: MigrationFunc = field(
        default_factory=lambda: MigrationFunc(mode=TransactionMode.ENABLED), repr=False
    )

    def __str__(self) -> str:
        return self.source

    def up(self, db, store, table_name: str) -> None:
        """Apply the migration on the DB-API connection ``db``."""
        self._run(db, store, table_name, True)

    def down(self, db, store, table_name: str) -> None:
        """Roll the migration back on the DB-API connection ``db``."""
        self._run(db, store, table_name, False)

    def _run(self, db, store, table_name: str, direction: bool) -> None:
        suffix = PurePath(self.source).suffix
        base = PurePath(self.source).name
        log = get_logger()
        if suffix == ".sql":
            try:
                data = Path(self.source).read_bytes()
            except OSError as exc:
                raise MigrationRunError(
                    f"ERROR {base}: failed to open SQL migration file: {exc}"
                ) from exc
            try:
                statements, use_tx = parse_sql_migration(
                    data, from_bool(direction), self.verbose
                )
            except SQLParseError as exc:
                raise MigrationRunError(
                    f"ERROR {base}: failed to parse SQL migration file: {exc}"
                ) from exc
            start = time.perf_counter()
            try:
                _run_sql(
                    db, store, table_name, statements, use_tx,
                    self.version, direction, self.no_versioning, self.verbose,
                )
            except MigrationRunError as exc:
                raise MigrationRunError(
                    f"ERROR {base}: failed to run SQL migration: {exc}"
                ) from exc
            elapsed = _format_duration(truncate_duration(time.perf_counter() - start))
            label = "OK   " if statements else "EMPTY"
            log.printf("%s %s (%s)\n", label, base, elapsed)
        elif suffix == ".go":
            if not self.registered:
                raise MigrationRunError(
                    f"ERROR {self.source}: failed to run Go migration: migration "
                    "functions must be registered before they can be run"
                )
            start = time.perf_counter()
            if self.use_tx:
                fn = self.up_fn_tx if direction else self.down_fn_tx
                try:
                    _run_func_tx(
                        db, store, table_name, fn, self.version,
                        direction, not self.no_versioning,
                    )
                except MigrationRunError as exc:
                    raise MigrationRunError(f"ERROR go migration: {base!r}: {exc}") from exc
            else:
                fn = self.up_fn_no_tx if direction else self.down_fn_no_tx
                try:
                    _run_func_no_tx(
                        db, store, table_name, fn, self.version,
                        direction, not self.no_versioning,
                    )
                except MigrationRunError as exc:
                    raise MigrationRunError(
                        f"ERROR go migration no tx: {base!r}: {exc}"
                    ) from exc
            elapsed = _format_duration(truncate_duration(time.perf_counter() - start))
            label = "EMPTY" if fn is None else "OK   "
            log.printf("%s %s (%s)\n", label, base, elapsed)


def new_go_migration(
    version: int,
    up: MigrationFunc | None = None,
    down: MigrationFunc | None = None,
) -> Migration:
    """Create a registered function migration; a missing function only records the version."""
    m = Migration(
        version=version,
        type=MigrationType.GO,
        registered=True,
    )
    if up is not None:
        m.go_up = _infer_mode(up)
        if up.run_db is not None:
            m.up_fn_no_tx = up.run_db
        if up.run_tx is not None:
            m.use_tx = True
            m.up_fn_tx = up.run_tx
    if down is not None:
        m.go_down = _infer_mode(down)
        if down.run_db is not None:
            m.down_fn_no_tx = down.run_db
        if down.run_tx is not None:
            m.use_tx = True
            m.down_fn_tx = down.run_tx
    return m


def _record(db, store, table_name: str, version: int, direction: bool) -> None:
    if direction:
        store.insert_version(db, table_name, version)
    else:
        store.delete_version(db, table_name, version)


def _rollback(db) -> None:
    try:
        db.rollback()
    except Exception:
        pass


def _run_func_tx(db, store, table_name, fn, version, direction, record_version) -> None:
    if fn is None and not record_version:
        return
    if fn is not None:
        try:
            fn(db)
        except Exception as exc:
            _rollback(db)
            raise MigrationRunError(f"failed to run go migration: {exc}") from exc
    if record_version:
        try:
            _record(db, store, table_name, version, direction)
        except Exception as exc:
            _rollback(db)
            raise MigrationRunError(f"failed to update version: {exc}") from exc
    try:
        db.commit()
    except Exception as exc:
        raise MigrationRunError(f"failed to commit transaction: {exc}") from exc


def _run_func_no_tx(db, store, table_name, fn, version, direction, record_version) -> None:
    if fn is not None:
        try:
            fn(db)
            db.commit()
        except Exception as exc:
            raise MigrationRunError(f"failed to run go migration: {exc}") from exc
    if record_version:
        try:
            _record(db, store, table_name, version, direction)
            db.commit()
        except Exception as exc:
            raise MigrationRunError(str(exc)) from exc


def _no_color() -> bool:
    return env_or("NO_COLOR", "false").strip().lower() not in ("", "false", "0")


def _verbose_info(verbose: bool, message: str) -> None:
    if not verbose:
        return
    if _no_color():
        get_logger().printf("%s", message)
    else:
        get_logger().printf("%s", f"{_GRAY}{message}{_RESET}")


def _run_sql(
    db, store, table_name, statements, use_tx, version, direction, no_versioning, verbose
) -> None:
    if use_tx:
        _verbose_info(verbose, "Begin transaction")
        for query in statements:
            _verbose_info(verbose, f"Executing statement: {clear_statement(query)}")
            try:
                db.cursor().execute(query)
            except Exception as exc:
                _verbose_info(verbose, "Rollback transaction")
                _rollback(db)
                raise MigrationRunError(
                    f"failed to execute SQL query {clear_statement(query)!r}: {exc}"
                ) from exc
        if not no_versioning:
            try:
                _record(db, store, table_name, version, direction)
            except Exception as exc:
                _verbose_info(verbose, "Rollback transaction")
                _rollback(db)
                action = "insert new" if direction else "delete"
                raise MigrationRunError(f"failed to {action} goose version: {exc}") from exc
        _verbose_info(verbose, "Commit transaction")
        try:
            db.commit()
        except Exception as exc:
            raise MigrationRunError(f"failed to commit transaction: {exc}") from exc
        return

    for query in statements:
        _verbose_info(verbose, f"Executing statement: {clear_statement(query)}")
        try:
            db.cursor().execute(query)
            db.commit()
        except Exception as exc:
            raise MigrationRunError(
                f"failed to execute SQL query {clear_statement(query)!r}: {exc}"
            ) from exc
    if not no_versioning:
        try:
            _record(db, store, table_name, version, direction)
            db.commit()
        except Exception as exc:
            action = "insert new" if direction else "delete"
            raise MigrationRunError(f"failed to {action} goose version: {exc}") from exc


def run_sql_migration(
    db, store, table_name, statements, use_tx, version, direction, no_versioning
) -> None:
    """Execute ``statements`` and record or delete ``version`` in the version table.

    With ``use_tx`` everything is committed together and rolled back on any
    error; otherwise each statement is committed as it runs.
    """
    _run_sql(
        db, store, table_name, statements, use_tx, version, direction, no_versioning, False
    )


def numeric_component(filename: str) -> int:
    """Return the version from a name of the form ``NNN_description.sql`` or ``.go``."""
    base = PurePath(filename).name
    if PurePath(base).suffix not in (".go", ".sql"):
        raise ValueError("migration file does not have .sql or .go file extension")
    prefix, sep, _ = base.partition("_")
    if not sep:
        raise ValueError("no filename separator '_' found")
    try:
        if not re.fullmatch(r"[+-]?[0-9]+", prefix):
            raise ValueError(f"invalid syntax: {prefix!r}")
        n = int(prefix)
        if not -(2**63) <= n < 2**63:
            raise ValueError(f"value out of range: {prefix!r}")
    except ValueError as exc:
        raise ValueError(
            f"failed to parse version from migration file: {base}: {exc}"
        ) from exc
    if n < 1:
        raise ValueError("migration version must be greater than zero")
    return n


def truncate_duration(seconds: float) -> float:
    """Round a duration in seconds to two significant places below its unit."""
    ns = round(seconds * 1_000_000_000)
    for unit in (1_000_000_000, 1_000_000, 1_000):
        if ns > unit:
            step = unit // 100
            ns = (ns + step // 2) // step * step
            break
    return ns / 1_000_000_000


def _trim(value: float) -> str:
    return f"{value:.9f}".rstrip("0").rstrip(".")


def _format_duration(seconds: float) -> str:
    ns = round(seconds * 1_000_000_000)
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return f"{_trim(ns / 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{_trim(ns / 1_000_000)}ms"
    hours, rest = divmod(ns, 3_600_000_000_000)
    minutes, rest = divmod(rest, 60_000_000_000)
    text = f"{_trim(rest / 1_000_000_000)}s"
    if hours:
        return f"{hours}h{minutes}m{text}"
    if minutes:
        return f"{minutes}m{text}"
    return text


def clear_statement(statement: str) -> str:
    """Drop comment lines and empty lines from a statement for display."""
    statement = _SQL_COMMENTS.sub("", statement)
    return _EMPTY_LINES.sub("", statement)