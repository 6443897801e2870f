"""Collecting migrations from a directory and reading the current database version."""

from __future__ import annotations

import os
import posixpath
from collections.abc import Iterable, Mapping
from fnmatch import fnmatchcase
from pathlib import Path

from .migration import Migration, numeric_component

MAX_VERSION = 2**63 - 1


class NoMigrationFilesError(LookupError):
    """No migration files were found."""

    def __init__(self, message: str = "no migration files found") -> None:
        super().__init__(message)


class NoCurrentVersionError(LookupError):
    """The current migration version was not found."""

    def __init__(self, message: str = "no current version found") -> None:
        super().__init__(message)


class NoNextVersionError(LookupError):
    """The next migration version was not found."""

    def __init__(self, message: str = "no next version found") -> None:
        super().__init__(message)


class DuplicateVersionError(ValueError):
    """Two migrations share one version."""


class Migrations(list):
    """An ordered list of migrations."""

    def current(self, current: int) -> Migration:
        """Return the migration whose version is ``current``."""
        for migration in self:
            if migration.version == current:
                return migration
        raise NoCurrentVersionError()

    def next(self, current: int) -> Migration:
        """Return the first migration with a version above ``current``."""
        for migration in self:
            if migration.version > current:
                return migration
        raise NoNextVersionError()

    def previous(self, current: int) -> Migration:
        """Return the last migration with a version below ``current``."""
        for migration in reversed(self):
            if migration.version < current:
                return migration
        raise NoNextVersionError()

    def last(self) -> Migration:
        """Return the last migration."""
        if not self:
            raise NoNextVersionError()
        return self[-1]

    def __str__(self) -> str:
        return "".join(f"{m}\n" for m in self)


def version_filter(v: int, current: int, target: int) -> bool:
    """Tell whether ``v`` lies between ``current`` and ``target``.

    Going up the range is (current, target]; going down it is (target, current].
    """
    if target > current:
        return current < v <= target
    if target < current:
        return target < v <= current
    return False


def sort_and_connect_migrations(migrations: Iterable[Migration]) -> Migrations:
    """Sort by version and link each migration to its neighbours."""
    ordered = Migrations(migrations)
    seen: dict[int, Migration] = {}
    for m in ordered:
        if m.version in seen:
            raise DuplicateVersionError(
                f"duplicate version {m.version} detected:\n{seen[m.version].source}\n{m.source}"
            )
        seen[m.version] = m
    ordered.sort(key=lambda m: m.version)
    for prev, m in zip([None, *ordered], ordered):
        if prev is None:
            m.previous = -1
        else:
            m.previous = prev.version
            prev.next = m.version
    return ordered


class _DirFS:
    """Reads names from a directory tree rooted at ``root``."""

    def __init__(self, root: str | os.PathLike) -> None:
        self.root = Path(root)

    def exists(self, dirpath: str) -> bool:
        return (self.root / dirpath).exists()

    def glob(self, dirpath: str, pattern: str) -> list[str]:
        directory = self.root / dirpath
        if not directory.is_dir():
            return []
        names = sorted(p.name for p in directory.iterdir() if fnmatchcase(p.name, pattern))
        return [posixpath.normpath(posixpath.join(dirpath, name)) for name in names]


def _collect_go_migrations(
    fsys: _DirFS,
    dirpath: str,
    registered: Mapping[int, Migration],
    current: int,
    target: int,
) -> list[Migration]:
    for m in registered.values():
        try:
            numeric_component(m.source)
        except ValueError as exc:
            raise ValueError(f"could not parse go migration file {m.source}: {exc}") from exc
    go_files = fsys.glob(dirpath, "*.go")
    if not go_files and not registered:
        return []

    sources: list[tuple[str, int]] = []
    for fullpath in go_files:
        try:
            v = numeric_component(fullpath)
        except ValueError:
            continue
        if fullpath.endswith("_test.go"):
            continue
        if version_filter(v, current, target):
            sources.append((fullpath, v))

    if sources:
        # Files on disk decide which migrations are included; unregistered ones
        # fail only when they are run.
        return [
            registered.get(v) or Migration(version=v, source=fullpath, registered=False)
            for fullpath, v in sources
        ]
    return [
        m
        for m in registered.values()
        if version_filter(numeric_component(m.source), current, target)
    ]


def collect_migrations_fs(
    fsys: str | os.PathLike,
    dirpath: str,
    current: int,
    target: int,
    registered: Mapping[int, Migration] | None = None,
) -> Migrations:
    """Collect SQL files and function migrations in ``dirpath`` under the root ``fsys``.

    Only versions that pass ``version_filter(v, current, target)`` are kept.
    """
    fs = _DirFS(fsys)
    registered = registered or {}
    if not fs.exists(dirpath):
        raise FileNotFoundError(f"{dirpath} directory does not exist")
    migrations: list[Migration] = []
    for file in fs.glob(dirpath, "*.sql"):
        try:
            v = numeric_component(file)
        except ValueError as exc:
            raise ValueError(f"could not parse SQL migration file {file!r}: {exc}") from exc
        if version_filter(v, current, target):
            migrations.append(Migration(version=v, source=file))
    migrations.extend(_collect_go_migrations(fs, dirpath, registered, current, target))
    if not migrations:
        raise NoMigrationFilesError()
    return sort_and_connect_migrations(migrations)


def collect_migrations(
    dirpath: str,
    current: int,
    target: int,
    registered: Mapping[int, Migration] | None = None,
) -> Migrations:
    """Collect migrations from ``dirpath`` on the local file system."""
    return collect_migrations_fs(".", dirpath, current, target, registered)


def _rollback(db) -> None:
    try:
        db.rollback()
    except Exception:
        pass


def _create_version_table(db, store, table_name: str) -> None:
    _rollback(db)
    try:
        store.create_version_table(db, table_name)
        store.insert_version(db, table_name, 0)
    except Exception:
        _rollback(db)
        raise
    db.commit()


def ensure_db_version(db, store, table_name: str) -> int:
    """Return the current database version, creating the version table if needed."""
    try:
        records = store.list_migrations(db, table_name)
    except Exception:
        _create_version_table(db, store, table_name)
        return 0
    # Records are newest first; the latest record of a version says whether
    # it is applied, and the first applied version is the current one.
    skipped: set[int] = set()
    for record in records:
        if record.version_id in skipped:
            continue
        if record.is_applied:
            return record.version_id
        skipped.add(record.version_id)
    raise NoNextVersionError()


def get_db_version(db, store, table_name: str) -> int:
    """Return the current database version; see ``ensure_db_version``."""
    return ensure_db_version(db, store, table_name)