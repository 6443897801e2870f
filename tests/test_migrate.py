import sqlite3

import pytest

from gander.dialect import new_store
from gander.migrate import (
    MAX_VERSION,
    DuplicateVersionError,
    Migrations,
    NoCurrentVersionError,
    NoMigrationFilesError,
    NoNextVersionError,
    collect_migrations,
    collect_migrations_fs,
    ensure_db_version,
    get_db_version,
    sort_and_connect_migrations,
    version_filter,
)
from gander.migration import Migration, new_go_migration, numeric_component

TABLE = "goose_db_version"


def _registry(*names):
    registry = {}
    for name in names:
        m = new_go_migration(numeric_component(name))
        m.source = name
        registry[m.version] = m
    return registry


def _touch(directory, *names):
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_text("")


def test_migration_sort():
    ms = [Migration(version=v, source="test") for v in (20120000, 20128000, 20129000, 20127000)]
    ms = sort_and_connect_migrations(ms)
    assert [m.version for m in ms] == [20120000, 20127000, 20128000, 20129000]
    assert [m.previous for m in ms] == [-1, 20120000, 20127000, 20128000]
    assert [m.next for m in ms] == [20127000, 20128000, 20129000, -1]


def test_sort_duplicate_version():
    ms = [Migration(version=1, source="a"), Migration(version=1, source="b")]
    with pytest.raises(DuplicateVersionError, match="duplicate version 1"):
        sort_and_connect_migrations(ms)


@pytest.mark.parametrize(
    "v, current, target, want",
    [
        (2, 1, 3, True),
        (4, 1, 3, False),
        (2, 3, 1, True),
        (4, 3, 1, False),
        (3, 1, 3, True),
        (1, 1, 3, False),
        (1, 3, 1, False),
        (1, 2, 2, False),
        (2, 2, 2, False),
        (3, 2, 2, False),
    ],
)
def test_version_filter(v, current, target, want):
    assert version_filter(v, current, target) is want


def test_no_migration_files_found(tmp_path):
    (tmp_path / "migrations-test").mkdir()
    with pytest.raises(NoMigrationFilesError, match="no migration files found"):
        collect_migrations_fs(tmp_path, "migrations-test", 0, MAX_VERSION, None)


def test_directory_does_not_exist(tmp_path):
    with pytest.raises(FileNotFoundError, match="missing directory does not exist"):
        collect_migrations_fs(tmp_path, "missing", 0, MAX_VERSION, None)


def test_filesystem_registered_with_single_dirpath(tmp_path):
    registry = _registry("09081_a.go", "09082_b.go")
    assert len(registry) == 2
    _touch(tmp_path / "migrations" / "dir1", "09081_a.go", "09082_b.go", "19081_a.go", "19082_b.go")
    got = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registry)
    assert [m.version for m in got] == [9081, 9082, 19081, 19082]


def test_filesystem_registered_with_multiple_dirpath(tmp_path):
    registry = _registry("00001_a.go", "00002_b.go", "01111_c.go")
    _touch(tmp_path / "migrations" / "dir1", "00001_a.go", "00002_b.go")
    _touch(tmp_path / "migrations" / "dir2", "01111_c.go")
    first = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registry)
    assert [m.version for m in first] == [1, 2]
    second = collect_migrations_fs(tmp_path, "migrations/dir2", 0, MAX_VERSION, registry)
    assert [m.version for m in second] == [1111]


def test_empty_filesystem_registered_manually(tmp_path):
    registry = _registry("00101_a.go", "00102_b.go")
    (tmp_path / "migrations").mkdir()
    got = collect_migrations_fs(tmp_path, "migrations", 0, MAX_VERSION, registry)
    assert [m.version for m in got] == [101, 102]


def test_unregistered_go_migrations(tmp_path):
    registry = _registry("00001_a.go", "00999_c.go")
    _touch(tmp_path / "migrations" / "dir1", "00001_a.go", "00998_b.go", "00999_c.go")
    got = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registry)
    assert [(m.version, m.registered) for m in got] == [(1, True), (998, False), (999, True)]


def test_with_skipped_go_files(tmp_path):
    registry = _registry("00001_a.go")
    _touch(tmp_path / "migrations" / "dir1", "00001_a.go", "00002_b.sql", "00999_c_test.go", "embed.go")
    got = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registry)
    assert [(m.version, m.registered) for m in got] == [(1, True), (2, False)]
    assert got[1].source == "migrations/dir1/00002_b.sql"


def test_current_and_target(tmp_path):
    registry = _registry("01001_a.go", "01003_c.go")
    _touch(tmp_path / "migrations" / "dir1", "01001_a.go", "01002_b.sql", "01003_c.go")
    got = collect_migrations_fs(tmp_path, "migrations/dir1", 1001, 1003, registry)
    assert [m.version for m in got] == [1002, 1003]


def test_invalid_sql_file_name(tmp_path):
    _touch(tmp_path / "m", "abc_x.sql")
    with pytest.raises(ValueError, match="could not parse SQL migration file"):
        collect_migrations_fs(tmp_path, "m", 0, MAX_VERSION, None)


def test_collect_migrations_relative_to_cwd(tmp_path, monkeypatch):
    _touch(tmp_path / "migrations", "00001_a.sql", "00002_b.sql")
    monkeypatch.chdir(tmp_path)
    got = collect_migrations("migrations", 0, MAX_VERSION)
    assert [m.source for m in got] == ["migrations/00001_a.sql", "migrations/00002_b.sql"]


def test_migrations_lookup():
    ms = sort_and_connect_migrations(Migration(version=v) for v in (1, 5, 9))
    assert ms.current(5).version == 5
    assert ms.next(5).version == 9
    assert ms.previous(5).version == 1
    assert ms.last().version == 9
    with pytest.raises(NoCurrentVersionError):
        ms.current(4)
    with pytest.raises(NoNextVersionError):
        ms.next(9)
    with pytest.raises(NoNextVersionError):
        ms.previous(1)
    with pytest.raises(NoNextVersionError):
        Migrations().last()


def test_migrations_str():
    ms = Migrations([Migration(version=1, source="a.sql"), Migration(version=2, source="b.sql")])
    assert str(ms) == "a.sql\nb.sql\n"


def test_ensure_db_version_creates_table():
    db = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    assert ensure_db_version(db, store, TABLE) == 0
    rows = store.list_migrations(db, TABLE)
    assert [(r.version_id, r.is_applied) for r in rows] == [(0, True)]


def test_ensure_db_version_skips_rolled_back():
    db = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    ensure_db_version(db, store, TABLE)
    store.insert_version(db, TABLE, 1)
    store.insert_version(db, TABLE, 2)
    db.execute(f"INSERT INTO {TABLE} (version_id, is_applied) VALUES (2, 0)")
    db.commit()
    assert get_db_version(db, store, TABLE) == 1


def test_ensure_db_version_nothing_applied():
    db = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    ensure_db_version(db, store, TABLE)
    db.execute(f"DELETE FROM {TABLE}")
    db.execute(f"INSERT INTO {TABLE} (version_id, is_applied) VALUES (3, 0)")
    db.commit()
    with pytest.raises(NoNextVersionError):
        ensure_db_version(db, store, TABLE)