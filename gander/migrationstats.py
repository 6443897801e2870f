"""Statistics about migration files: version, transaction mode and statement counts."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import PurePath
from typing import NamedTuple, Protocol

from .migration import numeric_component
from .sqlparser import Direction, parse_sql_migration

_REGISTER_TX = ("AddMigration", "AddMigrationContext")
_REGISTER_NO_TX = ("AddMigrationNoTx", "AddMigrationNoTxContext")
_REGISTER_NAMES = (
    "AddMigration",
    "AddMigrationNoTx",
    "AddMigrationContext",
    "AddMigrationNoTxContext",
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}

_LEXEME_RE = re.compile(
    r"""
     (?P<ws>[ \t\r\f\v]+)
    |(?P<newline>\n)
    |(?P<line_comment>//[^\n]*)
    |(?P<block_comment>/\*.*?\*/)
    |(?P<raw>`[^`]*`)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<rune>'(?:[^'\\\n]|\\.)*')
    |(?P<bad>/\*|["'`])
    |(?P<ident>[^\W\d]\w*)
    |(?P<number>\.?\d[\w.]*)
    |(?P<op>\.\.\.|:=|\S)
    """,
    re.VERBOSE | re.DOTALL,
)


class _Lexeme(NamedTuple):
    kind: str
    text: str


@dataclass
class GoMigrationInfo:
    """What the init function of a function-migration source file registers."""

    name: str = ""
    use_tx: bool | None = None
    up_func_name: str = ""
    down_func_name: str = ""


@dataclass
class SqlMigrationInfo:
    """The transaction mode and statement counts of a SQL migration."""

    use_tx: bool
    up_count: int
    down_count: int


@dataclass
class Stats:
    """Statistics for one migration file."""

    file_name: str
    version: int
    tx: bool
    up_count: int
    down_count: int


# --- Go source scanning --------------------------------------------------------


def _lex(source: str) -> list[_Lexeme]:
    lexemes: list[_Lexeme] = []
    for match in _LEXEME_RE.finditer(source):
        kind = match.lastgroup
        text = match.group()
        if kind in ("ws", "line_comment"):
            continue
        if kind == "block_comment":
            if "\n" in text:
                lexemes.append(_Lexeme("newline", "\n"))
            continue
        if kind == "bad":
            raise ValueError(f"unterminated literal or comment starting with {text!r}")
        lexemes.append(_Lexeme(kind, text))
    return lexemes


def _match_brackets(lexemes: list[_Lexeme]) -> dict[int, int]:
    pairs: dict[int, int] = {}
    stack: list[int] = []
    for i, lex in enumerate(lexemes):
        if lex.kind != "op":
            continue
        if lex.text in _OPENERS:
            stack.append(i)
        elif lex.text in _CLOSERS:
            if not stack or _OPENERS[lexemes[stack[-1]].text] != lex.text:
                raise ValueError(f"unexpected {lex.text!r}")
            pairs[stack.pop()] = i
    if stack:
        raise ValueError(f"unclosed {lexemes[stack[-1]].text!r}")
    return pairs


def _is_op(lex: _Lexeme, text: str) -> bool:
    return lex.kind == "op" and lex.text == text


def _skip_newlines(lexemes: list[_Lexeme], i: int) -> int:
    while i < len(lexemes) and lexemes[i].kind == "newline":
        i += 1
    return i


def _find_init_body(lexemes: list[_Lexeme], pairs: dict[int, int]) -> list[_Lexeme] | None:
    """Return the lexemes of the first init function's body; raise if there is none."""
    n = len(lexemes)
    i = 0
    while i < n:
        lex = lexemes[i]
        if lex.kind == "op" and lex.text in _OPENERS:
            i = pairs[i] + 1
            continue
        if lex.kind != "ident" or lex.text != "func":
            i += 1
            continue
        j = _skip_newlines(lexemes, i + 1)
        if j < n and _is_op(lexemes[j], "("):
            j = _skip_newlines(lexemes, pairs[j] + 1)
        if j >= n or lexemes[j].kind != "ident":
            i += 1
            continue
        if lexemes[j].text != "init":
            i = j + 1
            continue
        k = j + 1
        if k >= n or not _is_op(lexemes[k], "("):
            raise ValueError("expected '(' after function name")
        k = pairs[k] + 1
        while k < n and lexemes[k].kind != "newline" and not _is_op(lexemes[k], "{"):
            if lexemes[k].kind == "op" and lexemes[k].text in _OPENERS:
                k = pairs[k] + 1
            else:
                k += 1
        if k < n and _is_op(lexemes[k], "{"):
            return lexemes[k + 1 : pairs[k]]
        return None
    raise ValueError("no init function")


def _statements(body: list[_Lexeme]) -> list[list[_Lexeme]]:
    pairs = _match_brackets(body)
    statements: list[list[_Lexeme]] = []
    current: list[_Lexeme] = []
    i = 0
    while i < len(body):
        lex = body[i]
        if lex.kind == "op" and lex.text in _OPENERS:
            end = pairs[i]
            current.extend(body[i : end + 1])
            i = end + 1
        elif lex.kind == "newline" or _is_op(lex, ";"):
            if current:
                statements.append(current)
                current = []
            i += 1
        else:
            current.append(lex)
            i += 1
    if current:
        statements.append(current)
    return statements


def _selector_call(stmt: list[_Lexeme]) -> tuple[str, list[list[_Lexeme]]] | None:
    """Match ``x.y...Name(args)`` as a whole statement; return Name and its arguments."""
    if not stmt or stmt[0].kind != "ident":
        return None
    i = 1
    name = None
    while i + 1 < len(stmt) and _is_op(stmt[i], ".") and stmt[i + 1].kind == "ident":
        name = stmt[i + 1].text
        i += 2
    if name is None or i >= len(stmt) or not _is_op(stmt[i], "("):
        return None
    inner = stmt[i + 1 :]
    if not inner or not _is_op(inner[-1], ")"):
        return None
    inner = inner[:-1]
    pairs = _match_brackets(inner)
    if pairs.get(-1) is not None:
        return None
    # The opening paren must close at the very end of the statement.
    depth = 0
    for lex in inner:
        if lex.kind == "op" and lex.text in _OPENERS:
            depth += 1
        elif lex.kind == "op" and lex.text in _CLOSERS:
            depth -= 1
            if depth < 0:
                return None
    args: list[list[_Lexeme]] = []
    current: list[_Lexeme] = []
    j = 0
    while j < len(inner):
        lex = inner[j]
        if lex.kind == "op" and lex.text in _OPENERS:
            end = pairs[j]
            current.extend(inner[j : end + 1])
            j = end + 1
            continue
        if _is_op(lex, ","):
            args.append(current)
            current = []
        elif lex.kind != "newline":
            current.append(lex)
        j += 1
    if current or args:
        args.append(current)
    if args and not args[-1] and len(args) > 1:
        args.pop()
    return name, args


def _arg_name(arg: list[_Lexeme]) -> str:
    if len(arg) != 1 or arg[0].kind != "ident":
        raise ValueError("failed to assert argument identifier")
    return arg[0].text


def parse_go_source(source) -> GoMigrationInfo:
    """Find the migration registration in a Go source file's init function."""
    if isinstance(source, (bytes, bytearray)):
        source = bytes(source).decode("utf-8", errors="replace")
    elif not isinstance(source, str):
        source = source.read()
        if isinstance(source, bytes):
            source = source.decode("utf-8", errors="replace")
    lexemes = _lex(source)
    first = _skip_newlines(lexemes, 0)
    if first >= len(lexemes) or lexemes[first] != _Lexeme("ident", "package"):
        raise ValueError("expected 'package'")
    pairs = _match_brackets(lexemes)
    body = _find_init_body(lexemes, pairs)
    if body is None:
        raise ValueError("no function body")
    statements = _statements(body)
    if not statements:
        raise ValueError("no registered goose functions")

    info = GoMigrationInfo()
    for stmt in statements:
        call = _selector_call(stmt)
        if call is None:
            continue
        func_name, args = call
        if func_name in _REGISTER_TX:
            info.use_tx = True
        elif func_name in _REGISTER_NO_TX:
            info.use_tx = False
        else:
            continue
        if info.name:
            raise ValueError(
                "found duplicate registered functions:\n"
                f"previous: {info.name}\ncurrent: {func_name}"
            )
        info.name = func_name
        if len(args) != 2:
            raise ValueError(f"registered goose functions have 2 arguments: got {len(args)}")
        info.up_func_name = _arg_name(args[0])
        info.down_func_name = _arg_name(args[1])

    if info.name not in _REGISTER_NAMES:
        raise ValueError(
            "goose register function must be one of: " + ", ".join(_REGISTER_NAMES)
        )
    if info.use_tx is None:
        raise ValueError("validation error: failed to identify transaction: got nil bool")
    if not info.up_func_name:
        raise ValueError("validation error: up function is empty string")
    if not info.down_func_name:
        raise ValueError("validation error: down function is empty string")
    return info


# --- SQL files -----------------------------------------------------------------


def parse_sql_source(source, debug: bool = False) -> SqlMigrationInfo:
    """Count the up and down statements of a SQL migration."""
    if not isinstance(source, (str, bytes, bytearray)):
        source = source.read()
    up, tx_up = parse_sql_migration(source, Direction.UP, debug)
    down, tx_down = parse_sql_migration(source, Direction.DOWN, debug)
    if tx_up != tx_down:
        raise ValueError("up and down statements must have the same transaction mode")
    return SqlMigrationInfo(use_tx=tx_up, up_count=len(up), down_count=len(down))


# --- walking files -------------------------------------------------------------


class _Walker(Protocol):
    def walk(self) -> Iterable[tuple[str, bytes]]: ...


class FileWalker:
    """Yields the name and contents of each .sql and .go file it was given."""

    def __init__(self, *args: str) -> None:
        self.filenames = list(args)

    def walk(self) -> Iterator[tuple[str, bytes]]:
        """Read each migration file in turn; other files are skipped."""
        for filename in self.filenames:
            if PurePath(filename).suffix not in (".sql", ".go"):
                continue
            with open(filename, "rb") as handle:
                data = handle.read()
            yield filename, data


def _nil_as_number(name: str) -> int:
    return int(name != "nil")


def gather_stats(walker: _Walker, debug: bool = False) -> list[Stats]:
    """Return statistics for every file the walker yields."""
    stats: list[Stats] = []
    for filename, data in walker.walk():
        try:
            version = numeric_component(filename)
        except ValueError as exc:
            raise ValueError(f"failed to get version from file {filename!r}: {exc}") from exc
        up = down = 0
        tx = False
        suffix = PurePath(filename).suffix
        try:
            if suffix == ".sql":
                sql = parse_sql_source(data, debug)
                up, down, tx = sql.up_count, sql.down_count, sql.use_tx
            elif suffix == ".go":
                go = parse_go_source(data)
                up = _nil_as_number(go.up_func_name)
                down = _nil_as_number(go.down_func_name)
                tx = bool(go.use_tx)
        except ValueError as exc:
            raise ValueError(f"failed to parse file {filename!r}: {exc}") from exc
        stats.append(
            Stats(file_name=filename, version=version, tx=tx, up_count=up, down_count=down)
        )
    return stats