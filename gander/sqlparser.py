"""Splitting annotated SQL migration files into statements for one direction."""

from __future__ import annotations

import errno
import json
import os
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path

from .logger import get_logger

SCAN_BUFFER_SIZE = 4 * 1024 * 1024

_GRAY = "\033[90m"
_RESET = "\033[00m"

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class SQLParseError(ValueError):
    """A migration file could not be parsed."""


class EnvSubstitutionError(ValueError):
    """An environment variable expression could not be expanded."""


class Direction(str, Enum):
    """The direction a migration runs in."""

    UP = "up"
    DOWN = "down"

    def __str__(self) -> str:
        return self.value

    def to_bool(self) -> bool:
        """Return True for the up direction."""
        return self is Direction.UP


def from_bool(b: bool) -> Direction:
    """Map True to up and False to down."""
    return Direction.UP if b else Direction.DOWN


@dataclass
class ParsedSQL:
    """The statements of a migration file in both directions."""

    use_tx: bool = True
    up: list[str] = field(default_factory=list)
    down: list[str] = field(default_factory=list)


class _State(IntEnum):
    START = 0
    UP = 1
    BEGIN_UP = 2
    END_UP = 3
    DOWN = 4
    BEGIN_DOWN = 5
    END_DOWN = 6


_UP_STATES = (_State.UP, _State.BEGIN_UP, _State.END_UP)
_DOWN_STATES = (_State.DOWN, _State.BEGIN_DOWN, _State.END_DOWN)


class _StateMachine:
    def __init__(self, state: _State, verbose: bool) -> None:
        self.state = state
        self.verbose = verbose

    def set(self, new: _State) -> None:
        self.print(f"set {int(self.state)} => {int(new)}")
        self.state = new

    def print(self, msg: str) -> None:
        if self.verbose:
            get_logger().printf("%s", f"{_GRAY}StateMachine: {msg}{_RESET}")


# --- environment substitution -------------------------------------------------


def expand_env(line: str, env: Mapping[str, str] | None = None) -> str:
    """Expand ``$VAR`` and ``${VAR...}`` expressions in ``line`` from ``env``.

    Supports ``${VAR:-word}``, ``${VAR-word}``, ``${VAR:?msg}``, ``${VAR?msg}``,
    ``${VAR:offset[:length]}``, and ``$$`` or ``\\$`` for a literal dollar sign.
    """
    if env is None:
        env = os.environ
    result, _ = _expand(line, 0, env, nested=False)
    return result


def _expand(text: str, pos: int, env: Mapping[str, str], nested: bool) -> tuple[str, int]:
    out: list[str] = []
    while pos < len(text):
        ch = text[pos]
        if nested and ch == "}":
            return "".join(out), pos
        if ch == "\\" and text.startswith("$", pos + 1):
            out.append("$")
            pos += 2
            continue
        if ch != "$":
            out.append(ch)
            pos += 1
            continue
        following = text[pos + 1 : pos + 2]
        if following == "$":
            out.append("$")
            pos += 2
        elif following == "{":
            value, pos = _expand_braced(text, pos + 2, env)
            out.append(value)
        elif match := _NAME.match(text, pos + 1):
            out.append(env.get(match.group(), ""))
            pos = match.end()
        else:
            out.append("$")
            pos += 1
    if nested:
        raise EnvSubstitutionError("unterminated variable expression: expected '}'")
    return "".join(out), pos


def _expand_braced(text: str, pos: int, env: Mapping[str, str]) -> tuple[str, int]:
    match = _NAME.match(text, pos)
    if not match:
        raise EnvSubstitutionError(f"invalid variable name in {text[pos:]!r}")
    name = match.group()
    pos = match.end()
    value = env.get(name)
    rest = text[pos:]
    if rest.startswith("}"):
        return value or "", pos + 1
    for op in (":-", ":?", "-", "?"):
        if not rest.startswith(op):
            continue
        word, pos = _expand(text, pos + len(op), env, nested=True)
        pos += 1
        if op == ":-":
            return (value if value else word), pos
        if op == "-":
            return (value if value is not None else word), pos
        if (op == ":?" and not value) or (op == "?" and value is None):
            raise EnvSubstitutionError(f"${name}: {word or 'not set'}")
        return value or "", pos
    if rest.startswith(":"):
        end = text.find("}", pos)
        if end < 0:
            raise EnvSubstitutionError("unterminated variable expression: expected '}'")
        return _substring(value or "", text[pos + 1 : end], name), end + 1
    raise EnvSubstitutionError(f"unexpected character after ${{{name}")


def _substring(value: str, spec: str, name: str) -> str:
    offset_text, _, length_text = spec.partition(":")
    try:
        offset = int(offset_text.strip())
        length = int(length_text.strip()) if length_text.strip() else None
    except ValueError:
        raise EnvSubstitutionError(f"${name}: invalid substring expression {spec!r}") from None
    if offset < 0:
        offset = max(len(value) + offset, 0)
    start = min(offset, len(value))
    if length is None:
        return value[start:]
    if length < 0:
        end = len(value) + length
        return value[start:end] if end > start else ""
    return value[start : start + length]


# --- statement splitting ------------------------------------------------------


def ends_with_semicolon(line: str) -> bool:
    """Tell whether the last word before any ``--`` comment ends with a semicolon."""
    prev = ""
    for word in line.split():
        if word.startswith("--"):
            break
        prev = word
    return prev.endswith(";")


def _read_text(source) -> str:
    if isinstance(source, str):
        return source
    data = source if isinstance(source, (bytes, bytearray)) else source.read()
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return data


def _scan_lines(text: str) -> Iterator[str]:
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    for line in lines:
        if line.endswith("\r"):
            line = line[:-1]
        if len(line) >= SCAN_BUFFER_SIZE:
            raise SQLParseError("failed to scan migration: token too long")
        yield line


def _quote(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def _missing_semicolon(state: _State, direction: Direction, remaining: str) -> SQLParseError:
    return SQLParseError(
        f"failed to parse migration: state {int(state)}, direction: {direction.value}: "
        f"unexpected unfinished SQL query: {_quote(remaining)}: missing semicolon?"
    )


def parse_sql_migration(source, direction, debug: bool = False) -> tuple[list[str], bool]:
    """Split a migration into the statements for ``direction``.

    ``source`` is the file's text, its bytes, or an open file. Returns the
    statements and whether they should run inside a transaction.
    """
    direction = Direction(direction)
    machine = _StateMachine(_State.START, debug)
    log = get_logger()
    use_tx = True
    use_envsub = False
    buf: list[str] = []
    statements: list[str] = []

    for line in _scan_lines(_read_text(source)):
        if debug:
            log.printf("%s", line)
        if machine.state == _State.START and not line.strip():
            continue

        if line.startswith("--"):
            cmd = line[2:].strip()
            if cmd == "+goose Up":
                if machine.state != _State.START:
                    raise SQLParseError(
                        "duplicate '-- +goose Up' annotations; "
                        f"stateMachine={int(machine.state)}"
                    )
                machine.set(_State.UP)
                continue
            if cmd == "+goose Down":
                if machine.state not in (_State.UP, _State.END_UP):
                    raise SQLParseError(
                        "must start with '-- +goose Up' annotation, "
                        f"stateMachine={int(machine.state)}"
                    )
                remaining = "".join(buf).strip()
                if remaining:
                    raise _missing_semicolon(machine.state, direction, remaining)
                machine.set(_State.DOWN)
                continue
            if cmd == "+goose StatementBegin":
                if machine.state in (_State.UP, _State.END_UP):
                    machine.set(_State.BEGIN_UP)
                elif machine.state in (_State.DOWN, _State.END_DOWN):
                    machine.set(_State.BEGIN_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementBegin' must be defined after '-- +goose Up' "
                        f"or '-- +goose Down' annotation, stateMachine={int(machine.state)}"
                    )
                continue
            if cmd == "+goose StatementEnd":
                if machine.state == _State.BEGIN_UP:
                    machine.set(_State.END_UP)
                elif machine.state == _State.BEGIN_DOWN:
                    machine.set(_State.END_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementEnd' must be defined after "
                        "'-- +goose StatementBegin'"
                    )
            elif cmd == "+goose NO TRANSACTION":
                use_tx = False
                continue
            elif cmd == "+goose ENVSUB ON":
                use_envsub = True
                continue
            elif cmd == "+goose ENVSUB OFF":
                use_envsub = False
                continue

        # Comments and blank lines before a statement starts are dropped.
        if not buf and (line.strip().startswith("--") or line == ""):
            machine.print("ignore comment")
            continue

        if machine.state not in (_State.END_UP, _State.END_DOWN):
            if use_envsub:
                try:
                    line = expand_env(line)
                except EnvSubstitutionError as exc:
                    raise SQLParseError(
                        f"variable substitution failed: {exc}:\n{line}"
                    ) from exc
            buf.append(line + "\n")

        if machine.state in _UP_STATES:
            if direction is Direction.DOWN:
                buf.clear()
                machine.print("ignore down")
                continue
        elif machine.state in _DOWN_STATES:
            if direction is Direction.UP:
                buf.clear()
                machine.print("ignore up")
                continue
        else:
            raise SQLParseError(
                f"failed to parse migration: unexpected state {int(machine.state)} "
                f"on line {_quote(line)}"
            )

        if machine.state in (_State.UP, _State.DOWN):
            if ends_with_semicolon(line):
                statements.append("".join(buf).strip())
                buf.clear()
                machine.print("store simple query")
        elif machine.state == _State.END_UP:
            statements.append("".join(buf).strip())
            buf.clear()
            machine.print("store Up statement")
            machine.set(_State.UP)
        elif machine.state == _State.END_DOWN:
            statements.append("".join(buf).strip())
            buf.clear()
            machine.print("store Down statement")
            machine.set(_State.DOWN)

    if machine.state == _State.START:
        raise SQLParseError(
            "failed to parse migration: must start with '-- +goose Up' annotation"
        )
    if machine.state in (_State.BEGIN_UP, _State.BEGIN_DOWN):
        raise SQLParseError(
            "failed to parse migration: missing '-- +goose StatementEnd' annotation"
        )
    remaining = "".join(buf).strip()
    if remaining:
        raise _missing_semicolon(machine.state, direction, remaining)
    return statements, use_tx


def _read_from_fs(fsys, filename: str) -> bytes | str:
    if isinstance(fsys, Mapping):
        try:
            return fsys[filename]
        except KeyError:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), filename
            ) from None
    root = Path(fsys) if isinstance(fsys, (str, os.PathLike)) else fsys
    return (root / filename).read_bytes()


def parse_all_from_fs(fsys, filename: str, debug: bool = False) -> ParsedSQL:
    """Parse both directions of ``filename`` found in ``fsys``.

    ``fsys`` is a directory path, a path-like object supporting ``/`` and
    ``read_bytes()``, or a mapping of file names to contents.
    """
    data = _read_from_fs(fsys, filename)
    try:
        up, use_tx = parse_sql_migration(data, Direction.UP, debug)
        down, _ = parse_sql_migration(data, Direction.DOWN, debug)
    except SQLParseError as exc:
        raise SQLParseError(f"failed to parse {filename}: {exc}") from exc
    return ParsedSQL(use_tx=use_tx, up=up, down=down)