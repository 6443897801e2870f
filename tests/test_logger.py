import io
import re

import pytest

from gander.logger import NopLogger, StdLogger, get_logger, set_logger

_STAMP = r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} "


def test_printf_formats_and_timestamps():
    stream = io.StringIO()
    StdLogger(stream).printf("hello %s", "world")
    written = stream.getvalue()
    stamp = re.match(_STAMP, written)
    assert stamp is not None
    assert written[stamp.end():] == "hello world\n"


def test_printf_without_args_keeps_percent():
    stream = io.StringIO()
    StdLogger(stream).printf("100% done")
    assert stream.getvalue().endswith("100% done\n")


def test_printf_does_not_double_newline():
    stream = io.StringIO()
    StdLogger(stream).printf("line %d\n", 7)
    assert stream.getvalue().endswith("line 7\n")
    assert stream.getvalue().count("\n") == 1


def test_fatalf_writes_and_exits():
    stream = io.StringIO()
    with pytest.raises(SystemExit) as info:
        StdLogger(stream).fatalf("boom %s", "now")
    assert info.value.code == 1
    assert "boom now" in stream.getvalue()


def test_nop_logger_discards_and_does_not_exit():
    nop = NopLogger()
    assert nop.printf("x %s", 1) is None
    assert nop.fatalf("fatal %s", 2) is None


def test_set_and_get_logger_round_trip():
    previous = get_logger()
    replacement = NopLogger()
    try:
        set_logger(replacement)
        assert get_logger() is replacement
    finally:
        set_logger(previous)
    assert get_logger() is previous