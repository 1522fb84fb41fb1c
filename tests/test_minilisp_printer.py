from decimal import Decimal as D

import pytest

from minilisp.minilisp_datatypes import Float32
from minilisp.minilisp_parser import parse
from minilisp.minilisp_printer import Printer, pformat


@pytest.mark.parametrize(
    "source",
    [
        "'hello'",
        "'it\\'s\\n\\ttabbed\\\\'",
        "42",
        "-7",
        "1.25",
        "1.5d",
        "1.5f",
        "0.1f",
        "true",
        "null",
        "x",
        "(f 1 2)",
        "(.upper 'abc')",
        "(a.b/c [1 2] ~(g))",
        "[]",
        "~~x",
    ],
)
def test_printed_text_parses_back_to_equal_tree(source):
    tree = parse(source)
    assert not tree.is_error
    assert parse(pformat(tree)) == tree


@pytest.mark.parametrize(
    "source,expected",
    [
        ("{f 1,2}", "(f 1 2)"),
        ("(a . b / c)", "(a.b/c)"),
        ("`raw'q`", "'raw\\'q'"),
        ("2d", "2.0d"),
        ("2f", "2.0f"),
        ("3.", "3.0"),
        ("[~x  (.m y)]", "[~x (.m y)]"),
    ],
)
def test_canonical_spelling(source, expected):
    assert pformat(parse(source)) == expected


def test_runtime_values():
    p = Printer()
    assert p.pformat(None) == "null"
    assert p.pformat(True) == "true"
    assert p.pformat(False) == "false"
    assert p.pformat(12) == "12"
    assert p.pformat(D("4")) == "4.0"
    assert p.pformat(D("0.50")) == "0.50"
    assert p.pformat(0.5) == "0.5d"
    assert p.pformat(Float32(0.5)) == "0.5f"
    assert p.pformat("a'b") == "'a\\'b'"
    assert p.pformat([1, "x", [None]]) == "[1 'x' [null]]"


def test_large_double_has_no_exponent():
    text = pformat(1e20)
    assert "e" not in text
    assert parse(text).value == 1e20


def test_host_objects_fall_back_to_repr():
    class Thing:
        def __repr__(self):
            return "<thing>"

    assert pformat(Thing()) == "<thing>"


def test_error_node():
    assert pformat(parse("")) == "ERROR(0): Unexpected end of input"
    assert pformat(parse("(f")) == "ERROR(2): Unexpected end of input"
