import dataclasses
import io
from decimal import Decimal as D

import pytest

from minilisp.minilisp_datatypes import (
    SExprKind, ParseError, Error, Quote, Invocation, ListExpr,
    ScopedIdentifier, InstanceMemberIdentifier, StaticMemberIdentifier,
    String, Integer, Decimal, Double, Float, Boolean, Null, Float32,
)
from minilisp.minilisp_lexer import Lexer
from minilisp.minilisp_parser import Parser, parse, parse_many, parse_or_raise, INT64_MAX, INT64_MIN


def test_empty_input_is_an_error_node():
    node = parse("")
    assert node.is_error
    assert node.message == "Unexpected end of input"
    assert node.position == 0


@pytest.mark.parametrize("source", ["", "(", ")", "[", "]", "'", "'abc", "~", "(f", "[1 2", "()", "(.)", "(a.)"])
def test_malformed_input_yields_error(source):
    node = parse(source)
    assert node.kind is SExprKind.Error
    assert isinstance(node, Error)


def test_unexpected_close_reports_token_kind():
    node = parse(")")
    assert node.message == "Unexpected token 'ParenClose'"


@pytest.mark.parametrize(
    "source,expected",
    [
        ("'hello'", String("hello")),
        ("`raw\\n`", String("raw\\n")),
        ("42", Integer(42)),
        ("-7", Integer(-7)),
        ("1.25", Decimal(D("1.25"))),
        ("1.5d", Double(1.5)),
        ("1.5f", Float(Float32(1.5))),
        ("true", Boolean(True)),
        ("false", Boolean(False)),
        ("null", Null()),
        ("foo", ScopedIdentifier("foo")),
    ],
)
def test_atoms(source, expected):
    node = parse(source)
    assert node == expected
    assert type(node) is type(expected)


def test_literal_value_types():
    assert type(parse("1.5f").value) is Float32
    assert type(parse("1.5d").value) is float
    assert isinstance(parse("1.25").value, D)
    assert parse("null").value is None


def test_float_literal_is_single_precision():
    assert parse("0.1f").value != 0.1
    assert parse("0.1f").value == Float32(0.1)


def test_invocation_with_scoped_identifier():
    node = parse("(f 1 'x')")
    assert node == Invocation(ScopedIdentifier("f"), (Integer(1), String("x")))
    assert node.kind is SExprKind.Invocation
    assert len(node) == 2
    assert node[1] == String("x")
    assert node.name == "f"


def test_braces_are_parentheses():
    assert parse("{f 1}") == parse("(f 1)")
    assert parse("{f 1)") == parse("(f 1)")


def test_instance_member_invocation():
    node = parse("(.name obj 1)")
    assert node.identifier == InstanceMemberIdentifier("name")
    assert node.parameters == (ScopedIdentifier("obj"), Integer(1))
    assert node.name == ".name"


def test_static_member_invocation():
    node = parse("(System.Math/Max 1 2)")
    assert node.identifier == StaticMemberIdentifier(("System", "Math"), "Max")
    assert node.identifier.dotted_type_path == "System.Math"
    assert node.name == "System.Math/Max"


def test_static_member_with_single_segment():
    node = parse("(Math/pi)")
    assert node.identifier == StaticMemberIdentifier(("Math",), "pi")
    assert len(node) == 0


def test_whitespace_inside_qualified_identifier_is_accepted():
    assert parse("(a . b / c)") == parse("(a.b/c)")


def test_dotted_path_without_member_is_rejected():
    node = parse("(a.b 1)")
    assert node.is_error
    assert node.message == "Scoped identifier must have only one part"
    assert node.position == 1


def test_non_identifier_head_is_rejected():
    node = parse("(1 2)")
    assert node.is_error
    assert node.message == "Unexpected token 'Integer', expecting 'Identifier'"


def test_list_and_quote():
    node = parse("[1 [2] ~x]")
    assert node == ListExpr((Integer(1), ListExpr((Integer(2),)), Quote(ScopedIdentifier("x"))))
    assert node.kind is SExprKind.List
    assert parse("[]") == ListExpr(())


def test_nested_quote():
    assert parse("~~(f)") == Quote(Quote(Invocation(ScopedIdentifier("f"))))


def test_commas_are_whitespace():
    assert parse("(f 1, 2,3)") == parse("(f 1 2 3)")


def test_nested_error_aborts_whole_parse():
    node = parse("(f [1 2 (g @)])")
    assert node.is_error
    assert node.position == 11
    assert "Unexpected character '@'" in node.message


def test_lexer_error_is_surfaced():
    node = parse(r"(f '\q')")
    assert node.is_error
    assert "Unknown backslash escape character 'q'" in node.message


def test_int64_bounds():
    assert parse(str(INT64_MAX)).value == INT64_MAX
    assert parse(str(INT64_MIN)).value == INT64_MIN
    node = parse(str(INT64_MAX + 1))
    assert node.is_error
    assert "out of range" in node.message


@pytest.mark.parametrize("source", ["1.2.3", "-", "1.2.3d", "-f", "-."])
def test_invalid_numbers(source):
    node = parse(source)
    assert node.is_error
    assert "literal" in node.message


def test_trailing_tokens_are_rejected():
    node = parse("(f) (g)")
    assert node.is_error
    assert node.message == "Unexpected trailing token 'ParenOpen'"
    assert node.position == 4


def test_trailing_whitespace_is_fine():
    assert parse("  (f)  \n") == Invocation(ScopedIdentifier("f"))


def test_parse_many():
    nodes = parse_many("(f) 1 [x]")
    assert nodes == [Invocation(ScopedIdentifier("f")), Integer(1), ListExpr((ScopedIdentifier("x"),))]
    assert parse_many("") == []
    assert parse_many("  ,  ") == []


def test_parse_many_failure_is_single_error():
    nodes = parse_many("(f) (g")
    assert len(nodes) == 1
    assert nodes[0].is_error


def test_successive_parse_expr_calls_share_the_stream():
    parser = Parser(Lexer(io.StringIO("a 'b' (c)")))
    assert parser.parse_expr() == ScopedIdentifier("a")
    assert parser.parse_expr() == String("b")
    assert parser.parse_expr() == Invocation(ScopedIdentifier("c"))
    assert parser.at_end()
    assert parser.parse_expr().is_error


def test_parser_requires_a_lexer():
    with pytest.raises(TypeError):
        Parser(None)


def test_parse_or_raise():
    assert parse_or_raise("(f)") == Invocation(ScopedIdentifier("f"))
    with pytest.raises(ParseError) as exc:
        parse_or_raise("(f")
    assert exc.value.position == 2
    assert exc.value.message == "Unexpected end of input"
    assert str(exc.value) == "MiniLISP error(pos 2): Unexpected end of input"


def test_throw_if_error_is_noop_on_valid_nodes():
    node = parse("(f)")
    node.throw_if_error()
    with pytest.raises(ParseError):
        parse("(").throw_if_error()


def test_spans_cover_source_tokens():
    node = parse("(f [1 2])")
    assert node.start.position == 0
    assert node.end.position == 8
    lst = node[0]
    assert lst.start.position == 3
    assert lst.end.position == 7


def test_spans_do_not_affect_equality():
    assert parse("(f   1)") == parse("(f 1)")
    assert hash(parse("(f 1)")) == hash(parse("  (f 1)"))


def test_nodes_are_immutable():
    node = parse("(f 1)")
    with pytest.raises(dataclasses.FrozenInstanceError):
        node.parameters = ()
    with pytest.raises(dataclasses.FrozenInstanceError):
        parse("1").value = 2
