import io

import pytest

from minilisp.minilisp_datatypes import TokenKind as K
from minilisp.minilisp_lexer import Lexer, tokenize


def kinds(source):
    return [t.kind for t in tokenize(source)]


def test_punctuation_tokens():
    assert kinds("( ) { } [ ] ~ . /") == [
        K.ParenOpen, K.ParenClose, K.ParenOpen, K.ParenClose,
        K.BracketOpen, K.BracketClose, K.Quote, K.Dot, K.Slash, K.EOF,
    ]


def test_commas_tabs_and_newlines_are_whitespace():
    toks = tokenize("a,\tb\r\nc")
    assert [t.text for t in toks[:-1]] == ["a", "b", "c"]
    assert [t.position for t in toks[:-1]] == [0, 3, 6]


def test_token_positions_are_offsets():
    toks = tokenize("(foo 'x')")
    assert [(t.kind, t.position) for t in toks] == [
        (K.ParenOpen, 0), (K.Identifier, 1), (K.String, 5), (K.ParenClose, 8), (K.EOF, 9),
    ]


def test_keywords_are_reclassified():
    toks = tokenize("true false null truthy nullable")
    assert [t.kind for t in toks[:-1]] == [K.Boolean, K.Boolean, K.Null, K.Identifier, K.Identifier]
    assert toks[0].text == "true"
    assert toks[1].text == "false"


def test_identifier_characters():
    toks = tokenize("foo-bar_9 _x Camel")
    assert [t.text for t in toks[:-1]] == ["foo-bar_9", "_x", "Camel"]
    assert all(t.kind is K.Identifier for t in toks[:-1])


@pytest.mark.parametrize(
    "source,kind,text",
    [
        ("5", K.Integer, "5"),
        ("-12", K.Integer, "-12"),
        ("1.5", K.Decimal, "1.5"),
        ("1.5d", K.Double, "1.5"),
        ("1.5f", K.Float, "1.5"),
        ("2d", K.Double, "2"),
        ("2f", K.Float, "2"),
        # A second point is left for the parser to reject
        ("1.2.3", K.Decimal, "1.2.3"),
    ],
)
def test_numeric_literals(source, kind, text):
    tok = tokenize(source)[0]
    assert tok.kind is kind
    assert tok.text == text


def test_number_followed_by_identifier():
    toks = tokenize("5abc")
    assert [(t.kind, t.text) for t in toks[:-1]] == [(K.Integer, "5"), (K.Identifier, "abc")]


def test_quoted_string_escapes():
    tok = tokenize(r"'a\\b\'c\nd\re\tf'")[0]
    assert tok.kind is K.String
    assert tok.text == "a\\b'c\nd\re\tf"


def test_unknown_escape_is_an_error_token():
    tok = tokenize(r"'\q'")[0]
    assert tok.kind is K.Error
    assert "Unknown backslash escape character 'q'" in tok.text


@pytest.mark.parametrize("source", ["'abc", "'", "'abc\\"])
def test_unterminated_string_is_an_error_token(source):
    toks = tokenize(source)
    assert toks[-1].kind is K.Error
    assert "string literal" in toks[-1].text


def test_raw_string_is_verbatim():
    tok = tokenize("`a\\n'b\nc`")[0]
    assert tok.kind is K.String
    assert tok.text == "a\\n'b\nc"


def test_unterminated_raw_string_is_an_error_token():
    tok = tokenize("`abc")[0]
    assert tok.kind is K.Error
    assert "raw string" in tok.text


def test_unexpected_character():
    tok = tokenize("  @")[0]
    assert tok.kind is K.Error
    assert tok.position == 2
    assert "Unexpected character '@'" in tok.text


def test_tokenize_stops_at_first_error():
    toks = tokenize("a @ b")
    assert [t.kind for t in toks] == [K.Identifier, K.Error]


def test_eof_is_sticky():
    lex = Lexer("x")
    assert lex.next().kind is K.Identifier
    assert [lex.next().kind for _ in range(3)] == [K.EOF, K.EOF, K.EOF]


def test_empty_input_is_eof():
    assert kinds("") == [K.EOF]
    assert kinds(" ,\n\t") == [K.EOF]


def test_reads_from_a_text_stream():
    toks = list(Lexer(io.StringIO("(a)")))
    assert [t.kind for t in toks] == [K.ParenOpen, K.Identifier, K.ParenClose, K.EOF]


def test_last_position_tracks_last_token_start():
    lex = Lexer("  abc  (")
    lex.next()
    assert lex.last_position == 2
    lex.next()
    assert lex.last_position == 7


def test_lexer_rejects_none():
    with pytest.raises(TypeError):
        Lexer(None)
