"""
Tokenizer for MiniLISP source text.

The lexer is pulled one token at a time by the parser. It keeps a single
character of lookahead and the offset of that character, which becomes the
position of every token it starts. Lexical problems never raise: they are
reported as `Error` tokens and the parser turns them into `Error` nodes.
"""
import io
from typing import Iterator, TextIO, Union

from minilisp.minilisp_datatypes import Token, TokenKind

WHITESPACE = frozenset(" \t,\r\n")

PUNCTUATION = {
    '(': TokenKind.ParenOpen,
    '{': TokenKind.ParenOpen,
    ')': TokenKind.ParenClose,
    '}': TokenKind.ParenClose,
    '[': TokenKind.BracketOpen,
    ']': TokenKind.BracketClose,
    '~': TokenKind.Quote,
    '.': TokenKind.Dot,
    '/': TokenKind.Slash,
}

KEYWORDS = {
    'true': TokenKind.Boolean,
    'false': TokenKind.Boolean,
    'null': TokenKind.Null,
}

ESCAPES = {
    '\\': '\\',
    "'": "'",
    'n': '\n',
    'r': '\r',
    't': '\t',
}

# Sentinels for the lookahead slot.
_UNREAD = object()
_EOF = ''


def _is_ident_start(c: str) -> bool:
    return ('A' <= c <= 'Z') or ('a' <= c <= 'z') or c == '_'


def _is_ident_part(c: str) -> bool:
    return _is_ident_start(c) or ('0' <= c <= '9') or c == '-'


def _is_digit(c: str) -> bool:
    return '0' <= c <= '9'


class Lexer:
    """Converts a character stream into positioned tokens."""

    def __init__(self, source: Union[str, TextIO]):
        if source is None:
            raise TypeError("Lexer requires a source string or text stream")
        self._reader: TextIO = io.StringIO(source) if isinstance(source, str) else source
        self._c = _UNREAD
        # Offset of the character currently held in the lookahead slot.
        self._pos = 0
        self._next_pos = 0
        self._last_position = 0
        self._done = False

    @property
    def last_position(self) -> int:
        """Offset of the last non-whitespace character that started a token."""
        return self._last_position

    def _read(self) -> str:
        if self._c == _EOF:
            return _EOF
        c = self._reader.read(1)
        self._pos = self._next_pos
        if c:
            self._next_pos += 1
        return c

    def _advance(self):
        self._c = self._read()

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next()
            yield tok
            if tok.kind in (TokenKind.EOF, TokenKind.Error):
                return

    def next(self) -> Token:
        """Returns the next token; keeps returning EOF once input is exhausted."""
        if self._done:
            return Token(self._pos, TokenKind.EOF)
        if self._c is _UNREAD:
            self._advance()

        while self._c in WHITESPACE:
            self._advance()

        c = self._c
        if c == _EOF:
            self._done = True
            return Token(self._pos, TokenKind.EOF)

        start = self._pos
        self._last_position = start

        kind = PUNCTUATION.get(c)
        if kind is not None:
            self._advance()
            return Token(start, kind, c)
        if _is_ident_start(c):
            return self._lex_identifier(start)
        if _is_digit(c) or c == '-':
            return self._lex_number(start)
        if c == "'":
            return self._lex_string(start)
        if c == '`':
            return self._lex_raw_string(start)

        return Token(start, TokenKind.Error, f"Unexpected character '{c}' at position {start}")

    def _lex_identifier(self, start: int) -> Token:
        chars = []
        while self._c != _EOF and _is_ident_part(self._c):
            chars.append(self._c)
            self._advance()
        text = ''.join(chars)
        return Token(start, KEYWORDS.get(text, TokenKind.Identifier), text)

    def _lex_number(self, start: int) -> Token:
        chars = [self._c]
        self._advance()
        has_point = False
        while self._c != _EOF and (_is_digit(self._c) or self._c == '.'):
            # Extra points are kept; the parser rejects the literal.
            if self._c == '.':
                has_point = True
            chars.append(self._c)
            self._advance()
        text = ''.join(chars)

        if self._c == 'd':
            self._advance()
            return Token(start, TokenKind.Double, text)
        if self._c == 'f':
            self._advance()
            return Token(start, TokenKind.Float, text)
        if has_point:
            return Token(start, TokenKind.Decimal, text)
        return Token(start, TokenKind.Integer, text)

    def _lex_string(self, start: int) -> Token:
        chars = []
        while True:
            self._advance()
            c = self._c
            if c == _EOF:
                return Token(self._pos, TokenKind.Error, "Unexpected end of string literal")
            if c == "'":
                break
            if c == '\\':
                self._advance()
                c = self._c
                if c == _EOF:
                    return Token(self._pos, TokenKind.Error, "Unexpected end of string literal")
                escaped = ESCAPES.get(c)
                if escaped is None:
                    return Token(self._pos, TokenKind.Error, f"Unknown backslash escape character '{c}'")
                chars.append(escaped)
            else:
                chars.append(c)
        self._advance()
        return Token(start, TokenKind.String, ''.join(chars))

    def _lex_raw_string(self, start: int) -> Token:
        chars = []
        while True:
            self._advance()
            c = self._c
            if c == _EOF:
                return Token(self._pos, TokenKind.Error, "Unexpected end of raw string literal")
            if c == '`':
                break
            chars.append(c)
        self._advance()
        return Token(start, TokenKind.String, ''.join(chars))


def tokenize(source: Union[str, TextIO]) -> list:
    """All tokens of source, ending with the EOF or first Error token."""
    return list(Lexer(source))
