"""
Recursive-descent parser producing the MiniLISP AST.

Grammar::

    expr      := '(' identForm expr* ')'
               | '[' expr* ']'
               | '~' expr
               | IDENT | INTEGER | STRING | BOOLEAN | NULL | DECIMAL | DOUBLE | FLOAT
    identForm := '.' IDENT
               | IDENT ('.' IDENT)* ('/' IDENT)?

Nothing in here raises for bad input. Every step yields either the token it
accepted or an `Error` node, and the first `Error` seen anywhere is returned
unchanged from the outermost `parse_expr()` call. Callers that prefer an
exception use `parse_or_raise()` or `node.throw_if_error()`.
"""
from decimal import Decimal as _Decimal, InvalidOperation
from typing import List, TextIO, Union

from minilisp.minilisp_datatypes import (
    Token, TokenKind, SExpr, Error, Quote, Invocation, ListExpr,
    ScopedIdentifier, InstanceMemberIdentifier, StaticMemberIdentifier,
    String, Integer, Decimal, Double, Float, Boolean, Null, Float32,
)
from minilisp.minilisp_lexer import Lexer

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Either the accepted token or the Error node that ends the parse.
Step = Union[Token, Error]


def _failed(step: Step) -> bool:
    return isinstance(step, Error)


class Parser:
    """Builds one AST root per `parse_expr()` call from a token stream."""

    def __init__(self, lexer: Lexer):
        if lexer is None:
            raise TypeError("Parser requires a lexer")
        self.lexer = lexer
        # Last token read from the lexer.
        self.tok: Token = None
        # When set, the next `_next()` returns `self.tok` again.
        self._held = False

    # ------------------------------------------------------------------
    # Token stepping
    # ------------------------------------------------------------------

    def _next(self) -> Step:
        """Accept the next token; EOF and lexer errors become Error nodes."""
        if self._held:
            self._held = False
        else:
            self.tok = self.lexer.next()
        tok = self.tok
        if tok.kind is TokenKind.EOF:
            return Error("Unexpected end of input", tok, tok)
        if tok.kind is TokenKind.Error:
            return Error(tok.text, tok, tok)
        return tok

    def _hold(self):
        """Make the current token the result of the next `_next()` call."""
        self._held = True

    def _expect(self, kind: TokenKind) -> Step:
        step = self._next()
        if _failed(step):
            return step
        if step.kind is not kind:
            return Error(f"Unexpected token '{step.kind.name}', expecting '{kind.name}'", step, step)
        return step

    def at_end(self) -> bool:
        """True once the input holds no further tokens."""
        if not self._held:
            self.tok = self.lexer.next()
            self._held = True
        return self.tok.kind is TokenKind.EOF

    # ------------------------------------------------------------------
    # Grammar rules
    # ------------------------------------------------------------------

    def parse_expr(self) -> SExpr:
        """Parse one expression; returns an Error node on the first failure."""
        step = self._next()
        if _failed(step):
            return step

        match step.kind:
            case TokenKind.ParenOpen:
                return self._parse_invocation(step)
            case TokenKind.BracketOpen:
                return self._parse_list(step)
            case TokenKind.Quote:
                inner = self.parse_expr()
                if inner.is_error:
                    return inner
                return Quote(inner, step, inner.end)
            case TokenKind.Identifier:
                return ScopedIdentifier(step.text, step, step)
            case TokenKind.String:
                return String(step.text, step, step)
            case TokenKind.Boolean:
                return Boolean(step.text == 'true', step, step)
            case TokenKind.Null:
                return Null(step, step)
            case TokenKind.Integer | TokenKind.Decimal | TokenKind.Double | TokenKind.Float:
                return self._parse_number(step)

        return Error(f"Unexpected token '{step.kind.name}'", step, step)

    def _parse_invocation(self, start: Token) -> SExpr:
        ident = self._parse_ident_form()
        if ident.is_error:
            return ident

        parameters = self._parse_until(TokenKind.ParenClose)
        if isinstance(parameters, Error):
            return parameters
        return Invocation(ident, tuple(parameters), start, self.tok)

    def _parse_list(self, start: Token) -> SExpr:
        items = self._parse_until(TokenKind.BracketClose)
        if isinstance(items, Error):
            return items
        return ListExpr(tuple(items), start, self.tok)

    def _parse_until(self, closer: TokenKind) -> Union[List[SExpr], Error]:
        """Parse expressions up to and including the closing token."""
        out: List[SExpr] = []
        while True:
            step = self._next()
            if _failed(step):
                return step
            if step.kind is closer:
                return out
            # Let the sub-expression start from the token we just looked at.
            self._hold()
            expr = self.parse_expr()
            if expr.is_error:
                return expr
            out.append(expr)

    def _parse_ident_form(self) -> SExpr:
        step = self._next()
        if _failed(step):
            return step

        if step.kind is TokenKind.Dot:
            name = self._expect(TokenKind.Identifier)
            if _failed(name):
                return name
            return InstanceMemberIdentifier(name.text, step, name)

        if step.kind is not TokenKind.Identifier:
            return Error(f"Unexpected token '{step.kind.name}', expecting 'Identifier'", step, step)

        start = step
        segments = [step.text]
        while True:
            step = self._next()
            if _failed(step):
                return step
            if step.kind is TokenKind.Dot:
                name = self._expect(TokenKind.Identifier)
                if _failed(name):
                    return name
                segments.append(name.text)
                continue
            if step.kind is TokenKind.Slash:
                member = self._expect(TokenKind.Identifier)
                if _failed(member):
                    return member
                return StaticMemberIdentifier(tuple(segments), member.text, start, member)
            # Not part of the identifier; the parameter list starts here.
            self._hold()
            break

        if len(segments) > 1:
            return Error("Scoped identifier must have only one part", start, self.tok)
        return ScopedIdentifier(segments[0], start, start)

    def _parse_number(self, tok: Token) -> SExpr:
        text = tok.text or ''
        match tok.kind:
            case TokenKind.Integer:
                try:
                    value = int(text, 10)
                except ValueError:
                    return Error(f"Invalid integer literal '{text}'", tok, tok)
                if not INT64_MIN <= value <= INT64_MAX:
                    return Error(f"Integer literal '{text}' is out of range", tok, tok)
                return Integer(value, tok, tok)
            case TokenKind.Decimal:
                try:
                    value = _Decimal(text)
                except InvalidOperation:
                    return Error(f"Invalid decimal literal '{text}'", tok, tok)
                return Decimal(value, tok, tok)
            case TokenKind.Double:
                try:
                    value = float(text)
                except ValueError:
                    return Error(f"Invalid double literal '{text}'", tok, tok)
                return Double(value, tok, tok)
            case TokenKind.Float:
                try:
                    value = Float32(float(text))
                except (ValueError, OverflowError):
                    return Error(f"Invalid float literal '{text}'", tok, tok)
                return Float(value, tok, tok)
        return Error(f"Unexpected token '{tok.kind.name}'", tok, tok)


# ----------------------------------------------------------------------
# Module-level conveniences
# ----------------------------------------------------------------------

def parse(source: Union[str, TextIO]) -> SExpr:
    """Parse exactly one expression that must span the whole input."""
    parser = Parser(Lexer(source))
    expr = parser.parse_expr()
    if expr.is_error:
        return expr
    step = parser._next()
    if isinstance(step, Error):
        # Only end-of-input is acceptable after the root expression.
        if parser.tok.kind is TokenKind.EOF:
            return expr
        return step
    return Error(f"Unexpected trailing token '{step.kind.name}'", step, step)


def parse_many(source: Union[str, TextIO]) -> List[SExpr]:
    """Parse every top-level expression; a failure yields `[Error]`."""
    parser = Parser(Lexer(source))
    out: List[SExpr] = []
    while not parser.at_end():
        expr = parser.parse_expr()
        if expr.is_error:
            return [expr]
        out.append(expr)
    return out


def parse_or_raise(source: Union[str, TextIO]) -> SExpr:
    """Like `parse()`, but raises ParseError instead of returning an Error node."""
    expr = parse(source)
    expr.throw_if_error()
    return expr
