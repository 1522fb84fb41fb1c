"""
Defines the core data types for the MiniLISP language.

This module provides the token model produced by the lexer, the immutable
S-expression node classes produced by the parser, the scope chain used by
the evaluator, and the exception taxonomy shared by all three stages.
"""

import struct
from dataclasses import dataclass, field
from decimal import Decimal as _Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple


# =================================================================
# Exceptions
# =================================================================

class MiniLispError(Exception):
    """Base class for every failure raised by MiniLISP."""
    pass


class ParseError(MiniLispError):
    """Raised at the API boundary when a parse produced an `Error` node."""
    def __init__(self, token: 'Token', message: str):
        super().__init__(f"MiniLISP error(pos {token.position}): {message}")
        self.token = token
        self.position = token.position
        self.message = message


class EvalError(MiniLispError):
    """Base class for failures raised while evaluating an expression."""
    pass


class UndefinedIdentifier(EvalError):
    def __init__(self, name: str):
        super().__init__(f"Undefined identifier '{name}'")
        self.name = name


class UndefinedFunction(EvalError):
    def __init__(self, name: str):
        super().__init__(f"Undefined function '{name}'")
        self.name = name


class ArityError(EvalError, TypeError):
    pass


class EvalTypeError(EvalError, TypeError):
    pass


class HostResolutionError(EvalError):
    """An unresolved host type or member, or a null instance receiver."""
    pass


class RegistrationError(MiniLispError, ValueError):
    pass


# =================================================================
# Tokens
# =================================================================

class TokenKind(Enum):
    EOF = "EOF"
    # For reporting errors:
    Error = "Error"

    ParenOpen = "ParenOpen"
    ParenClose = "ParenClose"
    BracketOpen = "BracketOpen"
    BracketClose = "BracketClose"
    Quote = "Quote"
    Dot = "Dot"
    Slash = "Slash"

    Identifier = "Identifier"
    String = "String"
    Integer = "Integer"
    Decimal = "Decimal"
    Double = "Double"
    Float = "Float"
    Boolean = "Boolean"
    Null = "Null"


@dataclass(frozen=True)
class Token:
    position: int
    kind: TokenKind
    text: Optional[str] = None

    def __repr__(self) -> str:
        return f"Token({self.position}, {self.kind.name}, {self.text!r})"


# =================================================================
# Runtime value helpers
# =================================================================

class Float32(float):
    """A float rounded to IEEE-754 single precision.

    The runtime value of a `1.5f` literal. It behaves as a regular float in
    arithmetic and comparisons but keeps its own type so hosts and the
    printer can tell it apart from a double.
    """
    def __new__(cls, value=0.0):
        return super().__new__(cls, struct.unpack('<f', struct.pack('<f', float(value)))[0])

    def __repr__(self) -> str:
        return f"Float32({float(self)!r})"


# Value types that `if` refuses as a test. Booleans are handled before this.
PRIMITIVE_VALUE_TYPES: Tuple[type, ...] = (int, float, _Decimal, complex)


# =================================================================
# S-expressions
# =================================================================

class SExprKind(Enum):
    Error = "Error"
    Quote = "Quote"
    Invocation = "Invocation"
    List = "List"
    ScopedIdentifier = "ScopedIdentifier"
    InstanceMemberIdentifier = "InstanceMemberIdentifier"
    StaticMemberIdentifier = "StaticMemberIdentifier"
    String = "String"
    Integer = "Integer"
    Decimal = "Decimal"
    Double = "Double"
    Float = "Float"
    Boolean = "Boolean"
    Null = "Null"


def _span():
    # Source tokens are diagnostics only; they never take part in equality.
    return field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class SExpr:
    """Base class of all AST nodes. Nodes are immutable once constructed."""
    kind = None

    @property
    def is_error(self) -> bool:
        return self.kind is SExprKind.Error

    def throw_if_error(self):
        """Raise a ParseError if this node is a parse failure."""
        pass


@dataclass(frozen=True)
class Error(SExpr):
    """A parse failure. Terminal: never wraps another expression."""
    message: str
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Error

    @property
    def position(self) -> int:
        return self.start.position if self.start is not None else 0

    def throw_if_error(self):
        raise ParseError(self.start or Token(0, TokenKind.Error, self.message), self.message)


@dataclass(frozen=True)
class Quote(SExpr):
    """A deferred, unevaluated expression (`~expr`).

    Evaluating a Quote yields the Quote node itself; `eval` forces it.
    """
    inner: SExpr
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Quote


@dataclass(frozen=True)
class ScopedIdentifier(SExpr):
    name: str
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.ScopedIdentifier


@dataclass(frozen=True)
class InstanceMemberIdentifier(SExpr):
    member_name: str
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.InstanceMemberIdentifier


@dataclass(frozen=True)
class StaticMemberIdentifier(SExpr):
    type_path: Tuple[str, ...]
    member_name: str
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.StaticMemberIdentifier

    @property
    def dotted_type_path(self) -> str:
        return ".".join(self.type_path)


@dataclass(frozen=True)
class Invocation(SExpr):
    """A parenthesized call `(ident param*)`.

    Parameters are kept unevaluated; each builtin decides which ones to
    evaluate and in what order.
    """
    identifier: SExpr
    parameters: Tuple[SExpr, ...] = ()
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Invocation

    def __len__(self) -> int:
        return len(self.parameters)

    def __getitem__(self, index):
        return self.parameters[index]

    @property
    def name(self) -> str:
        """Printable name of the invoked identifier, for messages and frames."""
        match self.identifier:
            case ScopedIdentifier(name=name):
                return name
            case InstanceMemberIdentifier(member_name=member):
                return f".{member}"
            case StaticMemberIdentifier() as s:
                return f"{s.dotted_type_path}/{s.member_name}"
        return "<invocation>"


@dataclass(frozen=True)
class ListExpr(SExpr):
    """A bracketed data list `[item*]`, evaluated item by item when walked."""
    items: Tuple[SExpr, ...] = ()
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.List

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]


@dataclass(frozen=True)
class String(SExpr):
    value: str
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.String


@dataclass(frozen=True)
class Integer(SExpr):
    value: int
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Integer


@dataclass(frozen=True)
class Decimal(SExpr):
    value: _Decimal
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Decimal


@dataclass(frozen=True)
class Double(SExpr):
    value: float
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Double


@dataclass(frozen=True)
class Float(SExpr):
    value: Float32
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Float


@dataclass(frozen=True)
class Boolean(SExpr):
    value: bool
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Boolean


@dataclass(frozen=True)
class Null(SExpr):
    start: Optional[Token] = _span()
    end: Optional[Token] = _span()
    kind = SExprKind.Null

    @property
    def value(self) -> None:
        return None


LITERAL_TYPES = (String, Integer, Decimal, Double, Float, Boolean, Null)


# =================================================================
# Scopes
# =================================================================

@dataclass
class NamedStorage:
    """A single variable binding: its name, declared type and value."""
    name: str
    declared_type: Optional[type]
    value: Any


class Scope:
    """A set of variable bindings linked to an optional parent scope.

    Lookup walks from this scope towards the root. The parent must outlive
    any child that refers to it; scopes are opened and closed in strict
    nesting order by the evaluator.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.parent = parent
        self.bindings: Dict[str, NamedStorage] = {}

    def bind(self, name: str, declared_type: Optional[type], value: Any) -> NamedStorage:
        if not isinstance(name, str) or not name:
            raise TypeError(f"Scope key must be a non-empty str, not {name!r}")
        if declared_type is not None and value is not None and not isinstance(value, declared_type):
            raise TypeError(
                f"Cannot bind '{name}': expected {declared_type.__name__}, got {type(value).__name__}"
            )
        storage = NamedStorage(name, declared_type, value)
        self.bindings[name] = storage
        return storage

    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the Scope in the chain (self, then parents) that owns name."""
        scope = self
        while scope is not None:
            if name in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def lookup(self, name: str) -> NamedStorage:
        owner = self.find_owner(name)
        if owner is None:
            raise UndefinedIdentifier(name)
        return owner.bindings[name]

    def __getitem__(self, name: str) -> Any:
        return self.lookup(name).value

    def __setitem__(self, name: str, value: Any):
        self.bind(name, None, value)

    def __contains__(self, name: Any) -> bool:
        return isinstance(name, str) and self.find_owner(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            return default
        return owner.bindings[name].value

    def keys(self):
        """Returns a view of names bound in this scope only."""
        return self.bindings.keys()

    def flatten(self) -> Dict[str, Any]:
        """Collapse the chain into a plain dict; inner bindings win."""
        chain: List['Scope'] = []
        cur = self
        while cur is not None:
            chain.append(cur)
            cur = cur.parent
        out: Dict[str, Any] = {}
        for s in reversed(chain):
            for k, storage in s.bindings.items():
                out[k] = storage.value
        return out

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"
