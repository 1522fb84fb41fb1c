"""
A pretty-printer for MiniLISP expressions and runtime values.
"""
from decimal import Decimal as _Decimal
import math

from minilisp.minilisp_datatypes import (
    Error, Quote, Invocation, ListExpr,
    ScopedIdentifier, InstanceMemberIdentifier, StaticMemberIdentifier,
    String, Integer, Decimal, Double, Float, Boolean, Null, Float32,
)

_STRING_ESCAPES = {
    '\\': '\\\\',
    "'": "\\'",
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}


def _positional(value: float) -> str:
    """Shortest round-tripping spelling of a finite float, without exponent."""
    text = format(_Decimal(repr(float(value))), 'f')
    return text


class Printer:
    """Formats MiniLISP objects into readable, valid MiniLISP source strings."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # Fallbacks for subclasses and sequences produced by list evaluation
        if isinstance(obj, bool): return self._pformat_bool
        if isinstance(obj, (list, tuple)): return self._pformat_sequence
        if isinstance(obj, str): return self._pformat_str
        # Default to Python's repr for host objects
        return repr

    def _create_handlers(self):
        return {
            # AST nodes
            Error: self._pformat_error,
            Quote: self._pformat_quote,
            Invocation: self._pformat_invocation,
            ListExpr: self._pformat_list_expr,
            ScopedIdentifier: self._pformat_scoped,
            InstanceMemberIdentifier: self._pformat_instance_member,
            StaticMemberIdentifier: self._pformat_static_member,
            String: lambda n: self._pformat_str(n.value),
            Integer: lambda n: self._pformat_int(n.value),
            Decimal: lambda n: self._pformat_decimal(n.value),
            Double: lambda n: self._pformat_float(n.value),
            Float: lambda n: self._pformat_float32(n.value),
            Boolean: lambda n: self._pformat_bool(n.value),
            Null: lambda n: self._pformat_none(None),
            # Runtime values
            str: self._pformat_str,
            int: self._pformat_int,
            bool: self._pformat_bool,
            float: self._pformat_float,
            Float32: self._pformat_float32,
            _Decimal: self._pformat_decimal,
            type(None): self._pformat_none,
            list: self._pformat_sequence,
            tuple: self._pformat_sequence,
        }

    # --- Literals ---

    def _pformat_str(self, obj) -> str:
        return "'" + ''.join(_STRING_ESCAPES.get(c, c) for c in obj) + "'"

    def _pformat_int(self, obj) -> str:
        return str(obj)

    def _pformat_bool(self, obj) -> str:
        return 'true' if obj else 'false'

    def _pformat_none(self, obj) -> str:
        return 'null'

    def _pformat_decimal(self, obj) -> str:
        text = format(obj, 'f')
        # A decimal literal is told apart from an integer by its point.
        if '.' not in text:
            text += '.0'
        return text

    def _pformat_float(self, obj) -> str:
        if not math.isfinite(obj):
            return repr(float(obj))
        return _positional(obj) + 'd'

    def _pformat_float32(self, obj) -> str:
        if not math.isfinite(obj):
            return repr(float(obj))
        return _positional(obj) + 'f'

    # --- Structure ---

    def _pformat_sequence(self, obj) -> str:
        return "[" + " ".join(self.pformat(item) for item in obj) + "]"

    def _pformat_list_expr(self, node: ListExpr) -> str:
        return "[" + " ".join(self.pformat(item) for item in node.items) + "]"

    def _pformat_quote(self, node: Quote) -> str:
        return "~" + self.pformat(node.inner)

    def _pformat_invocation(self, node: Invocation) -> str:
        parts = [self.pformat(node.identifier)]
        parts.extend(self.pformat(p) for p in node.parameters)
        return "(" + " ".join(parts) + ")"

    def _pformat_scoped(self, node: ScopedIdentifier) -> str:
        return node.name

    def _pformat_instance_member(self, node: InstanceMemberIdentifier) -> str:
        return f".{node.member_name}"

    def _pformat_static_member(self, node: StaticMemberIdentifier) -> str:
        return f"{node.dotted_type_path}/{node.member_name}"

    def _pformat_error(self, node: Error) -> str:
        return f"ERROR({node.position}): {node.message}"


def pformat(obj) -> str:
    return Printer().pformat(obj)
