"""
The core MiniLISP interpreter: the Evaluator and the standard extern functions.
"""
import inspect
import os
import sys
from contextlib import contextmanager
from decimal import Decimal as _Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from minilisp.minilisp_datatypes import (
    SExpr, Error, Quote, Invocation, ListExpr,
    ScopedIdentifier, InstanceMemberIdentifier, StaticMemberIdentifier,
    String, Integer, Decimal, Double, Float, Boolean, Null,
    Scope, Float32, PRIMITIVE_VALUE_TYPES,
    EvalError, UndefinedFunction, ArityError, EvalTypeError,
    HostResolutionError, RegistrationError,
)
from minilisp.minilisp_host import HostBinding, ReflectionHost

# An extern receives the evaluator and the unevaluated invocation node.
ExternFunction = Callable[['Evaluator', Invocation], Any]

# Subclasses come before their bases: bool before int, Float32 before float.
_SCALAR_KINDS = (bool, int, Float32, float, _Decimal)


def _scalar_kind(value: Any) -> Optional[type]:
    for kind in _SCALAR_KINDS:
        if isinstance(value, kind):
            return kind
    return None


def values_equal(a: Any, b: Any) -> bool:
    """Equality for `eq`/`ne`.

    Booleans and the numeric kinds (integer, decimal, double, float) only
    equal values of the same kind, so `(eq 1 true)` and `(eq 1 1.0d)` are
    false. Everything else uses `==`.
    """
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    if _scalar_kind(a) is not _scalar_kind(b):
        return False
    return a == b


class StandardExterns:
    """The builtins every Evaluator starts with.

    Each one owns its argument-evaluation policy; nothing is evaluated
    before it is called.
    """

    @staticmethod
    def _eval(v: 'Evaluator', e: Invocation):
        if len(e) != 1:
            raise ArityError("`eval` requires 1 parameter")
        quoted = v.eval(e[0])
        if not isinstance(quoted, Quote):
            raise EvalTypeError("`eval` parameter must be a quoted s-expression")
        return v.eval(quoted.inner)

    @staticmethod
    def _if(v: 'Evaluator', e: Invocation):
        if len(e) != 3:
            raise ArityError("`if` requires 3 parameters: condition, then, else")
        test_expr, true_expr, false_expr = e.parameters

        test = v.eval(test_expr)
        v._dbg("if()", "test", type(test).__name__)
        if test is None:
            # Null is logically false
            return v.eval(false_expr)
        if isinstance(test, bool):
            return v.eval(true_expr if test else false_expr)
        if isinstance(test, PRIMITIVE_VALUE_TYPES):
            raise EvalTypeError(
                f"`if` condition parameter must be a boolean or reference type, got {type(test).__name__}"
            )
        # Any other non-null value is logically true
        return v.eval(true_expr)

    @staticmethod
    def _eq(v: 'Evaluator', e: Invocation):
        if len(e) != 2:
            raise ArityError("`eq` requires 2 parameters")
        a = v.eval(e[0])
        b = v.eval(e[1])
        return values_equal(a, b)

    @staticmethod
    def _ne(v: 'Evaluator', e: Invocation):
        if len(e) != 2:
            raise ArityError("`ne` requires 2 parameters")
        a = v.eval(e[0])
        b = v.eval(e[1])
        return not values_equal(a, b)


class Evaluator:
    """The MiniLISP execution engine.

    Holds the root scope, the extern registry and the host binding. Register
    externs and bind globals before evaluation starts; there is no locking,
    so concurrent evaluation is only safe while nothing is being registered.
    """

    def __init__(self, host: Optional[HostBinding] = None):
        self.host: HostBinding = host if host is not None else ReflectionHost()
        self.root_scope = Scope()
        # Innermost scope; identifiers resolve from here outwards.
        self.scope = self.root_scope
        self.externs: Dict[str, ExternFunction] = {}
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node: Optional[SExpr] = None
        # Nesting of `eval` calls; externs re-enter `eval` for their arguments.
        self._eval_depth = 0
        # Frames in `call_stack` that belong to calls still running.
        self._active_frames = 0

        for name, member in inspect.getmembers(StandardExterns, predicate=inspect.isfunction):
            if name.startswith('_') and not name.startswith('__'):
                self.register(name[1:], member)

    # ------------------------------------------------------------------
    # Setup phase
    # ------------------------------------------------------------------

    def register(self, name: str, func: Optional[ExternFunction] = None):
        """Add an extern function. Usable directly or as `@ev.register('name')`."""
        if func is None:
            def decorator(fn):
                self.register(name, fn)
                return fn
            return decorator

        if not isinstance(name, str) or not name:
            raise RegistrationError("name cannot be empty or null")
        if not callable(func):
            raise RegistrationError(f"extern '{name}' must be callable")
        if name in self.externs:
            raise RegistrationError(f"A function with the name '{name}' is already defined")
        self.externs[name] = func

    def bind(self, name: str, declared_type: Optional[type], value: Any):
        """Seed a global variable into the root scope."""
        return self.root_scope.bind(name, declared_type, value)

    def bind_all(self, values: Mapping[str, Any]):
        for name, value in values.items():
            self.bind(name, None, value)

    def names(self) -> List[str]:
        return sorted(self.externs)

    def __contains__(self, name: str) -> bool:
        return name in self.externs

    @contextmanager
    def push_scope(self):
        """Open a child of the current scope for the duration of the block."""
        prev = self.scope
        child = Scope(parent=prev)
        self.scope = child
        try:
            yield child
        finally:
            self.scope = prev

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _dbg(self, *parts):
        if os.environ.get("MINILISP_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _push_frame(self, name, func, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': call_site_node,
        })

    def _call(self, name, func, args, call_site_node, thunk):
        """Run thunk under a new frame.

        Frames above the active calls are left over from failures that an
        extern recovered from, and are dropped before pushing. On failure the
        frames stay for error reporting until the next call or top-level
        `eval`.
        """
        base = self._active_frames
        del self.call_stack[base:]
        self._push_frame(name, func, args, call_site_node)
        self._active_frames = base + 1
        try:
            result = thunk()
        finally:
            self._active_frames = base
        del self.call_stack[base:]
        return result

    def eval(self, node: SExpr, scope: Optional[Scope] = None) -> Any:
        """Evaluate node in scope (the current scope by default).

        A top-level call starts with an empty call stack; the frames of a
        failed evaluation are readable from `call_stack` until then.
        """
        if self._eval_depth == 0:
            self.call_stack.clear()
        prev = self.scope
        if scope is not None:
            self.scope = scope
        self._eval_depth += 1
        try:
            return self._eval(node)
        finally:
            self._eval_depth -= 1
            self.scope = prev

    def eval_all(self, nodes: Iterable[SExpr]) -> List[Any]:
        return [self.eval(n) for n in nodes]

    def eval_expecting(self, node: SExpr, expected_type: type) -> Any:
        val = self.eval(node)
        if not isinstance(val, expected_type):
            got = 'null' if val is None else type(val).__name__
            raise EvalTypeError(f"Expecting a value of type {expected_type.__name__} but got type {got}")
        return val

    def _eval(self, node: SExpr) -> Any:
        """Recursive dispatcher for evaluating any AST node."""
        self.current_node = node
        match node:
            case Error():
                node.throw_if_error()
            case (String(value=value) | Integer(value=value) | Decimal(value=value)
                  | Double(value=value) | Float(value=value) | Boolean(value=value)):
                return value
            case Null():
                return None
            case ScopedIdentifier(name=name):
                return self.scope.lookup(name).value
            case ListExpr(items=items):
                return [self._eval(item) for item in items]
            case Quote():
                # A quote is its own value; `eval` unwraps it.
                return node
            case Invocation():
                return self.invoke(node)
        raise EvalError(f"Unknown expression kind: '{getattr(node, 'kind', type(node).__name__)}'")

    def invoke(self, e: Invocation) -> Any:
        match e.identifier:
            case ScopedIdentifier(name=name):
                return self._invoke_extern(name, e)
            case StaticMemberIdentifier() as ident:
                return self._invoke_static(ident, e)
            case InstanceMemberIdentifier() as ident:
                return self._invoke_instance(ident, e)
        raise EvalError(f"Invalid function identifier in invocation '{e.name}'")

    def _invoke_extern(self, name: str, e: Invocation) -> Any:
        func = self.externs.get(name)
        if func is None:
            raise UndefinedFunction(name)
        self._dbg("extern", name, "argc", len(e))
        return self._call(name, func, list(e.parameters), e, lambda: func(self, e))

    def _invoke_static(self, ident: StaticMemberIdentifier, e: Invocation) -> Any:
        path = ident.dotted_type_path
        type_handle = self.host.resolve_type(ident.type_path)
        if type_handle is None:
            raise HostResolutionError(f"Could not resolve type '{path}'")

        args = [self._eval(p) for p in e.parameters]
        # Failures from here on belong to the invocation, not its last argument.
        self.current_node = e
        member = self.host.resolve_member(type_handle, ident.member_name, None)
        if member is None:
            raise HostResolutionError(f"Could not find static member '{ident.member_name}' on type '{path}'")

        self._dbg("static", path, ident.member_name, "argc", len(args))
        return self._call(e.name, member, args, e, lambda: member(*args))

    def _invoke_instance(self, ident: InstanceMemberIdentifier, e: Invocation) -> Any:
        member_name = ident.member_name
        if len(e) == 0:
            raise ArityError(f"Member invocation '.{member_name}' requires a receiver parameter")

        receiver = self._eval(e[0])
        self.current_node = e
        if receiver is None:
            raise HostResolutionError(f"Cannot invoke member '{member_name}' on a null receiver")

        args = [self._eval(p) for p in e.parameters[1:]]
        self.current_node = e
        arg_types = tuple(type(a) for a in args)
        member = self.host.resolve_member(receiver, member_name, arg_types)
        if member is None:
            raise HostResolutionError(
                f"Could not find member '{member_name}' on type '{type(receiver).__name__}'"
            )

        self._dbg("instance", type(receiver).__name__, member_name, "arg_types", [t.__name__ for t in arg_types])
        return self._call(e.name, member, [receiver] + args, e, lambda: member(*args))
