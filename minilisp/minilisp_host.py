"""
Host binding: how the evaluator reaches host-provided types and objects.

The evaluator only ever talks to a `HostBinding`. It asks it for a type by
dotted path and for a member by name, and calls whatever it gets back.
`ReflectionHost` is the stock binding built on Python introspection.
"""
import importlib
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Sequence, Tuple


def host_method(func):
    """A decorator to explicitly mark methods as safe for MiniLISP execution."""
    func._is_minilisp_api = True
    return func


def _is_host_method(member) -> bool:
    if getattr(member, "_is_minilisp_api", False):
        return True
    func = getattr(member, "__func__", None)
    return func is not None and getattr(func, "_is_minilisp_api", False)


class HostBinding(ABC):
    """Capability interface used for static- and instance-member invocation."""

    @abstractmethod
    def resolve_type(self, segments: Sequence[str]) -> Optional[Any]:
        """Returns a handle for the type named by the dotted path, or None."""
        raise NotImplementedError

    @abstractmethod
    def resolve_member(self, target: Any, name: str,
                       arg_types: Optional[Tuple[type, ...]]) -> Optional[Callable]:
        """Returns a callable taking the evaluated arguments, or None.

        `arg_types` is None when the member is to be matched by name only.
        """
        raise NotImplementedError


class PropertyAccessor:
    """Reads an attribute when called with no arguments, writes it with one."""
    def __init__(self, target: Any, name: str):
        self.target = target
        self.name = name

    def __call__(self, *args):
        if not args:
            return getattr(self.target, self.name)
        if len(args) == 1:
            setattr(self.target, self.name, args[0])
            return args[0]
        raise TypeError(f"property '{self.name}' accepts at most one argument, got {len(args)}")

    def __repr__(self) -> str:
        return f"<PropertyAccessor {type(self.target).__name__}.{self.name}>"


def _annotation_accepts(annotation, arg_type: type) -> bool:
    # Only plain class annotations take part in matching.
    if annotation is inspect.Parameter.empty or not isinstance(annotation, type):
        return True
    if arg_type is type(None):
        return False
    return issubclass(arg_type, annotation)


def signature_accepts(func: Callable, arg_types: Tuple[type, ...]) -> bool:
    """True when func can be called positionally with values of arg_types."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        # Some builtins expose no signature; let the call itself decide.
        return True
    try:
        bound = sig.bind(*arg_types)
    except TypeError:
        return False
    for name, value in bound.arguments.items():
        param = sig.parameters[name]
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            if not all(_annotation_accepts(param.annotation, t) for t in value):
                return False
        elif param.kind is inspect.Parameter.VAR_KEYWORD:
            continue
        elif not _annotation_accepts(param.annotation, value):
            return False
    return True


class ReflectionHost(HostBinding):
    """A host binding built on Python attribute lookup.

    Types are taken from an explicit registration table. With
    `allow_imports=True`, unregistered dotted paths are also imported, first
    as a module and then as `module.attribute`. Member names starting with an
    underscore are never exposed. With `strict=True`, only callables marked
    with `@host_method` are exposed as methods.
    """

    def __init__(self, types: Optional[Dict[str, Any]] = None, *,
                 allow_imports: bool = False, strict: bool = False):
        self.types: Dict[str, Any] = {}
        self.allow_imports = allow_imports
        self.strict = strict
        for path, obj in (types or {}).items():
            self.register_type(path, obj)

    def register_type(self, path: str, obj: Any):
        if not path:
            raise ValueError("type path cannot be empty")
        self.types[path] = obj

    def resolve_type(self, segments: Sequence[str]) -> Optional[Any]:
        path = ".".join(segments)
        if path in self.types:
            return self.types[path]
        if not self.allow_imports:
            return None
        try:
            return importlib.import_module(path)
        except ImportError:
            pass
        if len(segments) < 2:
            return None
        module_path = ".".join(segments[:-1])
        try:
            module = importlib.import_module(module_path)
        except ImportError:
            return None
        return getattr(module, segments[-1], None)

    def resolve_member(self, target: Any, name: str,
                       arg_types: Optional[Tuple[type, ...]]) -> Optional[Callable]:
        if not name or name.startswith('_'):
            return None
        try:
            attr = getattr(target, name)
        except AttributeError:
            return None

        if callable(attr):
            if self.strict and not _is_host_method(attr):
                return None
            if arg_types is None or signature_accepts(attr, arg_types):
                return attr
            return None

        return PropertyAccessor(target, name)
