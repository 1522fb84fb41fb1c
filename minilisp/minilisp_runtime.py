# minilisp_runtime.py

import collections.abc
import inspect
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, Literal, Dict, Mapping, Union

import pystache
import yaml

from minilisp.minilisp_datatypes import (
    Invocation, Quote, Token, Scope, SExpr,
    EvalError, UndefinedIdentifier, UndefinedFunction, ArityError, EvalTypeError,
)
from minilisp.minilisp_host import HostBinding
from minilisp.minilisp_interpreter import Evaluator
from minilisp.minilisp_parser import parse_many
from minilisp.minilisp_printer import Printer
from minilisp.minilisp_serialize import serialize, load_globals


# ===================================================================
# 1. Template helpers
# ===================================================================

def _tmpl_normalize_value(v):
    """Convert MiniLISP values into plain Python types for Mustache."""
    if isinstance(v, collections.abc.Mapping):
        return {k: _tmpl_normalize_value(v[k]) for k in v.keys()}
    if isinstance(v, (list, tuple)):
        return [_tmpl_normalize_value(x) for x in v]
    if isinstance(v, SExpr):
        return Printer().pformat(v)
    if isinstance(v, Decimal):
        return format(v, 'f')
    return v


def _scope_to_dict(scope: Scope) -> dict:
    """Flatten the scope chain into a single plain dict, inner bindings winning."""
    return {k: _tmpl_normalize_value(v) for k, v in scope.flatten().items()}


def to_text(value: Any) -> str:
    """The `str` spelling of a runtime value."""
    match value:
        case None:
            return "null"
        case bool():
            return "true" if value else "false"
        case Decimal():
            return format(value, 'f')
        case str():
            return value
        case Quote():
            return Printer().pformat(value)
    return str(value)


# ===================================================================
# 2. Library externs
# ===================================================================

def _expect_strings(items, what: str) -> List[str]:
    for i, item in enumerate(items):
        if not isinstance(item, str):
            raise EvalTypeError(f"{what} item {i + 1} must evaluate to a string")
    return list(items)


class StdLib:
    """Optional externs installed by ScriptRunner on top of eval/if/eq/ne.

    Method `_foo_bar` is registered as `foo-bar`. Every extern receives the
    evaluator and the unevaluated invocation node.
    """

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def _str(self, v: Evaluator, e: Invocation):
        if len(e) != 1:
            raise ArityError("`str` requires 1 parameter")
        return to_text(v.eval(e[0]))

    def _concat(self, v: Evaluator, e: Invocation):
        return "".join(to_text(x) for x in v.eval_all(e.parameters))

    def _prefix(self, v: Evaluator, e: Invocation):
        if len(e) != 2:
            raise ArityError("`prefix` requires 2 parameters")
        prefix = v.eval_expecting(e[0], str)
        names = _expect_strings(v.eval_expecting(e[1], list), "`prefix` list")
        return ", ".join(f"[{prefix}].[{name}]" for name in names)

    def _rename(self, v: Evaluator, e: Invocation):
        if len(e) != 2:
            raise ArityError("`rename` requires 2 parameters")
        prefix = v.eval_expecting(e[0], str)
        names = _expect_strings(v.eval_expecting(e[1], list), "`rename` list")
        return ", ".join(f"[{prefix}].[{name}] AS [{prefix}_{name}]" for name in names)

    def _render(self, v: Evaluator, e: Invocation):
        if len(e) not in (1, 2):
            raise ArityError("`render` requires 1 or 2 parameters: template, context")
        template = v.eval_expecting(e[0], str)
        data = _scope_to_dict(v.scope)
        if len(e) == 2:
            context = v.eval(e[1])
            if not isinstance(context, collections.abc.Mapping):
                raise EvalTypeError("`render` context must evaluate to a mapping")
            data.update(_tmpl_normalize_value(context))
        return pystache.render(template, data)

    def _serialize(self, v: Evaluator, e: Invocation):
        if len(e) != 2:
            raise ArityError("`serialize` requires 2 parameters: format, value")
        fmt = v.eval_expecting(e[0], str)
        value = v.eval(e[1])
        try:
            return serialize(value, fmt=fmt, pretty=False)
        except (TypeError, ValueError, yaml.YAMLError) as exc:
            raise EvalError(str(exc)) from exc


def install_stdlib(evaluator: Evaluator) -> List[str]:
    """Register the StdLib externs on evaluator; returns the names added."""
    stdlib = StdLib(evaluator)
    added = []
    for name, member in inspect.getmembers(stdlib):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            lisp_name = name[1:].replace('_', '-')
            evaluator.register(lisp_name, member)
            added.append(lisp_name)
    return added


# ===================================================================
# 3. Script Execution
# ===================================================================

TokenInfo = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[TokenInfo] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Parses and executes MiniLISP scripts, reporting failures as results."""

    def __init__(self, host: Optional[HostBinding] = None, load_library: bool = True,
                 globals: Optional[Mapping[str, Any]] = None,
                 globals_file: Optional[Union[str, Path]] = None):
        self.evaluator = Evaluator(host)
        self.side_effects: List[Dict] = []
        if load_library:
            install_stdlib(self.evaluator)
        if globals_file is not None:
            self.evaluator.bind_all(load_globals(globals_file))
        if globals:
            self.evaluator.bind_all(globals)

    @property
    def root_scope(self) -> Scope:
        return self.evaluator.root_scope

    def _token_info(self, token: Optional[Token], source: str) -> Optional[TokenInfo]:
        if token is None:
            return None
        line, col = self._line_col(source, token.position)
        return {'position': token.position, 'line': line, 'col': col,
                'kind': token.kind.name, 'text': token.text}

    @staticmethod
    def _line_col(source: str, position: int) -> tuple[int, int]:
        position = max(0, min(position, len(source)))
        line = source.count('\n', 0, position) + 1
        col = position - (source.rfind('\n', 0, position) + 1) + 1
        return line, col

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_parse_error(self, err, source: str) -> tuple[str, Optional[TokenInfo]]:
        token = self._token_info(err.start, source)
        base = f"ParseError: {err.message}"
        if token is None:
            return base, None
        line, col = token['line'], token['col']
        context = self._source_context(source, line, col)
        msg = f"{base} (line {line}, col {col})"
        if context:
            msg = f"{msg}\n{context}"
        return msg, token

    def _format_runtime_error(self, e: Exception, source: str, node) -> tuple[str, Optional[TokenInfo]]:
        match e:
            case UndefinedIdentifier() as u:
                msg = f"UndefinedIdentifier: {u.name}"
            case UndefinedFunction() as u:
                msg = f"UndefinedFunction: {u.name}"
            case EvalError():
                msg = f"{type(e).__name__}: {e}"
            case _:
                msg = f"InternalError: {type(e).__name__}: {e}"

        token = None
        start = getattr(node, 'start', None) if node is not None else None
        if isinstance(start, Token):
            token = self._token_info(start, source)
            line, col = token['line'], token['col']
            msg = f"{msg}\n(line {line}, col {col})"
            context = self._source_context(source, line, col)
            if context:
                msg = f"{msg}\n{context}"

        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg, token

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        pf = Printer().pformat
        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args_s = " ".join(pf(a) for a in frame.get('args') or []).strip()
            frame_str = f"({name}"
            if args_s:
                frame_str += f" {args_s}"
            frame_str += ")"
            frames.append(frame_str)
        return "MiniLISP stacktrace: " + " ".join(frames)

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        # Fresh side effects and frames for each run
        self.side_effects = []
        self.evaluator.call_stack.clear()

        # 1. Parse
        nodes = parse_many(source_code)
        if nodes and nodes[0].is_error:
            msg, token = self._format_parse_error(nodes[0], source_code)
            self.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(
                status='error',
                error_message=msg,
                error_token=token,
                side_effects=self.side_effects
            )

        # 2. Evaluate
        try:
            result = None
            for node in nodes:
                result = self.evaluator.eval(node)
        except Exception as e:
            node = self.evaluator.current_node
            err_msg, err_token = self._format_runtime_error(e, source_code, node)
            self.evaluator._dbg("handle_script failed:", type(e).__name__, e)
            self.side_effects.append({'topics': ['stderr'], 'message': err_msg})
            return ExecutionResult(
                status='error',
                error_message=err_msg,
                error_token=err_token,
                side_effects=self.side_effects
            )

        return ExecutionResult(
            status='success',
            value=result,
            side_effects=self.side_effects
        )
