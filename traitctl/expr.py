"""
Trait Expression Language — parse, validate, interpret.

Trait code is untrusted text (typed by a user or produced by an LLM).
It is parsed with ``ast.parse(mode="eval")`` and then *interpreted* node
by node over a whitelist; nothing is ever handed to ``eval``/``exec``.

Accepted forms:

    lambda item: (item.reactions.likes_count or 0) >= 100
    matches(r"\\bgm\\b", item.text, "i")          # bare form, ``item`` is bound

Supported syntax: boolean / comparison / arithmetic operators (no ``**``),
conditional expressions, literals and list/tuple/set displays, attribute
and subscript access, one-clause list/generator comprehensions, calls to
whitelisted functions and whitelisted ``str`` methods.

Access is null-safe, mirroring optional chaining: a field of ``None`` is
``None``, a missing key is ``None``, iterating ``None`` yields nothing,
``x in None`` is False and ``len(None)`` is 0.

One evaluation may visit at most ``MAX_STEPS`` nodes and comprehension
iterations.

Faults:
    ExpressionError  — source fails to parse or validate (compile fault)
    EvaluationError  — expression faults on one particular item
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from traitctl import features

logger = logging.getLogger(__name__)

MAX_SOURCE_CHARS = 4000
MAX_NODES = 500
MAX_SEQUENCE_LEN = 100_000
MAX_PATTERN_CHARS = 500
MAX_STEPS = 1_000_000
DEFAULT_PARAM = "item"


class ExpressionError(ValueError):
    """Raised when trait source fails to parse or validate."""

    pass


class EvaluationError(RuntimeError):
    """Raised when an expression faults while evaluating one item."""

    pass


# ---------------------------------------------------------------------------
# Whitelists
# ---------------------------------------------------------------------------

_ALLOWED_NODES = (
    ast.BoolOp, ast.And, ast.Or,
    ast.UnaryOp, ast.Not, ast.USub, ast.UAdd,
    ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
    ast.IfExp,
    ast.Attribute, ast.Subscript, ast.Slice,
    ast.Name, ast.Load, ast.Store,
    ast.Constant, ast.List, ast.Tuple, ast.Set,
    ast.Call,
    ast.ListComp, ast.GeneratorExp, ast.comprehension,
)

_CONSTANT_TYPES = (str, int, float, bool, type(None))

_STR_METHODS = frozenset({
    "lower", "upper", "casefold", "title", "strip", "lstrip", "rstrip",
    "startswith", "endswith", "split", "count", "find",
    "isdigit", "isalpha", "isalnum", "isupper", "islower", "isspace",
})

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


# ---------------------------------------------------------------------------
# Helper functions exposed to trait code
# ---------------------------------------------------------------------------


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@lru_cache(maxsize=512)
def _compile_regex(pattern: str, flags: str) -> "re.Pattern[str]":
    if len(pattern) > MAX_PATTERN_CHARS:
        raise EvaluationError(f"Pattern longer than {MAX_PATTERN_CHARS} characters")
    bits = 0
    for ch in flags:
        if ch not in _REGEX_FLAGS:
            raise EvaluationError(f"Unknown regex flag: {ch!r}")
        bits |= _REGEX_FLAGS[ch]
    return re.compile(pattern, bits)


def _fn_matches(pattern: Any, text: Any = None, flags: Any = "") -> bool:
    return _compile_regex(_as_text(pattern), _as_text(flags)).search(_as_text(text)) is not None


def _fn_count_matches(pattern: Any, text: Any = None, flags: Any = "") -> int:
    regex = _compile_regex(_as_text(pattern), _as_text(flags))
    return sum(1 for _ in regex.finditer(_as_text(text)))


def _fn_words(text: Any) -> List[str]:
    return _as_text(text).split()


def _fn_emojis(text: Any) -> List[str]:
    return features.extract_emojis(_as_text(text))


def _fn_has_emoji(text: Any) -> bool:
    return bool(features.extract_emojis(_as_text(text)))


def _fn_has_url(text: Any) -> bool:
    return features.has_url_in_text(_as_text(text))


def _fn_is_image_url(url: Any) -> bool:
    return features.is_image_url(_as_text(url))


def _clock(ts: Any) -> Optional[features.LocalTime]:
    return features.local_time_parts(ts if isinstance(ts, str) else None)


def _fn_local_hour(ts: Any) -> int:
    parts = _clock(ts)
    return parts.hour24 if parts else -1


def _fn_local_minute(ts: Any) -> int:
    parts = _clock(ts)
    return parts.minute if parts else -1


def _fn_local_weekday(ts: Any) -> int:
    parts = _clock(ts)
    return parts.weekday if parts else -1


def _fn_is_link(embed: Any) -> bool:
    return isinstance(embed, dict) and "url" in embed


def _fn_is_quote(embed: Any) -> bool:
    return isinstance(embed, dict) and "quoted_item" in embed


def _fn_is_quote_ref(embed: Any) -> bool:
    return isinstance(embed, dict) and "quoted_item_hash" in embed


def _fn_coalesce(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


def _fn_len(value: Any) -> int:
    return 0 if value is None else len(value)


_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    # builtins
    "len": _fn_len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "round": round,
    "any": any,
    "all": all,
    "sorted": sorted,
    # domain helpers
    "matches": _fn_matches,
    "count_matches": _fn_count_matches,
    "words": _fn_words,
    "emojis": _fn_emojis,
    "has_emoji": _fn_has_emoji,
    "has_url": _fn_has_url,
    "is_image_url": _fn_is_image_url,
    "local_hour": _fn_local_hour,
    "local_minute": _fn_local_minute,
    "local_weekday": _fn_local_weekday,
    "is_link": _fn_is_link,
    "is_quote": _fn_is_quote,
    "is_quote_ref": _fn_is_quote_ref,
    "coalesce": _fn_coalesce,
}

FUNCTION_NAMES = tuple(sorted(_FUNCTIONS))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _unwrap_lambda(body: ast.AST) -> Tuple[ast.AST, str]:
    """Return (expression body, parameter name) for ``lambda x: ...`` or a bare expression."""
    if not isinstance(body, ast.Lambda):
        return body, DEFAULT_PARAM
    args = body.args
    params = list(args.posonlyargs) + list(args.args)
    if (
        len(params) != 1
        or args.vararg or args.kwarg or args.kwonlyargs
        or args.defaults or args.kw_defaults
    ):
        raise ExpressionError("Trait lambda must take exactly one plain parameter")
    return body.body, params[0].arg


def _validate(body: ast.AST, param: str) -> None:
    """Reject anything outside the whitelist. Raises ExpressionError."""
    bound: Set[str] = {param}
    call_funcs: Set[int] = set()
    count = 0

    for node in ast.walk(body):
        count += 1
        if count > MAX_NODES:
            raise ExpressionError(f"Expression too large (more than {MAX_NODES} nodes)")
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")

        if isinstance(node, ast.Constant):
            if not isinstance(node.value, _CONSTANT_TYPES):
                raise ExpressionError(f"Unsupported literal: {node.value!r}")
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ExpressionError(f"Private attribute access is not allowed: {node.attr}")
        elif isinstance(node, (ast.ListComp, ast.GeneratorExp)):
            if len(node.generators) != 1:
                raise ExpressionError("Comprehensions may have a single 'for' clause")
        elif isinstance(node, ast.comprehension):
            if node.is_async:
                raise ExpressionError("Async comprehensions are not supported")
            if not isinstance(node.target, ast.Name):
                raise ExpressionError("Comprehension target must be a plain name")
            bound.add(node.target.id)
        elif isinstance(node, ast.Call):
            if node.keywords:
                raise ExpressionError("Keyword arguments are not supported")
            if isinstance(node.func, ast.Name):
                if node.func.id not in _FUNCTIONS:
                    raise ExpressionError(f"Unknown function: {node.func.id}")
                call_funcs.add(id(node.func))
            elif isinstance(node.func, ast.Attribute):
                if node.func.attr not in _STR_METHODS:
                    raise ExpressionError(f"Unsupported method: {node.func.attr}")
            else:
                raise ExpressionError("Only named functions and text methods can be called")

    for node in ast.walk(body):
        if isinstance(node, ast.Name) and id(node) not in call_funcs:
            if node.id.startswith("_") or node.id not in bound:
                raise ExpressionError(f"Unknown name: {node.id}")


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------

Env = Dict[str, Any]

# Env key for the per-evaluation step budget; never a valid identifier
_BUDGET_KEY = "#budget"


class _Budget:
    __slots__ = ("left",)

    def __init__(self, steps: int):
        self.left = steps

    def spend(self) -> None:
        self.left -= 1
        if self.left < 0:
            raise EvaluationError(f"Evaluation exceeded {MAX_STEPS} steps")


_SEQUENCES = (str, list, tuple)


def _check_size(value: Any) -> Any:
    if isinstance(value, _SEQUENCES) and len(value) > MAX_SEQUENCE_LEN:
        raise EvaluationError(f"Sequence longer than {MAX_SEQUENCE_LEN}")
    return value


def _safe_add(left: Any, right: Any) -> Any:
    if isinstance(left, _SEQUENCES) and isinstance(right, _SEQUENCES):
        if len(left) + len(right) > MAX_SEQUENCE_LEN:
            raise EvaluationError(f"Sequence longer than {MAX_SEQUENCE_LEN}")
    return left + right


def _safe_mul(left: Any, right: Any) -> Any:
    for seq, n in ((left, right), (right, left)):
        if isinstance(seq, _SEQUENCES) and isinstance(n, int):
            if len(seq) * max(n, 0) > MAX_SEQUENCE_LEN:
                raise EvaluationError(f"Sequence longer than {MAX_SEQUENCE_LEN}")
    return left * right


def _safe_mod(left: Any, right: Any) -> Any:
    if isinstance(left, str):
        raise EvaluationError("String formatting with % is not supported")
    return left % right


_BINOPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: _safe_add,
    ast.Sub: operator.sub,
    ast.Mult: _safe_mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: _safe_mod,
}


def _contains(container: Any, value: Any) -> bool:
    if container is None:
        return False
    return value in container


_CMPOPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: _contains(b, a),
    ast.NotIn: lambda a, b: not _contains(b, a),
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def _get_field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    if isinstance(obj, str) and name in _STR_METHODS:
        return getattr(obj, name)
    raise EvaluationError(f"{type(obj).__name__} has no field {name!r}")


def _get_item(obj: Any, key: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    if isinstance(obj, _SEQUENCES):
        return obj[key]
    raise EvaluationError(f"{type(obj).__name__} is not subscriptable")


def _iterate(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, dict):
        return list(value.keys())
    return list(value)


def _eval(node: ast.AST, env: Env) -> Any:
    budget = env.get(_BUDGET_KEY)
    if budget is not None:
        budget.spend()
    handler = _HANDLERS.get(type(node))
    if handler is None:
        raise EvaluationError(f"Unsupported node: {type(node).__name__}")
    return handler(node, env)


def _eval_constant(node: ast.Constant, env: Env) -> Any:
    return node.value


def _eval_name(node: ast.Name, env: Env) -> Any:
    if node.id in env:
        return env[node.id]
    raise EvaluationError(f"Unknown name: {node.id}")


def _eval_attribute(node: ast.Attribute, env: Env) -> Any:
    return _get_field(_eval(node.value, env), node.attr)


def _eval_subscript(node: ast.Subscript, env: Env) -> Any:
    obj = _eval(node.value, env)
    key = _eval(node.slice, env)
    return _get_item(obj, key)


def _eval_slice(node: ast.Slice, env: Env) -> slice:
    lower = _eval(node.lower, env) if node.lower is not None else None
    upper = _eval(node.upper, env) if node.upper is not None else None
    step = _eval(node.step, env) if node.step is not None else None
    return slice(lower, upper, step)


def _eval_boolop(node: ast.BoolOp, env: Env) -> Any:
    result: Any = None
    if isinstance(node.op, ast.And):
        for value in node.values:
            result = _eval(value, env)
            if not result:
                return result
        return result
    for value in node.values:
        result = _eval(value, env)
        if result:
            return result
    return result


def _eval_unaryop(node: ast.UnaryOp, env: Env) -> Any:
    operand = _eval(node.operand, env)
    if isinstance(node.op, ast.Not):
        return not operand
    if isinstance(node.op, ast.USub):
        return -operand
    return +operand


def _eval_binop(node: ast.BinOp, env: Env) -> Any:
    op = _BINOPS.get(type(node.op))
    if op is None:
        raise EvaluationError(f"Unsupported operator: {type(node.op).__name__}")
    return op(_eval(node.left, env), _eval(node.right, env))


def _eval_compare(node: ast.Compare, env: Env) -> bool:
    left = _eval(node.left, env)
    for op_node, comparator in zip(node.ops, node.comparators):
        right = _eval(comparator, env)
        if not _CMPOPS[type(op_node)](left, right):
            return False
        left = right
    return True


def _eval_ifexp(node: ast.IfExp, env: Env) -> Any:
    if _eval(node.test, env):
        return _eval(node.body, env)
    return _eval(node.orelse, env)


def _eval_list(node: ast.List, env: Env) -> List[Any]:
    return [_eval(e, env) for e in node.elts]


def _eval_tuple(node: ast.Tuple, env: Env) -> Tuple[Any, ...]:
    return tuple(_eval(e, env) for e in node.elts)


def _eval_set(node: ast.Set, env: Env) -> Set[Any]:
    return {_eval(e, env) for e in node.elts}


def _eval_call(node: ast.Call, env: Env) -> Any:
    args = [_eval(a, env) for a in node.args]
    if isinstance(node.func, ast.Name):
        return _check_size(_FUNCTIONS[node.func.id](*args))
    target = _eval(node.func.value, env)
    if target is None:
        return None
    if not isinstance(target, str):
        raise EvaluationError(f"Methods are only available on text, not {type(target).__name__}")
    return _check_size(getattr(target, node.func.attr)(*args))


def _eval_comprehension(node: ast.AST, env: Env) -> List[Any]:
    gen = node.generators[0]
    name = gen.target.id
    out: List[Any] = []
    budget = env.get(_BUDGET_KEY)
    for value in _iterate(_eval(gen.iter, env)):
        if budget is not None:
            budget.spend()
        local = dict(env)
        local[name] = value
        if all(_eval(cond, local) for cond in gen.ifs):
            out.append(_eval(node.elt, local))
            if len(out) > MAX_SEQUENCE_LEN:
                raise EvaluationError(f"Sequence longer than {MAX_SEQUENCE_LEN}")
    return out


_HANDLERS: Dict[type, Callable[[Any, Env], Any]] = {
    ast.Constant: _eval_constant,
    ast.Name: _eval_name,
    ast.Attribute: _eval_attribute,
    ast.Subscript: _eval_subscript,
    ast.Slice: _eval_slice,
    ast.BoolOp: _eval_boolop,
    ast.UnaryOp: _eval_unaryop,
    ast.BinOp: _eval_binop,
    ast.Compare: _eval_compare,
    ast.IfExp: _eval_ifexp,
    ast.List: _eval_list,
    ast.Tuple: _eval_tuple,
    ast.Set: _eval_set,
    ast.Call: _eval_call,
    ast.ListComp: _eval_comprehension,
    ast.GeneratorExp: _eval_comprehension,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class Expression:
    """A validated trait expression, ready to evaluate over item views."""

    __slots__ = ("source", "param", "_body")

    def __init__(self, source: str, param: str, body: ast.AST):
        self.source = source
        self.param = param
        self._body = body

    def evaluate(self, view: Any) -> Any:
        """Evaluate against one sanitized item view.

        Raises:
            EvaluationError: On any runtime fault (type errors, bad regex,
                index out of range, size limits...).
        """
        try:
            return _eval(self._body, {self.param: view, _BUDGET_KEY: _Budget(MAX_STEPS)})
        except EvaluationError:
            raise
        except (
            TypeError, ValueError, ArithmeticError, LookupError,
            AttributeError, re.error, RecursionError,
        ) as exc:
            raise EvaluationError(f"{type(exc).__name__}: {exc}") from exc

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"


def compile_expression(source: str) -> Expression:
    """Parse and validate trait source text.

    Raises:
        ExpressionError: If the source is empty, too long, not a valid
            expression, or uses anything outside the whitelist.
    """
    if not isinstance(source, str):
        raise ExpressionError("Trait code must be text")
    text = source.strip()
    if not text:
        raise ExpressionError("Trait code is empty")
    if len(text) > MAX_SOURCE_CHARS:
        raise ExpressionError(f"Trait code longer than {MAX_SOURCE_CHARS} characters")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(
            f"Syntax error: {exc.msg} (line {exc.lineno}, col {exc.offset})"
        ) from exc
    except (ValueError, RecursionError) as exc:
        raise ExpressionError(f"Cannot parse trait code: {exc}") from exc

    body, param = _unwrap_lambda(tree.body)
    _validate(body, param)
    return Expression(text, param, body)
