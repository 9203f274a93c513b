"""
Built-in function registry.

Each built-in receives its arguments as plain Python values (``raw=False``)
or as ``Term`` instances (``raw=True``) and returns a value, a ``Term`` (raw
built-ins only) or ``UNDEFINED`` when the call has no result.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import BuiltinError
from .terms import ASSIGN, EQ, Term

UNDEFINED = object()


@dataclass(frozen=True)
class Builtin:
    name: str
    arity: int
    fn: Optional[Callable[..., Any]]
    raw: bool = False

    @property
    def is_unification(self) -> bool:
        return self.fn is None


BUILTINS: Dict[str, Builtin] = {}


def register(name: str, arity: int, raw: bool = False):
    def decorator(fn):
        BUILTINS[name] = Builtin(name, arity, fn, raw)
        return fn

    return decorator


# unification operators are evaluated by the evaluator itself
BUILTINS[EQ] = Builtin(EQ, 2, None)
BUILTINS[ASSIGN] = Builtin(ASSIGN, 2, None)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(name: str, value: Any) -> Any:
    if not _is_number(value):
        raise BuiltinError(f"{name}: operand must be number, got {_type_name(value)}")
    return value


def _string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise BuiltinError(f"{name}: operand must be string, got {_type_name(value)}")
    return value


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _normalize(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# comparison


@register("equal", 2, raw=True)
def _equal(a: Term, b: Term) -> bool:
    return a == b


@register("neq", 2, raw=True)
def _neq(a: Term, b: Term) -> bool:
    return a != b


def _ordered(a: Any, b: Any) -> bool:
    return (_is_number(a) and _is_number(b)) or (isinstance(a, str) and isinstance(b, str))


@register("lt", 2)
def _lt(a, b):
    return a < b if _ordered(a, b) else UNDEFINED


@register("lte", 2)
def _lte(a, b):
    return a <= b if _ordered(a, b) else UNDEFINED


@register("gt", 2)
def _gt(a, b):
    return a > b if _ordered(a, b) else UNDEFINED


@register("gte", 2)
def _gte(a, b):
    return a >= b if _ordered(a, b) else UNDEFINED


# arithmetic


@register("plus", 2)
def _plus(a, b):
    return _number("plus", a) + _number("plus", b)


@register("minus", 2)
def _minus(a, b):
    return _number("minus", a) - _number("minus", b)


@register("mul", 2)
def _mul(a, b):
    return _number("mul", a) * _number("mul", b)


@register("div", 2)
def _div(a, b):
    if _number("div", b) == 0:
        raise BuiltinError("div: divide by zero")
    return _normalize(_number("div", a) / b)


@register("rem", 2)
def _rem(a, b):
    if _number("rem", b) == 0:
        raise BuiltinError("rem: modulo by zero")
    return _number("rem", a) % b


# aggregates and types


@register("count", 1)
def _count(value):
    if isinstance(value, (str, list, dict)):
        return len(value)
    raise BuiltinError(f"count: operand must be string, array or object, got {_type_name(value)}")


@register("is_string", 1)
def _is_string(value):
    return isinstance(value, str)


@register("is_number", 1)
def _is_number_builtin(value):
    return _is_number(value)


@register("is_object", 1)
def _is_object(value):
    return isinstance(value, dict)


@register("is_array", 1)
def _is_array(value):
    return isinstance(value, list)


@register("to_number", 1)
def _to_number(value):
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            raise BuiltinError(f"to_number: invalid syntax {value!r}") from None
    raise BuiltinError(f"to_number: operand must be string, number, boolean or null, got {_type_name(value)}")


@register("format_int", 2)
def _format_int(number, base):
    number = int(_number("format_int", number))
    digits = {2: "b", 8: "o", 10: "d", 16: "x"}.get(base)
    if digits is None:
        raise BuiltinError(f"format_int: unsupported base {base}")
    return format(number, digits)


@register("object.get", 3, raw=True)
def _object_get(obj: Term, key: Term, default: Term) -> Term:
    if not obj.is_object:
        raise BuiltinError(f"object.get: operand 1 must be object, got {_type_name(obj.value)}")
    if isinstance(key.value, (dict, list)):
        return default
    return obj.value.get(key.value, default)


# strings


@register("split", 2)
def _split(text, delimiter):
    return _string("split", text).split(_string("split", delimiter))


@register("concat", 2)
def _concat(delimiter, items):
    if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
        raise BuiltinError("concat: operand 2 must be array of strings")
    return _string("concat", delimiter).join(items)


@register("startswith", 2)
def _startswith(text, prefix):
    return _string("startswith", text).startswith(_string("startswith", prefix))


@register("endswith", 2)
def _endswith(text, suffix):
    return _string("endswith", text).endswith(_string("endswith", suffix))


@register("contains", 2)
def _contains(text, needle):
    return _string("contains", needle) in _string("contains", text)


@register("lower", 1)
def _lower(text):
    return _string("lower", text).lower()


@register("upper", 1)
def _upper(text):
    return _string("upper", text).upper()


@register("trim", 2)
def _trim(text, cutset):
    return _string("trim", text).strip(_string("trim", cutset))


@register("trim_space", 1)
def _trim_space(text):
    return _string("trim_space", text).strip()


@register("replace", 3)
def _replace(text, old, new):
    return _string("replace", text).replace(_string("replace", old), _string("replace", new))


@register("regex.match", 2)
def _regex_match(pattern, text):
    try:
        return re.search(_string("regex.match", pattern), _string("regex.match", text)) is not None
    except re.error as e:
        raise BuiltinError(f"regex.match: invalid pattern: {e}") from e


_VERB_RE = re.compile(r"%([-+ #0]*\d*(?:\.\d+)?)([a-z%])")


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


@register("sprintf", 2)
def _sprintf(fmt, args):
    _string("sprintf", fmt)
    if not isinstance(args, list):
        raise BuiltinError("sprintf: operand 2 must be array")
    remaining = list(args)

    def substitute(match: "re.Match[str]") -> str:
        flags, verb = match.groups()
        if verb == "%":
            return "%"
        if not remaining:
            return f"%!{verb}(MISSING)"
        value = remaining.pop(0)
        if verb in ("s", "v"):
            return ("%" + flags + "s") % _format_value(value)
        if verb == "q":
            return json.dumps(value)
        if verb == "d" and _is_number(value):
            return ("%" + flags + "d") % int(value)
        if verb in ("f", "e", "g") and _is_number(value):
            return ("%" + flags + verb) % value
        if verb == "x" and _is_number(value) and float(value).is_integer():
            return ("%" + flags + "x") % int(value)
        return f"%!{verb}({_format_value(value)})"

    return _VERB_RE.sub(substitute, fmt)
