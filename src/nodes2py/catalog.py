from __future__ import annotations
import logging
import math
from pydantic import BaseModel, ConfigDict
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

from .errors import UnknownOperator
from .ir import DType, Port, WHILE_OP, SCOPE_HANDLE

log = logging.getLogger(__name__)

# Lists built by preview stop here; generated code is not capped.
PREVIEW_LIST_LIMIT = 10_000


class Single(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    expr: str

    def select(self, port_id: Optional[str] = None) -> str:
        return self.expr


class Multi(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["multi"] = "multi"
    exprs: Dict[str, str]

    def select(self, port_id: Optional[str] = None) -> str:
        if port_id is None:
            return next(iter(self.exprs.values()), "None")
        return self.exprs.get(port_id, "None")


CodegenResult = Union[Single, Multi]


class OperatorSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    inputs: Tuple[Port, ...] = ()
    output: Union[Port, Tuple[Port, ...]]
    eval_fn: Callable[..., Any]
    to_py: Callable[..., Any]
    help: str = ""

    @property
    def outputs(self) -> Tuple[Port, ...]:
        return self.output if isinstance(self.output, tuple) else (self.output,)

    @property
    def default_output_id(self) -> str:
        return self.outputs[0].id

    def input_port(self, port_id: Optional[str]) -> Optional[Port]:
        return next((p for p in self.inputs if p.id == port_id), None)

    def output_port(self, port_id: Optional[str] = None) -> Optional[Port]:
        if port_id is None:
            return self.outputs[0]
        return next((p for p in self.outputs if p.id == port_id), None)

    def evaluate(self, args: Mapping[str, Any]) -> Any:
        return self.eval_fn(dict(args))

    def codegen(self, args: Mapping[str, str]) -> CodegenResult:
        raw = self.to_py(dict(args))
        if isinstance(raw, (Single, Multi)):
            return raw
        if isinstance(raw, dict):
            return Multi(exprs=raw)
        return Single(expr=str(raw))


_REGISTRY: Dict[str, OperatorSpec] = {}


def register(spec: OperatorSpec) -> OperatorSpec:
    if spec.id in _REGISTRY:
        raise ValueError(f"Operator '{spec.id}' is already registered")
    _REGISTRY[spec.id] = spec
    return spec


def lookup(op_id: Optional[str]) -> Optional[OperatorSpec]:
    if op_id is None:
        return None
    return _REGISTRY.get(op_id)


def get(op_id: str) -> OperatorSpec:
    spec = lookup(op_id)
    if spec is None:
        raise UnknownOperator(op_id)
    return spec


def operators() -> List[OperatorSpec]:
    return list(_REGISTRY.values())


# ---- coercions shared by eval functions

def _is_num(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def to_number(v: Any, default: Any = 0) -> Any:
    if v is None:
        return default
    if isinstance(v, bool):
        return int(v)
    if _is_num(v):
        return v
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return 0
        try:
            return int(s)
        except ValueError:
            pass
        try:
            return float(s)
        except ValueError:
            return math.nan
    return math.nan


def truthy(v: Any) -> bool:
    return bool(v)


def strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if _is_num(a) and _is_num(b):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def _as_list(v: Any) -> Optional[List[Any]]:
    if isinstance(v, (list, tuple)):
        return list(v)
    return None


def _count(v: Any, default: int) -> int:
    n = to_number(v, default)
    if not math.isfinite(n):
        return default
    return int(math.floor(n))


def _index(v: Any) -> Optional[int]:
    if v is None:
        return None
    n = to_number(v)
    return int(n) if math.isfinite(n) else None


# ---- operator definitions

def _p(id: str, dtype: DType, label: Optional[str] = None) -> Port:
    return Port(id=id, dtype=dtype, label=label)


def _op(id: str, label: str, inputs: List[Port], output: Union[Port, Tuple[Port, ...]],
        eval_fn: Callable[..., Any], to_py: Callable[..., Any], help: str = "") -> OperatorSpec:
    return register(OperatorSpec(id=id, label=label, inputs=tuple(inputs), output=output,
                                 eval_fn=eval_fn, to_py=to_py, help=help))


def _binary(id: str, label: str, dtype: DType, out: DType,
            eval_fn: Callable[[Any, Any], Any], symbol: str, help: str) -> OperatorSpec:
    return _op(id, label, [_p("a", dtype, "A"), _p("b", dtype, "B")], _p("out", out),
               lambda a: eval_fn(a.get("a"), a.get("b")),
               lambda a: f"({a['a']} {symbol} {a['b']})", help)


def _divide(a: Any, b: Any) -> Any:
    d = to_number(b)
    if d == 0:
        return None
    return to_number(a) / d


def _text(v: Any) -> str:
    return "" if v is None else str(v)


# arithmetic
_binary("add", "Add", "number", "number", lambda a, b: to_number(a) + to_number(b), "+",
        "Add A + B (numbers).")
_binary("subtract", "Subtract", "number", "number", lambda a, b: to_number(a) - to_number(b), "-",
        "Subtract A - B.")
_binary("multiply", "Multiply", "number", "number", lambda a, b: to_number(a) * to_number(b), "*",
        "Multiply A x B.")
_binary("divide", "Divide", "number", "number", _divide, "/",
        "Divide A / B. Preview returns None when B is 0; generated code does not guard.")
_op("concat", "Concat", [_p("a", "string", "A"), _p("b", "string", "B")], _p("out", "string"),
    lambda a: _text(a.get("a")) + _text(a.get("b")),
    lambda a: f"(str({a['a']}) + str({a['b']}))",
    "Concatenate strings A and B.")

# comparisons
_binary("eq", "Equals", "any", "boolean", strict_equals, "==",
        "True if A equals B (strict equality).")
_binary("ne", "Not equal", "any", "boolean", lambda a, b: not strict_equals(a, b), "!=",
        "True if A differs from B.")
_binary("gt", ">", "number", "boolean", lambda a, b: to_number(a) > to_number(b), ">",
        "True if A > B.")
_binary("lt", "<", "number", "boolean", lambda a, b: to_number(a) < to_number(b), "<",
        "True if A < B.")
_binary("gte", ">=", "number", "boolean", lambda a, b: to_number(a) >= to_number(b), ">=",
        "True if A >= B.")
_binary("lte", "<=", "number", "boolean", lambda a, b: to_number(a) <= to_number(b), "<=",
        "True if A <= B.")

# boolean
_binary("and", "AND", "boolean", "boolean", lambda a, b: truthy(a) and truthy(b), "and",
        "Logical AND of A and B.")
_binary("or", "OR", "boolean", "boolean", lambda a, b: truthy(a) or truthy(b), "or",
        "Logical OR of A and B.")
_op("not", "NOT", [_p("a", "boolean", "A")], _p("out", "boolean"),
    lambda a: not truthy(a.get("a")),
    lambda a: f"(not {a['a']})",
    "Logical NOT of A.")
_op("xor", "XOR", [_p("a", "boolean", "A"), _p("b", "boolean", "B")], _p("out", "boolean"),
    lambda a: truthy(a.get("a")) != truthy(a.get("b")),
    lambda a: f"(bool({a['a']}) ^ bool({a['b']}))",
    "Exclusive OR: true if A and B differ.")
_op("coalesce", "Coalesce", [_p("a", "any", "A"), _p("b", "any", "B")], _p("out", "any"),
    lambda a: a.get("a") if a.get("a") is not None else a.get("b"),
    lambda a: f"({a['a']} if {a['a']} is not None else {a['b']})",
    "Return A unless it is None, otherwise B.")

# control
_op("if", "If", [_p("cond", "boolean", "Cond"), _p("t", "any", "Then"), _p("f", "any", "Else")],
    _p("out", "any"),
    lambda a: a.get("t") if truthy(a.get("cond")) else a.get("f"),
    lambda a: f"({a['t']} if {a['cond']} else {a['f']})",
    "If Cond then Then else Else.")
_op(WHILE_OP, "While",
    [_p("cond", "boolean", "Condition"), _p("max", "number", "Max iters"),
     _p("cont", "boolean", "Continue"), _p("brk", "boolean", "Break")],
    (_p(SCOPE_HANDLE, "boolean", "Body"),),
    lambda a: True,
    lambda a: {SCOPE_HANDLE: "True"},
    "Repeat the nodes wired to Body while Condition holds, at most Max iterations.")
_op("break_signal", "Break", [_p("when", "boolean", "When")], _p("out", "boolean"),
    lambda a: truthy(a.get("when")),
    lambda a: f"(bool({a['when']}))",
    "Break signal for a While node.")
_op("continue_signal", "Continue", [_p("when", "boolean", "When")], _p("out", "boolean"),
    lambda a: truthy(a.get("when")),
    lambda a: f"(bool({a['when']}))",
    "Continue signal for a While node.")


# lists
def _range(a: Dict[str, Any]) -> List[Any]:
    s, e, st = to_number(a.get("start")), to_number(a.get("stop")), to_number(a.get("step"), 1)
    if not all(math.isfinite(x) for x in (s, e, st)) or st == 0:
        return []
    out = []
    i = s
    while (i < e) if st > 0 else (i > e):
        if len(out) >= PREVIEW_LIST_LIMIT:
            log.debug("Range truncated to %d items in preview", PREVIEW_LIST_LIMIT)
            break
        out.append(i)
        i += st
    return out


def _slice(a: Dict[str, Any]) -> List[Any]:
    lst = _as_list(a.get("list"))
    if lst is None:
        return []
    step = _index(a.get("step"))
    if step == 0:
        return []
    return lst[_index(a.get("start")):_index(a.get("stop")):step]


def _sorted(v: Any, reverse: bool) -> List[Any]:
    lst = _as_list(v)
    if lst is None:
        return []
    try:
        return sorted(lst, reverse=reverse)
    except TypeError:
        return sorted(lst, key=lambda x: (type(x).__name__, str(x)), reverse=reverse)


def _unique(v: Any) -> List[Any]:
    out: List[Any] = []
    for x in _as_list(v) or []:
        if not any(strict_equals(x, o) for o in out):
            out.append(x)
    return out


def _flatten(v: Any) -> List[Any]:
    out: List[Any] = []
    for x in _as_list(v) or []:
        if isinstance(x, (list, tuple)):
            out.extend(x)
        else:
            out.append(x)
    return out


def _chunk(a: Dict[str, Any]) -> List[Any]:
    lst = _as_list(a.get("list"))
    if lst is None:
        return []
    size = max(1, _count(a.get("size"), 1))
    return [lst[i:i + size] for i in range(0, len(lst), size)]


def _numbers(v: Any) -> List[Any]:
    return [to_number(x) for x in _as_list(v) or []]


_LIST = _p("list", "list", "List")

_op("range", "Range", [_p("start", "number", "Start"), _p("stop", "number", "Stop"), _p("step", "number", "Step")],
    _p("out", "list"), _range,
    lambda a: f"list(range({a['start']}, {a['stop']}, {a['step']}))",
    "List of numbers from Start to Stop (exclusive) stepping by Step.")
_op("sum_list", "Sum", [_LIST], _p("out", "number"),
    lambda a: sum(_numbers(a.get("list"))),
    lambda a: f"sum({a['list']})",
    "Sum of all numbers in List.")
_op("map_add", "Map +", [_LIST, _p("add", "number", "+")], _p("out", "list"),
    lambda a: [to_number(x) + to_number(a.get("add")) for x in _as_list(a.get("list")) or []],
    lambda a: f"[ (x + {a['add']}) for x in {a['list']} ]",
    "Add constant (+) to each element of List.")
_op("map_mul", "Map x", [_LIST, _p("mul", "number", "x")], _p("out", "list"),
    lambda a: [to_number(x) * to_number(a.get("mul"), 1) for x in _as_list(a.get("list")) or []],
    lambda a: f"[ (x * {a['mul']}) for x in {a['list']} ]",
    "Multiply each element of List by x.")
_op("length", "Length", [_LIST], _p("out", "number"),
    lambda a: len(_as_list(a.get("list")) or []),
    lambda a: f"len({a['list']})",
    "Number of elements in List.")
_op("slice", "Slice", [_LIST, _p("start", "number", "Start"), _p("stop", "number", "Stop"), _p("step", "number", "Step")],
    _p("out", "list"), _slice,
    lambda a: f"{a['list']}[{a['start']}:{a['stop']}:{a['step']}]",
    "Slice list[start:stop:step].")
_op("reverse", "Reverse", [_LIST], _p("out", "list"),
    lambda a: (_as_list(a.get("list")) or [])[::-1],
    lambda a: f"{a['list']}[::-1]",
    "Reverse order of items.")
_op("sort_asc", "Sort asc", [_LIST], _p("out", "list"),
    lambda a: _sorted(a.get("list"), False),
    lambda a: f"sorted({a['list']})",
    "Sort ascending.")
_op("sort_desc", "Sort desc", [_LIST], _p("out", "list"),
    lambda a: _sorted(a.get("list"), True),
    lambda a: f"sorted({a['list']}, reverse=True)",
    "Sort descending.")
_op("unique", "Unique", [_LIST], _p("out", "list"),
    lambda a: _unique(a.get("list")),
    lambda a: f"list(dict.fromkeys({a['list']}))",
    "Remove duplicates, preserving order.")
_op("product_list", "Product", [_LIST], _p("out", "number"),
    lambda a: math.prod(to_number(x, 1) for x in _as_list(a.get("list")) or []),
    lambda a: f"math.prod({a['list']})",
    "Multiply all numbers together.")
_op("average_list", "Average", [_LIST], _p("out", "number"),
    lambda a: (sum(_numbers(a.get("list"))) / len(_numbers(a.get("list")))) if _numbers(a.get("list")) else 0,
    lambda a: f"((sum({a['list']})/len({a['list']})) if len({a['list']}) else 0)",
    "Average of numbers (0 if empty).")
_op("min_list", "Min", [_LIST], _p("out", "number"),
    lambda a: min(_numbers(a.get("list"))) if _numbers(a.get("list")) else None,
    lambda a: f"min({a['list']})",
    "Minimum value.")
_op("max_list", "Max", [_LIST], _p("out", "number"),
    lambda a: max(_numbers(a.get("list"))) if _numbers(a.get("list")) else None,
    lambda a: f"max({a['list']})",
    "Maximum value.")
_op("zip", "Zip", [_p("a", "list", "A"), _p("b", "list", "B")], _p("out", "list"),
    lambda a: [[x, y] for x, y in zip(_as_list(a.get("a")) or [], _as_list(a.get("b")) or [])],
    lambda a: f"list(zip({a['a']}, {a['b']}))",
    "Zip two lists into pairs.")
_op("enumerate", "Enumerate", [_LIST], _p("out", "list"),
    lambda a: [[i, x] for i, x in enumerate(_as_list(a.get("list")) or [])],
    lambda a: f"list(enumerate({a['list']}))",
    "Pairs of (index, value).")
_op("flatten", "Flatten", [_p("list", "list", "List of Lists")], _p("out", "list"),
    lambda a: _flatten(a.get("list")),
    lambda a: f"[y for x in {a['list']} for y in x]",
    "Flatten one level (list of lists to list).")
_op("filter_eq", "Filter ==", [_LIST, _p("value", "any", "Value")], _p("out", "list"),
    lambda a: [x for x in _as_list(a.get("list")) or [] if strict_equals(x, a.get("value"))],
    lambda a: f"[x for x in {a['list']} if x == {a['value']}]",
    "Keep items equal to Value.")
_op("take", "Take", [_LIST, _p("n", "number", "N")], _p("out", "list"),
    lambda a: (_as_list(a.get("list")) or [])[:max(0, _count(a.get("n"), 0))],
    lambda a: f"{a['list']}[:{a['n']}]",
    "First N items.")
_op("drop", "Drop", [_LIST, _p("n", "number", "N")], _p("out", "list"),
    lambda a: (_as_list(a.get("list")) or [])[max(0, _count(a.get("n"), 0)):],
    lambda a: f"{a['list']}[{a['n']}:]",
    "All but the first N items.")
_op("chunk", "Chunk", [_LIST, _p("size", "number", "Size")], _p("out", "list"), _chunk,
    lambda a: f"[{a['list']}[i:i+{a['size']}] for i in range(0, len({a['list']}), {a['size']})]",
    "Split List into chunks of Size.")
_op("repeat", "Repeat", [_p("value", "any", "Value"), _p("count", "number", "Count")], _p("out", "list"),
    lambda a: [a.get("value")] * min(PREVIEW_LIST_LIMIT, max(0, _count(a.get("count"), 0))),
    lambda a: f"[{a['value']}] * {a['count']}",
    "Repeat Value Count times.")


# variables (meaningful in generated code only; preview keeps no store)
def _add_assign(a: Dict[str, Any]) -> Any:
    v = a.get("value")
    return 0 + (0 if v is None else v)


_NAME = _p("name", "string", "Name")

_op("set_assign", "x = value", [_NAME, _p("value", "any", "Value")], _p("out", "any", "out"),
    lambda a: a.get("value"),
    lambda a: f"_set(vars, {a['name']}, ({a['value']}))",
    "Assign a variable: x = value. Returns the assigned value so it can be chained.")
_op("get_var", "get x", [_NAME], _p("out", "any", "value"),
    lambda a: None,
    lambda a: f"_get(vars, {a['name']}, None)",
    "Read a variable set by 'x = value' or 'x += value'.")
_op("add_assign", "x += value", [_NAME, _p("value", "any", "Value")], _p("out", "any", "out"),
    _add_assign,
    lambda a: f"_set(vars, {a['name']}, (_get(vars, {a['name']}, 0) + ({a['value']})))",
    "Add to a variable: x += value. Returns the updated value.")
