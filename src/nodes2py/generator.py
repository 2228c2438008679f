from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .catalog import lookup
from .config import Settings
from .ir import Edge, GraphIndex, Node
from .literals import py_literal, py_quote
from .scope import Root, nearest_loops, node_slug, select_roots, topological_order

log = logging.getLogger(__name__)

# The line break closes the comment so the marker is valid anywhere inside an expression.
CYCLE_EXPR = "(None  # cycle\n)"

PRELUDE = [
    "import math",
    "",
    "",
    "def get_nested(row, path):",
    "    cur = row",
    "    for key in str(path).split('.'):",
    "        if not isinstance(cur, dict):",
    "            return None",
    "        cur = cur.get(key)",
    "    return cur",
    "",
    "",
    "def _set(vars, name, val):",
    "    vars[name] = val",
    "    return val",
    "",
    "",
    "def _get(vars, name, default):",
    "    return vars.get(name, default)",
    "",
    "",
]

# While inputs checked inside the loop body, after the governed assignments.
LOOP_SIGNALS = ("cont", "brk")

DIVIDE_NOTE = [
    "# Divide nodes compile to an unguarded '/': a zero divisor raises ZeroDivisionError",
    "# here, while the editor preview shows None for the same input.",
]

Key = Tuple[str, Optional[str]]


@dataclass
class ExprContext:
    index: GraphIndex
    memo: Dict[Key, str] = field(default_factory=dict)
    visiting: Set[Key] = field(default_factory=set)


def _port_key(index: GraphIndex, node: Node, port: Optional[str]) -> Optional[str]:
    if port is None and node.type == "operator":
        spec = lookup(node.data.op_id)
        if spec is not None:
            return spec.default_output_id
    return port


def node_expr(index: GraphIndex, node: Node, port: Optional[str],
              source_expr: Callable[[Edge], str]) -> str:
    """Python expression for one node, with its inputs supplied by source_expr."""
    if node.type == "field":
        return f"get_nested(row, {py_quote(node.data.path)})"
    if node.type == "const":
        return py_literal(node.data.dtype, node.data.value)
    if node.type == "operator":
        spec = lookup(node.data.op_id)
        if spec is None:
            log.debug("Node %s: unknown operator %r", node.id, node.data.op_id)
            return "None"
        args: Dict[str, str] = {}
        for p in spec.inputs:
            e = index.input_edge(node.id, p.id)
            args[p.id] = source_expr(e) if e else "None"
        try:
            result = spec.codegen(args)
        except Exception as exc:
            log.debug("Node %s: %s codegen failed: %s", node.id, spec.id, exc)
            return "None"
        return result.select(port or spec.default_output_id)
    if node.type == "output":
        e = index.value_edge(node.id)
        return source_expr(e) if e else "None"
    return "None"


def expr_of(ctx: ExprContext, node_id: str, port: Optional[str] = None) -> str:
    """Fully inlined expression for a node's output port."""
    node = ctx.index.node(node_id)
    if node is None:
        return "None"
    key = (node_id, _port_key(ctx.index, node, port))
    if key in ctx.memo:
        return ctx.memo[key]
    if key in ctx.visiting:
        log.debug("Cycle through node %s", node_id)
        return CYCLE_EXPR
    ctx.visiting.add(key)
    try:
        expr = node_expr(ctx.index, node, key[1],
                         lambda e: expr_of(ctx, e.source, e.source_handle))
    finally:
        ctx.visiting.discard(key)
    ctx.memo[key] = expr
    return expr


def _line(depth: int, target: str, expr: str) -> str:
    pad = "    " * depth
    if expr == CYCLE_EXPR:
        return f"{pad}{target} = None  # cycle"
    return f"{pad}{target} = {expr}"


class _Emitter:
    def __init__(self, index: GraphIndex, settings: Settings):
        self.index = index
        self.settings = settings
        self.ctx = ExprContext(index)
        self.loops = nearest_loops(index)
        self.names: Dict[str, str] = {}
        self.counters: Dict[str, int] = {}
        self.free: Dict[str, str] = {}
        self.loop_temps: Dict[str, str] = {}

    # -- naming and materialization

    def temp_name(self, node_id: str) -> str:
        if node_id not in self.names:
            base = "_" + (node_slug(self.index.node_map[node_id]) or "value")
            n = self.counters.get(base, 0) + 1
            self.counters[base] = n
            self.names[node_id] = f"{base}_{n}"
        return self.names[node_id]

    def needs_temp(self, node_id: str) -> bool:
        idx = self.index
        node = idx.node(node_id)
        if node is None or node.type != "operator" or idx.is_while(node_id):
            return False
        spec = lookup(node.data.op_id)
        if spec is None or len(spec.outputs) > 1:
            return False
        consumers: List[Node] = []
        signals = 0
        for e in idx.data_out(node_id):
            target = idx.node(e.target)
            if target is None:
                continue
            if idx.is_while(e.target):
                signals += e.target_handle in LOOP_SIGNALS
            elif target.type in ("operator", "output"):
                consumers.append(target)
        if len(consumers) + signals >= 2:
            return True
        owner = self.loops.get(node_id)
        return any(c.type == "operator" or self.loops.get(c.id) != owner for c in consumers)

    # -- rendering against the temporaries currently in scope

    def render(self, node_id: str, port: Optional[str], bound: Dict[str, str],
               seen: Optional[Set[str]] = None, memo: Optional[Dict[Key, str]] = None) -> str:
        if node_id in bound:
            return bound[node_id]
        node = self.index.node(node_id)
        if node is None:
            return "None"
        if node.type in ("field", "const"):
            return expr_of(self.ctx, node_id, port)
        seen = set() if seen is None else seen
        memo = {} if memo is None else memo
        key = (node_id, port)
        if key in memo:
            return memo[key]
        if node_id in seen:
            return CYCLE_EXPR
        seen.add(node_id)
        try:
            expr = node_expr(self.index, node, port,
                             lambda e: self.render(e.source, e.source_handle, bound, seen, memo))
        finally:
            seen.discard(node_id)
        memo[key] = expr
        return expr

    def assignment(self, node_id: str, bound: Dict[str, str]) -> str:
        seen = {node_id}
        memo: Dict[Key, str] = {}
        return node_expr(self.index, self.index.node_map[node_id], None,
                         lambda e: self.render(e.source, e.source_handle, bound, seen, memo))

    def inline(self, e: Optional[Edge], default: str) -> str:
        return expr_of(self.ctx, e.source, e.source_handle) if e else default

    # -- emission

    def governed_closure(self, seeds: Iterable[str], loop_id: str) -> List[str]:
        out: List[str] = []
        stack = list(seeds)
        while stack:
            nid = stack.pop()
            if nid in out or self.loops.get(nid) != loop_id:
                continue
            out.append(nid)
            stack.extend(e.source for e in self.index.data_in(nid))
        return out

    def free_region(self) -> List[str]:
        lines: List[str] = []
        free_ids = [n.id for n in self.index.nodes if self.loops.get(n.id) is None]
        for nid in topological_order(self.index, free_ids):
            if nid in self.free or not self.needs_temp(nid):
                continue
            rhs = self.assignment(nid, self.free)
            self.free[nid] = self.temp_name(nid)
            lines.append(_line(1, self.free[nid], rhs))
        return lines

    def loop_block(self, root: Root, loop_id: str) -> List[str]:
        idx = self.index
        cond = self.inline(idx.input_edge(loop_id, "cond"), "False")
        cap = self.inline(idx.input_edge(loop_id, "max"), str(self.settings.default_max_iterations))
        cont_e = idx.input_edge(loop_id, "cont")
        brk_e = idx.input_edge(loop_id, "brk")

        aux: List[str] = []
        for handle in idx.node_map[loop_id].data.exprs:
            text = self.inline(idx.input_edge(loop_id, handle), "")
            if text and text not in aux:
                aux.append(text)

        # Temporaries of loops emitted earlier keep the value of their last pass.
        local = dict(self.free)
        local.update((nid, name) for nid, name in self.loop_temps.items()
                     if self.loops.get(nid) != loop_id)
        seeds = [root.node_id] + [e.source for e in (cont_e, brk_e) if e is not None]
        temps: List[str] = []
        body: List[str] = []
        for nid in topological_order(idx, self.governed_closure(seeds, loop_id)):
            if not self.needs_temp(nid):
                continue
            rhs = self.assignment(nid, local)
            local[nid] = self.loop_temps[nid] = self.temp_name(nid)
            temps.append(local[nid])
            body.append(_line(2, local[nid], rhs))

        lines = [_line(1, name, "None") for name in temps]
        lines += [
            "    _i = 0",
            "    _last = None",
            f"    while (bool({cond})) and _i < int({cap}):",
        ]
        lines.extend(_line(2, "_", text) for text in aux)
        lines += body

        if cont_e is not None:
            lines += [
                f"        if bool({self.render(cont_e.source, cont_e.source_handle, local)}):",
                "            _i += 1",
                "            continue",
            ]
        if brk_e is not None:
            lines += [
                f"        if bool({self.render(brk_e.source, brk_e.source_handle, local)}):",
                "            break",
            ]
        lines += [
            _line(2, "_val", self.render(root.node_id, None, local)),
            "        if _val is not None:",
            "            _last = _val",
            "        _i += 1",
            f"    results[{py_quote(root.label)}] = _last",
        ]
        return lines

    def header(self) -> List[str]:
        lines = ["# Generated by nodes2py."]
        if any(n.type == "operator" and n.data.op_id == "divide" for n in self.index.nodes):
            lines += DIVIDE_NOTE
        return lines + PRELUDE

    def emit(self) -> str:
        roots = select_roots(self.index)
        if not roots:
            body = [
                "def compute(row):",
                "    # No outputs; add an Output node and connect it.",
                "    return {}",
            ]
            return "\n".join(self.header() + body) + "\n"

        body = ["def compute(row):", "    vars = {}", "    results = {}"]
        body += self.free_region()
        for root in roots:
            loop_id = self.loops.get(root.node_id)
            if loop_id is None:
                body.append(_line(1, f"results[{py_quote(root.label)}]",
                                  self.render(root.node_id, None, self.free)))
            else:
                body += self.loop_block(root, loop_id)
        body.append("    return results")
        return "\n".join(self.header() + body) + "\n"


def generate(nodes: Iterable[Node], edges: Iterable[Edge], settings: Optional[Settings] = None) -> str:
    """Compile a graph into Python source defining compute(row) -> dict. Never raises."""
    try:
        return _Emitter(GraphIndex(nodes, edges), settings or Settings()).emit()
    except Exception:
        log.exception("Code generation failed, emitting an empty compute()")
        return "\n".join(["# Generated by nodes2py."] + PRELUDE + [
            "def compute(row):",
            "    # Code generation failed for this graph.",
            "    return {}",
        ]) + "\n"
