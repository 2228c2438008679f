from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from .catalog import lookup, to_number, truthy
from .config import Settings
from .errors import CycleDetected
from .ir import Edge, GraphIndex, Node
from .literals import get_nested
from .scope import nearest_loops, select_roots, topological_order

log = logging.getLogger(__name__)


@dataclass
class EvalContext:
    index: GraphIndex
    record: Any
    memo: Dict[str, Any] = field(default_factory=dict)
    visiting: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)


def compute(ctx: EvalContext, node_id: str) -> Any:
    """Value of one node; raises CycleDetected when re-entered or already failed."""
    if node_id in ctx.memo:
        return ctx.memo[node_id]
    node = ctx.index.node(node_id)
    if node is None:
        return None
    if node_id in ctx.visiting or node_id in ctx.failed:
        raise CycleDetected(node_id)
    ctx.visiting.add(node_id)
    try:
        value = _node_value(ctx, node)
    finally:
        ctx.visiting.discard(node_id)
    ctx.memo[node_id] = value
    return value


def _edge_value(ctx: EvalContext, e: Edge) -> Any:
    value = compute(ctx, e.source)
    src = ctx.index.node(e.source)
    if src is not None and src.type == "operator":
        spec = lookup(src.data.op_id)
        if spec is not None and len(spec.outputs) > 1 and isinstance(value, dict):
            return value.get(e.source_handle or spec.default_output_id)
    return value


def _node_value(ctx: EvalContext, node: Node) -> Any:
    if node.type == "field":
        return get_nested(ctx.record, node.data.path)
    if node.type == "const":
        return node.data.value
    if node.type == "operator":
        spec = lookup(node.data.op_id)
        if spec is None:
            log.debug("Node %s: unknown operator %r", node.id, node.data.op_id)
            return None
        args: Dict[str, Any] = {}
        for port in spec.inputs:
            e = ctx.index.input_edge(node.id, port.id)
            args[port.id] = _edge_value(ctx, e) if e else None
        try:
            return spec.evaluate(args)
        except Exception as exc:
            log.debug("Node %s: %s failed: %s", node.id, spec.id, exc)
            return None
    if node.type == "output":
        e = ctx.index.value_edge(node.id)
        return _edge_value(ctx, e) if e else None
    return None


def _safe_value(ctx: EvalContext, e: Optional[Edge]) -> Any:
    if e is None:
        return None
    try:
        return _edge_value(ctx, e)
    except Exception as exc:
        log.debug("Loop input %s unavailable: %s", e.source, exc)
        return None


def _iteration_cap(value: Any) -> int:
    n = to_number(value, 0)
    return int(n) if math.isfinite(n) else 0


def loop_outcome(ctx: EvalContext, loop_id: str, root_id: str, default_cap: int = 1000) -> Any:
    """What the generated while block leaves in results for a root it governs.

    Preview keeps no variable store, so every iteration sees the same inputs:
    the first pass decides the outcome of all of them.
    """
    idx = ctx.index
    cond = _safe_value(ctx, idx.input_edge(loop_id, "cond"))
    max_edge = idx.input_edge(loop_id, "max")
    cap = _iteration_cap(_safe_value(ctx, max_edge)) if max_edge else default_cap
    if not truthy(cond) or cap < 1:
        return None
    # continue skips the capture on every pass; break leaves before the first one
    if truthy(_safe_value(ctx, idx.input_edge(loop_id, "cont"))):
        return None
    if truthy(_safe_value(ctx, idx.input_edge(loop_id, "brk"))):
        return None
    try:
        return compute(ctx, root_id)
    except Exception as exc:
        log.debug("Loop root %s left empty: %s", root_id, exc)
        return None


def evaluate(nodes: Iterable[Node], edges: Iterable[Edge], record: Any,
             settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or Settings()
    index = GraphIndex(nodes, edges)
    ctx = EvalContext(index=index, record=record)

    # Sources first, so every call finds its inputs memoized and the stack stays shallow.
    for nid in topological_order(index, [n.id for n in index.nodes]):
        try:
            compute(ctx, nid)
        except Exception as e:  # CycleDetected, RecursionError
            log.debug("Node %s left empty: %s", nid, e)
            ctx.failed.add(nid)

    values = {n.id: ctx.memo.get(n.id) for n in index.nodes}
    loops = nearest_loops(index)
    for root in select_roots(index):
        loop_id = loops.get(root.node_id)
        if loop_id is not None:
            values[root.node_id] = loop_outcome(ctx, loop_id, root.node_id, settings.default_max_iterations)
    return values
