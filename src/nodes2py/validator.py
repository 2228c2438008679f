from __future__ import annotations
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import networkx as nx

from .catalog import lookup
from .errors import UnconnectedPort
from .graphs import load_graph
from .ir import Edge, Graph, GraphIndex, Node


def output_dtype_for_node(node: Node, handle: Optional[str] = None) -> str:
    if node.type in ("field", "const"):
        return node.data.dtype
    if node.type == "operator":
        spec = lookup(node.data.op_id)
        port = spec.output_port(handle) if spec else None
        return port.dtype if port else "any"
    return "any"


def input_dtype_for_target(node: Node, handle: Optional[str] = None) -> str:
    if node.type == "operator":
        spec = lookup(node.data.op_id)
        port = spec.input_port(handle) if spec else None
        return port.dtype if port else "any"
    return "any"


def dtypes_compatible(src: str, tgt: str) -> bool:
    return src == "any" or tgt == "any" or src == tgt


def is_valid_connection(nodes: Iterable[Node], edge: Edge) -> bool:
    """Gate applied when an edge is drawn. Cycles are not checked here."""
    node_map = {n.id: n for n in nodes}
    src = node_map.get(edge.source)
    tgt = node_map.get(edge.target)
    if src is None or tgt is None or src.id == tgt.id:
        return False
    if tgt.type in ("field", "const"):
        return False
    return dtypes_compatible(output_dtype_for_node(src, edge.source_handle),
                             input_dtype_for_target(tgt, edge.target_handle))


def validate_graph(g: Graph) -> Tuple[bool, List[str]]:
    messages: List[str] = []
    ok = True

    node_ids = {n.id for n in g.nodes}
    # 1) Unique node ids
    if len(node_ids) != len(g.nodes):
        ok = False
        messages.append("ERR: Duplicate node IDs detected.")
    else:
        messages.append("OK: Node IDs are unique.")

    # 2) Edges refer to existing nodes, and never into a field or const
    edges_ok = True
    node_map = g.node_map()
    for e in g.edges:
        if e.source not in node_ids or e.target not in node_ids:
            edges_ok = False
            messages.append(f"ERR: Edge {e.source}->{e.target} references missing node(s).")
        elif node_map[e.target].type in ("field", "const"):
            edges_ok = False
            messages.append(f"ERR: Edge {e.source}->{e.target} targets a {node_map[e.target].type} node.")
    if edges_ok:
        messages.append("OK: All edges reference existing nodes.")
    ok = ok and edges_ok

    # 3) Operators, handles and dtypes
    warned = False
    for n in g.nodes:
        if n.type == "operator" and lookup(n.data.op_id) is None:
            warned = True
            messages.append(f"WARN: Node {n.id} uses unknown operator '{n.data.op_id}' (evaluates to None).")

    index = GraphIndex(g.nodes, g.edges)
    seen_ports = set()
    for e in g.edges:
        src, tgt = node_map.get(e.source), node_map.get(e.target)
        if src is None or tgt is None or tgt.type in ("field", "const") or index.is_scope_edge(e):
            continue
        if tgt.type == "operator":
            spec = lookup(tgt.data.op_id)
            if spec is not None and spec.input_port(e.target_handle) is None:
                warned = True
                messages.append(f"WARN: Edge to {e.target}.{e.target_handle} is not an input on that node.")
            key = (e.target, e.target_handle)
            if key in seen_ports:
                warned = True
                messages.append(f"WARN: Several edges into {e.target}.{e.target_handle}; the last one wins.")
            seen_ports.add(key)
        s_dt = output_dtype_for_node(src, e.source_handle)
        t_dt = input_dtype_for_target(tgt, e.target_handle)
        if not dtypes_compatible(s_dt, t_dt):
            warned = True
            messages.append(f"WARN: Edge {e.source}->{e.target} carries {s_dt} into a {t_dt} port.")

    for n in g.nodes:
        if index.is_while(n.id) and index.input_edge(n.id, "cond") is None:
            warned = True
            messages.append(f"WARN: {UnconnectedPort(n.id, 'cond')}; the loop never runs.")
    if not warned:
        messages.append("OK: Operators, ports and dtypes line up.")

    # 4) Acyclic check
    nxg = nx.DiGraph()
    nxg.add_nodes_from(node_ids)
    for e in g.edges:
        if e.source in node_ids and e.target in node_ids:
            nxg.add_edge(e.source, e.target)
    try:
        list(nx.topological_sort(nxg))
        messages.append("OK: Graph is acyclic.")
    except nx.NetworkXUnfeasible:
        messages.append("WARN: Cycle detected in the graph (nodes on it evaluate to None).")

    return ok, messages


def validate_graph_from_file(path: Path) -> Tuple[bool, List[str]]:
    return validate_graph(load_graph(path))
