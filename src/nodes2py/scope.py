from __future__ import annotations
from collections import deque
from typing import Dict, Iterable, List, NamedTuple, Optional

import networkx as nx

from .catalog import lookup
from .ir import GraphIndex, Node
from .literals import slugify


class Root(NamedTuple):
    node_id: str
    label: str


def nearest_loops(index: GraphIndex) -> Dict[str, Optional[str]]:
    """Map each node id to the while node that governs it, or None when free.

    One forward breadth-first sweep seeded with every scope edge: the first
    while to reach a node is its nearest enclosing loop. Scope edges are not
    followed as data, so a nested while starts its own region.
    """
    owner: Dict[str, str] = {}
    queue: deque = deque()
    for e in index.edges:
        if index.is_scope_edge(e) and e.target in index.node_map and e.target not in owner:
            owner[e.target] = e.source
            queue.append(e.target)
    while queue:
        nid = queue.popleft()
        for e in index.data_out(nid):
            if e.target in index.node_map and e.target not in owner:
                owner[e.target] = owner[nid]
                queue.append(e.target)
    return {n.id: owner.get(n.id) for n in index.nodes}


def node_slug(node: Node) -> str:
    if node.type == "field":
        return slugify(node.data.label) or slugify(node.data.path)
    if node.type == "const":
        return slugify(node.data.label) or "const"
    if node.type == "operator":
        if node.data.label:
            return slugify(node.data.label) or slugify(node.data.op_id)
        spec = lookup(node.data.op_id)
        if spec is not None:
            return slugify(spec.label) or slugify(spec.id)
        return slugify(node.data.op_id)
    return slugify(node.data.label)


def select_roots(index: GraphIndex) -> List[Root]:
    """Output nodes when there are any, otherwise every sink that is not a while node."""
    outputs = [n for n in index.nodes if n.type == "output"]
    if outputs:
        return [Root(n.id, n.data.label or f"result_{i + 1}") for i, n in enumerate(outputs)]

    roots: List[Root] = []
    used = set()
    seen = set()
    for n in index.nodes:
        if n.id in seen or index.by_source.get(n.id) or index.is_while(n.id):
            continue
        seen.add(n.id)
        base = node_slug(n) or "result"
        label = base
        k = 2
        while label in used:
            label = f"{base}_{k}"
            k += 1
        used.add(label)
        roots.append(Root(n.id, label))
    return roots


def topological_order(index: GraphIndex, node_ids: Iterable[str]) -> List[str]:
    """Order a subset of nodes so sources precede their consumers.

    Ties, and members of a cycle, keep the order nodes were listed in the graph.
    """
    ids = [nid for nid in dict.fromkeys(node_ids) if nid in index.node_map]
    if not ids:
        return []
    keep = set(ids)
    g = nx.DiGraph()
    g.add_nodes_from(ids)
    for e in index.edges:
        if e.source in keep and e.target in keep:
            g.add_edge(e.source, e.target)

    rank = {nid: index.position[nid] for nid in ids}
    dag = nx.condensation(g)
    first = {c: min(rank[m] for m in dag.nodes[c]["members"]) for c in dag.nodes}
    order: List[str] = []
    for c in nx.lexicographical_topological_sort(dag, key=lambda c: first[c]):
        order.extend(sorted(dag.nodes[c]["members"], key=rank.__getitem__))
    return order
