from pathlib import Path

from .graphs import load_graph
from .scope import nearest_loops, topological_order


def _node_tag(node) -> str:
    if node.type == "field":
        return f"field {node.data.path}"
    if node.type == "const":
        return f"const {node.data.value!r}"
    if node.type == "operator":
        return node.data.op_id
    return f"output {node.data.label}"


def ascii_plan(path: Path) -> str:
    index = load_graph(path).index()
    loops = nearest_loops(index)
    order = topological_order(index, [n.id for n in index.nodes])
    lines = ["# ASCII Plan (topological order)"]
    for i, nid in enumerate(order, 1):
        node = index.node_map[nid]
        scope = f"  in {loops[nid]}" if loops.get(nid) else ""
        lines.append(f"{i:02d}. {node.id} [{_node_tag(node)}]{scope}")
        for e in index.by_source.get(nid, []):
            elabel = f"{e.source_handle or 'out'}->{e.target_handle or 'in'}"
            lines.append(f"    └─▶ {e.target}  ({elabel})")
    return "\n".join(lines)
