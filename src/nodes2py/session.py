from __future__ import annotations
import itertools
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel

from .config import Settings
from .errors import TypeMismatch
from .generator import generate
from .ir import (ConstNode, DType, Edge, Graph, Node, OutputNode,
                 const_node, field_node, link, operator_node, output_node)
from .literals import coerce_const_input
from .runner import evaluate
from .validator import input_dtype_for_target, is_valid_connection, output_dtype_for_node


class IdGenerator:
    """Hands out node ids unique within one editing session."""

    def __init__(self, prefix: str = "n", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def next(self, kind: str = "") -> str:
        return f"{kind or self.prefix}_{next(self._counter)}"


# ---- actions

class AddNode(BaseModel):
    kind: Literal["add_node"] = "add_node"
    node: Node


class RemoveNode(BaseModel):
    kind: Literal["remove_node"] = "remove_node"
    node_id: str


class AddEdge(BaseModel):
    kind: Literal["add_edge"] = "add_edge"
    edge: Edge


class RemoveEdge(BaseModel):
    kind: Literal["remove_edge"] = "remove_edge"
    edge_id: str


class EditConst(BaseModel):
    kind: Literal["edit_const"] = "edit_const"
    node_id: str
    raw: Any = None
    dtype: Optional[DType] = None


Action = Union[AddNode, RemoveNode, AddEdge, RemoveEdge, EditConst]


def _edit_const(node: ConstNode, action: EditConst) -> ConstNode:
    dtype = action.dtype or node.data.dtype
    data = node.data.model_copy(update={"dtype": dtype, "value": coerce_const_input(dtype, action.raw)})
    return node.model_copy(update={"data": data})


def reduce(graph: Graph, action: Action) -> Graph:
    """Apply one edit and return a new Graph; the input graph is left as it was."""
    nodes: List[Node] = list(graph.nodes)
    edges: List[Edge] = list(graph.edges)
    if isinstance(action, AddNode):
        nodes.append(action.node)
    elif isinstance(action, RemoveNode):
        nodes = [n for n in nodes if n.id != action.node_id]
        edges = [e for e in edges if action.node_id not in (e.source, e.target)]
    elif isinstance(action, AddEdge):
        edges.append(action.edge)
    elif isinstance(action, RemoveEdge):
        edges = [e for e in edges if e.id != action.edge_id]
    elif isinstance(action, EditConst):
        nodes = [_edit_const(n, action) if n.id == action.node_id and n.type == "const" else n
                 for n in nodes]
    else:
        raise TypeError(f"Unsupported action: {action!r}")
    return graph.model_copy(update={"nodes": nodes, "edges": edges})


class EditorSession:
    """A graph being edited, with preview values and generated code on demand."""

    def __init__(self, graph: Optional[Graph] = None, settings: Optional[Settings] = None):
        self.graph = graph or Graph()
        self.settings = settings or Settings()
        self.ids = IdGenerator()

    def dispatch(self, action: Action) -> Graph:
        self.graph = reduce(self.graph, action)
        return self.graph

    def _add(self, node: Node) -> str:
        self.dispatch(AddNode(node=node))
        return node.id

    def add_field(self, path: str, dtype: DType = "any", label: Optional[str] = None) -> str:
        return self._add(field_node(self.ids.next("field"), path, dtype, label))

    def add_const(self, value: Any, dtype: Optional[DType] = None, label: Optional[str] = None) -> str:
        return self._add(const_node(self.ids.next("const"), value, dtype, label))

    def add_operator(self, op_id: str, label: Optional[str] = None, exprs: Optional[List[str]] = None) -> str:
        return self._add(operator_node(self.ids.next("op"), op_id, label, exprs))

    def add_output(self, label: str = "Result") -> str:
        return self._add(output_node(self.ids.next("output"), label))

    def connect(self, source: str, target: str, target_handle: Optional[str] = None,
                source_handle: Optional[str] = None) -> Edge:
        edge = link(source, target, target_handle, source_handle)
        if not is_valid_connection(self.graph.nodes, edge):
            node_map = self.graph.node_map()
            src, tgt = node_map.get(source), node_map.get(target)
            raise TypeMismatch(
                f"{source}.{source_handle or 'out'}", f"{target}.{target_handle or 'in'}",
                output_dtype_for_node(src, source_handle) if src else "?",
                input_dtype_for_target(tgt, target_handle) if tgt and tgt.type not in ("field", "const") else "?",
            )
        self.dispatch(AddEdge(edge=edge))
        return edge

    def disconnect(self, edge_id: str) -> Graph:
        return self.dispatch(RemoveEdge(edge_id=edge_id))

    def edit_const(self, node_id: str, raw: Any, dtype: Optional[DType] = None) -> Graph:
        return self.dispatch(EditConst(node_id=node_id, raw=raw, dtype=dtype))

    def remove_node(self, node_id: str) -> Graph:
        return self.dispatch(RemoveNode(node_id=node_id))

    def values(self, record: Any) -> Dict[str, Any]:
        return evaluate(self.graph.nodes, self.graph.edges, record, self.settings)

    def preview(self, record: Any = None) -> List[OutputNode]:
        """Output nodes of the current graph with their preview result filled in."""
        if record is None:
            record = self.settings.sample_record
        values = self.values(record)
        outputs: List[OutputNode] = []
        for n in self.graph.nodes:
            if n.type != "output":
                continue
            data = n.data.model_copy(update={"result": values.get(n.id)})
            outputs.append(n.model_copy(update={"data": data}))
        return outputs

    def python(self) -> str:
        return generate(self.graph.nodes, self.graph.edges, self.settings)
