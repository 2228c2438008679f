from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from .literals import infer_dtype

DType = Literal["number", "string", "boolean", "date", "list", "any"]

WHILE_OP = "while_loop"
SCOPE_HANDLE = "body"


class _Model(BaseModel):
    # Editor JSON uses camelCase (opId, sourceHandle); python callers use snake_case.
    model_config = ConfigDict(populate_by_name=True)


class Port(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    dtype: DType = "any"
    label: Optional[str] = None


class FieldData(_Model):
    path: str
    dtype: DType = "any"
    label: Optional[str] = None


class ConstData(_Model):
    value: Any = None
    dtype: DType = "string"
    label: Optional[str] = None


class OperatorData(_Model):
    op_id: str = Field(alias="opId")
    label: Optional[str] = None
    exprs: List[str] = Field(default_factory=list)  # extra per-iteration handles on a while node


class OutputData(_Model):
    label: str = "Result"
    result: Any = None  # derived by preview, never read back


class _NodeBase(_Model):
    id: str
    position: Optional[Dict[str, float]] = None


class FieldNode(_NodeBase):
    type: Literal["field"] = "field"
    data: FieldData


class ConstNode(_NodeBase):
    type: Literal["const"] = "const"
    data: ConstData


class OperatorNode(_NodeBase):
    type: Literal["operator"] = "operator"
    data: OperatorData


class OutputNode(_NodeBase):
    type: Literal["output"] = "output"
    data: OutputData = Field(default_factory=OutputData)


Node = Annotated[
    Union[FieldNode, ConstNode, OperatorNode, OutputNode],
    Field(discriminator="type"),
]


class Edge(_Model):
    id: Optional[str] = None
    source: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target: str
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")


class Graph(_Model):
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def node_map(self) -> Dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def index(self) -> "GraphIndex":
        return GraphIndex(self.nodes, self.edges)


class GraphIndex:
    """Adjacency lookups over one snapshot of (nodes, edges)."""

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge]):
        self.nodes: List[Node] = list(nodes)
        self.edges: List[Edge] = list(edges)
        self.node_map: Dict[str, Node] = {}
        self.position: Dict[str, int] = {}
        for i, n in enumerate(self.nodes):
            self.node_map[n.id] = n
            self.position.setdefault(n.id, i)
        self.by_target: Dict[str, List[Edge]] = {}
        self.by_source: Dict[str, List[Edge]] = {}
        for e in self.edges:
            self.by_target.setdefault(e.target, []).append(e)
            self.by_source.setdefault(e.source, []).append(e)

    def node(self, node_id: str) -> Optional[Node]:
        return self.node_map.get(node_id)

    def is_while(self, node_id: str) -> bool:
        n = self.node_map.get(node_id)
        return n is not None and n.type == "operator" and n.data.op_id == WHILE_OP

    def is_scope_edge(self, e: Edge) -> bool:
        return e.source_handle == SCOPE_HANDLE and self.is_while(e.source)

    def data_in(self, node_id: str) -> List[Edge]:
        return [e for e in self.by_target.get(node_id, []) if not self.is_scope_edge(e)]

    def data_out(self, node_id: str) -> List[Edge]:
        return [e for e in self.by_source.get(node_id, []) if not self.is_scope_edge(e)]

    def input_edge(self, node_id: str, port_id: str) -> Optional[Edge]:
        found = None
        for e in self.data_in(node_id):
            if e.target_handle == port_id:
                found = e  # last edge into a port wins
        return found

    def value_edge(self, node_id: str) -> Optional[Edge]:
        incoming = self.data_in(node_id)
        return incoming[-1] if incoming else None


def field_node(id: str, path: str, dtype: DType = "any", label: Optional[str] = None) -> FieldNode:
    return FieldNode(id=id, data=FieldData(path=path, dtype=dtype, label=label))


def const_node(id: str, value: Any, dtype: Optional[DType] = None, label: Optional[str] = None) -> ConstNode:
    return ConstNode(id=id, data=ConstData(value=value, dtype=dtype or infer_dtype(value), label=label))


def operator_node(id: str, op_id: str, label: Optional[str] = None, exprs: Optional[List[str]] = None) -> OperatorNode:
    return OperatorNode(id=id, data=OperatorData(op_id=op_id, label=label, exprs=list(exprs or [])))


def output_node(id: str, label: str = "Result") -> OutputNode:
    return OutputNode(id=id, data=OutputData(label=label))


def link(source: str, target: str, target_handle: Optional[str] = None,
         source_handle: Optional[str] = None, id: Optional[str] = None) -> Edge:
    eid = id or f"{source}:{source_handle or 'out'}->{target}:{target_handle or 'in'}"
    return Edge(id=eid, source=source, source_handle=source_handle,
                target=target, target_handle=target_handle)
