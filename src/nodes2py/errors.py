from __future__ import annotations


class Nodes2PyError(Exception):
    """Base class for every error raised by nodes2py."""


class UnknownOperator(Nodes2PyError, KeyError):
    def __init__(self, op_id: str):
        super().__init__(op_id)
        self.op_id = op_id

    def __str__(self) -> str:
        return f"Unknown operator '{self.op_id}'"


class CycleDetected(Nodes2PyError):
    def __init__(self, node_id: str):
        super().__init__(f"Cycle detected at node '{node_id}'")
        self.node_id = node_id


class UnconnectedPort(Nodes2PyError):
    def __init__(self, node_id: str, port_id: str):
        super().__init__(f"Port '{port_id}' on node '{node_id}' has no incoming edge")
        self.node_id = node_id
        self.port_id = port_id


class TypeMismatch(Nodes2PyError, ValueError):
    """Raised when an edge is refused at creation time."""

    def __init__(self, source: str, target: str, source_dtype: str = "?", target_dtype: str = "?"):
        super().__init__(
            f"Cannot connect {source} ({source_dtype}) to {target} ({target_dtype})"
        )
        self.source = source
        self.target = target
        self.source_dtype = source_dtype
        self.target_dtype = target_dtype


class MalformedListLiteral(Nodes2PyError, ValueError):
    pass
