"""Wire-level descriptions of node and connection types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from zflow.model import ConnectionType, NodeType


@dataclass
class PortInfo:
    """A port as published by a service."""

    name: str
    label: str = ""
    port_type: str = ""


@dataclass
class NodeTypeInfo:
    """A node type as published by a service, without its operation."""

    uid: str
    category: str = ""
    note: str = ""
    properties: dict[str, list[PortInfo]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "category": self.category,
            "note": self.note,
            "properties": {
                kind: {"ports": [asdict(port) for port in ports]}
                for kind, ports in self.properties.items()
            },
        }


@dataclass
class ConnectionTypeInfo:
    """A connection type as published by a service."""

    uid: str
    name: str = ""
    description: str = ""
    color: str = ""
    allowed_port_types: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def convert_node_type(node_type: NodeType) -> NodeTypeInfo:
    """Describe a node type for publication."""
    return NodeTypeInfo(
        uid=node_type.uid,
        category=node_type.category,
        note=node_type.note,
        properties={
            kind: [PortInfo(p.name, p.label, p.port_type) for p in ports]
            for kind, ports in node_type.properties.items()
        },
    )


def convert_conn_type(conn_type: ConnectionType) -> ConnectionTypeInfo:
    """Describe a connection type for publication."""
    return ConnectionTypeInfo(
        uid=conn_type.uid,
        name=conn_type.name,
        description=conn_type.description,
        color=conn_type.color,
        allowed_port_types=list(conn_type.allowed_port_types),
    )