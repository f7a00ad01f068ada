"""Workflow metadata, DAG structure and sequential execution."""

from __future__ import annotations

import base64
import binascii
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, Protocol

STATE_SUCCESS = "success"
STATE_FAILED = "failed"


class WorkflowError(Exception):
    """Raised when a workflow is malformed or fails to run."""


class Context(Protocol):
    """The minimum runtime context handed to an operation."""

    def log(self, msg: str) -> None: ...


class Operation(Protocol):
    """The work behind a node type."""

    def execute(
        self, ctx: Context, inputs: dict[str, bytes], vars: dict[str, Any]
    ) -> dict[str, bytes]: ...


@dataclass(frozen=True)
class Port:
    """A port exposed by a node type."""

    name: str
    label: str = ""
    port_type: str = ""


@dataclass(frozen=True)
class Endpoint:
    """One end of a connection: a node and one of its ports."""

    node_id: str
    port_name: str


@dataclass
class NodeType:
    """A node template."""

    uid: str
    category: str = ""
    note: str = ""
    operation: Operation | None = None
    properties: dict[str, list[Port]] = field(default_factory=dict)


@dataclass
class ConnectionType:
    """The meaning of a connection and the port types it may join."""

    uid: str
    name: str = ""
    description: str = ""
    color: str = ""
    allowed_port_types: list[str] = field(default_factory=list)


@dataclass
class Node:
    """A concrete node referring to a node type, with its runtime data."""

    id: str
    type_id: str
    label: str = ""
    state: str = ""
    inputs: dict[str, bytes] = field(default_factory=dict)
    outputs: dict[str, bytes] = field(default_factory=dict)


@dataclass
class Connection:
    """A directed edge from an output port to an input port."""

    id: str
    type_id: str
    source: Endpoint
    target: Endpoint


@dataclass
class Dag:
    """The graph of nodes and connections."""

    nodes: dict[str, Node] = field(default_factory=dict)
    connections: list[Connection] = field(default_factory=list)


@dataclass
class ExecutionContext:
    """Runtime context for a whole workflow run."""

    workflow: Workflow | None = None
    logger: Callable[[str], None] | None = None
    vars: dict[str, Any] = field(default_factory=dict)

    def log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger(msg)


def _has_port(node_type: NodeType, kind: str, name: str) -> bool:
    return any(port.name == name for port in node_type.properties.get(kind, ()))


@dataclass
class Workflow:
    """Metadata lookups plus a DAG, ready to validate and run."""

    id: str
    dag: Dag = field(default_factory=Dag)
    node_types: dict[str, NodeType] = field(default_factory=dict)
    connection_types: dict[str, ConnectionType] = field(default_factory=dict)

    def validate(self) -> None:
        """Check that every node, connection and port is defined."""
        nodes = self.dag.nodes
        if not nodes or not self.dag.connections:
            raise WorkflowError("workflow is required")

        for node_id, node in nodes.items():
            node_type = self.node_types.get(node.type_id)
            if node_type is None:
                raise WorkflowError(
                    f"node {node_id} references undefined node type {node.type_id}"
                )
            for input_name in node.inputs:
                if not _has_port(node_type, "inputs", input_name):
                    raise WorkflowError(f"node {node_id} has no input port {input_name}")

        for conn in self.dag.connections:
            if conn.type_id not in self.connection_types:
                raise WorkflowError(
                    f"connection {conn.id} references undefined connection type {conn.type_id}"
                )
            source = nodes.get(conn.source.node_id)
            if source is None:
                raise WorkflowError(
                    f"connection {conn.id} references unknown source node {conn.source.node_id}"
                )
            target = nodes.get(conn.target.node_id)
            if target is None:
                raise WorkflowError(
                    f"connection {conn.id} references unknown target node {conn.target.node_id}"
                )
            if not _has_port(self.node_types[source.type_id], "outputs", conn.source.port_name):
                raise WorkflowError(
                    f"connection {conn.id} references unknown output port "
                    f"{conn.source.port_name} in node {conn.source.node_id}"
                )
            if not _has_port(self.node_types[target.type_id], "inputs", conn.target.port_name):
                raise WorkflowError(
                    f"connection {conn.id} references unknown input port "
                    f"{conn.target.port_name} in node {conn.target.node_id}"
                )

    def topological_sort(self) -> list[str]:
        """Return node ids in an order where every edge points forward."""
        graph: dict[str, list[str]] = {}
        in_degree = {node_id: 0 for node_id in self.dag.nodes}
        for conn in self.dag.connections:
            graph.setdefault(conn.source.node_id, []).append(conn.target.node_id)
            in_degree[conn.target.node_id] = in_degree.get(conn.target.node_id, 0) + 1

        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        result: list[str] = []
        while queue:
            node_id = queue.popleft()
            result.append(node_id)
            for neighbour in graph.get(node_id, ()):
                in_degree[neighbour] -= 1
                if in_degree[neighbour] == 0:
                    queue.append(neighbour)

        if len(result) != len(self.dag.nodes):
            raise WorkflowError("workflow contains cycles")
        return result

    def execute(self, ctx: ExecutionContext) -> None:
        """Run every node in topological order, passing outputs along connections."""
        try:
            order = self.topological_sort()
        except WorkflowError as exc:
            raise WorkflowError(f"failed to sort workflow: {exc}") from exc

        ctx.log(f"execution order: [{' '.join(order)}]")

        for node_id in order:
            node = self.dag.nodes.get(node_id)
            if node is None:
                raise WorkflowError(f"node {node_id} is not defined")
            node_type = self.node_types.get(node.type_id)
            if node_type is None or node_type.operation is None:
                node.state = STATE_FAILED
                raise WorkflowError(
                    f"node {node_id} references undefined node type {node.type_id}"
                )

            ctx.log(f"starting node {node_id} ({node.label})")

            try:
                self._collect_inputs(node, node_type)
            except WorkflowError as exc:
                node.state = STATE_FAILED
                raise WorkflowError(
                    f"failed to collect inputs for node {node_id}: {exc}"
                ) from exc

            try:
                outputs = node_type.operation.execute(ctx, node.inputs, ctx.vars)
            except Exception as exc:
                node.state = STATE_FAILED
                raise WorkflowError(f"node {node_id} execution failed: {exc}") from exc

            node.outputs = dict(outputs or {})
            node.state = STATE_SUCCESS
            ctx.log(f"node {node_id} finished, state: {node.state}")

    def _incoming_values(self, target: Endpoint) -> Iterator[bytes]:
        for conn in self.dag.connections:
            if conn.target != target:
                continue
            source = self.dag.nodes.get(conn.source.node_id)
            if source is None or source.state != STATE_SUCCESS:
                continue
            value = source.outputs.get(conn.source.port_name)
            if value is not None:
                yield value

    def _collect_inputs(self, node: Node, node_type: NodeType) -> None:
        for port in node_type.properties.get("inputs", ()):
            if port.name in node.inputs:
                continue
            value = next(self._incoming_values(Endpoint(node.id, port.name)), None)
            if value is None:
                raise WorkflowError(
                    f"node {node.id} input port {port.name} has no connection "
                    "or its source node has not finished"
                )
            node.inputs[port.name] = value

    def collect_results(self) -> dict[str, Any]:
        """Summarise the state and data of every node."""
        nodes: dict[str, dict[str, Any]] = {}
        for node_id, node in self.dag.nodes.items():
            entry: dict[str, Any] = {"id": node_id, "label": node.label, "state": node.state}
            if node.inputs:
                entry["inputs"] = {k: v.decode("utf-8", "replace") for k, v in node.inputs.items()}
            if node.outputs:
                entry["outputs"] = {
                    k: v.decode("utf-8", "replace") for k, v in node.outputs.items()
                }
            nodes[node_id] = entry
        return {"workflow_id": self.id, "status": STATE_SUCCESS, "nodes": nodes}


def _decode_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as exc:
            raise WorkflowError(f"invalid base64 input data: {exc}") from exc
    raise WorkflowError(f"input data must be bytes or a base64 string, not {type(value).__name__}")


def _endpoint(raw: Mapping[str, Any] | None) -> Endpoint:
    raw = raw or {}
    return Endpoint(node_id=raw.get("node_id", ""), port_name=raw.get("port_name", ""))


def workflow_from_raw(uid: str, raw: Mapping[str, Any]) -> Workflow:
    """Build a workflow from its JSON description (inputs as base64 strings or bytes)."""
    wf = Workflow(id=uid)
    for item in raw.get("nodes") or ():
        node = Node(
            id=item.get("id", ""),
            type_id=item.get("node_type", ""),
            label=item.get("label", ""),
            inputs={k: _decode_bytes(v) for k, v in (item.get("inputs") or {}).items()},
        )
        wf.dag.nodes[node.id] = node
    for item in raw.get("connections") or ():
        wf.dag.connections.append(
            Connection(
                id=item.get("connection_id", ""),
                type_id=item.get("connection_type", ""),
                source=_endpoint(item.get("from")),
                target=_endpoint(item.get("to")),
            )
        )
    return wf