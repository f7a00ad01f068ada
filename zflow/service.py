"""A service that publishes node and connection types and runs single nodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from zflow.messages import (
    ConnectionTypeInfo,
    NodeTypeInfo,
    convert_conn_type,
    convert_node_type,
)
from zflow.model import STATE_FAILED, STATE_SUCCESS, ConnectionType, ExecutionContext, NodeType

logger = logging.getLogger(__name__)


@dataclass
class RunNodeResult:
    """Outcome of running one node."""

    state: str
    outputs: dict[str, bytes] = field(default_factory=dict)
    error: str = ""


@dataclass
class BaseService:
    """Holds a service's node and connection types and executes its nodes."""

    name: str
    addr: str
    node_types: dict[str, NodeType] = field(default_factory=dict)
    conn_types: dict[str, ConnectionType] = field(default_factory=dict)

    def get_node_types(self) -> list[NodeTypeInfo]:
        return [convert_node_type(nt) for nt in self.node_types.values()]

    def get_conn_types(self) -> list[ConnectionTypeInfo]:
        return [convert_conn_type(ct) for ct in self.conn_types.values()]

    def run_node(
        self,
        node_id: str,
        inputs: Mapping[str, bytes],
        vars: Mapping[str, Any] | None = None,
    ) -> RunNodeResult:
        """Run the node type whose uid is ``node_id``; failures come back in the result."""
        node_type = next((nt for nt in self.node_types.values() if nt.uid == node_id), None)
        if node_type is None or node_type.operation is None:
            return RunNodeResult(state=STATE_FAILED, error="node type not found")

        ctx = ExecutionContext(
            logger=lambda msg: logger.info("[%s] %s", node_id, msg),
            vars=dict(vars or {}),
        )
        try:
            outputs = node_type.operation.execute(ctx, dict(inputs), ctx.vars)
        except Exception as exc:
            return RunNodeResult(state=STATE_FAILED, error=str(exc))
        return RunNodeResult(state=STATE_SUCCESS, outputs=dict(outputs or {}))