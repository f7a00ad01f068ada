"""Thread-safe cache of node and connection types per service."""

from __future__ import annotations

import threading

from zflow.messages import ConnectionTypeInfo, NodeTypeInfo


class Cache:
    """Holds published node and connection types, keyed by service then uid."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._node_types: dict[str, dict[str, NodeTypeInfo]] = {}
        self._conn_types: dict[str, dict[str, ConnectionTypeInfo]] = {}

    def add_node_type(self, service: str, node_type: NodeTypeInfo) -> None:
        with self._lock:
            self._node_types.setdefault(service, {})[node_type.uid] = node_type

    def add_conn_type(self, service: str, conn_type: ConnectionTypeInfo) -> None:
        with self._lock:
            self._conn_types.setdefault(service, {})[conn_type.uid] = conn_type

    def node_types(self) -> dict[str, dict[str, NodeTypeInfo]]:
        """Return a snapshot of all node types."""
        with self._lock:
            return {service: dict(types) for service, types in self._node_types.items()}

    def conn_types(self) -> dict[str, dict[str, ConnectionTypeInfo]]:
        """Return a snapshot of all connection types."""
        with self._lock:
            return {service: dict(types) for service, types in self._conn_types.items()}