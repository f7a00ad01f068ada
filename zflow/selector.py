"""Local round-robin load balancer over service instances."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass
class ServiceInstance:
    """An addressable instance of a service."""

    id: str
    addr: str
    meta: dict[str, str] = field(default_factory=dict)


class LocalLB:
    """Round-robin selection among the known instances of each service."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instances: dict[str, list[ServiceInstance]] = {}
        self._index = 0

    def next_instance(self, service_name: str) -> ServiceInstance | None:
        """Return the next instance in turn, or None if there are none."""
        with self._lock:
            instances = self._instances.get(service_name)
            if not instances:
                return None
            self._index += 1
            return instances[self._index % len(instances)]

    def instance_count(self, service_name: str) -> int:
        with self._lock:
            return len(self._instances.get(service_name, ()))

    def all_instances(self, service_name: str) -> list[ServiceInstance]:
        """Return a copy of the instances of a service."""
        with self._lock:
            return list(self._instances.get(service_name, ()))

    def set_instances(
        self, service_name: str, instances: list[ServiceInstance] | None
    ) -> None:
        with self._lock:
            self._instances[service_name] = list(instances or ())

    def add_instance(self, service_name: str, instance: ServiceInstance | None) -> None:
        if instance is None:
            return
        with self._lock:
            self._instances.setdefault(service_name, []).append(instance)