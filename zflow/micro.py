"""Registers a service with the registry and keeps its lease alive."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable

from zflow.registry import DEFAULT_TTL_SEC, Lease, Registry, ServiceInstance
from zflow.service import BaseService

logger = logging.getLogger(__name__)

SERVICE_VERSION = "v1.0.0"
HEARTBEAT_INTERVAL = 5.0


def _new_id() -> str:
    return str(uuid.uuid4())


class Micro:
    """Announces a service to a registry and renews its lease in the background."""

    def __init__(
        self,
        registry: Registry,
        service: BaseService,
        *,
        ttl_sec: int = DEFAULT_TTL_SEC,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        version: str = SERVICE_VERSION,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.registry = registry
        self.service = service
        self.ttl_sec = ttl_sec
        self.heartbeat_interval = heartbeat_interval
        self.version = version
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.instance: ServiceInstance | None = None
        self.lease: Lease | None = None

    def start(self) -> Lease:
        """Register the service under a fresh id and start the heartbeat thread."""
        instance = ServiceInstance(
            name=self.service.name,
            id=self._id_factory(),
            addr=self.service.addr,
            meta={"version": self.version},
            ttl_sec=self.ttl_sec,
        )
        lease = self.registry.register(instance)
        with self._lock:
            self.instance = instance
            self.lease = lease
        logger.info("service %s registered as %s", instance.name, instance.id)

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._heartbeat_loop, name=f"heartbeat-{instance.name}", daemon=True
        )
        self._thread.start()
        return lease

    def heartbeat(self) -> Lease:
        """Renew the lease once, registering again if the registry lost the instance."""
        with self._lock:
            instance, lease = self.instance, self.lease
        if instance is None or lease is None:
            raise RuntimeError("service is not registered")
        try:
            lease = self.registry.keep_alive(lease)
        except Exception as exc:
            logger.warning("keepalive failed: %s, re-registering...", exc)
            try:
                lease = self.registry.register(instance)
            except Exception as reg_exc:
                logger.warning("re-register failed: %s", reg_exc)
                return lease
        with self._lock:
            self.lease = lease
        return lease

    def stop(self) -> None:
        """Stop the heartbeat and deregister the service."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        with self._lock:
            instance, self.instance, self.lease = self.instance, None, None
        if instance is None:
            return
        try:
            self.registry.deregister(Lease(name=instance.name, id=instance.id))
        except Exception as exc:
            logger.warning("error deregistering service: %s", exc)

    def __enter__(self) -> Micro:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _heartbeat_loop(self) -> None:
        while not self._stop.wait(self.heartbeat_interval):
            try:
                self.heartbeat()
            except RuntimeError:
                return