"""In-memory service registry with TTL leases, polling watches and expiry sweeping."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

SERVICE_REGISTRY_ADDR = "127.0.0.1:50051"
DEFAULT_TTL_SEC = 10


class InstanceNotFoundError(LookupError):
    """Raised when a lease refers to an instance the registry does not hold."""


@dataclass
class ServiceInstance:
    """A running instance of a named service."""

    name: str
    id: str
    addr: str = ""
    meta: dict[str, str] = field(default_factory=dict)
    ttl_sec: int = 0


@dataclass(frozen=True)
class Lease:
    """Proof of registration, valid until ``expire_unix``."""

    name: str
    id: str
    expire_unix: int = 0


@dataclass
class _Entry:
    instance: ServiceInstance
    expire: float


def _lease(instance: ServiceInstance, now: float) -> Lease:
    return Lease(name=instance.name, id=instance.id, expire_unix=int(now + instance.ttl_sec))


def make_lease(instance: ServiceInstance) -> Lease:
    """Issue a lease for an instance, expiring ``ttl_sec`` seconds from now."""
    return _lease(instance, time.time())


def _format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, timezone.utc).isoformat(timespec="seconds")


class Registry:
    """Tracks service instances by name and id; instances expire unless kept alive."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._services: dict[str, dict[str, _Entry]] = {}
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None
        logger.info("registry started")

    def register(self, instance: ServiceInstance) -> Lease:
        """Add or replace an instance; a TTL of zero or less becomes the default."""
        if instance.ttl_sec <= 0:
            instance = replace(instance, ttl_sec=DEFAULT_TTL_SEC)
        now = self._clock()
        with self._lock:
            group = self._services.setdefault(instance.name, {})
            group[instance.id] = _Entry(instance, now + instance.ttl_sec)
        logger.info(
            "registered %s (id %s, addr %s, ttl %ds)",
            instance.name, instance.id, instance.addr, instance.ttl_sec,
        )
        return _lease(instance, now)

    def deregister(self, lease: Lease) -> None:
        """Remove the instance named by a lease, if it is present."""
        with self._lock:
            group = self._services.get(lease.name)
            if group is not None and group.pop(lease.id, None) is not None:
                logger.info("deregistered %s (id %s)", lease.name, lease.id)

    def keep_alive(self, lease: Lease) -> Lease:
        """Extend an instance's expiry by its TTL and return a fresh lease."""
        now = self._clock()
        with self._lock:
            entry = self._services.get(lease.name, {}).get(lease.id)
            if entry is not None:
                entry.expire = now + entry.instance.ttl_sec
                logger.info(
                    "renewed %s (id %s, expires %s)",
                    lease.name, lease.id, _format_time(entry.expire),
                )
                return _lease(entry.instance, now)
        logger.info("renewal failed for %s (id %s): instance not found", lease.name, lease.id)
        raise InstanceNotFoundError("instance not found")

    def discover(self, name: str = "") -> list[ServiceInstance]:
        """Return the instances of one service, or of every service when name is empty."""
        with self._lock:
            instances = self._snapshot(name)
        logger.info("discover %s: %d instances", name, len(instances))
        return instances

    def watch(
        self,
        name: str = "",
        interval: float = 5.0,
        stop: threading.Event | None = None,
    ) -> Iterator[list[ServiceInstance]]:
        """Poll every ``interval`` seconds and yield the instance list whenever it changes."""
        stop = stop if stop is not None else threading.Event()
        logger.info("watching %s", name)
        last: list[ServiceInstance] | None = None
        while not stop.wait(interval):
            with self._lock:
                current = self._snapshot(name)
            if current != last:
                logger.info("watch push %s: %d instances", name, len(current))
                last = current
                yield [replace(inst, meta=dict(inst.meta)) for inst in current]
        logger.info("watch ended: %s", name)

    def sweep(self) -> int:
        """Drop expired instances and empty service groups; return how many expired."""
        now = self._clock()
        expired = 0
        with self._lock:
            for name in list(self._services):
                group = self._services[name]
                for instance_id in [i for i, e in group.items() if e.expire < now]:
                    entry = group.pop(instance_id)
                    expired += 1
                    logger.info(
                        "expired %s (id %s, expired %s)",
                        name, instance_id, _format_time(entry.expire),
                    )
                if not group:
                    del self._services[name]
                    logger.info("removed empty service group %s", name)
        if expired:
            logger.info("sweep removed %d expired instances", expired)
        return expired

    def start_sweeper(self, interval: float = 5.0) -> None:
        """Sweep in a background thread every ``interval`` seconds until closed."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def loop() -> None:
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=loop, name="registry-sweeper", daemon=True)
        self._sweeper.start()

    def close(self) -> None:
        """Stop the background sweeper."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None

    def __enter__(self) -> Registry:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _snapshot(self, name: str) -> list[ServiceInstance]:
        if name:
            return [e.instance for e in self._services.get(name, {}).values()]
        return [e.instance for group in self._services.values() for e in group.values()]