import threading
import time

import pytest

from zflow.registry import (
    SERVICE_REGISTRY_ADDR,
    InstanceNotFoundError,
    Lease,
    Registry,
    ServiceInstance,
    make_lease,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def sample_instance(instance_id="test-instance-1", ttl=10):
    return ServiceInstance(
        name="service_zz",
        id=instance_id,
        addr="127.0.0.1:50051",
        meta={"version": "v1.0.0"},
        ttl_sec=ttl,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    reg = Registry(clock=clock)
    yield reg
    reg.close()


def test_register_at_default_address(registry):
    instance = ServiceInstance(
        name="registry_peer", id="peer-1", addr=SERVICE_REGISTRY_ADDR, ttl_sec=10
    )
    registry.register(instance)
    [stored] = registry.discover("registry_peer")
    assert stored.addr == "127.0.0.1:50051"


def test_register_returns_lease(registry, clock):
    lease = registry.register(sample_instance())
    assert lease.id == "test-instance-1"
    assert lease.name == "service_zz"
    assert lease.expire_unix == int(clock.now) + 10


def test_register_then_keep_alive(registry, clock):
    lease = registry.register(sample_instance())
    clock.now += 5
    renewed = registry.keep_alive(lease)
    assert renewed.id == lease.id
    assert renewed.expire_unix == lease.expire_unix + 5


def test_register_defaults_ttl(registry, clock):
    lease = registry.register(sample_instance(ttl=0))
    [stored] = registry.discover("service_zz")
    assert stored.ttl_sec == 10
    assert lease.expire_unix == int(clock.now) + 10


def test_discover_by_name_and_all(registry):
    registry.register(sample_instance("a"))
    registry.register(sample_instance("b"))
    registry.register(ServiceInstance(name="other", id="c", addr="x", ttl_sec=5))
    assert {i.id for i in registry.discover("service_zz")} == {"a", "b"}
    assert {i.id for i in registry.discover()} == {"a", "b", "c"}
    assert registry.discover("missing") == []


def test_deregister(registry):
    lease = registry.register(sample_instance())
    registry.deregister(lease)
    assert registry.discover("service_zz") == []
    registry.deregister(lease)
    assert registry.discover() == []


def test_keep_alive_unknown_raises(registry):
    with pytest.raises(InstanceNotFoundError):
        registry.keep_alive(Lease(name="service_zz", id="nope"))


def test_sweep_removes_expired(registry, clock):
    registry.register(sample_instance("short", ttl=1))
    registry.register(sample_instance("long", ttl=100))
    clock.now += 11
    assert registry.sweep() == 1
    assert [i.id for i in registry.discover("service_zz")] == ["long"]


def test_sweep_keeps_renewed(registry, clock):
    lease = registry.register(sample_instance())
    clock.now += 8
    registry.keep_alive(lease)
    clock.now += 8
    assert registry.sweep() == 0
    assert len(registry.discover("service_zz")) == 1


def test_keep_alive_after_sweep_raises(registry, clock):
    lease = registry.register(sample_instance())
    clock.now += 20
    registry.sweep()
    with pytest.raises(InstanceNotFoundError):
        registry.keep_alive(lease)


def test_watch_pushes_changes(registry):
    registry.register(sample_instance("test-instance-1"))
    stop = threading.Event()
    stream = registry.watch("service_zz", 0.01, stop)
    first = next(stream)
    assert [i.id for i in first] == ["test-instance-1"]
    assert first[0].addr == "127.0.0.1:50051"
    registry.register(sample_instance("test-instance-2"))
    second = next(stream)
    assert {i.id for i in second} == {"test-instance-1", "test-instance-2"}
    stop.set()
    assert list(stream) == []


def test_watch_first_push_is_empty_list(registry):
    stop = threading.Event()
    stream = registry.watch("service_zz", 0.01, stop)
    assert next(stream) == []
    stop.set()


def test_sweeper_thread(clock):
    reg = Registry(clock=clock)
    reg.register(sample_instance(ttl=1))
    clock.now += 5
    reg.start_sweeper(0.01)
    try:
        for _ in range(500):
            if not reg.discover():
                break
            time.sleep(0.01)
        assert reg.discover() == []
    finally:
        reg.close()


def test_make_lease_uses_ttl():
    before = int(time.time())
    lease = make_lease(sample_instance(ttl=30))
    assert lease.name == "service_zz"
    assert before + 30 <= lease.expire_unix <= int(time.time()) + 30