import base64

import pytest

from zflow import example
from zflow.bff import create_app, fetch_service_types, update_load_balancer
from zflow.cache import Cache
from zflow.registry import ServiceInstance as RegisteredInstance
from zflow.selector import LocalLB, ServiceInstance


class BrokenNodeTypes:
    def get_node_types(self):
        raise RuntimeError("unreachable")

    def get_conn_types(self):
        return example.create_service().get_conn_types()


class BrokenConnTypes:
    def get_node_types(self):
        return example.create_service().get_node_types()

    def get_conn_types(self):
        raise RuntimeError("unreachable")


@pytest.fixture
def cache():
    c = Cache()
    fetch_service_types(c, example.SERVICE_NAME, example.create_service())
    return c


@pytest.fixture
def client(cache):
    app = create_app(cache, LocalLB())
    return app.test_client()


def test_update_load_balancer_groups_by_name():
    balancer = LocalLB()
    counts = update_load_balancer(
        balancer,
        [
            RegisteredInstance(name="alpha", id="a1", addr="h1:1"),
            RegisteredInstance(name="beta", id="b1", addr="h2:2"),
            RegisteredInstance(name="alpha", id="a2", addr="h3:3"),
        ],
    )
    assert counts == {"alpha": 2, "beta": 1}
    assert [i.id for i in balancer.all_instances("alpha")] == ["a1", "a2"]
    assert [i.addr for i in balancer.all_instances("beta")] == ["h2:2"]


def test_update_load_balancer_leaves_other_services():
    balancer = LocalLB()
    balancer.set_instances("gamma", [ServiceInstance(id="g1", addr="h:1")])
    update_load_balancer(balancer, [RegisteredInstance(name="alpha", id="a1")])
    assert [i.id for i in balancer.all_instances("gamma")] == ["g1"]
    assert balancer.instance_count("alpha") == 1


def test_fetch_service_types_fills_cache(cache):
    expected = {nt.uid for nt in example.NODE_TYPES.values()}
    assert set(cache.node_types()[example.SERVICE_NAME]) == expected
    assert set(cache.conn_types()[example.SERVICE_NAME]) == {example.DATA_FLOW_CONN.uid}


def test_fetch_service_types_stops_on_node_type_failure():
    c = Cache()
    assert fetch_service_types(c, "svc", BrokenNodeTypes()) is False
    assert c.node_types() == {}
    assert c.conn_types() == {}


def test_fetch_service_types_keeps_node_types_on_conn_failure():
    c = Cache()
    assert fetch_service_types(c, "svc", BrokenConnTypes()) is False
    assert len(c.node_types()["svc"]) == len(example.NODE_TYPES)
    assert c.conn_types() == {}


def test_get_node_types(client):
    resp = client.get("/node_types")
    assert resp.status_code == 200
    add = resp.get_json()[example.SERVICE_NAME]["service_example.add"]
    assert add["category"] == "math"
    assert [p["name"] for p in add["properties"]["inputs"]["ports"]] == ["a", "b"]


def test_get_connection_types(client):
    resp = client.get("/connection_types")
    assert resp.status_code == 200
    conn = resp.get_json()[example.SERVICE_NAME][example.DATA_FLOW_CONN.uid]
    assert conn["color"] == "#4CAF50"
    assert conn["allowed_port_types"] == ["connection"]


def test_workflow_requires_uid(client):
    resp = client.post("/workflows", json={"workflow": {"nodes": [], "connections": []}})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "uid is required"}


def test_workflow_requires_nodes_and_connections(client):
    resp = client.post("/workflows", json={"uid": "wf", "workflow": {"nodes": []}})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "workflow is required"}


def test_workflow_rejects_non_json(client):
    resp = client.post("/workflows", data="not json", content_type="text/plain")
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_empty_workflow_succeeds(client):
    resp = client.post(
        "/workflows", json={"uid": "wf", "workflow": {"nodes": [], "connections": []}}
    )
    assert resp.status_code == 200
    assert resp.get_json() == {"workflow_id": "wf", "status": "success", "nodes": {}}


def test_workflow_with_unknown_node_type_fails(client):
    body = {
        "uid": "wf",
        "workflow": {
            "nodes": [
                {
                    "id": "n1",
                    "node_type": "missing",
                    "label": "x",
                    "inputs": {"a": base64.b64encode(b"1").decode()},
                }
            ],
            "connections": [],
        },
    }
    resp = client.post("/workflows", json=body)
    assert resp.status_code == 400
    assert "undefined node type" in resp.get_json()["error"]


def test_workflow_with_bad_base64_fails(client):
    body = {
        "uid": "wf",
        "workflow": {
            "nodes": [{"id": "n1", "node_type": "t", "inputs": {"a": "!!!"}}],
            "connections": [],
        },
    }
    resp = client.post("/workflows", json=body)
    assert resp.status_code == 400
    assert "base64" in resp.get_json()["error"]


def test_workflow_rejects_malformed_node(client):
    resp = client.post(
        "/workflows", json={"uid": "wf", "workflow": {"nodes": [1], "connections": []}}
    )
    assert resp.status_code == 400
    assert "node" in resp.get_json()["error"]