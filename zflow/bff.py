"""HTTP front end: lists published types, tracks instances and runs workflows."""

from __future__ import annotations

import argparse
import logging
import threading
from typing import Any, Iterable, Mapping, Protocol

from flask import Flask, jsonify, request

from zflow import example
from zflow.cache import Cache
from zflow.messages import ConnectionTypeInfo, NodeTypeInfo
from zflow.micro import Micro
from zflow.model import ExecutionContext, WorkflowError, workflow_from_raw
from zflow.registry import Registry
from zflow.registry import ServiceInstance as RegisteredInstance
from zflow.selector import LocalLB, ServiceInstance

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


class TypeSource(Protocol):
    """Anything that publishes node and connection types."""

    def get_node_types(self) -> list[NodeTypeInfo]: ...

    def get_conn_types(self) -> list[ConnectionTypeInfo]: ...


def update_load_balancer(
    balancer: LocalLB, instances: Iterable[RegisteredInstance]
) -> dict[str, int]:
    """Replace the balancer's instances for every service named in ``instances``."""
    groups: dict[str, list[ServiceInstance]] = {}
    for inst in instances:
        groups.setdefault(inst.name, []).append(
            ServiceInstance(id=inst.id, addr=inst.addr, meta=dict(inst.meta))
        )
    for name, group in groups.items():
        balancer.set_instances(name, group)
        logger.info("service %s now has %d instances in the load balancer", name, len(group))
    return {name: len(group) for name, group in groups.items()}


def fetch_service_types(cache: Cache, service_name: str, service: TypeSource) -> bool:
    """Copy a service's node and connection types into the cache; False on failure."""
    try:
        node_types = service.get_node_types()
    except Exception as exc:
        logger.warning("fetching node types of %s failed: %s", service_name, exc)
        return False
    for node_type in node_types:
        cache.add_node_type(service_name, node_type)

    try:
        conn_types = service.get_conn_types()
    except Exception as exc:
        logger.warning("fetching connection types of %s failed: %s", service_name, exc)
        return False
    for conn_type in conn_types:
        cache.add_conn_type(service_name, conn_type)

    logger.info("node and connection types of %s updated", service_name)
    return True


def _raw_problem(raw: Mapping[str, Any]) -> str | None:
    nodes, connections = raw.get("nodes"), raw.get("connections")
    if nodes is None or connections is None:
        return "workflow is required"
    if not isinstance(nodes, list) or not isinstance(connections, list):
        return "workflow nodes and connections must be lists"
    for node in nodes:
        if not isinstance(node, dict):
            return "workflow node must be an object"
        if not isinstance(node.get("inputs") or {}, dict):
            return "workflow node inputs must be an object"
    for conn in connections:
        if not isinstance(conn, dict):
            return "workflow connection must be an object"
        for end in ("from", "to"):
            if not isinstance(conn.get(end) or {}, dict):
                return f"workflow connection {end} must be an object"
    return None


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def create_app(cache: Cache, balancer: LocalLB) -> Flask:
    """Build the HTTP application over a type cache and a load balancer."""
    app = Flask(__name__)
    app.config["ZFLOW_CACHE"] = cache
    app.config["ZFLOW_BALANCER"] = balancer

    @app.get("/node_types")
    def node_types():
        return jsonify(
            {
                service: {uid: info.to_dict() for uid, info in types.items()}
                for service, types in cache.node_types().items()
            }
        )

    @app.get("/connection_types")
    def connection_types():
        return jsonify(
            {
                service: {uid: info.to_dict() for uid, info in types.items()}
                for service, types in cache.conn_types().items()
            }
        )

    @app.post("/workflows")
    def run_workflow():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return _error("request body must be a JSON object")
        uid = body.get("uid") or ""
        if not isinstance(uid, str):
            return _error("uid must be a string")
        if not uid:
            return _error("uid is required")
        raw = body.get("workflow") or {}
        if not isinstance(raw, dict):
            return _error("workflow must be an object")
        problem = _raw_problem(raw)
        if problem is not None:
            return _error(problem)

        try:
            wf = workflow_from_raw(uid, raw)
            ctx = ExecutionContext(workflow=wf, logger=logger.info)
            wf.execute(ctx)
        except WorkflowError as exc:
            return _error(str(exc))
        return jsonify(wf.collect_results())

    return app


def _watch_services(
    registry: Registry,
    services: Mapping[str, TypeSource],
    cache: Cache,
    balancer: LocalLB,
    interval: float,
    stop: threading.Event,
) -> None:
    for instances in registry.watch("", interval, stop):
        update_load_balancer(balancer, instances)
        for inst in instances:
            service = services.get(inst.name)
            if service is None:
                logger.warning("no reachable service for %s at %s", inst.name, inst.addr)
                continue
            fetch_service_types(cache, inst.name, service)


def main(argv: list[str] | None = None) -> int:
    """Run the registry, the example service and the HTTP front end in one process."""
    parser = argparse.ArgumentParser(prog="zflow", description="Workflow HTTP front end.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="address to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    parser.add_argument(
        "--watch-interval", type=float, default=5.0, help="seconds between registry polls"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    cache = Cache()
    balancer = LocalLB()
    registry = Registry()
    registry.start_sweeper()
    service = example.create_service()
    services = {service.name: service}
    stop = threading.Event()
    watcher = threading.Thread(
        target=_watch_services,
        args=(registry, services, cache, balancer, args.watch_interval, stop),
        name="registry-watch",
        daemon=True,
    )
    app = create_app(cache, balancer)

    try:
        with Micro(registry, service):
            watcher.start()
            logger.info("server starting on port %d", args.port)
            try:
                app.run(host=args.host, port=args.port)
            finally:
                logger.info("shutting down server...")
                stop.set()
                watcher.join(timeout=5.0)
    finally:
        registry.close()
    logger.info("server stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())