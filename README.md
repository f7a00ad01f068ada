# zflow

zflow runs workflows that are described as directed acyclic graphs of
typed nodes. Node types come from small services. A service registers
with an in-memory registry and keeps its lease alive. An HTTP front end
watches the registry and publishes the node and connection types it finds.

## Modules

- `zflow.model` is the workflow model. It has `Port`, `Endpoint`,
  `NodeType`, `ConnectionType`, `Node`, `Connection`, `Dag` and
  `Workflow`.
  - `workflow_from_raw(uid, raw)` builds a `Workflow` from its JSON
    description. Node inputs are given as base64 strings or as bytes.
  - `Workflow.validate()` checks that node types, connection types,
    nodes and ports exist.
  - `Workflow.topological_sort()` orders the nodes.
  - `Workflow.execute(ctx)` runs each node's operation in order and passes
    outputs along the connections.
  - `Workflow.collect_results()` returns each node's state, inputs and
    outputs.
  - All of these failures raise `WorkflowError`.
- `zflow.messages` holds the published form of the types: `NodeTypeInfo`,
  `ConnectionTypeInfo` and `PortInfo`. `convert_node_type` and
  `convert_conn_type` build them.
- `zflow.registry` is the in-memory `Registry`.
  - `register` returns a `Lease`. A TTL of zero or less becomes 10 seconds.
  - `keep_alive` renews a lease. It raises `InstanceNotFoundError` for an
    unknown instance.
  - `deregister` removes an instance.
  - `discover(name)` lists the instances of one service. With an empty
    name it lists every service.
  - `watch(name, interval, stop)` is a generator. It polls the registry
    and yields the instance list whenever the list changes.
  - `sweep()` drops expired instances and returns how many it removed.
    `start_sweeper()` sweeps in a background thread until `close()` is
    called.
- `zflow.service`: `BaseService` holds a service's node and connection
  types.
  - `get_node_types` and `get_conn_types` list them.
  - `run_node(node_id, inputs, vars)` runs the node type whose uid is
    `node_id`. It returns a `RunNodeResult` with a `state` of `"success"`
    or `"failed"` and an `error` message.
- `zflow.example` is an example service, built by `create_service()`.
  - `service_example.add` adds inputs `a` and `b` into output `sum`.
  - `service_example.mul` multiplies inputs `a` and `b` into output
    `product`.
  - `service_example.echo` logs `input` and passes it on as `output`.
  - Its connection type is `data_flow`, with uid `"1"`.
- `zflow.micro`: `Micro(registry, service)` registers a service with a
  `Registry` under a fresh uuid and renews the lease in a background
  thread.
  - `start()` registers the service and starts the heartbeat.
  - `heartbeat()` renews the lease once, and registers again when the
    registry has lost the instance.
  - `stop()` stops the heartbeat and deregisters.
  - It can also be used as a context manager.
- `zflow.cache`: `Cache` stores published node and connection types by
  service and uid. It is thread-safe.
- `zflow.selector`: `LocalLB` is a round-robin load balancer over
  `ServiceInstance`s.
- `zflow.bff` is the HTTP front end (Flask).
  - `create_app(cache, balancer)` builds the application.
  - `update_load_balancer` and `fetch_service_types` copy what the
    registry reports into the balancer and the cache.

## Running a workflow from Python

```python
from zflow import example
from zflow.model import ExecutionContext, workflow_from_raw

wf = workflow_from_raw("wf-1", {
    "nodes": [
        {"id": "n1", "node_type": "service_example.add", "label": "sum",
         "inputs": {"a": "Mg==", "b": "Mw=="}},          # "2" and "3"
        {"id": "n2", "node_type": "service_example.echo", "label": "show"},
    ],
    "connections": [
        {"connection_id": "c1", "connection_type": "1",
         "from": {"node_id": "n1", "port_name": "sum"},
         "to": {"node_id": "n2", "port_name": "input"}},
    ],
})
wf.node_types = {nt.uid: nt for nt in example.NODE_TYPES.values()}
wf.connection_types = {ct.uid: ct for ct in example.CONN_TYPES.values()}
wf.validate()
wf.execute(ExecutionContext(logger=print))
print(wf.collect_results()["nodes"]["n2"]["outputs"])   # {'output': '5'}
```

## The HTTP front end

Start it with:

    zflow-bff [--host 0.0.0.0] [--port 8080] [--watch-interval 5.0]

This command runs three things in one process:

- a `Registry` with its sweeper,
- the example service, registered through `Micro`,
- the HTTP application.

A background thread watches the registry, updates the load balancer and
fills the cache from the example service.

Routes:

- `GET /node_types`: node types, grouped by service and then by uid
- `GET /connection_types`: connection types, grouped by service and then
  by uid
- `POST /workflows`: takes `{"uid": ..., "workflow": {"nodes": [...],
  "connections": [...]}}`, runs the workflow and returns `workflow_id`,
  `status` and `nodes`

The server answers with status 400 and an `error` message in these cases:

- the body is not a JSON object,
- `uid` is missing,
- `nodes` or `connections` is missing or malformed,
- the workflow has a cycle,
- a node cannot be run.

## What it does not do

- Registry, services and front end talk by direct Python calls inside
  one process. There is no network protocol between them, and there is
  no command that runs a registry or a service on its own.
- `POST /workflows` does not attach the cached node types to a
  submitted workflow. Any workflow with nodes is therefore rejected with
  "references undefined node type". To run workflows, fill
  `Workflow.node_types` yourself, as in the example above.
- The load balancer is kept up to date, but no request is ever
  dispatched through it.
- Nothing is stored on disk. The registry and the caches live in memory.

## Tests

The tests use pytest. Install the `test` extra to get it.