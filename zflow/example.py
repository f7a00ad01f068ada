"""An example service offering add, multiply and echo nodes."""

from __future__ import annotations

import re
from typing import Any

from zflow.model import ConnectionType, Context, NodeType, Port
from zflow.service import BaseService

SERVICE_NAME = "service_example"
SERVICE_ADDR = "127.0.0.1:9090"

ADD_NODE_TYPE_UID = "add"
MUL_NODE_TYPE_UID = "mul"
ECHO_NODE_TYPE_UID = "echo"

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def wrap_uid(uid: str, version: str) -> str:
    """Qualify a node uid with the service name and a version."""
    return f"{SERVICE_NAME}.{uid}.{version}"


def _parse_int(data: bytes) -> int:
    match = _INT_PREFIX.match(data.decode("utf-8", "replace"))
    if match is None:
        raise ValueError("expected integer")
    value = int(match.group(1))
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError("value out of range")
    return value


def _wrap_int64(value: int) -> int:
    return (value - _INT64_MIN) % 2**64 + _INT64_MIN


def _operands(node: str, inputs: dict[str, bytes]) -> tuple[int, int]:
    if "a" not in inputs or "b" not in inputs:
        raise ValueError(f"{node} node is missing input a or b")
    operands = []
    for name in ("a", "b"):
        try:
            operands.append(_parse_int(inputs[name]))
        except ValueError as exc:
            raise ValueError(f"{node} node input {name} cannot be parsed: {exc}") from exc
    return operands[0], operands[1]


class AddOperation:
    """Adds integer inputs ``a`` and ``b`` into output ``sum``."""

    def execute(
        self, ctx: Context, inputs: dict[str, bytes], vars: dict[str, Any]
    ) -> dict[str, bytes]:
        a, b = _operands("add", inputs)
        return {"sum": str(_wrap_int64(a + b)).encode()}


class MulOperation:
    """Multiplies integer inputs ``a`` and ``b`` into output ``product``."""

    def execute(
        self, ctx: Context, inputs: dict[str, bytes], vars: dict[str, Any]
    ) -> dict[str, bytes]:
        a, b = _operands("mul", inputs)
        return {"product": str(_wrap_int64(a * b)).encode()}


class EchoOperation:
    """Logs input ``input`` and passes it on as output ``output``."""

    def execute(
        self, ctx: Context, inputs: dict[str, bytes], vars: dict[str, Any]
    ) -> dict[str, bytes]:
        if "input" not in inputs:
            raise ValueError("echo node is missing input 'input'")
        data = inputs["input"]
        ctx.log(f"Echo: {data.decode('utf-8', 'replace')}")
        return {"output": data}


DATA_FLOW_CONN = ConnectionType(
    uid="1",
    name="data_flow",
    description="data flow connection for passing ordinary data",
    color="#4CAF50",
    allowed_port_types=["connection"],
)

CONN_TYPES: dict[str, ConnectionType] = {"data_flow": DATA_FLOW_CONN}

ADD_NODE_TYPE = NodeType(
    uid=f"{SERVICE_NAME}.add",
    category="math",
    note="adds two numbers and outputs the result",
    operation=AddOperation(),
    properties={
        "inputs": [Port("a", "addend A", "connection"), Port("b", "addend B", "connection")],
        "outputs": [Port("sum", "sum", "connection")],
    },
)

MUL_NODE_TYPE = NodeType(
    uid=f"{SERVICE_NAME}.mul",
    category="math",
    note="multiplies two numbers and outputs the result",
    operation=MulOperation(),
    properties={
        "inputs": [Port("a", "factor A", "connection"), Port("b", "factor B", "connection")],
        "outputs": [Port("product", "product", "connection")],
    },
)

ECHO_NODE_TYPE = NodeType(
    uid=f"{SERVICE_NAME}.echo",
    category="util",
    note="echoes its input, useful for debugging or showing results",
    operation=EchoOperation(),
    properties={
        "inputs": [Port("input", "input", "connection")],
        "outputs": [Port("output", "output", "connection")],
    },
)

NODE_TYPES: dict[str, NodeType] = {
    ADD_NODE_TYPE_UID: ADD_NODE_TYPE,
    MUL_NODE_TYPE_UID: MUL_NODE_TYPE,
    ECHO_NODE_TYPE_UID: ECHO_NODE_TYPE,
}


def create_service() -> BaseService:
    """Build the example service with its node and connection types."""
    return BaseService(
        name=SERVICE_NAME,
        addr=SERVICE_ADDR,
        node_types=dict(NODE_TYPES),
        conn_types=dict(CONN_TYPES),
    )