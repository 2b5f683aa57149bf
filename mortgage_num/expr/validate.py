from __future__ import annotations

import decimal
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..config import get_engine_config
from .nodes import (
    DerivedNum,
    Literal,
    NamedConstant,
    NamedOutput,
    Num,
    build_derived,
    literal,
    to_decimal,
)
from .registry import ArityError, get_spec, resolve_operator


@dataclass(slots=True)
class ValidationError(ValueError):
    """Raised when a serialized expression cannot be decoded.

    Attributes:
        code: Short machine-readable error code (e.g. ``"unknown_operator"``,
            ``"max_depth"``, ``"arity"``).
        path: Dot-separated path to the offending node within the payload
            (e.g. ``"root.args[0].node"``).
        message: Human-readable description of the violation.
    """

    code: str
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.code} at {self.path}: {self.message}"


@dataclass(slots=True)
class ValidationLimits:
    """Structural constraints enforced while decoding a payload.

    Attributes:
        max_depth: Maximum allowed nesting depth (root counts as depth 1).
        max_nodes: Maximum total node count across the entire tree.
    """

    max_depth: int = 64
    max_nodes: int = 1024

    @classmethod
    def from_config(cls) -> ValidationLimits:
        config = get_engine_config()
        return cls(max_depth=config.max_depth, max_nodes=config.max_nodes)


def _decimal_field(payload: Mapping[str, Any], path: str) -> decimal.Decimal:
    if "value" not in payload:
        raise ValidationError("missing_field", path, "field 'value' is required")
    try:
        return to_decimal(payload["value"])
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_value", path, str(exc)) from exc


def _name_field(payload: Mapping[str, Any], path: str) -> str:
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("missing_field", path, "field 'name' must be a non-empty string")
    return name.strip()


def normalize_and_validate(
    payload: Num | Mapping[str, Any],
    limits: ValidationLimits | None = None,
) -> Num:
    """Build a node tree from its dictionary form.

    Nested ``add``/``mul`` calls are re-flattened on the way in, so a payload
    written as ``add(add(a, b), c)`` decodes to one three-operand node.
    """

    if isinstance(payload, Num):
        return payload

    lim = limits or ValidationLimits.from_config()
    counter = {"n": 0}

    def _walk(node: Any, path: str, depth: int) -> Num:
        if depth > lim.max_depth:
            raise ValidationError("max_depth", path, f"depth {depth} exceeds {lim.max_depth}")

        counter["n"] += 1
        if counter["n"] > lim.max_nodes:
            raise ValidationError("max_nodes", path, f"node count exceeds {lim.max_nodes}")

        if not isinstance(node, Mapping):
            raise ValidationError("invalid_node", path, f"expected mapping, got {type(node)!r}")

        node_type = str(node.get("type", "")).strip().lower()
        if node_type == "literal":
            return literal(_decimal_field(node, path))
        if node_type == "constant":
            return NamedConstant(_name_field(node, path), _decimal_field(node, path))
        if node_type == "output":
            if "node" not in node:
                raise ValidationError("missing_field", path, "field 'node' is required")
            inner = _walk(node["node"], f"{path}.node", depth + 1)
            return NamedOutput(_name_field(node, path), inner)
        if node_type != "call":
            raise ValidationError("unknown_type", path, f"unknown node type {node_type!r}")

        try:
            op = resolve_operator(node.get("op", ""))
        except KeyError as exc:
            raise ValidationError("unknown_operator", path, str(exc)) from exc

        raw_args = node.get("args")
        if not isinstance(raw_args, list):
            raise ValidationError("invalid_args", path, "call node requires list field 'args'")
        try:
            get_spec(op).check_arity(len(raw_args))
        except ArityError as exc:
            raise ValidationError("arity", path, str(exc)) from exc

        args = [_walk(arg, f"{path}.args[{idx}]", depth + 1) for idx, arg in enumerate(raw_args)]
        try:
            return build_derived(op, args)
        except ArithmeticError as exc:
            raise ValidationError("arithmetic", path, f"{op.value} failed: {exc!r}") from exc

    return _walk(payload, "root", 1)


def node_to_dict(node: Num) -> dict[str, Any]:
    if isinstance(node, Literal):
        return {"type": "literal", "value": str(node.value)}
    if isinstance(node, NamedConstant):
        return {"type": "constant", "name": node.name, "value": str(node.value)}
    if isinstance(node, NamedOutput):
        return {"type": "output", "name": node.name, "node": node_to_dict(node.inner)}
    if isinstance(node, DerivedNum):
        return {
            "type": "call",
            "op": node.op.value,
            "args": [node_to_dict(arg) for arg in node.operands],
        }
    raise TypeError(f"Unsupported node: {type(node)!r}")


def ensure_node(payload: Num | Mapping[str, Any]) -> Num:
    return normalize_and_validate(payload)
