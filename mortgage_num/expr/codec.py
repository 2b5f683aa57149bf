from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..models import EXPRESSION_VERSION, ExpressionEnvelope
from .nodes import Num, node_depth, node_size
from .render import render_node
from .validate import ValidationError, ValidationLimits, node_to_dict, normalize_and_validate


def encode_expression(root: Num, version: str = EXPRESSION_VERSION) -> dict[str, Any]:
    return {"version": str(version), "root": node_to_dict(root)}


def decode_expression(
    payload: Num | Mapping[str, Any], limits: ValidationLimits | None = None
) -> tuple[str, Num]:
    """Decode an envelope, or a bare node mapping, into ``(version, node)``."""

    if isinstance(payload, Num):
        return EXPRESSION_VERSION, payload

    if not isinstance(payload, Mapping):
        raise TypeError(f"Expression payload must be mapping or Num, got {type(payload)!r}")

    if "type" in payload:
        return EXPRESSION_VERSION, normalize_and_validate(payload, limits)

    try:
        envelope = ExpressionEnvelope.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("envelope", "envelope", str(exc)) from exc
    return envelope.version, normalize_and_validate(envelope.root, limits)


def canonical_expression_json(payload: Num | Mapping[str, Any]) -> str:
    version, node = decode_expression(payload)
    envelope = encode_expression(node, version=version)
    return json.dumps(envelope, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def stable_expression_hash(payload: Num | Mapping[str, Any]) -> str:
    canonical = canonical_expression_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def expression_summary(root: Num | Mapping[str, Any], max_len: int = 180) -> str:
    _, node = decode_expression(root)
    expr = render_node(node, expand=True)
    if len(expr) > max_len:
        expr = expr[: max_len - 3] + "..."
    return f"{expr} = {node.value} [nodes={node_size(node)}, depth={node_depth(node)}]"
