"""Pydantic schemas for serialized expressions and derivation reports."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

EXPRESSION_VERSION = "1"


class ExpressionEnvelope(BaseModel):
    """Versioned wrapper around a serialized expression tree.

    Attributes:
        version: Envelope format version; only ``"1"`` is understood.
        root: Dictionary form of the root node (see ``node_to_dict``).

    Example:
        >>> ExpressionEnvelope(root={"type": "literal", "value": "1"})
    """

    version: str = Field(default=EXPRESSION_VERSION)
    root: dict[str, Any]

    @field_validator("version", mode="before")
    @classmethod
    def normalize_version(cls, value: Any) -> str:
        text = str(value).strip()
        if text != EXPRESSION_VERSION:
            raise ValueError(f"Unsupported expression version: {text!r}")
        return text

    @field_validator("root")
    @classmethod
    def require_node_type(cls, value: dict[str, Any]) -> dict[str, Any]:
        if "type" not in value:
            raise ValueError("root node requires field 'type'")
        return value


class DerivationReport(BaseModel):
    """Everything the command line prints about one expression.

    Attributes:
        value: Exact decimal value as a string.
        rendered: Rendering with named constants and outputs kept by name.
        expanded: Fully expanded rendering.
        simplified: Fully expanded rendering of the simplified tree.
        nodes: Node count of the input tree.
        depth: Nesting depth of the input tree.
        hash: Stable fingerprint of the input tree.
    """

    value: str
    rendered: str
    expanded: str
    simplified: str
    nodes: int = Field(ge=1)
    depth: int = Field(ge=1)
    hash: str = Field(min_length=16, max_length=16)
