"""Programmatic and CLI entry points for inspecting serialized expressions."""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .expr.codec import decode_expression, stable_expression_hash
from .expr.nodes import Num, node_depth, node_size
from .expr.render import render_node
from .expr.rewrite import simplify
from .expr.validate import ValidationError
from .models import DerivationReport

logger = logging.getLogger("mortgage_num.runner")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_report(payload: Num | Mapping[str, Any]) -> DerivationReport:
    """Decode ``payload`` and describe its value, renderings and simplified form.

    Args:
        payload: A node, an expression envelope, or a bare node mapping.

    Returns:
        A :class:`DerivationReport` for the decoded tree.
    """

    _, node = decode_expression(payload)
    simplified = simplify(node)
    return DerivationReport(
        value=str(node.value),
        rendered=render_node(node, expand=False),
        expanded=render_node(node, expand=True),
        simplified=render_node(simplified, expand=True),
        nodes=node_size(node),
        depth=node_depth(node),
        hash=stable_expression_hash(node),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate and simplify a serialized expression.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--expr", help="Expression envelope or node as inline JSON")
    source.add_argument("--file", type=Path, help="Path to a JSON file holding the expression")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        type=str.upper,
        choices=_LOG_LEVELS,
        help="Logging level (default: WARNING)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint that prints a JSON derivation report."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level)

    try:
        text = args.expr if args.expr is not None else args.file.read_text(encoding="utf-8")
        payload = json.loads(text)
        report = build_report(payload)
    except OSError as exc:
        logger.error("Could not read expression file: %s", exc)
        return 2
    except (json.JSONDecodeError, TypeError, ValidationError) as exc:
        logger.error("Could not decode expression: %s", exc)
        return 2

    print(json.dumps(report.model_dump(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
