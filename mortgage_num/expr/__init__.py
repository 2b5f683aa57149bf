from .cache import LiteralCache
from .codec import (
    canonical_expression_json,
    decode_expression,
    encode_expression,
    expression_summary,
    stable_expression_hash,
)
from .nodes import (
    AnyNumber,
    DerivedNum,
    Literal,
    NamedConstant,
    NamedOutput,
    Node,
    Num,
    build_derived,
    floor,
    literal,
    literal_cache,
    maximum,
    merge_siblings,
    named_constant,
    named_output,
    node_depth,
    node_size,
    power,
    product_of,
    structurally_equal,
    sum_of,
    to_decimal,
    to_node,
)
from .registry import (
    OPERATOR_SPECS,
    ArityError,
    Operator,
    OperatorSpec,
    Precedence,
    UnsupportedOperatorError,
)
from .render import FlatteningError, pretty_print, render_node
from .rewrite import SIMPLIFICATION_RULES, SimplificationRule, simplify, simplify_one
from .validate import (
    ValidationError,
    ValidationLimits,
    ensure_node,
    node_to_dict,
    normalize_and_validate,
)

__all__ = [
    "OPERATOR_SPECS",
    "SIMPLIFICATION_RULES",
    "AnyNumber",
    "ArityError",
    "DerivedNum",
    "FlatteningError",
    "Literal",
    "LiteralCache",
    "NamedConstant",
    "NamedOutput",
    "Node",
    "Num",
    "Operator",
    "OperatorSpec",
    "Precedence",
    "SimplificationRule",
    "UnsupportedOperatorError",
    "ValidationError",
    "ValidationLimits",
    "build_derived",
    "canonical_expression_json",
    "decode_expression",
    "encode_expression",
    "ensure_node",
    "expression_summary",
    "floor",
    "literal",
    "literal_cache",
    "maximum",
    "merge_siblings",
    "named_constant",
    "named_output",
    "node_depth",
    "node_size",
    "node_to_dict",
    "normalize_and_validate",
    "power",
    "pretty_print",
    "product_of",
    "render_node",
    "simplify",
    "simplify_one",
    "stable_expression_hash",
    "structurally_equal",
    "sum_of",
    "to_decimal",
    "to_node",
]
