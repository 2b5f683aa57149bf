"""Public package API for mortgage-num."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mortgage-num")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

from .config import EngineConfig, engine_config, get_engine_config, set_engine_config
from .expr import (
    DerivedNum,
    Literal,
    NamedConstant,
    NamedOutput,
    Num,
    Operator,
    floor,
    literal,
    maximum,
    named_constant,
    named_output,
    power,
    product_of,
    simplify,
    sum_of,
)
from .models import DerivationReport, ExpressionEnvelope
from .runner import build_report

__all__ = [
    "__version__",
    "DerivationReport",
    "DerivedNum",
    "EngineConfig",
    "ExpressionEnvelope",
    "Literal",
    "NamedConstant",
    "NamedOutput",
    "Num",
    "Operator",
    "build_report",
    "engine_config",
    "floor",
    "get_engine_config",
    "literal",
    "maximum",
    "named_constant",
    "named_output",
    "power",
    "product_of",
    "set_engine_config",
    "simplify",
    "sum_of",
]
