"""Configuration objects for decimal evaluation and expression decoding limits."""

from __future__ import annotations

import decimal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class EngineConfig:
    """Runtime settings shared by every expression node.

    Attributes:
        precision: Significant digits kept by the engine-wide decimal context.
        rounding: Rounding mode (one of the ``decimal.ROUND_*`` constants).
        intern_literals: Share literal nodes through the literal cache.
        max_depth: Maximum nesting depth accepted when decoding an expression.
        max_nodes: Maximum node count accepted when decoding an expression.
    """

    precision: int = 50
    rounding: str = decimal.ROUND_HALF_EVEN
    intern_literals: bool = True
    max_depth: int = 64
    max_nodes: int = 1024

    def decimal_context(self) -> decimal.Context:
        return decimal.Context(prec=self.precision, rounding=self.rounding)


_active_config = EngineConfig()
_active_context = _active_config.decimal_context()


def get_engine_config() -> EngineConfig:
    return _active_config


def get_decimal_context() -> decimal.Context:
    return _active_context


def set_engine_config(config: EngineConfig) -> EngineConfig:
    """Install ``config`` process-wide and return the previously active one."""

    global _active_config, _active_context
    previous = _active_config
    _active_config = config
    _active_context = config.decimal_context()
    return previous


@contextmanager
def engine_config(**overrides: object) -> Iterator[EngineConfig]:
    """Temporarily run with selected fields of the active config replaced.

    Example:
        >>> from mortgage_num import literal
        >>> with engine_config(intern_literals=False):
        ...     literal(1) is literal(1)
        False
    """

    previous = set_engine_config(replace(_active_config, **overrides))
    try:
        yield _active_config
    finally:
        set_engine_config(previous)
