"""Value types and errors for the grid layout engine.

Everything here is immutable; a layout pass builds new objects every time it
runs and never mutates its inputs.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Tuple


class LayoutError(ValueError):
    """Base class for errors raised by the layout engine."""


class InvalidViewportError(LayoutError):
    """Raised when the viewport width or height is not a positive number."""


class InvalidWeightError(LayoutError):
    """Raised when an item carries a negative or non-finite raw weight."""

    def __init__(self, identifier: Any, raw_weight: Any) -> None:
        super().__init__(
            f"Invalid weight {raw_weight!r} for item {identifier!r}: "
            "weights must be finite and non-negative"
        )
        self.identifier = identifier
        self.raw_weight = raw_weight


STATUS_CONVERGED = 'converged'
STATUS_EXHAUSTED = 'exhausted'


@dataclass(frozen=True)
class Item:
    """One tile to lay out: an opaque key plus hours played."""

    identifier: Any
    raw_weight: float

    @classmethod
    def from_value(cls, value: Any) -> 'Item':
        """Coerce an ``Item`` or a mapping into an ``Item``.

        Mappings may use ``identifier``/``id``/``appid`` for the key and
        ``hours``/``hoursPlayed``/``raw_weight`` for the weight. A mapping
        without a weight raises :class:`InvalidWeightError`.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            identifier = _first_present(value, ('identifier', 'id', 'appid'))
            weight = _first_present(value, ('raw_weight', 'hours', 'hoursPlayed', 'hours_played'))
            if weight is None:
                raise InvalidWeightError(identifier, weight)
            try:
                weight = float(weight)
            except (TypeError, ValueError):
                raise InvalidWeightError(identifier, weight)
            return cls(identifier=identifier, raw_weight=weight)
        raise TypeError(f"Cannot build an Item from {type(value).__name__}")


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float

    @classmethod
    def from_value(cls, value: Any) -> 'Viewport':
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            width, height = value.get('width'), value.get('height')
        elif isinstance(value, (str, bytes)):
            raise InvalidViewportError(f"Cannot read a viewport from {value!r}")
        else:
            try:
                width, height = value
            except (TypeError, ValueError):
                raise InvalidViewportError(f"Cannot read a viewport from {value!r}")
        try:
            return cls(width=float(width), height=float(height))
        except (TypeError, ValueError):
            raise InvalidViewportError(f"Viewport dimensions must be numbers, got {width!r}x{height!r}")

    def validate(self) -> None:
        """Raise :class:`InvalidViewportError` unless both sides are positive."""
        for name, value in (('width', self.width), ('height', self.height)):
            if not math.isfinite(value) or value <= 0:
                raise InvalidViewportError(
                    f"Viewport {name} must be a positive number, got {value!r}"
                )


@dataclass(frozen=True)
class Span:
    """Footprint of a tile in grid cells."""

    width: int
    height: int


@dataclass(frozen=True)
class ScoredItem:
    identifier: Any
    raw_weight: float
    area_weight: float
    span: Span

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identifier': self.identifier,
            'raw_weight': self.raw_weight,
            'area_weight': self.area_weight,
            'span': {'width': self.span.width, 'height': self.span.height},
        }


# camelCase names accepted by LayoutConfig.from_dict (JSON / query strings)
_CONFIG_ALIASES = {
    'desiredCardWidth': 'desired_card_width',
    'maxSpan': 'max_span',
    'topKBoostCount': 'top_k_boost_count',
    'topK': 'top_k_boost_count',
    'boostIncrement': 'boost_increment',
    'overflowTolerance': 'overflow_tolerance',
    'slackTolerance': 'slack_tolerance',
    'maxIterations': 'max_iterations',
    'minColumns': 'min_columns',
    'maxColumns': 'max_columns',
    'weightOffset': 'weight_offset',
    'weightExponent': 'weight_exponent',
}


@dataclass(frozen=True)
class LayoutConfig:
    """Tuning knobs for a layout pass.

    The numeric defaults are tuning values, not contracts; every field can
    be overridden per call.
    """

    desired_card_width: float = 160.0
    max_span: int = 12
    top_k_boost_count: int = 3
    boost_increment: int = 1
    overflow_tolerance: float = 0.05
    slack_tolerance: float = 0.25
    max_iterations: int = 8
    gutter: float = 8.0
    min_columns: int = 1
    max_columns: int = 64
    weight_offset: float = 0.1
    weight_exponent: float = 0.62

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"{f.name} must be a finite number, got {value!r}")
        if not self.desired_card_width >= 1:
            raise ValueError("desired_card_width must be >= 1")
        if self.max_span < 1:
            raise ValueError("max_span must be >= 1")
        if self.top_k_boost_count < 0:
            raise ValueError("top_k_boost_count must be >= 0")
        if self.boost_increment < 0:
            raise ValueError("boost_increment must be >= 0")
        if not 0 <= self.overflow_tolerance:
            raise ValueError("overflow_tolerance must be >= 0")
        if not 0 <= self.slack_tolerance < 1:
            raise ValueError("slack_tolerance must be in [0, 1)")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.gutter < 0:
            raise ValueError("gutter must be >= 0")
        if self.min_columns < 1:
            raise ValueError("min_columns must be >= 1")
        if self.max_columns < self.min_columns:
            raise ValueError("max_columns must be >= min_columns")
        if not self.weight_offset > 0:
            raise ValueError("weight_offset must be > 0")
        if not 0 < self.weight_exponent < 1:
            raise ValueError("weight_exponent must be in (0, 1)")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'LayoutConfig':
        """Build a config from a partial mapping, ignoring unknown keys.

        Values are coerced to the field's type, so query-string values such
        as ``'12'`` are accepted.
        """
        if not data:
            return cls()
        types = {f.name: f.type for f in fields(cls)}
        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in types or value is None:
                continue
            caster = int if types[name] in ('int', int) else float
            try:
                overrides[name] = caster(value)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid value for {key}: {value!r}")
        return cls(**overrides)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LayoutPlan:
    """Result of a layout pass, ready for the presentation layer."""

    column_count: int
    row_cell_size: float
    items: Tuple[ScoredItem, ...] = ()
    gutter: float = 0.0
    estimated_height: float = 0.0
    rows_used: int = 0
    iterations: int = 0
    status: str = STATUS_CONVERGED
    skipped: Tuple[Any, ...] = field(default=())

    @property
    def converged(self) -> bool:
        return self.status == STATUS_CONVERGED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'column_count': self.column_count,
            'row_cell_size': self.row_cell_size,
            'gutter': self.gutter,
            'estimated_height': self.estimated_height,
            'rows_used': self.rows_used,
            'iterations': self.iterations,
            'status': self.status,
            'skipped': list(self.skipped),
            'items': [item.to_dict() for item in self.items],
        }


def _first_present(mapping: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None
