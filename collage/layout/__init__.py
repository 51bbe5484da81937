"""Grid layout engine: expose the public API from one import."""
from .models import (
    STATUS_CONVERGED,
    STATUS_EXHAUSTED,
    InvalidViewportError,
    InvalidWeightError,
    Item,
    LayoutConfig,
    LayoutError,
    LayoutPlan,
    ScoredItem,
    Span,
    Viewport,
)
from .engine import (
    assign_spans,
    cell_size,
    grid_height,
    layout,
    pack_rows,
    search_columns,
    weight_transform,
)

__all__ = [
    'STATUS_CONVERGED',
    'STATUS_EXHAUSTED',
    'InvalidViewportError',
    'InvalidWeightError',
    'Item',
    'LayoutConfig',
    'LayoutError',
    'LayoutPlan',
    'ScoredItem',
    'Span',
    'Viewport',
    'assign_spans',
    'cell_size',
    'grid_height',
    'layout',
    'pack_rows',
    'search_columns',
    'weight_transform',
]
