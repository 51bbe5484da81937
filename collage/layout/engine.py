"""Grid layout engine for the playtime collage.

Given items weighted by hours played and a viewport, work out a square span
for every tile and a column count so that the mosaic fills the viewport
without spilling far past it.

The column-count search is a bounded local search, not an exact solver:
it nudges the column count up while the estimated grid is too tall and down
while it leaves too much of the viewport empty, and accepts whatever it has
once the iteration budget runs out.

Usage::

    from collage.layout import layout, Item, Viewport

    plan = layout([Item('620', 42.0), Item('440', 3.5)], Viewport(1200, 800))
    plan.column_count, plan.row_cell_size
    [(i.identifier, i.span.width) for i in plan.items]
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .models import (
    STATUS_CONVERGED,
    STATUS_EXHAUSTED,
    InvalidViewportError,
    InvalidWeightError,
    Item,
    LayoutConfig,
    LayoutPlan,
    ScoredItem,
    Span,
    Viewport,
)

logger = logging.getLogger('panorama.layout')


def weight_transform(hours: float, offset: float = 0.1, exponent: float = 0.62) -> float:
    """Map hours played onto a tile area weight.

    ``(hours + offset) ** exponent``: the offset keeps zero-hour items at a
    positive minimum and the sub-linear exponent compresses outliers.

    Raises:
        InvalidWeightError: *hours* is negative or not finite, or the
            weight overflows.
    """
    if not isinstance(hours, (int, float)) or not math.isfinite(hours) or hours < 0:
        raise InvalidWeightError(None, hours)
    weight = (hours + offset) ** exponent
    if not math.isfinite(weight):
        raise InvalidWeightError(None, hours)
    return weight


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def assign_spans(area_weights: Sequence[float], max_span: int = 12,
                 top_k: int = 3, boost_increment: int = 1) -> List[Span]:
    """Convert area weights into square spans in ``[1, max_span]``.

    Each weight is normalised against the largest one and its square root
    taken, so tile *area* tracks weight. The *top_k* heaviest items (ties
    broken by position) are bumped by *boost_increment*, never past
    *max_span*.
    """
    if max_span < 1:
        raise ValueError("max_span must be >= 1")
    if not area_weights:
        return []

    max_weight = max(area_weights)
    max_area = max_span * max_span
    sides = []
    for weight in area_weights:
        relative = weight / max_weight if max_weight > 0 else 0.0
        side = _round_half_up(math.sqrt(relative * max_area))
        sides.append(min(max_span, max(1, side)))

    if top_k > 0 and boost_increment > 0:
        ranked = sorted(range(len(area_weights)), key=lambda i: (-area_weights[i], i))
        for index in ranked[:top_k]:
            sides[index] = min(max_span, sides[index] + boost_increment)

    return [Span(side, side) for side in sides]


def pack_rows(spans: Sequence[Span], column_count: int) -> int:
    """Return the number of grid rows used by packing *spans* in order.

    Placement follows CSS grid auto-placement: a cursor walks left to right
    and top to bottom, and each tile goes to the first free slot at or after
    the cursor that fits its footprint, wrapping when the row runs out.
    Spans wider than the grid are treated as full width.
    """
    if column_count < 1:
        raise ValueError("column_count must be >= 1")

    occupied: List[bytearray] = []
    cursor_row, cursor_col = 0, 0
    rows_used = 0

    def ensure_rows(count: int) -> None:
        while len(occupied) < count:
            occupied.append(bytearray(column_count))

    def fits(row: int, col: int, width: int, height: int) -> bool:
        ensure_rows(row + height)
        for r in range(row, row + height):
            line = occupied[r]
            for c in range(col, col + width):
                if line[c]:
                    return False
        return True

    for span in spans:
        width = min(span.width, column_count)
        height = span.height
        row, col = cursor_row, cursor_col
        while True:
            if col + width > column_count:
                row, col = row + 1, 0
                continue
            if fits(row, col, width, height):
                break
            col += 1

        for r in range(row, row + height):
            line = occupied[r]
            for c in range(col, col + width):
                line[c] = 1
        cursor_row, cursor_col = row, col + width
        rows_used = max(rows_used, row + height)

    return rows_used


def cell_size(viewport_width: float, column_count: int, gutter: float) -> float:
    """Width of one grid cell once gutters are taken out."""
    return (viewport_width - gutter * (column_count - 1)) / column_count


def grid_height(rows: int, cell: float, gutter: float) -> float:
    if rows <= 0:
        return 0.0
    return rows * cell + (rows - 1) * gutter


def _width_cap(viewport: Viewport, gutter: float) -> int:
    # every cell keeps at least 1px once gutters are taken out
    return max(1, int((viewport.width + gutter) // (1 + gutter)))


def _column_bounds(item_count: int, viewport: Viewport, config: LayoutConfig) -> Tuple[int, int]:
    upper = max(1, min(item_count, config.max_columns, _width_cap(viewport, config.gutter)))
    lower = min(config.min_columns, upper)
    return lower, max(lower, upper)


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


class _Estimate(NamedTuple):
    column_count: int
    cell: float
    spans: List[Span]
    rows: int
    height: float


def _estimate(weights: Sequence[float], column_count: int,
              viewport: Viewport, config: LayoutConfig) -> _Estimate:
    cell = cell_size(viewport.width, column_count, config.gutter)
    visible_rows = max(1, int((viewport.height + config.gutter) // (cell + config.gutter)))
    span_cap = max(1, min(config.max_span, column_count, visible_rows))
    spans = assign_spans(weights, span_cap, config.top_k_boost_count, config.boost_increment)
    rows = pack_rows(spans, column_count)
    return _Estimate(column_count, cell, spans, rows, grid_height(rows, cell, config.gutter))


def search_columns(weights: Sequence[float], viewport: Viewport,
                   config: LayoutConfig) -> Tuple[_Estimate, int, str]:
    """Search for a column count whose estimated height fits the viewport.

    Returns ``(estimate, iterations, status)``. The search stops as soon as
    an estimate lands inside the tolerance band (``converged``), or when the
    budget is spent or the next candidate has already been tried
    (``exhausted``); in the latter case the last estimate is kept.
    """
    lower, upper = _column_bounds(len(weights), viewport, config)
    columns = _clamp(_round_half_up(viewport.width / config.desired_card_width), lower, upper)
    too_tall = viewport.height * (1 + config.overflow_tolerance)
    too_short = viewport.height * (1 - config.slack_tolerance)

    tried = set()
    estimate = None
    for iteration in range(1, config.max_iterations + 1):
        estimate = _estimate(weights, columns, viewport, config)
        tried.add(columns)
        logger.debug("columns=%d cell=%.1f rows=%d height=%.1f",
                     columns, estimate.cell, estimate.rows, estimate.height)

        if too_short <= estimate.height <= too_tall:
            return estimate, iteration, STATUS_CONVERGED

        step = 1 if estimate.height > too_tall else -1
        candidate = _clamp(columns + step, lower, upper)
        if candidate in tried:
            return estimate, iteration, STATUS_EXHAUSTED
        columns = candidate

    return estimate, config.max_iterations, STATUS_EXHAUSTED


def _score_items(items: Iterable[Any], config: LayoutConfig,
                 strict: bool) -> Tuple[List[Item], List[float], List[Any]]:
    kept: List[Item] = []
    weights: List[float] = []
    skipped: List[Any] = []

    def reject(identifier: Any, raw_weight: Any) -> None:
        if strict:
            raise InvalidWeightError(identifier, raw_weight)
        logger.warning("Skipping item %r: invalid weight %r", identifier, raw_weight)
        skipped.append(identifier)

    for index, value in enumerate(items):
        try:
            item = Item.from_value(value)
        except InvalidWeightError as exc:
            reject(index if exc.identifier is None else exc.identifier, exc.raw_weight)
            continue
        if item.identifier is None:
            # unnamed items are keyed by position
            item = Item(index, item.raw_weight)
        try:
            weight = weight_transform(item.raw_weight, config.weight_offset, config.weight_exponent)
        except InvalidWeightError:
            reject(item.identifier, item.raw_weight)
            continue
        kept.append(item)
        weights.append(weight)
    return kept, weights, skipped


def layout(items: Iterable[Any], viewport: Any,
           config: Optional[LayoutConfig] = None, strict: bool = False) -> LayoutPlan:
    """Lay out *items* for *viewport* and return a :class:`LayoutPlan`.

    Args:
        items:    ``Item`` objects or mappings (see :meth:`Item.from_value`),
                  in presentation order.
        viewport: ``Viewport``, ``{'width': .., 'height': ..}`` or a
                  ``(width, height)`` pair.
        config:   Optional :class:`LayoutConfig`; defaults apply otherwise.
        strict:   When true a negative or non-finite weight raises
                  :class:`InvalidWeightError`. By default the offending item
                  is skipped, logged, and listed in ``plan.skipped``.

    Raises:
        InvalidViewportError: Width or height is not a positive number, or
            is too large to add the gutter to.
    """
    config = config or LayoutConfig()
    viewport = Viewport.from_value(viewport)
    viewport.validate()
    if not math.isfinite(max(viewport.width, viewport.height) + config.gutter):
        raise InvalidViewportError(
            f"Viewport {viewport.width!r}x{viewport.height!r} is too large for gutter {config.gutter!r}"
        )

    kept, weights, skipped = _score_items(items, config, strict)

    if not kept:
        columns = min(config.min_columns, _width_cap(viewport, config.gutter))
        return LayoutPlan(
            column_count=columns,
            row_cell_size=cell_size(viewport.width, columns, config.gutter),
            gutter=config.gutter,
            skipped=tuple(skipped),
        )

    estimate, iterations, status = search_columns(weights, viewport, config)
    if status != STATUS_CONVERGED:
        logger.info("Layout search accepted %d columns after %d iterations (height %.0f for %.0f)",
                    estimate.column_count, iterations, estimate.height, viewport.height)

    scored = tuple(
        ScoredItem(identifier=item.identifier, raw_weight=item.raw_weight,
                   area_weight=weight, span=span)
        for item, weight, span in zip(kept, weights, estimate.spans)
    )
    return LayoutPlan(
        column_count=estimate.column_count,
        row_cell_size=estimate.cell,
        items=scored,
        gutter=config.gutter,
        estimated_height=estimate.height,
        rows_used=estimate.rows,
        iterations=iterations,
        status=status,
        skipped=tuple(skipped),
    )
