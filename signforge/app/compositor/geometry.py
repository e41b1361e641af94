"""
Normalized-to-page geometry.

Placements are authored in a resolution-independent space: origin at the
page's top-left, y growing downward, all values expressed as fractions of
the page size. PDF user space has its origin at the bottom-left with y
growing upward. This module converts between the two.

Out-of-range fractions are NOT clamped: a box may land partly or wholly
off-page. Only non-finite inputs are rejected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


# Vertical offset substituted for the box height when anchoring text.
TEXT_ANCHOR_OFFSET = 14.0


@dataclass(frozen=True)
class PageBox:
    """Absolute box in PDF user space; ``y`` is the box's bottom edge."""

    x: float
    y: float
    width: float
    height: float


def _all_finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


def map_box(
    page_width: float,
    page_height: float,
    x_pct: float,
    y_pct: float,
    w_pct: float,
    h_pct: float,
) -> Optional[PageBox]:
    """
    Map a normalized top-left rectangle onto absolute page geometry.

    Returns None if any input is non-finite.
    """
    if not _all_finite(page_width, page_height, x_pct, y_pct, w_pct, h_pct):
        return None

    width = w_pct * page_width
    height = h_pct * page_height
    y_top = y_pct * page_height

    return PageBox(
        x=x_pct * page_width,
        y=page_height - y_top - height,
        width=width,
        height=height,
    )


def map_text_anchor(
    page_width: float,
    page_height: float,
    x_pct: float,
    y_pct: float,
) -> Optional[PageBox]:
    """
    Map a normalized text anchor to a text baseline position.

    The fixed TEXT_ANCHOR_OFFSET stands in for the box height; the
    returned box has zero width.
    """
    if not _all_finite(page_width, page_height, x_pct, y_pct):
        return None

    return PageBox(
        x=x_pct * page_width,
        y=page_height - y_pct * page_height - TEXT_ANCHOR_OFFSET,
        width=0.0,
        height=TEXT_ANCHOR_OFFSET,
    )


def is_valid_page_index(page_index: int, page_count: int) -> bool:
    return 0 <= page_index < page_count
