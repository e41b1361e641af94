"""
Tier-gated watermarking.

Implementation
    - reportlab renders one overlay per distinct page size.
    - pypdf merges the overlay onto every page of the finished document.

The policy runs last so the watermark sits above all other content,
including the appended audit page. It is purely additive: the page count
never changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Tuple

from pypdf import PageObject, PdfReader, PdfWriter
from reportlab.lib.colors import Color
from reportlab.pdfgen.canvas import Canvas

from signforge.app.compositor.fonts import FontFaces
from signforge.app.schemas.records import PlanTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatermarkStyle:
    brand_text: str = "SIGNFORGE FREE"
    footer_text: str = "Free version - upgrade to remove watermark"
    brand_size: float = 42
    footer_size: float = 10
    brand_x: float = 70
    footer_x: float = 48
    footer_y: float = 20


def watermark_required(plan: PlanTier) -> bool:
    """Every tier except ``pro`` is watermarked."""
    return plan != PlanTier.PRO


def render_watermark_overlay(
    width: float,
    height: float,
    style: WatermarkStyle,
    fonts: FontFaces,
) -> bytes:
    """
    Single-page overlay the size of the target page:
      • large, low-opacity brand line centred vertically
      • small, high-contrast upgrade footer
    """
    buf = BytesIO()
    c = Canvas(buf, pagesize=(width, height))

    c.saveState()
    c.setFillColor(Color(0.78, 0.78, 0.78, alpha=0.35))
    c.setFont(fonts.bold, style.brand_size)
    c.drawString(style.brand_x, height / 2.0, style.brand_text)
    c.restoreState()

    c.saveState()
    c.setFillColor(Color(0.55, 0.55, 0.55, alpha=0.9))
    c.setFont(fonts.bold, style.footer_size)
    c.drawString(style.footer_x, style.footer_y, style.footer_text)
    c.restoreState()

    c.showPage()
    c.save()
    return buf.getvalue()


def apply_watermark(
    writer: PdfWriter,
    plan: PlanTier,
    fonts: FontFaces,
    style: WatermarkStyle = WatermarkStyle(),
) -> int:
    """
    Stamp every page of ``writer`` unless the plan is ``pro``.

    Returns the number of pages stamped.
    """
    if not watermark_required(plan):
        return 0

    # overlays per (width, height) in points, scoped to this call
    overlays: Dict[Tuple[float, float], PageObject] = {}
    stamped = 0

    for page in writer.pages:
        w = float(page.mediabox.width)
        h = float(page.mediabox.height)
        key = (round(w, 2), round(h, 2))

        overlay = overlays.get(key)
        if overlay is None:
            overlay_pdf = render_watermark_overlay(w, h, style, fonts)
            overlay = PdfReader(BytesIO(overlay_pdf)).pages[0]
            overlays[key] = overlay

        page.merge_page(overlay)
        stamped += 1

    logger.debug(
        "watermark_applied",
        extra={"plan": plan.value, "pages": stamped},
    )
    return stamped
