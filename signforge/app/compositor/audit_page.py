"""
Audit-trail page composition.

Renders the single, fixed-size (ISO A4) page appended to every annotated
document, and the stand-alone signing certificate page. Both share one
layout, in strict order:

    title
    generation timestamp
    original-document hash
    client stamp (only when supplied)
    Signers
    Field Values
    Signature Placements
    disclaimer

Layout policy:
- Every line is wrapped by the Text Wrapper and drawn at a fixed left
  margin.
- A vertical cursor is threaded explicitly through every drawing call;
  each emitted line advances it by ``font_size + 7``.
- Overflow is LOSSY: once the cursor drops below
  ``OVERFLOW_THRESHOLD_Y`` the current section stops emitting items.
  Nothing spills onto a second page. The underlying records are not
  affected, only their rendering here.
- The placement listing is capped at ``MAX_PLACEMENT_ENTRIES``; the field
  value listing at ``MAX_FIELD_LINES``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Union

from reportlab.pdfgen.canvas import Canvas

from signforge.app.compositor.fonts import FontFaces
from signforge.app.compositor.text_wrap import DEFAULT_MAX_CHARS, wrap_text
from signforge.app.diagnostics import (
    CompositingDiagnostic,
    DiagnosticKind,
    DiagnosticsSink,
    NullDiagnosticsSink,
    safe_record,
)
from signforge.app.schemas.records import (
    SignaturePlacement,
    Signer,
    TextPlacement,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Policy constants (tied to the fixed A4 canvas and font sizes below)
# ---------------------------------------------------------------------------

AUDIT_PAGE_SIZE = (595.28, 841.89)
MARGIN = 48.0
LINE_GAP = 7.0
OVERFLOW_THRESHOLD_Y = 80.0
MAX_PLACEMENT_ENTRIES = 25
MAX_FIELD_LINES = 60
TEXT_RGB = (0.08, 0.08, 0.08)

AUDIT_TITLE = "Audit Trail"
CERTIFICATE_TITLE = "Signing Certificate"
DISCLAIMER = (
    "Note: This audit trail is an informational record and does not "
    "replace a digital certificate."
)

AnyPlacement = Union[SignaturePlacement, TextPlacement]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuditSummary:
    """Everything the audit page displays."""

    title: str
    generated_at: str
    original_hash: str
    signers: Sequence[Signer] = ()
    legacy_used: bool = False
    field_lines: Sequence[str] = ()
    placements: Sequence[AnyPlacement] = ()
    client_stamp: Optional[str] = None


@dataclass(frozen=True)
class AuditCursor:
    """Vertical drawing position on the audit page (PDF user space)."""

    y: float

    def advance(self, by: float) -> "AuditCursor":
        return AuditCursor(self.y - by)

    @property
    def exhausted(self) -> bool:
        return self.y < OVERFLOW_THRESHOLD_Y


# ---------------------------------------------------------------------------
# Summary builders
# ---------------------------------------------------------------------------

def used_signers(
    signers: Iterable[Signer],
    placements: Iterable[SignaturePlacement],
) -> List[Signer]:
    """Signers referenced by at least one placement, in signer order."""
    used_ids = {p.signer_id for p in placements if p.signer_id}
    return [s for s in signers if s.id in used_ids]


def legacy_mode_used(placements: Iterable[SignaturePlacement]) -> bool:
    """True if any placement carries no signer id."""
    return any(not p.signer_id for p in placements)


# ---------------------------------------------------------------------------
# Line formatting
# ---------------------------------------------------------------------------

def _signer_lines(signers: Sequence[Signer]) -> List[List[str]]:
    entries = []
    for idx, signer in enumerate(signers):
        name = signer.name or f"Signer {idx + 1}"
        email = signer.email or "-"
        method = signer.signature_method or "unknown"
        signed_at = signer.signed_at or "-"
        entries.append([
            f"• {name} <{email}>",
            f"  Method: {method} | Signed At: {signed_at}",
        ])
    return entries


def _coordinate(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def format_placement_line(placement: AnyPlacement) -> str:
    if isinstance(placement, TextPlacement):
        owner = f"Stamp: {placement.text or '-'}"
    else:
        owner = f"Signer: {placement.signer_id or '(legacy)'}"
    return (
        f"• Page {placement.page_index + 1} | {owner} | "
        f"xPct={_coordinate(placement.x_pct):.4f}, "
        f"yPct={_coordinate(placement.y_pct):.4f}"
    )


# ---------------------------------------------------------------------------
# Drawing primitives
# ---------------------------------------------------------------------------

def draw_wrapped(
    canvas: Canvas,
    cursor: AuditCursor,
    text: str,
    fonts: FontFaces,
    size: float = 11,
    bold: bool = False,
) -> AuditCursor:
    """Draw ``text`` wrapped at the left margin; return the advanced cursor."""
    canvas.setFont(fonts.bold if bold else fonts.regular, size)
    for line in wrap_text(text, DEFAULT_MAX_CHARS):
        canvas.drawString(MARGIN, cursor.y, line)
        cursor = cursor.advance(size + LINE_GAP)
    return cursor


def _draw_items(
    canvas: Canvas,
    cursor: AuditCursor,
    heading: str,
    entries: Sequence[Sequence[str]],
    sizes: Sequence[float],
    fonts: FontFaces,
    sink: DiagnosticsSink,
) -> AuditCursor:
    """
    Emit multi-line entries until the overflow threshold is crossed.

    The cutoff is checked after each entry; an entry is never split.
    """
    for index, entry in enumerate(entries):
        for line, size in zip(entry, sizes):
            cursor = draw_wrapped(canvas, cursor, line, fonts, size=size)
        if cursor.exhausted:
            dropped = len(entries) - index - 1
            if dropped:
                logger.debug(
                    "audit_section_truncated",
                    extra={"section": heading, "dropped": dropped},
                )
                safe_record(
                    sink,
                    CompositingDiagnostic(
                        kind=DiagnosticKind.AUDIT_SECTION_TRUNCATED,
                        message=f"{heading} truncated on audit page",
                        details={"section": heading, "dropped": dropped},
                    ),
                )
            break
    return cursor


# ---------------------------------------------------------------------------
# Page composition
# ---------------------------------------------------------------------------

def compose_audit_page(
    canvas: Canvas,
    summary: AuditSummary,
    fonts: FontFaces,
    sink: Optional[DiagnosticsSink] = None,
) -> AuditCursor:
    """
    Draw the full audit layout onto ``canvas`` (an A4 page).

    Returns the final cursor position.
    """
    sink = sink or NullDiagnosticsSink()
    _, page_height = AUDIT_PAGE_SIZE

    canvas.setFillColorRGB(*TEXT_RGB)
    cursor = AuditCursor(page_height - MARGIN)

    # Header
    cursor = draw_wrapped(canvas, cursor, summary.title, fonts, size=18, bold=True)
    cursor = cursor.advance(8)
    cursor = draw_wrapped(canvas, cursor, f"Generated: {summary.generated_at}", fonts, size=11)
    cursor = draw_wrapped(
        canvas,
        cursor,
        f"Original Document Hash (SHA-256): {summary.original_hash}",
        fonts,
        size=10,
    )
    if summary.client_stamp:
        cursor = draw_wrapped(canvas, cursor, f"Client Stamp: {summary.client_stamp}", fonts, size=11)
    cursor = cursor.advance(10)

    # Signers
    cursor = draw_wrapped(canvas, cursor, "Signers:", fonts, size=12, bold=True)
    if summary.signers:
        cursor = _draw_items(
            canvas, cursor, "Signers", _signer_lines(summary.signers), (11, 10), fonts, sink
        )
    elif summary.legacy_used:
        cursor = draw_wrapped(
            canvas, cursor, "• Signature applied (legacy/single-signer mode).", fonts
        )
    else:
        cursor = draw_wrapped(canvas, cursor, "• No signer metadata found.", fonts)

    # Field values
    cursor = cursor.advance(8)
    cursor = draw_wrapped(canvas, cursor, "Field Values:", fonts, size=12, bold=True)
    if summary.field_lines:
        entries = [[f"• {line}"] for line in summary.field_lines[:MAX_FIELD_LINES]]
        cursor = _draw_items(canvas, cursor, "Field Values", entries, (10,), fonts, sink)
    else:
        cursor = draw_wrapped(canvas, cursor, "• No field values provided.", fonts)

    # Placements
    cursor = cursor.advance(8)
    cursor = draw_wrapped(canvas, cursor, "Signature Placements:", fonts, size=12, bold=True)
    if summary.placements:
        entries = [
            [format_placement_line(p)]
            for p in summary.placements[:MAX_PLACEMENT_ENTRIES]
        ]
        cursor = _draw_items(canvas, cursor, "Signature Placements", entries, (10,), fonts, sink)
    else:
        cursor = draw_wrapped(canvas, cursor, "• No signature placements found.", fonts)

    cursor = cursor.advance(8)
    cursor = draw_wrapped(canvas, cursor, DISCLAIMER, fonts, size=9)
    return cursor


def render_audit_page(
    summary: AuditSummary,
    fonts: FontFaces,
    sink: Optional[DiagnosticsSink] = None,
) -> bytes:
    """Render the audit layout as a stand-alone single-page PDF."""
    buf = BytesIO()
    canvas = Canvas(buf, pagesize=AUDIT_PAGE_SIZE)
    canvas.setTitle(summary.title)
    compose_audit_page(canvas, summary, fonts, sink)
    canvas.showPage()
    canvas.save()
    return buf.getvalue()
