"""
Signature image resolution and drawing.

Binds signer ids to decoded, embeddable signature images for one
compositing invocation and draws either the image or a visible placeholder
for each placement.

Resolution rules:
- Only ``data:image/png;base64,<payload>`` strings are accepted.
- The base64 payload is decoded leniently (unpadded, URL-safe or
  line-wrapped payloads all decode).
- Malformed URLs, non-PNG content and empty payloads are dropped for that
  one entry; other entries are unaffected.
- A placement resolves by exact signer id first, then falls back to the
  legacy single-signature image when one was supplied.
- A placement with no resolvable image is drawn as an outlined, unfilled
  box labelled "SIGN", so no placement silently disappears.

The id -> image mapping is owned by the invocation that built it; nothing
is cached across invocations.
"""

from __future__ import annotations

import base64
import logging
import re
from io import BytesIO
from typing import Dict, Mapping, Optional

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from signforge.app.compositor.fonts import FontFaces
from signforge.app.compositor.geometry import PageBox
from signforge.app.diagnostics import (
    CompositingDiagnostic,
    DiagnosticKind,
    DiagnosticsSink,
    NullDiagnosticsSink,
    safe_record,
)
from signforge.app.schemas.records import SignaturePlacement

logger = logging.getLogger(__name__)

_PNG_DATA_URL = re.compile(r"data:image/png;base64,(.+)", re.DOTALL)
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")
_URLSAFE_ALPHABET = str.maketrans("-_", "+/")

PLACEHOLDER_LABEL = "SIGN"
PLACEHOLDER_FONT_SIZE = 12
PLACEHOLDER_BORDER_RGB = (0.5, 0.2, 0.8)
PLACEHOLDER_LABEL_RGB = (0.35, 0.12, 0.55)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def png_bytes_from_data_url(data_url: object) -> Optional[bytes]:
    """
    Extract PNG bytes from a ``data:image/png;base64,`` URL.

    The payload is decoded leniently, the way browsers and Node produce and
    accept it: missing padding is restored, URL-safe ``-``/``_`` are read as
    ``+``/``/``, whitespace and other stray characters are skipped, and
    decoding stops at the first ``=``. Whether the bytes are really a PNG is
    left to :func:`load_png_image`.

    Returns None for anything that is not such a URL or whose payload
    decodes to nothing.
    """
    match = _PNG_DATA_URL.fullmatch(str(data_url or ""))
    if match is None:
        return None

    payload = match.group(1).split("=", 1)[0].translate(_URLSAFE_ALPHABET)
    payload = _NON_BASE64.sub("", payload)
    if len(payload) % 4 == 1:
        # A lone trailing sextet carries no whole byte.
        payload = payload[:-1]
    decoded = base64.b64decode(payload + "=" * (-len(payload) % 4))
    return decoded or None


def load_png_image(png_bytes: bytes) -> Optional[ImageReader]:
    """
    Decode PNG bytes into a reportlab image handle.

    Returns None if the bytes are not a decodable PNG.
    """
    try:
        with Image.open(BytesIO(png_bytes)) as img:
            if img.format != "PNG":
                return None
            img.load()
            rgba = img.convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError):
        return None
    return ImageReader(rgba)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class SignatureImages:
    """Signer id -> image mapping plus the optional legacy image."""

    def __init__(
        self,
        by_signer: Dict[str, ImageReader],
        legacy: Optional[ImageReader] = None,
    ) -> None:
        self._by_signer = by_signer
        self._legacy = legacy

    @property
    def signer_ids(self) -> frozenset:
        return frozenset(self._by_signer)

    @property
    def has_legacy(self) -> bool:
        return self._legacy is not None

    def image_for(self, placement: SignaturePlacement) -> Optional[ImageReader]:
        image = None
        if placement.signer_id:
            image = self._by_signer.get(placement.signer_id)
        if image is None:
            image = self._legacy
        return image


def resolve_signature_images(
    signature_map: Mapping[str, str],
    legacy_png: Optional[bytes] = None,
    sink: Optional[DiagnosticsSink] = None,
) -> SignatureImages:
    """Decode every usable entry of the signature map and the legacy image."""
    sink = sink or NullDiagnosticsSink()
    by_signer: Dict[str, ImageReader] = {}

    for signer_id, data_url in signature_map.items():
        png_bytes = png_bytes_from_data_url(data_url)
        image = load_png_image(png_bytes) if png_bytes else None
        if image is None:
            logger.debug(
                "signature_image_rejected",
                extra={"signer_id": signer_id},
            )
            safe_record(
                sink,
                CompositingDiagnostic(
                    kind=DiagnosticKind.SIGNATURE_REJECTED,
                    record_id=str(signer_id),
                    message="Signature is not a decodable PNG data URL",
                ),
            )
            continue
        by_signer[str(signer_id)] = image

    legacy = None
    if legacy_png:
        legacy = load_png_image(legacy_png)
        if legacy is None:
            safe_record(
                sink,
                CompositingDiagnostic(
                    kind=DiagnosticKind.LEGACY_SIGNATURE_REJECTED,
                    message="Legacy signature is not a decodable PNG",
                ),
            )

    return SignatureImages(by_signer, legacy)


# ---------------------------------------------------------------------------
# Drawing
# ---------------------------------------------------------------------------

def draw_placeholder(canvas: Canvas, box: PageBox, fonts: FontFaces) -> None:
    """Outlined, unfilled box with a centred "SIGN" label."""
    canvas.saveState()
    canvas.setStrokeColorRGB(*PLACEHOLDER_BORDER_RGB)
    canvas.setLineWidth(1)
    canvas.rect(box.x, box.y, box.width, box.height, stroke=1, fill=0)

    canvas.setFillColorRGB(*PLACEHOLDER_LABEL_RGB)
    canvas.setFont(fonts.bold, PLACEHOLDER_FONT_SIZE)
    canvas.drawCentredString(
        box.x + box.width / 2.0,
        box.y + box.height / 2.0 - PLACEHOLDER_FONT_SIZE / 2.0,
        PLACEHOLDER_LABEL,
    )
    canvas.restoreState()


def draw_signature(
    canvas: Canvas,
    box: PageBox,
    image: Optional[ImageReader],
    fonts: FontFaces,
) -> bool:
    """
    Draw the signature image stretched into ``box``, or the placeholder.

    Returns True if the image was drawn.
    """
    if image is None:
        draw_placeholder(canvas, box, fonts)
        return False

    canvas.drawImage(
        image,
        box.x,
        box.y,
        width=box.width,
        height=box.height,
        mask="auto",
    )
    return True
