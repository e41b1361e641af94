"""
Font faces shared by every drawing call of one compositing invocation.
"""

from __future__ import annotations

from dataclasses import dataclass

from reportlab.pdfbase import pdfmetrics


class FontEmbeddingError(RuntimeError):
    """Raised when a required font face cannot be resolved."""


@dataclass(frozen=True)
class FontFaces:
    regular: str
    bold: str


STANDARD_FACES = FontFaces(regular="Helvetica", bold="Helvetica-Bold")


def embed_fonts(faces: FontFaces = STANDARD_FACES) -> FontFaces:
    """
    Resolve both faces once so drawing calls can reuse them by name.

    Raises:
        FontEmbeddingError: If either face is unknown to reportlab.
    """
    for name in (faces.regular, faces.bold):
        try:
            pdfmetrics.getFont(name)
        except (KeyError, OSError) as exc:
            raise FontEmbeddingError(f"Unknown font face '{name}'") from exc
    return faces
