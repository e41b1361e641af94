"""
Original-document hash binding.

Binds the SHA-256 hash of the ORIGINAL input bytes into the XMP metadata
of the composited output, next to the human-readable copy printed on the
audit page.

- Uses Clark notation for explicit namespace binding.
- Executed strictly after serialization; page content is untouched.
- The bound value attests to the input document, never to the output.
"""

from __future__ import annotations

from io import BytesIO

import pikepdf

SIGNFORGE_XMP_NAMESPACE = "https://signforge.app/ns/audit/1.0/"
ORIGINAL_HASH_KEY = f"{{{SIGNFORGE_XMP_NAMESPACE}}}originalHash"


class MetadataBindingError(RuntimeError):
    """Raised when the original hash cannot be bound into XMP metadata."""


def bind_original_hash(pdf_bytes: bytes, original_hash: str) -> bytes:
    """
    Return ``pdf_bytes`` re-saved with the original hash in XMP metadata.

    Raises:
        MetadataBindingError:
            If the hash is empty or pikepdf cannot rewrite the document.
    """
    if not original_hash or not original_hash.strip():
        raise MetadataBindingError(
            "original_hash was provided but is empty or invalid."
        )

    out = BytesIO()
    try:
        with pikepdf.open(BytesIO(pdf_bytes)) as pdf:
            with pdf.open_metadata() as meta:
                meta[ORIGINAL_HASH_KEY] = original_hash
            pdf.save(out)

    except pikepdf.PdfError as exc:
        raise MetadataBindingError(
            f"Failed to bind original hash into XMP metadata: {exc}"
        ) from exc

    return out.getvalue()


def read_original_hash(pdf_bytes: bytes) -> str | None:
    """Read back the bound original hash, or None if absent."""
    with pikepdf.open(BytesIO(pdf_bytes)) as pdf:
        meta = pdf.open_metadata()
        value = meta.get(ORIGINAL_HASH_KEY)
    return str(value) if value else None
