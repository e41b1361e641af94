"""
Compositing input and output records.

Defines the ephemeral records exchanged between the intake layer and the
Document Compositor. All records live for exactly one compositing
invocation; none are persisted.

Wire format:
- Records arrive as JSON objects with camelCase keys (``pageIndex``,
  ``xPct``, ``signerId``, ``signatureMethod``, ...).
- Attributes are exposed in snake_case.

Leniency contract:
- Numeric fields never fail validation. Values that cannot be coerced
  become NaN (coordinates) or -1 (page index) so the record survives
  parsing and is skipped later, per record, by the placement rules.
- An explicit JSON ``null`` or a blank string counts as 0, matching the
  JavaScript ``Number(value)`` coercion: such a placement is drawn
  at the page edge (or on the first page), not skipped. An ABSENT field
  keeps its NaN / -1 default and is skipped.
- Range constraints (``x_pct + w_pct <= 1`` etc.) are NOT enforced.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from signforge.app.diagnostics.models import CompositingDiagnostic


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def lenient_float(value: Any) -> float:
    """Coerce to float; null and blank become 0, anything uncoercible NaN."""
    if value is None:
        return 0.0
    if isinstance(value, str) and not value.strip():
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def lenient_page_index(value: Any) -> int:
    """Coerce to a page index; non-integral or uncoercible values become -1."""
    number = lenient_float(value)
    if not math.isfinite(number) or not number.is_integer():
        return -1
    return int(number)


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


_RECORD_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    frozen=True,
)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class PlanTier(str, Enum):
    """Entitlement level supplied by the entitlement collaborator."""

    FREE = "free"
    PRO = "pro"


class CompositingMode(str, Enum):
    """
    Pipeline variant.

    ANNOTATE     Draw placements and stamps onto the uploaded document and
                 append the audit page.
    CERTIFICATE  Summary only: a new document holding just the signing
                 certificate page.
    """

    ANNOTATE = "annotate"
    CERTIFICATE = "certificate"


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

class Signer(BaseModel):
    """A signer as described by the client before submission."""

    id: str = ""
    name: Optional[str] = None
    email: Optional[str] = None
    signature_method: Optional[str] = None
    signed_at: Optional[str] = None
    signature_data_url: Optional[str] = None

    model_config = _RECORD_CONFIG

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator(
        "name",
        "email",
        "signature_method",
        "signed_at",
        "signature_data_url",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return optional_text(v)


class SignaturePlacement(BaseModel):
    """
    A normalized rectangle on one page where a signature image is drawn.

    ``x_pct``/``y_pct`` locate the top-left corner measured from the page's
    top-left; ``w_pct``/``h_pct`` are the normalized width and height.
    """

    id: Optional[str] = None
    signer_id: Optional[str] = None
    page_index: int = -1
    x_pct: float = math.nan
    y_pct: float = math.nan
    w_pct: float = math.nan
    h_pct: float = math.nan
    locked: bool = False

    model_config = _RECORD_CONFIG

    @field_validator("id", "signer_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Optional[str]:
        return optional_text(v)

    @field_validator("page_index", mode="before")
    @classmethod
    def _coerce_page_index(cls, v: Any) -> int:
        return lenient_page_index(v)

    @field_validator("x_pct", "y_pct", "w_pct", "h_pct", mode="before")
    @classmethod
    def _coerce_coordinate(cls, v: Any) -> float:
        return lenient_float(v)

    @field_validator("locked", mode="before")
    @classmethod
    def _coerce_locked(cls, v: Any) -> bool:
        return bool(v)


class TextPlacement(SignaturePlacement):
    """
    A text stamp anchored at a normalized top-left point.

    ``w_pct``/``h_pct`` are advisory only.
    """

    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_stamp_text(cls, v: Any) -> str:
        return "" if v is None else str(v)


# ---------------------------------------------------------------------------
# Invocation bundle
# ---------------------------------------------------------------------------

class CompositingRequest(BaseModel):
    """
    Everything one compositing invocation consumes.

    Produced by the intake layer; immutable for the duration of the call.
    """

    pdf_bytes: bytes = Field(..., description="Original uploaded PDF bytes")
    placements: List[SignaturePlacement] = Field(default_factory=list)
    text_placements: List[TextPlacement] = Field(default_factory=list)
    signers: List[Signer] = Field(default_factory=list)
    signature_images: Dict[str, str] = Field(
        default_factory=dict,
        description="Signer id -> data:image/png;base64 URL",
    )
    legacy_signature_png: Optional[bytes] = Field(
        None,
        description="Single global signature image (legacy mode)",
    )
    audit_field_lines: List[str] = Field(default_factory=list)
    client_stamp: Optional[str] = None
    plan: PlanTier = PlanTier.FREE
    mode: CompositingMode = CompositingMode.ANNOTATE

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class CompositingResult(BaseModel):
    """
    The serialized output document plus the original-document hash.

    ``original_hash`` attests to the input bytes, not to ``pdf_bytes``.
    """

    pdf_bytes: bytes
    original_hash: str = Field(..., description="SHA-256 hex of the input bytes")
    page_count: int = Field(..., ge=0)
    diagnostics: List[CompositingDiagnostic] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)
