from __future__ import annotations

from typing import Any, Dict, Optional
from enum import Enum

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Diagnostic Kinds (Finite)
# ----------------------------------------------------------------------
class DiagnosticKind(str, Enum):
    """
    Per-record leniency outcomes observed while compositing.

    NOTE:
    Every kind corresponds to a record that was skipped or degraded
    without failing the request.
    """

    # ------------------------------------------------------------------
    # Input records
    # ------------------------------------------------------------------
    PAGE_INDEX_OUT_OF_RANGE = "page_index_out_of_range"
    NON_FINITE_COORDINATE = "non_finite_coordinate"
    EMPTY_STAMP_TEXT = "empty_stamp_text"

    # ------------------------------------------------------------------
    # Signature images
    # ------------------------------------------------------------------
    SIGNATURE_REJECTED = "signature_rejected"
    LEGACY_SIGNATURE_REJECTED = "legacy_signature_rejected"
    PLACEHOLDER_RENDERED = "placeholder_rendered"

    # ------------------------------------------------------------------
    # Audit page
    # ------------------------------------------------------------------
    AUDIT_SECTION_TRUNCATED = "audit_section_truncated"


# ----------------------------------------------------------------------
# Diagnostic Model
# ----------------------------------------------------------------------
class CompositingDiagnostic(BaseModel):
    """
    An immutable observation of a silently tolerated record.

    Diagnostics are:
    - strictly observational
    - never reported back through the PDF output
    - not errors
    """

    kind: DiagnosticKind
    record_id: Optional[str] = Field(
        None,
        description="Identifier of the affected record, when it has one",
    )
    message: str = Field("", description="Human-readable explanation")

    # Optional contextual metadata (page index, signer id, section, etc.)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
