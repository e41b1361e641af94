"""
Lenient intake of the multipart form fields.

Every structured form field arrives as a JSON-encoded string. Parsing is
deliberately forgiving: malformed JSON falls back to an empty value and
malformed entries inside a valid array are dropped one by one. Nothing in
this module raises on client input.

Field names (wire):
    placements        JSON array of signature placements
    textPlacements    JSON array of text stamps
    signerMetaJson    JSON array of signers (preferred)
    signers           JSON array of signers (fallback)
    signaturesJson    JSON object: signer id -> PNG data URL
    auditFieldLines   newline-separated "label: value" lines
    clientStamp       free text
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from signforge.app.schemas.records import (
    CompositingMode,
    CompositingRequest,
    PlanTier,
    SignaturePlacement,
    Signer,
    TextPlacement,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def parse_json_field(raw: Optional[str], fallback: Any) -> Any:
    """
    Decode ``raw`` as JSON, or return ``fallback``.

    Empty input, invalid JSON and a literal ``null`` all yield the fallback.
    """
    if raw is None or not raw.strip():
        return fallback
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("form_field_not_json", extra={"length": len(raw)})
        return fallback
    return fallback if value is None else value


def _parse_records(raw: Optional[str], model: Type[RecordT]) -> List[RecordT]:
    value = parse_json_field(raw, [])
    if not isinstance(value, list):
        return []

    records: List[RecordT] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            continue
        try:
            records.append(model.model_validate(entry))
        except ValidationError:
            logger.debug(
                "form_record_dropped",
                extra={"model": model.__name__, "index": index},
            )
    return records


def parse_placements(raw: Optional[str]) -> List[SignaturePlacement]:
    return _parse_records(raw, SignaturePlacement)


def parse_text_placements(raw: Optional[str]) -> List[TextPlacement]:
    return _parse_records(raw, TextPlacement)


def parse_signers(raw: Optional[str]) -> List[Signer]:
    return _parse_records(raw, Signer)


def parse_signature_map(raw: Optional[str]) -> Dict[str, str]:
    """Signer id -> data URL. Non-string values are dropped."""
    value = parse_json_field(raw, {})
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, str)}


def parse_field_lines(raw: Optional[str]) -> List[str]:
    """Split on any line ending, strip, and drop blank lines."""
    if not raw:
        return []
    normalized = raw.replace("\r\n", "\n").replace("\r", "\n")
    return [line.strip() for line in normalized.split("\n") if line.strip()]


# ---------------------------------------------------------------------------
# Request assembly
# ---------------------------------------------------------------------------

def signature_map_from_signers(signers: List[Signer]) -> Dict[str, str]:
    return {
        s.id: s.signature_data_url
        for s in signers
        if s.id and s.signature_data_url
    }


def build_compositing_request(
    *,
    pdf_bytes: bytes,
    plan: PlanTier,
    mode: CompositingMode = CompositingMode.ANNOTATE,
    placements: Optional[str] = None,
    text_placements: Optional[str] = None,
    signer_meta_json: Optional[str] = None,
    signers: Optional[str] = None,
    signatures_json: Optional[str] = None,
    audit_field_lines: Optional[str] = None,
    client_stamp: Optional[str] = None,
    legacy_signature_png: Optional[bytes] = None,
) -> CompositingRequest:
    """
    Assemble one CompositingRequest from raw form values.

    Signer metadata prefers ``signerMetaJson`` over ``signers``. When
    ``signaturesJson`` yields nothing, the image map is taken from each
    signer's own ``signatureDataUrl``.
    """
    signer_records = parse_signers(signer_meta_json) or parse_signers(signers)

    signature_images = parse_signature_map(signatures_json)
    if not signature_images:
        signature_images = signature_map_from_signers(signer_records)

    stamp = client_stamp.strip() if client_stamp else ""

    return CompositingRequest(
        pdf_bytes=pdf_bytes,
        placements=parse_placements(placements),
        text_placements=parse_text_placements(text_placements),
        signers=signer_records,
        signature_images=signature_images,
        legacy_signature_png=legacy_signature_png or None,
        audit_field_lines=parse_field_lines(audit_field_lines),
        client_stamp=stamp or None,
        plan=plan,
        mode=mode,
    )
