from signforge.app.intake.payload import (
    build_compositing_request,
    parse_field_lines,
    parse_json_field,
    parse_placements,
    parse_signature_map,
    parse_signers,
    parse_text_placements,
)

__all__ = [
    "build_compositing_request",
    "parse_field_lines",
    "parse_json_field",
    "parse_placements",
    "parse_signature_map",
    "parse_signers",
    "parse_text_placements",
]
