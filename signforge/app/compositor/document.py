"""
Document Compositor.

IMPORTANT:
The compositor is the ONLY place where the pipeline order is encoded.

Execution order (mode ``annotate``):
    1. SHA-256 of the original input bytes
    2. Load the PDF structure
    3. Resolve the two font faces once
    4. Resolve every signer's image
    5. Apply signature placements (input order, later draws over earlier)
    6. Apply text stamps (input order)
    7. Append the audit page
    8. Apply the watermark policy over the complete page set
    9. Serialize (and optionally bind the original hash into XMP)

Mode ``certificate`` skips steps 2 and 4-6: the output is a new document
holding only the signing certificate page.

Failure policy:
- Per-record problems never fail the request; they are reported to the
  diagnostics sink and the record is skipped or degraded.
- Everything else is fatal for the request and surfaces as a single
  CompositingError, whatever the underlying exception type. The original
  exception is kept as ``__cause__``. No partial output is ever returned.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from io import BytesIO
from typing import Callable, DefaultDict, List, Optional, Tuple, Union

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.pdfgen.canvas import Canvas

from signforge.app.compositor.audit_page import (
    AUDIT_TITLE,
    CERTIFICATE_TITLE,
    AuditSummary,
    legacy_mode_used,
    render_audit_page,
    used_signers,
)
from signforge.app.compositor.fonts import (
    STANDARD_FACES,
    FontEmbeddingError,
    FontFaces,
    embed_fonts,
)
from signforge.app.compositor.geometry import (
    PageBox,
    is_valid_page_index,
    map_box,
    map_text_anchor,
)
from signforge.app.compositor.metadata import (
    MetadataBindingError,
    bind_original_hash,
)
from signforge.app.compositor.signatures import (
    SignatureImages,
    draw_signature,
    resolve_signature_images,
)
from signforge.app.compositor.watermark import WatermarkStyle, apply_watermark
from signforge.app.diagnostics import (
    CollectingDiagnosticsSink,
    CompositingDiagnostic,
    DiagnosticKind,
    DiagnosticsSink,
    safe_record,
)
from signforge.app.schemas.records import (
    CompositingMode,
    CompositingRequest,
    CompositingResult,
    SignaturePlacement,
    TextPlacement,
)
from signforge.app.utils.hashing import compute_document_hash

logger = logging.getLogger(__name__)

STAMP_FONT_SIZE = 12
STAMP_RGB = (0.08, 0.08, 0.08)


class CompositingError(RuntimeError):
    """Raised when a compositing request fails as a whole."""


class MissingDocumentError(CompositingError):
    """Raised when the required PDF upload is absent or empty."""


# A drawing operation queued for one page, kept in request order.
_PageOp = Tuple[str, PageBox, Union[SignaturePlacement, TextPlacement]]


class _TeeSink:
    """Records into the result collector and forwards to the caller's sink."""

    def __init__(self, collector: CollectingDiagnosticsSink, external: DiagnosticsSink) -> None:
        self._collector = collector
        self._external = external

    def record(self, diagnostic: CompositingDiagnostic) -> None:
        self._collector.record(diagnostic)
        safe_record(self._external, diagnostic)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DocumentCompositor:
    """
    Stateless orchestrator; one instance may serve any number of requests.

    All per-request state (document, image handles, cursor) is local to
    ``compose``.
    """

    def __init__(
        self,
        *,
        fonts: FontFaces = STANDARD_FACES,
        watermark_style: WatermarkStyle = WatermarkStyle(),
        embed_hash_metadata: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._fonts = fonts
        self._watermark_style = watermark_style
        self._embed_hash_metadata = embed_hash_metadata
        self._clock = clock or _utc_now

    # ------------------------------------------------------------------
    # Integration constructor
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings) -> "DocumentCompositor":
        return cls(
            watermark_style=WatermarkStyle(
                brand_text=settings.watermark_text,
                footer_text=settings.watermark_footer_text,
            ),
            embed_hash_metadata=settings.embed_hash_metadata,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compose(
        self,
        request: CompositingRequest,
        sink: Optional[DiagnosticsSink] = None,
    ) -> CompositingResult:
        """
        Run the full pipeline for one request.

        Raises:
            MissingDocumentError: If no PDF bytes were supplied.
            CompositingError: On any request-level failure.
        """
        if not request.pdf_bytes:
            raise MissingDocumentError("No PDF uploaded")

        collector = CollectingDiagnosticsSink()
        observer: DiagnosticsSink = (
            _TeeSink(collector, sink) if sink is not None else collector
        )

        # 1. Hash the untouched input
        original_hash = compute_document_hash(request.pdf_bytes)

        try:
            if request.mode == CompositingMode.CERTIFICATE:
                writer, fonts = PdfWriter(), embed_fonts(self._fonts)
                summary = self._certificate_summary(request, original_hash)
            else:
                writer = self._load(request.pdf_bytes)
                fonts = embed_fonts(self._fonts)
                images = resolve_signature_images(
                    request.signature_images,
                    request.legacy_signature_png,
                    observer,
                )
                self._apply_placements(writer, request, images, fonts, observer)
                summary = self._audit_summary(request, original_hash)

            # 7. Audit / certificate page
            self._append_audit_page(writer, summary, fonts, observer)

            # 8. Watermark over everything
            apply_watermark(writer, request.plan, fonts, self._watermark_style)

            # 9. Serialize
            page_count = len(writer.pages)
            out = BytesIO()
            writer.write(out)
            pdf_bytes = out.getvalue()

            if self._embed_hash_metadata:
                pdf_bytes = bind_original_hash(pdf_bytes, original_hash)

        except (PyPdfError, FontEmbeddingError, MetadataBindingError, OSError, ValueError) as exc:
            logger.warning(
                "compositing_failed",
                extra={"mode": request.mode.value, "error": str(exc)},
            )
            raise CompositingError(f"PDF compositing failed: {exc}") from exc
        except Exception as exc:
            # Malformed PDFs surface from pypdf as arbitrary exception types.
            logger.exception(
                "compositing_failed_unexpectedly",
                extra={"mode": request.mode.value, "error_type": type(exc).__name__},
            )
            raise CompositingError(f"PDF compositing failed: {exc!r}") from exc

        logger.info(
            "compositing_completed",
            extra={
                "mode": request.mode.value,
                "plan": request.plan.value,
                "pages": page_count,
                "diagnostics": len(collector.items),
            },
        )

        return CompositingResult(
            pdf_bytes=pdf_bytes,
            original_hash=original_hash,
            page_count=page_count,
            diagnostics=collector.items,
        )

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    @staticmethod
    def _load(pdf_bytes: bytes) -> PdfWriter:
        reader = PdfReader(BytesIO(pdf_bytes))
        return PdfWriter(clone_from=reader)

    def _apply_placements(
        self,
        writer: PdfWriter,
        request: CompositingRequest,
        images: SignatureImages,
        fonts: FontFaces,
        sink: DiagnosticsSink,
    ) -> None:
        """
        Queue every valid placement and stamp per page, then merge one
        overlay per touched page. Queue order is input order, signatures
        before stamps.
        """
        page_count = len(writer.pages)
        ops: DefaultDict[int, List[_PageOp]] = defaultdict(list)

        for placement in request.placements:
            box = self._locate(writer, placement, page_count, sink)
            if box is not None:
                ops[placement.page_index].append(("signature", box, placement))

        for stamp in request.text_placements:
            if not stamp.text:
                safe_record(
                    sink,
                    CompositingDiagnostic(
                        kind=DiagnosticKind.EMPTY_STAMP_TEXT,
                        record_id=stamp.id,
                    ),
                )
                continue
            box = self._locate(writer, stamp, page_count, sink, text_anchor=True)
            if box is not None:
                ops[stamp.page_index].append(("text", box, stamp))

        for page_index in sorted(ops):
            page = writer.pages[page_index]
            overlay_pdf = self._render_overlay(
                float(page.mediabox.width),
                float(page.mediabox.height),
                ops[page_index],
                images,
                fonts,
                sink,
            )
            page.merge_page(PdfReader(BytesIO(overlay_pdf)).pages[0])

    @staticmethod
    def _locate(
        writer: PdfWriter,
        placement: SignaturePlacement,
        page_count: int,
        sink: DiagnosticsSink,
        text_anchor: bool = False,
    ) -> Optional[PageBox]:
        if not is_valid_page_index(placement.page_index, page_count):
            safe_record(
                sink,
                CompositingDiagnostic(
                    kind=DiagnosticKind.PAGE_INDEX_OUT_OF_RANGE,
                    record_id=placement.id,
                    details={
                        "page_index": placement.page_index,
                        "page_count": page_count,
                    },
                ),
            )
            return None

        mediabox = writer.pages[placement.page_index].mediabox
        width, height = float(mediabox.width), float(mediabox.height)

        if text_anchor:
            box = map_text_anchor(width, height, placement.x_pct, placement.y_pct)
        else:
            box = map_box(
                width,
                height,
                placement.x_pct,
                placement.y_pct,
                placement.w_pct,
                placement.h_pct,
            )

        if box is None:
            safe_record(
                sink,
                CompositingDiagnostic(
                    kind=DiagnosticKind.NON_FINITE_COORDINATE,
                    record_id=placement.id,
                    details={"page_index": placement.page_index},
                ),
            )
        return box

    @staticmethod
    def _render_overlay(
        width: float,
        height: float,
        ops: List[_PageOp],
        images: SignatureImages,
        fonts: FontFaces,
        sink: DiagnosticsSink,
    ) -> bytes:
        buf = BytesIO()
        c = Canvas(buf, pagesize=(width, height))

        for kind, box, record in ops:
            if kind == "signature":
                drawn = draw_signature(c, box, images.image_for(record), fonts)
                if not drawn:
                    safe_record(
                        sink,
                        CompositingDiagnostic(
                            kind=DiagnosticKind.PLACEHOLDER_RENDERED,
                            record_id=record.id,
                            details={"signer_id": record.signer_id},
                        ),
                    )
            else:
                c.saveState()
                c.setFillColorRGB(*STAMP_RGB)
                c.setFont(fonts.regular, STAMP_FONT_SIZE)
                c.drawString(box.x, box.y, record.text)
                c.restoreState()

        c.showPage()
        c.save()
        return buf.getvalue()

    def _audit_summary(self, request: CompositingRequest, original_hash: str) -> AuditSummary:
        return AuditSummary(
            title=AUDIT_TITLE,
            generated_at=format_timestamp(self._clock()),
            original_hash=original_hash,
            signers=used_signers(request.signers, request.placements),
            legacy_used=legacy_mode_used(request.placements),
            field_lines=request.audit_field_lines,
            placements=request.placements,
            client_stamp=request.client_stamp,
        )

    def _certificate_summary(self, request: CompositingRequest, original_hash: str) -> AuditSummary:
        return AuditSummary(
            title=CERTIFICATE_TITLE,
            generated_at=format_timestamp(self._clock()),
            original_hash=original_hash,
            signers=request.signers,
            legacy_used=legacy_mode_used(request.placements),
            field_lines=request.audit_field_lines,
            placements=[*request.placements, *request.text_placements],
            client_stamp=request.client_stamp,
        )

    @staticmethod
    def _append_audit_page(
        writer: PdfWriter,
        summary: AuditSummary,
        fonts: FontFaces,
        sink: DiagnosticsSink,
    ) -> None:
        audit_pdf = render_audit_page(summary, fonts, sink)
        writer.add_page(PdfReader(BytesIO(audit_pdf)).pages[0])
