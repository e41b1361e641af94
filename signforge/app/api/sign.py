"""
Signing endpoints.

Clients upload the original PDF plus JSON-encoded placement data. All
drawing, hashing and audit composition is performed by the Document
Compositor; this layer only validates the upload, resolves the plan tier
and maps failures onto HTTP status codes.

Routes (prefix ``/sign-pdf``):

    POST /apply          annotate, with optional legacy ``signature`` PNG
    POST /apply-multi    annotate, multi-signer only
    POST /certificate    stand-alone signing certificate (pro tier)

Every successful response carries ``X-Original-Hash``: the SHA-256 of the
uploaded bytes, computed before any modification.
"""

import logging
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from signforge.app.compositor.document import (
    DocumentCompositor,
    MissingDocumentError,
)
from signforge.app.config import Settings
from signforge.app.entitlement import plan_from_authorization
from signforge.app.intake.payload import build_compositing_request
from signforge.app.schemas.records import CompositingMode, PlanTier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sign-pdf", tags=["Signing"])

PDF_MEDIA_TYPES = {"application/pdf", "application/x-pdf"}

# =============================================================================
# Dependency providers
# =============================================================================

def get_settings_state(request: Request) -> Settings:
    settings: Optional[Settings] = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_compositor(request: Request) -> DocumentCompositor:
    compositor = getattr(request.app.state, "compositor", None)
    if compositor is None:
        raise RuntimeError("compositor not initialized")
    return compositor


def get_plan_tier(
    settings: Annotated[Settings, Depends(get_settings_state)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> PlanTier:
    """Plan tier from the bearer token; free when absent or invalid."""
    return plan_from_authorization(
        authorization,
        settings.jwt_secret.get_secret_value(),
    )


@dataclass(frozen=True)
class SigningForm:
    """Raw JSON-encoded form fields, parsed later by the intake layer."""

    placements: Optional[str]
    text_placements: Optional[str]
    signer_meta_json: Optional[str]
    signers: Optional[str]
    signatures_json: Optional[str]
    audit_field_lines: Optional[str]
    client_stamp: Optional[str]


def get_signing_form(
    placements: Annotated[Optional[str], Form()] = None,
    text_placements: Annotated[Optional[str], Form(alias="textPlacements")] = None,
    signer_meta_json: Annotated[Optional[str], Form(alias="signerMetaJson")] = None,
    signers: Annotated[Optional[str], Form()] = None,
    signatures_json: Annotated[Optional[str], Form(alias="signaturesJson")] = None,
    audit_field_lines: Annotated[Optional[str], Form(alias="auditFieldLines")] = None,
    client_stamp: Annotated[Optional[str], Form(alias="clientStamp")] = None,
) -> SigningForm:
    return SigningForm(
        placements=placements,
        text_placements=text_placements,
        signer_meta_json=signer_meta_json,
        signers=signers,
        signatures_json=signatures_json,
        audit_field_lines=audit_field_lines,
        client_stamp=client_stamp,
    )


# =============================================================================
# Upload handling
# =============================================================================

async def read_pdf_upload(pdf: Optional[UploadFile], settings: Settings) -> bytes:
    """
    Bounded read of the PDF upload.

    Raises:
        HTTPException: 400 missing/empty, 413 too large, 415 not a PDF.
    """
    if pdf is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No PDF uploaded",
        )

    if pdf.content_type not in PDF_MEDIA_TYPES:
        logger.warning(
            "invalid_media_type",
            extra={"content_type": pdf.content_type},
        )
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only 'application/pdf' files are accepted.",
        )

    max_bytes = settings.max_pdf_size_mb * 1024 * 1024
    pdf_bytes = await pdf.read(max_bytes + 1)

    if not pdf_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No PDF uploaded",
        )

    if len(pdf_bytes) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_pdf_size_mb}MB limit.",
        )

    return pdf_bytes


async def read_signature_upload(
    signature: Optional[UploadFile],
    settings: Settings,
) -> Optional[bytes]:
    """
    Bounded read of the legacy signature image, under the PDF size limit.

    Content is not checked here; an undecodable image becomes a placeholder.
    """
    if signature is None:
        return None

    max_bytes = settings.max_pdf_size_mb * 1024 * 1024
    signature_bytes = await signature.read(max_bytes + 1)

    if len(signature_bytes) > max_bytes:
        logger.warning(
            "signature_upload_too_large",
            extra={"limit_mb": settings.max_pdf_size_mb},
        )
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Signature exceeds the {settings.max_pdf_size_mb}MB limit.",
        )

    return signature_bytes or None


async def _run_compositor(
    *,
    pdf_bytes: bytes,
    form: SigningForm,
    plan: PlanTier,
    mode: CompositingMode,
    settings: Settings,
    compositor: DocumentCompositor,
    filename: str,
    legacy_signature_png: Optional[bytes] = None,
) -> Response:
    trace_id = str(uuid.uuid4())

    try:
        # Scratch space is removed on every exit path
        with tempfile.TemporaryDirectory(
            prefix="signforge-",
            dir=settings.upload_dir,
        ) as tmp:
            upload_path = Path(tmp) / "upload.pdf"
            upload_path.write_bytes(pdf_bytes)

            compositing_request = build_compositing_request(
                pdf_bytes=upload_path.read_bytes(),
                plan=plan,
                mode=mode,
                placements=form.placements,
                text_placements=form.text_placements,
                signer_meta_json=form.signer_meta_json,
                signers=form.signers,
                signatures_json=form.signatures_json,
                audit_field_lines=form.audit_field_lines,
                client_stamp=form.client_stamp,
                legacy_signature_png=legacy_signature_png,
            )

            logger.info(
                "compositing_requested",
                extra={
                    "trace_id": trace_id,
                    "mode": mode.value,
                    "plan": plan.value,
                    "placements": len(compositing_request.placements),
                    "text_placements": len(compositing_request.text_placements),
                },
            )

            result = await run_in_threadpool(compositor.compose, compositing_request)

    except MissingDocumentError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No PDF uploaded",
        ) from exc

    except Exception as exc:
        # CompositingError and anything unexpected from the pipeline
        logger.exception(
            "compositing_pipeline_failure",
            extra={"trace_id": trace_id, "error_type": type(exc).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sign PDF",
        ) from exc

    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Original-Hash": result.original_hash,
            "X-Plan-Tier": plan.value,
        },
    )


# =============================================================================
# POST /sign-pdf/apply
# =============================================================================

@router.post(
    "/apply",
    summary="Apply signatures and stamps, append the audit trail",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Signed PDF"},
        400: {"description": "No PDF uploaded"},
        413: {"description": "Payload too large"},
        415: {"description": "Unsupported media type"},
        500: {"description": "Compositing failure"},
    },
)
async def apply_signatures(
    settings: Annotated[Settings, Depends(get_settings_state)],
    compositor: Annotated[DocumentCompositor, Depends(get_compositor)],
    plan: Annotated[PlanTier, Depends(get_plan_tier)],
    form: Annotated[SigningForm, Depends(get_signing_form)],
    pdf: Annotated[Optional[UploadFile], File(description="Original PDF")] = None,
    signature: Annotated[
        Optional[UploadFile],
        File(description="Legacy single-signer PNG"),
    ] = None,
) -> Response:
    """
    Annotate the uploaded document.

    The optional ``signature`` file is the legacy global signature image
    used for placements that name no signer.
    """
    try:
        pdf_bytes = await read_pdf_upload(pdf, settings)
        legacy_png = await read_signature_upload(signature, settings)
        return await _run_compositor(
            pdf_bytes=pdf_bytes,
            form=form,
            plan=plan,
            mode=CompositingMode.ANNOTATE,
            settings=settings,
            compositor=compositor,
            filename="signed.pdf",
            legacy_signature_png=legacy_png,
        )
    finally:
        for upload in (pdf, signature):
            if upload is not None:
                await upload.close()


# =============================================================================
# POST /sign-pdf/apply-multi
# =============================================================================

@router.post(
    "/apply-multi",
    summary="Apply multi-signer signatures and stamps, append the audit trail",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Signed PDF"},
        400: {"description": "No PDF uploaded"},
        413: {"description": "Payload too large"},
        415: {"description": "Unsupported media type"},
        500: {"description": "Compositing failure"},
    },
)
async def apply_multi_signatures(
    settings: Annotated[Settings, Depends(get_settings_state)],
    compositor: Annotated[DocumentCompositor, Depends(get_compositor)],
    plan: Annotated[PlanTier, Depends(get_plan_tier)],
    form: Annotated[SigningForm, Depends(get_signing_form)],
    pdf: Annotated[Optional[UploadFile], File(description="Original PDF")] = None,
) -> Response:
    try:
        pdf_bytes = await read_pdf_upload(pdf, settings)
        return await _run_compositor(
            pdf_bytes=pdf_bytes,
            form=form,
            plan=plan,
            mode=CompositingMode.ANNOTATE,
            settings=settings,
            compositor=compositor,
            filename="signed.pdf",
        )
    finally:
        if pdf is not None:
            await pdf.close()


# =============================================================================
# POST /sign-pdf/certificate
# =============================================================================

@router.post(
    "/certificate",
    summary="Generate a stand-alone signing certificate",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Certificate PDF"},
        400: {"description": "No PDF uploaded"},
        402: {"description": "Pro plan required"},
        413: {"description": "Payload too large"},
        415: {"description": "Unsupported media type"},
        500: {"description": "Compositing failure"},
    },
)
async def signing_certificate(
    settings: Annotated[Settings, Depends(get_settings_state)],
    compositor: Annotated[DocumentCompositor, Depends(get_compositor)],
    plan: Annotated[PlanTier, Depends(get_plan_tier)],
    form: Annotated[SigningForm, Depends(get_signing_form)],
    pdf: Annotated[Optional[UploadFile], File(description="Original PDF")] = None,
) -> Response:
    """
    Summary-only output: a new document holding just the certificate page.
    Nothing is drawn onto the uploaded document.
    """
    try:
        if plan != PlanTier.PRO and not settings.bypass_paywall:
            logger.info("certificate_requires_pro", extra={"plan": plan.value})
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail="PRO_REQUIRED",
            )

        pdf_bytes = await read_pdf_upload(pdf, settings)
        return await _run_compositor(
            pdf_bytes=pdf_bytes,
            form=form,
            plan=plan,
            mode=CompositingMode.CERTIFICATE,
            settings=settings,
            compositor=compositor,
            filename="certificate.pdf",
        )
    finally:
        if pdf is not None:
            await pdf.close()
