from io import BytesIO

import pytest
from fastapi import HTTPException
from starlette.datastructures import Headers, UploadFile

from signforge.app.api.sign import read_pdf_upload, read_signature_upload
from signforge.app.config import Settings

from signforge.tests.fixtures.pdf_factory import letter_pdf, png_bytes

pytestmark = pytest.mark.anyio


def _upload(data: bytes, content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(
        file=BytesIO(data),
        filename="document.pdf",
        headers=Headers({"content-type": content_type}),
    )


async def test_reads_whole_pdf():
    pdf = letter_pdf()
    assert await read_pdf_upload(_upload(pdf), Settings(max_pdf_size_mb=1)) == pdf


@pytest.mark.parametrize(
    ("upload", "status_code"),
    [
        (None, 400),
        (_upload(b""), 400),
        (_upload(b"%PDF-1.7", "image/png"), 415),
        (_upload(b"0" * (1024 * 1024 + 1)), 413),
    ],
)
async def test_rejections(upload, status_code):
    with pytest.raises(HTTPException) as excinfo:
        await read_pdf_upload(upload, Settings(max_pdf_size_mb=1))

    assert excinfo.value.status_code == status_code


async def test_signature_upload_is_optional():
    assert await read_signature_upload(None, Settings(max_pdf_size_mb=1)) is None
    assert await read_signature_upload(_upload(b"", "image/png"), Settings(max_pdf_size_mb=1)) is None


async def test_signature_upload_within_limit():
    png = png_bytes()
    assert await read_signature_upload(_upload(png, "image/png"), Settings(max_pdf_size_mb=1)) == png


async def test_oversized_signature_is_rejected():
    with pytest.raises(HTTPException) as excinfo:
        await read_signature_upload(
            _upload(b"0" * (1024 * 1024 + 1), "image/png"),
            Settings(max_pdf_size_mb=1),
        )

    assert excinfo.value.status_code == 413
