from io import BytesIO

from pypdf import PdfReader, PdfWriter

from signforge.app.compositor.fonts import STANDARD_FACES
from signforge.app.compositor.watermark import (
    WatermarkStyle,
    apply_watermark,
    watermark_required,
)
from signforge.app.schemas.records import PlanTier

from signforge.tests.fixtures.pdf_factory import A4, LETTER, blank_pdf, page_texts


def _writer(pdf_bytes: bytes) -> PdfWriter:
    return PdfWriter(clone_from=PdfReader(BytesIO(pdf_bytes)))


def _serialize(writer: PdfWriter) -> bytes:
    out = BytesIO()
    writer.write(out)
    return out.getvalue()


def test_only_pro_is_exempt():
    assert watermark_required(PlanTier.FREE)
    assert not watermark_required(PlanTier.PRO)


def test_every_page_is_stamped_on_free_plan():
    writer = _writer(blank_pdf([LETTER, A4, LETTER]))

    stamped = apply_watermark(writer, PlanTier.FREE, STANDARD_FACES)
    texts = page_texts(_serialize(writer))

    assert stamped == 3
    assert len(texts) == 3
    for text in texts:
        assert "SIGNFORGE FREE" in text
        assert "upgrade to remove watermark" in text


def test_pro_plan_leaves_pages_untouched():
    writer = _writer(blank_pdf([LETTER, LETTER]))

    assert apply_watermark(writer, PlanTier.PRO, STANDARD_FACES) == 0
    assert all("SIGNFORGE" not in t for t in page_texts(_serialize(writer)))


def test_custom_brand_text():
    writer = _writer(blank_pdf())
    style = WatermarkStyle(brand_text="ACME TRIAL", footer_text="Trial copy")

    apply_watermark(writer, PlanTier.FREE, STANDARD_FACES, style)
    text = page_texts(_serialize(writer))[0]

    assert "ACME TRIAL" in text
    assert "Trial copy" in text
