import base64
from io import BytesIO

import pytest
from reportlab.pdfgen.canvas import Canvas

from signforge.app.compositor.fonts import STANDARD_FACES
from signforge.app.compositor.geometry import PageBox
from signforge.app.compositor.signatures import (
    draw_signature,
    load_png_image,
    png_bytes_from_data_url,
    resolve_signature_images,
)
from signforge.app.diagnostics import CollectingDiagnosticsSink, DiagnosticKind
from signforge.app.schemas.records import SignaturePlacement

from signforge.tests.fixtures.pdf_factory import (
    jpeg_bytes,
    png_bytes,
    png_data_url,
    read_pdf,
)


def test_data_url_decoding():
    assert png_bytes_from_data_url(png_data_url()) == png_bytes()


def _padded_png():
    # A PNG whose base64 form ends in "=" padding.
    return next(p for p in (png_bytes(size=(w, 40)) for w in range(100, 120)) if len(p) % 3)


def test_loose_base64_payloads_decode():
    png = _padded_png()
    standard = base64.b64encode(png).decode("ascii")
    urlsafe = base64.urlsafe_b64encode(png).decode("ascii")
    wrapped = "\n".join(standard[i:i + 76] for i in range(0, len(standard), 76))

    assert standard.endswith("=")
    assert png_bytes_from_data_url(f"data:image/png;base64,{standard.rstrip('=')}") == png
    assert png_bytes_from_data_url(f"data:image/png;base64,{urlsafe.rstrip('=')}") == png
    assert png_bytes_from_data_url(f"data:image/png;base64,{wrapped}") == png


def test_unpadded_signature_is_drawn():
    unpadded = base64.b64encode(_padded_png()).decode("ascii").rstrip("=")

    images = resolve_signature_images({"s1": f"data:image/png;base64,{unpadded}"})

    assert images.signer_ids == frozenset({"s1"})


def test_rejects_other_data_urls():
    jpeg = base64.b64encode(jpeg_bytes()).decode("ascii")

    assert png_bytes_from_data_url(f"data:image/jpeg;base64,{jpeg}") is None
    assert png_bytes_from_data_url("not a url") is None
    assert png_bytes_from_data_url(None) is None
    assert png_bytes_from_data_url("data:image/png;base64,@@@") is None


def test_png_loader_rejects_non_png_content():
    assert load_png_image(png_bytes()) is not None
    assert load_png_image(jpeg_bytes()) is None
    assert load_png_image(b"garbage") is None


def test_bad_entries_are_dropped_individually():
    sink = CollectingDiagnosticsSink()
    jpeg = base64.b64encode(jpeg_bytes()).decode("ascii")

    images = resolve_signature_images(
        {
            "s1": png_data_url(),
            "s2": "data:image/png;base64,!!!",
            "s3": f"data:image/png;base64,{jpeg}",
        },
        sink=sink,
    )

    assert images.signer_ids == frozenset({"s1"})
    rejected = [d.record_id for d in sink.items]
    assert rejected == ["s2", "s3"]
    assert all(d.kind == DiagnosticKind.SIGNATURE_REJECTED for d in sink.items)


def test_exact_signer_id_wins_over_legacy():
    images = resolve_signature_images(
        {"s1": png_data_url()},
        legacy_png=png_bytes(color=(200, 0, 0, 255)),
    )

    exact = images.image_for(SignaturePlacement(signer_id="s1"))
    fallback = images.image_for(SignaturePlacement(signer_id="unknown"))
    legacy = images.image_for(SignaturePlacement())

    assert exact is not None
    assert fallback is not None and fallback is not exact
    assert legacy is fallback


def test_unresolved_without_legacy():
    images = resolve_signature_images({})

    assert not images.has_legacy
    assert images.image_for(SignaturePlacement(signer_id="s1")) is None


def test_invalid_legacy_image_is_reported():
    sink = CollectingDiagnosticsSink()
    images = resolve_signature_images({}, legacy_png=b"nope", sink=sink)

    assert not images.has_legacy
    assert [d.kind for d in sink.items] == [DiagnosticKind.LEGACY_SIGNATURE_REJECTED]


def _draw(image):
    buf = BytesIO()
    canvas = Canvas(buf, pagesize=(300, 300))
    drawn = draw_signature(canvas, PageBox(50, 50, 120, 40), image, STANDARD_FACES)
    canvas.showPage()
    canvas.save()
    return drawn, read_pdf(buf.getvalue()).pages[0]


def test_image_is_drawn():
    drawn, page = _draw(load_png_image(png_bytes()))

    assert drawn
    assert len(page.images) == 1


def test_image_is_stretched_into_box():
    _, page = _draw(load_png_image(png_bytes(size=(300, 300))))
    matrices = []

    def visit(op, args, cm, tm):
        if op == b"Do":
            matrices.append([float(v) for v in cm])

    page.extract_text(visitor_operand_before=visit)

    assert matrices == [pytest.approx([120, 0, 0, 40, 50, 50])]


def test_placeholder_is_drawn_without_image():
    drawn, page = _draw(None)

    assert not drawn
    assert len(page.images) == 0
    assert "SIGN" in page.extract_text()
