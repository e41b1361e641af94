import hashlib
import json

import jwt
import pytest
from fastapi.testclient import TestClient

from signforge.app.config import get_settings
from signforge.app.main import create_app

from signforge.tests.fixtures.pdf_factory import (
    letter_pdf,
    page_image_counts,
    page_texts,
    png_bytes,
    png_data_url,
)

SECRET = "api-test-secret-0123456789abcdefghijkl"


@pytest.fixture
def make_client(monkeypatch, tmp_path):
    clients = []

    def _make(**env):
        monkeypatch.setenv("SIGNFORGE_JWT_SECRET", SECRET)
        monkeypatch.setenv("SIGNFORGE_UPLOAD_DIR", str(tmp_path))
        for key, value in env.items():
            monkeypatch.setenv(f"SIGNFORGE_{key.upper()}", str(value))
        get_settings.cache_clear()

        client = TestClient(create_app())
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
    get_settings.cache_clear()


@pytest.fixture
def client(make_client):
    return make_client()


def _pro_headers():
    token = jwt.encode({"sub": "u1", "plan": "pro"}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _pdf_file(data=None, content_type="application/pdf"):
    return ("document.pdf", data if data is not None else letter_pdf(), content_type)


def _placements(signer_id="s1"):
    return json.dumps([
        {"id": "p1", "signerId": signer_id, "pageIndex": 0, "xPct": 0.1, "yPct": 0.8, "wPct": 0.25, "hPct": 0.05},
    ])


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_apply_multi_returns_signed_pdf(client):
    pdf = letter_pdf()
    response = client.post(
        "/sign-pdf/apply-multi",
        files={"pdf": _pdf_file(pdf)},
        data={
            "placements": _placements(),
            "textPlacements": json.dumps([{"pageIndex": 0, "xPct": 0.5, "yPct": 0.5, "text": "Approved"}]),
            "signerMetaJson": json.dumps([{"id": "s1", "name": "Jane Roe", "email": "jane@example.com"}]),
            "signaturesJson": json.dumps({"s1": png_data_url()}),
            "auditFieldLines": "Company: ACME\r\nRole: CEO",
        },
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["x-original-hash"] == hashlib.sha256(pdf).hexdigest()

    texts = page_texts(response.content)
    assert len(texts) == 2
    assert "Approved" in texts[0]
    assert "Company: ACME" in texts[1]
    assert "SIGNFORGE FREE" in texts[0]
    assert page_image_counts(response.content)[0] == 1


def test_signatures_taken_from_signers_field(client):
    response = client.post(
        "/sign-pdf/apply-multi",
        headers=_pro_headers(),
        files={"pdf": _pdf_file()},
        data={
            "placements": _placements(),
            "signers": json.dumps([{"id": "s1", "name": "Jane", "signatureDataUrl": png_data_url()}]),
        },
    )

    assert response.status_code == 200
    assert response.headers["x-plan-tier"] == "pro"
    assert page_image_counts(response.content)[0] == 1
    assert all("SIGNFORGE" not in t for t in page_texts(response.content))


def test_apply_with_legacy_signature_file(client):
    response = client.post(
        "/sign-pdf/apply",
        files={
            "pdf": _pdf_file(),
            "signature": ("signature.png", png_bytes(), "image/png"),
        },
        data={"placements": _placements(signer_id=None)},
    )

    assert response.status_code == 200
    assert page_image_counts(response.content)[0] == 1
    assert "legacy/single-signer mode" in page_texts(response.content)[-1]


def test_malformed_form_fields_are_tolerated(client):
    response = client.post(
        "/sign-pdf/apply-multi",
        files={"pdf": _pdf_file()},
        data={"placements": "{broken", "signaturesJson": "[]", "textPlacements": "null"},
    )

    assert response.status_code == 200
    assert len(page_texts(response.content)) == 2


def test_missing_pdf_is_rejected(client):
    response = client.post("/sign-pdf/apply-multi", data={"placements": "[]"})
    assert response.status_code == 400


def test_empty_pdf_is_rejected(client):
    response = client.post("/sign-pdf/apply-multi", files={"pdf": _pdf_file(b"")})
    assert response.status_code == 400


def test_non_pdf_media_type_is_rejected(client):
    response = client.post(
        "/sign-pdf/apply-multi",
        files={"pdf": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 415


def test_oversized_pdf_is_rejected(make_client):
    client = make_client(max_pdf_size_mb=1)
    response = client.post(
        "/sign-pdf/apply-multi",
        files={"pdf": _pdf_file(b"%PDF-" + b"0" * (1024 * 1024))},
    )
    assert response.status_code == 413


def test_oversized_legacy_signature_is_rejected(make_client):
    client = make_client(max_pdf_size_mb=1)
    response = client.post(
        "/sign-pdf/apply",
        files={
            "pdf": _pdf_file(),
            "signature": ("signature.png", b"\x89PNG" + b"0" * (1024 * 1024), "image/png"),
        },
    )
    assert response.status_code == 413


def test_corrupt_pdf_is_internal_failure(client):
    response = client.post(
        "/sign-pdf/apply-multi",
        files={"pdf": _pdf_file(b"this is not really a pdf")},
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to sign PDF"


def test_scratch_directory_is_cleaned_up(client, tmp_path):
    client.post("/sign-pdf/apply-multi", files={"pdf": _pdf_file()})
    client.post("/sign-pdf/apply-multi", files={"pdf": _pdf_file(b"garbage")})

    assert list(tmp_path.iterdir()) == []


def test_certificate_requires_pro(client):
    response = client.post("/sign-pdf/certificate", files={"pdf": _pdf_file()})

    assert response.status_code == 402
    assert response.json()["detail"] == "PRO_REQUIRED"


def test_certificate_for_pro(client):
    response = client.post(
        "/sign-pdf/certificate",
        headers=_pro_headers(),
        files={"pdf": _pdf_file(letter_pdf(pages=2))},
        data={
            "placements": _placements(),
            "signers": json.dumps([{"id": "s1", "name": "Jane"}, {"id": "s2", "name": "Omar"}]),
            "clientStamp": "REF-77",
        },
    )

    assert response.status_code == 200
    [text] = page_texts(response.content)
    assert "Signing Certificate" in text
    assert "Omar" in text
    assert "Client Stamp: REF-77" in text


def test_paywall_bypass(make_client):
    client = make_client(bypass_paywall="true")
    response = client.post("/sign-pdf/certificate", files={"pdf": _pdf_file()})

    assert response.status_code == 200
    assert "SIGNFORGE FREE" in page_texts(response.content)[0]


def test_malformed_signature_map_renders_placeholders(client):
    response = client.post(
        "/sign-pdf/apply-multi",
        headers=_pro_headers(),
        files={"pdf": _pdf_file()},
        data={
            "placements": _placements(),
            "signerMetaJson": json.dumps([{"id": "s1", "name": "Jane"}]),
            "signaturesJson": "{not valid json",
        },
    )

    assert response.status_code == 200
    assert page_image_counts(response.content) == [0, 0]
    assert "SIGN" in page_texts(response.content)[0]
