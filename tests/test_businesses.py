"""Tests for business CRUD, slug checks, logo upload and the QR code."""
from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

from agendizo.extensions import db
from agendizo.models import Business, Service, TimeSlot, UserSettings


def test_list_businesses_requires_session(client) -> None:
    assert client.get("/api/businesses").status_code == 401


def test_list_businesses_only_returns_own(client, business, other_owner, auth_headers, other_auth_headers) -> None:
    own = client.get("/api/businesses", headers=auth_headers).get_json()["businesses"]
    others = client.get("/api/businesses", headers=other_auth_headers).get_json()["businesses"]

    assert [item["slug"] for item in own] == ["salao-da-ana"]
    assert others == []


def test_create_business_derives_slug_from_name(client, owner, auth_headers) -> None:
    response = client.post(
        "/api/businesses",
        json={"name": "Studio Bela Vista", "type": "beauty", "phone": "11987654321"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    business = response.get_json()["business"]
    assert business["slug"] == "studio-bela-vista"
    assert business["type"] == "beauty"
    assert business["phone"] == "(11) 98765-4321"
    assert business["owner_id"] == owner.user_id


def test_create_business_rejects_taken_slug(client, business, other_auth_headers) -> None:
    response = client.post(
        "/api/businesses",
        json={"name": "Outro Salão", "slug": "salao-da-ana"},
        headers=other_auth_headers,
    )

    assert response.status_code == 409


def test_create_business_rejects_invalid_slug(client, auth_headers) -> None:
    response = client.post("/api/businesses", json={"name": "Loja", "slug": "A!"}, headers=auth_headers)

    assert response.status_code == 400


def test_create_business_requires_name(client, auth_headers) -> None:
    response = client.post("/api/businesses", json={"slug": "sem-nome"}, headers=auth_headers)

    assert response.status_code == 400


def test_slug_available(client, business) -> None:
    taken = client.get("/api/businesses/slug-available?slug=salao-da-ana").get_json()
    free = client.get("/api/businesses/slug-available?slug=barbearia-do-ze").get_json()

    assert taken == {"slug": "salao-da-ana", "available": False}
    assert free == {"slug": "barbearia-do-ze", "available": True}


def test_slug_available_rejects_short_slug(client) -> None:
    assert client.get("/api/businesses/slug-available?slug=ab").status_code == 400


def test_get_business_of_other_owner_is_forbidden(client, business, other_auth_headers) -> None:
    response = client.get(f"/api/businesses/{business.business_id}", headers=other_auth_headers)

    assert response.status_code == 403


def test_get_unknown_business(client, auth_headers) -> None:
    assert client.get("/api/businesses/999", headers=auth_headers).status_code == 404


def test_update_business(client, business, auth_headers) -> None:
    response = client.put(
        f"/api/businesses/{business.business_id}",
        json={"name": "Salão da Ana Souza", "primary_color": "#ff0066", "city": "São Paulo"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.get_json()["business"]
    assert data["name"] == "Salão da Ana Souza"
    assert data["primary_color"] == "#ff0066"
    assert data["city"] == "São Paulo"


def test_update_business_slug_conflict(client, business, owner, auth_headers) -> None:
    db.session.add(Business(owner_id=owner.user_id, name="Filial", slug="filial-centro"))
    db.session.commit()

    response = client.put(
        f"/api/businesses/{business.business_id}",
        json={"slug": "filial-centro"},
        headers=auth_headers,
    )

    assert response.status_code == 409


def test_delete_business_removes_children(client, business, appointment, auth_headers) -> None:
    business_id = business.business_id

    response = client.delete(f"/api/businesses/{business_id}", headers=auth_headers)

    assert response.status_code == 204
    db.session.expire_all()
    assert db.session.get(Business, business_id) is None
    assert Service.query.filter_by(business_id=business_id).count() == 0
    assert TimeSlot.query.filter_by(business_id=business_id).count() == 0


def test_upload_logo(client, business, auth_headers) -> None:
    with patch("agendizo.routes_dashboard.boto3") as mock_boto3:
        s3_client = MagicMock()
        mock_boto3.client.return_value = s3_client

        response = client.post(
            f"/api/businesses/{business.business_id}/logo",
            data={"logo": (io.BytesIO(b"\x89PNG fake"), "logo.png")},
            content_type="multipart/form-data",
            headers=auth_headers,
        )

    assert response.status_code == 200
    logo_url = response.get_json()["business"]["logo_url"]
    assert logo_url.startswith(f"https://business-logos.s3.amazonaws.com/{business.business_id}/logo_")
    assert logo_url.endswith(".png")
    s3_client.upload_fileobj.assert_called_once()


def test_upload_logo_rejects_unsupported_format(client, business, auth_headers) -> None:
    response = client.post(
        f"/api/businesses/{business.business_id}/logo",
        data={"logo": (io.BytesIO(b"MZ"), "virus.exe")},
        content_type="multipart/form-data",
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_qrcode_is_png(client, business, auth_headers) -> None:
    response = client.get(f"/api/businesses/{business.business_id}/qrcode", headers=auth_headers)

    assert response.status_code == 200
    assert response.mimetype == "image/png"
    assert response.data[:8] == b"\x89PNG\r\n\x1a\n"


def test_qrcode_encodes_booking_url(client, business, auth_headers) -> None:
    with patch("agendizo.routes_dashboard.qrcode.QRCode") as mock_qr:
        mock_qr.return_value.make_image.return_value.save.side_effect = (
            lambda buffer, format: buffer.write(b"png")
        )
        client.get(f"/api/businesses/{business.business_id}/qrcode", headers=auth_headers)

    mock_qr.return_value.add_data.assert_called_once_with("http://testserver/salao-da-ana")


def test_dashboard_summary(client, business, appointment, auth_headers) -> None:
    response = client.get(f"/api/businesses/{business.business_id}/dashboard", headers=auth_headers)

    assert response.status_code == 200
    summary = response.get_json()["dashboard"]
    assert summary["appointments"]["confirmed"] == 1
    assert summary["appointments"]["total"] == 1
    assert summary["clients"] == 1
    assert summary["services"] == 2
    assert summary["revenue_formatted"] == "R$ 0,00"
    assert [item["id"] for item in summary["upcoming"]] == [appointment.appointment_id]


def test_dashboard_summary_formats_revenue_in_user_currency(client, owner, business, appointment, auth_headers) -> None:
    appointment.status = "completed"
    db.session.add(UserSettings(user_id=owner.user_id, currency="USD"))
    db.session.commit()

    response = client.get(f"/api/businesses/{business.business_id}/dashboard", headers=auth_headers)

    summary = response.get_json()["dashboard"]
    assert summary["revenue"] == 50.0
    assert summary["revenue_formatted"] == "USD 50,00"
