"""Tests for the dashboard appointment and client endpoints."""
from __future__ import annotations

from datetime import datetime, time, timedelta
from unittest.mock import patch

import pytest

from agendizo.extensions import db
from agendizo.functions import FunctionError
from agendizo.models import Appointment, Client


def test_delete_appointment_requires_session(client, appointment) -> None:
    response = client.delete(f"/api/appointments/{appointment.appointment_id}")

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_delete_appointment_not_found(client, auth_headers) -> None:
    response = client.delete("/api/appointments/999", headers=auth_headers)

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_delete_appointment_of_other_owner(client, appointment, other_auth_headers) -> None:
    response = client.delete(f"/api/appointments/{appointment.appointment_id}", headers=other_auth_headers)

    assert response.status_code == 403
    assert db.session.get(Appointment, appointment.appointment_id) is not None


def test_delete_appointment_success(client, appointment, auth_headers) -> None:
    appointment_id = appointment.appointment_id

    response = client.delete(f"/api/appointments/{appointment_id}", headers=auth_headers)

    assert response.status_code == 204
    assert response.data == b""
    assert db.session.get(Appointment, appointment_id) is None


def test_get_appointment(client, appointment, auth_headers) -> None:
    response = client.get(f"/api/appointments/{appointment.appointment_id}", headers=auth_headers)

    assert response.status_code == 200
    data = response.get_json()["appointment"]
    assert data["client"]["name"] == "João Lima"
    assert data["service"]["name"] == "Corte de Cabelo"


def test_list_appointments_filters_by_status(client, business, service, customer, appointment, auth_headers, tomorrow) -> None:
    start = datetime.combine(tomorrow, time(14, 0))
    db.session.add(
        Appointment(
            business_id=business.business_id,
            service_id=service.service_id,
            client_id=customer.client_id,
            start_time=start,
            end_time=start + timedelta(hours=1),
            status="cancelled",
        )
    )
    db.session.commit()

    everything = client.get(f"/api/businesses/{business.business_id}/appointments", headers=auth_headers)
    cancelled = client.get(
        f"/api/businesses/{business.business_id}/appointments?status=cancelled", headers=auth_headers
    )

    assert everything.get_json()["pagination"]["total"] == 2
    # Newest first.
    assert everything.get_json()["appointments"][0]["status"] == "cancelled"
    assert [item["status"] for item in cancelled.get_json()["appointments"]] == ["cancelled"]


def test_list_appointments_filters_by_date_range(client, business, appointment, auth_headers, tomorrow) -> None:
    day_after = (tomorrow + timedelta(days=1)).isoformat()

    in_range = client.get(
        f"/api/businesses/{business.business_id}/appointments?start_date={tomorrow.isoformat()}&end_date={tomorrow.isoformat()}",
        headers=auth_headers,
    )
    out_of_range = client.get(
        f"/api/businesses/{business.business_id}/appointments?start_date={day_after}",
        headers=auth_headers,
    )

    assert in_range.get_json()["pagination"]["total"] == 1
    assert out_of_range.get_json()["pagination"]["total"] == 0


def test_list_appointments_rejects_bad_status(client, business, auth_headers) -> None:
    response = client.get(f"/api/businesses/{business.business_id}/appointments?status=lost", headers=auth_headers)

    assert response.status_code == 400


def test_upcoming_and_stats(client, business, appointment, auth_headers) -> None:
    upcoming = client.get(f"/api/businesses/{business.business_id}/appointments/upcoming", headers=auth_headers)
    stats = client.get(f"/api/businesses/{business.business_id}/appointments/stats", headers=auth_headers)

    assert [item["id"] for item in upcoming.get_json()["appointments"]] == [appointment.appointment_id]
    assert stats.get_json()["stats"] == {
        "pending": 0,
        "confirmed": 1,
        "cancelled": 0,
        "completed": 0,
        "total": 1,
    }


def test_create_appointment_with_new_client(client, business, service, auth_headers, tomorrow) -> None:
    response = client.post(
        f"/api/businesses/{business.business_id}/appointments",
        json={
            "service_id": service.service_id,
            "start_time": f"{tomorrow.isoformat()}T10:00:00",
            "client": {"name": "Maria Alves", "email": "Maria@Example.com", "phone": "11912345678"},
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.get_json()["appointment"]
    assert data["status"] == "confirmed"
    assert data["end_time"] == f"{tomorrow.isoformat()}T11:00:00"
    assert data["client"]["email"] == "maria@example.com"
    assert data["client"]["phone"] == "(11) 91234-5678"


def test_create_appointment_conflict(client, business, service, customer, appointment, auth_headers, tomorrow) -> None:
    response = client.post(
        f"/api/businesses/{business.business_id}/appointments",
        json={
            "service_id": service.service_id,
            "client_id": customer.client_id,
            "start_time": f"{tomorrow.isoformat()}T09:30:00",
        },
        headers=auth_headers,
    )

    assert response.status_code == 409


@pytest.mark.parametrize("service_id", ["abc", None, 999])
def test_create_appointment_rejects_invalid_service(client, business, customer, auth_headers, tomorrow, service_id) -> None:
    response = client.post(
        f"/api/businesses/{business.business_id}/appointments",
        json={
            "service_id": service_id,
            "client_id": customer.client_id,
            "start_time": f"{tomorrow.isoformat()}T10:00:00",
        },
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "Serviço inválido"


def test_update_status(client, appointment, auth_headers) -> None:
    response = client.put(
        f"/api/appointments/{appointment.appointment_id}/status",
        json={"status": "pending"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.get_json()["appointment"]["status"] == "pending"


def test_update_status_rejects_unknown_status(client, appointment, auth_headers) -> None:
    response = client.put(
        f"/api/appointments/{appointment.appointment_id}/status",
        json={"status": "rescheduled"},
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_cancelling_notifies_owner(client, owner, appointment, auth_headers) -> None:
    with patch("agendizo.routes_dashboard.send_notification") as mock_notify:
        response = client.put(
            f"/api/appointments/{appointment.appointment_id}/status",
            json={"status": "cancelled"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    mock_notify.assert_called_once()
    user_id, kind, details, email = mock_notify.call_args.args
    assert (user_id, kind, email) == (owner.user_id, "cancellation", owner.email)
    assert details["client_name"] == "João Lima"


def test_complete_appointment_sends_feedback_link(client, appointment, auth_headers) -> None:
    with patch("agendizo.routes_dashboard.send_feedback_request_email") as mock_send:
        response = client.post(f"/api/appointments/{appointment.appointment_id}/complete", headers=auth_headers)

    assert response.status_code == 200
    data = response.get_json()
    assert data["appointment"]["status"] == "completed"
    assert data["appointment"]["completed_at"] is not None

    token = db.session.get(Appointment, appointment.appointment_id).feedback_token
    assert token
    assert data["feedback_url"] == f"http://testserver/feedback/{token}"
    mock_send.assert_called_once_with("joao@example.com", "João Lima", "Salão da Ana", data["feedback_url"])


def test_complete_appointment_survives_email_failure(client, appointment, auth_headers) -> None:
    with patch("agendizo.routes_dashboard.send_feedback_request_email", side_effect=FunctionError("down")):
        response = client.post(f"/api/appointments/{appointment.appointment_id}/complete", headers=auth_headers)

    assert response.status_code == 200
    assert db.session.get(Appointment, appointment.appointment_id).status == "completed"


def test_complete_appointment_of_other_owner(client, appointment, other_auth_headers) -> None:
    response = client.post(
        f"/api/appointments/{appointment.appointment_id}/complete", headers=other_auth_headers
    )

    assert response.status_code == 403


def test_list_clients_with_search(client, business, customer, auth_headers) -> None:
    db.session.add(Client(business_id=business.business_id, name="Paula Reis", email="paula@example.com"))
    db.session.commit()

    everyone = client.get(f"/api/businesses/{business.business_id}/clients", headers=auth_headers)
    search = client.get(f"/api/businesses/{business.business_id}/clients?search=paula", headers=auth_headers)
    by_phone = client.get(f"/api/businesses/{business.business_id}/clients?search=98765", headers=auth_headers)

    assert everyone.get_json()["pagination"]["total"] == 2
    assert [item["name"] for item in search.get_json()["clients"]] == ["Paula Reis"]
    assert [item["name"] for item in by_phone.get_json()["clients"]] == ["João Lima"]


def test_list_clients_pagination(client, business, auth_headers) -> None:
    for index in range(5):
        db.session.add(Client(business_id=business.business_id, name=f"Cliente {index}", email=f"c{index}@example.com"))
    db.session.commit()

    response = client.get(f"/api/businesses/{business.business_id}/clients?page=2&limit=2", headers=auth_headers)

    data = response.get_json()
    assert [item["name"] for item in data["clients"]] == ["Cliente 2", "Cliente 3"]
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}
