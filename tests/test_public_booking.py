"""Tests for the public booking page and the feedback link."""
from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import patch

import pytest

from agendizo.extensions import db
from agendizo.functions import FunctionError
from agendizo.models import Appointment, Client, Feedback, Holiday, TimeSlot
from agendizo.scheduling import day_of_week

BOOKING = {
    "name": "Maria Alves",
    "email": "maria@example.com",
    "phone": "11912345678",
    "time": "10:00",
}


@pytest.fixture
def booking(service, tomorrow):
    return {**BOOKING, "date": tomorrow.isoformat(), "service_id": service.service_id}


@pytest.fixture
def notify():
    with patch("agendizo.routes_public.send_notification") as mocked:
        yield mocked


@pytest.fixture
def completed_appointment(appointment):
    appointment.status = "completed"
    appointment.feedback_token = "token-abc"
    db.session.commit()
    return appointment


def test_booking_page(client, business) -> None:
    response = client.get("/api/public/salao-da-ana")

    assert response.status_code == 200
    data = response.get_json()
    assert data["business"]["name"] == "Salão da Ana"
    assert [item["name"] for item in data["services"]] == ["Corte de Cabelo", "Manicure"]
    assert data["working_days"] == [0, 1, 2, 3, 4, 5, 6]
    assert data["time_slots"]["3"] == ["09:00", "10:00", "14:00"]
    assert data["average_rating"] == 0
    assert data["feedback_count"] == 0


def test_booking_page_rating(client, business) -> None:
    for rating in (4, 5):
        db.session.add(
            Feedback(business_id=business.business_id, client_name="Cliente", rating=rating, comment="Ótimo")
        )
    db.session.commit()

    data = client.get("/api/public/salao-da-ana").get_json()

    assert data["average_rating"] == 4.5
    assert data["feedback_count"] == 2


def test_booking_page_unknown_slug(client) -> None:
    response = client.get("/api/public/nao-existe")

    assert response.status_code == 404


def test_availability_excludes_booked_slots(client, business, appointment, tomorrow) -> None:
    response = client.get(f"/api/public/salao-da-ana/availability?date={tomorrow.isoformat()}")

    assert response.status_code == 200
    assert response.get_json()["available_times"] == ["10:00", "14:00"]


def test_availability_cancelled_appointments_free_the_slot(client, business, appointment, tomorrow) -> None:
    appointment.status = "cancelled"
    db.session.commit()

    response = client.get(f"/api/public/salao-da-ana/availability?date={tomorrow.isoformat()}")

    assert response.get_json()["available_times"] == ["09:00", "10:00", "14:00"]


def test_availability_empty_on_holiday(client, business, tomorrow) -> None:
    db.session.add(Holiday(business_id=business.business_id, date=tomorrow, description="Feriado"))
    db.session.commit()

    response = client.get(f"/api/public/salao-da-ana/availability?date={tomorrow.isoformat()}")

    assert response.get_json()["available_times"] == []


def test_availability_empty_for_past_dates(client, business) -> None:
    yesterday = date.today() - timedelta(days=1)

    response = client.get(f"/api/public/salao-da-ana/availability?date={yesterday.isoformat()}")

    assert response.get_json()["available_times"] == []


def test_availability_requires_date(client, business) -> None:
    assert client.get("/api/public/salao-da-ana/availability").status_code == 400


def test_availability_rejects_foreign_service(client, business) -> None:
    response = client.get("/api/public/salao-da-ana/availability?date=2030-01-01&service_id=999")

    assert response.status_code == 400


def test_book_appointment(client, business, owner, booking, notify, tomorrow) -> None:
    response = client.post("/api/public/salao-da-ana/appointments", json=booking)

    assert response.status_code == 201
    data = response.get_json()["appointment"]
    assert data["status"] == "pending"
    assert data["start_time"] == f"{tomorrow.isoformat()}T10:00:00"
    assert data["end_time"] == f"{tomorrow.isoformat()}T11:00:00"
    assert data["client"]["phone"] == "(11) 91234-5678"

    notify.assert_called_once()
    user_id, kind, details, email = notify.call_args.args
    assert (user_id, kind, email) == (owner.user_id, "new_appointment", owner.email)
    assert details["service_name"] == "Corte de Cabelo"
    assert details["time"] == "10:00"
    assert details["price"] == 50.0


def test_book_appointment_reuses_client_by_email(client, business, customer, booking, notify) -> None:
    response = client.post(
        "/api/public/salao-da-ana/appointments",
        json={**booking, "email": "JOAO@example.com", "name": "João P. Lima"},
    )

    assert response.status_code == 201
    assert Client.query.filter_by(business_id=business.business_id).count() == 1
    assert response.get_json()["appointment"]["client_id"] == customer.client_id
    assert db.session.get(Client, customer.client_id).name == "João P. Lima"


def test_book_appointment_conflict(client, business, appointment, booking, notify) -> None:
    response = client.post("/api/public/salao-da-ana/appointments", json={**booking, "time": "09:00"})

    assert response.status_code == 409
    notify.assert_not_called()


def test_book_appointment_overlapping_longer_service(client, business, appointment, booking, notify) -> None:
    # A 60 minute booking at 08:30 would run into the 09:00 appointment.
    booking_day = date.fromisoformat(booking["date"])
    db.session.add(TimeSlot(business_id=business.business_id, day_of_week=day_of_week(booking_day), time="08:30"))
    db.session.commit()

    response = client.post("/api/public/salao-da-ana/appointments", json={**booking, "time": "08:30"})

    assert response.status_code == 409


def test_book_appointment_rejects_unconfigured_time(client, business, booking, notify) -> None:
    response = client.post("/api/public/salao-da-ana/appointments", json={**booking, "time": "11:00"})

    assert response.status_code == 400
    assert Appointment.query.count() == 0


@pytest.mark.parametrize(
    "override",
    [{"name": ""}, {"email": "not-an-email"}, {"phone": "1234"}, {"date": "amanhã"}, {"service_id": 999},
     {"service_id": "abc"}],
)
def test_book_appointment_validation(client, business, booking, notify, override) -> None:
    response = client.post("/api/public/salao-da-ana/appointments", json={**booking, **override})

    assert response.status_code == 400


def test_book_appointment_survives_notification_failure(client, business, booking) -> None:
    with patch("agendizo.routes_public.send_notification", side_effect=FunctionError("down")):
        response = client.post("/api/public/salao-da-ana/appointments", json=booking)

    assert response.status_code == 201
    assert Appointment.query.count() == 1


def test_book_appointment_unknown_slug(client, booking) -> None:
    response = client.post("/api/public/nao-existe/appointments", json=booking)

    assert response.status_code == 404


def test_feedback_form(client, completed_appointment) -> None:
    response = client.get("/api/feedback/token-abc")

    assert response.status_code == 200
    data = response.get_json()["appointment"]
    assert data["business_name"] == "Salão da Ana"
    assert data["client_name"] == "João Lima"


def test_feedback_unknown_token(client) -> None:
    assert client.get("/api/feedback/nope").status_code == 404
    assert client.post("/api/feedback/nope", json={"rating": 5, "comment": "x"}).status_code == 404


def test_submit_feedback(client, completed_appointment) -> None:
    response = client.post("/api/feedback/token-abc", json={"rating": 5, "comment": "Excelente atendimento"})

    assert response.status_code == 201
    feedback = Feedback.query.one()
    assert feedback.rating == 5
    assert feedback.client_email == "joao@example.com"
    assert db.session.get(Appointment, completed_appointment.appointment_id).feedback_submitted is True

    assert client.get("/api/feedback/token-abc").status_code == 409
    again = client.post("/api/feedback/token-abc", json={"rating": 4, "comment": "De novo"})
    assert again.status_code == 409


@pytest.mark.parametrize(
    "payload",
    [{"rating": 0, "comment": "Ruim"}, {"rating": 6, "comment": "Bom"}, {"rating": "x", "comment": "Bom"}, {"rating": 4}],
)
def test_submit_feedback_validation(client, completed_appointment, payload) -> None:
    response = client.post("/api/feedback/token-abc", json=payload)

    assert response.status_code == 400
    assert Feedback.query.count() == 0
