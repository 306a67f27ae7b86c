"""Shared pytest fixtures: an in-memory app, users, a business and its data."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from unittest.mock import patch

import pytest
from werkzeug.security import generate_password_hash

from agendizo import create_app
from agendizo.auth import build_token
from agendizo.billing import sync_plan_prices
from agendizo.extensions import db
from agendizo.models import (Appointment, AuthAccount, Business, Client,
                             Profile, Service, TimeSlot)
from agendizo.notifications import default_settings

PASSWORD = "securepassword123"
SLOT_TIMES = ("09:00", "10:00", "14:00")


@pytest.fixture
def app():
    app = create_app("agendizo.config.TestingConfig")
    with app.app_context():
        db.create_all()
        sync_plan_prices()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _create_owner(email: str, full_name: str) -> Profile:
    profile = Profile(full_name=full_name, email=email, social_links={})
    db.session.add(profile)
    db.session.flush()
    db.session.add(AuthAccount(user_id=profile.user_id, password_hash=generate_password_hash(PASSWORD)))
    db.session.add(default_settings(profile.user_id))
    db.session.commit()
    return profile


@pytest.fixture
def owner(app):
    return _create_owner("ana@example.com", "Ana Souza")


@pytest.fixture
def other_owner(app):
    return _create_owner("bruno@example.com", "Bruno Costa")


@pytest.fixture
def auth_headers(owner):
    return {"Authorization": f"Bearer {build_token({'user_id': owner.user_id})}"}


@pytest.fixture
def other_auth_headers(other_owner):
    return {"Authorization": f"Bearer {build_token({'user_id': other_owner.user_id})}"}


@pytest.fixture
def business(owner):
    """A business open every day at 09:00, 10:00 and 14:00."""
    business = Business(owner_id=owner.user_id, name="Salão da Ana", slug="salao-da-ana", business_type="beauty")
    db.session.add(business)
    db.session.flush()

    db.session.add_all([
        Service(business_id=business.business_id, name="Manicure", duration_minutes=30, price_cents=3500),
        Service(business_id=business.business_id, name="Corte de Cabelo", duration_minutes=60, price_cents=5000),
    ])
    for day in range(7):
        for slot_time in SLOT_TIMES:
            db.session.add(TimeSlot(business_id=business.business_id, day_of_week=day, time=slot_time))
    db.session.commit()
    return business


@pytest.fixture
def service(business):
    return Service.query.filter_by(business_id=business.business_id, name="Corte de Cabelo").first()


@pytest.fixture
def customer(business):
    customer = Client(
        business_id=business.business_id,
        name="João Lima",
        email="joao@example.com",
        phone="(11) 98765-4321",
    )
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest.fixture
def appointment(business, service, customer, tomorrow):
    start = datetime.combine(tomorrow, time(9, 0))
    appointment = Appointment(
        business_id=business.business_id,
        service_id=service.service_id,
        client_id=customer.client_id,
        start_time=start,
        end_time=start + timedelta(minutes=60),
        status="confirmed",
    )
    db.session.add(appointment)
    db.session.commit()
    return appointment


@pytest.fixture
def mock_resend():
    """Stub the email provider used by the backend functions."""
    with patch("agendizo.functions.resend") as mocked:
        mocked.Emails.send.return_value = {"id": "email_123"}
        yield mocked
