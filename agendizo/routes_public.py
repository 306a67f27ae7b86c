"""Unauthenticated routes behind the public booking page and the feedback link."""
from __future__ import annotations

import re
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .functions import FunctionError
from .models import Appointment, Business, Client, Feedback, Holiday, Service
from .notifications import appointment_details, send_notification
from .scheduling import (DEFAULT_DURATION_MINUTES, available_times,
                         combine_slot, day_of_week, find_conflict,
                         is_holiday, slots_by_day, working_days)
from .utils import average_rating, format_phone_number, parse_time_of_day

bp_public = Blueprint("api_public", __name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _business_by_slug(slug: str) -> Business | None:
    return Business.query.filter_by(slug=slug.lower()).first()


def _not_found():
    return jsonify({"error": "not_found", "message": "Negócio não encontrado"}), 404


def _parse_date(value: str | None):
    return datetime.strptime(value or "", "%Y-%m-%d").date()


@bp_public.get("/public/<slug>")
def get_booking_page(slug: str) -> tuple[dict[str, object], int]:
    """Everything the public booking page needs in one response.
    ---
    tags:
      - Public
    parameters:
      - name: slug
        in: path
        type: string
        required: true
    responses:
      200:
        description: Business, services, schedule and rating summary
      404:
        description: No business with this slug
    """
    try:
        business = _business_by_slug(slug)
        if business is None:
            return _not_found()

        services = (
            Service.query.filter_by(business_id=business.business_id, is_active=True)
            .order_by(Service.name.asc())
            .all()
        )
        holidays = (
            Holiday.query.filter_by(business_id=business.business_id)
            .order_by(Holiday.date.asc())
            .all()
        )
        ratings = [
            rating
            for (rating,) in db.session.query(Feedback.rating).filter_by(business_id=business.business_id)
        ]
        time_slots = {str(day): times for day, times in slots_by_day(business.business_id).items()}
        days = working_days(business.business_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to load booking page", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "business": business.to_dict(),
            "services": [service.to_dict() for service in services],
            "working_days": days,
            "holidays": [holiday.to_dict() for holiday in holidays],
            "time_slots": time_slots,
            "average_rating": average_rating(ratings),
            "feedback_count": len(ratings),
        }),
        200,
    )


@bp_public.get("/public/<slug>/availability")
def get_availability(slug: str) -> tuple[dict[str, object], int]:
    business = _business_by_slug(slug)
    if business is None:
        return _not_found()

    try:
        day = _parse_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "invalid_parameters", "message": "date must be YYYY-MM-DD"}), 400

    service_id = request.args.get("service_id")
    if service_id:
        service = db.session.get(Service, int(service_id)) if service_id.isdigit() else None
        if service is None or service.business_id != business.business_id:
            return jsonify({"error": "invalid_parameters", "message": "Serviço inválido"}), 400

    times = available_times(business.business_id, day)
    return jsonify({"date": day.isoformat(), "available_times": times}), 200


@bp_public.post("/public/<slug>/appointments")
def book_appointment(slug: str) -> tuple[dict[str, object], int]:
    """Book an appointment from the public page.
    ---
    tags:
      - Public
    parameters:
      - name: slug
        in: path
        type: string
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - name
            - email
            - phone
            - date
            - time
            - service_id
          properties:
            name:
              type: string
            email:
              type: string
            phone:
              type: string
            date:
              type: string
              example: "2024-05-20"
            time:
              type: string
              example: "14:00"
            service_id:
              type: integer
            notes:
              type: string
    responses:
      201:
        description: Appointment created as pending
      400:
        description: Invalid client data, date, time or service
      404:
        description: Unknown business
      409:
        description: The time is already taken
    """
    business = _business_by_slug(slug)
    if business is None:
        return _not_found()

    payload = request.get_json(silent=True) or {}

    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    phone = format_phone_number(payload.get("phone"))

    if not name:
        return jsonify({"error": "invalid_payload", "message": "Informe seu nome"}), 400
    if not EMAIL_PATTERN.match(email):
        return jsonify({"error": "invalid_payload", "message": "Email inválido"}), 400
    if len(re.sub(r"\D", "", phone)) < 10:
        return jsonify({"error": "invalid_payload", "message": "Telefone inválido"}), 400

    try:
        service = db.session.get(Service, int(payload.get("service_id")))
    except (TypeError, ValueError):
        service = None
    if service is None or service.business_id != business.business_id or not service.is_active:
        return jsonify({"error": "invalid_payload", "message": "Selecione um serviço"}), 400

    try:
        day = _parse_date(payload.get("date"))
        slot = parse_time_of_day(payload.get("time"))
    except ValueError:
        return jsonify({"error": "invalid_payload", "message": "Selecione uma data e um horário válidos"}), 400

    now = datetime.now()
    start_time = combine_slot(day, slot)
    if start_time < now:
        return jsonify({"error": "invalid_payload", "message": "Este horário já passou"}), 400

    weekday = day_of_week(day)
    if (
        is_holiday(business.business_id, day)
        or weekday not in working_days(business.business_id)
        or slot not in slots_by_day(business.business_id).get(weekday, [])
    ):
        return jsonify({"error": "invalid_payload", "message": "Horário indisponível"}), 400

    end_time = start_time + timedelta(minutes=service.duration_minutes or DEFAULT_DURATION_MINUTES)
    if find_conflict(business.business_id, start_time, end_time):
        return jsonify({"error": "conflict", "message": "Este horário já está ocupado"}), 409

    try:
        client = Client.query.filter_by(business_id=business.business_id, email=email).first()
        if client is None:
            client = Client(business_id=business.business_id, email=email, name=name)
            db.session.add(client)
        client.name = name
        client.phone = phone

        appointment = Appointment(
            business_id=business.business_id,
            service_id=service.service_id,
            client=client,
            start_time=start_time,
            end_time=end_time,
            status="pending",
            notes=payload.get("notes"),
        )
        db.session.add(appointment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create public appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Erro ao criar agendamento"}), 500

    owner = business.owner
    try:
        send_notification(owner.user_id, "new_appointment", appointment_details(appointment), owner.email)
    except FunctionError as exc:
        current_app.logger.error("Failed to notify owner of new appointment: %s", exc)

    return jsonify({"appointment": appointment.to_dict()}), 201


def _appointment_by_token(token: str):
    """Return ``(appointment, None)`` or ``(None, error_response)``."""
    appointment = Appointment.query.filter_by(feedback_token=token).first()
    if appointment is None:
        return None, (jsonify({"error": "not_found", "message": "Link de avaliação inválido"}), 404)
    if appointment.feedback_submitted:
        return None, (jsonify({"error": "conflict", "message": "Avaliação já enviada"}), 409)
    return appointment, None


@bp_public.get("/feedback/<token>")
def get_feedback_form(token: str) -> tuple[dict[str, object], int]:
    appointment, error = _appointment_by_token(token)
    if error:
        return error

    return (
        jsonify({
            "appointment": {
                "id": appointment.appointment_id,
                "business_name": appointment.business.name,
                "service_name": appointment.service.name,
                "client_name": appointment.client.name,
                "start_time": appointment.start_time.isoformat(),
            }
        }),
        200,
    )


@bp_public.post("/feedback/<token>")
def submit_feedback(token: str) -> tuple[dict[str, object], int]:
    appointment, error = _appointment_by_token(token)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    try:
        rating = int(payload.get("rating"))
    except (TypeError, ValueError):
        rating = 0
    comment = (payload.get("comment") or "").strip()

    if not 1 <= rating <= 5:
        return jsonify({"error": "invalid_payload", "message": "A nota deve ser de 1 a 5"}), 400
    if not comment:
        return jsonify({"error": "invalid_payload", "message": "Escreva um comentário"}), 400

    client = appointment.client
    feedback = Feedback(
        business_id=appointment.business_id,
        client_id=client.client_id,
        client_name=client.name,
        client_email=client.email,
        rating=rating,
        comment=comment,
    )
    appointment.feedback_submitted = True

    try:
        db.session.add(feedback)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save feedback", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"feedback": feedback.to_dict()}), 201
