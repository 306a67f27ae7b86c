"""Owner dashboard routes: businesses, services, clients, appointments and hours."""
from __future__ import annotations

import io
import secrets
import uuid
from datetime import datetime, timedelta

import boto3
import qrcode
from botocore.exceptions import BotoCoreError, ClientError
from flask import Blueprint, current_app, jsonify, request, send_file
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from .auth import get_session_user_id
from .emails import send_feedback_request_email
from .extensions import db
from .functions import FunctionError
from .models import (APPOINTMENT_STATUSES, ACTIVE_APPOINTMENT_STATUSES,
                     Appointment, Business, Client, Feedback, Holiday,
                     Service, TimeSlot, UserSettings, WorkingDay)
from .notifications import appointment_details, send_notification
from .scheduling import (DEFAULT_DURATION_MINUTES, find_conflict,
                         slots_by_day, working_days)
from .utils import (average_rating, format_currency, format_phone_number,
                    is_valid_slug, parse_time_of_day, slugify)

bp_dashboard = Blueprint("api_dashboard", __name__)

BUSINESS_FIELDS = (
    "description",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
    "phone",
    "email",
    "website",
    "logo_url",
    "banner_url",
    "logo_size",
    "primary_color",
    "secondary_color",
    "font_family",
    "theme",
)

LOGO_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "svg"}


def _unauthorized():
    return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401


def _owned_business(business_id: int, user_id: int):
    """Return ``(business, None)`` or ``(None, error_response)``."""
    business = db.session.get(Business, business_id)
    if business is None:
        return None, (jsonify({"error": "not_found", "message": "Negócio não encontrado"}), 404)
    if business.owner_id != user_id:
        return None, (jsonify({"error": "forbidden", "message": "Não autorizado"}), 403)
    return business, None


def _owned_appointment(appointment_id: int, user_id: int):
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return None, (jsonify({"error": "not_found", "message": "Agendamento não encontrado"}), 404)
    if appointment.business.owner_id != user_id:
        return None, (jsonify({"error": "forbidden", "message": "Não autorizado"}), 403)
    return appointment, None


def _pagination_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    page = max(1, int(request.args.get("page", 1)))
    limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    return page, limit


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def _parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive local datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


# --- Businesses ---


@bp_dashboard.get("/businesses")
def list_businesses() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    try:
        businesses = (
            Business.query.filter_by(owner_id=user_id)
            .order_by(Business.created_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch businesses", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"businesses": [business.to_dict() for business in businesses]}), 200


@bp_dashboard.get("/businesses/slug-available")
def slug_available() -> tuple[dict[str, object], int]:
    """Check whether a booking page slug is free.
    ---
    tags:
      - Businesses
    parameters:
      - name: slug
        in: query
        type: string
        required: true
    responses:
      200:
        description: Availability of the slug
      400:
        description: Slug missing or malformed
    """
    slug = (request.args.get("slug") or "").strip().lower()
    if not is_valid_slug(slug):
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "O slug deve ter pelo menos 3 caracteres: letras minúsculas, números ou hífens",
            }),
            400,
        )

    taken = Business.query.filter_by(slug=slug).first() is not None
    return jsonify({"slug": slug, "available": not taken}), 200


@bp_dashboard.post("/businesses")
def create_business() -> tuple[dict[str, object], int]:
    """Create a business for the current user.
    ---
    tags:
      - Businesses
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - name
          properties:
            name:
              type: string
            slug:
              type: string
              description: Derived from the name when omitted
            type:
              type: string
            description:
              type: string
    responses:
      201:
        description: Business created
      400:
        description: Invalid name or slug
      409:
        description: Slug already in use
    """
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify({"error": "invalid_payload", "message": "O nome do negócio é obrigatório"}), 400

    slug = (payload.get("slug") or "").strip().lower() or slugify(name)
    if not is_valid_slug(slug):
        return jsonify({"error": "invalid_payload", "message": "Slug inválido"}), 400

    if Business.query.filter_by(slug=slug).first():
        return jsonify({"error": "conflict", "message": "Este slug já está em uso"}), 409

    business = Business(owner_id=user_id, name=name, slug=slug, business_type=payload.get("type"))
    for field in BUSINESS_FIELDS:
        if field in payload:
            setattr(business, field, payload.get(field))
    if business.phone:
        business.phone = format_phone_number(business.phone)

    try:
        db.session.add(business)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create business", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"business": business.to_dict()}), 201


@bp_dashboard.get("/businesses/<int:business_id>")
def get_business(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error
    return jsonify({"business": business.to_dict()}), 200


@bp_dashboard.put("/businesses/<int:business_id>")
def update_business(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}

    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            return jsonify({"error": "invalid_payload", "message": "O nome do negócio é obrigatório"}), 400
        business.name = name

    if "slug" in payload:
        slug = (payload.get("slug") or "").strip().lower()
        if not is_valid_slug(slug):
            return jsonify({"error": "invalid_payload", "message": "Slug inválido"}), 400
        existing = Business.query.filter_by(slug=slug).first()
        if existing and existing.business_id != business.business_id:
            return jsonify({"error": "conflict", "message": "Este slug já está em uso"}), 409
        business.slug = slug

    if "type" in payload:
        business.business_type = payload.get("type")
    for field in BUSINESS_FIELDS:
        if field in payload:
            setattr(business, field, payload.get(field))
    if "phone" in payload:
        business.phone = format_phone_number(payload.get("phone")) or None

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update business", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"business": business.to_dict()}), 200


@bp_dashboard.delete("/businesses/<int:business_id>")
def delete_business(business_id: int):
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        # Children first; the schema has no cascading deletes.
        for model in (Feedback, Appointment, Client, Service, TimeSlot, WorkingDay, Holiday):
            model.query.filter_by(business_id=business_id).delete(synchronize_session=False)
        UserSettings.query.filter_by(business_id=business_id).update(
            {"business_id": None}, synchronize_session=False
        )
        db.session.delete(business)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete business", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return "", 204


@bp_dashboard.post("/businesses/<int:business_id>/logo")
def upload_logo(business_id: int) -> tuple[dict[str, object], int]:
    """Upload the business logo to S3 and store its public URL."""
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error

    if "logo" not in request.files:
        return jsonify({"error": "invalid_payload", "message": "Nenhuma imagem enviada"}), 400

    file = request.files["logo"]
    if file.filename == "":
        return jsonify({"error": "invalid_payload", "message": "Nenhuma imagem enviada"}), 400

    file_extension = file.filename.rsplit(".", 1)[-1].lower()
    if file_extension not in LOGO_EXTENSIONS:
        return jsonify({"error": "invalid_payload", "message": "Formato de imagem não suportado"}), 400

    bucket_name = current_app.config["AWS_S3_BUCKET"]
    s3_key = f"{business_id}/logo_{uuid.uuid4()}.{file_extension}"

    try:
        s3_client = boto3.client("s3")
        s3_client.upload_fileobj(
            file,
            bucket_name,
            s3_key,
            ExtraArgs={"ContentType": file.content_type or "image/png"},
        )
    except (BotoCoreError, ClientError) as exc:
        current_app.logger.exception("Failed to upload business logo", exc_info=exc)
        return jsonify({"error": "server_error", "message": "Erro ao enviar imagem"}), 500

    business.logo_url = f"https://{bucket_name}.s3.amazonaws.com/{s3_key}"
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save business logo URL", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"business": business.to_dict()}), 200


@bp_dashboard.get("/businesses/<int:business_id>/qrcode")
def business_qrcode(business_id: int):
    """PNG QR code pointing at the public booking page."""
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error

    booking_url = f"{current_app.config['APP_URL'].rstrip('/')}/{business.slug}"

    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(booking_url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return send_file(
        buffer,
        mimetype="image/png",
        as_attachment=request.args.get("download") == "true",
        download_name=f"qrcode-{business.slug}.png",
    )


# --- Services ---


@bp_dashboard.get("/businesses/<int:business_id>/services")
def list_services(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    services = Service.query.filter_by(business_id=business_id).order_by(Service.name.asc()).all()
    return jsonify({"services": [service.to_dict() for service in services]}), 200


def _apply_service_payload(service: Service, payload: dict) -> str | None:
    """Copy validated fields onto ``service``; return an error message on bad input."""
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            return "O nome do serviço é obrigatório"
        service.name = name
    if "duration" in payload:
        try:
            duration = int(payload.get("duration"))
        except (TypeError, ValueError):
            return "Duração inválida"
        if duration <= 0:
            return "Duração inválida"
        service.duration_minutes = duration
    if "price" in payload:
        try:
            price = float(payload.get("price") or 0)
        except (TypeError, ValueError):
            return "Preço inválido"
        if price < 0:
            return "Preço inválido"
        service.price_cents = int(round(price * 100))
    for field in ("description", "color"):
        if field in payload:
            setattr(service, field, payload.get(field))
    if "is_active" in payload:
        service.is_active = bool(payload.get("is_active"))
    return None


@bp_dashboard.post("/businesses/<int:business_id>/services")
def create_service(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    if not (payload.get("name") or "").strip():
        return jsonify({"error": "invalid_payload", "message": "O nome do serviço é obrigatório"}), 400

    service = Service(business_id=business_id, duration_minutes=DEFAULT_DURATION_MINUTES, price_cents=0)
    message = _apply_service_payload(service, payload)
    if message:
        return jsonify({"error": "invalid_payload", "message": message}), 400

    try:
        db.session.add(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"service": service.to_dict()}), 201


@bp_dashboard.put("/services/<int:service_id>")
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Serviço não encontrado"}), 404
    if service.business.owner_id != user_id:
        return jsonify({"error": "forbidden", "message": "Não autorizado"}), 403

    message = _apply_service_payload(service, request.get_json(silent=True) or {})
    if message:
        db.session.rollback()
        return jsonify({"error": "invalid_payload", "message": message}), 400

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"service": service.to_dict()}), 200


@bp_dashboard.delete("/services/<int:service_id>")
def delete_service(service_id: int):
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Serviço não encontrado"}), 404
    if service.business.owner_id != user_id:
        return jsonify({"error": "forbidden", "message": "Não autorizado"}), 403

    if Appointment.query.filter_by(service_id=service_id).first():
        # Keep history intact; the service just stops being bookable.
        service.is_active = False
    else:
        db.session.delete(service)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return "", 204


# --- Clients ---


@bp_dashboard.get("/businesses/<int:business_id>/clients")
def list_clients(business_id: int) -> tuple[dict[str, object], int]:
    """List a business's clients.
    ---
    tags:
      - Clients
    parameters:
      - name: business_id
        in: path
        type: integer
        required: true
      - name: search
        in: query
        type: string
        description: Matches name, email or phone
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 20
        maximum: 100
    responses:
      200:
        description: Paginated list of clients
      400:
        description: Invalid parameters
    """
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        page, limit = _pagination_args()
        query = Client.query.filter(Client.business_id == business_id)

        search = (request.args.get("search") or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Client.name.ilike(pattern),
                    Client.email.ilike(pattern),
                    Client.phone.ilike(pattern),
                )
            )

        total = query.count()
        clients = (
            query.order_by(Client.name.asc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
    except (ValueError, TypeError):
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch clients", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "clients": [client.to_dict() for client in clients],
            "pagination": _pagination(page, limit, total),
        }),
        200,
    )


# --- Appointments ---


@bp_dashboard.get("/businesses/<int:business_id>/appointments")
def list_appointments(business_id: int) -> tuple[dict[str, object], int]:
    """List appointments with optional filters.
    ---
    tags:
      - Appointments
    parameters:
      - name: business_id
        in: path
        type: integer
        required: true
      - name: start_date
        in: query
        type: string
        format: date
      - name: end_date
        in: query
        type: string
        format: date
      - name: status
        in: query
        type: string
        enum: [pending, confirmed, cancelled, completed]
      - name: client_id
        in: query
        type: integer
      - name: service_id
        in: query
        type: integer
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 20
    responses:
      200:
        description: Appointments ordered by start time, newest first
      400:
        description: Invalid parameters
    """
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        page, limit = _pagination_args()
        query = Appointment.query.filter(Appointment.business_id == business_id)

        start_date = request.args.get("start_date")
        if start_date:
            query = query.filter(Appointment.start_time >= datetime.fromisoformat(start_date))
        end_date = request.args.get("end_date")
        if end_date:
            end = datetime.fromisoformat(end_date)
            if len(end_date) == 10:
                end += timedelta(days=1)  # date only: include the whole day
            query = query.filter(Appointment.start_time < end)

        status = request.args.get("status")
        if status:
            if status not in APPOINTMENT_STATUSES:
                return jsonify({"error": "invalid_parameters", "message": "invalid status"}), 400
            query = query.filter(Appointment.status == status)
        if request.args.get("client_id"):
            query = query.filter(Appointment.client_id == int(request.args["client_id"]))
        if request.args.get("service_id"):
            query = query.filter(Appointment.service_id == int(request.args["service_id"]))

        total = query.count()
        appointments = (
            query.order_by(Appointment.start_time.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
    except (ValueError, TypeError):
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "appointments": [appointment.to_dict() for appointment in appointments],
            "pagination": _pagination(page, limit, total),
        }),
        200,
    )


@bp_dashboard.get("/businesses/<int:business_id>/appointments/upcoming")
def upcoming_appointments(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        limit = min(50, max(1, int(request.args.get("limit", 5))))
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_parameters"}), 400

    appointments = _upcoming(business_id, limit)
    return jsonify({"appointments": [appointment.to_dict() for appointment in appointments]}), 200


def _upcoming(business_id: int, limit: int) -> list[Appointment]:
    return (
        Appointment.query.filter(
            Appointment.business_id == business_id,
            Appointment.start_time >= datetime.now(),
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        .order_by(Appointment.start_time.asc())
        .limit(limit)
        .all()
    )


def _status_counts(business_id: int) -> dict[str, int]:
    rows = (
        db.session.query(Appointment.status, func.count(Appointment.appointment_id))
        .filter(Appointment.business_id == business_id)
        .group_by(Appointment.status)
        .all()
    )
    counts = {status: 0 for status in APPOINTMENT_STATUSES}
    counts.update({status: count for status, count in rows})
    counts["total"] = sum(count for _status, count in rows)
    return counts


@bp_dashboard.get("/businesses/<int:business_id>/appointments/stats")
def appointment_stats(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        stats = _status_counts(business_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute appointment stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"stats": stats}), 200


@bp_dashboard.post("/businesses/<int:business_id>/appointments")
def create_appointment(business_id: int) -> tuple[dict[str, object], int]:
    """Book an appointment from the dashboard.

    The client is either an existing ``client_id`` or a ``client`` object with
    name, email and phone, matched by email within the business.
    """
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}

    try:
        service = db.session.get(Service, int(payload.get("service_id")))
    except (TypeError, ValueError):
        service = None
    if service is None or service.business_id != business_id:
        return jsonify({"error": "invalid_payload", "message": "Serviço inválido"}), 400

    try:
        start_time = _parse_datetime(payload.get("start_time") or "")
    except ValueError:
        return jsonify({"error": "invalid_payload", "message": "start_time must be ISO-8601"}), 400

    status = payload.get("status") or "confirmed"
    if status not in APPOINTMENT_STATUSES:
        return jsonify({"error": "invalid_payload", "message": "invalid status"}), 400

    client = None
    if payload.get("client_id"):
        client = db.session.get(Client, payload["client_id"])
        if client is None or client.business_id != business_id:
            return jsonify({"error": "invalid_payload", "message": "Cliente inválido"}), 400
    else:
        client_data = payload.get("client") or {}
        name = (client_data.get("name") or "").strip()
        email = (client_data.get("email") or "").strip().lower() or None
        if not name:
            return jsonify({"error": "invalid_payload", "message": "O nome do cliente é obrigatório"}), 400
        if email:
            client = Client.query.filter_by(business_id=business_id, email=email).first()
        if client is None:
            client = Client(business_id=business_id, name=name, email=email)
            db.session.add(client)
        client.phone = format_phone_number(client_data.get("phone")) or client.phone

    end_time = start_time + timedelta(minutes=service.duration_minutes or DEFAULT_DURATION_MINUTES)
    if status in ACTIVE_APPOINTMENT_STATUSES and find_conflict(business_id, start_time, end_time):
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "Este horário já está ocupado"}), 409

    appointment = Appointment(
        business_id=business_id,
        service_id=service.service_id,
        client=client,
        start_time=start_time,
        end_time=end_time,
        status=status,
        notes=payload.get("notes"),
    )

    try:
        db.session.add(appointment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"appointment": appointment.to_dict()}), 201


@bp_dashboard.get("/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    appointment, error = _owned_appointment(appointment_id, user_id)
    if error:
        return error
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_dashboard.put("/appointments/<int:appointment_id>/status")
def update_appointment_status(appointment_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    appointment, error = _owned_appointment(appointment_id, user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if status not in APPOINTMENT_STATUSES:
        return (
            jsonify({
                "error": "invalid_payload",
                "message": f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}",
            }),
            400,
        )

    previous_status = appointment.status
    appointment.status = status
    if status == "completed" and appointment.completed_at is None:
        appointment.completed_at = datetime.now()

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update appointment status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    if status == "cancelled" and previous_status != "cancelled":
        owner = appointment.business.owner
        try:
            send_notification(owner.user_id, "cancellation", appointment_details(appointment), owner.email)
        except FunctionError as exc:
            current_app.logger.error("Failed to send cancellation notification: %s", exc)

    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_dashboard.delete("/appointments/<int:appointment_id>")
def delete_appointment(appointment_id: int):
    """Delete an appointment owned by the current user.
    ---
    tags:
      - Appointments
    parameters:
      - name: appointment_id
        in: path
        type: integer
        required: true
    responses:
      204:
        description: Appointment deleted
      401:
        description: No valid session
      403:
        description: Appointment belongs to another user's business
      404:
        description: Appointment not found
      500:
        description: Database error
    """
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    appointment, error = _owned_appointment(appointment_id, user_id)
    if error:
        return error

    try:
        db.session.delete(appointment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Erro interno do servidor"}), 500

    return "", 204


@bp_dashboard.post("/appointments/<int:appointment_id>/complete")
def complete_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Mark an appointment completed and email the client a feedback link."""
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    appointment, error = _owned_appointment(appointment_id, user_id)
    if error:
        return error

    token = secrets.token_urlsafe(32)
    appointment.status = "completed"
    appointment.feedback_token = token
    appointment.completed_at = datetime.now()

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to complete appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    feedback_url = f"{current_app.config['APP_URL'].rstrip('/')}/feedback/{token}"
    client = appointment.client
    if client and client.email:
        try:
            send_feedback_request_email(client.email, client.name, appointment.business.name, feedback_url)
        except FunctionError as exc:
            current_app.logger.error("Failed to send feedback email: %s", exc)
    else:
        current_app.logger.info("Appointment %s has no client email; feedback link not sent", appointment_id)

    return jsonify({"appointment": appointment.to_dict(), "feedback_url": feedback_url}), 200


# --- Working hours ---


@bp_dashboard.get("/businesses/<int:business_id>/hours")
def get_hours(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    slots = TimeSlot.query.filter_by(business_id=business_id).order_by(
        TimeSlot.day_of_week, TimeSlot.time
    ).all()
    grouped: dict[str, list[dict[str, object]]] = {str(day): [] for day in range(7)}
    for slot in slots:
        grouped[str(slot.day_of_week)].append(slot.to_dict())

    return jsonify({"working_days": working_days(business_id), "time_slots": grouped}), 200


@bp_dashboard.put("/businesses/<int:business_id>/hours/<int:day>")
def toggle_working_day(business_id: int, day: int) -> tuple[dict[str, object], int]:
    """Turn a weekday on or off; turning it off removes that day's slots."""
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    if day not in range(7):
        return jsonify({"error": "invalid_payload", "message": "day must be between 0 and 6"}), 400

    payload = request.get_json(silent=True) or {}
    if "is_working_day" not in payload:
        return jsonify({"error": "invalid_payload", "message": "is_working_day is required"}), 400
    is_working = bool(payload.get("is_working_day"))

    try:
        # Materialise the implicit schedule before the first explicit change.
        if not WorkingDay.query.filter_by(business_id=business_id).first():
            current = working_days(business_id)
            for weekday in range(7):
                db.session.add(
                    WorkingDay(business_id=business_id, day_of_week=weekday, is_working_day=weekday in current)
                )
            db.session.flush()

        row = WorkingDay.query.filter_by(business_id=business_id, day_of_week=day).first()
        row.is_working_day = is_working
        if not is_working:
            TimeSlot.query.filter_by(business_id=business_id, day_of_week=day).delete(
                synchronize_session=False
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update working day", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    time_slots = {str(weekday): times for weekday, times in slots_by_day(business_id).items()}
    return jsonify({"working_days": working_days(business_id), "time_slots": time_slots}), 200


@bp_dashboard.post("/businesses/<int:business_id>/hours/<int:day>/slots")
def add_time_slot(business_id: int, day: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    if day not in range(7):
        return jsonify({"error": "invalid_payload", "message": "day must be between 0 and 6"}), 400

    payload = request.get_json(silent=True) or {}
    try:
        slot_time = parse_time_of_day(payload.get("time"))
    except ValueError as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    if TimeSlot.query.filter_by(business_id=business_id, day_of_week=day, time=slot_time).first():
        return jsonify({"error": "conflict", "message": "Este horário já existe"}), 409

    slot = TimeSlot(business_id=business_id, day_of_week=day, time=slot_time)
    try:
        db.session.add(slot)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to add time slot", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"time_slot": slot.to_dict()}), 201


@bp_dashboard.delete("/time-slots/<int:slot_id>")
def remove_time_slot(slot_id: int):
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    slot = db.session.get(TimeSlot, slot_id)
    if slot is None:
        return jsonify({"error": "not_found", "message": "Horário não encontrado"}), 404

    _business, error = _owned_business(slot.business_id, user_id)
    if error:
        return error

    try:
        db.session.delete(slot)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to remove time slot", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return "", 204


# --- Holidays ---


@bp_dashboard.get("/businesses/<int:business_id>/holidays")
def list_holidays(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    holidays = Holiday.query.filter_by(business_id=business_id).order_by(Holiday.date.asc()).all()
    return jsonify({"holidays": [holiday.to_dict() for holiday in holidays]}), 200


@bp_dashboard.post("/businesses/<int:business_id>/holidays")
def add_holiday(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    description = (payload.get("description") or "").strip()
    try:
        holiday_date = datetime.strptime(payload.get("date") or "", "%Y-%m-%d").date()
    except ValueError:
        return jsonify({"error": "invalid_payload", "message": "date must be YYYY-MM-DD"}), 400
    if not description:
        return jsonify({"error": "invalid_payload", "message": "A descrição é obrigatória"}), 400

    if Holiday.query.filter_by(business_id=business_id, date=holiday_date).first():
        return jsonify({"error": "conflict", "message": "Já existe um feriado nesta data"}), 409

    holiday = Holiday(business_id=business_id, date=holiday_date, description=description)
    try:
        db.session.add(holiday)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to add holiday", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"holiday": holiday.to_dict()}), 201


@bp_dashboard.delete("/holidays/<int:holiday_id>")
def delete_holiday(holiday_id: int):
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    holiday = db.session.get(Holiday, holiday_id)
    if holiday is None:
        return jsonify({"error": "not_found", "message": "Feriado não encontrado"}), 404

    _business, error = _owned_business(holiday.business_id, user_id)
    if error:
        return error

    try:
        db.session.delete(holiday)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete holiday", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return "", 204


# --- Feedbacks ---


@bp_dashboard.get("/businesses/<int:business_id>/feedbacks")
def list_feedbacks(business_id: int) -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    _business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        page, limit = _pagination_args()
        query = Feedback.query.filter(Feedback.business_id == business_id)
        total = query.count()
        feedbacks = (
            query.order_by(Feedback.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        ratings = [rating for (rating,) in db.session.query(Feedback.rating).filter_by(business_id=business_id)]
        settings = db.session.get(UserSettings, user_id)
        currency = settings.currency if settings else "BRL"
    except (ValueError, TypeError):
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch feedbacks", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "feedbacks": [feedback.to_dict() for feedback in feedbacks],
            "average_rating": average_rating(ratings),
            "pagination": _pagination(page, limit, total),
        }),
        200,
    )


# --- User settings ---

SUPPORTED_CURRENCIES = ("BRL", "USD", "EUR")
SUPPORTED_THEMES = ("light", "dark", "system")


@bp_dashboard.get("/settings")
def get_user_settings() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    settings = db.session.get(UserSettings, user_id) or UserSettings(
        user_id=user_id, currency="BRL", theme="light", time_zone="America/Sao_Paulo"
    )
    return jsonify({"settings": settings.to_dict()}), 200


@bp_dashboard.put("/settings")
def update_user_settings() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "invalid_payload", "message": "body must be a JSON object"}), 400

    if "currency" in payload and payload["currency"] not in SUPPORTED_CURRENCIES:
        return jsonify({"error": "invalid_payload", "message": "unsupported currency"}), 400
    if "theme" in payload and payload["theme"] not in SUPPORTED_THEMES:
        return jsonify({"error": "invalid_payload", "message": "unsupported theme"}), 400
    business_id = None
    if payload.get("businessId") is not None:
        try:
            business_id = int(payload["businessId"])
        except (TypeError, ValueError):
            return jsonify({"error": "invalid_payload", "message": "businessId must be an integer"}), 400
        _business, error = _owned_business(business_id, user_id)
        if error:
            return error

    try:
        settings = db.session.get(UserSettings, user_id)
        if settings is None:
            settings = UserSettings(user_id=user_id)
            db.session.add(settings)
        if "currency" in payload:
            settings.currency = payload["currency"]
        if "theme" in payload:
            settings.theme = payload["theme"]
        if payload.get("timeZone"):
            settings.time_zone = payload["timeZone"]
        if "businessId" in payload:
            settings.business_id = business_id
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save user settings", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"settings": settings.to_dict()}), 200


# --- Dashboard ---


@bp_dashboard.get("/businesses/<int:business_id>/dashboard")
def dashboard_summary(business_id: int) -> tuple[dict[str, object], int]:
    """Headline numbers for the dashboard home page."""
    user_id = get_session_user_id()
    if not user_id:
        return _unauthorized()

    business, error = _owned_business(business_id, user_id)
    if error:
        return error

    try:
        counts = _status_counts(business_id)
        revenue_cents = (
            db.session.query(func.coalesce(func.sum(Service.price_cents), 0))
            .select_from(Service)
            .join(Appointment, Appointment.service_id == Service.service_id)
            .filter(Appointment.business_id == business_id, Appointment.status == "completed")
            .scalar()
        )
        ratings = [rating for (rating,) in db.session.query(Feedback.rating).filter_by(business_id=business_id)]
        settings = db.session.get(UserSettings, user_id)
        currency = settings.currency if settings else "BRL"
        summary = {
            "business": business.to_dict(),
            "appointments": counts,
            "clients": Client.query.filter_by(business_id=business_id).count(),
            "services": Service.query.filter_by(business_id=business_id, is_active=True).count(),
            "revenue": revenue_cents / 100.0,
            "revenue_formatted": format_currency(revenue_cents, currency),
            "average_rating": average_rating(ratings),
            "feedback_count": len(ratings),
            "upcoming": [appointment.to_dict() for appointment in _upcoming(business_id, 5)],
        }
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to build dashboard summary", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"dashboard": summary}), 200
