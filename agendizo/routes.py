"""HTTP routes for accounts, billing, notifications and diagnostics."""
from __future__ import annotations

from datetime import datetime, timezone

import stripe
from flask import Blueprint, current_app, jsonify, make_response, redirect, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import billing
from .auth import (build_token, clear_session_cookie, get_session_user_id,
                   set_session_cookie)
from .emails import (send_appointment_cancelled_email,
                     send_appointment_reminder_email,
                     send_new_appointment_email)
from .extensions import db
from .functions import FunctionError
from .models import (NOTIFICATION_SETTING_FIELDS, AuthAccount,
                     NotificationSettings, Profile, Subscription,
                     SubscriptionPlan)
from .notifications import default_settings, send_test_notification
from .utils import format_phone_number

bp = Blueprint("api", __name__)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.get("/config")
def email_config() -> tuple[dict[str, str], int]:
    """Report whether the email provider key is configured, without exposing it."""
    configured = bool(current_app.config.get("RESEND_API_KEY"))
    return jsonify({"resendApiKey": "configured" if configured else "not_configured"}), 200


@bp.get("/test-email")
def test_email() -> tuple[dict[str, object], int]:
    """Send one of each appointment email to the configured test recipient.
    ---
    tags:
      - Diagnostics
    responses:
      200:
        description: All three emails were accepted
      500:
        description: A send failed; the error message is returned
    """
    sample = {
        "business_name": "Salão Teste",
        "client_name": "Cliente Teste",
        "service_name": "Corte de Cabelo",
        "date": "01/01/2024",
        "time": "14:00",
        "price": 50.00,
    }
    recipient = current_app.config["TEST_EMAIL_RECIPIENT"]

    try:
        send_new_appointment_email(recipient, sample)
        send_appointment_reminder_email(recipient, sample)
        send_appointment_cancelled_email(recipient, sample)
    except FunctionError as exc:
        current_app.logger.error("Test email run failed: %s", exc)
        return jsonify({"error": str(exc)}), 500

    return jsonify({"success": True}), 200


# --- Authentication ---


@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a business owner account.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            password:
              type: string
            fullName:
              type: string
            metadata:
              type: object
              properties:
                slug:
                  type: string
                category:
                  type: string
                phone:
                  type: string
          required:
            - email
            - password
            - fullName
    responses:
      201:
        description: Account created; the session cookie is set
      400:
        description: Missing fields or email already registered
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    full_name = (payload.get("fullName") or "").strip()
    metadata = payload.get("metadata") or {}

    if not email or not password or not full_name:
        return jsonify({"error": "invalid_payload", "message": "Todos os campos são obrigatórios"}), 400

    if Profile.query.filter_by(email=email).first():
        return jsonify({"error": "invalid_payload", "message": "email address is already in use"}), 400

    try:
        profile = Profile(
            email=email,
            full_name=full_name,
            phone=format_phone_number(metadata.get("phone")) or None,
            slug=metadata.get("slug") or None,
            category=metadata.get("category") or None,
            social_links={},
            subscription_status="inactive",
            subscription_tier="free",
        )
        db.session.add(profile)
        db.session.flush()  # Get the new user_id before creating dependents

        db.session.add(AuthAccount(user_id=profile.user_id, password_hash=generate_password_hash(password)))
        db.session.add(default_settings(profile.user_id))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Erro interno do servidor"}), 500

    token = build_token({"user_id": profile.user_id})
    response = make_response(jsonify({"token": token, "user": profile.to_dict()}), 201)
    return set_session_cookie(response, token)


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "invalid_payload", "message": "email and password are required"}), 400

    record = (
        db.session.query(Profile, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == Profile.user_id)
        .filter(Profile.email == email)
        .first()
    )
    if not record:
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    profile, auth_account = record
    if not check_password_hash(auth_account.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    auth_account.last_login_at = datetime.now(timezone.utc)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token({"user_id": profile.user_id})
    response = make_response(jsonify({"token": token, "user": profile.to_dict()}), 200)
    return set_session_cookie(response, token)


@bp.post("/auth/logout")
def logout():
    response = redirect(current_app.config["APP_URL"].rstrip("/") + "/")
    return clear_session_cookie(response)


@bp.get("/profile")
def get_profile() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    profile = db.session.get(Profile, user_id)
    if profile is None:
        return jsonify({"error": "not_found", "message": "Perfil não encontrado"}), 404

    return jsonify({"profile": profile.to_dict()}), 200


@bp.put("/profile")
def update_profile() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    profile = db.session.get(Profile, user_id)
    if profile is None:
        return jsonify({"error": "not_found", "message": "Perfil não encontrado"}), 404

    payload = request.get_json(silent=True) or {}

    if "full_name" in payload:
        full_name = (payload.get("full_name") or "").strip()
        if not full_name:
            return jsonify({"error": "invalid_payload", "message": "full_name cannot be empty"}), 400
        profile.full_name = full_name
    if "phone" in payload:
        profile.phone = format_phone_number(payload.get("phone")) or None
    for field in ("bio", "avatar_url", "category"):
        if field in payload:
            setattr(profile, field, payload.get(field) or None)
    if "social_links" in payload:
        social_links = payload.get("social_links") or {}
        if not isinstance(social_links, dict):
            return jsonify({"error": "invalid_payload", "message": "social_links must be an object"}), 400
        profile.social_links = social_links

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update user profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"profile": profile.to_dict()}), 200


# --- Billing ---


@bp.post("/checkout")
def create_checkout_session() -> tuple[dict[str, object], int]:
    """Create a Stripe Checkout session for a subscription price.
    ---
    tags:
      - Billing
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - priceId
            - successUrl
            - cancelUrl
          properties:
            priceId:
              type: string
            successUrl:
              type: string
            cancelUrl:
              type: string
    responses:
      200:
        description: Hosted checkout URL to redirect the browser to
      400:
        description: Missing required fields
      401:
        description: No valid session
      500:
        description: Stripe error or billing not configured
    """
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Unauthorized"}), 401

    payload = request.get_json(silent=True) or {}
    price_id = payload.get("priceId")
    success_url = payload.get("successUrl")
    cancel_url = payload.get("cancelUrl")

    if not price_id or not success_url or not cancel_url:
        return jsonify({"error": "invalid_payload", "message": "Missing required fields"}), 400

    profile = db.session.get(Profile, user_id)

    try:
        session = billing.get_stripe_session(
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=str(user_id),
            customer_email=profile.email if profile else None,
        )
    except billing.BillingNotConfigured:
        current_app.logger.warning("Stripe secret key not configured")
        return jsonify({"error": "server_error", "message": "Internal server error"}), 500
    except stripe.error.StripeError as exc:
        current_app.logger.exception("Stripe API error while creating checkout session", exc_info=exc)
        return jsonify({"error": "payment_error", "message": "Internal server error"}), 500

    current_app.logger.info("Created Stripe checkout session %s for user %s", session.id, user_id)
    return jsonify({"url": session.url}), 200


@bp.post("/webhooks/stripe")
def stripe_webhook():
    """Stripe webhook endpoint keeping subscriptions in sync.
    ---
    tags:
      - Billing
    parameters:
      - name: Stripe-Signature
        in: header
        required: true
        type: string
    responses:
      200:
        description: Event received
      400:
        description: Invalid payload or signature, or processing failed
    """
    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")

    try:
        event = billing.construct_event(payload, sig_header)
    except billing.BillingNotConfigured:
        current_app.logger.error("Stripe webhook secret not configured - webhooks will not be processed")
        return jsonify({"error": "server_error"}), 500
    except ValueError:
        current_app.logger.warning("Invalid webhook payload")
        return jsonify({"error": "invalid_payload"}), 400
    except stripe.error.SignatureVerificationError:
        current_app.logger.warning("Invalid signature for webhook")
        return jsonify({"error": "invalid_signature"}), 400

    try:
        billing.handle_event(event)
    except (SQLAlchemyError, stripe.error.StripeError, KeyError, IndexError, ValueError) as exc:
        db.session.rollback()
        current_app.logger.exception("Error processing webhook", exc_info=exc)
        return jsonify({"error": "webhook_error"}), 400

    return jsonify({"received": True}), 200


@bp.get("/plans")
def list_plans() -> tuple[dict[str, object], int]:
    try:
        plans = SubscriptionPlan.query.order_by(SubscriptionPlan.price_monthly_cents.asc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch subscription plans", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"plans": [billing.plan_to_dict(plan) for plan in plans]}), 200


@bp.get("/plans/<plan_id>")
def get_plan(plan_id: str) -> tuple[dict[str, object], int]:
    plan = db.session.get(SubscriptionPlan, plan_id)
    if plan is None:
        return jsonify({"error": "not_found", "message": "Plano não encontrado"}), 404

    return jsonify({"plan": billing.plan_to_dict(plan)}), 200


@bp.get("/subscription")
def get_subscription() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    subscription = Subscription.query.filter_by(user_id=user_id).first()
    if subscription is None:
        return jsonify({"subscription": billing.free_subscription(user_id)}), 200

    data = subscription.to_dict()
    if subscription.plan:
        data["plan"] = billing.plan_to_dict(subscription.plan)
    return jsonify({"subscription": data}), 200


# --- Notifications ---


@bp.post("/notifications/test")
def test_notification() -> tuple[dict[str, object], int]:
    """Send a test email for one of the user's enabled notification settings.
    ---
    tags:
      - Notifications
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            type:
              type: string
              example: email_new_appointment
            userId:
              type: integer
    responses:
      200:
        description: Test email sent
      400:
        description: Missing fields or notification disabled
      401:
        description: No valid session
      403:
        description: userId is not the session user
      500:
        description: Settings lookup or email delivery failed
    """
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    payload = request.get_json(silent=True) or {}
    notification_type = payload.get("type")
    target_user_id = payload.get("userId")

    if not notification_type or not target_user_id:
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "Tipo de notificação e ID do usuário são obrigatórios",
            }),
            400,
        )

    if str(target_user_id) != str(user_id):
        return jsonify({"error": "forbidden", "message": "Não autorizado"}), 403

    try:
        settings = db.session.get(NotificationSettings, user_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch notification settings", exc_info=exc)
        settings = None
    if settings is None:
        return jsonify({"error": "server_error", "message": "Erro ao buscar configurações de notificação"}), 500

    if notification_type not in NOTIFICATION_SETTING_FIELDS or not getattr(settings, notification_type):
        return jsonify({"error": "invalid_payload", "message": "Esta notificação está desabilitada"}), 400

    profile = db.session.get(Profile, user_id)
    try:
        email_data = send_test_notification(profile.email, notification_type)
    except FunctionError as exc:
        current_app.logger.error("Failed to send test notification: %s", exc)
        return jsonify({"error": "server_error", "message": "Erro ao enviar email de teste"}), 500

    return jsonify({"success": True, "emailData": email_data}), 200


@bp.get("/notification-settings")
def get_notification_settings() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    settings = db.session.get(NotificationSettings, user_id) or default_settings(user_id)
    return jsonify({"settings": settings.to_dict()}), 200


@bp.put("/notification-settings")
def update_notification_settings() -> tuple[dict[str, object], int]:
    user_id = get_session_user_id()
    if not user_id:
        return jsonify({"error": "unauthorized", "message": "Não autorizado"}), 401

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "invalid_payload", "message": "body must be a JSON object"}), 400
    unknown = set(payload) - set(NOTIFICATION_SETTING_FIELDS)
    if unknown:
        return (
            jsonify({"error": "invalid_payload", "message": f"unknown settings: {', '.join(sorted(unknown))}"}),
            400,
        )

    try:
        settings = db.session.get(NotificationSettings, user_id)
        if settings is None:
            settings = default_settings(user_id)
            db.session.add(settings)
        for field, value in payload.items():
            setattr(settings, field, bool(value))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save notification settings", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"settings": settings.to_dict()}), 200
