"""Owner notifications routed through each user's notification settings."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

import resend
from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from .emails import (send_appointment_cancelled_email,
                     send_appointment_reminder_email,
                     send_new_appointment_email)
from .extensions import db
from .functions import FunctionError
from .models import NotificationLog, NotificationSettings

logger = logging.getLogger(__name__)

NOTIFICATION_KINDS = {
    "new_appointment": ("new_appointment", send_new_appointment_email),
    "reminder": ("reminder", send_appointment_reminder_email),
    "cancellation": ("cancellation", send_appointment_cancelled_email),
}


def default_settings(user_id: int) -> NotificationSettings:
    return NotificationSettings(
        user_id=user_id,
        email_new_appointment=True,
        email_reminder=True,
        email_cancellation=True,
        sms_new_appointment=False,
        sms_reminder=False,
        sms_cancellation=False,
        whatsapp_new_appointment=False,
        whatsapp_reminder=False,
        whatsapp_cancellation=False,
    )


def appointment_details(appointment) -> dict[str, object]:
    """Email props describing an appointment."""
    return {
        "business_name": appointment.business.name,
        "client_name": appointment.client.name,
        "service_name": appointment.service.name,
        "date": appointment.start_time.strftime("%d/%m/%Y"),
        "time": appointment.start_time.strftime("%H:%M"),
        "price": appointment.service.price_cents / 100.0,
    }


def send_notification(
    user_id: int,
    kind: str,
    details: Mapping[str, object],
    user_email: str,
) -> None:
    """Fan an appointment event out to the channels the user enabled.

    Only email is actually delivered; SMS and WhatsApp are logged. The event
    is recorded in the notification history before email failures surface.
    """
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f"unknown notification kind: {kind}")

    event, sender = NOTIFICATION_KINDS[kind]

    settings = db.session.get(NotificationSettings, user_id)
    if settings is None:
        logger.error("Notification settings not found for user %s", user_id)
        return

    email_error: FunctionError | None = None
    if getattr(settings, f"email_{event}"):
        try:
            sender(user_email, details)
        except FunctionError as exc:
            email_error = exc

    if getattr(settings, f"sms_{event}"):
        logger.info("SMS notification would be sent: type=%s details=%s", kind, dict(details))

    if getattr(settings, f"whatsapp_{event}"):
        logger.info("WhatsApp notification would be sent: type=%s details=%s", kind, dict(details))

    try:
        db.session.add(
            NotificationLog(
                user_id=user_id,
                notification_type=kind,
                status="sent",
                details=dict(details),
            )
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to record notification for user %s: %s", user_id, exc)

    if email_error is not None:
        raise email_error


def send_test_notification(to: str, notification_type: str) -> dict:
    """Send a test email straight through Resend."""
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        raise FunctionError("Email service not configured")

    resend.api_key = api_key
    html = render_template(
        "email/notification-test.html",
        notification_type=notification_type,
        sent_at=datetime.now().strftime("%d/%m/%Y %H:%M:%S"),
    )
    try:
        return resend.Emails.send({
            "from": current_app.config["EMAIL_FROM"],
            "to": [to],
            "subject": "Teste de Notificação - Agendizo",
            "html": html,
        })
    except Exception as exc:
        logger.error("Test notification to %s failed: %s", to, exc)
        raise FunctionError(f"Failed to send email: {exc}") from exc
