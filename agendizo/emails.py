"""Transactional appointment emails.

Each sender builds the subject line and forwards ``{to, subject, template,
data}`` to the ``send-email`` backend function, which owns the HTML.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping

from .functions import FunctionError, get_functions_client

logger = logging.getLogger(__name__)


def _base_data(props: Mapping[str, object]) -> dict[str, object]:
    return {
        "business_name": props["business_name"],
        "client_name": props["client_name"],
        "service_name": props["service_name"],
        "date": props["date"],
        "time": props["time"],
    }


def _invoke_send_email(body: dict, failure_message: str) -> bool:
    try:
        response = get_functions_client().invoke("send-email", body)
    except Exception as exc:
        logger.error("%s: %s", failure_message, exc)
        raise

    if response.error is not None:
        logger.error("%s: %s", failure_message, response.error)
        if isinstance(response.error, FunctionError):
            raise response.error
        raise FunctionError(str(response.error)) from response.error

    return True


def send_new_appointment_email(to: str, props: Mapping[str, object]) -> bool:
    data = _base_data(props)
    data["price"] = f"{float(props['price']):.2f}"

    return _invoke_send_email(
        {
            "to": to,
            "subject": f"Novo agendamento confirmado - {props['business_name']}",
            "template": "new-appointment",
            "data": data,
        },
        "Failed to send new appointment email",
    )


def send_appointment_reminder_email(to: str, props: Mapping[str, object]) -> bool:
    return _invoke_send_email(
        {
            "to": to,
            "subject": f"Lembrete de agendamento - {props['business_name']}",
            "template": "appointment-reminder",
            "data": _base_data(props),
        },
        "Failed to send appointment reminder email",
    )


def send_appointment_cancelled_email(to: str, props: Mapping[str, object]) -> bool:
    return _invoke_send_email(
        {
            "to": to,
            "subject": f"Agendamento cancelado - {props['business_name']}",
            "template": "appointment-cancelled",
            "data": _base_data(props),
        },
        "Failed to send appointment cancellation email",
    )


def send_feedback_request_email(to: str, customer_name: str, business_name: str, feedback_url: str) -> bool:
    """Ask a client to rate a completed appointment."""
    response = get_functions_client().invoke(
        "send-feedback-email",
        {
            "to": to,
            "customer_name": customer_name,
            "business_name": business_name,
            "feedback_url": feedback_url,
        },
    )
    if response.error is not None:
        logger.error("Failed to send feedback email to %s: %s", to, response.error)
        raise FunctionError(str(response.error))
    return True
