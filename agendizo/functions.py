"""Named backend functions invoked by the application.

Application code never talks to the email provider directly: it invokes a
function by name with a JSON-like body, and gets back a ``FunctionResponse``
carrying either ``data`` or ``error``. Failures inside a function are
reported through ``error`` rather than raised, so call sites decide whether
a failed delivery matters to them.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import NamedTuple

import resend
from flask import current_app, render_template

logger = logging.getLogger(__name__)

EMAIL_TEMPLATES = {
    "new-appointment": "email/new-appointment.html",
    "appointment-reminder": "email/appointment-reminder.html",
    "appointment-cancelled": "email/appointment-cancelled.html",
}


class FunctionError(Exception):
    """Raised when a backend function fails or reports an error."""


class FunctionResponse(NamedTuple):
    data: dict | None
    error: Exception | None


_registry: dict[str, Callable[[dict], dict]] = {}


def backend_function(name: str):
    def decorator(func: Callable[[dict], dict]) -> Callable[[dict], dict]:
        _registry[name] = func
        return func

    return decorator


class FunctionsClient:
    def invoke(self, name: str, body: dict | None = None) -> FunctionResponse:
        handler = _registry.get(name)
        if handler is None:
            return FunctionResponse(None, FunctionError(f"Function not found: {name}"))

        try:
            data = handler(body or {})
        except FunctionError as exc:
            logger.warning("Function %s failed: %s", name, exc)
            return FunctionResponse(None, exc)

        return FunctionResponse(data, None)


def get_functions_client() -> FunctionsClient:
    return FunctionsClient()


@backend_function("send-email")
def send_email(body: dict) -> dict:
    to = body.get("to")
    subject = body.get("subject")
    template = body.get("template")
    data = body.get("data")

    if not to or not subject or not template or not data or not isinstance(data, Mapping):
        raise FunctionError("Dados inválidos")

    template_name = EMAIL_TEMPLATES.get(template)
    if template_name is None:
        raise FunctionError(f"Template desconhecido: {template}")

    html = render_template(template_name, **data)
    return _deliver(to, subject, html)


@backend_function("send-feedback-email")
def send_feedback_email(body: dict) -> dict:
    to = body.get("to")
    feedback_url = body.get("feedback_url")
    if not to or not feedback_url:
        raise FunctionError("Dados inválidos")

    business_name = body.get("business_name") or ""
    html = render_template(
        "email/feedback-request.html",
        customer_name=body.get("customer_name") or "",
        business_name=business_name,
        feedback_url=feedback_url,
    )
    return _deliver(to, f"Como foi seu atendimento? - {business_name}", html)


@backend_function("send-email-internal")
def send_email_internal(body: dict) -> dict:
    to = body.get("to")
    subject = body.get("subject")
    html = body.get("html")
    if not to or not subject or not html:
        raise FunctionError("Dados inválidos")

    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        raise FunctionError("Email service not configured")

    resend.api_key = api_key
    recipients = [to] if isinstance(to, str) else list(to)
    try:
        response = resend.Emails.send({
            "from": current_app.config["EMAIL_FROM"],
            "to": recipients,
            "subject": subject,
            "html": html,
        })
    except Exception as exc:
        logger.error("Email send error to %s: %s", recipients, exc)
        raise FunctionError(f"Failed to send email: {exc}") from exc

    logger.info("Email sent to %s", recipients)
    return {"success": True, "id": response.get("id") if isinstance(response, dict) else None}


def _deliver(to, subject: str, html: str) -> dict:
    response = get_functions_client().invoke(
        "send-email-internal", {"to": to, "subject": subject, "html": html}
    )
    if response.error is not None:
        raise FunctionError(str(response.error))
    return {"success": True}
