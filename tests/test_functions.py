"""Tests for the named backend functions that render and deliver email."""
from __future__ import annotations

from agendizo.functions import FunctionError, get_functions_client

EMAIL_BODY = {
    "to": "cliente@example.com",
    "subject": "Novo agendamento confirmado - Salão Teste",
    "template": "new-appointment",
    "data": {
        "business_name": "Salão Teste",
        "client_name": "Cliente Teste",
        "service_name": "Corte de Cabelo",
        "date": "01/01/2024",
        "time": "14:00",
        "price": "50.00",
    },
}


def test_send_email_renders_template_and_delivers(app, mock_resend) -> None:
    response = get_functions_client().invoke("send-email", EMAIL_BODY)

    assert response.error is None
    assert response.data == {"success": True}

    mock_resend.Emails.send.assert_called_once()
    params = mock_resend.Emails.send.call_args.args[0]
    assert params["from"] == app.config["EMAIL_FROM"]
    assert params["to"] == ["cliente@example.com"]
    assert params["subject"] == EMAIL_BODY["subject"]
    assert "Cliente Teste" in params["html"]
    assert "Corte de Cabelo" in params["html"]
    assert "R$ 50.00" in params["html"]


def test_price_line_is_omitted_without_price(app, mock_resend) -> None:
    data = {key: value for key, value in EMAIL_BODY["data"].items() if key != "price"}
    get_functions_client().invoke("send-email", {**EMAIL_BODY, "data": data})

    html = mock_resend.Emails.send.call_args.args[0]["html"]
    assert "R$" not in html


def test_send_email_rejects_missing_fields(app, mock_resend) -> None:
    response = get_functions_client().invoke("send-email", {"to": "cliente@example.com"})

    assert response.data is None
    assert isinstance(response.error, FunctionError)
    assert str(response.error) == "Dados inválidos"
    mock_resend.Emails.send.assert_not_called()


def test_send_email_rejects_non_mapping_data(app, mock_resend) -> None:
    response = get_functions_client().invoke("send-email", {**EMAIL_BODY, "data": "oops"})

    assert response.data is None
    assert isinstance(response.error, FunctionError)
    assert str(response.error) == "Dados inválidos"
    mock_resend.Emails.send.assert_not_called()


def test_send_email_rejects_unknown_template(app, mock_resend) -> None:
    response = get_functions_client().invoke("send-email", {**EMAIL_BODY, "template": "birthday"})

    assert "birthday" in str(response.error)
    mock_resend.Emails.send.assert_not_called()


def test_unknown_function_returns_error(app) -> None:
    response = get_functions_client().invoke("does-not-exist", {})

    assert response.data is None
    assert "does-not-exist" in str(response.error)


def test_delivery_fails_without_api_key(app, mock_resend) -> None:
    app.config["RESEND_API_KEY"] = None

    response = get_functions_client().invoke("send-email", EMAIL_BODY)

    assert str(response.error) == "Email service not configured"
    mock_resend.Emails.send.assert_not_called()


def test_provider_exception_becomes_function_error(app, mock_resend) -> None:
    mock_resend.Emails.send.side_effect = RuntimeError("rate limited")

    response = get_functions_client().invoke("send-email", EMAIL_BODY)

    assert isinstance(response.error, FunctionError)
    assert "rate limited" in str(response.error)


def test_send_feedback_email_includes_link(app, mock_resend) -> None:
    response = get_functions_client().invoke(
        "send-feedback-email",
        {
            "to": "cliente@example.com",
            "customer_name": "Cliente Teste",
            "business_name": "Salão Teste",
            "feedback_url": "http://testserver/feedback/abc123",
        },
    )

    assert response.error is None
    params = mock_resend.Emails.send.call_args.args[0]
    assert params["subject"] == "Como foi seu atendimento? - Salão Teste"
    assert "http://testserver/feedback/abc123" in params["html"]
