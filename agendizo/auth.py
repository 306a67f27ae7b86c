"""Signed session tokens for dashboard users."""
from __future__ import annotations

from flask import Response, current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")


def build_token(payload: dict[str, object]) -> str:
    return _serializer().dumps(payload)


def get_session_user_id() -> int | None:
    """Return the user_id of the current session, or None.

    The token is read from the session cookie first, then from an
    ``Authorization: Bearer`` header. Missing, tampered and expired tokens
    all yield None.
    """
    token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None
        token = auth_header[7:]

    try:
        payload = _serializer().loads(token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
    except (SignatureExpired, BadSignature):
        return None

    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    return int(user_id) if user_id is not None else None


def set_session_cookie(response: Response, token: str) -> Response:
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        max_age=current_app.config["AUTH_TOKEN_MAX_AGE"],
        httponly=True,
        samesite="Lax",
        secure=not current_app.config.get("TESTING", False) and not current_app.debug,
    )
    return response


def clear_session_cookie(response: Response) -> Response:
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response
