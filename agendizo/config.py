"""Configuration objects for the Agendizo backend."""
from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///agendizo.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public URL of the web frontend, used for redirects and shareable links.
    APP_URL = os.environ.get("APP_URL", "http://localhost:3000")

    AUTH_COOKIE_NAME = "agendizo_session"
    AUTH_TOKEN_MAX_AGE = 86400

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_IDS = {
        "basic": {
            "monthly": os.environ.get("STRIPE_BASIC_PRICE_MONTHLY"),
            "yearly": os.environ.get("STRIPE_BASIC_PRICE_YEARLY"),
        },
        "pro": {
            "monthly": os.environ.get("STRIPE_PRO_PRICE_MONTHLY"),
            "yearly": os.environ.get("STRIPE_PRO_PRICE_YEARLY"),
        },
        "enterprise": {
            "monthly": os.environ.get("STRIPE_ENTERPRISE_PRICE_MONTHLY"),
            "yearly": os.environ.get("STRIPE_ENTERPRISE_PRICE_YEARLY"),
        },
    }

    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "Agendizo <noreply@agendizo.com>")
    TEST_EMAIL_RECIPIENT = os.environ.get("TEST_EMAIL_RECIPIENT", "seu-email@teste.com")

    AWS_S3_BUCKET = os.environ.get("AWS_S3_BUCKET", "business-logos")

    AUTO_COMPLETE_INTERVAL_SECONDS = int(os.environ.get("AUTO_COMPLETE_INTERVAL_SECONDS", 60))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    APP_URL = "http://testserver"
    STRIPE_SECRET_KEY = "sk_test_123"
    STRIPE_WEBHOOK_SECRET = "whsec_test_123"
    STRIPE_PRICE_IDS = {
        "basic": {"monthly": "price_basic_monthly", "yearly": "price_basic_yearly"},
        "pro": {"monthly": "price_pro_monthly", "yearly": "price_pro_yearly"},
        "enterprise": {"monthly": "price_enterprise_monthly", "yearly": "price_enterprise_yearly"},
    }
    RESEND_API_KEY = "re_test_123"
