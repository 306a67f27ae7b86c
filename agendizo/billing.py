"""Subscription billing on top of Stripe Checkout."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from .extensions import db
from .models import Profile, Subscription, SubscriptionPlan, utc_now

logger = logging.getLogger(__name__)

PLAN_FEATURES = {
    "basic": [
        "Até 50 agendamentos por mês",
        "1 usuário",
        "1 negócio",
        "Agendamento online",
        "Lembretes por email",
        "Suporte por email",
        "7 dias grátis",
    ],
    "pro": [
        "Agendamentos ilimitados",
        "Até 3 usuários",
        "Até 3 negócios",
        "Agendamento online",
        "Lembretes por email e SMS",
        "Integração com Google Calendar",
        "Relatórios básicos",
        "Suporte prioritário",
        "7 dias grátis",
    ],
    "enterprise": [
        "Agendamentos ilimitados",
        "Usuários ilimitados",
        "Negócios ilimitados",
        "Agendamento online",
        "Lembretes por email, SMS e WhatsApp",
        "Integração com Google Calendar",
        "Relatórios avançados",
        "API personalizada",
        "Suporte VIP",
        "7 dias grátis",
    ],
}

PLAN_TIERS = {"basic": "basic", "pro": "professional", "enterprise": "enterprise"}

STRIPE_STATUS_MAP = {"active": "active", "past_due": "past_due", "canceled": "cancelled"}


class BillingNotConfigured(Exception):
    """Raised when Stripe credentials are missing."""


def _configure_stripe() -> None:
    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        raise BillingNotConfigured("Stripe secret key not configured")
    stripe.api_key = stripe_key


def plan_to_dict(plan: SubscriptionPlan) -> dict[str, object]:
    data = plan.to_dict()
    data["features"] = PLAN_FEATURES.get(plan.plan_id, [])
    return data


def free_subscription(user_id: int) -> dict[str, object]:
    """Placeholder returned to users without a paid subscription."""
    now = utc_now().isoformat()
    return {
        "id": None,
        "user_id": user_id,
        "plan": {
            "id": "free",
            "name": "free",
            "price_monthly": 0,
            "price_yearly": 0,
            "features": ["Versão gratuita do Agendizo"],
        },
        "status": "inactive",
        "amount": 0,
        "cycle": "monthly",
        "current_period_start": now,
        "current_period_end": now,
        "created_at": now,
        "updated_at": now,
        "invoices": [],
    }


def get_stripe_session(
    price_id: str,
    success_url: str,
    cancel_url: str,
    client_reference_id: str,
    customer_email: str | None = None,
):
    """Create a hosted Checkout session for a subscription price."""
    _configure_stripe()
    return stripe.checkout.Session.create(
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=success_url,
        cancel_url=cancel_url,
        client_reference_id=client_reference_id,
        customer_email=customer_email,
        locale="pt-BR",
        allow_promotion_codes=True,
        billing_address_collection="auto",
        metadata={"userId": client_reference_id},
    )


def construct_event(payload: bytes, signature: str | None):
    webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        raise BillingNotConfigured("Stripe webhook secret not configured")
    return stripe.Webhook.construct_event(payload, signature, webhook_secret)


def resolve_plan(price_id: str) -> tuple[str | None, str]:
    """Return ``(plan_id, billing_cycle)`` for a Stripe price id."""
    for plan in SubscriptionPlan.query.all():
        if plan.stripe_price_id_monthly == price_id:
            return plan.plan_id, "monthly"
        if plan.stripe_price_id_yearly == price_id:
            return plan.plan_id, "yearly"
    return None, "monthly"


def _from_timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def handle_checkout_completed(session) -> None:
    user_id = session.get("client_reference_id")
    subscription_id = session.get("subscription")
    if not user_id or not subscription_id:
        logger.info("Checkout session without client reference or subscription; skipping")
        return

    _configure_stripe()
    stripe_subscription = stripe.Subscription.retrieve(subscription_id)
    price_id = stripe_subscription["items"]["data"][0]["price"]["id"]

    plan_id, billing_cycle = resolve_plan(price_id)
    if plan_id is None:
        logger.warning("No subscription plan matches Stripe price %s", price_id)
        return

    period_start = _from_timestamp(stripe_subscription.get("current_period_start"))
    period_end = _from_timestamp(stripe_subscription.get("current_period_end"))

    subscription = Subscription.query.filter_by(user_id=int(user_id)).first()
    if subscription is None:
        subscription = Subscription(user_id=int(user_id))
        db.session.add(subscription)

    subscription.plan_id = plan_id
    subscription.status = "active"
    subscription.current_period_start = period_start
    subscription.current_period_end = period_end
    subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))
    subscription.stripe_subscription_id = subscription_id
    subscription.stripe_customer_id = stripe_subscription.get("customer")
    subscription.billing_cycle = billing_cycle

    profile = db.session.get(Profile, int(user_id))
    if profile is not None:
        profile.subscription_status = "active"
        profile.subscription_tier = PLAN_TIERS.get(plan_id, "enterprise")
        profile.subscription_end_date = period_end

    db.session.commit()


def handle_subscription_updated(stripe_subscription) -> None:
    subscription = Subscription.query.filter_by(
        stripe_subscription_id=stripe_subscription.get("id")
    ).first()
    if subscription is None:
        return

    status = STRIPE_STATUS_MAP.get(stripe_subscription.get("status"), "inactive")
    period_end = _from_timestamp(stripe_subscription.get("current_period_end"))

    subscription.status = status
    subscription.current_period_start = _from_timestamp(
        stripe_subscription.get("current_period_start")
    )
    subscription.current_period_end = period_end
    subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))

    profile = db.session.get(Profile, subscription.user_id)
    if profile is not None:
        profile.subscription_status = status
        profile.subscription_end_date = period_end

    db.session.commit()


def handle_subscription_deleted(stripe_subscription) -> None:
    subscription = Subscription.query.filter_by(
        stripe_subscription_id=stripe_subscription.get("id")
    ).first()
    if subscription is None:
        return

    subscription.status = "cancelled"

    profile = db.session.get(Profile, subscription.user_id)
    if profile is not None:
        profile.subscription_status = "inactive"

    db.session.commit()


WEBHOOK_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}


def handle_event(event) -> None:
    handler = WEBHOOK_HANDLERS.get(event.get("type"))
    if handler is None:
        return
    handler(event.get("data", {}).get("object", {}))


def sync_plan_prices() -> None:
    """Copy configured Stripe price ids onto the plan rows, creating them if needed."""
    defaults = {
        "basic": ("Básico", 4990, 47900),
        "pro": ("Profissional", 9990, 95900),
        "enterprise": ("Empresarial", 19990, 191900),
    }
    price_ids = current_app.config.get("STRIPE_PRICE_IDS", {})
    for plan_id, (name, monthly, yearly) in defaults.items():
        plan = db.session.get(SubscriptionPlan, plan_id)
        if plan is None:
            plan = SubscriptionPlan(
                plan_id=plan_id,
                name=name,
                price_monthly_cents=monthly,
                price_yearly_cents=yearly,
            )
            db.session.add(plan)
        prices = price_ids.get(plan_id, {})
        plan.stripe_price_id_monthly = prices.get("monthly") or plan.stripe_price_id_monthly
        plan.stripe_price_id_yearly = prices.get("yearly") or plan.stripe_price_id_yearly
    db.session.commit()
