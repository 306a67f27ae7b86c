"""Database models for the Agendizo backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


APPOINTMENT_STATUSES = ("pending", "confirmed", "cancelled", "completed")

# Appointments in these states block their time slot.
ACTIVE_APPOINTMENT_STATUSES = ("pending", "confirmed")


class Profile(db.Model):
    __tablename__ = "profiles"

    user_id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    bio = db.Column(db.Text)
    avatar_url = db.Column(db.String(500))
    slug = db.Column(db.String(100))
    category = db.Column(db.String(100))
    social_links = db.Column(db.JSON, nullable=True, default=dict)
    subscription_status = db.Column(db.String(30), nullable=False, server_default="inactive")
    subscription_tier = db.Column(db.String(30), nullable=False, server_default="free")
    subscription_end_date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    businesses = db.relationship("Business", back_populates="owner", lazy="dynamic")
    auth_account = db.relationship("AuthAccount", back_populates="user", uselist=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "slug": self.slug,
            "category": self.category,
            "social_links": self.social_links or {},
            "subscription_status": self.subscription_status,
            "subscription_tier": self.subscription_tier,
            "subscription_end_date": (
                self.subscription_end_date.isoformat() if self.subscription_end_date else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("Profile", back_populates="auth_account")


class Business(db.Model):
    """A tenant: one service provider with a public booking page."""

    __tablename__ = "businesses"

    business_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    business_type = db.Column(db.String(100))
    address = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    zip_code = db.Column(db.String(20))
    country = db.Column(db.String(100))
    phone = db.Column(db.String(30))
    email = db.Column(db.String(255))
    website = db.Column(db.String(255))
    logo_url = db.Column(db.String(500))
    banner_url = db.Column(db.String(500))
    logo_size = db.Column(db.String(20))
    primary_color = db.Column(db.String(20))
    secondary_color = db.Column(db.String(20))
    font_family = db.Column(db.String(100))
    theme = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    owner = db.relationship("Profile", back_populates="businesses")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.business_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "type": self.business_type,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "logo_url": self.logo_url,
            "banner_url": self.banner_url,
            "logo_size": self.logo_size,
            "primary_color": self.primary_color,
            "secondary_color": self.secondary_color,
            "font_family": self.font_family,
            "theme": self.theme,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Service(db.Model):
    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    color = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    business = db.relationship("Business")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "business_id": self.business_id,
            "name": self.name,
            "description": self.description,
            "duration": self.duration_minutes,
            "price_cents": self.price_cents,
            "price": self.price_cents / 100.0,
            "color": self.color,
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("business_id", "email", name="uq_client_business_email"),
    )

    client_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    business = db.relationship("Business")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.client_id,
            "business_id": self.business_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Appointment(db.Model):
    """A booking linking a client and a service to a time range."""

    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    notes = db.Column(db.Text)
    feedback_token = db.Column(db.String(64), unique=True)
    feedback_submitted = db.Column(db.Boolean, nullable=False, server_default="0")
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    business = db.relationship("Business")
    service = db.relationship("Service")
    client = db.relationship("Client")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "business_id": self.business_id,
            "service_id": self.service_id,
            "service": self.service.to_dict() if self.service else None,
            "client_id": self.client_id,
            "client": self.client.to_dict() if self.client else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status,
            "notes": self.notes,
            "feedback_submitted": bool(self.feedback_submitted),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class WorkingDay(db.Model):
    __tablename__ = "working_days"
    __table_args__ = (
        db.UniqueConstraint("business_id", "day_of_week", name="uq_working_day"),
    )

    working_day_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Sunday, 6=Saturday
    is_working_day = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.working_day_id,
            "business_id": self.business_id,
            "day_of_week": self.day_of_week,
            "is_working_day": bool(self.is_working_day),
        }


class TimeSlot(db.Model):
    __tablename__ = "time_slots"
    __table_args__ = (
        db.UniqueConstraint("business_id", "day_of_week", "time", name="uq_time_slot"),
    )

    time_slot_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Sunday, 6=Saturday
    time = db.Column(db.String(5), nullable=False)  # HH:mm

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.time_slot_id,
            "business_id": self.business_id,
            "day_of_week": self.day_of_week,
            "time": self.time,
        }


class Holiday(db.Model):
    __tablename__ = "holidays"

    holiday_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.holiday_id,
            "business_id": self.business_id,
            "date": self.date.isoformat() if self.date else None,
            "description": self.description,
        }


class Feedback(db.Model):
    """Client rating left through the emailed feedback link."""

    __tablename__ = "feedbacks"

    feedback_id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=True)
    client_name = db.Column(db.String(150), nullable=False)
    client_email = db.Column(db.String(255))
    rating = db.Column(db.Integer, nullable=False)  # 1-5 stars
    comment = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    client = db.relationship("Client")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.feedback_id,
            "business_id": self.business_id,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "rating": self.rating,
            "comment": self.comment,
            "client": self.client.to_dict() if self.client else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plans"

    plan_id = db.Column(db.String(30), primary_key=True)  # basic, pro, enterprise
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price_monthly_cents = db.Column(db.Integer, nullable=False)
    price_yearly_cents = db.Column(db.Integer, nullable=False)
    stripe_price_id_monthly = db.Column(db.String(100))
    stripe_price_id_yearly = db.Column(db.String(100))

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.plan_id,
            "name": self.name,
            "description": self.description,
            "price_monthly": self.price_monthly_cents,
            "price_yearly": self.price_yearly_cents,
            "stripe_price_id_monthly": self.stripe_price_id_monthly,
            "stripe_price_id_yearly": self.stripe_price_id_yearly,
        }


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    subscription_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), unique=True, nullable=False)
    plan_id = db.Column(db.String(30), db.ForeignKey("subscription_plans.plan_id"), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active")
    current_period_start = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    stripe_subscription_id = db.Column(db.String(255), unique=True)
    stripe_customer_id = db.Column(db.String(255))
    billing_cycle = db.Column(db.String(10), nullable=False, default="monthly")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    plan = db.relationship("SubscriptionPlan")
    user = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.subscription_id,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "status": self.status,
            "current_period_start": (
                self.current_period_start.isoformat() if self.current_period_start else None
            ),
            "current_period_end": (
                self.current_period_end.isoformat() if self.current_period_end else None
            ),
            "cancel_at_period_end": bool(self.cancel_at_period_end),
            "cycle": self.billing_cycle,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


NOTIFICATION_SETTING_FIELDS = (
    "email_new_appointment",
    "email_reminder",
    "email_cancellation",
    "sms_new_appointment",
    "sms_reminder",
    "sms_cancellation",
    "whatsapp_new_appointment",
    "whatsapp_reminder",
    "whatsapp_cancellation",
)


class NotificationSettings(db.Model):
    """Per-user switches for which channel fires on which appointment event."""

    __tablename__ = "notification_settings"

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), primary_key=True)
    email_new_appointment = db.Column(db.Boolean, nullable=False, default=True)
    email_reminder = db.Column(db.Boolean, nullable=False, default=True)
    email_cancellation = db.Column(db.Boolean, nullable=False, default=True)
    sms_new_appointment = db.Column(db.Boolean, nullable=False, default=False)
    sms_reminder = db.Column(db.Boolean, nullable=False, default=False)
    sms_cancellation = db.Column(db.Boolean, nullable=False, default=False)
    whatsapp_new_appointment = db.Column(db.Boolean, nullable=False, default=False)
    whatsapp_reminder = db.Column(db.Boolean, nullable=False, default=False)
    whatsapp_cancellation = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"user_id": self.user_id}
        for field in NOTIFICATION_SETTING_FIELDS:
            data[field] = bool(getattr(self, field))
        return data


class NotificationLog(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), nullable=False)
    notification_type = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="sent")
    details = db.Column(db.JSON, nullable=True, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.notification_id,
            "user_id": self.user_id,
            "type": self.notification_type,
            "status": self.status,
            "details": self.details or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserSettings(db.Model):
    """Dashboard preferences: currency, theme, time zone and selected business."""

    __tablename__ = "user_settings"

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.user_id"), primary_key=True)
    currency = db.Column(db.String(3), nullable=False, default="BRL")
    theme = db.Column(db.String(20), nullable=False, default="light")
    time_zone = db.Column(db.String(64), nullable=False, default="America/Sao_Paulo")
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.business_id"), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "currency": self.currency,
            "theme": self.theme,
            "timeZone": self.time_zone,
            "businessId": self.business_id,
        }
