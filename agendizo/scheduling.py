"""Working hours, slot availability and the auto-complete sweep."""
from __future__ import annotations

import logging
import time as time_module
from datetime import date, datetime, timedelta

import click
from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import (ACTIVE_APPOINTMENT_STATUSES, Appointment, Holiday,
                     TimeSlot, WorkingDay)

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DAYS = [1, 2, 3, 4, 5]
DEFAULT_DURATION_MINUTES = 60


def day_of_week(day: date) -> int:
    """Weekday number with 0=Sunday, the convention used by stored schedules."""
    return (day.weekday() + 1) % 7


def slots_by_day(business_id: int) -> dict[int, list[str]]:
    slots: dict[int, list[str]] = {}
    rows = (
        TimeSlot.query.filter_by(business_id=business_id)
        .order_by(TimeSlot.day_of_week, TimeSlot.time)
        .all()
    )
    for slot in rows:
        slots.setdefault(slot.day_of_week, []).append(slot.time)
    return slots


def working_days(business_id: int) -> list[int]:
    """Days the business takes bookings.

    Without explicit working-day rows, the days that have time slots count as
    working days, and Monday to Friday when there are no slots either.
    """
    rows = WorkingDay.query.filter_by(business_id=business_id).all()
    if rows:
        return sorted(row.day_of_week for row in rows if row.is_working_day)

    days_with_slots = sorted(slots_by_day(business_id))
    return days_with_slots or list(DEFAULT_WORKING_DAYS)


def is_holiday(business_id: int, day: date) -> bool:
    return Holiday.query.filter_by(business_id=business_id, date=day).first() is not None


def available_times(business_id: int, day: date, now: datetime | None = None) -> list[str]:
    now = now or datetime.now()

    if day < now.date():
        return []
    if is_holiday(business_id, day):
        return []

    weekday = day_of_week(day)
    if weekday not in working_days(business_id):
        return []

    day_slots = sorted(slots_by_day(business_id).get(weekday, []))
    if not day_slots:
        return []

    start_of_day = datetime.combine(day, datetime.min.time())
    end_of_day = start_of_day + timedelta(days=1)
    booked = (
        Appointment.query.filter(
            Appointment.business_id == business_id,
            Appointment.start_time >= start_of_day,
            Appointment.start_time < end_of_day,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        .all()
    )
    occupied = {appointment.start_time.strftime("%H:%M") for appointment in booked}

    times = []
    for slot in day_slots:
        if slot in occupied:
            continue
        if day == now.date() and combine_slot(day, slot) < now:
            continue
        times.append(slot)
    return times


def combine_slot(day: date, slot: str) -> datetime:
    hours, minutes = slot.split(":")
    return datetime.combine(day, datetime.min.time()).replace(hour=int(hours), minute=int(minutes))


def find_conflict(business_id: int, start: datetime, end: datetime) -> Appointment | None:
    """Return an active appointment overlapping ``[start, end)``, if any."""
    return (
        Appointment.query.filter(
            Appointment.business_id == business_id,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        .order_by(Appointment.start_time)
        .first()
    )


def complete_past_appointments(now: datetime | None = None) -> int:
    """Mark every unfinished appointment whose end time has passed as completed."""
    now = now or datetime.now()
    overdue = Appointment.query.filter(
        Appointment.status.notin_(("completed", "cancelled")),
        Appointment.end_time < now,
    ).all()

    for appointment in overdue:
        appointment.status = "completed"

    if overdue:
        db.session.commit()
    return len(overdue)


def run_auto_complete(interval_seconds: int | None = None, iterations: int | None = None) -> None:
    """Run the sweep forever (or ``iterations`` times), sleeping between passes."""
    interval = interval_seconds or current_app.config["AUTO_COMPLETE_INTERVAL_SECONDS"]
    count = 0
    while iterations is None or count < iterations:
        try:
            completed = complete_past_appointments()
            if completed:
                logger.info("Auto-completed %s appointments", completed)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Error auto-completing appointments: %s", exc)
        count += 1
        if iterations is None or count < iterations:
            time_module.sleep(interval)


def register_commands(app: Flask) -> None:
    @app.cli.command("complete-appointments")
    @click.option("--loop", is_flag=True, help="Keep running, one sweep per interval.")
    def complete_appointments_command(loop: bool) -> None:
        """Mark appointments whose end time has passed as completed."""
        if loop:
            run_auto_complete()
        else:
            completed = complete_past_appointments()
            click.echo(f"Completed {completed} appointments")

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Create database tables and subscription plans."""
        from .billing import sync_plan_prices

        db.create_all()
        sync_plan_prices()
        click.echo("Database tables initialized")
