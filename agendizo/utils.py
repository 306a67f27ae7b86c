"""Small formatting and validation helpers."""
from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{3,}$")
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
PHONE_PARTIAL_PATTERN = re.compile(r"(\d{2})?(\d{5})?(\d{4})?")
PHONE_FULL_PATTERN = re.compile(r"(\d{2})(\d{5})(\d{4})")


def format_phone_number(value: str | None) -> str:
    """Format a Brazilian phone number as ``(DD) DDDDD-DDDD``.

    Partial input is formatted group by group, so the function can be used
    while the number is still being typed. Digits beyond the eleventh are
    dropped.
    """
    if not value:
        return ""

    digits = re.sub(r"\D", "", value)
    if len(digits) > 11:
        return PHONE_FULL_PATTERN.sub(r"(\1) \2-\3", digits[:11])

    def _format(match: re.Match) -> str:
        area, prefix, suffix = match.groups()
        formatted = ""
        if area:
            formatted += f"({area})"
        if prefix:
            formatted += f" {prefix}"
        if suffix:
            formatted += f"-{suffix}"
        return formatted.strip()

    return PHONE_PARTIAL_PATTERN.sub(_format, digits, count=1)


def slugify(name: str) -> str:
    normalized = unicodedata.normalize("NFKD", name or "")
    ascii_name = normalized.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")


def is_valid_slug(slug: str | None) -> bool:
    return bool(slug) and bool(SLUG_PATTERN.match(slug))


def parse_time_of_day(value: str | None) -> str:
    """Validate an ``H:mm`` / ``HH:mm`` string and return it zero-padded."""
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError("Use o formato HH:mm (exemplo: 09:00)")
    hours, minutes = match.groups()
    return f"{int(hours):02d}:{minutes}"


def average_rating(ratings: Iterable[int]) -> float:
    values = list(ratings)
    if not values:
        return 0
    return round(sum(values) / len(values), 1)


def format_currency(amount_cents: int, currency: str = "BRL") -> str:
    """Render an amount in cents the way the pt-BR locale prints money."""
    symbol = "R$" if currency == "BRL" else currency
    whole = f"{amount_cents / 100:,.2f}"
    # 1,234.56 -> 1.234,56
    localized = whole.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{symbol} {localized}"
