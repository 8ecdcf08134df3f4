"""
Text formatting for 58mm receipts.

Amounts are Indonesian Rupiah without decimals, dates use Indonesian
month abbreviations, matching what the admin dashboard shows.
"""

import re
import textwrap
from datetime import date, datetime
from typing import Union

DateLike = Union[str, date, datetime]

MONTHS = ["Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des"]


def format_currency(amount: float) -> str:
    """Format an amount as IDR, e.g. 1500000 -> "Rp 1.500.000"."""
    value = int(round(amount or 0))
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,}".replace(",", ".")
    return f"{sign}Rp {digits}"


def parse_date(value: DateLike) -> datetime:
    """Accept datetime, date, or ISO 8601 strings (with or without a Z suffix)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def format_date(value: DateLike) -> str:
    """Format as "05 Mar 2025".

    Strings that are not ISO dates come back unchanged, so a malformed
    field from the backend still prints instead of failing the job.
    """
    try:
        d = parse_date(value)
    except ValueError:
        return str(value)
    return f"{d.day:02d} {MONTHS[d.month - 1]} {d.year}"


def format_datetime(value: DateLike) -> str:
    """Format as "05 Mar 2025, 14.30", or the input unchanged if unparseable."""
    try:
        d = parse_date(value)
    except ValueError:
        return str(value)
    return f"{format_date(d)}, {d.hour:02d}.{d.minute:02d}"


def alphanumeric(value: str) -> str:
    """Strip everything but ASCII letters and digits (safe CODE128 content)."""
    return re.sub(r"[^A-Za-z0-9]", "", value or "")


def wrap(text: str, width: int) -> list[str]:
    """Wrap text into lines of at most `width` characters.

    Existing line breaks are kept; blank input gives one empty line.
    """
    lines: list[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        lines.extend(
            textwrap.wrap(paragraph, width=width, break_long_words=True) or [""]
        )
    return lines
