from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser


BR_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def parse_br_date(value: str) -> date:
    """
    Parse DetranNet due dates like:
    - "30/06/2026"
    - "01/01/2020"
    """
    if value is None:
        raise ValueError("parse_br_date: value is None")
    s = value.strip()
    if not BR_DATE_RE.match(s):
        raise ValueError(f"parse_br_date: expected DD/MM/YYYY, got {value!r}")
    dt = date_parser.parse(s, dayfirst=True, yearfirst=False)
    # dateutil swaps day and month when the month is impossible ("05/13/2020"); DetranNet never does.
    if (dt.day, dt.month) != (int(s[:2]), int(s[3:5])):
        raise ValueError(f"parse_br_date: not a valid DD/MM/YYYY date: {value!r}")
    return dt.date()


def format_br_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def is_overdue(due_date: date, *, today: Optional[date] = None) -> bool:
    """Strictly before the current calendar day; items due today are not overdue yet."""
    return due_date < (today or date.today())


def br_timestamp(now: Optional[datetime] = None) -> str:
    # Same shape as JS `toLocaleString('pt-BR')`: "19/10/2026, 14:03:22"
    return (now or datetime.now()).strftime("%d/%m/%Y, %H:%M:%S")
