from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional


# "1.377,19", "0,00", "12,5" is not accepted (DetranNet always renders two decimals).
_BRL_AMOUNT_RE = re.compile(r"\d[\d.]*,\d{2}")
_CENTS = Decimal("0.01")


def brl_to_decimal(value: str) -> Decimal:
    """
    Parse Brazilian-formatted money like:
    - "R$ 1.377,19"
    - "1.234,56"
    - "0,00"
    - "R$ 150" (no decimals)

    Raises ValueError when nothing numeric is left after cleaning.
    """
    if value is None:
        raise ValueError("brl_to_decimal: value is None")

    s = value.strip()
    if not s:
        raise ValueError("brl_to_decimal: empty string")

    m = _BRL_AMOUNT_RE.search(s)
    if m:
        s = m.group(0)

    # Thousands separators out, decimal comma to point, then drop anything else (asterisks, symbols).
    s = s.replace("R$", "").replace(".", "").replace(",", ".", 1)
    s = re.sub(r"[^\d.]", "", s)
    if not s or s == ".":
        raise ValueError(f"brl_to_decimal: no numeric content in {value!r}")

    try:
        dec = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"brl_to_decimal: cannot parse {value!r}") from e
    return dec.quantize(_CENTS, rounding=ROUND_HALF_UP)


def parse_brl(value: Optional[str]) -> Optional[Decimal]:
    """Like brl_to_decimal(), but returns None instead of raising (field-level miss)."""
    try:
        return brl_to_decimal(value or "")
    except ValueError:
        return None


def looks_like_brl(text: str) -> bool:
    """Currency marker or a `digits,digits` decimal-comma number."""
    s = text or ""
    return "R$" in s or bool(re.search(r"[\d.]+,\d{2}", s))


def format_brl(value: Decimal) -> str:
    dec = Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
    # 1,234.56 -> 1.234,56
    us = f"{dec:,.2f}"
    return "R$ " + us.replace(",", "_").replace(".", ",").replace("_", ".")
