from __future__ import annotations

import re
from typing import Optional

from .errors import PlateValidationError


PLATE_RE = re.compile(r"^[A-Z0-9]{7}$")


def validate_plate(value: Optional[str]) -> str:
    """
    Accept only 7 uppercase letters/digits (old "ABC1234" and Mercosul "ABC1D23" formats).

    No normalization happens here; callers that take free-form input should use normalize_plate_input().
    """
    if not value:
        raise PlateValidationError("Por favor, informe a placa do veículo.")
    if len(value) != 7:
        raise PlateValidationError("A placa deve conter exatamente 7 caracteres.")
    if not PLATE_RE.fullmatch(value):
        raise PlateValidationError("A placa deve conter apenas letras maiúsculas e números.")
    return value


def normalize_plate_input(value: str) -> str:
    # Mirrors the web form: upper-case and drop anything that isn't A-Z/0-9 ("abc-1d23" -> "ABC1D23").
    return re.sub(r"[^A-Z0-9]", "", (value or "").upper())
