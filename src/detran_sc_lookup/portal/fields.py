"""
Label-anchored scalar extraction from a DetranNet result frame's rendered text.

DetranNet renders each field as a label cell with the value on the following line, e.g.::

    Placa
    PAS3I64	Renavam ...
    Marca/Modelo
    108661 - I/CHEV ONIX 1.0
    Município de Emplacamento
    SAO JOSE 	Licenciado

Values run until the next tab or newline; neighbouring labels sometimes bleed into the same line and
are cut off by TRAILING_LABEL_PATTERNS.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .outcome import Extracted


TRAILING_LABEL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.I) for p in (r"Fabricação.*", r"Carroceria.*", r"Licenciado.*", r"Categoria.*")
)

NO_RESTRICTIONS = "Sem Restrições"
_NO_RESTRICTION_TOKENS = ("nenhuma", "nada consta")

_PLATE_RE = re.compile(r"Placa\s*[\r\n]+\s*([A-Z0-9]{7})", re.I)
_MODEL_RE = re.compile(r"Marca/Modelo\s*[\r\n]+\s*(.*)", re.I)
_COLOR_RE = re.compile(r"\bCor\s*[\r\n]+\s*(.*)", re.I)
_MUNICIPALITY_RE = re.compile(r"Município de Emplacamento\s*[\r\n]+\s*(.*)", re.I)
_RESTRICTIONS_RE = re.compile(r"Restrições\s*[\r\n]+\s*(.*)", re.I)
_LICENSED_YEAR_RE = re.compile(r"Licenciado\s*[\r\n]+\s*(\d{4})", re.I)
_MANUFACTURE_YEAR_RE = re.compile(r"Fabricação/Modelo\s*[\r\n]+\s*(\d{4})", re.I)

_LEADING_MODEL_CODE_RE = re.compile(r"^\d+\s*-\s*")
_LEADING_COLOR_CODE_RE = re.compile(r"^\d+\s*-?")


def clean_value(raw: str) -> str:
    val = raw.split("\t")[0].split("\n")[0].strip()
    for pattern in TRAILING_LABEL_PATTERNS:
        val = pattern.sub("", val)
    return val.strip()


def extract_after_label(pattern: re.Pattern[str], text: str) -> Extracted[str]:
    """
    Value following a label. Empty-after-cleaning counts as missing; several different values for the
    same label are reported as ambiguous (first wins).
    """
    values: list[str] = []
    for m in pattern.finditer(text or ""):
        val = clean_value(m.group(1) or "")
        if val:
            values.append(val)
    if not values:
        return Extracted.missing()
    if len(set(values)) > 1:
        return Extracted.ambiguous(values[0])
    return Extracted.found(values[0])


def strip_model_code(value: str) -> str:
    # "108661 - I/CHEV ONIX" -> "I/CHEV ONIX"
    return _LEADING_MODEL_CODE_RE.sub("", value).strip()


def strip_color_code(value: str) -> str:
    # "4-BRANCA" / "4 BRANCA" -> "BRANCA"
    return _LEADING_COLOR_CODE_RE.sub("", value).strip()


def extract_plate(text: str) -> Extracted[str]:
    return extract_after_label(_PLATE_RE, text).map(str.upper)


def extract_model(text: str) -> Extracted[str]:
    return extract_after_label(_MODEL_RE, text).map(strip_model_code)


def extract_color(text: str) -> Extracted[str]:
    return extract_after_label(_COLOR_RE, text).map(strip_color_code)


def extract_municipality(text: str) -> Extracted[str]:
    return extract_after_label(_MUNICIPALITY_RE, text)


def extract_licensing_year(text: str) -> Extracted[int]:
    for pattern in (_LICENSED_YEAR_RE, _MANUFACTURE_YEAR_RE):
        m = pattern.search(text or "")
        if m:
            return Extracted.found(int(m.group(1)))
    return Extracted.missing()


@dataclass(frozen=True)
class Restrictions:
    text: str
    has_restrictions: bool


def normalize_restrictions(raw: str) -> Restrictions:
    lowered = (raw or "").lower()
    if any(tok in lowered for tok in _NO_RESTRICTION_TOKENS):
        return Restrictions(NO_RESTRICTIONS, False)
    return Restrictions(raw, True)


def extract_restrictions(text: str) -> Extracted[Restrictions]:
    return extract_after_label(_RESTRICTIONS_RE, text).map(normalize_restrictions)


@dataclass(frozen=True)
class VehicleFields:
    plate: Extracted[str]
    model: Extracted[str]
    color: Extracted[str]
    municipality: Extracted[str]
    licensing_year: Extracted[int]
    restrictions: Extracted[Restrictions]

    def items(self) -> list[tuple[str, Extracted]]:
        return [
            ("plate", self.plate),
            ("model", self.model),
            ("color", self.color),
            ("municipality", self.municipality),
            ("licensing_year", self.licensing_year),
            ("restrictions", self.restrictions),
        ]


def extract_vehicle_fields(text: str) -> VehicleFields:
    return VehicleFields(
        plate=extract_plate(text),
        model=extract_model(text),
        color=extract_color(text),
        municipality=extract_municipality(text),
        licensing_year=extract_licensing_year(text),
        restrictions=extract_restrictions(text),
    )
