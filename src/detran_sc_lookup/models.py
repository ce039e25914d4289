from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .util.dates import format_br_date


class DebtCategory(str, Enum):
    IPVA = "IPVA"
    LICENCIAMENTO = "Licenciamento"
    MULTA = "Multa"
    SEGURO = "Seguro"
    TAXA = "Taxa"
    # DetranNet rows that don't name a known charge kind.
    OVERDUE = "Débito Vencido"


class DebtLineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    due_date: date
    value: Decimal = Field(ge=0)
    category: DebtCategory = DebtCategory.OVERDUE

    def to_response(self) -> dict:
        return {
            "description": self.description,
            "type": self.category.value,
            "dueDate": format_br_date(self.due_date),
            "value": float(self.value),
        }


class VehicleRecord(BaseModel):
    """
    Canonical vehicle/debt record.

    When `found_in_source` is False every descriptive field holds a placeholder and must not be
    shown as DetranNet data.
    """

    model_config = ConfigDict(frozen=True)

    plate: str
    model: str
    color: str
    municipality: str
    licensing_year: int
    restrictions: str
    has_restrictions: bool
    total_debts: Decimal
    last_update: str
    debt_details: tuple[DebtLineItem, ...] = ()
    found_in_source: bool

    def to_response(self) -> dict:
        return {
            "plate": self.plate,
            "model": self.model,
            "color": self.color,
            "municipality": self.municipality,
            "licensingYear": self.licensing_year,
            "restrictions": self.restrictions,
            "hasRestrictions": self.has_restrictions,
            "totalDebts": float(self.total_debts),
            "lastUpdate": self.last_update,
            "foundInSource": self.found_in_source,
            "debtDetails": [d.to_response() for d in self.debt_details],
        }


class ConsultationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: VehicleRecord
    # Operator-facing trace only; never part of the record.
    diagnostics: tuple[str, ...] = ()
