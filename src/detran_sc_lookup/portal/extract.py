from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ..models import VehicleRecord
from ..util.dates import br_timestamp
from .detect import PageKind, classify_page
from .diagnostics import ExtractionDiagnostics
from .debts import parse_debt_items, resolve_total_debts
from .fields import NO_RESTRICTIONS, extract_vehicle_fields
from .outcome import Outcome
from .selectors import DetranSelectors
from .snapshot import FrameSnapshot


# Placeholders shown when DetranNet didn't give us the field.
DEFAULT_MODEL = "Consultado no Detran"
DEFAULT_COLOR = "-"
DEFAULT_MUNICIPALITY = "SC"
NOT_FOUND_RESTRICTIONS = "Não encontrado"


def build_record(
    plate: str,
    snapshot: Optional[FrameSnapshot],
    *,
    now: Optional[datetime] = None,
    selectors: Optional[DetranSelectors] = None,
    diagnostics: Optional[ExtractionDiagnostics] = None,
) -> VehicleRecord:
    """
    Turn the result frame's snapshot into the canonical record.

    `snapshot=None` means no frame held a result. Scalar fields fall back to placeholders;
    found_in_source, total_debts and debt_details always reflect what was actually observed.
    """
    sel = selectors or DetranSelectors()
    diag = diagnostics or ExtractionDiagnostics(plate=plate)
    now = now or datetime.now()
    today: date = now.date()

    kind = classify_page(snapshot.text, sel) if snapshot is not None else PageKind.UNKNOWN
    diag.note("Result page classified as %s.", kind.value)

    found = kind is PageKind.VEHICLE_DATA
    if not found:
        return VehicleRecord(
            plate=plate,
            model=DEFAULT_MODEL,
            color=DEFAULT_COLOR,
            municipality=DEFAULT_MUNICIPALITY,
            licensing_year=today.year,
            restrictions=NOT_FOUND_RESTRICTIONS,
            has_restrictions=False,
            total_debts=Decimal("0.00"),
            last_update=br_timestamp(now),
            debt_details=(),
            found_in_source=False,
        )

    fields = extract_vehicle_fields(snapshot.text)
    for name, extracted in fields.items():
        if extracted.outcome is Outcome.MISSING:
            diag.note("Field %s not found; using default.", name)
        elif extracted.outcome is Outcome.AMBIGUOUS:
            diag.note("Field %s matched several values; kept %r.", name, extracted.value)

    total = resolve_total_debts(snapshot, selectors=sel, diagnostics=diag)
    if total.is_missing:
        diag.note("Total debts not found; reporting 0.")
    items = parse_debt_items(snapshot, today=today, selectors=sel, diagnostics=diag)

    restrictions = fields.restrictions.value
    return VehicleRecord(
        plate=fields.plate.or_default(plate),
        model=fields.model.or_default(DEFAULT_MODEL) or DEFAULT_MODEL,
        color=fields.color.or_default(DEFAULT_COLOR) or DEFAULT_COLOR,
        municipality=fields.municipality.or_default(DEFAULT_MUNICIPALITY),
        licensing_year=fields.licensing_year.or_default(today.year),
        restrictions=restrictions.text if restrictions else NO_RESTRICTIONS,
        has_restrictions=restrictions.has_restrictions if restrictions else False,
        total_debts=total.or_default(Decimal("0.00")),
        last_update=br_timestamp(now),
        debt_details=tuple(items),
        found_in_source=True,
    )
