from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Optional

from ..models import DebtCategory, DebtLineItem
from ..util.dates import BR_DATE_RE, is_overdue, parse_br_date
from ..util.money import looks_like_brl, parse_brl
from .detect import fold_text
from .diagnostics import ExtractionDiagnostics
from .outcome import Extracted
from .selectors import DetranSelectors
from .snapshot import FrameSnapshot, RowSnapshot, TableSnapshot, normalize_ws


# Keyword -> category, checked in order against the folded description.
_CATEGORY_KEYWORDS: tuple[tuple[str, DebtCategory], ...] = (
    ("ipva", DebtCategory.IPVA),
    ("licenciamento", DebtCategory.LICENCIAMENTO),
    ("multa", DebtCategory.MULTA),
    ("infracao", DebtCategory.MULTA),
    ("dpvat", DebtCategory.SEGURO),
    ("seguro", DebtCategory.SEGURO),
    ("taxa", DebtCategory.TAXA),
)

_AMOUNT_ONLY_RE = re.compile(r"^\d+,\d{2}$")


def classify_debt(description: str) -> DebtCategory:
    folded = fold_text(description)
    for keyword, category in _CATEGORY_KEYWORDS:
        if keyword in folded:
            return category
    return DebtCategory.OVERDUE


def _total_from_row(row: RowSnapshot, label: str) -> Optional[Decimal]:
    # The total sits in the right-most cell by convention; scan backwards.
    for cell in reversed(row.cells):
        cell_text = cell.strip()
        if not looks_like_brl(cell_text):
            continue
        # "Total dos Débitos R$ 1.377,19" in one cell: drop the label first.
        candidate = normalize_ws(cell_text).replace(label, "").strip()
        value = parse_brl(candidate)
        if value is not None:
            return value
    return None


def resolve_total_debts(
    snapshot: FrameSnapshot,
    *,
    selectors: Optional[DetranSelectors] = None,
    diagnostics: Optional[ExtractionDiagnostics] = None,
) -> Extracted[Decimal]:
    """
    Aggregate "Total dos Débitos" figure from the first matching table row that yields a number.

    MISSING (not an error) when no row or cell qualifies; callers treat that as zero.
    """
    sel = selectors or DetranSelectors()
    diag = diagnostics or ExtractionDiagnostics()

    label = sel.total_debts_label
    matched_rows = 0
    for row in snapshot.rows:
        if label not in row.normalized_text:
            continue
        matched_rows += 1
        diag.note("Total row text: %s", row.normalized_text)
        value = _total_from_row(row, label)
        if value is not None:
            diag.note("Total debts extracted from row cell: %s", value)
            return Extracted.found(value)

    if matched_rows:
        diag.note("Found %d '%s' row(s) but no parseable amount.", matched_rows, label)
    else:
        diag.note("No row with label '%s'.", label)
    return Extracted.missing()


def find_debt_table(snapshot: FrameSnapshot, selectors: Optional[DetranSelectors] = None) -> Optional[TableSnapshot]:
    sel = selectors or DetranSelectors()
    by_id = snapshot.table_by_id(sel.debt_table_id)
    if by_id is not None:
        return by_id
    for table in snapshot.tables:
        if all(h in table.text for h in sel.debt_table_headers):
            return table
    return None


def _due_date_cell(cells: list[str]) -> Optional[str]:
    for cell in cells:
        txt = cell.strip()
        if BR_DATE_RE.match(txt):
            return txt
    return None


def _amount_cell(cells: list[str]) -> Optional[str]:
    # "Valor Atual" is the last column; earlier columns hold nominal value, fines, interest.
    for cell in reversed(cells):
        txt = cell.strip()
        if "," in txt and ("." in txt or "R$" in txt or _AMOUNT_ONLY_RE.match(txt)):
            return txt
    return None


def parse_debt_items(
    snapshot: FrameSnapshot,
    *,
    today: Optional[date] = None,
    selectors: Optional[DetranSelectors] = None,
    diagnostics: Optional[ExtractionDiagnostics] = None,
) -> list[DebtLineItem]:
    """
    Overdue line items from the debts table, in table order.

    Items due today or later are left out even though DetranNet counts them in the total.
    """
    sel = selectors or DetranSelectors()
    diag = diagnostics or ExtractionDiagnostics()
    today = today or date.today()

    table = find_debt_table(snapshot, sel)
    if table is None:
        diag.note("Debt table not found (id=%s).", sel.debt_table_id)
        return []

    out: list[DebtLineItem] = []
    skipped_not_due = 0
    for row in table.rows:
        cells = row.cells
        if len(cells) < sel.debt_row_min_cells:
            continue

        due_text = _due_date_cell(cells)
        amount_text = _amount_cell(cells)
        if not due_text or not amount_text:
            continue

        try:
            due = parse_br_date(due_text)
        except ValueError:
            diag.note("Unparseable due date %r in row: %s", due_text, row.normalized_text)
            continue

        value = parse_brl(amount_text)
        if value is None:
            diag.note("Unparseable amount %r in row: %s", amount_text, row.normalized_text)
            continue

        if not is_overdue(due, today=today):
            skipped_not_due += 1
            continue

        description = cells[0].strip()
        out.append(
            DebtLineItem(
                description=description,
                due_date=due,
                value=value,
                category=classify_debt(description),
            )
        )

    diag.note("Debt items: %d overdue, %d not yet due.", len(out), skipped_not_due)
    return out
