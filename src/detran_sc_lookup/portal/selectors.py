from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DetranSelectors:
    """
    DetranNet is a legacy ASP frameset; selectors and label texts may change over time.
    Keep all DOM hooks and Portuguese anchor texts here for easy maintenance.

    Marker texts are compared accent- and case-insensitively (see detect.fold_text).
    """

    # Query form (lives in one of the child frames)
    plate_input: str = 'input[name="placa"]'

    # Result page markers
    data_markers: tuple[str, ...] = ("Dados do Veículo", "Marca/Modelo")
    not_found_markers: tuple[str, ...] = ("Nenhum veículo encontrado", "não confere")
    # Looser markers used to pick a frame when polling gave up.
    weak_data_markers: tuple[str, ...] = ("Dados do Veic", "Placa")

    # Debts panel (loaded asynchronously into the data frame after clicking the header)
    debts_header_text: str = "Listagem de Débitos"
    debts_header_tags: str = "span, td, div, a, font, b"
    debt_table_id: str = "tblDebitosVeiculo"
    debt_table_headers: tuple[str, ...] = ("Vencimento", "Valor Nominal")
    total_debts_label: str = "Total dos Débitos"
    debt_row_min_cells: int = 6
