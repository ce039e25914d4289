from __future__ import annotations

import time
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError

from detran_sc_lookup.config import BrowserConfig
from detran_sc_lookup.errors import ContentTimeoutError, InputNotFoundError, NavigationError
from detran_sc_lookup.portal import client as portal_client
from detran_sc_lookup.portal.client import DetranPortalClient, PortalCredentials
from detran_sc_lookup.portal.detect import ReadyOutcome
from detran_sc_lookup.portal.diagnostics import ExtractionDiagnostics
from detran_sc_lookup.portal.snapshot import _SNAPSHOT_JS


PLATE_INPUT = 'input[name="placa"]'
DATA_TEXT = (
    "Dados do Veículo\nPlaca\nPAS3I64\tRenavam 00000000000\nMarca/Modelo\n108661 - I/CHEV ONIX 1.0\n"
    "Cor\n4-PRATA\nMunicípio de Emplacamento\nFLORIANOPOLIS \tLicenciado\n2025\n"
    "Restrições\nNada consta\nListagem de Débitos\nTotal dos Débitos R$ 1.377,19\n"
)


class _Locator:
    def __init__(self, n: int) -> None:
        self.n = n

    def count(self) -> int:
        return self.n


class _Frame:
    def __init__(
        self,
        name: str,
        text: str = "",
        *,
        has_input: bool = False,
        has_arrow: bool = True,
        detached: bool = False,
    ) -> None:
        self.name = name
        self.url = f"https://example.invalid/{name}.asp"
        self.text = text
        self.has_input = has_input
        self.has_arrow = has_arrow
        self.detached = detached
        self.has_debt_table = False
        self.value = ""
        self.focused: Optional[str] = None
        self.on_submit: Optional[Callable[[], None]] = None
        self.on_debts_click: Optional[Callable[[], None]] = None
        self.arrow_error: Optional[Exception] = None
        self.reads = 0

    def _check(self) -> None:
        if self.detached:
            raise PlaywrightError("Frame was detached")

    def inner_text(self, selector: str) -> str:
        self._check()
        self.reads += 1
        return self.text

    def locator(self, selector: str) -> _Locator:
        self._check()
        if selector == PLATE_INPUT:
            return _Locator(1 if self.has_input else 0)
        if selector == "table#tblDebitosVeiculo":
            return _Locator(1 if self.has_debt_table else 0)
        return _Locator(0)

    def focus(self, selector: str) -> None:
        self.focused = selector

    def evaluate(self, script: str, arg=None):
        self._check()
        if script == portal_client._SET_PLATE_JS:
            self.value = arg[1]
            return self.has_input
        if script == portal_client._CLICK_SUBMIT_ARROW_JS:
            if self.arrow_error is not None:
                raise self.arrow_error
            if self.has_arrow and self.on_submit is not None:
                self.on_submit()
            return self.has_arrow
        if script == portal_client._CLICK_DEBTS_HEADER_JS:
            if self.on_debts_click is not None:
                self.on_debts_click()
            return "Listagem de Débitos" in self.text
        if script == _SNAPSHOT_JS:
            total_row = {"text": "Total dos Débitos\tR$ 1.377,19", "cells": ["Total dos Débitos", "R$ 1.377,19"]}
            return {"url": self.url, "text": self.text, "rows": [total_row], "tables": []}
        raise AssertionError(f"unexpected script: {script[:40]!r}")


class _LateFrame(_Frame):
    """Result frame whose content renders on the third read."""

    def inner_text(self, selector: str) -> str:
        text = super().inner_text(selector)
        return DATA_TEXT if self.reads >= 3 else text


class _SlowDebtsFrame(_Frame):
    """Data frame whose debt table renders a few polls after the header click."""

    def __init__(self, *args, table_after_polls: int = 2, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.table_after_polls = table_after_polls
        self.table_polls = 0

    def locator(self, selector: str) -> _Locator:
        if selector == "table#tblDebitosVeiculo":
            self.table_polls += 1
            self.has_debt_table = self.table_polls > self.table_after_polls
        return super().locator(selector)


class _Keyboard:
    def __init__(self) -> None:
        self.pressed: list[str] = []

    def press(self, key: str) -> None:
        self.pressed.append(key)


class _Response:
    def __init__(self, status: int) -> None:
        self.status = status
        self.ok = 200 <= status < 300


class _Page:
    def __init__(self, frames: list[_Frame], *, status: int = 200, goto_error: Optional[Exception] = None) -> None:
        self.frames = frames
        self.keyboard = _Keyboard()
        self.url = "https://example.invalid/tela_principal.asp"
        self.status = status
        self.goto_error = goto_error
        self.waits: list[int] = []

    def goto(self, url: str, *, wait_until: str, timeout: int) -> _Response:
        if self.goto_error is not None:
            raise self.goto_error
        return _Response(self.status)

    def inner_text(self, selector: str, timeout: int = 0) -> str:
        raise PlaywrightError("frameset has no body")

    def wait_for_load_state(self, state: str, timeout: int = 0) -> None:
        return None

    def wait_for_timeout(self, ms: float) -> None:
        self.waits.append(ms)
        time.sleep(ms / 1000)


def _client(tmp_path: Path, **browser) -> DetranPortalClient:
    cfg = dict(
        settle_ms=0,
        input_timeout_ms=100,
        content_timeout_ms=300,
        poll_initial_ms=5,
        poll_max_ms=20,
        debts_settle_ms=10,
        debts_timeout_ms=100,
    )
    cfg.update(browser)
    return DetranPortalClient(
        url="https://example.invalid/tela_principal.asp",
        creds=PortalCredentials(username="u", password="p"),
        browser=BrowserConfig(**cfg),
        debug_dir=str(tmp_path / "debug"),
    )


def test_credentials_repr_hides_password() -> None:
    assert "secret" not in repr(PortalCredentials(username="u", password="secret"))


def test_find_input_frame_skips_detached_frames(tmp_path: Path) -> None:
    dead = _Frame("dead", detached=True)
    menu = _Frame("menu")
    form = _Frame("principal", has_input=True)
    page = _Page([dead, menu, form])

    assert _client(tmp_path)._find_input_frame(page) is form


def test_find_input_frame_raises_when_no_frame_has_the_field(tmp_path: Path) -> None:
    page = _Page([_Frame("top"), _Frame("menu")])
    with pytest.raises(InputNotFoundError, match="Campo de placa"):
        _client(tmp_path)._find_input_frame(page)


def test_submit_plate_prefers_the_arrow(tmp_path: Path) -> None:
    form = _Frame("principal", has_input=True)
    submitted: list[bool] = []
    form.on_submit = lambda: submitted.append(True)
    page = _Page([form])
    diag = ExtractionDiagnostics()

    _client(tmp_path)._submit_plate(page, form, "PAS3I64", diagnostics=diag)

    assert form.value == "PAS3I64"
    assert submitted == [True]
    assert page.keyboard.pressed == []
    assert any("arrow" in m for m in diag.messages)


def test_submit_plate_falls_back_to_enter(tmp_path: Path) -> None:
    form = _Frame("principal", has_input=True, has_arrow=False)
    page = _Page([form])

    _client(tmp_path)._submit_plate(page, form, "PAS3I64", diagnostics=ExtractionDiagnostics())

    assert form.focused == PLATE_INPUT
    assert page.keyboard.pressed == ["Enter"]


def test_submit_plate_navigation_during_click_counts_as_submitted(tmp_path: Path) -> None:
    form = _Frame("principal", has_input=True)
    form.arrow_error = PlaywrightError("Execution context was destroyed, most likely because of a navigation")
    page = _Page([form])

    _client(tmp_path)._submit_plate(page, form, "PAS3I64", diagnostics=ExtractionDiagnostics())

    assert page.keyboard.pressed == []


def test_wait_for_content_polls_until_result_appears(tmp_path: Path) -> None:
    form = _Frame("principal", "Placa\n", has_input=True)
    result = _LateFrame("resultado", "Aguarde...")
    page = _Page([form, result])

    ready = _client(tmp_path)._wait_for_content(page, form, diagnostics=ExtractionDiagnostics())

    assert ready.outcome is ReadyOutcome.DATA
    assert ready.frame is result
    assert page.waits, "expected at least one backoff sleep"


def test_wait_for_content_timeout_falls_back_to_input_frame(tmp_path: Path) -> None:
    form = _Frame("principal", "Placa\n", has_input=True)
    menu = _Frame("menu", "Menu")
    page = _Page([menu, form])
    diag = ExtractionDiagnostics()

    ready = _client(tmp_path, content_timeout_ms=50)._wait_for_content(page, form, diagnostics=diag)

    assert ready.outcome is ReadyOutcome.TIMEOUT
    assert ready.frame is form
    assert any("Timed out" in m for m in diag.messages)


def test_open_main_rejects_bad_credentials(tmp_path: Path) -> None:
    with pytest.raises(NavigationError, match="401"):
        _client(tmp_path)._open_main(_Page([], status=401))


def test_open_main_unreachable(tmp_path: Path) -> None:
    page = _Page([], goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    with pytest.raises(NavigationError, match="unreachable"):
        _client(tmp_path)._open_main(page)


def test_run_found_vehicle(tmp_path: Path) -> None:
    form = _Frame("principal", "Consulta\nPlaca\n", has_input=True)
    result = _Frame("resultado", "")

    def show_result() -> None:
        result.text = DATA_TEXT

    def show_debts() -> None:
        result.has_debt_table = True

    form.on_submit = show_result
    result.on_debts_click = show_debts
    page = _Page([_Frame("top"), form, result])

    out = _client(tmp_path)._run(page, "PAS3I64", diagnostics=ExtractionDiagnostics(), now=None)

    record = out.record
    assert record.found_in_source is True
    assert record.plate == "PAS3I64"
    assert record.model == "I/CHEV ONIX 1.0"
    assert record.color == "PRATA"
    assert record.municipality == "FLORIANOPOLIS"
    assert record.licensing_year == 2025
    assert record.restrictions == "Sem Restrições"
    assert record.total_debts == Decimal("1377.19")
    assert out.diagnostics


def test_run_not_found_vehicle(tmp_path: Path) -> None:
    form = _Frame("principal", "Consulta\nPlaca\n", has_input=True)

    def show_not_found() -> None:
        form.text = "Consulta\nPlaca\nNenhum veículo encontrado."

    form.on_submit = show_not_found
    page = _Page([form])

    out = _client(tmp_path)._run(page, "ZZZ9Z99", diagnostics=ExtractionDiagnostics(), now=None)

    assert out.record.found_in_source is False
    assert out.record.restrictions == "Não encontrado"


def test_run_timeout_can_be_fatal(tmp_path: Path) -> None:
    form = _Frame("principal", "Consulta\nPlaca\n", has_input=True)
    page = _Page([form])
    client = _client(tmp_path, content_timeout_ms=30, fail_on_content_timeout=True)

    with pytest.raises(ContentTimeoutError):
        client._run(page, "PAS3I64", diagnostics=ExtractionDiagnostics(), now=None)


def test_load_debts_waits_for_the_table_not_the_summary_total(tmp_path: Path) -> None:
    # The summary already shows "Total dos Débitos" before the panel is expanded.
    result = _SlowDebtsFrame("resultado", DATA_TEXT, table_after_polls=2)
    page = _Page([result])
    diag = ExtractionDiagnostics()

    _client(tmp_path, debts_settle_ms=40, debts_timeout_ms=2_000)._load_debts(page, result, diagnostics=diag)

    assert page.waits[0] == 40
    assert len(page.waits) >= 3
    assert result.has_debt_table is True
    assert not any("did not appear" in m for m in diag.messages)


def test_load_debts_times_out_when_only_the_total_is_visible(tmp_path: Path) -> None:
    result = _Frame("resultado", DATA_TEXT)
    page = _Page([result])
    diag = ExtractionDiagnostics()

    _client(tmp_path, debts_timeout_ms=50)._load_debts(page, result, diagnostics=diag)

    assert page.waits and page.waits[0] == 10
    assert any("did not appear" in m for m in diag.messages)


def test_load_debts_skips_wait_without_header(tmp_path: Path) -> None:
    result = _Frame("resultado", "Dados do Veículo\nMarca/Modelo\nX\n")
    page = _Page([result])

    _client(tmp_path)._load_debts(page, result, diagnostics=ExtractionDiagnostics())

    assert page.waits == []


class _StuckFocusFrame(_Frame):
    def focus(self, selector: str) -> None:
        raise PlaywrightError("Timeout 60000ms exceeded.")


def test_run_wraps_unclassified_browser_errors(tmp_path: Path) -> None:
    form = _StuckFocusFrame("principal", "Consulta\nPlaca\n", has_input=True, has_arrow=False)
    page = _Page([form])
    diag = ExtractionDiagnostics()

    with pytest.raises(NavigationError, match="stopped responding") as excinfo:
        _client(tmp_path)._run(page, "PAS3I64", diagnostics=diag, now=None)

    assert isinstance(excinfo.value.__cause__, PlaywrightError)
    assert any("Browser automation failed" in m for m in diag.messages)


def test_run_keeps_its_own_errors_unwrapped(tmp_path: Path) -> None:
    page = _Page([_Frame("top"), _Frame("menu")])
    with pytest.raises(InputNotFoundError):
        _client(tmp_path)._run(page, "PAS3I64", diagnostics=ExtractionDiagnostics(), now=None)
