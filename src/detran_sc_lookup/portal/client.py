from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Frame, Page, sync_playwright

from ..config import BrowserConfig
from ..errors import ContentTimeoutError, InputNotFoundError, NavigationError
from ..models import ConsultationResult
from ..util.polling import poll_until
from .detect import (
    ContentReady,
    ReadyOutcome,
    contains_any,
    find_conclusive_frame,
    frame_text,
    select_fallback_frame,
)
from .diagnostics import ExtractionDiagnostics
from .extract import build_record
from .selectors import DetranSelectors
from .snapshot import FrameSnapshot, capture_snapshot


logger = logging.getLogger(__name__)


_SET_PLATE_JS = """
([sel, plate]) => {
  const el = document.querySelector(sel);
  if (!el) return false;
  el.value = '';
  el.value = plate;
  // DetranNet's validation scripts listen for these, not for the value itself.
  for (const type of ['input', 'change', 'blur']) {
    el.dispatchEvent(new Event(type, { bubbles: true }));
  }
  return true;
}
"""

# The "arrow" next to the plate field: an <input type=image> or a clickable <img>.
_CLICK_SUBMIT_ARROW_JS = """
(sel) => {
  const input = document.querySelector(sel);
  if (!input) return false;
  for (let next = input.nextElementSibling; next; next = next.nextElementSibling) {
    const isImageInput = next.tagName === 'INPUT' && next.type === 'image';
    const isClickableImg = next.tagName === 'IMG' && (next.onclick || next.closest('a'));
    if (isImageInput || isClickableImg) {
      next.click();
      return true;
    }
  }
  return false;
}
"""

_CLICK_DEBTS_HEADER_JS = """
([tags, label]) => {
  const el = Array.from(document.querySelectorAll(tags))
    .find(e => e.innerText && e.innerText.includes(label));
  if (!el) return false;
  el.click();
  return true;
}
"""


def _is_context_destroyed(e: Exception) -> bool:
    # A click that navigates the frame tears down the JS context before evaluate() returns.
    msg = str(e)
    return "Execution context was destroyed" in msg or "Frame was detached" in msg


@dataclass(frozen=True)
class PortalCredentials:
    username: str
    password: str = field(repr=False)


class DetranPortalClient:
    """
    DetranNet SC restricted-area automation (`tela_principal.asp` frameset).

    Every `consult()` owns one browser for its whole duration and closes it on every exit path.
    """

    def __init__(
        self,
        *,
        url: str,
        creds: PortalCredentials,
        browser: Optional[BrowserConfig] = None,
        selectors: Optional[DetranSelectors] = None,
        debug_dir: str = "data/debug",
        save_snapshots: bool = False,
    ) -> None:
        self.url = url
        self.creds = creds
        self.browser_cfg = browser or BrowserConfig()
        self.selectors = selectors or DetranSelectors()
        self.debug_dir = debug_dir
        self.save_snapshots = save_snapshots

        self._step_log_enabled: bool = False
        self._step_debug_enabled: bool = False
        self._step_counter: int = 0

    def consult(
        self,
        plate: str,
        *,
        now: Optional[datetime] = None,
        step_debug: bool = False,
        log_steps: bool = False,
    ) -> ConsultationResult:
        """
        Query one (already validated) plate and return the canonical record plus diagnostics.

        Raises NavigationError, InputNotFoundError or ContentTimeoutError; a plate missing from
        DetranNet is a normal result with found_in_source=False.
        """
        self._step_log_enabled = bool(step_debug or log_steps)
        self._step_debug_enabled = bool(step_debug)
        self._step_counter = 0

        diagnostics = ExtractionDiagnostics(plate=plate, log=logger)
        t0 = time.time()

        with sync_playwright() as p:
            browser = self._launch(p)
            try:
                ctx = browser.new_context(
                    http_credentials={"username": self.creds.username, "password": self.creds.password},
                    locale="pt-BR",
                )
                try:
                    page = ctx.new_page()
                    page.set_default_timeout(self.browser_cfg.navigation_timeout_ms)
                    try:
                        result = self._run(page, plate, diagnostics=diagnostics, now=now)
                    except Exception:
                        self._save_debug(page, name_prefix=f"{plate}_error")
                        raise
                finally:
                    ctx.close()
            finally:
                browser.close()

        logger.info(
            "Consultation finished (plate=%s found=%s seconds=%.2f)",
            plate,
            result.record.found_in_source,
            time.time() - t0,
        )
        return result

    def _launch(self, p):
        args = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
        headless = self.browser_cfg.headless
        slow_mo = int(self.browser_cfg.slow_mo_ms or 0)
        try:
            return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=args)
        except PlaywrightError as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg:
                raise
            logger.warning(
                "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                msg,
            )
            try:
                return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=args, channel="chrome")
            except PlaywrightError:
                return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=args, channel="msedge")

    def _run(
        self,
        page: Page,
        plate: str,
        *,
        diagnostics: ExtractionDiagnostics,
        now: Optional[datetime],
    ) -> ConsultationResult:
        try:
            return self._consult_steps(page, plate, diagnostics=diagnostics, now=now)
        except PlaywrightError as e:
            # Anything the steps didn't classify themselves (focus/keyboard timeouts, a frame dying mid-snapshot).
            diagnostics.note("Browser automation failed: %s", e)
            raise NavigationError(f"DetranNet page stopped responding: {e}") from e

    def _consult_steps(
        self,
        page: Page,
        plate: str,
        *,
        diagnostics: ExtractionDiagnostics,
        now: Optional[datetime],
    ) -> ConsultationResult:
        self._open_main(page)
        self._step(page, name="main_loaded")

        frame = self._find_input_frame(page)
        diagnostics.note("Plate input found in frame %s.", self._frame_label(frame))

        self._submit_plate(page, frame, plate, diagnostics=diagnostics)
        self._step(page, name="submitted")

        ready = self._wait_for_content(page, frame, diagnostics=diagnostics)
        if ready.outcome is ReadyOutcome.TIMEOUT and self.browser_cfg.fail_on_content_timeout:
            raise ContentTimeoutError(
                f"No frame showed a DetranNet result within {self.browser_cfg.content_timeout_ms} ms."
            )

        snapshot: Optional[FrameSnapshot] = None
        if ready.frame is not None:
            data_frame: Frame = ready.frame  # type: ignore[assignment]
            if ready.outcome is ReadyOutcome.DATA:
                self._load_debts(page, data_frame, diagnostics=diagnostics)
                self._step(page, name="debts_loaded")
            snapshot = capture_snapshot(data_frame)
            if self.save_snapshots:
                self._save_snapshot(snapshot, name_prefix=plate)
        else:
            diagnostics.note("No frame holds a result; reporting as not found.")

        record = build_record(plate, snapshot, now=now, selectors=self.selectors, diagnostics=diagnostics)
        return ConsultationResult(record=record, diagnostics=diagnostics.messages)

    def _open_main(self, page: Page) -> None:
        logger.info("Opening DetranNet main frameset")
        try:
            resp = page.goto(self.url, wait_until="load", timeout=self.browser_cfg.navigation_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"DetranNet unreachable: {e}") from e

        if resp is not None:
            if resp.status in (401, 403):
                raise NavigationError(f"DetranNet rejected the credentials (HTTP {resp.status}).")
            if not resp.ok:
                raise NavigationError(f"DetranNet main page returned HTTP {resp.status}.")

        if self._looks_like_browser_error(page):
            raise NavigationError("DetranNet unreachable (browser error page).")

        # Child frames keep loading after the frameset's own load event.
        try:
            page.wait_for_load_state("networkidle", timeout=10_000)
        except PlaywrightError:
            logger.debug("Frameset never reached networkidle; continuing.", exc_info=True)

    def _looks_like_browser_error(self, page: Page) -> bool:
        try:
            if (page.url or "").startswith("chrome-error://"):
                return True
        except PlaywrightError:
            pass
        try:
            body = page.inner_text("body", timeout=2_000)
        except PlaywrightError:
            # A frameset page has no <body>; that's the normal case here.
            return False
        return "ERR_NAME_NOT_RESOLVED" in body or "This site can't be reached" in body

    def _find_input_frame(self, page: Page) -> Frame:
        selector = self.selectors.plate_input

        def _probe() -> Optional[Frame]:
            for frame in page.frames:
                try:
                    if frame.locator(selector).count() > 0:
                        return frame
                except PlaywrightError:
                    # Detached or cross-origin frame.
                    continue
            return None

        frame = poll_until(
            _probe,
            timeout_ms=self.browser_cfg.input_timeout_ms,
            initial_delay_ms=self.browser_cfg.poll_initial_ms,
            max_delay_ms=self.browser_cfg.poll_max_ms,
            sleep=page.wait_for_timeout,
        )
        if frame is None:
            raise InputNotFoundError("Campo de placa não encontrado em nenhum frame da página.")
        logger.info("Plate input found in frame: %s", self._frame_label(frame))
        return frame

    def _submit_plate(self, page: Page, frame: Frame, plate: str, *, diagnostics: ExtractionDiagnostics) -> None:
        selector = self.selectors.plate_input

        if not frame.evaluate(_SET_PLATE_JS, [selector, plate]):
            raise InputNotFoundError("Campo de placa desapareceu antes do preenchimento.")

        try:
            clicked = bool(frame.evaluate(_CLICK_SUBMIT_ARROW_JS, selector))
        except PlaywrightError as e:
            if not _is_context_destroyed(e):
                raise
            clicked = True

        if clicked:
            diagnostics.note("Submitted via the arrow next to the plate field.")
            return

        diagnostics.note("Submit arrow not found; pressing Enter in the plate field.")
        frame.focus(selector)
        page.keyboard.press("Enter")

    def _wait_for_content(
        self,
        page: Page,
        input_frame: Frame,
        *,
        diagnostics: ExtractionDiagnostics,
    ) -> ContentReady:
        cfg = self.browser_cfg
        if cfg.settle_ms > 0:
            page.wait_for_timeout(cfg.settle_ms)

        ready = poll_until(
            lambda: find_conclusive_frame(page.frames, input_frame, self.selectors),
            timeout_ms=cfg.content_timeout_ms,
            initial_delay_ms=cfg.poll_initial_ms,
            max_delay_ms=cfg.poll_max_ms,
            sleep=page.wait_for_timeout,
        )
        if ready is not None:
            diagnostics.note(
                "Result page (%s) in frame #%s %s.",
                ready.outcome.value,
                ready.frame_index,
                self._frame_label(ready.frame),
            )
            return ready

        logger.warning("No conclusive result page after %d ms; falling back to marker scan.", cfg.content_timeout_ms)
        fallback = select_fallback_frame(page.frames, input_frame, self.selectors)
        if fallback.frame is None:
            diagnostics.note("Timed out; no frame shows vehicle markers.")
        else:
            diagnostics.note(
                "Timed out; using frame #%s %s by marker scan.",
                fallback.frame_index,
                self._frame_label(fallback.frame),
            )
        return fallback

    def _load_debts(self, page: Page, frame: Frame, *, diagnostics: ExtractionDiagnostics) -> None:
        sel = self.selectors
        try:
            clicked = bool(frame.evaluate(_CLICK_DEBTS_HEADER_JS, [sel.debts_header_tags, sel.debts_header_text]))
        except PlaywrightError as e:
            if not _is_context_destroyed(e):
                raise
            clicked = True

        if not clicked:
            diagnostics.note("Header '%s' not found; debts may be incomplete.", sel.debts_header_text)
            return
        diagnostics.note("Header '%s' clicked; waiting for debt table.", sel.debts_header_text)
        # The panel is filled by a second request; give it a head start before the first look.
        if self.browser_cfg.debts_settle_ms > 0:
            page.wait_for_timeout(self.browser_cfg.debts_settle_ms)

        visible = poll_until(
            lambda: self._debt_table_visible(frame),
            timeout_ms=self.browser_cfg.debts_timeout_ms,
            initial_delay_ms=self.browser_cfg.poll_initial_ms,
            max_delay_ms=self.browser_cfg.poll_max_ms,
            sleep=page.wait_for_timeout,
        )
        if not visible:
            diagnostics.note("Debt table did not appear within %d ms.", self.browser_cfg.debts_timeout_ms)

    def _debt_table_visible(self, frame: Frame) -> bool:
        try:
            if frame.locator(f"table#{self.selectors.debt_table_id}").count() > 0:
                return True
        except PlaywrightError:
            return False
        # "Total dos Débitos" is already on the summary before the panel loads, so it proves nothing here.
        text = frame_text(frame) or ""
        return all(contains_any(text, (h,)) for h in self.selectors.debt_table_headers)

    def _frame_label(self, frame) -> str:
        try:
            return frame.name or frame.url
        except Exception:
            return "<frame>"

    def _save_snapshot(self, snapshot: FrameSnapshot, *, name_prefix: str) -> None:
        stamp = time.strftime("%Y%m%d_%H%M%S")
        try:
            path = snapshot.save(Path(self.debug_dir) / f"{name_prefix}_{stamp}.snapshot.json")
            logger.info("Saved frame snapshot: %s", path)
        except OSError:
            logger.debug("Failed to save frame snapshot.", exc_info=True)

    def _save_debug(self, page: Page, *, name_prefix: str) -> None:
        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
            (out_dir / f"{name_prefix}.html").write_text(page.content(), encoding="utf-8")
            # Frameset pages have no body text of their own; dump each frame so parsing can be debugged offline.
            for idx, frame in enumerate(page.frames):
                try:
                    capture_snapshot(frame).save(out_dir / f"{name_prefix}_frame{idx:02d}.snapshot.json")
                except PlaywrightError:
                    continue
        except Exception:
            logger.debug("Failed to save debug artifacts.", exc_info=True)

    def _step(self, page: Page, *, name: str) -> None:
        """
        If enabled, log step-by-step progress and optionally save screenshots.
        """
        if not self._step_log_enabled and not self._step_debug_enabled:
            return

        self._step_counter += 1
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        logger.info("Step %02d %s (url=%s)", self._step_counter, name, getattr(page, "url", ""))

        if not self._step_debug_enabled:
            return

        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"step_{self._step_counter:02d}_{safe}.png"), full_page=True)
        except Exception:
            logger.debug("Failed to save step screenshot (name=%s).", name, exc_info=True)
