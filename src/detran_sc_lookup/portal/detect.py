from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from .selectors import DetranSelectors


logger = logging.getLogger(__name__)


class PageKind(str, Enum):
    VEHICLE_DATA = "vehicle_data"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class ReadyOutcome(str, Enum):
    DATA = "data"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ContentReady:
    """Which frame (if any) holds the result, and how we got there."""

    outcome: ReadyOutcome
    frame: Optional[object] = None
    frame_index: Optional[int] = None


def fold_text(s: str) -> str:
    """Case- and accent-insensitive form: "Dados do Veículo" -> "dados do veiculo"."""
    decomposed = unicodedata.normalize("NFKD", s or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def contains_any(text: str, needles: Iterable[str]) -> bool:
    hay = fold_text(text)
    return any(fold_text(n) in hay for n in needles)


def classify_page(text: str, selectors: Optional[DetranSelectors] = None) -> PageKind:
    """Vehicle data wins over not-found markers when both are present."""
    sel = selectors or DetranSelectors()
    if contains_any(text, sel.data_markers):
        return PageKind.VEHICLE_DATA
    if contains_any(text, sel.not_found_markers):
        return PageKind.NOT_FOUND
    return PageKind.UNKNOWN


def ordered_candidates(frames: Sequence[object], preferred: Optional[object]) -> list[tuple[int, object]]:
    """The frame that received the query first, then the page's frames in natural order."""
    out: list[tuple[int, object]] = []
    if preferred is not None:
        idx = next((i for i, f in enumerate(frames) if f is preferred), -1)
        out.append((idx, preferred))
    out.extend((i, f) for i, f in enumerate(frames) if f is not preferred)
    return out


def frame_text(frame) -> Optional[str]:
    """Rendered body text, or None for frames that are detached, navigating or inaccessible."""
    try:
        return frame.inner_text("body")
    except Exception:
        logger.debug("Could not read frame text.", exc_info=True)
        return None


def find_conclusive_frame(
    frames: Sequence[object],
    preferred: Optional[object],
    selectors: Optional[DetranSelectors] = None,
) -> Optional[ContentReady]:
    """First frame (input frame first) showing either vehicle data or a not-found message."""
    for idx, frame in ordered_candidates(frames, preferred):
        text = frame_text(frame)
        if text is None:
            continue
        kind = classify_page(text, selectors)
        if kind is PageKind.VEHICLE_DATA:
            return ContentReady(ReadyOutcome.DATA, frame, idx)
        if kind is PageKind.NOT_FOUND:
            return ContentReady(ReadyOutcome.NOT_FOUND, frame, idx)
    return None


def select_fallback_frame(
    frames: Sequence[object],
    preferred: Optional[object],
    selectors: Optional[DetranSelectors] = None,
) -> ContentReady:
    """
    After polling gave up: keep the input frame if it shows data-ish markers, otherwise take the first
    frame in order that does. No scoring; first match wins. No frame at all -> TIMEOUT with frame=None.
    """
    sel = selectors or DetranSelectors()
    for idx, frame in ordered_candidates(frames, preferred):
        text = frame_text(frame)
        if text is not None and contains_any(text, sel.weak_data_markers):
            return ContentReady(ReadyOutcome.TIMEOUT, frame, idx)
    return ContentReady(ReadyOutcome.TIMEOUT, None, None)
