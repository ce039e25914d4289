from __future__ import annotations

import logging
from typing import Optional


logger = logging.getLogger(__name__)


class ExtractionDiagnostics:
    """
    Ordered trace of one consultation, for operators debugging a bad extraction.

    Messages are also mirrored to the logger at DEBUG so they end up in the log file.
    """

    def __init__(self, *, plate: str = "", log: Optional[logging.Logger] = None) -> None:
        self.plate = plate
        self._log = log or logger
        self._messages: list[str] = []

    def note(self, msg: str, *args: object) -> None:
        text = msg % args if args else msg
        self._messages.append(text)
        self._log.debug("[%s] %s", self.plate or "-", text)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)
