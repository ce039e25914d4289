from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .config import AppConfig
from .errors import SessionLimitError
from .models import ConsultationResult
from .plates import validate_plate
from .portal.client import DetranPortalClient, PortalCredentials
from .state import ConsultationStore


logger = logging.getLogger(__name__)


ClientFactory = Callable[[AppConfig], DetranPortalClient]


def default_client_factory(cfg: AppConfig) -> DetranPortalClient:
    detran = cfg.require_credentials()
    return DetranPortalClient(
        url=detran.url,
        creds=PortalCredentials(username=detran.username, password=detran.password),
        browser=cfg.browser,
        debug_dir=cfg.debug.dir,
        save_snapshots=cfg.debug.save_snapshots,
    )


class PlateLookupService:
    """
    Entry point for callers (CLI, HTTP layer): validate, check config, bound concurrent browser
    sessions, consult, then persist the record.

    Each consult() gets its own DetranPortalClient and browser; nothing is shared across queries
    except the session semaphore and the history store.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        store: Optional[ConsultationStore] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self._client_factory = client_factory or default_client_factory
        self._slots = threading.BoundedSemaphore(cfg.concurrency.max_sessions)

    def consult(self, plate: str, *, step_debug: bool = False) -> ConsultationResult:
        plate = validate_plate(plate)
        self.cfg.require_credentials()

        timeout_s = self.cfg.concurrency.acquire_timeout_s
        if not self._slots.acquire(timeout=timeout_s):
            raise SessionLimitError(
                f"All {self.cfg.concurrency.max_sessions} browser session(s) busy for {timeout_s}s; try again later."
            )
        try:
            logger.info("Starting consultation for plate %s", plate)
            client = self._client_factory(self.cfg)
            result = client.consult(plate, step_debug=step_debug)
        finally:
            self._slots.release()

        if self.store is not None:
            self.store.record_consultation(result.record)
        return result
