from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import load_config
from .errors import (
    ConfigurationError,
    InputNotFoundError,
    NavigationError,
    PlateValidationError,
    SessionLimitError,
)
from .logging_config import configure_logging
from .lookup import PlateLookupService
from .plates import normalize_plate_input
from .state import ConsultationStore
from .util.money import format_brl


logger = logging.getLogger("detran_sc_lookup")

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_VALIDATION = 2
EXIT_CONFIG = 3
EXIT_INPUT_NOT_FOUND = 4
EXIT_NAVIGATION = 5
EXIT_BUSY = 6


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="detran_sc_lookup")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Optional YAML config (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd", required=True)

    consult = sub.add_parser("consult", help="Query DetranNet SC for one plate and print the record as JSON")
    consult.add_argument("plate", help="Plate, e.g. ABC1D23 (case and separators are ignored)")
    consult.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    consult.add_argument("--slowmo-ms", type=int, default=None, help="Playwright slow motion in milliseconds (debug).")
    consult.add_argument("--step-debug", action="store_true", help="Save step-by-step screenshots under the debug dir.")
    consult.add_argument("--no-save", action="store_true", help="Do not record the consultation in the history DB")
    consult.add_argument("--diagnostics", action="store_true", help="Also print the extraction trace to stderr")

    history = sub.add_parser("history", help="List recently consulted plates")
    history.add_argument("--limit", type=int, default=5, help="How many plates to show (default: 5)")
    history.add_argument("--show", default="", help="Print the last stored record for this plate")

    sub.add_parser("preflight", help="Validate configuration (credentials, paths). Does not start a browser.")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = load_config(args.config)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    if args.cmd == "preflight":
        try:
            cfg.require_credentials()
        except ConfigurationError as e:
            logger.error("%s", e)
            return EXIT_CONFIG
        logger.info("Preflight OK (url=%s user=%s)", cfg.detran.url, cfg.detran.username)
        return EXIT_OK

    if args.cmd == "history":
        store = ConsultationStore(cfg.state.db_path)
        try:
            if args.show:
                entry = store.latest(normalize_plate_input(args.show))
                if entry is None:
                    print(f"No consultation stored for {args.show}")
                    return EXIT_OK
                print(json.dumps(entry.response, indent=2, ensure_ascii=False))
                return EXIT_OK
            for plate in store.recent_plates(limit=args.limit):
                print(plate)
        finally:
            store.close()
        return EXIT_OK

    if args.cmd == "consult":
        if args.headful or args.slowmo_ms is not None:
            browser = cfg.browser.model_copy(
                update={
                    "headless": cfg.browser.headless and not args.headful,
                    "slow_mo_ms": args.slowmo_ms if args.slowmo_ms is not None else cfg.browser.slow_mo_ms,
                }
            )
            cfg = cfg.model_copy(update={"browser": browser})

        store = None if args.no_save else ConsultationStore(cfg.state.db_path)
        try:
            service = PlateLookupService(cfg, store=store)
            result = service.consult(normalize_plate_input(args.plate), step_debug=args.step_debug)
        except PlateValidationError as e:
            logger.error("Placa inválida: %s", e)
            return EXIT_VALIDATION
        except ConfigurationError as e:
            logger.error("%s", e)
            return EXIT_CONFIG
        except InputNotFoundError as e:
            logger.error("%s", e)
            return EXIT_INPUT_NOT_FOUND
        except NavigationError as e:
            logger.error("%s", e)
            return EXIT_NAVIGATION
        except SessionLimitError as e:
            logger.error("%s", e)
            return EXIT_BUSY
        except Exception as e:
            # Browser launch failures and anything else outside the lookup errors.
            logger.exception("Consultation failed unexpectedly: %s", e)
            return EXIT_UNEXPECTED
        finally:
            if store is not None:
                store.close()

        record = result.record
        if args.diagnostics:
            for msg in result.diagnostics:
                logger.info("[trace] %s", msg)
        if not record.found_in_source:
            logger.warning("Veículo não consta na base do Detran SC (plate=%s).", record.plate)
        else:
            logger.info(
                "Plate %s: %s, total debts %s, %d overdue item(s)",
                record.plate,
                record.model,
                format_brl(record.total_debts),
                len(record.debt_details),
            )
        print(json.dumps(record.to_response(), indent=2, ensure_ascii=False))
        return EXIT_OK

    raise AssertionError("Unhandled command")
