from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import AppConfig, load_config
from .errors import ScreenshotMailerError
from .logging_config import configure_logging
from .mailer import SmtpMailer
from .models import RecordFilter, ScreenshotRequest, ScreenshotStatus
from .pipeline import create_pipeline
from .state import RecordStore
from .util.dates import parse_timestamp
from .util.debug_bundle import create_debug_bundle


logger = logging.getLogger("github_screenshot_mailer")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="github_screenshot_mailer")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    capture = sub.add_parser("capture", help="Screenshot a GitHub profile page and email it")
    capture.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    capture.add_argument("--target", required=True, help="GitHub username whose profile page is captured")
    capture.add_argument("--to", required=True, dest="recipient", help="Email address that receives the screenshot")
    capture.add_argument(
        "--with-login",
        action="store_true",
        help="Sign in to GitHub first (GITHUB_LOGIN_EMAIL / GITHUB_LOGIN_PASSWORD; GitHub Mobile 2FA only).",
    )
    capture.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    capture.add_argument("--slowmo-ms", type=int, default=None, help="Playwright slow motion in milliseconds (debug).")

    records = sub.add_parser("list-records", help="List recorded screenshot attempts as JSON lines")
    records.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    records.add_argument("--target", default="", help="Exact GitHub username")
    records.add_argument("--recipient", default="", help="Exact recipient email (case-insensitive)")
    records.add_argument("--status", choices=[s.value for s in ScreenshotStatus], default=None)
    records.add_argument("--keyword", default="", help="Substring of target, recipient or file name")
    records.add_argument("--since", default="", help="Only attempts completed at/after this date (any common format)")
    records.add_argument("--until", default="", help="Only attempts completed at/before this date")
    records.add_argument("--limit", type=int, default=50)
    records.add_argument("--offset", type=int, default=0)
    records.add_argument("--oldest-first", action="store_true", help="Sort ascending by completion time")

    preflight = sub.add_parser(
        "preflight",
        help="Validate configuration and SMTP connectivity. Does not run Playwright.",
    )
    preflight.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    preflight.add_argument("--skip-smtp", action="store_true", help="Skip SMTP connectivity check")

    return p


def _load(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    configure_logging(
        level=cfg.logging.level,
        file_path=cfg.logging.file_path,
        secrets=(cfg.automation.login_password, cfg.smtp.password),
    )
    return cfg


def _cmd_capture(args: argparse.Namespace, cfg: AppConfig) -> int:
    if args.headful:
        cfg = cfg.model_copy(update={"automation": cfg.automation.model_copy(update={"headless": False})})
    if args.slowmo_ms is not None:
        slow_mo_ms = max(0, args.slowmo_ms)
        cfg = cfg.model_copy(update={"automation": cfg.automation.model_copy(update={"slow_mo_ms": slow_mo_ms})})

    try:
        request = ScreenshotRequest(target=args.target, recipient=args.recipient, with_login=args.with_login)
    except ValidationError as e:
        print(f"Invalid request: {e}")
        return 2

    pipeline = create_pipeline(cfg)
    try:
        record = pipeline.process(request)
    except ScreenshotMailerError as e:
        logger.error("%s (http_status=%d %s)", e, e.http_status.value, e.http_status.phrase)
        # Auto-bundle debug artifacts + log for easy sharing.
        # An empty debug_dir disables artifacts; Path("") would bundle the cwd.
        if not cfg.automation.debug_dir.strip():
            return 1
        try:
            bundle = create_debug_bundle(
                debug_dir=cfg.automation.debug_dir,
                log_file=cfg.logging.file_path,
                out_dir=str(Path(cfg.automation.debug_dir).parent),
                label=type(e).__name__,
            )
            logger.error("Wrote debug bundle: %s", bundle)
        except OSError:
            logger.debug("Failed to create debug bundle.", exc_info=True)
        return 1
    finally:
        close = getattr(pipeline.store, "close", None)
        if close is not None:
            close()

    print(record.model_dump_json())
    return 0


def _cmd_list_records(args: argparse.Namespace, cfg: AppConfig) -> int:
    try:
        flt = RecordFilter(
            target=args.target or None,
            recipient=args.recipient or None,
            status=ScreenshotStatus(args.status) if args.status else None,
            keyword=args.keyword or None,
            completed_from=parse_timestamp(args.since) if args.since else None,
            completed_to=parse_timestamp(args.until) if args.until else None,
        )
    except (ValueError, OverflowError) as e:
        # dateutil's ParserError is a ValueError.
        print(f"Invalid filter: {e}")
        return 2

    store = RecordStore(cfg.state.db_path)
    try:
        page = store.search(flt, limit=args.limit, offset=args.offset, ascending=args.oldest_first)
    except ValueError as e:
        print(f"Invalid paging: {e}")
        return 2
    finally:
        store.close()

    for item in page.items:
        print(item.model_dump_json())
    logger.info("Listed %d of %d matching records", len(page.items), page.total)
    return 0


def _cmd_preflight(args: argparse.Namespace, cfg: AppConfig) -> int:
    logger.info("Starting preflight checks")
    ok = True

    if not cfg.automation.has_credentials:
        logger.warning("GITHUB_LOGIN_EMAIL / GITHUB_LOGIN_PASSWORD not set; --with-login captures will fail.")

    if not args.skip_smtp:
        try:
            SmtpMailer(cfg.smtp).check_connection()
            logger.info("SMTP OK (%s:%s)", cfg.smtp.host, cfg.smtp.port)
        except ScreenshotMailerError as e:
            logger.error("%s", e)
            ok = False

    if ok:
        logger.info("Preflight OK")
        return 0
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = _load(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}")
        return 2

    if args.cmd == "capture":
        return _cmd_capture(args, cfg)
    if args.cmd == "list-records":
        return _cmd_list_records(args, cfg)
    if args.cmd == "preflight":
        return _cmd_preflight(args, cfg)

    raise SystemExit(f"Unknown command: {args.cmd}")
