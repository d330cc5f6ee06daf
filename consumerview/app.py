import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from . import __version__
from .api import STAGING_URL
from .client import DEFAULT_AUTO_RETRIES
from .config import Settings, build_orchestrator, load_env
from .errors import ConsumerViewError
from .logger import fingerprint, get_logger
from .retry import is_retryable_error
from .schema import validate_search_items
from .transformers import NoOpTransformer

logger = get_logger()


def _read_items(path_str: str) -> dict:
    input_path = Path(path_str)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Input file is not valid JSON: {e}")


def _settings(args: argparse.Namespace) -> Settings:
    try:
        settings = Settings.from_env()
    except ConsumerViewError as e:
        raise SystemExit(str(e))
    if getattr(args, "staging", False):
        settings = replace(settings, base_url=STAGING_URL)
    logger.logger.setLevel(getattr(logging, settings.log_level, logging.INFO))
    return settings


def _fail(e: ConsumerViewError) -> None:
    hint = " (transient, try again shortly)" if is_retryable_error(e) else ""
    raise SystemExit(f"[{type(e).__name__}] {e}{hint}")


def cmd_login(args: argparse.Namespace) -> None:
    settings = _settings(args)
    orchestrator = build_orchestrator(settings)
    try:
        token = orchestrator.auth_token()
    except ConsumerViewError as e:
        _fail(e)
    print(f"Login OK for {settings.user_id} at {settings.base_url} (token {fingerprint(token)})")


def cmd_validate(args: argparse.Namespace) -> None:
    items = _read_items(args.input)
    errors = validate_search_items(items)
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print(f"Valid ({len(items)} items)")


def cmd_lookup(args: argparse.Namespace) -> None:
    if args.retries < 0:
        raise SystemExit("--retries must be 0 or more")
    items = _read_items(args.input)
    settings = _settings(args)
    transformer = NoOpTransformer() if args.raw else None
    orchestrator = build_orchestrator(settings, transformer=transformer)

    try:
        results = orchestrator.lookup(items, auto_retries=args.retries)
    except ConsumerViewError as e:
        _fail(e)

    output = json.dumps(results, indent=2, ensure_ascii=False)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output + "\n", encoding="utf-8")
        print(f"Wrote {len(results)} results to {out_path}")
    else:
        print(output)

    if args.metrics:
        logger.log_metrics_summary()


def main(argv=None):
    # Load .env if present (CONSUMERVIEW_USER_ID, CONSUMERVIEW_PASSWORD, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="consumerview", description="ConsumerView lookup CLI")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    lgn = subparsers.add_parser("login", help="Get a token through the configured cache, logging in only if needed")
    lgn.add_argument("--staging", action="store_true", help="Use the staging endpoint")
    lgn.set_defaults(func=cmd_login)

    val = subparsers.add_parser("validate", help="Validate a search-items JSON file")
    val.add_argument("--input", required=True, help="Path to JSON object of identifier -> search key")
    val.set_defaults(func=cmd_validate)

    lkp = subparsers.add_parser("lookup", help="Look up a search-items JSON file")
    lkp.add_argument("--input", required=True, help="Path to JSON object of identifier -> search key")
    lkp.add_argument("--output", help="Write results JSON here instead of stdout")
    lkp.add_argument("--raw", action="store_true", help="Return raw API codes without enrichment")
    lkp.add_argument("--retries", type=int, default=DEFAULT_AUTO_RETRIES, help=f"Auto retries on auth failure (default: {DEFAULT_AUTO_RETRIES})")
    lkp.add_argument("--staging", action="store_true", help="Use the staging endpoint")
    lkp.add_argument("--metrics", action="store_true", help="Log a metrics summary when done")
    lkp.set_defaults(func=cmd_lookup)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help(sys.stdout)


if __name__ == "__main__":
    main()
