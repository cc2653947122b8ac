# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from beetle.app import query_records
from beetle.config import ConfigurationError, configure_logging
from beetle.domain.errors import BeetleError
from beetle.domain.integrity import check_request_hash, create_query_hash
from beetle.domain.service import out_of_band_headers

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_QUERY_DIRECTIVES = ("filter", "orderBy", "skip", "take", "expand", "inlineCount", "select")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query records and check request integrity")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    hash_cmd = subparsers.add_parser("hash", help="Print the integrity hash of a query string")
    hash_cmd.add_argument("query_string", type=str, help="Query string as sent by the client")

    verify = subparsers.add_parser("verify", help="Check a query string against its hash")
    verify.add_argument("query_string", type=str, help="Query string as received")
    verify.add_argument("--hash", dest="client_hash", type=str, required=True)
    verify.add_argument("--length", type=str, required=True, help="Length the client hashed")

    query = subparsers.add_parser("query", help="Run query directives over a JSON array")
    query.add_argument("path", type=Path, help="JSON file holding an array of records")
    query.add_argument("--filter", type=str, help='Filter expression, e.g. "Age >= 18"')
    query.add_argument("--order-by", dest="orderBy", type=str, help='e.g. "Name desc"')
    query.add_argument("--skip", type=str, help="Number of records to skip")
    query.add_argument("--take", type=str, help="Maximum number of records to return")
    query.add_argument("--expand", type=str, help="Comma separated navigation paths")
    query.add_argument(
        "--inline-count",
        dest="inlineCount",
        action="store_const",
        const="true",
        help="Report the filtered count before paging",
    )
    query.add_argument("--select", type=str, help="Comma separated member paths to project")

    return parser.parse_args(list(argv))


def _load_records(path: Path) -> list[Any]:
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read records from {path}: {exc}") from exc
    if not isinstance(records, list):
        raise ValueError(f"Expected a JSON array in {path}")
    return records  # pyright: ignore[reportUnknownVariableType]


def _run_query(args: argparse.Namespace, records: list[Any]) -> None:
    parameters = {
        name: value
        for name in _QUERY_DIRECTIVES
        if (value := getattr(args, name, None)) is not None
    }
    result = query_records(records, parameters)
    print(json.dumps({"results": result.result, "headers": out_of_band_headers(result)}, indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    records: list[Any] = []
    try:
        parsed_args = _parse_args(args_list)
        if parsed_args.command == "query":
            records = _load_records(parsed_args.path)
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "hash":
            query_string = parsed_args.query_string
            print(
                json.dumps({"hash": create_query_hash(query_string), "length": len(query_string)})
            )
        elif parsed_args.command == "verify":
            check_request_hash(
                parsed_args.query_string, parsed_args.client_hash, parsed_args.length
            )
            log.info("Request hash matches")
        elif parsed_args.command == "query":
            _run_query(parsed_args, records)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except ConfigurationError as exc:
        log.error("Invalid configuration: %s", exc)  # noqa: TRY400
        sys.exit(2)
    except BeetleError as exc:
        log.error("%s failed: %s", parsed_args.command, exc)  # noqa: TRY400
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
