import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from athenaquery.config import AthenaConfig
from athenaquery.errors import AthenaQueryError
from athenaquery.factory import get_instance
from athenaquery.models import QueryMode, QueryOutcome, QueryRequest

logger = logging.getLogger("athenaquery")


def outcome_to_dict(outcome: Optional[QueryOutcome]) -> Dict[str, Any]:
    """Return a JSON-serializable view of an outcome."""
    if outcome is None:
        return {}
    payload: Dict[str, Any] = {
        "execution_id": outcome.execution_id,
        "status": outcome.status.value if outcome.status else None,
    }
    if outcome.result_set is not None:
        payload["columns"] = outcome.result_set.column_names
        payload["rows"] = outcome.result_set.rows
        payload["elapsed_seconds"] = outcome.elapsed_seconds
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run queries against Amazon Athena")
    parser.add_argument("--region", help="AWS region (default: AWS_REGION)")
    parser.add_argument("--role", help="Role ARN to assume (default: ATHENA_ROLE_ARN)")
    parser.add_argument(
        "--output-location", help="S3 result location (default: ATHENA_OUTPUT_LOCATION)"
    )
    parser.add_argument("--poll-interval", type=float, help="Seconds between status polls")
    parser.add_argument("--timeout", type=float, help="Poll budget in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    submit_parser = subparsers.add_parser("submit", help="Submit a query and print its ID")
    submit_parser.add_argument("--database", required=True, help="Athena database")
    submit_parser.add_argument("sql", help="SQL text")

    status_parser = subparsers.add_parser("status", help="Print the status of an execution")
    status_parser.add_argument("execution_id", help="Execution ID returned by submit")

    run_parser = subparsers.add_parser("run", help="Run a query and print its results")
    run_parser.add_argument("--database", required=True, help="Athena database")
    run_parser.add_argument(
        "--skip-header", action="store_true", help="Drop the header row of SELECT results"
    )
    run_parser.add_argument("sql", help="SQL text")
    return parser


def _config_from_args(args: argparse.Namespace) -> AthenaConfig:
    config = AthenaConfig.from_env()
    overrides = {
        "region": args.region,
        "role": args.role,
        "output_location": args.output_location,
        "poll_interval_seconds": args.poll_interval,
        "timeout_seconds": args.timeout,
    }
    if getattr(args, "skip_header", False):
        overrides["skip_header"] = True
    return dataclasses.replace(
        config, **{key: value for key, value in overrides.items() if value is not None}
    )


def _request_from_args(args: argparse.Namespace) -> QueryRequest:
    if args.command == "submit":
        return QueryRequest(sql=args.sql, data_source=args.database, mode=QueryMode.SUBMIT_ONLY)
    if args.command == "status":
        return QueryRequest(mode=QueryMode.STATUS_ONLY, execution_id=args.execution_id)
    return QueryRequest(sql=args.sql, data_source=args.database)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the Athena query CLI."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if not args.command:
        parser.print_help()
        return 2

    try:
        controller = get_instance(_config_from_args(args))
        outcome = asyncio.run(controller.execute(_request_from_args(args)))
    except AthenaQueryError as exc:
        logger.error("Athena %s failed: %s", args.command, exc)
        return 1

    print(json.dumps(outcome_to_dict(outcome), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
