"""Entry point for the Jira flow metrics report."""

from __future__ import annotations

import logging
import sys

from .analytics import calculate_board_analytics
from .cli import parse_args
from .config import load_config
from .errors import ApiError, AuthenticationError, ConfigurationError
from .jira_client import JiraClient
from .stats import generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4


def orchestrate_flow_analytics() -> int:
    """Run one analytics pass for a board and print the report.

    Returns:
        Process exit code: 0 on success, 2 for configuration errors, 3 for
        missing credentials, 4 for Jira API failures, 1 otherwise.
    """
    try:
        args = parse_args()
        logging.basicConfig(
            level=getattr(logging, args.log_level, logging.WARNING),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

        config = load_config(
            base_url=args.base_url,
            board_id=args.board_id,
            period=args.period,
            start=args.start,
            end=args.end,
            issue_types=tuple(args.issue_types),
            max_workers=args.workers,
        )
        client = JiraClient(config=config)

        print(f"Analyzing board '{config.board_id}' on {config.base_url}...")
        analytics = calculate_board_analytics(
            client,
            config.board_id,
            time_period_filter=config.time_period,
            issue_types=config.issue_types,
            max_workers=config.max_workers,
        )
        print(generate_report(analytics))
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_API
    except Exception:
        logger.exception("Unexpected error while generating flow metrics")
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate_flow_analytics())


if __name__ == "__main__":
    main()
