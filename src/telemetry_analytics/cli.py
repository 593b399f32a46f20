"""Command-line interface for the telemetry analytics core."""

import argparse
import json
import logging
import sys

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from telemetry_analytics.errors import InputValidationError, UpstreamFetchError  # noqa: E402
from telemetry_analytics.service import TelemetryAnalytics  # noqa: E402
from telemetry_analytics.storage.database.manager import DatabaseManager  # noqa: E402

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='telemetry-analytics',
        description='Telemetry Analytics - climbs, FTP, cadence and performance trends from ride telemetry',
        epilog='For more information on a specific command, run: telemetry-analytics <command> --help'
    )
    parser.add_argument(
        '--db',
        help='Path to the SQLite database (or set TELEMETRY_DB_PATH env var)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands',
        metavar='<command>'
    )

    # Climbs command
    climbs_parser = subparsers.add_parser(
        'climbs',
        help='Detect and rank climbs',
        description='Detect climbs, group repeat attempts and report VAM trends'
    )
    climbs_parser.add_argument('--athlete', required=True, help='Athlete id')
    climbs_parser.add_argument(
        '--months',
        type=int,
        default=12,
        help='Lookback window in months, 1-24 (default: 12)'
    )

    # FTP command
    ftp_parser = subparsers.add_parser(
        'ftp',
        help='Estimate FTP from recent activities',
        description='Estimate functional threshold power from tests, the power curve or threshold workouts'
    )
    ftp_parser.add_argument('--athlete', required=True, help='Athlete id')
    ftp_parser.add_argument(
        '--months',
        type=int,
        default=3,
        help='Lookback window in months, 1-24 (default: 3)'
    )
    ftp_parser.add_argument(
        '--save',
        action='store_true',
        help='Record the estimate in the athlete profile when an update is suggested'
    )

    # Cadence command
    cadence_parser = subparsers.add_parser(
        'cadence',
        help='Analyze cadence efficiency',
        description='Efficiency by cadence band and power zone, with recommendations'
    )
    cadence_parser.add_argument('--athlete', required=True, help='Athlete id')
    cadence_parser.add_argument(
        '--months',
        type=int,
        default=6,
        help='Lookback window in months, 1-24 (default: 6)'
    )
    cadence_parser.add_argument(
        '--ftp',
        type=float,
        help='FTP in watts for power zones (default: latest profile FTP)'
    )

    # Trends command
    trends_parser = subparsers.add_parser(
        'trends',
        help='Analyze long-term performance trends',
        description='Period comparison, seasonal series, improvements and FTP forecast'
    )
    trends_parser.add_argument('--athlete', required=True, help='Athlete id')
    trends_parser.add_argument(
        '--period',
        choices=['month', 'quarter', 'year'],
        default='month',
        help='Comparison period (default: month)'
    )

    # Power bests command
    bests_parser = subparsers.add_parser(
        'power-bests',
        help='Recompute rolling power bests for an activity',
        description='Compute best average power over standard durations from activity samples'
    )
    bests_parser.add_argument('--activity', required=True, help='Activity id')

    return parser


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return

    try:
        analytics = TelemetryAnalytics(DatabaseManager(args.db))

        if args.command == 'climbs':
            result = analytics.analyze_climbs(args.athlete, args.months)
        elif args.command == 'ftp':
            result = run_ftp(analytics, args)
        elif args.command == 'cadence':
            result = analytics.analyze_cadence(args.athlete, args.months, args.ftp)
        elif args.command == 'trends':
            result = analytics.analyze_trends(args.athlete, args.period)
        else:
            bests = analytics.refresh_power_bests(args.activity)
            print(json.dumps({str(k): v for k, v in bests.items()}, indent=2))
            return
    except InputValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except UpstreamFetchError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(result.model_dump_json(indent=2))


def run_ftp(analytics: TelemetryAnalytics, args):
    """Estimate FTP and optionally record it."""
    result = analytics.estimate_ftp(args.athlete, args.months)
    estimate = getattr(result, 'estimate', None)
    if args.save and estimate is not None and result.suggest_update:
        analytics.record_ftp_estimate(args.athlete, estimate)
        logger.info(f"Recorded FTP {estimate.value_w}W for {args.athlete}")
    return result


if __name__ == '__main__':
    main()
