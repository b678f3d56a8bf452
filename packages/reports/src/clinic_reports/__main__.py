"""Command-line entry point.

Usage:
    # Print the yearly financial rollup for 2024
    python -m clinic_reports summary --report financial --view yearly --year 2024

    # Doctor fees grouped by doctor, with the sign-off block for one doctor
    python -m clinic_reports summary --report doctor_fees --name "drg. A"

    # Refresh now and record the result in the local state file
    python -m clinic_reports refresh

    # Run the monthly scheduler and the WebSocket notifier until interrupted
    python -m clinic_reports serve
"""

import argparse
import asyncio
import json
import sys
from typing import Any

import structlog

from clinic_reports.aggregation import (
    MONTHLY_VIEW,
    YEARLY_VIEW,
    compute_doctor_fee_aggregate,
    compute_field_trip_aggregate,
    compute_financial_summary,
    field_trip_totals,
    select_financial_view,
)
from clinic_reports.clients.clinic_api import ClinicAPIClient, ClinicAPIError
from clinic_reports.config import configure_logging, get_settings
from clinic_reports.errors import ReportError
from clinic_reports.events import get_publisher, reports_updated, stop_publisher
from clinic_reports.filters import ReportCriteria, filter_records
from clinic_reports.pipeline import AggregatedReports, ReportPipeline, ReportSnapshot
from clinic_reports.scheduler import JsonFileState, RefreshScheduler
from clinic_reports.signatures import ReportType, resolve_signatories

logger = structlog.get_logger(__name__)

SUMMARY_REPORTS = (
    ReportType.FINANCIAL.value,
    ReportType.DOCTOR_FEES.value,
    ReportType.FIELD_TRIP.value,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clinic-reports",
        description="Clinic financial reports and monthly refresh scheduler",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Fetch once and print a report as JSON")
    summary.add_argument("--report", choices=SUMMARY_REPORTS, default=ReportType.FINANCIAL.value)
    summary.add_argument("--view", choices=[MONTHLY_VIEW, YEARLY_VIEW], default=MONTHLY_VIEW)
    summary.add_argument("--year", default="all", help="Year filter (default: all)")
    summary.add_argument("--month", default="all", help="Month filter, 01-12 (default: all)")
    summary.add_argument("--start-date", default=None, help="Inclusive ISO start date")
    summary.add_argument("--end-date", default=None, help="Inclusive ISO end date")
    summary.add_argument("--name", default="all", help="Doctor or participant name")
    summary.add_argument(
        "--person-type",
        choices=["all", "doctor", "employee"],
        default="all",
        help="Field-trip participant type",
    )
    summary.add_argument(
        "--no-group",
        action="store_true",
        help="List doctor fees per day instead of per doctor",
    )

    subparsers.add_parser("refresh", help="Run one manual refresh and print the scheduler status")
    subparsers.add_parser("serve", help="Run the refresh scheduler with WebSocket notifications")
    return parser


def criteria_from_args(args: argparse.Namespace) -> ReportCriteria:
    return ReportCriteria(
        start_date=args.start_date,
        end_date=args.end_date,
        month=args.month,
        year=args.year,
        name=args.name,
        person_type=args.person_type,
    )


def build_summary(snapshot: ReportSnapshot, args: argparse.Namespace) -> dict[str, Any]:
    """Filter and aggregate a snapshot into the requested report."""
    criteria = criteria_from_args(args)

    if args.report == ReportType.DOCTOR_FEES.value:
        records = filter_records(snapshot.doctor_fees, criteria)
        doctor_rows = compute_doctor_fee_aggregate(records, group_by_doctor=not args.no_group)
        signatures = resolve_signatories(ReportType.DOCTOR_FEES, criteria, doctor_rows)
        return {
            "report": args.report,
            "rows": [row.to_dict() for row in doctor_rows],
            "signatures": signatures.to_dict(),
        }

    if args.report == ReportType.FIELD_TRIP.value:
        sales = filter_records(snapshot.field_trips, criteria)
        participant_rows = filter_records(compute_field_trip_aggregate(sales), criteria)
        signatures = resolve_signatories(ReportType.FIELD_TRIP, criteria, participant_rows)
        return {
            "report": args.report,
            "rows": [row.to_dict() for row in participant_rows],
            "totals": field_trip_totals(participant_rows).to_dict(),
            "signatures": signatures.to_dict(),
        }

    # Year is applied by the view so that yearly rows re-sum whole months
    dated = ReportCriteria(start_date=args.start_date, end_date=args.end_date, month=args.month)
    monthly = compute_financial_summary(
        filter_records(snapshot.treatments, dated),
        filter_records(snapshot.sales, dated),
        filter_records(snapshot.field_trips, dated),
        filter_records(snapshot.salaries, dated),
        filter_records(snapshot.doctor_fees, dated),
        filter_records(snapshot.expenses, dated),
    )
    rows = select_financial_view(monthly, view=args.view, year=args.year)
    return {
        "report": args.report,
        "view": args.view,
        "rows": [row.to_dict() for row in rows],
        "signatures": resolve_signatories(ReportType.FINANCIAL, criteria, rows).to_dict(),
    }


async def run_summary(args: argparse.Namespace) -> dict[str, Any]:
    async with ClinicAPIClient() as client:
        snapshot = await ReportPipeline(client).fetch_snapshot()
    return build_summary(snapshot, args)


async def run_refresh() -> dict[str, Any]:
    settings = get_settings()
    async with ClinicAPIClient() as client:
        pipeline = ReportPipeline(client)
        scheduler = RefreshScheduler(
            pipeline.run,
            state_store=JsonFileState(settings.refresh_state_path),
        )
        await scheduler.trigger_manual_refresh()
        return scheduler.get_status()


async def serve() -> None:
    settings = get_settings()
    publisher = get_publisher()
    async with ClinicAPIClient() as client:
        pipeline = ReportPipeline(client)
        scheduler = RefreshScheduler(
            pipeline.run,
            state_store=JsonFileState(settings.refresh_state_path),
            publish=publisher.publish,
        )

        def announce(reports: AggregatedReports) -> None:
            counts = reports.snapshot.counts()
            logger.info("monthly_reports_ready", **counts)
            publisher.publish(reports_updated(counts))

        scheduler.on_auto_refresh(announce)
        publisher.set_refresh_handler(scheduler.trigger_manual_refresh)

        await publisher.start()
        try:
            await scheduler.start()
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
            await stop_publisher()


async def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    logger.info("clinic_reports_command", command=args.command)

    try:
        if args.command == "summary":
            print(json.dumps(await run_summary(args), indent=2))
        elif args.command == "refresh":
            status = await run_refresh()
            print(json.dumps(status, indent=2))
            return 0 if status["health"] == "healthy" else 1
        else:
            await serve()
    except (ClinicAPIError, ReportError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("interrupted")
