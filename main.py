"""
MediaSpend - Main Entry Point.

Builds billing and delivery schedules for media plans, bills partial
MBAs, compares delivery against billing, and reports financial-year
dashboard spend from a JSON plan store.

Usage:
    python main.py schedule <store_json> <mba_number> [--version N] [--output-dir <dir>] [--save]
    python main.py dashboard <store_json> [--client <slug>] [--as-at YYYY-MM-DD]
    python main.py expected <store_json> <mba_number> [--as-at YYYY-MM-DD]
    python main.py partial <store_json> <mba_number> [--version N] [--month "March 2025" ...]
    python main.py accrual <store_json> --month "March 2025" [--month ...] [--client <slug>]

Example:
    python main.py schedule plans.json MBA1001 --output-dir reports/ --save
"""

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

from mediaspend import __version__
from mediaspend.accrual import AccrualCalculator
from mediaspend.billing import BillingScheduleBuilder
from mediaspend.dashboard import DashboardAggregator, select_active_versions
from mediaspend.date_logic import DateManager
from mediaspend.excel_generator import ExcelReporter
from mediaspend.money import format_money
from mediaspend.normalizer import (
    BurstNormalizer,
    fee_parameters_from_record,
    plan_version_from_record,
)
from mediaspend.overrides import PartialBilling, PartialBillingEditor
from mediaspend.schema import (
    BillingSchedule,
    DashboardMetrics,
    FeeModelParameters,
    LineItem,
    MediaType,
    PlanVersion,
    slugify,
)
from mediaspend.serialisation import ScheduleSerialiser
from mediaspend.settings import ConfigManager, EngineSettings
from mediaspend.store import JsonPlanStore


def print_header() -> None:
    """Prints the application header."""
    print("=" * 60)
    print("  MediaSpend - Media Plan Billing & Spend Engine")
    print(f"  Version: {__version__}")
    print("=" * 60)
    print()


def print_schedule(schedule: BillingSchedule, budget: Decimal) -> None:
    """
    Prints a billing schedule summary to the console.

    Args:
        schedule: Computed billing schedule.
        budget: Plan budget for comparison.
    """
    print("  BILLING SCHEDULE")
    print("  " + "-" * 56)
    print(f"  {'Month':<16}{'Media':>10}{'Fee':>10}{'Ad Serving':>12}{'Total':>12}")
    for bucket in schedule.months:
        print(
            f"  {bucket.month_label:<16}"
            f"{format_money(bucket.total_media):>10}"
            f"{format_money(bucket.total_fee):>10}"
            f"{format_money(bucket.ad_serving_fee):>12}"
            f"{format_money(bucket.total_amount):>12}"
        )
    print("  " + "-" * 56)
    print(f"  Grand Total:       {format_money(schedule.grand_total)}")
    print(f"  Campaign Budget:   {format_money(budget)}")
    print()


def print_metrics(metrics: DashboardMetrics) -> None:
    """
    Prints dashboard metrics to the console.

    Args:
        metrics: Aggregated dashboard metrics.
    """
    print("  SPEND OVERVIEW")
    print("  " + "-" * 40)
    print(f"  Financial Year:    {metrics.financial_year_start} to {metrics.financial_year_end}")
    print(f"  FY Spend:          {format_money(metrics.financial_year_spend)}")
    print(f"  Past {len(metrics.daily_spend)} Days:      {format_money(metrics.rolling_spend)}")
    print(f"  Live Campaigns:    {len(metrics.live_campaigns)}")
    print()

    if metrics.spend_by_media_type:
        print("  SPEND BY MEDIA TYPE")
        print("  " + "-" * 40)
        for share in metrics.spend_by_media_type:
            print(f"  {share.name:<24}{format_money(share.amount):>14}  {share.percentage:5.1f}%")
        print()

    if metrics.spend_by_campaign:
        print("  SPEND BY CAMPAIGN")
        print("  " + "-" * 40)
        for share in metrics.spend_by_campaign:
            label = f"{share.name} ({share.mba_number})"
            print(f"  {label:<24}{format_money(share.amount):>14}  {share.percentage:5.1f}%")
        print()

    if metrics.estimated_mba_numbers:
        print("  ⚠️  Estimated from budget (no delivery data):")
        for mba_number in metrics.estimated_mba_numbers:
            print(f"     • {mba_number}")
        print()


def load_line_items(
    store: JsonPlanStore,
    plan: PlanVersion,
    normalizer: BurstNormalizer
) -> List[LineItem]:
    """Normalises every stored line item of a plan version."""
    line_items: List[LineItem] = []
    for media_type in MediaType:
        records = store.list_line_items(plan.mba_number, plan.version_number, media_type)
        if not records:
            continue
        result = normalizer.normalise_line_items(records, media_type)
        for issue in result.issues:
            print(f"     {issue}")
        line_items.extend(result.line_items)
    return line_items


def find_version(
    store: JsonPlanStore,
    mba_number: str,
    version_number: Optional[int]
) -> dict:
    """
    Returns the requested plan version record, or the latest one.

    Raises:
        KeyError: If the plan or version does not exist.
    """
    if version_number is not None:
        return store.get_version(mba_number, version_number)
    versions = store.list_versions(mba_number)
    if not versions:
        raise KeyError(mba_number)
    return max(versions, key=lambda v: int(v.get("version_number") or 1))


def load_plan(
    store: JsonPlanStore,
    record: dict,
    date_manager: DateManager
) -> Tuple[PlanVersion, List[LineItem], FeeModelParameters]:
    """Builds the plan version, its line items and its fee parameters."""
    plan = plan_version_from_record(record, date_manager)
    parameters = fee_parameters_from_record(record.get("fees") or record)
    line_items = load_line_items(store, plan, BurstNormalizer(parameters, date_manager))
    if not plan.media_types:
        plan.media_types = sorted(
            {item.media_type for item in line_items}, key=list(MediaType).index
        )
    return plan, line_items, parameters


def print_partial(values: PartialBilling, budget: Decimal) -> None:
    """Prints partial MBA values against the campaign budget."""
    print("  PARTIAL MBA")
    print("  " + "-" * 40)
    print(f"  Months:            {', '.join(values.month_labels)}")
    for media_type, amount in values.media_totals.items():
        print(f"  {media_type.label:<19}{format_money(amount):>14}")
    print(f"  {'Gross Media':<19}{format_money(values.gross_media):>14}")
    print(f"  {'Fee':<19}{format_money(values.fee):>14}")
    print(f"  {'Ad Serving':<19}{format_money(values.ad_serving):>14}")
    print(f"  {'Production':<19}{format_money(values.production):>14}")
    print("  " + "-" * 40)
    print(f"  Total Investment:  {format_money(values.total)}")
    print(f"  Campaign Budget:   {format_money(budget)}")
    print()


def run_schedule(
    store_path: Path,
    mba_number: str,
    version_number: Optional[int],
    output_dir: Path,
    save: bool,
    settings: EngineSettings
) -> int:
    """
    Builds and exports the billing schedule of one plan version.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    print_header()
    print(f"  Loading: {store_path}")

    if not store_path.exists():
        print(f"\n  ❌ ERROR: File not found: {store_path}")
        return 1
    store = JsonPlanStore(store_path)

    try:
        record = find_version(store, mba_number, version_number)
    except KeyError:
        print(f"\n  ❌ ERROR: No plan version found for {mba_number}")
        return 1

    date_manager = DateManager(settings.timezone)
    plan, line_items, parameters = load_plan(store, record, date_manager)
    print(f"  ✓ Loaded {len(line_items)} line items for {plan.mba_number} v{plan.version_number}")
    print()

    builder = BillingScheduleBuilder(date_manager)
    schedule = builder.recompute(plan, line_items, parameters)
    if not schedule.months:
        print("  ❌ ERROR: Plan has no valid campaign dates")
        return 1
    delivery = builder.build_delivery_schedule(plan, line_items, parameters)
    billing = builder.build_line_item_schedule(plan, line_items, parameters, delivery=False)

    serialiser = ScheduleSerialiser(currency_symbol=settings.currency_symbol)
    json_path = output_dir / serialiser.generate_filename(f"billing_{plan.mba_number}")
    serialiser.save_to_file(serialiser.serialise_schedule(schedule), json_path)
    print(f"  ✓ Billing schedule saved: {json_path}")

    excel_reporter = ExcelReporter()
    excel_path = output_dir / excel_reporter.generate_filename(f"billing_{plan.mba_number}")
    excel_reporter.generate_report(schedule, excel_path, plan)
    print(f"  ✓ Excel report saved: {excel_path}")

    if save:
        store.update_version(plan.mba_number, plan.version_number, {
            "billingSchedule": serialiser.delivery_schedule_to_list(billing),
            "deliverySchedule": serialiser.delivery_schedule_to_list(delivery),
        })
        print(f"  ✓ Schedules stored on {plan.mba_number} v{plan.version_number}")
    print()

    print_schedule(schedule, plan.budget)
    return 0


def run_dashboard(
    store_path: Path,
    client_slug: Optional[str],
    as_at: Optional[date],
    settings: EngineSettings
) -> int:
    """
    Prints financial-year dashboard metrics.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    print_header()
    if not store_path.exists():
        print(f"\n  ❌ ERROR: File not found: {store_path}")
        return 1

    date_manager = DateManager(settings.timezone)
    store = JsonPlanStore(store_path)
    versions = [plan_version_from_record(r, date_manager) for r in store.list_versions()]
    aggregator = DashboardAggregator(settings, date_manager)
    metrics = aggregator.aggregate(client_slug, versions, as_at)
    print_metrics(metrics)
    return 0


def run_expected(
    store_path: Path,
    mba_number: str,
    as_at: Optional[date],
    settings: EngineSettings
) -> int:
    """
    Prints the expected spend to date of a plan's selected version.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    print_header()
    if not store_path.exists():
        print(f"\n  ❌ ERROR: File not found: {store_path}")
        return 1

    date_manager = DateManager(settings.timezone)
    store = JsonPlanStore(store_path)
    versions = [
        plan_version_from_record(r, date_manager)
        for r in store.list_versions(mba_number)
    ]
    selected = select_active_versions(versions).get(mba_number)
    if selected is None:
        print(f"\n  ❌ ERROR: No plan version found for {mba_number}")
        return 1

    aggregator = DashboardAggregator(settings, date_manager)
    expected = aggregator.expected_spend_to_date(
        selected.delivery_schedule or selected.billing_schedule,
        selected.campaign_start,
        selected.campaign_end,
        as_at,
    )
    print(f"  {mba_number} v{selected.version_number} expected spend to date: "
          f"{format_money(expected)}")
    return 0


def run_partial(
    store_path: Path,
    mba_number: str,
    version_number: Optional[int],
    months: List[str],
    settings: EngineSettings
) -> int:
    """
    Prints a partial MBA for the chosen months and checks it against the budget.

    Returns:
        Exit code (0 when within tolerance, 1 for errors or a mismatch).
    """
    print_header()
    if not store_path.exists():
        print(f"\n  ❌ ERROR: File not found: {store_path}")
        return 1
    store = JsonPlanStore(store_path)

    try:
        record = find_version(store, mba_number, version_number)
    except KeyError:
        print(f"\n  ❌ ERROR: No plan version found for {mba_number}")
        return 1

    date_manager = DateManager(settings.timezone)
    plan, line_items, parameters = load_plan(store, record, date_manager)
    schedule = BillingScheduleBuilder(date_manager).recompute(plan, line_items, parameters)

    editor = PartialBillingEditor.from_settings(schedule, months, settings)
    print_partial(editor.values, plan.budget)

    result = editor.save(plan.budget)
    if not result.is_valid:
        print(f"  ❌ {result.error}")
        return 1
    print("  ✓ Partial MBA matches the campaign budget")
    return 0


def run_accrual(
    store_path: Path,
    months: List[str],
    client_slug: Optional[str],
    settings: EngineSettings
) -> int:
    """
    Prints delivered against billed amounts for the chosen months.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    print_header()
    if not store_path.exists():
        print(f"\n  ❌ ERROR: File not found: {store_path}")
        return 1

    date_manager = DateManager(settings.timezone)
    store = JsonPlanStore(store_path)
    versions = [plan_version_from_record(r, date_manager) for r in store.list_versions()]
    selected = [
        plan for plan in select_active_versions(versions).values()
        if client_slug is None or slugify(plan.client_name) == client_slug
    ]
    rows = AccrualCalculator(date_manager).compute_rows(selected, months)

    print("  ACCRUAL")
    print("  " + "-" * 70)
    print(f"  {'MBA':<10}{'Line Item':<24}{'Delivered':>12}{'Billed':>12}{'Difference':>12}")
    for row in rows:
        print(
            f"  {row.mba_number:<10}{row.line_item_name[:23]:<24}"
            f"{format_money(row.delivery_amount):>12}"
            f"{format_money(row.billing_amount):>12}"
            f"{format_money(row.difference):>12}"
        )
    print("  " + "-" * 70)
    total = sum((row.difference for row in rows), Decimal("0"))
    print(f"  Net accrual:       {format_money(total)}")
    return 0


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="MediaSpend - Media plan billing and spend engine"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log engine decisions at debug level"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    schedule_parser = subparsers.add_parser("schedule", help="Build a billing schedule")
    schedule_parser.add_argument("store", type=Path, help="Path to plan store JSON")
    schedule_parser.add_argument("mba_number", help="MBA number of the plan")
    schedule_parser.add_argument("--version", type=int, default=None,
                                 help="Plan version (default: latest)")
    schedule_parser.add_argument("--output-dir", type=Path, default=Path("output"),
                                 help="Output directory for reports (default: output/)")
    schedule_parser.add_argument("--save", action="store_true",
                                 help="Store the schedules back on the plan version")

    dashboard_parser = subparsers.add_parser("dashboard", help="Report dashboard spend")
    dashboard_parser.add_argument("store", type=Path, help="Path to plan store JSON")
    dashboard_parser.add_argument("--client", default=None, help="Client slug (default: all)")
    dashboard_parser.add_argument("--as-at", type=date.fromisoformat, default=None,
                                  help="Reference date YYYY-MM-DD (default: today)")

    expected_parser = subparsers.add_parser("expected", help="Expected spend to date")
    expected_parser.add_argument("store", type=Path, help="Path to plan store JSON")
    expected_parser.add_argument("mba_number", help="MBA number of the plan")
    expected_parser.add_argument("--as-at", type=date.fromisoformat, default=None,
                                 help="Reference date YYYY-MM-DD (default: today)")

    partial_parser = subparsers.add_parser("partial", help="Bill part of a plan by month")
    partial_parser.add_argument("store", type=Path, help="Path to plan store JSON")
    partial_parser.add_argument("mba_number", help="MBA number of the plan")
    partial_parser.add_argument("--version", type=int, default=None,
                                help="Plan version (default: latest)")
    partial_parser.add_argument("--month", action="append", default=[], dest="months",
                                help="Month to bill, e.g. 'March 2025' (repeatable; default: all)")

    accrual_parser = subparsers.add_parser("accrual", help="Compare delivery against billing")
    accrual_parser.add_argument("store", type=Path, help="Path to plan store JSON")
    accrual_parser.add_argument("--month", action="append", required=True, dest="months",
                                help="Month to report, e.g. 'March 2025' (repeatable)")
    accrual_parser.add_argument("--client", default=None, help="Client slug (default: all)")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    settings = ConfigManager().load_settings()

    if args.command == "schedule":
        return run_schedule(
            args.store, args.mba_number, args.version, args.output_dir, args.save, settings
        )
    if args.command == "dashboard":
        return run_dashboard(args.store, args.client, args.as_at, settings)
    if args.command == "partial":
        return run_partial(args.store, args.mba_number, args.version, args.months, settings)
    if args.command == "accrual":
        return run_accrual(args.store, args.months, args.client, settings)
    return run_expected(args.store, args.mba_number, args.as_at, settings)


if __name__ == "__main__":
    sys.exit(main())
