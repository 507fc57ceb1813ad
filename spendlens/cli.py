"""CLI entry point for SpendLens.

Commands:
    spendlens import FILE [FILE ...] [--json]    Import bank statement workbooks as one batch
    spendlens dashboard [--period P] [--month M] [--year Y] [--json]
                                                 Spend summary for a period
    spendlens forecast                           Month-end projection for today
    spendlens subscriptions potential            Recurring charges awaiting confirmation
    spendlens subscriptions active               Confirmed subscriptions
    spendlens subscriptions confirm MERCHANT     Mark a merchant as a subscription
    spendlens subscriptions unmark MERCHANT      Clear a merchant's subscription flag
    spendlens transactions [--from D --to D | --recent N | --hash H] [--spending] [--json]
                                                 List stored transactions
    spendlens status                             Transaction and import counts
    spendlens reset --yes                        Delete all imported transactions
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sqlite3
import sys
from datetime import date, timedelta
from pathlib import Path

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on SPENDLENS_LOG_LEVEL env var."""
    level = os.environ.get("SPENDLENS_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load config from SPENDLENS_CONFIG_DIR, or None if the directory is absent."""
    from spendlens.config import Config

    config_dir = os.environ.get("SPENDLENS_CONFIG_DIR", "config")
    if not Path(config_dir).is_dir():
        logger.debug("Config directory %s not found, using defaults", config_dir)
        return None
    return Config(config_dir=config_dir)


def _get_repo():
    """Create a Repository connected to the configured database."""
    from spendlens.database.repository import Repository

    db_path = os.environ.get("SPENDLENS_DB_PATH", "spendlens.db")
    repo = Repository(db_path=db_path)
    repo.apply_migrations(_get_migrations_dir())
    return repo


def _get_migrations_dir() -> Path:
    """Get the migrations directory path."""
    default = Path(__file__).parent / "database" / "migrations"
    return Path(os.environ.get("SPENDLENS_MIGRATIONS_DIR", default))


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


# ── Command handlers ─────────────────────────────────────


def cmd_import(args: argparse.Namespace) -> int:
    """Import statement files as a single batch."""
    from spendlens.imports.pipeline import SUPPORTED_EXTENSIONS, FilePayload, ImportPipeline

    payloads = []
    for path in args.files:
        filepath = path.resolve()
        if not filepath.exists():
            print(f"Error: File not found: {filepath}")
            return 1
        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            print(f"Error: Unsupported file type: {filepath.suffix}")
            return 1
        payloads.append(FilePayload.from_path(filepath))

    config = _get_config()
    repo = _get_repo()
    try:
        pipeline = ImportPipeline(repo=repo, config=config)
        try:
            outcome = pipeline.import_batch(payloads)
        except sqlite3.Error:
            logger.exception("Import failed, nothing from this batch was saved")
            return 1
    finally:
        repo.close()

    if args.json:
        _print_json(outcome.to_dict())
    else:
        for result in outcome.file_results:
            print(
                f"  {result.file_name}: parsed={result.rows_parsed},"
                f" inserted={result.inserted}, dup={result.skipped_duplicates}"
            )
            for err in result.errors:
                print(f"    {err}")
        print(
            f"\nProcessed {outcome.total_files} files: {outcome.total_rows_parsed} rows,"
            f" {outcome.total_inserted} new, {outcome.total_skipped_duplicates} duplicates"
        )
    failed = sum(1 for r in outcome.file_results if r.errors and r.rows_parsed == 0)
    return 1 if failed == outcome.total_files and outcome.total_files else 0


def cmd_dashboard(args: argparse.Namespace) -> int:
    """Print the spend summary for a period."""
    from spendlens.analytics.dashboard import build_dashboard

    repo = _get_repo()
    try:
        summary = build_dashboard(
            repo, args.period, month=args.month, year=args.year, config=_get_config(),
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()

    if args.json:
        _print_json(summary.to_dict())
        return 0

    print(f"SpendLens Dashboard ({summary.period.value}: {summary.start} .. {summary.end})")
    print("=" * 50)
    print(f"  Total spent:          {summary.total_spent:>12,}")
    print(f"  Previous period:      {summary.previous_period_spent:>12,}")
    print(f"  Change:               {summary.change_percent:>11}%")
    print(f"  Avg per active day:   {summary.avg_per_day:>12,}")
    print(f"  Overall avg per day:  {summary.overall_avg_per_day:>12,}")
    print(f"  Usual monthly spend:  {summary.avg_monthly_spend:>12,}")
    if summary.projected_month_end is not None:
        print(f"  Projected month-end:  {summary.projected_month_end:>12,}"
              f" ({summary.projected_compared_percent}% vs usual)")
    return 0


def cmd_forecast(args: argparse.Namespace) -> int:
    """Month-end projection for the current month."""
    from spendlens.analytics.projection import projected_month_end

    config = _get_config()
    settings = config.projection_settings if config else {}
    history_months = settings.get("history_months", 12)

    today = date.today()
    month_start = today.replace(day=1)
    repo = _get_repo()
    try:
        current = repo.get_spending_between(month_start, today)
        history = repo.get_spending_between(
            month_start - relativedelta(months=history_months),
            month_start - timedelta(days=1),
        )
    finally:
        repo.close()

    kwargs = {k: settings[k] for k in ("min_history_months", "min_fraction", "max_fraction")
              if k in settings}
    projection = projected_month_end(today, current, history, **kwargs)
    print(f"Projected spend for {today:%Y-%m}: {projection.projected:,}")
    print(f"  Usual monthly spending: {projection.usual_monthly_spending:,}")
    print(f"  Compared to usual:      {projection.compared_percent}%")
    print(f"  Method:                 {projection.method}")
    return 0


def cmd_subscriptions(args: argparse.Namespace) -> int:
    """Subscription detection and confirmation."""
    from spendlens.analytics.subscriptions import SubscriptionService

    sub = args.subscriptions_command
    if sub is None:
        print("Usage: spendlens subscriptions {potential,active,confirm,unmark}")
        return 1

    repo = _get_repo()
    try:
        service = SubscriptionService(repo, _get_config())
        if sub in ("confirm", "unmark"):
            try:
                if sub == "confirm":
                    count = service.confirm(args.merchant)
                else:
                    count = service.unmark(args.merchant)
            except ValueError as e:
                print(f"Error: {e}")
                return 1
            verb = "Marked" if sub == "confirm" else "Unmarked"
            print(f"{verb} {count} transaction(s) for '{args.merchant}'.")
            return 0

        results = service.find_potential() if sub == "potential" else service.get_active()
    finally:
        repo.close()

    if args.json:
        _print_json([r.to_dict() for r in results])
        return 0
    if not results:
        print("No subscriptions found.")
        return 0
    for r in results:
        variance = f", variance {r.amount_variance:.1f}%" if r.amount_variance is not None else ""
        status = "active" if r.active else "inactive"
        print(
            f"  {r.merchant}: {r.average_amount:,} x{r.transaction_count}"
            f" {r.frequency.value} ({status}, last {r.last_date}{variance})"
        )
    return 0


def cmd_transactions(args: argparse.Namespace) -> int:
    """List stored transactions: all, a date range, the most recent, or one hash."""
    if (args.date_from is None) != (args.date_to is None):
        print("Error: --from and --to must be given together.")
        return 1
    if args.date_from is not None and (args.recent is not None or args.hash):
        print("Error: --from/--to cannot be combined with --recent or --hash.")
        return 1
    if args.date_from is not None and args.date_from > args.date_to:
        print("Error: --from must not be after --to.")
        return 1
    if args.recent is not None and args.recent < 1:
        print("Error: --recent must be at least 1.")
        return 1

    repo = _get_repo()
    try:
        if args.hash:
            txn = repo.get_transaction_by_hash(args.hash)
            if txn is None:
                print(f"No transaction with hash {args.hash}")
                return 1
            txns = [txn]
        elif args.recent is not None:
            txns = repo.get_recent_transactions(args.recent)
        elif args.date_from is not None:
            txns = repo.get_transactions_between(args.date_from, args.date_to)
        else:
            txns = repo.get_all_transactions()
    finally:
        repo.close()

    if args.spending:
        txns = [t for t in txns if t.is_spending]

    if args.json:
        _print_json([t.to_dict() for t in txns])
        return 0
    if not txns:
        print("No transactions found.")
        return 0
    for t in txns:
        flag = " [sub]" if t.is_subscription else ""
        print(f"  {t.date}  {t.amount:>12,}  {t.layout}  {t.merchant}{flag}")
    print(f"\n{len(txns)} transaction(s)")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Display system status counts."""
    repo = _get_repo()
    try:
        counts = repo.get_status_counts()
    finally:
        repo.close()

    print("SpendLens Status")
    print("=" * 40)
    print(f"  Total transactions:  {counts['total_txns']:,}")
    print(f"  Debit (layout A):    {counts['debit_txns']:,}")
    print(f"  Credit (layout B):   {counts['credit_txns']:,}")
    print(f"  Subscriptions:       {counts['subscription_txns']:,}")
    print(f"  Import batches:      {counts['total_batches']:,}")
    print(f"  Last import:         {counts['last_import'] or 'never'}")
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete every imported transaction."""
    if not args.yes:
        print("Refusing to delete all data without --yes.")
        return 1
    repo = _get_repo()
    try:
        deleted = repo.delete_all_transactions()
    finally:
        repo.close()
    logger.info("Deleted %d transactions", deleted)
    print(f"Deleted {deleted} transaction(s).")
    return 0


_COMMANDS = {
    "import": cmd_import,
    "dashboard": cmd_dashboard,
    "forecast": cmd_forecast,
    "subscriptions": cmd_subscriptions,
    "transactions": cmd_transactions,
    "status": cmd_status,
    "reset": cmd_reset,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="spendlens",
        description="SpendLens bank statement import and spend analytics",
    )
    subparsers = parser.add_subparsers(dest="command")

    # import
    import_p = subparsers.add_parser("import", help="Import statement workbook(s) as one batch")
    import_p.add_argument("files", nargs="+", type=Path, help="Statement .xlsx files")
    import_p.add_argument("--json", action="store_true", help="Print the report as JSON")

    # dashboard
    dash_p = subparsers.add_parser("dashboard", help="Spend summary for a period")
    dash_p.add_argument(
        "--period", default="THIS_MONTH", type=str.upper,
        choices=["THIS_MONTH", "MONTH", "YTD", "YEAR"],
    )
    dash_p.add_argument("--month", type=int, help="Month (1-12) for --period MONTH")
    dash_p.add_argument("--year", type=int, help="Year for --period MONTH or YEAR")
    dash_p.add_argument("--json", action="store_true", help="Print the summary as JSON")

    # forecast
    subparsers.add_parser("forecast", help="Month-end projection for today")

    # subscriptions
    subs_p = subparsers.add_parser("subscriptions", help="Detect and manage subscriptions")
    subs_sub = subs_p.add_subparsers(dest="subscriptions_command")
    potential_p = subs_sub.add_parser("potential", help="Recurring charges awaiting confirmation")
    potential_p.add_argument("--json", action="store_true", help="Print results as JSON")
    active_p = subs_sub.add_parser("active", help="Confirmed subscriptions")
    active_p.add_argument("--json", action="store_true", help="Print results as JSON")
    confirm_p = subs_sub.add_parser("confirm", help="Mark a merchant as a subscription")
    confirm_p.add_argument("merchant", help="Merchant name, exactly as imported")
    unmark_p = subs_sub.add_parser("unmark", help="Clear a merchant's subscription flag")
    unmark_p.add_argument("merchant", help="Merchant name, exactly as imported")

    # transactions
    txn_p = subparsers.add_parser("transactions", help="List stored transactions")
    txn_p.add_argument("--from", dest="date_from", type=date.fromisoformat,
                       metavar="YYYY-MM-DD", help="Start date (inclusive)")
    txn_p.add_argument("--to", dest="date_to", type=date.fromisoformat,
                       metavar="YYYY-MM-DD", help="End date (inclusive)")
    pick = txn_p.add_mutually_exclusive_group()
    pick.add_argument("--recent", type=int, metavar="N", help="Most recent N transactions")
    pick.add_argument("--hash", help="Single transaction by dedup hash")
    txn_p.add_argument("--spending", action="store_true", help="Outflows only")
    txn_p.add_argument("--json", action="store_true", help="Print as JSON")

    # status
    subparsers.add_parser("status", help="Show transaction and import counts")

    # reset
    reset_p = subparsers.add_parser("reset", help="Delete all imported transactions")
    reset_p.add_argument("--yes", action="store_true", help="Confirm deletion")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
