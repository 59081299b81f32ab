"""Command-line entry point: merge small credit records from a shell or cron.

Usage:
    credit-merge merge [ACCOUNT_ID] --min-amount 5 --strategy month [--dry-run]
    credit-merge stats ACCOUNT_ID --threshold 5 --strategy week

Without an account id ``merge`` walks every account; a failure on one
account is reported and the run moves on to the next.
"""

from __future__ import annotations

import sys
import time
from decimal import Decimal
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

import credit_merge.models  # noqa: F401  (registers tables on Base.metadata)
from credit_merge.core.config import settings
from credit_merge.core.database import SessionLocal
from credit_merge.core.exceptions import AccountNotFoundError, InvalidStrategyError
from credit_merge.core.logging import get_logger, setup_logging
from credit_merge.models.account import Account
from credit_merge.services.merge.engine import MergeOrchestrator, resolve_account
from credit_merge.services.merge.stats import SmallAmountStats
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)


def _console() -> Console:
    return Console(file=sys.stdout, highlight=False, force_terminal=False, width=120)


def _parse_strategy(value: str) -> TimeWindowStrategy:
    try:
        return TimeWindowStrategy.from_string(value)
    except InvalidStrategyError as exc:
        raise click.ClickException(
            f"{exc}. Available strategies: {', '.join(TimeWindowStrategy.options())}"
        ) from exc


def render_group_stats(console: Console, stats: SmallAmountStats) -> None:
    """Print the per-window group table and the expected reduction."""
    if not stats.group_stats:
        return

    strategy = stats.strategy.value if stats.strategy else "-"
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold",
                  title=f"Groups by {strategy}")
    table.add_column("Group", style="bold")
    table.add_column("Records", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Earliest expiry")
    for key, group in stats.group_stats.items():
        table.add_row(
            key,
            str(group.count),
            f"{group.total:.2f}",
            group.earliest_expiry.strftime("%Y-%m-%d %H:%M:%S")
            if group.earliest_expiry
            else "none",
        )
    console.print(table)
    console.print(
        f"Expected reduction: {stats.potential_record_reduction} records "
        f"({stats.merge_efficiency:.1f}%)"
    )


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Consolidate small credit records into fewer, larger ones."""
    setup_logging("DEBUG" if verbose else settings.log_level, stream=sys.stderr)


@main.command("merge")
@click.argument("account_id", required=False)
@click.option("-m", "--min-amount", type=float, default=settings.default_min_amount,
              show_default=True, help="Records with balance <= this amount are merged.")
@click.option("-b", "--batch-size", type=int, default=settings.default_batch_size,
              show_default=True, help="Records per batch.")
@click.option("-s", "--strategy", "strategy_name", default=settings.default_strategy,
              show_default=True, help="Time window: day, week, month or all.")
@click.option("--dry-run", is_flag=True, help="Only report what would be merged.")
def merge_command(
    account_id: Optional[str],
    min_amount: float,
    batch_size: int,
    strategy_name: str,
    dry_run: bool,
) -> None:
    """Merge small credit records of ACCOUNT_ID, or of every account."""
    strategy = _parse_strategy(strategy_name)
    console = _console()
    threshold = Decimal(str(min_amount))

    console.print("[bold]Small credit merge[/bold]")
    console.print(
        f"min amount: {threshold}  batch size: {batch_size}  "
        f"strategy: {strategy.value} - {strategy.label}  dry run: {'yes' if dry_run else 'no'}"
    )
    if dry_run:
        console.print("[yellow]Dry run: no records will be merged[/yellow]")

    logger.info(
        "Merge command started: account=%s min_amount=%s strategy=%s dry_run=%s",
        account_id,
        threshold,
        strategy.value,
        dry_run,
    )

    db = SessionLocal()
    try:
        if account_id is not None:
            try:
                accounts = [resolve_account(db, account_id)]
            except AccountNotFoundError as exc:
                logger.error("Account not found: %s", account_id)
                raise click.ClickException(str(exc)) from exc
        else:
            accounts = db.query(Account).order_by(Account.created_at).all()
            console.print(f"No account given, processing all {len(accounts)} accounts")

        orchestrator = MergeOrchestrator(db)
        started = time.perf_counter()
        processed = merged_total = failed = 0

        for account in accounts:
            console.rule(f"Account {account.id} ({escape(account.name)})")
            stats = orchestrator.get_detailed_small_amount_stats(account, threshold, strategy)
            console.print(
                f"Found {stats.count} small records, total {stats.total:.2f} "
                f"{account.currency}, average {stats.average_amount:.2f}"
            )
            if not stats.has_mergeable_records:
                console.print("Nothing to merge, skipping")
                continue

            render_group_stats(console, stats)
            try:
                merged = orchestrator.merge_small_amounts(
                    account, threshold, batch_size, strategy, dry_run
                )
            except Exception as exc:
                failed += 1
                console.print(f"[red]Merge failed for {account.id}: {escape(str(exc))}[/red]")
                continue

            processed += stats.count
            merged_total += merged
            if dry_run:
                console.print("Dry run, merge skipped")
            else:
                console.print(f"Merged {merged} records")

        elapsed = time.perf_counter() - started
        console.print(
            f"Done: accounts={len(accounts)} records={processed} merged={merged_total} "
            f"failed={failed} elapsed={elapsed:.2f}s{' (dry run)' if dry_run else ''}"
        )
    finally:
        db.close()


@main.command("stats")
@click.argument("account_id")
@click.option("-t", "--threshold", type=float, default=settings.default_min_amount,
              show_default=True, help="Small-amount threshold.")
@click.option("-s", "--strategy", "strategy_name", default=settings.default_strategy,
              show_default=True, help="Time window: day, week, month or all.")
def stats_command(account_id: str, threshold: float, strategy_name: str) -> None:
    """Show small-amount statistics of ACCOUNT_ID."""
    strategy = _parse_strategy(strategy_name)
    console = _console()

    db = SessionLocal()
    try:
        try:
            account = resolve_account(db, account_id)
        except AccountNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc

        stats = MergeOrchestrator(db).get_detailed_small_amount_stats(
            account, Decimal(str(threshold)), strategy
        )
        console.print(
            f"Account {account.id}: {stats.count} small records, total {stats.total:.2f}, "
            f"average {stats.average_amount:.2f}, mergeable: "
            f"{'yes' if stats.has_mergeable_records else 'no'}"
        )
        render_group_stats(console, stats)
    finally:
        db.close()


if __name__ == "__main__":
    main()
