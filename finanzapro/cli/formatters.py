"""CLI output formatters.

Keeps display/formatting logic out of main.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from ..models.records import INCOME, SYNC_PENDING, UNCATEGORIZED_NAME

if TYPE_CHECKING:
    from ..services.importer import ImportSummary
    from ..services.sync import DrainResult, PullResult


def format_money(amount: float) -> str:
    return f"{amount:,.2f}"


def format_transaction_row(txn: dict[str, Any], show_status: bool = False) -> str:
    """Format a transaction row for CLI display.

    Args:
        txn: Transaction dictionary (with ``category`` attached).
        show_status: Whether to flag records not yet confirmed remotely.

    Returns:
        Formatted string for display.
    """
    date = str(txn.get("date") or "")[:10]
    sign = "+" if txn.get("type") == INCOME else "-"
    amount = f"{sign}{format_money(float(txn.get('amount') or 0))}"
    description = (txn.get("description") or "")[:28].ljust(28)
    category = txn.get("category") or {}
    category_name = (category.get("name") or UNCATEGORIZED_NAME)[:18].ljust(18)

    row = f"{date}  {amount:>12}  {description}  {category_name}"

    if show_status and txn.get("sync_status") == SYNC_PENDING:
        row += "  [PENDING]"

    return row


def echo_success(message: str) -> None:
    """Echo a success message in green."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def echo_error(message: str) -> None:
    """Echo an error message in red."""
    click.echo(click.style(f"✗ {message}", fg="red"))


def echo_warning(message: str) -> None:
    """Echo a warning message in yellow."""
    click.echo(click.style(f"⚠ {message}", fg="yellow"))


def echo_header(message: str) -> None:
    """Echo a header with underline."""
    click.echo(f"\n{message}")
    click.echo("=" * len(message))


def format_pull_result(source: str, result: PullResult) -> None:
    """Format and display a pull operation result.

    Args:
        source: Collection name.
        result: PullResult object.
    """
    if result.success:
        echo_success(f"Fetched {result.fetched} {source}")
        click.echo(f"    Inserted: {result.inserted}, Updated: {result.updated}")
        click.echo(f"    Total locally: {result.total}")
    else:
        echo_error(f"{source}: {'; '.join(result.errors)}")


def format_drain_result(result: DrainResult) -> None:
    """Format and display a drain (push) result."""
    if not result.ran:
        echo_warning(f"Sync skipped: {result.skipped_reason}")
        return
    if result.pending == 0:
        echo_success("Nothing to sync")
        return
    if result.success:
        echo_success(f"Synced {result.succeeded} changes")
        return
    echo_error(f"Sync incomplete: {result.succeeded} synced, {result.failed} failed")
    if result.dead_lettered:
        echo_warning(f"{result.dead_lettered} changes gave up after repeated failures")
    for error in result.errors:
        click.echo(f"    {error}")


def format_import_summary(summary: ImportSummary) -> None:
    parts = []
    if summary.categories:
        parts.append(f"{summary.categories} categories")
    parts.append(f"{summary.transactions} transactions")
    echo_success(f"Imported {', '.join(parts)}")
    if summary.errors:
        echo_warning(f"{summary.errors} rows skipped")


def display_pending_operations(entries: list[dict[str, Any]]) -> None:
    """Display queue entries in table format."""
    click.echo(f"\nPending operations ({len(entries)}):\n")
    click.echo(f"{'#':>5}  {'Kind':<7} {'Table':<13} {'Record':<38} {'Tries':>5}  Status")
    click.echo("-" * 82)
    for entry in entries:
        status = "DEAD" if entry["dead"] else "queued"
        click.echo(
            f"{entry['id']:>5}  {entry['kind']:<7} {entry['table_name']:<13} "
            f"{entry['record_id']:<38} {entry.get('attempts') or 0:>5}  {status}"
        )
        if entry.get("last_error"):
            click.echo(f"       last error: {entry['last_error']}")
