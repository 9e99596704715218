"""FinanzaPro command line interface."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import click

from ..config import load_config
from ..exceptions import FinanzaProError
from ..models.records import EXPENSE, INCOME, SYNCED_COLLECTIONS
from .formatters import (
    display_pending_operations,
    echo_header,
    echo_success,
    echo_warning,
    format_drain_result,
    format_import_summary,
    format_money,
    format_pull_result,
    format_transaction_row,
)
from .helpers import configure_logging, run_with_manager


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.toml",
)
@click.option("--mock", is_flag=True, help="Use the local mock remote (no network)")
@click.option("--offline", is_flag=True, help="Work offline: never contact the remote")
@click.option("--user", "user_id", default=None, help="Act as this user id")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv)")
@click.pass_context
def main(ctx, config_path, mock, offline, user_id, verbose):
    """FinanzaPro - offline-first personal finance tracker."""
    ctx.ensure_object(dict)
    try:
        cfg = load_config(config_path)
    except FinanzaProError as e:
        raise click.ClickException(str(e)) from e

    level = cfg.log_level
    if verbose == 1:
        level = "INFO"
    elif verbose >= 2:
        level = "DEBUG"
    configure_logging(level)

    ctx.obj["config"] = cfg
    ctx.obj["mock"] = mock
    ctx.obj["offline"] = offline
    ctx.obj["user_id"] = user_id


@main.command()
@click.pass_context
def init(ctx):
    """Bootstrap the local mirror: repair, seed defaults and pull."""

    async def action(manager):
        categories = await manager.get_categories()
        return manager.user_id, len(categories)

    user_id, category_count = run_with_manager(ctx, action, bootstrap=True)
    echo_header(f"Session for {user_id}")
    pull_results = ctx.obj.get("pull_results") or {}
    if not pull_results:
        echo_warning("Offline: initial pull skipped")
    for source, result in pull_results.items():
        format_pull_result(source, result)
    click.echo(f"\nCategories available: {category_count}")


@main.command()
@click.pass_context
def status(ctx):
    """Show local mirror and sync queue status."""

    async def action(manager):
        return manager.get_status()

    info = run_with_manager(ctx, action)
    echo_header("FinanzaPro Status")
    click.echo(f"User:               {info['user_id']}")
    click.echo(f"Online:             {'yes' if info['online'] else 'no'}")
    click.echo(f"Pending operations: {info['pending_operations']}")
    click.echo(f"Dead letters:       {info['dead_letters']}")
    click.echo(f"Unsynced records:   {info.get('unsynced_records', 0)}")
    for collection in SYNCED_COLLECTIONS:
        count = info["collections"].get(collection, 0)
        click.echo(f"  {collection.capitalize() + ':':<18}{count}")


@main.command()
@click.pass_context
def pending(ctx):
    """List operations waiting to be replayed."""

    async def action(manager):
        return manager.get_pending_operations()

    entries = run_with_manager(ctx, action)
    if not entries:
        echo_success("No pending operations")
        return
    display_pending_operations(entries)


@main.command()
@click.option("--pull", "pull_after", is_flag=True, help="Also pull remote data after pushing")
@click.pass_context
def sync(ctx, pull_after):
    """Replay queued changes against the remote now."""

    async def action(manager):
        result = await manager.sync()
        pulls = await manager.refresh() if pull_after and manager.is_online else {}
        return result, pulls

    result, pulls = run_with_manager(ctx, action)
    format_drain_result(result)
    for source, pull_result in pulls.items():
        format_pull_result(source, pull_result)


@main.command()
@click.option("--type", "type_", type=click.Choice([EXPENSE, INCOME]), default=None)
@click.option("--month", type=int, default=None, help="Month (1-12), requires --year")
@click.option("--year", type=int, default=None)
@click.option("-n", "--limit", type=int, default=50, show_default=True)
@click.option("--status", "show_status", is_flag=True, help="Flag unsynced rows")
@click.pass_context
def transactions(ctx, type_, month, year, limit, show_status):
    """List transactions, newest first."""

    async def action(manager):
        return await manager.get_transactions(type=type_, month=month, year=year, limit=limit)

    rows = run_with_manager(ctx, action)
    if not rows:
        click.echo("No transactions found.")
        return
    click.echo(f"Found {len(rows)} transactions:\n")
    for txn in rows:
        click.echo(format_transaction_row(txn, show_status=show_status))


@main.command()
@click.argument("amount", type=float)
@click.option("--type", "type_", type=click.Choice([EXPENSE, INCOME]), default=EXPENSE)
@click.option("--date", "date_", default=None, help="YYYY-MM-DD (default: today)")
@click.option("--category", "category_name", default=None, help="Category name")
@click.option("-d", "--description", default="", help="Description")
@click.pass_context
def add(ctx, amount, type_, date_, category_name, description):
    """Record a transaction locally (synced in the background)."""

    async def action(manager):
        category_id = None
        if category_name:
            for category in await manager.get_categories(type=type_):
                if category["name"].lower() == category_name.lower():
                    category_id = category["id"]
                    break
            else:
                raise click.BadParameter(f"Unknown {type_} category: {category_name}")
        return await manager.create_transaction(
            {
                "type": type_,
                "amount": amount,
                "date": date_ or date.today().isoformat(),
                "category_id": category_id,
                "description": description,
            }
        )

    txn = run_with_manager(ctx, action)
    echo_success(f"Saved {txn['type']} of {format_money(txn['amount'])} on {txn['date']}")


@main.command()
@click.option("--month", type=int, default=None)
@click.option("--year", type=int, default=None)
@click.pass_context
def summary(ctx, month, year):
    """Show income, expenses and spending by category for a month."""

    async def action(manager):
        totals = await manager.get_month_summary(month, year)
        groups = await manager.get_expenses_by_category(month, year)
        return totals, groups

    totals, groups = run_with_manager(ctx, action)
    today = date.today()
    echo_header(f"Summary {month or today.month:02d}/{year or today.year}")
    click.echo(f"Income:       {format_money(totals['income']):>12}")
    click.echo(f"Expenses:     {format_money(totals['expenses']):>12}")
    click.echo(f"Balance:      {format_money(totals['balance']):>12}")
    click.echo(f"Transactions: {totals['transaction_count']:>12}")
    if groups:
        click.echo("\nExpenses by category:")
        for group in groups:
            click.echo(
                f"  {group['icon']} {group['name'][:20]:<20} {format_money(group['total']):>12}"
                f"  ({group['count']})"
            )


@main.command("import-csv")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_csv(ctx, file):
    """Import transactions from a CSV file."""
    text = file.read_text(encoding="utf-8")

    async def action(manager):
        return await manager.import_from_csv(text)

    format_import_summary(run_with_manager(ctx, action))


@main.command("import-json")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_json(ctx, file):
    """Import a JSON backup (categories and transactions)."""
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {file}: {e}") from e

    async def action(manager):
        return await manager.import_from_json(payload)

    format_import_summary(run_with_manager(ctx, action))


@main.command("export-json")
@click.argument("file", type=click.Path(dir_okay=False, writable=True, path_type=Path))
@click.pass_context
def export_json(ctx, file):
    """Write a JSON backup that import-json can restore."""

    async def action(manager):
        return await manager.export_to_json()

    payload = run_with_manager(ctx, action)
    try:
        file.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot write {file}: {e}") from e
    echo_success(
        f"Exported {len(payload['transacciones'])} transactions and "
        f"{len(payload['categorias'])} categories to {file}"
    )


@main.command("retry-dead")
@click.pass_context
def retry_dead(ctx):
    """Give dead-lettered operations another retry budget."""

    async def action(manager):
        return manager.retry_dead_letters()

    revived = run_with_manager(ctx, action)
    if revived:
        echo_success(f"Requeued {revived} operations")
    else:
        click.echo("No dead-lettered operations.")


@main.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx, yes):
    """Wipe the user's local data and the pending queue."""
    if not yes:
        click.confirm(
            "This deletes local data and unsynced changes. Continue?", abort=True
        )

    async def action(manager):
        return await manager.clear_user_data()

    counts = run_with_manager(ctx, action)
    removed = sum(v for k, v in counts.items() if k != "pending_operations")
    echo_success(
        f"Removed {removed} records and {counts.get('pending_operations', 0)} pending operations"
    )


if __name__ == "__main__":
    main(obj={})
