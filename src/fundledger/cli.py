"""Command-line interface for fundledger.

Commands open the configured database (``FUNDLEDGER_DATABASE_URL`` or the
SQLite file under ``FUNDLEDGER_DATA_DIR``) and print plain-text tables.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

import click

from .config import BaseConfig, DevConfig
from .domain.buckets import BucketRef
from .domain.errors import LedgerError
from .domain.results import Failure
from .infra import SQLModelLedgerStore, bootstrap_database
from .logging_config import setup_logging
from .models.liability import PaymentFrequency
from .services.allocation import Allocation, pay_liabilities, suggest_allocation
from .services.amortization import generate_schedule, schedule_summary, total_interest
from .services.buckets import get_breakdown
from .services.settlement import check_settlement_status


def parse_money(value: str) -> Decimal:
    """Parse an amount such as ``12000``, ``12,000.50`` or ``12k``."""

    text = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if text.endswith("k"):
        factor, text = Decimal(1000), text[:-1]
    try:
        return Decimal(text) * factor
    except InvalidOperation:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Dates must be YYYY-MM-DD; got {value}")


def _store(ctx: click.Context) -> SQLModelLedgerStore:
    config: BaseConfig = ctx.obj["config"]
    _, session_factory = bootstrap_database(config)
    return SQLModelLedgerStore(session_factory)


def _fail(result: Failure) -> None:
    raise click.ClickException(f"{result.code}: {result.error.message}")


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Fund-bucket ledger and liability tools."""

    config = DevConfig()
    setup_logging(config)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""

    config: BaseConfig = ctx.obj["config"]
    bootstrap_database(config)
    click.echo(f"Database ready: {config.DATABASE_URL}")


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Amount borrowed")
@click.option("--rate", "-r", "rate", default="0", show_default=True, help="Annual interest rate (percent)")
@click.option("--payment", "payment", help="Periodic payment; omitted means the annuity for --periods")
@click.option("--periods", "-n", "periods", type=int, help="Number of payments")
@click.option(
    "--frequency",
    "-f",
    "frequency",
    type=click.Choice([f.value for f in PaymentFrequency]),
    default=PaymentFrequency.MONTHLY.value,
    show_default=True,
)
@click.option("--start", "-s", "start", required=True, help="First due date (YYYY-MM-DD)")
@click.option("--end", "end", help="Target payoff date (YYYY-MM-DD)")
@click.option("--excluded-interest", is_flag=True, default=False, help="Payments cover principal only")
@click.pass_context
def schedule(
    ctx: click.Context,
    principal: str,
    rate: str,
    payment: Optional[str],
    periods: Optional[int],
    frequency: str,
    start: str,
    end: Optional[str],
    excluded_interest: bool,
) -> None:
    """Preview an amortization table without touching the database."""

    if payment is None and periods is None:
        raise click.UsageError("Give --payment, --periods or both")
    config: BaseConfig = ctx.obj["config"]
    result = _preview(
        parse_money(principal),
        parse_money(rate),
        parse_money(payment) if payment is not None else None,
        parse_date(start),
        frequency,
        interest_included=not excluded_interest,
        end_date=parse_date(end),
        periods=periods,
        max_periods=config.MAX_SCHEDULE_PERIODS,
    )
    click.echo(f"{'#':>4}  {'due':<10}  {'payment':>12}  {'principal':>12}  {'interest':>10}  {'balance':>12}")
    for row in result:
        click.echo(
            f"{row.payment_number:>4}  {row.due_date.isoformat():<10}  {row.amount:>12}  "
            f"{row.principal:>12}  {row.interest:>10}  {row.remaining_balance:>12}"
        )
    payoff, _, count = schedule_summary(result)
    click.echo(f"{count} payments, total interest {total_interest(result)}, paid off {payoff}")


def _preview(*args, **kwargs):
    try:
        return generate_schedule(*args, **kwargs)
    except LedgerError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}")


@cli.command()
@click.argument("account_id", type=int)
@click.option("--user-id", "user_id", type=int, required=True)
@click.pass_context
def breakdown(ctx: click.Context, account_id: int, user_id: int) -> None:
    """Show personal, borrowed and goal money held in an account."""

    result = get_breakdown(_store(ctx), account_id, user_id=user_id)
    if not result.ok:
        _fail(result)
    view = result.value
    click.echo(f"Account {view.account_id} ({view.currency})")
    click.echo(f"  total     {view.total:>12}")
    click.echo(f"  personal  {view.personal:>12}")
    for portion in view.borrowed_portions:
        click.echo(f"  borrowed  {portion.amount:>12}  {portion.name or portion.reference_id}")
    for portion in view.goal_portions:
        click.echo(f"  goal      {portion.amount:>12}  {portion.name or portion.reference_id}")


def _parse_legs(legs: tuple[str, ...]) -> tuple[list[int], list[Allocation]]:
    """Split ``ID`` or ``ID=AMOUNT`` arguments into ids and explicit allocations."""

    ids: list[int] = []
    explicit: list[Allocation] = []
    for leg in legs:
        liability_id, _, amount = leg.partition("=")
        try:
            ids.append(int(liability_id))
        except ValueError:
            raise click.BadParameter(f"Liability ids must be integers; got {leg}")
        if amount:
            explicit.append(Allocation(ids[-1], parse_money(amount)))
    if explicit and len(explicit) != len(ids):
        raise click.UsageError("Give an amount for every liability or for none")
    return ids, explicit


@cli.command()
@click.argument("legs", nargs=-1, required=True)
@click.option("--total", "total", required=True, help="Amount leaving the account")
@click.option("--account", "account_id", type=int, required=True, help="Account paying from personal money")
@click.option("--user-id", "user_id", type=int, required=True)
@click.option("--on", "on", help="Payment date (YYYY-MM-DD); defaults to today")
@click.option("--key", "idempotency_key", help="Idempotency key; repeating it pays once")
@click.pass_context
def pay(
    ctx: click.Context,
    legs: tuple[str, ...],
    total: str,
    account_id: int,
    user_id: int,
    on: Optional[str],
    idempotency_key: Optional[str],
) -> None:
    """Pay liabilities given as ID=AMOUNT, or as bare IDs to split proportionally."""

    config: BaseConfig = ctx.obj["config"]
    store = _store(ctx)
    amount = parse_money(total)
    ids, allocations = _parse_legs(legs)
    if not allocations:
        suggested = suggest_allocation(store, amount, ids, user_id=user_id)
        if not suggested.ok:
            _fail(suggested)
        allocations = suggested.value

    result = pay_liabilities(
        store,
        amount,
        allocations,
        BucketRef.personal(account_id),
        user_id=user_id,
        on=parse_date(on),
        idempotency_key=idempotency_key,
        tolerance=config.MONEY_TOLERANCE,
    )
    if not result.ok:
        _fail(result)
    report = result.value
    for leg in report.succeeded:
        note = "  (already applied)" if leg.already_applied else ""
        click.echo(f"paid    {leg.liability_id:>6}  {leg.amount:>12}  balance {leg.remaining_balance}{note}")
    for leg in report.failed:
        click.echo(f"failed  {leg.liability_id:>6}  {leg.amount:>12}  {leg.error.code}: {leg.error.message}")
    if not report.ok:
        ctx.exit(1)


@cli.command("settlement-status")
@click.argument("liability_id", type=int)
@click.option("--user-id", "user_id", type=int, required=True)
@click.pass_context
def settlement_status(ctx: click.Context, liability_id: int, user_id: int) -> None:
    """Show what must be reconciled before a liability can be deleted."""

    result = check_settlement_status(_store(ctx), liability_id, user_id=user_id)
    if not result.ok:
        _fail(result)
    status = result.value
    click.echo(f"Liability {status.liability_id}")
    click.echo(f"  remaining owed  {status.remaining_owed:>12}")
    click.echo(f"  tagged funds    {status.tagged_funds:>12}")
    click.echo(f"  total loan      {status.total_loan:>12}")
    click.echo(f"  overfunded by   {status.overfunded_by:>12}")
    for portion in status.accounts_with_funds:
        click.echo(f"  account {portion.account_id}: {portion.amount}")
    click.echo("  balanced" if status.is_balanced else "  needs settlement")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
