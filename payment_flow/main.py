"""Command-line interface for the payment-flow calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can build a payment flow from options, let one block
auto-balance to the remaining amount, inspect a saved proposal snapshot, and
export the flow to JSON. Exports are refused while the payments exceed the
property value.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .config import MAX_INSTALLMENTS
from .data_models import ComponentKind, Currency, FlowResult
from .errors import ProposalRejected
from .formatter import print_schedule, print_summary
from .session import FlowSession
from .utils import parse_amount

BLOCK_CHOICES = {
    "down-payment": ComponentKind.DOWN_PAYMENT,
    "construction-start": ComponentKind.CONSTRUCTION_START,
    "monthly": ComponentKind.MONTHLY,
    "semiannual": ComponentKind.SEMIANNUAL,
    "annual": ComponentKind.ANNUAL,
    "keys": ComponentKind.KEYS,
}

AUTO_CHOICES = [name for name, kind in BLOCK_CHOICES.items() if kind.can_auto_calculate]


def apply_amount(session: FlowSession, kind: ComponentKind, raw: str) -> None:
    """Apply an amount option: ``"10%"`` is a percentage, anything else a value."""
    raw = raw.strip()
    if raw.endswith("%"):
        session.set_percentage(kind, raw[:-1])
    else:
        session.set_value(kind, parse_amount(raw))


def apply_signing(session: FlowSession, raw: str) -> None:
    """Apply the signing payment option, given like the other amounts."""
    raw = raw.strip()
    session.set_signing_enabled(True)
    if raw.endswith("%"):
        session.set_signing_percentage(raw[:-1])
    else:
        session.set_signing_value(parse_amount(raw))


def apply_recurring(session: FlowSession, kind: ComponentKind, raw: str) -> None:
    """Apply a recurring block given as ``COUNT`` or ``COUNT:AMOUNT``."""
    count_str, _, amount = raw.partition(":")
    try:
        count = int(count_str)
    except ValueError:
        raise click.BadParameter(f"Installment count must be an integer; got {count_str}")
    if count < 1:
        raise click.BadParameter(f"Installment count must be at least 1; got {count}")
    if count > MAX_INSTALLMENTS:
        raise click.BadParameter(f"Installment count must be at most {MAX_INSTALLMENTS}; got {count}")
    session.set_enabled(kind, True)
    session.set_count(kind, count)
    if amount:
        apply_amount(session, kind, amount)


def result_to_dict(result: FlowResult) -> Dict[str, Any]:
    """Convert a flow result into a JSON-serialisable dictionary."""
    return {
        "totalPaid": float(result.total_paid),
        "totalPercentage": float(result.total_percentage),
        "remaining": float(result.remaining),
        "exceedsLimit": result.exceeds_limit,
        "exceededAmount": float(result.exceeded_amount),
        "isValid": result.is_valid,
        "untilDelivery": float(result.until_delivery),
        "afterDelivery": float(result.after_delivery),
        "untilDeliveryPercentage": float(result.until_delivery_percentage),
        "afterDeliveryPercentage": float(result.after_delivery_percentage),
        "components": {
            kind.value: {
                "value": float(c.value),
                "percentage": float(c.percentage),
                "count": c.count,
                "installmentValue": float(c.installment_value),
                "total": float(c.total),
                "signingValue": float(c.signing_value),
            }
            for kind, c in result.components.items()
        },
        "installments": [
            {
                "block": i.kind.value,
                "number": i.number,
                "signing": i.signing,
                "dueDate": i.due_date.isoformat() if i.due_date else None,
                "value": float(i.value),
            }
            for i in result.installments()
        ],
        "warnings": list(result.warnings),
    }


def export_to_json(path: Path, session: FlowSession) -> None:
    """Export the flow snapshot and its result to a JSON file."""
    try:
        result = session.export()
    except ProposalRejected as exc:
        raise click.ClickException(str(exc))
    data = {"flow": session.snapshot(), "result": result_to_dict(result)}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _show(session: FlowSession, output: Optional[str], show_schedule: bool) -> None:
    outcome = session.flush()
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Export must use .json extension")
        export_to_json(path, session)
        click.echo(f"Flow exported to {path}")
        return
    result = session.calculate()
    print_summary(session.flow, result, outcome.warnings)
    if show_schedule:
        print_schedule(result.installments())


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
def cli(log_level: str) -> None:
    """Build and check real-estate payment flows."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--property-value", "-p", "property_value", required=True, help="Property price (500k, 1.2m, 500.000,00)")
@click.option("--client", "-c", "client", default="", help="Client name")
@click.option("--currency", type=click.Choice([c.value for c in Currency]), default="BRL")
@click.option("--delivery-date", help="Keys delivery date (YYYY-MM-DD)")
@click.option("--down-payment", "-d", "down_payment", help="Down payment, e.g. 10% or 50000")
@click.option("--down-payment-installments", type=click.IntRange(1, MAX_INSTALLMENTS), default=1, help="Split the down payment in N monthly installments")
@click.option("--down-payment-date", help="First down payment due date")
@click.option("--signing", help="Part of the down payment paid at contract signing, e.g. 2% or 10000")
@click.option("--signing-date", help="Signing payment due date (defaults to the first down payment date)")
@click.option("--construction-start", help="Construction start payment, e.g. 5% or 25000")
@click.option("--construction-start-date", help="Construction start payment due date")
@click.option("--monthly", help="Monthly installments as COUNT or COUNT:AMOUNT")
@click.option("--monthly-date", help="First monthly installment due date")
@click.option("--semiannual", help="Semiannual reinforcements as COUNT or COUNT:AMOUNT")
@click.option("--semiannual-date", help="First semiannual reinforcement due date")
@click.option("--annual", help="Annual reinforcements as COUNT or COUNT:AMOUNT")
@click.option("--annual-date", help="First annual reinforcement due date")
@click.option("--keys", help="Keys payment, e.g. 20% or 100000")
@click.option("--keys-date", help="Keys payment due date (defaults to the delivery date)")
@click.option("--auto", "auto", type=click.Choice(AUTO_CHOICES), help="Block that takes the remaining balance")
@click.option("--schedule/--no-schedule", "show_schedule", default=False, help="Print every installment")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def calculate(
    property_value: str,
    client: str,
    currency: str,
    delivery_date: Optional[str],
    down_payment: Optional[str],
    down_payment_installments: int,
    down_payment_date: Optional[str],
    signing: Optional[str],
    signing_date: Optional[str],
    construction_start: Optional[str],
    construction_start_date: Optional[str],
    monthly: Optional[str],
    monthly_date: Optional[str],
    semiannual: Optional[str],
    semiannual_date: Optional[str],
    annual: Optional[str],
    annual_date: Optional[str],
    keys: Optional[str],
    keys_date: Optional[str],
    auto: Optional[str],
    show_schedule: bool,
    output: Optional[str],
) -> None:
    """Build a payment flow from options and print or export it."""
    session = FlowSession()
    session.set_property_value(property_value)
    session.set_client_name(client)
    session.set_currency(currency)
    session.set_delivery_date(delivery_date)

    if down_payment:
        apply_amount(session, ComponentKind.DOWN_PAYMENT, down_payment)
    session.set_count(ComponentKind.DOWN_PAYMENT, max(down_payment_installments, 1))
    if signing:
        apply_signing(session, signing)
        if signing_date:
            session.set_signing_due_date(signing_date)
    if construction_start:
        session.set_enabled(ComponentKind.CONSTRUCTION_START, True)
        apply_amount(session, ComponentKind.CONSTRUCTION_START, construction_start)
    for kind, raw in (
        (ComponentKind.MONTHLY, monthly),
        (ComponentKind.SEMIANNUAL, semiannual),
        (ComponentKind.ANNUAL, annual),
    ):
        if raw:
            apply_recurring(session, kind, raw)
    if keys:
        apply_amount(session, ComponentKind.KEYS, keys)

    for kind, raw_date in (
        (ComponentKind.DOWN_PAYMENT, down_payment_date),
        (ComponentKind.CONSTRUCTION_START, construction_start_date),
        (ComponentKind.MONTHLY, monthly_date),
        (ComponentKind.SEMIANNUAL, semiannual_date),
        (ComponentKind.ANNUAL, annual_date),
        (ComponentKind.KEYS, keys_date),
    ):
        if raw_date:
            session.set_first_due_date(kind, raw_date)

    if auto:
        outcome = session.request_auto_calculate(BLOCK_CHOICES[auto])
        for warning in outcome.warnings:
            click.echo(f"Warning: {warning}", err=True)

    _show(session, output, show_schedule)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--schedule/--no-schedule", "show_schedule", default=False, help="Print every installment")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def load(path: Path, show_schedule: bool, output: Optional[str]) -> None:
    """Load a saved proposal snapshot (any format generation) and print it."""
    with path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"{path} is not valid JSON: {exc}")
    if isinstance(data, dict) and isinstance(data.get("flow"), dict):
        data = data["flow"]
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} does not contain a proposal snapshot")
    session = FlowSession()
    session.load_snapshot(data)
    _show(session, output, show_schedule)


if __name__ == "__main__":
    cli()
