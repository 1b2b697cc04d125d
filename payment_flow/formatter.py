"""Output helpers for the payment-flow calculator.

This module provides simple functions to render a flow result and its
installment schedule in a tabular text format for the terminal. We rely only
on built-in printing and string formatting.
"""

from __future__ import annotations

from typing import Iterable, List

from .data_models import FlowDefinition, FlowResult, Installment


def print_summary(flow: FlowDefinition, result: FlowResult, warnings: Iterable[str] = ()) -> None:
    """Print the resolved components and totals of a flow."""
    symbol = flow.currency.symbol
    print("Summary")
    print("-" * 72)
    if flow.client_name:
        print(f"Client             : {flow.client_name}")
    print(f"Property value     : {symbol} {flow.property_value:,.2f}")
    if flow.delivery_date:
        print(f"Delivery date      : {flow.delivery_date.isoformat()}")
    print("-" * 72)
    for component in result.components.values():
        if component.total == 0 and not component.kind.always_present:
            continue
        if component.count > 1:
            detail = f"{component.count}x {symbol} {component.installment_value:,.2f}"
        else:
            detail = f"{symbol} {component.installment_value:,.2f}"
        share = result.property_value and component.total / result.property_value * 100
        print(f"{component.label:26s} {detail:>26s} ({share:5.1f}%)")
        if component.signing_value > 0:
            print(f"  of which at signing {symbol} {component.signing_value:,.2f}")
    print("-" * 72)
    print(f"Total paid         : {symbol} {result.total_paid:,.2f} ({result.total_percentage:.1f}%)")
    if result.exceeds_limit:
        print(f"Exceeds by         : {symbol} {result.exceeded_amount:,.2f}")
    elif result.remaining > 0:
        print(f"Remaining          : {symbol} {result.remaining:,.2f}")
    if not result.is_valid:
        print("Status             : check the flow before sending it")
    if flow.delivery_date:
        print(f"Until delivery     : {symbol} {result.until_delivery:,.2f} ({result.until_delivery_percentage:.1f}%)")
        print(f"After delivery     : {symbol} {result.after_delivery:,.2f} ({result.after_delivery_percentage:.1f}%)")
    for warning in list(warnings) + result.warnings:
        print(f"Warning: {warning}")
    print("-" * 72)


def print_schedule(installments: List[Installment]) -> None:
    """Print the installments as a simple table."""
    headers = ["#", "Block", "Due", "Value"]
    print("\t".join(headers))
    for installment in installments:
        row = [
            str(installment.number),
            installment.label,
            installment.due_date.isoformat() if installment.due_date else "-",
            f"{installment.value:.2f}",
        ]
        print("\t".join(row))
