"""Percentage/value resolution for a single payment component.

Every function here is pure: it takes a component and the property value and
returns a new component, leaving the argument untouched. These functions are
the only writers of the ``percentage``/``value`` pair, so the field that is
not authoritative under the component's ``spec_mode`` is always recomputed
from the one that is.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Union

from .config import HUNDRED, ZERO
from .data_models import PaymentComponent, SigningPayment, SpecMode
from .utils import parse_currency, parse_number

# Anything entered as a percentage or an amount of the property value
Entry = Union[PaymentComponent, SigningPayment]


def percentage_of(value: Decimal, property_value: Decimal) -> Decimal:
    if property_value <= 0:
        return ZERO
    return value / property_value * HUNDRED


def value_of(percentage: Decimal, property_value: Decimal) -> Decimal:
    return percentage / HUNDRED * property_value


def resolve(component: Entry, property_value: Decimal) -> Decimal:
    """Return the absolute value of ``component`` under its spec mode."""
    if component.spec_mode is SpecMode.ABSOLUTE_VALUE:
        return component.value
    return value_of(component.percentage, property_value)


def resolve_total(component: PaymentComponent, property_value: Decimal) -> Decimal:
    """Return what ``component`` contributes to the flow total.

    Recurring components store the value of one installment, so their
    contribution is that value times the number of installments.
    """
    resolved = resolve(component, property_value)
    if component.kind.is_recurring:
        return resolved * max(component.count, 0)
    return resolved


def rebase(component: Entry, property_value: Decimal) -> Entry:
    """Recompute the derived field after the property value changed."""
    if component.spec_mode is SpecMode.ABSOLUTE_VALUE:
        return replace(component, percentage=percentage_of(component.value, property_value))
    return replace(component, value=value_of(component.percentage, property_value))


def switch_mode(component: Entry, new_mode: SpecMode, property_value: Decimal) -> Entry:
    """Make ``new_mode`` the authoritative field, derived from the current one.

    Without a property value there is nothing to convert through, so the
    component is returned unchanged rather than losing its amount.
    """
    if component.spec_mode is new_mode or property_value <= 0:
        return component
    return replace(rebase(component, property_value), spec_mode=new_mode)


def set_percentage(component: Entry, raw_input: str, property_value: Decimal) -> Entry:
    """Apply a number typed into the percentage field.

    Numbers above 100 are read as an absolute amount: the component switches
    to ``ABSOLUTE_VALUE`` with that amount as its value.
    """
    parsed = parse_number(raw_input)
    if parsed > HUNDRED:
        return apply_value(component, parsed, property_value)
    return replace(
        component,
        spec_mode=SpecMode.PERCENTAGE,
        percentage=parsed,
        value=value_of(parsed, property_value),
    )


def apply_value(component: Entry, amount: Decimal, property_value: Decimal) -> Entry:
    return replace(
        component,
        spec_mode=SpecMode.ABSOLUTE_VALUE,
        value=amount,
        percentage=percentage_of(amount, property_value),
    )


def parse_value_input(raw_input: Union[str, Decimal]) -> Decimal:
    """Strings are parsed as currency input; a ``Decimal`` is taken as is."""
    return raw_input if isinstance(raw_input, Decimal) else parse_currency(raw_input)


def set_value(component: PaymentComponent, raw_input: Union[str, Decimal], property_value: Decimal) -> PaymentComponent:
    """Apply an amount typed into the value field.

    A manual amount always wins over auto-calculation, so the component
    leaves auto mode.
    """
    component = apply_value(component, parse_value_input(raw_input), property_value)
    return replace(component, auto_calculate=False)
