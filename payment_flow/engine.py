"""Aggregation and validation of payment flows.

This module turns a :class:`FlowDefinition` into a :class:`FlowResult`:
every included component is resolved to an absolute amount, recurring
components are expanded into dated installments, and the totals are checked
against the property value. Results are computed on demand and never cached;
the flow is not modified.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from .config import HUNDRED, LIMIT_TOLERANCE, MIN_CLIENT_NAME_LENGTH, TOTAL_DEVIATION_WARNING, ZERO
from .data_models import (
    ComponentKind,
    ComponentResult,
    FlowDefinition,
    FlowResult,
    Installment,
    PaymentComponent,
    SpecMode,
)
from .errors import FlowExceedsLimitError, IncompleteProposalError
from .resolver import percentage_of, resolve
from .utils import add_months


def _expand_installments(
    component: PaymentComponent,
    installment_value: Decimal,
    count: int,
    first_due_date: Optional[date],
) -> List[Installment]:
    """Return ``count`` installments spaced by the component's interval.

    The k-th installment (zero based) is due ``k * interval`` months after
    ``first_due_date``. Without a first due date the installments are undated.
    """
    interval = component.kind.interval_months
    return [
        Installment(
            kind=component.kind,
            number=k + 1,
            due_date=add_months(first_due_date, k * interval) if first_due_date else None,
            value=installment_value,
        )
        for k in range(count)
    ]


def _down_payment_result(flow: FlowDefinition, component: PaymentComponent) -> ComponentResult:
    """Down payment split into an optional signing payment and ``count`` installments."""
    property_value = flow.property_value
    total = resolve(component, property_value)
    count = max(component.count, 1)
    signing = flow.signing_payment

    signing_value = ZERO
    installments: List[Installment] = []
    if signing is not None:
        signing_value = min(max(resolve(signing, property_value), ZERO), max(total, ZERO))
    if signing_value > 0:
        installments.append(
            Installment(
                kind=component.kind,
                number=0,
                due_date=signing.first_due_date or component.first_due_date,
                value=signing_value,
                signing=True,
            )
        )
    installment_value = (total - signing_value) / count
    if installment_value > 0:
        installments.extend(
            _expand_installments(component, installment_value, count, component.first_due_date)
        )

    return ComponentResult(
        kind=component.kind,
        value=total,
        percentage=percentage_of(total, property_value),
        count=count,
        installment_value=installment_value,
        total=total,
        installments=installments,
        signing_value=signing_value,
    )


def _component_result(flow: FlowDefinition, component: PaymentComponent) -> ComponentResult:
    if component.kind is ComponentKind.DOWN_PAYMENT:
        return _down_payment_result(flow, component)

    property_value = flow.property_value
    value = resolve(component, property_value)
    count = max(component.count, 0)
    first_due_date = component.first_due_date

    if component.kind.is_recurring:
        installment_value = value
        total = value * count
    else:
        count = 1
        installment_value = value
        total = value
        if component.kind is ComponentKind.KEYS and first_due_date is None:
            first_due_date = flow.delivery_date

    # Blocks with nothing to pay, such as an unused keys payment, get no installments
    installments = []
    if total > 0:
        installments = _expand_installments(component, installment_value, count, first_due_date)

    return ComponentResult(
        kind=component.kind,
        value=value,
        percentage=percentage_of(value, property_value),
        count=count,
        installment_value=installment_value,
        total=total,
        installments=installments,
    )


def aggregate(flow: FlowDefinition) -> FlowResult:
    """Resolve every included component of ``flow``.

    Also splits the installments into those due up to the delivery date and
    those due after it. Undated installments count as due before delivery.
    """
    result = FlowResult(property_value=flow.property_value)
    for component in flow.included_components():
        result.components[component.kind] = _component_result(flow, component)

    signing = flow.signing_payment
    down_payment = result.components.get(ComponentKind.DOWN_PAYMENT)
    if signing is not None and down_payment is not None:
        requested = resolve(signing, flow.property_value)
        if requested > down_payment.signing_value:
            result.warnings.append(
                f"Signing payment of {requested:.2f} is larger than the down payment; "
                f"only {down_payment.signing_value:.2f} is paid at signing"
            )

    until_delivery = ZERO
    after_delivery = ZERO
    for installment in result.installments():
        if (
            flow.delivery_date is not None
            and installment.due_date is not None
            and installment.due_date > flow.delivery_date
        ):
            after_delivery += installment.value
        else:
            until_delivery += installment.value
    result.until_delivery = until_delivery
    result.after_delivery = after_delivery
    return result


def validate(flow: FlowDefinition, result: FlowResult) -> FlowResult:
    """Fill in totals, the exceeds-limit flag and the validity of ``result``.

    A flow is valid when it does not exceed the property value and its total
    is within ``TOTAL_DEVIATION_WARNING`` percentage points of 100%.
    """
    property_value = flow.property_value
    total_paid = sum((c.total for c in result.components.values()), ZERO)
    result.total_paid = total_paid
    result.total_percentage = percentage_of(total_paid, property_value)
    result.remaining = max(ZERO, property_value - total_paid)
    result.exceeds_limit = total_paid > property_value + LIMIT_TOLERANCE
    result.exceeded_amount = max(ZERO, total_paid - property_value)
    if result.exceeds_limit:
        result.warnings.append(
            f"Payments exceed the property value by {result.exceeded_amount:.2f}"
        )
    result.is_valid = not result.exceeds_limit
    if property_value > 0:
        deviation = abs(result.total_percentage - HUNDRED)
        if deviation > TOTAL_DEVIATION_WARNING:
            result.is_valid = False
            result.warnings.append(
                f"Total is {result.total_percentage:.1f}% of the property value "
                f"({deviation:.1f} points from 100%)"
            )
    return result


def calculate(flow: FlowDefinition) -> FlowResult:
    return validate(flow, aggregate(flow))


def proposal_problems(flow: FlowDefinition, result: FlowResult) -> List[str]:
    """List what keeps ``flow`` from being saved or exported."""
    problems = []
    if len(flow.client_name.strip()) < MIN_CLIENT_NAME_LENGTH:
        problems.append("Client name is required")
    if flow.property_value <= 0:
        problems.append("Property value is required")
    down_payment = result.components.get(ComponentKind.DOWN_PAYMENT)
    if down_payment is None or down_payment.total <= 0:
        problems.append("Down payment is required")
    signing = flow.signing_payment
    if signing is not None:
        entered = signing.percentage if signing.spec_mode is SpecMode.PERCENTAGE else signing.value
        if entered <= 0:
            problems.append("Signing payment must be greater than zero")
    return problems


def ensure_exportable(flow: FlowDefinition, result: Optional[FlowResult] = None) -> FlowResult:
    """Return the result of ``flow`` if it may be saved or exported.

    Raises
    ------
    FlowExceedsLimitError
        If the payments add up to more than the property value.
    IncompleteProposalError
        If required proposal data is missing.
    """
    result = result or calculate(flow)
    if result.exceeds_limit:
        raise FlowExceedsLimitError(result.exceeded_amount)
    problems = proposal_problems(flow, result)
    if problems:
        raise IncompleteProposalError(problems)
    return result
