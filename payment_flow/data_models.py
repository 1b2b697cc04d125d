"""Data models for the payment-flow calculator.

This module defines the entities the calculator works with: the payment
components of a proposal (down payment, construction start, recurring
installments and the keys payment), the flow definition grouping them with
the property value, and the result objects produced by the aggregator.
Using dataclasses makes it easy to construct, inspect and serialize these
structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .config import ZERO


class ComponentKind(Enum):
    """The line items of a payment flow, in schedule order."""

    DOWN_PAYMENT = "downPayment"
    CONSTRUCTION_START = "constructionStartPayment"
    MONTHLY = "monthly"
    SEMIANNUAL = "semiannualReinforcement"
    ANNUAL = "annualReinforcement"
    KEYS = "keysPayment"

    @property
    def label(self) -> str:
        return COMPONENT_LABELS[self]

    @property
    def is_recurring(self) -> bool:
        """Recurring kinds store the value of a single installment."""
        return self in RECURRING_INTERVALS

    @property
    def interval_months(self) -> int:
        return RECURRING_INTERVALS.get(self, 1)

    @property
    def always_present(self) -> bool:
        return self in (ComponentKind.DOWN_PAYMENT, ComponentKind.KEYS)

    @property
    def can_auto_calculate(self) -> bool:
        """Only the keys payment and the recurring kinds take the remaining balance."""
        return self is ComponentKind.KEYS or self.is_recurring


COMPONENT_LABELS = {
    ComponentKind.DOWN_PAYMENT: "Down payment",
    ComponentKind.CONSTRUCTION_START: "Construction start",
    ComponentKind.MONTHLY: "Monthly installments",
    ComponentKind.SEMIANNUAL: "Semiannual reinforcements",
    ComponentKind.ANNUAL: "Annual reinforcements",
    ComponentKind.KEYS: "Keys payment",
}

SIGNING_LABEL = "Signing payment"

RECURRING_INTERVALS = {
    ComponentKind.MONTHLY: 1,
    ComponentKind.SEMIANNUAL: 6,
    ComponentKind.ANNUAL: 12,
}


class SpecMode(Enum):
    """Which field of a component the user entered."""

    PERCENTAGE = "percentage"
    ABSOLUTE_VALUE = "value"


class Currency(Enum):
    BRL = "BRL"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"

    @property
    def symbol(self) -> str:
        return {"BRL": "R$", "USD": "$", "EUR": "€", "GBP": "£"}[self.value]


@dataclass
class PaymentComponent:
    """One line item of a payment flow.

    Attributes
    ----------
    kind: ComponentKind
        Which line item this is.
    enabled: bool
        Optional blocks take part in the flow only when enabled. The down
        payment and the keys payment are always present.
    spec_mode: SpecMode
        Whether ``percentage`` or ``value`` is the authoritative input. The
        other field is derived from it by :mod:`payment_flow.resolver`.
    percentage: Decimal
        Percentage of the property value (0-100 in practice).
    value: Decimal
        Absolute amount. For recurring kinds this is the value of a single
        installment; for the down payment it is the full amount, split into
        ``count`` installments.
    count: int
        Number of installments.
    first_due_date: Optional[date]
        Due date of the first installment, if known.
    auto_calculate: bool
        Whether the value is derived as the remaining balance of the flow.
        At most one component per flow has this flag set.
    """

    kind: ComponentKind
    enabled: bool = False
    spec_mode: SpecMode = SpecMode.PERCENTAGE
    percentage: Decimal = ZERO
    value: Decimal = ZERO
    count: int = 1
    first_due_date: Optional[date] = None
    auto_calculate: bool = False

    @property
    def is_saldo_mode(self) -> bool:
        """Name used for the auto-calculate flag of the keys payment."""
        return self.kind is ComponentKind.KEYS and self.auto_calculate

    @property
    def included(self) -> bool:
        return self.kind.always_present or self.enabled


@dataclass
class SigningPayment:
    """Part of the down payment paid in one go when the contract is signed.

    Entered like a component, as a percentage of the property value or as an
    amount. It does not add to the flow total: the rest of the down payment
    is split over the down payment installments.
    """

    spec_mode: SpecMode = SpecMode.PERCENTAGE
    percentage: Decimal = ZERO
    value: Decimal = ZERO
    first_due_date: Optional[date] = None


def default_components() -> Dict[ComponentKind, PaymentComponent]:
    return {
        kind: PaymentComponent(kind=kind, enabled=kind.always_present)
        for kind in ComponentKind
    }


@dataclass
class FlowDefinition:
    """The in-memory working document of one payment proposal."""

    property_value: Decimal = ZERO
    client_name: str = ""
    currency: Currency = Currency.BRL
    delivery_date: Optional[date] = None
    components: Dict[ComponentKind, PaymentComponent] = field(default_factory=default_components)
    signing_payment: Optional[SigningPayment] = None
    # Descriptive metadata carried along with saved proposals
    developer: str = ""
    development: str = ""
    unit: str = ""
    private_area: str = ""

    def component(self, kind: ComponentKind) -> PaymentComponent:
        return self.components[kind]

    def replace_component(self, component: PaymentComponent) -> None:
        if component.kind.always_present:
            component.enabled = True
        self.components[component.kind] = component

    def included_components(self) -> List[PaymentComponent]:
        """Components taking part in the flow, in schedule order."""
        return [self.components[kind] for kind in ComponentKind if self.components[kind].included]

    @property
    def auto_kind(self) -> Optional[ComponentKind]:
        for kind in ComponentKind:
            if self.components[kind].auto_calculate:
                return kind
        return None


@dataclass
class Installment:
    """A single dated payment produced from a component."""

    kind: ComponentKind
    number: int
    due_date: Optional[date]
    value: Decimal
    # Set on the down payment installment paid at contract signing
    signing: bool = False

    @property
    def label(self) -> str:
        return SIGNING_LABEL if self.signing else self.kind.label


@dataclass
class ComponentResult:
    """Resolved amounts of one component.

    ``value`` is the resolved absolute value as stored on the component (per
    installment for recurring kinds), ``installment_value`` is what each
    installment costs, and ``total`` is the sum across installments.
    """

    kind: ComponentKind
    value: Decimal
    percentage: Decimal
    count: int
    installment_value: Decimal
    total: Decimal
    installments: List[Installment] = field(default_factory=list)
    # Down payment only: the part of ``total`` paid at contract signing
    signing_value: Decimal = ZERO

    @property
    def label(self) -> str:
        return self.kind.label


@dataclass
class FlowResult:
    """Aggregated view of a flow, produced on demand by the engine."""

    property_value: Decimal
    components: Dict[ComponentKind, ComponentResult] = field(default_factory=dict)
    total_paid: Decimal = ZERO
    total_percentage: Decimal = ZERO
    remaining: Decimal = ZERO
    exceeds_limit: bool = False
    exceeded_amount: Decimal = ZERO
    # False when the total is off 100% of the property value by more than
    # TOTAL_DEVIATION_WARNING points, or exceeds it
    is_valid: bool = True
    until_delivery: Decimal = ZERO
    after_delivery: Decimal = ZERO
    warnings: List[str] = field(default_factory=list)

    def share_of_property(self, amount: Decimal) -> Decimal:
        """Percentage of the property value that ``amount`` represents."""
        if self.property_value <= 0:
            return ZERO
        return amount / self.property_value * 100

    @property
    def until_delivery_percentage(self) -> Decimal:
        return self.share_of_property(self.until_delivery)

    @property
    def after_delivery_percentage(self) -> Decimal:
        return self.share_of_property(self.after_delivery)

    def installments(self) -> List[Installment]:
        """All installments of the flow, ordered by due date (undated last)."""
        entries = [i for c in self.components.values() for i in c.installments]
        return sorted(entries, key=lambda i: (i.due_date is None, i.due_date or date.min))
