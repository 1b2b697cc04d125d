"""Conversion between saved proposal snapshots and flow definitions.

Saved proposals are JSON objects written by several generations of the
calculator. Older ones store the down payment and keys payment as bare
numbers, keep the recurring blocks under ``monthly``/``semiannual``/
``annual`` with only ``{enabled, count, value}``, name the ``specMode``
``type`` and lack due dates. :func:`migrate_snapshot` accepts any of these
and returns a fully populated :class:`FlowDefinition` in which every
component is present, the percentage/value pair agrees with ``spec_mode``,
and at most one component is auto-calculated. The signing payment, when
present, is kept under ``downPayment.ato``. Malformed numbers are read as
zero rather than failing the load.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from .config import ZERO
from .data_models import (
    ComponentKind,
    Currency,
    FlowDefinition,
    PaymentComponent,
    SigningPayment,
    SpecMode,
    default_components,
)
from .resolver import rebase
from .utils import parse_count, parse_optional_date, to_decimal

logger = logging.getLogger(__name__)

# Keys used by older snapshots for the same blocks
LEGACY_KEYS = {
    ComponentKind.SEMIANNUAL: ("semiannual",),
    ComponentKind.ANNUAL: ("annual",),
}

LEGACY_METADATA_KEYS = {
    "developer": ("developer", "constructora"),
    "development": ("development", "empreendimento"),
    "unit": ("unit", "unidade"),
    "private_area": ("privateArea", "areaPrivativa"),
}


def _find_block(data: Mapping[str, Any], kind: ComponentKind) -> Any:
    for key in (kind.value,) + LEGACY_KEYS.get(kind, ()):
        if data.get(key) is not None:
            return data[key]
    return None


def _parse_mode(block: Mapping[str, Any]) -> Optional[SpecMode]:
    raw = block.get("specMode", block.get("type"))
    if raw in ("percentage", SpecMode.PERCENTAGE):
        return SpecMode.PERCENTAGE
    if raw in ("value", "absolute", SpecMode.ABSOLUTE_VALUE):
        return SpecMode.ABSOLUTE_VALUE
    return None


def _parse_count(block: Mapping[str, Any]) -> int:
    return parse_count(block.get("count", block.get("installments")))


def _migrate_component(kind: ComponentKind, raw: Any, property_value) -> PaymentComponent:
    if raw is None:
        return PaymentComponent(kind=kind, enabled=kind.always_present)

    if not isinstance(raw, Mapping):
        # Legacy bare amount
        value = to_decimal(raw)
        component = PaymentComponent(
            kind=kind,
            enabled=kind.always_present or value > 0,
            spec_mode=SpecMode.ABSOLUTE_VALUE,
            value=value,
        )
        return rebase(component, property_value)

    percentage = to_decimal(raw.get("percentage"))
    value = to_decimal(raw.get("value"))
    mode = _parse_mode(raw)
    if mode is None:
        mode = SpecMode.PERCENTAGE if percentage > 0 and value == 0 else SpecMode.ABSOLUTE_VALUE

    enabled = raw.get("enabled")
    if enabled is None:
        enabled = value > 0 or percentage > 0

    component = PaymentComponent(
        kind=kind,
        enabled=kind.always_present or bool(enabled),
        spec_mode=mode,
        percentage=percentage,
        value=value,
        count=_parse_count(raw),
        first_due_date=parse_optional_date(raw.get("firstDueDate")),
        auto_calculate=bool(raw.get("autoCalculate") or raw.get("isSaldoMode")),
    )
    return rebase(component, property_value)


def _migrate_signing(raw: Any, property_value) -> Optional[SigningPayment]:
    """Read the signing payment kept under ``downPayment.ato``."""
    if not isinstance(raw, Mapping):
        return None
    percentage = to_decimal(raw.get("percentage"))
    value = to_decimal(raw.get("value"))
    mode = _parse_mode(raw)
    if mode is None:
        mode = SpecMode.PERCENTAGE if percentage > 0 and value == 0 else SpecMode.ABSOLUTE_VALUE
    signing = SigningPayment(
        spec_mode=mode,
        percentage=percentage,
        value=value,
        first_due_date=parse_optional_date(raw.get("firstDueDate")),
    )
    return rebase(signing, property_value)


def _parse_currency(raw: Any) -> Currency:
    code = raw.get("code") if isinstance(raw, Mapping) else raw
    try:
        return Currency(str(code).upper())
    except ValueError:
        return Currency.BRL


def migrate_snapshot(data: Mapping[str, Any]) -> FlowDefinition:
    """Build a :class:`FlowDefinition` from a saved snapshot of any generation."""
    if not isinstance(data, Mapping):
        data = {}
    property_value = max(to_decimal(data.get("propertyValue")), ZERO)

    components = default_components()
    for kind in ComponentKind:
        components[kind] = _migrate_component(kind, _find_block(data, kind), property_value)

    # Older snapshots kept the first due date of the down payment separately
    down_payment = components[ComponentKind.DOWN_PAYMENT]
    if down_payment.first_due_date is None:
        components[ComponentKind.DOWN_PAYMENT] = replace(
            down_payment, first_due_date=parse_optional_date(data.get("constructionStartDate"))
        )

    auto_kind = None
    for kind in ComponentKind:
        component = components[kind]
        if not component.auto_calculate:
            continue
        if component.included and kind.can_auto_calculate and auto_kind is None:
            auto_kind = kind
            continue
        logger.warning("Clearing auto-calculation on %s from snapshot", kind.label)
        components[kind] = replace(component, auto_calculate=False)

    down_payment_block = _find_block(data, ComponentKind.DOWN_PAYMENT)
    signing = None
    if isinstance(down_payment_block, Mapping):
        signing = _migrate_signing(down_payment_block.get("ato"), property_value)

    flow = FlowDefinition(
        property_value=property_value,
        client_name=str(data.get("clientName") or "").strip(),
        currency=_parse_currency(data.get("currency")),
        delivery_date=parse_optional_date(data.get("deliveryDate")),
        components=components,
        signing_payment=signing,
    )
    for attribute, keys in LEGACY_METADATA_KEYS.items():
        for key in keys:
            if data.get(key):
                setattr(flow, attribute, str(data[key]))
                break
    return flow


def _component_snapshot(component: PaymentComponent) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "enabled": component.enabled,
        "specMode": component.spec_mode.value,
        "percentage": str(component.percentage),
        "value": str(component.value),
        "count": component.count,
        "firstDueDate": component.first_due_date.isoformat() if component.first_due_date else None,
    }
    if component.kind is ComponentKind.KEYS:
        block["isSaldoMode"] = component.auto_calculate
    else:
        block["autoCalculate"] = component.auto_calculate
    return block


def to_snapshot(flow: FlowDefinition) -> Dict[str, Any]:
    """Return ``flow`` as a JSON-serializable dictionary."""
    snapshot: Dict[str, Any] = {
        "propertyValue": str(flow.property_value),
        "clientName": flow.client_name,
        "currency": flow.currency.value,
        "deliveryDate": flow.delivery_date.isoformat() if flow.delivery_date else None,
        "developer": flow.developer,
        "development": flow.development,
        "unit": flow.unit,
        "privateArea": flow.private_area,
    }
    for kind in ComponentKind:
        snapshot[kind.value] = _component_snapshot(flow.component(kind))
    signing = flow.signing_payment
    if signing is not None:
        snapshot[ComponentKind.DOWN_PAYMENT.value]["ato"] = {
            "specMode": signing.spec_mode.value,
            "percentage": str(signing.percentage),
            "value": str(signing.value),
            "firstDueDate": signing.first_due_date.isoformat() if signing.first_due_date else None,
        }
    return snapshot
