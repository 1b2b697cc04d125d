"""Auto-balance coordination.

A flow may designate a single component whose value is derived as whatever
is left of the property value once every other component is paid. The
:class:`Coordinator` holds which component that is (if any), rejects a
second designation, and performs the balance computation.

Nothing in this module raises for ordinary outcomes. A rejected request is
reported as a :class:`Conflict` and a balance that cannot be applied is
reported as a warning on the returned :class:`Outcome`, with the previous
state left in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .config import ZERO
from .data_models import ComponentKind, FlowDefinition, SpecMode
from .resolver import percentage_of, resolve_total

logger = logging.getLogger(__name__)


@dataclass
class Conflict:
    """A request for auto-calculation rejected because another block holds it."""

    requested: ComponentKind
    active: ComponentKind

    @property
    def message(self) -> str:
        return (
            f"Auto-calculation is already active on {self.active.label}; "
            f"turn it off before enabling it on {self.requested.label}."
        )


@dataclass
class Outcome:
    """What a coordinator call did to the flow."""

    conflict: Optional[Conflict] = None
    applied: bool = False
    released: Optional[ComponentKind] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return self.conflict is not None


class Coordinator:
    """Owner of the single active auto-balanced component of a flow."""

    def __init__(self) -> None:
        self._active: Optional[ComponentKind] = None

    @property
    def active(self) -> Optional[ComponentKind]:
        return self._active

    def sync(self, flow: FlowDefinition) -> None:
        """Adopt the auto flag of a freshly loaded flow.

        If more than one flag is set, the first in schedule order is kept.
        Flags on blocks that cannot take the remaining balance are cleared.
        """
        self._active = None
        for component in flow.included_components():
            if not component.auto_calculate:
                continue
            if not component.kind.can_auto_calculate:
                logger.warning("Clearing auto-calculation on %s", component.kind.label)
                flow.replace_component(replace(component, auto_calculate=False))
            elif self._active is None:
                self._active = component.kind
            else:
                logger.warning(
                    "Clearing auto-calculation on %s: already active on %s",
                    component.kind.label,
                    self._active.label,
                )
                flow.replace_component(replace(component, auto_calculate=False))
        for component in flow.components.values():
            if component.auto_calculate and not component.included:
                flow.replace_component(replace(component, auto_calculate=False))

    def request_auto_calculate(self, flow: FlowDefinition, kind: ComponentKind) -> Outcome:
        if not kind.can_auto_calculate:
            message = f"{kind.label} cannot take the remaining balance"
            logger.info(message)
            return Outcome(warnings=[message])
        if self._active is not None and self._active is not kind:
            conflict = Conflict(requested=kind, active=self._active)
            logger.info(conflict.message)
            return Outcome(conflict=conflict)
        component = flow.component(kind)
        flow.replace_component(replace(component, enabled=True, auto_calculate=True))
        self._active = kind
        return self.recompute(flow)

    def release(self, flow: FlowDefinition, kind: ComponentKind) -> Outcome:
        """Turn auto-calculation off, keeping the last computed value."""
        component = flow.component(kind)
        if component.auto_calculate:
            flow.replace_component(replace(component, auto_calculate=False))
        if self._active is not kind:
            return Outcome()
        self._active = None
        return Outcome(released=kind)

    def recompute(self, flow: FlowDefinition) -> Outcome:
        """Set the active component to the remaining balance of the flow."""
        kind = self._active
        if kind is None:
            return Outcome()

        property_value = flow.property_value
        if property_value <= 0:
            message = f"{kind.label} not recalculated: property value is not set"
            logger.warning(message)
            return Outcome(warnings=[message])

        component = flow.component(kind)
        if kind.is_recurring and component.count <= 0:
            logger.info("%s not recalculated: installment count is %d", kind.label, component.count)
            return Outcome()

        others_total = sum(
            (resolve_total(c, property_value) for c in flow.included_components() if c.kind is not kind),
            ZERO,
        )
        remaining = property_value - others_total

        if remaining <= 0:
            if kind.is_recurring:
                message = (
                    f"{kind.label} could not be balanced: the other payments already "
                    f"cover the property value. Auto-calculation was turned off."
                )
                logger.warning(message)
                self.release(flow, kind)
                return Outcome(released=kind, warnings=[message])
            message = (
                f"{kind.label} could not be balanced: the other payments already "
                f"cover the property value. Keeping the last computed amount."
            )
            logger.warning(message)
            return Outcome(warnings=[message])

        new_value = remaining / component.count if kind.is_recurring else remaining
        flow.replace_component(
            replace(
                component,
                spec_mode=SpecMode.ABSOLUTE_VALUE,
                value=new_value,
                percentage=percentage_of(new_value, property_value),
            )
        )
        logger.debug("%s balanced to %s", kind.label, new_value)
        return Outcome(applied=True)
