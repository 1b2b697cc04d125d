"""Editing session for a single payment flow.

:class:`FlowSession` is the object a calculator front end talks to. Every
mutating call goes through the resolver, then emits a :class:`FlowChanged`
event to the session's subscribers. The session itself subscribes once and
answers balance-affecting events by scheduling an auto-balance recompute on a
:class:`Debouncer`, so a burst of edits (keystrokes) only recomputes once
after the quiet period. A pending recompute is cancelled when a newer edit
reschedules it; it is never applied late.

While a snapshot is being loaded, events are swallowed so the partially
populated flow never triggers a recompute.
"""

from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .config import DEFAULT_DEBOUNCE_SECONDS, ZERO
from .coordinator import Coordinator, Outcome
from .data_models import ComponentKind, Currency, FlowDefinition, FlowResult, SigningPayment, SpecMode
from .engine import calculate, ensure_exportable
from .resolver import apply_value, parse_value_input, rebase, set_percentage, set_value, switch_mode
from .snapshot import migrate_snapshot, to_snapshot
from .utils import parse_amount, parse_count, parse_optional_date, to_decimal

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., Any]


@dataclass
class FlowChanged:
    """Emitted after every mutation of the flow.

    ``kind`` is ``None`` for flow-level fields such as the property value.
    """

    kind: Optional[ComponentKind]
    field: str
    affects_balance: bool = True


class Debouncer:
    """Run the last scheduled callback once no new one arrived for ``delay`` seconds."""

    def __init__(self, delay: float = DEFAULT_DEBOUNCE_SECONDS, timer_factory: TimerFactory = threading.Timer) -> None:
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._token = 0
        self._timer = None
        self._callback: Optional[Callable[[], None]] = None

    @property
    def pending(self) -> bool:
        return self._callback is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                logger.debug("Cancelled pending recompute")
            self._token = next(self._tokens)
            timer = self._timer_factory(self.delay, self._fire, args=(self._token,))
            timer.daemon = True
            self._timer = timer
            self._callback = callback
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._token = next(self._tokens)
            self._timer = None
            self._callback = None

    def flush(self) -> bool:
        """Run the pending callback now. Returns whether one was pending."""
        with self._lock:
            callback = self._callback
            if self._timer is not None:
                self._timer.cancel()
            self._token = next(self._tokens)
            self._timer = None
            self._callback = None
        if callback is None:
            return False
        callback()
        return True

    def _fire(self, token: int) -> None:
        with self._lock:
            if token != self._token:
                return
            callback = self._callback
            self._timer = None
            self._callback = None
        if callback is not None:
            callback()


class FlowSession:
    """Serial editing of one :class:`FlowDefinition`."""

    def __init__(
        self,
        flow: Optional[FlowDefinition] = None,
        *,
        coordinator: Optional[Coordinator] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.flow = flow or FlowDefinition()
        self.coordinator = coordinator or Coordinator()
        self.coordinator.sync(self.flow)
        self.last_outcome = Outcome()
        self._debouncer = Debouncer(debounce_seconds, timer_factory)
        self._lock = threading.RLock()
        self._loading = False
        self._subscribers: List[Callable[[FlowChanged], None]] = []
        self.subscribe(self._on_flow_changed)

    # -- events -------------------------------------------------------------

    def subscribe(self, callback: Callable[[FlowChanged], None]) -> None:
        self._subscribers.append(callback)

    def _emit(self, event: FlowChanged) -> None:
        if self._loading:
            return
        for callback in self._subscribers:
            callback(event)

    def _on_flow_changed(self, event: FlowChanged) -> None:
        if event.affects_balance and self.coordinator.active is not None:
            self._debouncer.schedule(self._commit_recompute)

    def _commit_recompute(self) -> None:
        with self._lock:
            if self._loading:
                return
            self.last_outcome = self.coordinator.recompute(self.flow)

    @property
    def recompute_pending(self) -> bool:
        return self._debouncer.pending

    def flush(self) -> Outcome:
        """Apply a pending recompute immediately and return the latest outcome."""
        self._debouncer.flush()
        return self.last_outcome

    # -- flow-level fields --------------------------------------------------

    def set_property_value(self, raw: Union[str, Decimal, int, float]) -> None:
        with self._lock:
            value = parse_amount(raw) if isinstance(raw, str) else to_decimal(raw)
            self.flow.property_value = max(value, ZERO)
            for component in list(self.flow.components.values()):
                self.flow.replace_component(rebase(component, self.flow.property_value))
            if self.flow.signing_payment is not None:
                self.flow.signing_payment = rebase(self.flow.signing_payment, self.flow.property_value)
        self._emit(FlowChanged(None, "property_value"))

    def set_client_name(self, name: str) -> None:
        with self._lock:
            self.flow.client_name = (name or "").strip()
        self._emit(FlowChanged(None, "client_name", affects_balance=False))

    def set_delivery_date(self, raw: Any) -> None:
        with self._lock:
            self.flow.delivery_date = parse_optional_date(raw)
        self._emit(FlowChanged(None, "delivery_date", affects_balance=False))

    def set_currency(self, code: Union[str, Currency]) -> None:
        with self._lock:
            self.flow.currency = Currency(code) if isinstance(code, str) else code
        self._emit(FlowChanged(None, "currency", affects_balance=False))

    # -- component fields ---------------------------------------------------

    def set_enabled(self, kind: ComponentKind, enabled: bool) -> None:
        with self._lock:
            component = self.flow.component(kind)
            if kind.always_present:
                return
            if not enabled and self.coordinator.active is kind:
                self.coordinator.release(self.flow, kind)
                component = self.flow.component(kind)
            self.flow.replace_component(replace(component, enabled=enabled))
        self._emit(FlowChanged(kind, "enabled"))

    def switch_mode(self, kind: ComponentKind, mode: SpecMode) -> None:
        with self._lock:
            component = self.flow.component(kind)
            self.flow.replace_component(switch_mode(component, mode, self.flow.property_value))
        self._emit(FlowChanged(kind, "spec_mode"))

    def set_percentage(self, kind: ComponentKind, raw: str) -> None:
        """Apply a typed percentage. A manual edit takes the block out of auto mode."""
        with self._lock:
            self._release_for_manual_edit(kind)
            component = self.flow.component(kind)
            self.flow.replace_component(set_percentage(component, raw, self.flow.property_value))
        self._emit(FlowChanged(kind, "percentage"))

    def set_value(self, kind: ComponentKind, raw: Union[str, Decimal]) -> None:
        with self._lock:
            self._release_for_manual_edit(kind)
            component = self.flow.component(kind)
            self.flow.replace_component(set_value(component, raw, self.flow.property_value))
        self._emit(FlowChanged(kind, "value"))

    def set_count(self, kind: ComponentKind, count: Union[int, str]) -> None:
        parsed = parse_count(count, default=0)
        with self._lock:
            self.flow.replace_component(replace(self.flow.component(kind), count=parsed))
        self._emit(FlowChanged(kind, "count"))

    def set_first_due_date(self, kind: ComponentKind, raw: Any) -> None:
        with self._lock:
            component = self.flow.component(kind)
            self.flow.replace_component(replace(component, first_due_date=parse_optional_date(raw)))
        self._emit(FlowChanged(kind, "first_due_date", affects_balance=False))

    # -- signing payment ----------------------------------------------------

    def set_signing_enabled(self, enabled: bool) -> None:
        with self._lock:
            if not enabled:
                self.flow.signing_payment = None
            elif self.flow.signing_payment is None:
                self.flow.signing_payment = SigningPayment()
        self._emit(FlowChanged(ComponentKind.DOWN_PAYMENT, "signing_payment", affects_balance=False))

    def set_signing_percentage(self, raw: str) -> None:
        with self._lock:
            signing = self.flow.signing_payment or SigningPayment()
            self.flow.signing_payment = set_percentage(signing, raw, self.flow.property_value)
        self._emit(FlowChanged(ComponentKind.DOWN_PAYMENT, "signing_payment", affects_balance=False))

    def set_signing_value(self, raw: Union[str, Decimal]) -> None:
        with self._lock:
            signing = self.flow.signing_payment or SigningPayment()
            amount = parse_value_input(raw)
            self.flow.signing_payment = apply_value(signing, amount, self.flow.property_value)
        self._emit(FlowChanged(ComponentKind.DOWN_PAYMENT, "signing_payment", affects_balance=False))

    def set_signing_due_date(self, raw: Any) -> None:
        with self._lock:
            signing = self.flow.signing_payment or SigningPayment()
            self.flow.signing_payment = replace(signing, first_due_date=parse_optional_date(raw))
        self._emit(FlowChanged(ComponentKind.DOWN_PAYMENT, "signing_payment", affects_balance=False))

    def _release_for_manual_edit(self, kind: ComponentKind) -> None:
        if self.coordinator.active is kind:
            self.coordinator.release(self.flow, kind)

    # -- auto-balance -------------------------------------------------------

    def request_auto_calculate(self, kind: ComponentKind) -> Outcome:
        with self._lock:
            self._debouncer.cancel()
            outcome = self.coordinator.request_auto_calculate(self.flow, kind)
            if not outcome.rejected:
                self.last_outcome = outcome
        return outcome

    def release(self, kind: ComponentKind) -> Outcome:
        with self._lock:
            outcome = self.coordinator.release(self.flow, kind)
            if outcome.released is not None:
                self._debouncer.cancel()
        return outcome

    # -- snapshots ----------------------------------------------------------

    @contextmanager
    def bulk_load(self) -> Iterator[None]:
        """Suppress recomputes while the flow is being replaced wholesale."""
        with self._lock:
            self._loading = True
            self._debouncer.cancel()
        try:
            yield
        finally:
            with self._lock:
                self._loading = False
                self.coordinator.sync(self.flow)
            if self.coordinator.active is not None:
                self._debouncer.schedule(self._commit_recompute)

    def load_snapshot(self, data: Dict[str, Any]) -> None:
        with self.bulk_load():
            self.flow = migrate_snapshot(data)
        logger.debug("Loaded snapshot, auto block: %s", self.coordinator.active)

    def snapshot(self) -> Dict[str, Any]:
        self.flush()
        return to_snapshot(self.flow)

    # -- results ------------------------------------------------------------

    def calculate(self) -> FlowResult:
        """Pull a fresh result for the current state of the flow."""
        with self._lock:
            return calculate(self.flow)

    def export(self) -> FlowResult:
        """Result of the flow for persistence or export.

        Raises :class:`~payment_flow.errors.ProposalRejected` when the flow may
        not leave the calculator.
        """
        self.flush()
        with self._lock:
            return ensure_exportable(self.flow)
