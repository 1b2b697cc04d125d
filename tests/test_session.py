"""Tests for the editing session: events, debounced recompute and bulk loads."""

import random
from decimal import Decimal

import pytest

from payment_flow.config import MAX_INSTALLMENTS
from payment_flow.data_models import ComponentKind, SpecMode
from payment_flow.errors import FlowExceedsLimitError
from payment_flow.session import Debouncer, FlowSession


@pytest.fixture
def session(timers):
    session = FlowSession(timer_factory=timers)
    session.set_property_value("500000")
    return session


@pytest.fixture
def balanced(session):
    """Session with 10% down and 100 monthly installments auto-balanced."""
    session.set_percentage(ComponentKind.DOWN_PAYMENT, "10")
    session.set_enabled(ComponentKind.MONTHLY, True)
    session.set_count(ComponentKind.MONTHLY, 100)
    session.request_auto_calculate(ComponentKind.MONTHLY)
    return session


def _monthly(session):
    return session.flow.component(ComponentKind.MONTHLY)


class TestDebouncer:
    """Tests for the cancellable debounce timer."""

    def test_only_last_callback_runs(self, timers):
        calls = []
        debouncer = Debouncer(0.1, timers)

        debouncer.schedule(lambda: calls.append(1))
        debouncer.schedule(lambda: calls.append(2))
        timers.fire_all()

        assert calls == [2]
        assert timers.timers[0].cancelled

    def test_stale_timer_is_ignored(self, timers):
        """A timer that fires after being superseded does nothing."""
        calls = []
        debouncer = Debouncer(0.1, timers)
        debouncer.schedule(lambda: calls.append(1))
        debouncer.schedule(lambda: calls.append(2))

        stale = timers.timers[0]
        stale.function(*stale.args)

        assert calls == []
        assert debouncer.pending

    def test_flush_runs_pending_now(self, timers):
        calls = []
        debouncer = Debouncer(0.1, timers)
        debouncer.schedule(lambda: calls.append(1))

        assert debouncer.flush() is True
        assert calls == [1]
        assert debouncer.flush() is False

    def test_cancel_drops_pending(self, timers):
        calls = []
        debouncer = Debouncer(0.1, timers)
        debouncer.schedule(lambda: calls.append(1))

        debouncer.cancel()
        timers.fire_all()

        assert calls == []
        assert not debouncer.pending


class TestRecomputeTriggers:
    """Tests for which edits reschedule the auto-balance."""

    def test_auto_request_applies_immediately(self, balanced):
        assert _monthly(balanced).value == Decimal("4500")
        assert balanced.calculate().total_paid == Decimal("500000")

    def test_burst_of_edits_recomputes_once(self, balanced, timers):
        recomputes = []
        original = balanced.coordinator.recompute
        balanced.coordinator.recompute = lambda flow: recomputes.append(1) or original(flow)

        for raw in ("1", "10", "20"):
            balanced.set_percentage(ComponentKind.DOWN_PAYMENT, raw)

        assert _monthly(balanced).value == Decimal("4500")
        assert len(timers.live) == 1

        timers.fire_all()

        assert recomputes == [1]
        assert _monthly(balanced).value == Decimal("4000")

    def test_price_change_recomputes(self, balanced, timers):
        balanced.set_property_value("600000")
        timers.fire_all()

        assert balanced.flow.component(ComponentKind.DOWN_PAYMENT).value == Decimal("60000")
        assert _monthly(balanced).value == Decimal("5400")

    def test_count_change_on_auto_block_recomputes(self, balanced):
        balanced.set_count(ComponentKind.MONTHLY, 50)
        balanced.flush()

        assert _monthly(balanced).value == Decimal("9000")

    def test_enabling_sibling_recomputes(self, balanced):
        balanced.set_value(ComponentKind.KEYS, "50000")
        balanced.flush()

        assert _monthly(balanced).value == Decimal("4000")

    def test_due_date_edit_does_not_schedule(self, balanced, timers):
        balanced.set_first_due_date(ComponentKind.MONTHLY, "2025-03-10")

        assert timers.live == []

    def test_no_schedule_without_auto_block(self, session, timers):
        session.set_value(ComponentKind.DOWN_PAYMENT, "1000")

        assert timers.live == []

    def test_overrun_releases_block(self, balanced):
        balanced.set_value(ComponentKind.DOWN_PAYMENT, "500000")
        outcome = balanced.flush()

        assert outcome.released is ComponentKind.MONTHLY
        assert outcome.warnings
        assert balanced.coordinator.active is None
        assert _monthly(balanced).value == Decimal("4500")


class TestManualEdits:
    """Manual edits of the auto block take it out of auto mode."""

    def test_value_edit_releases(self, balanced):
        balanced.set_value(ComponentKind.MONTHLY, "3000")

        assert balanced.coordinator.active is None
        assert _monthly(balanced).auto_calculate is False
        assert _monthly(balanced).value == Decimal("3000")

    def test_percentage_edit_releases(self, balanced):
        balanced.set_percentage(ComponentKind.MONTHLY, "1")

        assert balanced.coordinator.active is None
        assert _monthly(balanced).spec_mode is SpecMode.PERCENTAGE
        assert _monthly(balanced).value == Decimal("5000")

    def test_disabling_releases(self, balanced):
        balanced.set_enabled(ComponentKind.MONTHLY, False)

        assert balanced.coordinator.active is None
        assert _monthly(balanced).enabled is False

    def test_always_present_blocks_cannot_be_disabled(self, session):
        session.set_enabled(ComponentKind.KEYS, False)

        assert session.flow.component(ComponentKind.KEYS).enabled is True


class TestInputGuards:
    """Edits that must neither lose amounts nor blow up the arithmetic."""

    def test_value_survives_mode_switch_at_zero_price(self, session):
        session.set_value(ComponentKind.KEYS, "75000")
        session.set_property_value("0")
        session.switch_mode(ComponentKind.KEYS, SpecMode.PERCENTAGE)
        session.set_property_value("500000")

        keys = session.flow.component(ComponentKind.KEYS)
        assert keys.value == Decimal("75000")
        assert keys.percentage == Decimal("15")
        assert session.calculate().components[ComponentKind.KEYS].total == Decimal("75000")

    def test_huge_exponent_reads_as_zero(self, session):
        session.set_percentage(ComponentKind.DOWN_PAYMENT, "1e7000000")

        assert session.flow.component(ComponentKind.DOWN_PAYMENT).percentage == 0
        assert session.calculate().total_paid == 0

    def test_count_is_capped(self, session):
        session.set_count(ComponentKind.MONTHLY, 10 ** 9)

        assert _monthly(session).count == MAX_INSTALLMENTS

    def test_down_payment_cannot_be_auto_calculated(self, session):
        outcome = session.request_auto_calculate(ComponentKind.DOWN_PAYMENT)

        assert outcome.warnings == ["Down payment cannot take the remaining balance"]
        assert session.coordinator.active is None
        assert session.flow.component(ComponentKind.DOWN_PAYMENT).auto_calculate is False


class TestSigningPayment:
    """Tests for editing the signing payment of the down payment."""

    def test_percentage_follows_price(self, session):
        session.set_signing_percentage("2")
        assert session.flow.signing_payment.value == Decimal("10000")

        session.set_property_value("600000")

        assert session.flow.signing_payment.value == Decimal("12000")

    def test_signing_edits_do_not_schedule_recompute(self, balanced, timers):
        balanced.set_signing_value("10000")
        balanced.set_signing_due_date("2025-01-20")

        assert timers.live == []
        assert balanced.flow.signing_payment.spec_mode is SpecMode.ABSOLUTE_VALUE
        assert balanced.snapshot()["downPayment"]["ato"]["firstDueDate"] == "2025-01-20"

    def test_disabling_removes_signing_payment(self, session):
        session.set_signing_enabled(True)
        session.set_signing_enabled(False)

        assert session.flow.signing_payment is None
        assert "ato" not in session.snapshot()["downPayment"]


class TestAutoInvariant:
    """At most one block is auto-calculated after any edit sequence."""

    def test_random_edit_sequences(self, timers):
        rng = random.Random(20240611)
        kinds = list(ComponentKind)
        session = FlowSession(timer_factory=timers)
        session.set_property_value("750000")

        for _ in range(400):
            kind = rng.choice(kinds)
            action = rng.randrange(6)
            if action == 0:
                session.request_auto_calculate(kind)
            elif action == 1:
                session.release(kind)
            elif action == 2:
                session.set_value(kind, str(rng.randrange(0, 400000)))
            elif action == 3:
                session.set_percentage(kind, str(rng.randrange(0, 120)))
            elif action == 4:
                session.set_enabled(kind, rng.random() < 0.6)
            else:
                session.set_count(kind, rng.randrange(0, 24))
            if rng.random() < 0.5:
                session.flush()

            flags = [c.kind for c in session.flow.components.values() if c.auto_calculate]
            assert len(flags) <= 1
            assert session.coordinator.active == (flags[0] if flags else None)


class TestBulkLoad:
    """Tests for snapshot loading."""

    def test_edits_during_load_do_not_schedule(self, balanced, timers):
        with balanced.bulk_load():
            balanced.set_property_value("100000")
            balanced.set_value(ComponentKind.DOWN_PAYMENT, "1")
            assert timers.live == []

        assert len(timers.live) == 1

    def test_load_snapshot_recomputes_after_load(self, scenario_a, timers):
        session = FlowSession(timer_factory=timers)

        session.load_snapshot(scenario_a)
        assert session.coordinator.active is ComponentKind.MONTHLY
        session.flush()

        assert _monthly(session).value == Decimal("4500")
        assert session.calculate().total_paid == Decimal("500000")

    def test_events_reach_subscribers(self, session):
        events = []
        session.subscribe(events.append)

        session.set_count(ComponentKind.MONTHLY, 12)
        session.set_client_name("Ana")

        assert [(e.kind, e.field) for e in events] == [
            (ComponentKind.MONTHLY, "count"),
            (None, "client_name"),
        ]
        assert events[1].affects_balance is False


class TestExport:
    def test_export_refused_while_exceeding(self, session):
        session.set_client_name("Maria Oliveira")
        session.set_value(ComponentKind.DOWN_PAYMENT, "300000")
        session.set_enabled(ComponentKind.CONSTRUCTION_START, True)
        session.set_value(ComponentKind.CONSTRUCTION_START, "300000")

        with pytest.raises(FlowExceedsLimitError):
            session.export()

    def test_export_of_balanced_flow(self, balanced):
        balanced.set_client_name("Maria Oliveira")

        result = balanced.export()

        assert result.exceeds_limit is False
        assert balanced.snapshot()["monthly"]["autoCalculate"] is True
