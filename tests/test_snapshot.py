"""Tests for snapshot migration and serialization."""

import json
from datetime import date
from decimal import Decimal

from payment_flow.data_models import ComponentKind, Currency, SpecMode
from payment_flow.snapshot import migrate_snapshot, to_snapshot


LEGACY_SNAPSHOT = {
    "propertyValue": 500000,
    "deliveryDate": "2027-06-30",
    "clientName": "  João Pereira ",
    "downPayment": 50000,
    "monthly": {"enabled": True, "count": 100, "value": 2739.05},
    "semiannual": {"enabled": True, "count": 10, "value": 5000},
    "annual": {"enabled": False},
    "keysPayment": 0,
    "constructionStartDate": "2025-02-10",
    "constructora": "Construtora Horizonte",
    "unidade": "1204",
}


class TestLegacyMigration:
    """Tests for snapshots written by older calculator versions."""

    def test_bare_amounts_become_value_components(self):
        flow = migrate_snapshot(LEGACY_SNAPSHOT)
        down_payment = flow.component(ComponentKind.DOWN_PAYMENT)

        assert down_payment.spec_mode is SpecMode.ABSOLUTE_VALUE
        assert down_payment.value == Decimal("50000")
        assert down_payment.percentage == Decimal("10")
        assert flow.component(ComponentKind.KEYS).enabled is True

    def test_legacy_block_keys_are_mapped(self):
        flow = migrate_snapshot(LEGACY_SNAPSHOT)
        semiannual = flow.component(ComponentKind.SEMIANNUAL)

        assert semiannual.enabled is True
        assert semiannual.count == 10
        assert semiannual.value == Decimal("5000")
        assert flow.component(ComponentKind.ANNUAL).enabled is False

    def test_construction_start_date_backfills_down_payment(self):
        flow = migrate_snapshot(LEGACY_SNAPSHOT)

        assert flow.component(ComponentKind.DOWN_PAYMENT).first_due_date == date(2025, 2, 10)

    def test_missing_blocks_get_defaults(self):
        flow = migrate_snapshot(LEGACY_SNAPSHOT)
        construction = flow.component(ComponentKind.CONSTRUCTION_START)

        assert construction.enabled is False
        assert construction.value == 0
        assert construction.count == 1
        assert construction.auto_calculate is False

    def test_metadata_and_names(self):
        flow = migrate_snapshot(LEGACY_SNAPSHOT)

        assert flow.client_name == "João Pereira"
        assert flow.developer == "Construtora Horizonte"
        assert flow.unit == "1204"
        assert flow.delivery_date == date(2027, 6, 30)

    def test_currency_object(self):
        flow = migrate_snapshot({"propertyValue": 1, "currency": {"code": "USD", "rate": 5.5}})

        assert flow.currency is Currency.USD

    def test_unknown_currency_falls_back(self):
        assert migrate_snapshot({"currency": "XYZ"}).currency is Currency.BRL


class TestNormalization:
    """Malformed snapshots are repaired rather than rejected."""

    def test_malformed_numbers_read_as_zero(self):
        flow = migrate_snapshot({
            "propertyValue": "abc",
            "downPayment": {"value": "NaN", "percentage": None},
            "monthly": {"enabled": True, "count": "lots", "value": float("nan")},
        })

        assert flow.property_value == 0
        assert flow.component(ComponentKind.DOWN_PAYMENT).value == 0
        assert flow.component(ComponentKind.MONTHLY).value == 0
        assert flow.component(ComponentKind.MONTHLY).count == 0

    def test_percentage_mode_value_is_recomputed(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "downPayment": {"type": "percentage", "percentage": 10, "value": 999},
        })

        assert flow.component(ComponentKind.DOWN_PAYMENT).value == Decimal("50000")

    def test_second_auto_flag_is_cleared(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "monthly": {"enabled": True, "count": 10, "autoCalculate": True},
            "keysPayment": {"value": 1000, "isSaldoMode": True},
        })

        assert flow.auto_kind is ComponentKind.MONTHLY
        assert flow.component(ComponentKind.KEYS).auto_calculate is False

    def test_auto_flag_on_disabled_block_is_cleared(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "annual": {"enabled": False, "autoCalculate": True},
            "keysPayment": {"isSaldoMode": True},
        })

        assert flow.auto_kind is ComponentKind.KEYS

    def test_empty_snapshot(self):
        flow = migrate_snapshot({})

        assert flow.property_value == 0
        assert len(flow.components) == len(ComponentKind)

    def test_non_mapping_snapshot_is_empty(self):
        for data in ([1, 2], "flow", 42, None):
            flow = migrate_snapshot(data)

            assert flow.property_value == 0
            assert flow.auto_kind is None

    def test_auto_flag_on_fixed_blocks_is_cleared(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "downPayment": {"percentage": 10, "autoCalculate": True},
            "constructionStartPayment": {"enabled": True, "value": 5000, "autoCalculate": True},
        })

        assert flow.auto_kind is None
        assert flow.component(ComponentKind.CONSTRUCTION_START).auto_calculate is False

    def test_huge_count_is_capped(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "monthly": {"enabled": True, "count": 1000000000, "value": 10},
            "annual": {"enabled": True, "count": "lots", "value": 10},
        })

        assert flow.component(ComponentKind.MONTHLY).count == 600
        assert flow.component(ComponentKind.ANNUAL).count == 0


class TestSigningPayment:
    """Tests for the signing payment kept under ``downPayment.ato``."""

    def test_ato_is_migrated(self):
        flow = migrate_snapshot({
            "propertyValue": 500000,
            "downPayment": {
                "specMode": "percentage",
                "percentage": 10,
                "ato": {"type": "value", "value": 5000, "firstDueDate": "2025-01-20"},
            },
        })

        signing = flow.signing_payment
        assert signing.spec_mode is SpecMode.ABSOLUTE_VALUE
        assert signing.percentage == Decimal("1")
        assert signing.first_due_date == date(2025, 1, 20)

    def test_ato_mode_is_inferred(self):
        flow = migrate_snapshot({"propertyValue": 500000, "downPayment": {"percentage": 10, "ato": {"percentage": 2}}})

        assert flow.signing_payment.spec_mode is SpecMode.PERCENTAGE
        assert flow.signing_payment.value == Decimal("10000")

    def test_no_ato_means_no_signing_payment(self):
        assert migrate_snapshot(LEGACY_SNAPSHOT).signing_payment is None
        assert migrate_snapshot({"downPayment": {"percentage": 10, "ato": 5}}).signing_payment is None


class TestToSnapshot:
    def test_snapshot_is_json_serializable(self, scenario_a):
        flow = migrate_snapshot(scenario_a)

        data = json.loads(json.dumps(to_snapshot(flow)))

        assert data["monthly"]["autoCalculate"] is True
        assert data["keysPayment"]["isSaldoMode"] is False
        assert data["deliveryDate"] == "2028-12-01"

    def test_current_snapshot_loads_back_unchanged(self, scenario_a):
        flow = migrate_snapshot(scenario_a)

        assert migrate_snapshot(to_snapshot(flow)) == flow

    def test_signing_payment_round_trip(self, scenario_a):
        scenario_a["downPayment"]["ato"] = {"specMode": "percentage", "percentage": 2, "firstDueDate": "2025-01-20"}
        flow = migrate_snapshot(scenario_a)

        data = json.loads(json.dumps(to_snapshot(flow)))

        assert data["downPayment"]["ato"]["specMode"] == "percentage"
        assert migrate_snapshot(data) == flow
