"""Tests for exporting and importing the whole ledger."""

import json
from decimal import Decimal

import pytest

from exledger.database.factories import create_memory_database
from exledger.domain.bundle import BundleService, COLLECTIONS
from exledger.domain.entities import Currency, RatePart
from exledger.domain.errors import ValidationError


@pytest.fixture
def busy_ledger(funded_ledger, lyd_customer):
    funded_ledger.buy_currency(
        Currency.USD, Decimal("100"), Decimal("10"), "cashLydTripoli", "cashUsdLibya"
    )
    funded_ledger.sell_currency(
        Currency.USD, Decimal("20"), Decimal("12"), "cashUsdLibya", customer_id=lyd_customer
    )
    funded_ledger.add_receivable("Ali", Currency.LYD, Decimal("300"), "cashLydTripoli")
    deleted = funded_ledger.add_operating_cost("Fuel", Decimal("25"), "cashLydTripoli")
    funded_ledger.delete_group(deleted)
    funded_ledger.close_capital(
        {Currency.USD: (RatePart(Decimal("80"), Decimal("10")),)}
    )
    return funded_ledger


def test_export_has_every_collection(busy_ledger, bundle_service):
    bundle = bundle_service.export_bundle()

    assert set(bundle) == set(COLLECTIONS)
    assert [b["id"] for b in bundle["banks"]] == ["wahda"]
    assert "wahda" not in [a["id"] for a in bundle["assets"]]
    assert any(t["is_deleted"] for t in bundle["transactions"])
    assert bundle["capital_history"][0]["rates"]["USD"] == [{"amount": "80", "rate": "10"}]
    # Must survive a trip through json
    json.loads(bundle_service.export_json())


def test_round_trip_into_fresh_database(busy_ledger, bundle_service):
    text = bundle_service.export_json()
    target = create_memory_database()

    BundleService(target).import_json(text)

    for asset in busy_ledger.balances().values():
        assert target.get_asset(asset.id).balance == asset.balance
    source_txns = list(busy_ledger.db.iter_transactions(deleted=None, ascending=True))
    target_txns = list(target.iter_transactions(deleted=None, ascending=True))
    assert [t.id for t in target_txns] == [t.id for t in source_txns]
    assert [t.operation for t in target_txns] == [t.operation for t in source_txns]
    assert [c.name for c in target.list_customers()] == ["Salem"]
    assert target.list_capital_history()[0].total == busy_ledger.history.latest().total


def test_import_replaces_existing_data(busy_ledger, bundle_service):
    bundle_service.import_bundle({"assets": [], "banks": []})

    assert busy_ledger.db.list_customers(include_archived=True) == []
    assert list(busy_ledger.db.iter_transactions(deleted=None)) == []
    assert busy_ledger.get_asset("wahda") is None
    # Memo accounts always come back
    assert busy_ledger.get_asset("settlement") is not None


def test_missing_assets_recreates_default_vaults(busy_ledger, bundle_service):
    bundle_service.import_bundle({"banks": []})

    tripoli = busy_ledger.get_asset("cashLydTripoli")
    assert tripoli is not None
    assert tripoli.balance == Decimal("0")


@pytest.mark.parametrize(
    "bundle",
    [
        ["not", "an", "object"],
        {"transactions": [{"id": "x"}]},
        {"assets": [{"id": "a", "name": "A", "kind": "vault", "balance": "1"}]},
        {"transactions": [{
            "id": "x",
            "timestamp": "2024-01-01T10:00:00",
            "currency": "LYD",
            "amount": "1",
            "asset_id": "cashLydTripoli",
            "entry_type": "deposit",
            "operation": {"kind": "TELEPORT"},
        }]},
        {"settings": ["layout"]},
    ],
)
def test_malformed_bundle_changes_nothing(busy_ledger, bundle_service, bundle):
    before = {a.id: a.balance for a in busy_ledger.balances().values()}

    with pytest.raises(ValidationError):
        bundle_service.import_bundle(bundle)

    assert {a.id: a.balance for a in busy_ledger.balances().values()} == before


def test_invalid_json(bundle_service):
    with pytest.raises(ValidationError, match="not valid JSON"):
        bundle_service.import_json("{oops")


def test_settings_travel_with_bundle(ledger, bundle_service):
    bundle_service.set_setting("dashboard_cards", ["capital", "profit"])
    text = bundle_service.export_json()
    target = BundleService(create_memory_database())

    target.import_json(text)

    assert target.get_setting("dashboard_cards") == ["capital", "profit"]
    assert target.get_setting("sidebar") is None
