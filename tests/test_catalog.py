"""Tests for stocksync/catalog.py — key set load and per-sku updates."""

from unittest.mock import MagicMock

import pytest

from stocksync.catalog import CatalogStore
from stocksync.exceptions import TargetUnavailableError
from stocksync.models import Product
from stocksync.records import ItemOutcome, TargetUpdatePayload


def _payload(**overrides):
    values = dict(
        name="Tornillo Áspero",
        slug="tornillo-aspero",
        description="Tornillo Áspero",
        price=100.0,
        discount_price=80.0,
        stock=10,
        active=True,
    )
    values.update(overrides)
    return TargetUpdatePayload(**values)


# ── load_eligible_keys ────────────────────────────────────────────────


def test_load_keys_skips_null_and_empty(catalog, add_product):
    add_product("A1")
    add_product("B2")
    add_product(None)
    add_product("")
    assert catalog.load_eligible_keys() == {"A1", "B2"}


def test_load_keys_deduplicates(catalog, add_product):
    add_product("A1")
    add_product("A1")
    assert catalog.load_eligible_keys() == {"A1"}


def test_load_keys_empty_store_is_not_an_error(catalog):
    assert catalog.load_eligible_keys() == set()


def test_load_keys_failure_is_fatal():
    factory = MagicMock(side_effect=ConnectionError("store down"))
    store = CatalogStore(session_factory=factory)
    with pytest.raises(TargetUnavailableError):
        store.load_eligible_keys()


# ── apply_payload ─────────────────────────────────────────────────────


def test_apply_updates_all_seven_fields(catalog, add_product, get_product):
    add_product("A1", name="Old", slug="old", price=5, discount_price=1, stock=0, active=False)

    assert catalog.apply_payload("A1", _payload()) is ItemOutcome.UPDATED

    p = get_product("A1")
    assert p.name == "Tornillo Áspero"
    assert p.slug == "tornillo-aspero"
    assert p.description == "Tornillo Áspero"
    assert float(p.price) == 100
    assert float(p.discount_price) == 80
    assert p.stock == 10
    assert p.active is True
    assert p.updated_at is not None


def test_apply_clears_discount(catalog, add_product, get_product):
    add_product("A1", discount_price=3)
    catalog.apply_payload("A1", _payload(discount_price=None))
    assert get_product("A1").discount_price is None


def test_apply_missing_sku_does_not_insert(catalog, add_product, db_session):
    add_product("A1")
    assert catalog.apply_payload("ZZ9", _payload()) is ItemOutcome.NOT_FOUND
    assert db_session.query(Product).count() == 1
    assert db_session.query(Product).filter(Product.sku == "ZZ9").count() == 0


def test_apply_touches_only_matching_sku(catalog, add_product, get_product):
    add_product("A1")
    add_product("B2", name="Keep me", stock=7)
    catalog.apply_payload("A1", _payload())
    b2 = get_product("B2")
    assert b2.name == "Keep me"
    assert b2.stock == 7


def test_apply_never_changes_sku(catalog, add_product, get_product):
    add_product("A1")
    catalog.apply_payload("A1", _payload())
    assert get_product("A1").sku == "A1"


def test_sku_exists(catalog, add_product, db_session):
    add_product("A1")
    assert CatalogStore.sku_exists(db_session, "A1") is True
    assert CatalogStore.sku_exists(db_session, "B2") is False
