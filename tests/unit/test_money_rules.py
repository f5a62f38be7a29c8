"""
Unit Tests for Market Currency Rules

Reliability Level: STANDARD

Tests the MoneyRulesStore:
- One rule per (shop, country); second upsert overwrites
- Codes trimmed and uppercased, UK stored as GB
- Shop fallback currency set/clear
- Tenant isolation
"""

import pytest

from services.money_rules import MoneyRulesStore
from services.submission_models import ValidationError

from tests.fixtures.fakes import OTHER_SHOP_DOMAIN


class TestUpsertRule:

    def test_rule_is_normalized_on_write(self, money_rules: MoneyRulesStore, shop):
        rule = money_rules.upsert_rule(shop, " ca ", "cad ")

        assert rule.country_code == "CA"
        assert rule.currency == "CAD"
        assert money_rules.lookup(shop, "ca") == "CAD"

    def test_second_upsert_overwrites(self, money_rules, shop):
        money_rules.upsert_rule(shop, "GB", "GBP")
        money_rules.upsert_rule(shop, "GB", "USD")

        rules = money_rules.list_rules(shop)

        assert [(r.country_code, r.currency) for r in rules] == [("GB", "USD")]

    def test_uk_alias_is_stored_as_gb(self, money_rules, shop):
        money_rules.upsert_rule(shop, "UK", "USD")

        assert money_rules.lookup(shop, "GB") == "USD"
        assert money_rules.lookup(shop, "uk") == "USD"
        assert money_rules.list_rules(shop)[0].country_code == "GB"

    @pytest.mark.parametrize("country,currency", [
        ("", "USD"),
        ("CAN", "CAD"),
        ("C1", "CAD"),
        ("CA", "CA"),
        ("CA", "DOLLARS"),
        ("CA", "U$D"),
    ])
    def test_malformed_codes_are_rejected(self, money_rules, shop, country, currency):
        with pytest.raises(ValidationError):
            money_rules.upsert_rule(shop, country, currency)

        assert money_rules.list_rules(shop) == []

    def test_rules_listed_by_country(self, money_rules, shop):
        money_rules.upsert_rule(shop, "US", "USD")
        money_rules.upsert_rule(shop, "CA", "CAD")
        money_rules.upsert_rule(shop, "DE", "EUR")

        assert [r.country_code for r in money_rules.list_rules(shop)] == ["CA", "DE", "US"]

    def test_rule_dict_uses_camel_case(self, money_rules, shop):
        body = money_rules.upsert_rule(shop, "CA", "CAD").to_dict()

        assert body["countryCode"] == "CA"
        assert body["currency"] == "CAD"
        assert body["updatedAt"] is not None


class TestDeleteAndLookup:

    def test_delete_existing_rule(self, money_rules, shop):
        money_rules.upsert_rule(shop, "CA", "CAD")

        assert money_rules.delete_rule(shop, "ca") is True
        assert money_rules.lookup(shop, "CA") is None

    def test_delete_missing_rule(self, money_rules, shop):
        assert money_rules.delete_rule(shop, "CA") is False

    def test_lookup_without_country(self, money_rules, shop):
        assert money_rules.lookup(shop, None) is None
        assert money_rules.lookup(shop, "") is None

    def test_rules_are_isolated_by_shop(self, money_rules, tenants, shop):
        other = tenants.upsert_shop(OTHER_SHOP_DOMAIN)
        money_rules.upsert_rule(shop, "CA", "CAD")

        assert money_rules.lookup(other, "CA") is None
        assert money_rules.list_rules(other) == []
        assert money_rules.delete_rule(other, "CA") is False
        assert money_rules.lookup(shop, "CA") == "CAD"


class TestDefaultCurrency:

    def test_set_and_get(self, money_rules, shop):
        assert money_rules.get_default_currency(shop) is None

        assert money_rules.set_default_currency(shop, "usd") == "USD"
        assert money_rules.get_default_currency(shop) == "USD"

    @pytest.mark.parametrize("cleared", [None, "", "   "])
    def test_empty_value_clears(self, money_rules, shop, cleared):
        money_rules.set_default_currency(shop, "EUR")

        assert money_rules.set_default_currency(shop, cleared) is None
        assert money_rules.get_default_currency(shop) is None

    def test_invalid_currency_is_rejected(self, money_rules, shop):
        with pytest.raises(ValidationError):
            money_rules.set_default_currency(shop, "EURO")


class TestPurge:

    def test_purge_removes_only_that_shop(self, money_rules, tenants, shop):
        other = tenants.upsert_shop(OTHER_SHOP_DOMAIN)
        money_rules.upsert_rule(shop, "CA", "CAD")
        money_rules.upsert_rule(shop, "US", "USD")
        money_rules.upsert_rule(other, "CA", "CAD")

        assert money_rules.purge_shop(shop) == 2
        assert money_rules.list_rules(shop) == []
        assert len(money_rules.list_rules(other)) == 1
