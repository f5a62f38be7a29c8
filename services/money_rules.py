"""
============================================================================
Project Wishlist Relay v1.0.0
Money Rules Store - Market Currency Rules & Shop Fallback Currency
============================================================================

Reliability Level: STANDARD
Input Constraints: ISO-2 country codes, ISO-3 currency codes
Side Effects: Database writes to market_currency_rules and shops

Maps (shop, country) → settlement currency. At most one rule per country
per shop; a second upsert overwrites. The shop-level default currency is
the fallback used when the requested presentment currency is rejected.

Codes are trimmed and uppercased before storage and comparison. The legacy
alias UK is stored as GB.

============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.database.tables import as_utc, market_currency_rules, shops, utcnow
from services.submission_models import (
    ShopRef,
    ValidationError,
    normalize_country_code,
    normalize_currency_code,
)

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class MarketCurrencyRule:
    country_code: str
    currency: str
    updated_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "countryCode": self.country_code,
            "currency": self.currency,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


def _require_country(value: Optional[str]) -> str:
    code = normalize_country_code(value)
    if code is None:
        raise ValidationError("countryCode is required", {"countryCode": ""})
    return code


class MoneyRulesStore:
    """
    Per-shop currency rule persistence.

    Reliability Level: STANDARD
    Side Effects: One transaction per operation
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def list_rules(self, shop: ShopRef) -> List[MarketCurrencyRule]:
        """Return all rules for the shop ordered by country code."""
        query = (
            select(
                market_currency_rules.c.country_code,
                market_currency_rules.c.currency,
                market_currency_rules.c.updated_at,
            )
            .where(market_currency_rules.c.shop_id == shop.id)
            .order_by(market_currency_rules.c.country_code)
        )
        with self._session_factory() as session:
            rows = session.execute(query).all()
        return [
            MarketCurrencyRule(
                country_code=row.country_code,
                currency=row.currency,
                updated_at=as_utc(row.updated_at),
            )
            for row in rows
        ]

    def upsert_rule(self, shop: ShopRef, country_code: str, currency: str) -> MarketCurrencyRule:
        """
        Create or overwrite the rule for (shop, country).

        Raises:
            ValidationError: If the country or currency code is malformed
        """
        country = _require_country(country_code)
        code = normalize_currency_code(currency)
        now = utcnow()

        try:
            with self._session_factory.begin() as session:
                if not self._update_rule(session, shop.id, country, code, now):
                    session.execute(
                        insert(market_currency_rules).values(
                            shop_id=shop.id,
                            country_code=country,
                            currency=code,
                            updated_at=now,
                        )
                    )
        except IntegrityError:
            # Concurrent insert won; overwrite it.
            with self._session_factory.begin() as session:
                self._update_rule(session, shop.id, country, code, now)

        logger.info(
            f"[MONEY-RULES] Rule upserted | shop_id={shop.id} | "
            f"country={country} | currency={code}"
        )
        return MarketCurrencyRule(country_code=country, currency=code, updated_at=now)

    @staticmethod
    def _update_rule(session, shop_id: str, country: str, currency: str, now: datetime) -> bool:
        result = session.execute(
            update(market_currency_rules)
            .where(market_currency_rules.c.shop_id == shop_id)
            .where(market_currency_rules.c.country_code == country)
            .values(currency=currency, updated_at=now)
        )
        return result.rowcount > 0

    def delete_rule(self, shop: ShopRef, country_code: str) -> bool:
        """Delete the rule for (shop, country). Returns True if a rule existed."""
        country = _require_country(country_code)
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(market_currency_rules)
                .where(market_currency_rules.c.shop_id == shop.id)
                .where(market_currency_rules.c.country_code == country)
            )
        deleted = result.rowcount > 0
        logger.info(
            f"[MONEY-RULES] Rule deleted | shop_id={shop.id} | "
            f"country={country} | existed={deleted}"
        )
        return deleted

    def lookup(self, shop: ShopRef, country_code: Optional[str]) -> Optional[str]:
        """Return the settlement currency for (shop, country), or None."""
        country = normalize_country_code(country_code)
        if country is None:
            return None
        with self._session_factory() as session:
            return session.execute(
                select(market_currency_rules.c.currency)
                .where(market_currency_rules.c.shop_id == shop.id)
                .where(market_currency_rules.c.country_code == country)
            ).scalar_one_or_none()

    def set_default_currency(self, shop: ShopRef, currency: Optional[str]) -> Optional[str]:
        """Set or clear (None/empty) the shop's fallback currency."""
        code = normalize_currency_code(currency) if currency and str(currency).strip() else None
        with self._session_factory.begin() as session:
            session.execute(
                update(shops).where(shops.c.id == shop.id).values(default_currency=code)
            )
        logger.info(
            f"[MONEY-RULES] Default currency set | shop_id={shop.id} | currency={code}"
        )
        return code

    def get_default_currency(self, shop: ShopRef) -> Optional[str]:
        with self._session_factory() as session:
            return session.execute(
                select(shops.c.default_currency).where(shops.c.id == shop.id)
            ).scalar_one_or_none()

    def purge_shop(self, shop: ShopRef) -> int:
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(market_currency_rules).where(market_currency_rules.c.shop_id == shop.id)
            )
        return result.rowcount


__all__ = ["MarketCurrencyRule", "MoneyRulesStore"]
