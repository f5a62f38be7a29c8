"""
Unit Tests for the Submission Ledger

Reliability Level: CORE TIER

Tests the SubmissionLedger:
- QUEUED rows created together with an in-flight claim
- Fresh claims return the holder instead of a new row
- Stale claims are taken over and the stale holder marked FAILED
- Terminal rows are immutable
- Reads are scoped by (shop, customer)
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from app.database.tables import submission_claims, utcnow
from services.submission_ledger import STALE_CLAIM_SUMMARY, SubmissionLedger, new_submission_id
from services.submission_models import (
    InvalidTransitionError,
    NotFoundError,
    SubmissionStatus,
)

from tests.fixtures.fakes import OTHER_SHOP_DOMAIN


def _claims(session_factory):
    with session_factory() as session:
        return session.execute(select(submission_claims)).all()


def _age_claims(session_factory, seconds: int) -> None:
    with session_factory.begin() as session:
        session.execute(
            update(submission_claims).values(claimed_at=utcnow() - timedelta(seconds=seconds))
        )


# =============================================================================
# Identifiers
# =============================================================================

class TestSubmissionIds:

    def test_ids_are_32_hex_chars(self):
        submission_id = new_submission_id()

        assert len(submission_id) == 32
        assert all(c in "0123456789abcdef" for c in submission_id)

    def test_ids_are_unique(self):
        assert len({new_submission_id() for _ in range(200)}) == 200


# =============================================================================
# create_queued
# =============================================================================

class TestCreateQueued:

    def test_creates_queued_row_and_claim(self, ledger, session_factory, shop, customer, wishlist):
        submission, created = ledger.create_queued(
            shop, customer, wishlist.id, note="hi", country_code="GB", requested_currency="USD"
        )

        assert created is True
        assert submission.status == SubmissionStatus.QUEUED
        assert submission.note == "hi"
        assert submission.country_code == "GB"
        assert submission.requested_currency == "USD"
        assert submission.remote_order_id is None

        claims = _claims(session_factory)
        assert len(claims) == 1
        assert claims[0].submission_id == submission.id

    def test_fresh_claim_returns_holder(self, ledger, shop, customer, wishlist):
        first, created_first = ledger.create_queued(shop, customer, wishlist.id)
        second, created_second = ledger.create_queued(shop, customer, wishlist.id)

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert len(ledger.list_for_shop(shop)) == 1

    def test_stale_claim_is_taken_over(self, ledger, session_factory, shop, customer, wishlist):
        stale, _ = ledger.create_queued(shop, customer, wishlist.id)
        _age_claims(session_factory, 600)

        fresh, created = ledger.create_queued(shop, customer, wishlist.id)

        assert created is True
        assert fresh.id != stale.id

        old = ledger.get(shop, customer, stale.id)
        assert old.status == SubmissionStatus.FAILED
        assert old.error_summary == STALE_CLAIM_SUMMARY

        claims = _claims(session_factory)
        assert [c.submission_id for c in claims] == [fresh.id]

    def test_claim_released_on_terminal(self, ledger, session_factory, shop, customer, wishlist):
        first, _ = ledger.create_queued(shop, customer, wishlist.id)
        ledger.mark_terminal(first.id, shop, customer, SubmissionStatus.FAILED, error_summary="x")

        assert _claims(session_factory) == []

        second, created = ledger.create_queued(shop, customer, wishlist.id)
        assert created is True
        assert second.id != first.id

    def test_claims_are_per_customer(self, ledger, tenants, shop, customer, wishlist):
        other_customer = tenants.upsert_customer(shop, "2002")

        _, created_a = ledger.create_queued(shop, customer, wishlist.id)
        _, created_b = ledger.create_queued(shop, other_customer, wishlist.id)

        assert created_a is True
        assert created_b is True


# =============================================================================
# mark_terminal
# =============================================================================

class TestMarkTerminal:

    def test_success_fields_are_recorded(self, ledger, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)

        updated = ledger.mark_terminal(
            submission.id,
            shop,
            customer,
            SubmissionStatus.CREATED,
            remote_order_id="gid://shopify/DraftOrder/1",
            remote_order_name="#D1",
            currency_used="USD",
            recovered_by_tag=True,
        )

        assert updated.status == SubmissionStatus.CREATED
        assert updated.remote_order_id == "gid://shopify/DraftOrder/1"
        assert updated.remote_order_name == "#D1"
        assert updated.currency_used == "USD"
        assert updated.recovered_by_tag is True
        assert updated.is_terminal

    @pytest.mark.parametrize("first,second", [
        (SubmissionStatus.CREATED, SubmissionStatus.FAILED),
        (SubmissionStatus.FAILED, SubmissionStatus.CREATED),
        (SubmissionStatus.CREATED_WITH_WARNINGS, SubmissionStatus.CREATED),
        (SubmissionStatus.FAILED, SubmissionStatus.FAILED),
    ])
    def test_terminal_rows_are_immutable(self, ledger, shop, customer, wishlist, first, second):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)
        ledger.mark_terminal(submission.id, shop, customer, first, remote_order_id="gid://x/1")

        with pytest.raises(InvalidTransitionError):
            ledger.mark_terminal(submission.id, shop, customer, second)

        assert ledger.get(shop, customer, submission.id).status == first

    def test_queued_is_not_a_terminal_target(self, ledger, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)

        with pytest.raises(InvalidTransitionError):
            ledger.mark_terminal(submission.id, shop, customer, SubmissionStatus.QUEUED)

    def test_unknown_submission(self, ledger, shop, customer):
        with pytest.raises(NotFoundError):
            ledger.mark_terminal("0" * 32, shop, customer, SubmissionStatus.FAILED)

    def test_foreign_customer_cannot_transition(self, ledger, tenants, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)
        intruder = tenants.upsert_customer(shop, "9999")

        with pytest.raises(NotFoundError):
            ledger.mark_terminal(submission.id, shop, intruder, SubmissionStatus.FAILED)

        assert ledger.get(shop, customer, submission.id).status == SubmissionStatus.QUEUED


# =============================================================================
# Late remote orders
# =============================================================================

class TestLateRemoteOrder:

    def test_attaches_order_to_taken_over_row(self, ledger, session_factory, shop, customer, wishlist):
        old, _ = ledger.create_queued(shop, customer, wishlist.id)
        _age_claims(session_factory, 600)
        ledger.create_queued(shop, customer, wishlist.id)

        updated = ledger.record_late_remote_order(
            old.id, shop, customer, "gid://shopify/DraftOrder/9", remote_order_name="#D9"
        )

        assert updated.status == SubmissionStatus.FAILED
        assert updated.remote_order_id == "gid://shopify/DraftOrder/9"
        assert updated.error_summary.startswith(STALE_CLAIM_SUMMARY)

    def test_queued_row_is_rejected(self, ledger, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)

        with pytest.raises(InvalidTransitionError):
            ledger.record_late_remote_order(submission.id, shop, customer, "gid://shopify/DraftOrder/9")

    def test_existing_order_is_never_overwritten(self, ledger, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)
        ledger.mark_terminal(submission.id, shop, customer, SubmissionStatus.FAILED, error_summary="x")
        ledger.record_late_remote_order(submission.id, shop, customer, "gid://shopify/DraftOrder/1")

        with pytest.raises(InvalidTransitionError):
            ledger.record_late_remote_order(submission.id, shop, customer, "gid://shopify/DraftOrder/2")

        assert ledger.get(shop, customer, submission.id).remote_order_id == "gid://shopify/DraftOrder/1"

    def test_unknown_submission(self, ledger, shop, customer):
        with pytest.raises(NotFoundError):
            ledger.record_late_remote_order("0" * 32, shop, customer, "gid://shopify/DraftOrder/1")


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    def test_latest_for_returns_newest(self, ledger, shop, customer, wishlist):
        first, _ = ledger.create_queued(shop, customer, wishlist.id)
        ledger.mark_terminal(first.id, shop, customer, SubmissionStatus.FAILED)
        second, _ = ledger.create_queued(shop, customer, wishlist.id)

        assert ledger.latest_for(shop, wishlist.id, customer).id == second.id

    def test_latest_for_without_rows(self, ledger, shop, customer, wishlist):
        assert ledger.latest_for(shop, wishlist.id, customer) is None

    def test_list_for_shop_newest_first_with_filters(self, ledger, tenants, shop, customer, wishlist):
        other_customer = tenants.upsert_customer(shop, "2002")
        first, _ = ledger.create_queued(shop, customer, wishlist.id)
        ledger.mark_terminal(first.id, shop, customer, SubmissionStatus.FAILED)
        second, _ = ledger.create_queued(shop, customer, wishlist.id)
        third, _ = ledger.create_queued(shop, other_customer, wishlist.id)

        assert [s.id for s in ledger.list_for_shop(shop)] == [third.id, second.id, first.id]
        assert [s.id for s in ledger.list_for_shop(shop, customer_id=customer.id)] == [
            second.id, first.id
        ]
        assert [s.id for s in ledger.list_for_shop(shop, limit=1)] == [third.id]
        assert ledger.list_for_shop(shop, wishlist_id="missing") == []

    def test_reads_are_isolated_by_shop(self, ledger, tenants, shop, customer, wishlist):
        other_shop = tenants.upsert_shop(OTHER_SHOP_DOMAIN)
        submission, _ = ledger.create_queued(shop, customer, wishlist.id)

        assert ledger.list_for_shop(other_shop) == []
        with pytest.raises(NotFoundError):
            ledger.get(other_shop, customer, submission.id)

    def test_to_dict_uses_camel_case(self, ledger, shop, customer, wishlist):
        submission, _ = ledger.create_queued(shop, customer, wishlist.id, country_code="CA")

        body = submission.to_dict()

        assert body["id"] == submission.id
        assert body["status"] == "queued"
        assert body["wishlistId"] == wishlist.id
        assert body["countryCode"] == "CA"
        assert body["recoveredByTag"] is False


# =============================================================================
# Purge
# =============================================================================

class TestPurge:

    def test_purge_removes_submissions_and_claims(self, ledger, session_factory, shop, customer, wishlist):
        ledger.create_queued(shop, customer, wishlist.id)

        assert ledger.purge_shop(shop) == 1
        assert ledger.list_for_shop(shop) == []
        assert _claims(session_factory) == []

    def test_short_ttl_makes_claims_stale_sooner(self, session_factory, shop, customer, wishlist):
        short = SubmissionLedger(session_factory, claim_ttl_seconds=5)
        stale, _ = short.create_queued(shop, customer, wishlist.id)
        _age_claims(session_factory, 10)

        fresh, created = short.create_queued(shop, customer, wishlist.id)

        assert created is True
        assert fresh.id != stale.id
