"""
============================================================================
Project Wishlist Relay v1.0.0
Submission Ledger - Durable Submission Records & In-Flight Claims
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Verified ShopRef/CustomerRef, existing wishlist id
Side Effects: Database writes to wishlist_submissions and submission_claims

LEDGER RULES:
    - Rows are created QUEUED and mutated only by the orchestrator
    - Only QUEUED rows may transition; terminal rows are immutable
    - Every read is scoped by shop (and customer where applicable)

IN-FLIGHT CLAIMS:
    submission_claims holds at most one row per (shop, wishlist, customer).
    A unique-key violation on insert means another attempt is in flight and
    its submission is returned instead. Claims older than claim_ttl_seconds
    are stale and taken over; the stale submission is marked FAILED if it
    is still QUEUED. Claims are released when a submission goes terminal.

ERROR CODES:
    - SUB-NF-001: Submission not found for (shop, customer)
    - SUB-STATE-001: Transition out of a terminal state attempted
    - SUB-STATE-002: Remote order attached to a submission failed by takeover

============================================================================
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.database.tables import as_utc, submission_claims, utcnow, wishlist_submissions
from services.submission_config import DEFAULT_CLAIM_TTL_SECONDS
from services.submission_models import (
    CustomerRef,
    InvalidTransitionError,
    NotFoundError,
    ShopRef,
    Submission,
    SubmissionErrorCode,
    SubmissionStatus,
    TERMINAL_STATUSES,
    validate_transition,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Admin listing cap
DEFAULT_LIST_LIMIT = 100

STALE_CLAIM_SUMMARY = "claim expired before completion"


def new_submission_id() -> str:
    """32 lowercase hex characters."""
    return uuid.uuid4().hex


def _row_to_submission(row) -> Submission:
    return Submission(
        id=row.id,
        shop_id=row.shop_id,
        wishlist_id=row.wishlist_id,
        customer_id=row.customer_id,
        status=SubmissionStatus(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        remote_order_id=row.remote_order_id,
        remote_order_name=row.remote_order_name,
        note=row.note,
        country_code=row.country_code,
        requested_currency=row.requested_currency,
        currency_used=row.currency_used,
        recovered_by_tag=bool(row.recovered_by_tag),
        error_summary=row.error_summary,
    )


class SubmissionLedger:
    """
    Submission ledger backed by wishlist_submissions.

    Reliability Level: CORE TIER
    Side Effects: One transaction per operation
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._claim_ttl = timedelta(seconds=claim_ttl_seconds)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_queued(
        self,
        shop: ShopRef,
        customer: CustomerRef,
        wishlist_id: str,
        note: Optional[str] = None,
        country_code: Optional[str] = None,
        requested_currency: Optional[str] = None,
    ) -> Tuple[Submission, bool]:
        """
        Claim (shop, wishlist, customer) and write a QUEUED submission.

        Returns:
            (submission, created). created is False when another in-flight
            attempt holds a fresh claim; its submission is returned instead.
        """
        submission_id = new_submission_id()
        now = utcnow()
        values = dict(
            id=submission_id,
            shop_id=shop.id,
            wishlist_id=wishlist_id,
            customer_id=customer.id,
            status=SubmissionStatus.QUEUED.value,
            note=note,
            country_code=country_code,
            requested_currency=requested_currency,
            recovered_by_tag=False,
            created_at=now,
            updated_at=now,
        )

        try:
            with self._session_factory.begin() as session:
                session.execute(
                    insert(submission_claims).values(
                        shop_id=shop.id,
                        wishlist_id=wishlist_id,
                        customer_id=customer.id,
                        submission_id=submission_id,
                        claimed_at=now,
                    )
                )
                session.execute(insert(wishlist_submissions).values(**values))
        except IntegrityError:
            return self._resolve_claim_conflict(shop, customer, wishlist_id, values)

        logger.info(
            f"[LEDGER] Submission queued | shop_id={shop.id} | "
            f"wishlist_id={wishlist_id} | correlation_id={submission_id}"
        )
        return self._from_values(values), True

    def _resolve_claim_conflict(
        self,
        shop: ShopRef,
        customer: CustomerRef,
        wishlist_id: str,
        values: dict,
    ) -> Tuple[Submission, bool]:
        now = values["created_at"]
        claim_key = and_(
            submission_claims.c.shop_id == shop.id,
            submission_claims.c.wishlist_id == wishlist_id,
            submission_claims.c.customer_id == customer.id,
        )

        with self._session_factory.begin() as session:
            claim = session.execute(
                select(submission_claims.c.submission_id, submission_claims.c.claimed_at)
                .where(claim_key)
            ).first()

            if claim is not None:
                holder = self._select_one(session, shop.id, claim.submission_id)
                claimed_at = as_utc(claim.claimed_at)
                fresh = now - claimed_at < self._claim_ttl
                if holder is not None and fresh and not holder.is_terminal:
                    logger.info(
                        f"[LEDGER] In-flight claim held | shop_id={shop.id} | "
                        f"wishlist_id={wishlist_id} | correlation_id={holder.id}"
                    )
                    return holder, False

                if holder is not None and holder.status == SubmissionStatus.QUEUED:
                    session.execute(
                        update(wishlist_submissions)
                        .where(wishlist_submissions.c.id == holder.id)
                        .where(wishlist_submissions.c.status == SubmissionStatus.QUEUED.value)
                        .values(
                            status=SubmissionStatus.FAILED.value,
                            error_summary=STALE_CLAIM_SUMMARY,
                            updated_at=now,
                        )
                    )

                # Take over only the claim we inspected.
                taken = session.execute(
                    update(submission_claims)
                    .where(claim_key)
                    .where(submission_claims.c.submission_id == claim.submission_id)
                    .values(submission_id=values["id"], claimed_at=now)
                )
                if taken.rowcount == 0:
                    winner = session.execute(
                        select(submission_claims.c.submission_id).where(claim_key)
                    ).scalar_one_or_none()
                    current = (
                        self._select_one(session, shop.id, winner) if winner else None
                    )
                    if current is not None:
                        return current, False
                    raise NotFoundError(
                        "submission claim vanished during takeover",
                        {"wishlistId": wishlist_id},
                    )
                logger.warning(
                    f"[LEDGER] Stale claim taken over | shop_id={shop.id} | "
                    f"wishlist_id={wishlist_id} | previous={claim.submission_id} | "
                    f"correlation_id={values['id']}"
                )
            else:
                session.execute(
                    insert(submission_claims).values(
                        shop_id=shop.id,
                        wishlist_id=wishlist_id,
                        customer_id=customer.id,
                        submission_id=values["id"],
                        claimed_at=now,
                    )
                )

            session.execute(insert(wishlist_submissions).values(**values))

        return self._from_values(values), True

    def mark_terminal(
        self,
        submission_id: str,
        shop: ShopRef,
        customer: CustomerRef,
        status: SubmissionStatus,
        remote_order_id: Optional[str] = None,
        remote_order_name: Optional[str] = None,
        currency_used: Optional[str] = None,
        recovered_by_tag: bool = False,
        error_summary: Optional[str] = None,
    ) -> Submission:
        """
        Move a QUEUED submission to a terminal status and release its claim.

        Raises:
            InvalidTransitionError: If the row is already terminal or status
                is not terminal (SUB-STATE-001)
            NotFoundError: If no such submission exists for (shop, customer)
        """
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"{status.value} is not a terminal status",
                {"submissionId": submission_id},
            )

        now = utcnow()
        with self._session_factory.begin() as session:
            result = session.execute(
                update(wishlist_submissions)
                .where(wishlist_submissions.c.id == submission_id)
                .where(wishlist_submissions.c.shop_id == shop.id)
                .where(wishlist_submissions.c.customer_id == customer.id)
                .where(wishlist_submissions.c.status == SubmissionStatus.QUEUED.value)
                .values(
                    status=status.value,
                    remote_order_id=remote_order_id,
                    remote_order_name=remote_order_name,
                    currency_used=currency_used,
                    recovered_by_tag=recovered_by_tag,
                    error_summary=error_summary,
                    updated_at=now,
                )
            )
            session.execute(
                delete(submission_claims).where(
                    submission_claims.c.submission_id == submission_id
                )
            )
            current = self._select_one(session, shop.id, submission_id, customer.id)

        if current is None:
            raise NotFoundError("submission not found", {"submissionId": submission_id})

        if result.rowcount == 0:
            allowed = validate_transition(current.status, status)
            logger.error(
                f"[{SubmissionErrorCode.INVALID_TRANSITION}] Invalid transition | "
                f"from={current.status.value} | to={status.value} | allowed={allowed} | "
                f"correlation_id={submission_id}"
            )
            raise InvalidTransitionError(
                f"cannot move submission from {current.status.value} to {status.value}",
                {"submissionId": submission_id},
            )

        logger.info(
            f"[LEDGER] Submission terminal | status={status.value} | "
            f"remote_order_id={remote_order_id} | recovered_by_tag={recovered_by_tag} | "
            f"correlation_id={submission_id}"
        )
        return current

    def record_late_remote_order(
        self,
        submission_id: str,
        shop: ShopRef,
        customer: CustomerRef,
        remote_order_id: str,
        remote_order_name: Optional[str] = None,
        currency_used: Optional[str] = None,
        recovered_by_tag: bool = False,
    ) -> Submission:
        """
        Attach a remote order to a submission that was already failed.

        A stale-claim takeover fails the previous holder while its create may
        still be running. When that create succeeds, the order exists on the
        platform and its id must not be lost. Status stays FAILED.

        Raises:
            InvalidTransitionError: Row is not FAILED or already has an order
            NotFoundError: If no such submission exists for (shop, customer)
        """
        now = utcnow()
        with self._session_factory.begin() as session:
            current = self._select_one(session, shop.id, submission_id, customer.id)
            if current is None:
                raise NotFoundError("submission not found", {"submissionId": submission_id})
            if current.status != SubmissionStatus.FAILED or current.remote_order_id:
                raise InvalidTransitionError(
                    f"cannot attach a remote order to a {current.status.value} submission",
                    {"submissionId": submission_id},
                )

            summary = f"{current.error_summary or 'failed'}; remote order created after failure"
            session.execute(
                update(wishlist_submissions)
                .where(wishlist_submissions.c.id == submission_id)
                .where(wishlist_submissions.c.status == SubmissionStatus.FAILED.value)
                .where(wishlist_submissions.c.remote_order_id.is_(None))
                .values(
                    remote_order_id=remote_order_id,
                    remote_order_name=remote_order_name,
                    currency_used=currency_used,
                    recovered_by_tag=recovered_by_tag,
                    error_summary=summary,
                    updated_at=now,
                )
            )
            updated = self._select_one(session, shop.id, submission_id, customer.id)

        logger.error(
            f"[{SubmissionErrorCode.LATE_REMOTE_ORDER}] Remote order created for failed "
            f"submission | remote_order_id={remote_order_id} | correlation_id={submission_id}"
        )
        return updated

    def purge_shop(self, shop: ShopRef) -> int:
        """Delete every submission and claim for the shop. Returns submissions removed."""
        with self._session_factory.begin() as session:
            session.execute(
                delete(submission_claims).where(submission_claims.c.shop_id == shop.id)
            )
            result = session.execute(
                delete(wishlist_submissions).where(wishlist_submissions.c.shop_id == shop.id)
            )
        logger.info(
            f"[LEDGER] Shop purged | shop_id={shop.id} | submissions={result.rowcount}"
        )
        return result.rowcount

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def latest_for(
        self, shop: ShopRef, wishlist_id: str, customer: CustomerRef
    ) -> Optional[Submission]:
        """Most recent submission for (shop, wishlist, customer), or None."""
        query = (
            select(wishlist_submissions)
            .where(wishlist_submissions.c.shop_id == shop.id)
            .where(wishlist_submissions.c.wishlist_id == wishlist_id)
            .where(wishlist_submissions.c.customer_id == customer.id)
            .order_by(wishlist_submissions.c.created_at.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.execute(query).first()
        return _row_to_submission(row) if row is not None else None

    def get(self, shop: ShopRef, customer: CustomerRef, submission_id: str) -> Submission:
        """
        Raises:
            NotFoundError: If no such submission exists for (shop, customer)
        """
        with self._session_factory() as session:
            found = self._select_one(session, shop.id, submission_id, customer.id)
        if found is None:
            raise NotFoundError("submission not found", {"submissionId": submission_id})
        return found

    def list_for_shop(
        self,
        shop: ShopRef,
        wishlist_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Submission]:
        """Admin listing, newest first, optionally filtered."""
        query = select(wishlist_submissions).where(wishlist_submissions.c.shop_id == shop.id)
        if wishlist_id:
            query = query.where(wishlist_submissions.c.wishlist_id == wishlist_id)
        if customer_id:
            query = query.where(wishlist_submissions.c.customer_id == customer_id)
        query = query.order_by(wishlist_submissions.c.created_at.desc()).limit(limit)

        with self._session_factory() as session:
            rows = session.execute(query).all()
        return [_row_to_submission(row) for row in rows]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _select_one(
        session, shop_id: str, submission_id: str, customer_id: Optional[str] = None
    ) -> Optional[Submission]:
        query = (
            select(wishlist_submissions)
            .where(wishlist_submissions.c.id == submission_id)
            .where(wishlist_submissions.c.shop_id == shop_id)
        )
        if customer_id is not None:
            query = query.where(wishlist_submissions.c.customer_id == customer_id)
        row = session.execute(query).first()
        return _row_to_submission(row) if row is not None else None

    @staticmethod
    def _from_values(values: dict) -> Submission:
        created_at: datetime = values["created_at"]
        return Submission(
            id=values["id"],
            shop_id=values["shop_id"],
            wishlist_id=values["wishlist_id"],
            customer_id=values["customer_id"],
            status=SubmissionStatus(values["status"]),
            created_at=created_at,
            updated_at=values["updated_at"],
            note=values["note"],
            country_code=values["country_code"],
            requested_currency=values["requested_currency"],
        )


__all__ = ["SubmissionLedger", "new_submission_id", "DEFAULT_LIST_LIMIT"]
