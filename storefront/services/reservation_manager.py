# storefront/services/reservation_manager.py
"""
Reservation manager.

Turns a checkout into time-bounded holds on stock, then either commits the
holds (stock is decremented once, when payment settles) or releases them.

Locking:
- reserve locks every requested variant row (sorted by id) before reading
  active holds, so two checkouts for the same variant serialize and cannot
  both see the same free units.
- commit decrements with ``UPDATE ... WHERE stock >= q RETURNING``; a missing
  row means another writer got there first and the whole commit aborts.
- release, expiry and commit all close a reservation with a statement
  conditioned on ``released_at IS NULL``, so whichever commits first wins.
"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update

from storefront.core.enums import ReservationOutcome
from storefront.core.exceptions import ServiceError
from storefront.core.utils import Clock, utc_now
from storefront.database import Database
from storefront.models.reservation import Reservation
from storefront.models.stock_variant import StockVariant
from storefront.schemas.checkout import CommitResult, ExpiryResult, ReleaseResult, ReservationResult
from storefront.services.reservation_cache import ReservationCache
from storefront.services.stock_ledger import held_quantities

logger = logging.getLogger(__name__)


def _merge_items(items: Iterable[Any]) -> Dict[str, int]:
    """Validate checkout items and sum quantities per variant."""
    merged: Dict[str, int] = defaultdict(int)
    for item in items:
        if isinstance(item, dict):
            variant_id, quantity = item.get("variant_id"), item.get("quantity")
        else:
            variant_id, quantity = item.variant_id, item.quantity

        if not variant_id:
            raise ServiceError.validation("Each item needs a variant_id")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ServiceError.validation(
                f"Quantity for variant {variant_id} must be a positive integer",
                variant_id=variant_id,
                quantity=quantity,
            )
        merged[variant_id] += quantity

    if not merged:
        raise ServiceError.validation("At least one item is required")
    return dict(merged)


class ReservationManager:
    def __init__(
        self,
        db: Database,
        cache: Optional[ReservationCache] = None,
        ttl_minutes: int = 15,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.cache = cache or ReservationCache(None)
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    async def reserve(self, order_id: str, items: Iterable[Any]) -> ReservationResult:
        """
        Place holds for every item of an order, all or nothing.

        Raises:
            ServiceError(VALIDATION) for an empty list or a non-positive quantity
            ServiceError(NOT_FOUND) for an unknown variant
            ServiceError(INSUFFICIENT_STOCK) when stock minus active holds is too low
        """
        merged = _merge_items(items)
        variant_ids = sorted(merged)

        async with self.db.transaction() as session:
            now = self.clock()
            reserved_until = now + self.ttl

            variants: Dict[str, StockVariant] = {}
            for variant_id in variant_ids:
                variant = (
                    await session.execute(
                        select(StockVariant).where(StockVariant.id == variant_id).with_for_update()
                    )
                ).scalar_one_or_none()
                if variant is None:
                    raise ServiceError.not_found("Variant", variant_id)
                variants[variant_id] = variant

            held = await held_quantities(session, variant_ids, now)
            for variant_id in variant_ids:
                available = variants[variant_id].stock - held[variant_id]
                if available < merged[variant_id]:
                    logger.info(
                        f"Reserve rejected for order {order_id}: variant {variant_id} "
                        f"available={available} requested={merged[variant_id]}"
                    )
                    raise ServiceError.insufficient_stock(variant_id, max(available, 0), merged[variant_id])

            for variant_id in variant_ids:
                session.add(
                    Reservation(
                        order_id=order_id,
                        variant_id=variant_id,
                        quantity=merged[variant_id],
                        reserved_until=reserved_until,
                        created_at=now,
                    )
                )

        logger.info(f"Reserved {len(variant_ids)} variant(s) for order {order_id} until {reserved_until.isoformat()}")

        ttl_seconds = int((reserved_until - self.clock()).total_seconds())
        for variant_id in variant_ids:
            await self.cache.set_reservation(order_id, variant_id, merged[variant_id], reserved_until, ttl_seconds)

        return ReservationResult(order_id=order_id, reserved_until=reserved_until)

    async def commit_reservation(self, order_id: str) -> CommitResult:
        """
        Convert the order's open holds into a permanent stock decrement.

        Returns committed_count 0 when there is nothing left to commit, which
        makes repeated calls harmless.

        Raises:
            ServiceError(CONFLICT) if any variant no longer has the stock; no
            reservation of the order is closed in that case
        """
        committed: List[Tuple[str, int]] = []

        async with self.db.transaction() as session:
            now = self.clock()
            reservations = (
                await session.execute(
                    select(Reservation)
                    .where(Reservation.order_id == order_id, Reservation.released_at.is_(None))
                    .order_by(Reservation.variant_id)
                    .with_for_update()
                )
            ).scalars().all()

            for reservation in reservations:
                decremented = (
                    await session.execute(
                        update(StockVariant)
                        .where(
                            StockVariant.id == reservation.variant_id,
                            StockVariant.stock >= reservation.quantity,
                        )
                        .values(
                            stock=StockVariant.stock - reservation.quantity,
                            version=StockVariant.version + 1,
                            updated_at=now,
                        )
                        .returning(StockVariant.id, StockVariant.stock)
                        .execution_options(synchronize_session=False)
                    )
                ).first()
                if decremented is None:
                    logger.warning(
                        f"Commit conflict for order {order_id}: variant {reservation.variant_id} "
                        f"cannot cover {reservation.quantity}"
                    )
                    raise ServiceError.conflict(
                        f"Stock for variant {reservation.variant_id} changed before commit",
                        variant_id=reservation.variant_id,
                        order_id=order_id,
                    )

                closed = await session.execute(
                    update(Reservation)
                    .where(Reservation.id == reservation.id, Reservation.released_at.is_(None))
                    .values(released_at=now, outcome=ReservationOutcome.COMMITTED.value)
                    .execution_options(synchronize_session=False)
                )
                if closed.rowcount != 1:
                    # Expired or released between our select and update
                    raise ServiceError.conflict(
                        f"Reservation {reservation.id} was closed during commit",
                        reservation_id=reservation.id,
                        order_id=order_id,
                    )

                committed.append((reservation.variant_id, reservation.quantity))

        if committed:
            logger.info(f"Committed {len(committed)} reservation(s) for order {order_id}")
            await self.cache.evict(order_id, [variant_id for variant_id, _ in committed])
        else:
            logger.info(f"No open reservations to commit for order {order_id}")

        return CommitResult(order_id=order_id, committed_count=len(committed))

    async def release_reservation(self, order_id: str) -> ReleaseResult:
        """Drop every open hold of an order. Stock is untouched."""
        async with self.db.transaction() as session:
            result = await session.execute(
                update(Reservation)
                .where(Reservation.order_id == order_id, Reservation.released_at.is_(None))
                .values(released_at=self.clock(), outcome=ReservationOutcome.RELEASED.value)
                .returning(Reservation.variant_id)
                .execution_options(synchronize_session=False)
            )
            variant_ids = [row[0] for row in result.all()]

        if variant_ids:
            logger.info(f"Released {len(variant_ids)} reservation(s) for order {order_id}")
            await self.cache.evict(order_id, variant_ids)

        return ReleaseResult(order_id=order_id, released_count=len(variant_ids))

    async def expire_stale_reservations(self) -> ExpiryResult:
        """Close every open hold whose reserved_until has passed."""
        async with self.db.transaction() as session:
            now = self.clock()
            # Rows held by an in-flight commit or release are left for the next sweep
            stale_ids = (
                await session.execute(
                    select(Reservation.id)
                    .where(Reservation.released_at.is_(None), Reservation.reserved_until < now)
                    .order_by(Reservation.id)
                    .with_for_update(skip_locked=True)
                )
            ).scalars().all()
            if not stale_ids:
                return ExpiryResult(cleaned_count=0, order_ids=[])

            result = await session.execute(
                update(Reservation)
                .where(Reservation.id.in_(stale_ids), Reservation.released_at.is_(None))
                .values(released_at=now, outcome=ReservationOutcome.EXPIRED.value)
                .returning(Reservation.order_id, Reservation.variant_id)
                .execution_options(synchronize_session=False)
            )
            rows = result.all()

        by_order: Dict[str, List[str]] = defaultdict(list)
        for order_id, variant_id in rows:
            by_order[order_id].append(variant_id)

        for order_id, variant_ids in by_order.items():
            await self.cache.evict(order_id, variant_ids)

        if rows:
            logger.info(f"Expired {len(rows)} reservation(s) across {len(by_order)} order(s)")

        return ExpiryResult(cleaned_count=len(rows), order_ids=sorted(by_order))

    async def get_cached_reservation(self, order_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        return await self.cache.get_reservation(order_id, variant_id)

    async def has_committed(self, order_id: str) -> bool:
        async with self.db.session() as session:
            found = await session.scalar(
                select(Reservation.id)
                .where(
                    Reservation.order_id == order_id,
                    Reservation.outcome == ReservationOutcome.COMMITTED.value,
                )
                .limit(1)
            )
        return found is not None
