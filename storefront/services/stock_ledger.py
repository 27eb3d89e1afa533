# storefront/services/stock_ledger.py
"""
Stock ledger service.

Reads and administrative writes against ``product_variants``. Checkout never
writes stock through here: reservations are holds, and only
ReservationManager.commit_reservation decrements stock for a sale.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.enums import StockOperation
from storefront.core.exceptions import ServiceError
from storefront.core.utils import Clock, utc_now
from storefront.database import Database
from storefront.models.reservation import Reservation
from storefront.models.stock_variant import StockVariant
from storefront.schemas.inventory import InventoryStats
from storefront.services.audit_logger import AuditLogger

logger = logging.getLogger(__name__)


def active_hold_filter(now: datetime):
    return and_(Reservation.released_at.is_(None), Reservation.reserved_until > now)


async def held_quantities(session: AsyncSession, variant_ids: Iterable[str], now: datetime) -> Dict[str, int]:
    """Sum of active reservation quantities per variant."""
    variant_ids = list(variant_ids)
    if not variant_ids:
        return {}
    stmt = (
        select(Reservation.variant_id, func.coalesce(func.sum(Reservation.quantity), 0))
        .where(Reservation.variant_id.in_(variant_ids), active_hold_filter(now))
        .group_by(Reservation.variant_id)
    )
    rows = (await session.execute(stmt)).all()
    held = {variant_id: 0 for variant_id in variant_ids}
    for variant_id, quantity in rows:
        held[variant_id] = int(quantity)
    return held


class StockLedger:
    def __init__(
        self,
        db: Database,
        audit: Optional[AuditLogger] = None,
        low_stock_threshold: int = 5,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.audit = audit
        self.low_stock_threshold = low_stock_threshold
        self.clock = clock

    async def get_variant(self, variant_id: str) -> StockVariant:
        async with self.db.session() as session:
            variant = await session.get(StockVariant, variant_id)
        if variant is None:
            raise ServiceError.not_found("Variant", variant_id)
        return variant

    async def create_variant(self, sku: Optional[str], name: Optional[str] = None, stock: int = 0) -> StockVariant:
        if stock < 0:
            raise ServiceError.validation("Stock cannot be negative", stock=stock)

        try:
            async with self.db.transaction() as session:
                variant = StockVariant(sku=sku, name=name, stock=stock)
                session.add(variant)
        except IntegrityError:
            raise ServiceError.conflict(f"Variant with SKU {sku} already exists", sku=sku)

        logger.info(f"Created variant {variant.id} sku={sku} stock={stock}")
        return variant

    async def adjust_stock(
        self,
        variant_id: str,
        quantity: int,
        operation: StockOperation = StockOperation.SET,
        actor_id: Optional[str] = None,
    ) -> StockVariant:
        """
        Administrative stock change.

        Args:
            variant_id: Variant to change
            quantity: Absolute value for SET, delta for INCREMENT / DECREMENT
            operation: set, increment or decrement
            actor_id: Admin performing the change, recorded in the audit log

        Raises:
            ServiceError(NOT_FOUND) if the variant does not exist
            ServiceError(VALIDATION) if the result would be negative
        """
        operation = StockOperation(operation)
        if quantity < 0:
            raise ServiceError.validation("Quantity cannot be negative", quantity=quantity)

        async with self.db.transaction() as session:
            variant = (
                await session.execute(
                    select(StockVariant).where(StockVariant.id == variant_id).with_for_update()
                )
            ).scalar_one_or_none()
            if variant is None:
                raise ServiceError.not_found("Variant", variant_id)

            old_stock = variant.stock
            if operation == StockOperation.SET:
                new_stock = quantity
            elif operation == StockOperation.INCREMENT:
                new_stock = old_stock + quantity
            else:
                new_stock = old_stock - quantity

            if new_stock < 0:
                raise ServiceError.validation(
                    f"Stock for variant {variant_id} cannot go below zero",
                    variant_id=variant_id,
                    current=old_stock,
                    requested=quantity,
                )

            variant.stock = new_stock
            variant.version = variant.version + 1
            variant.updated_at = self.clock()

        logger.info(f"Stock {operation.value} on variant {variant_id}: {old_stock} -> {new_stock}")

        if self.audit is not None:
            await self.audit.record(
                actor_id,
                "stock_updated",
                "variant",
                variant_id,
                {"old_stock": old_stock, "new_stock": new_stock, "operation": operation.value},
            )
        return variant

    async def available_quantity(self, variant_id: str) -> int:
        async with self.db.session() as session:
            variant = await session.get(StockVariant, variant_id)
            if variant is None:
                raise ServiceError.not_found("Variant", variant_id)
            held = await held_quantities(session, [variant_id], self.clock())
        return max(variant.stock - held[variant_id], 0)

    async def low_stock_variants(self, threshold: Optional[int] = None) -> List[StockVariant]:
        if threshold is None:
            threshold = self.low_stock_threshold
        stmt = (
            select(StockVariant)
            .where(StockVariant.stock > 0, StockVariant.stock <= threshold)
            .order_by(StockVariant.stock, StockVariant.sku)
        )
        async with self.db.session() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def out_of_stock_variants(self) -> List[StockVariant]:
        stmt = select(StockVariant).where(StockVariant.stock <= 0).order_by(StockVariant.sku)
        async with self.db.session() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def inventory_stats(self) -> InventoryStats:
        now = self.clock()
        threshold = self.low_stock_threshold
        async with self.db.session() as session:
            total_variants, total_stock = (
                await session.execute(
                    select(func.count(StockVariant.id), func.coalesce(func.sum(StockVariant.stock), 0))
                )
            ).one()
            out_of_stock = await session.scalar(
                select(func.count(StockVariant.id)).where(StockVariant.stock <= 0)
            )
            low_stock = await session.scalar(
                select(func.count(StockVariant.id)).where(
                    StockVariant.stock > 0, StockVariant.stock <= threshold
                )
            )
            active_count, reserved_quantity = (
                await session.execute(
                    select(func.count(Reservation.id), func.coalesce(func.sum(Reservation.quantity), 0))
                    .where(active_hold_filter(now))
                )
            ).one()

        return InventoryStats(
            total_variants=total_variants or 0,
            total_stock=int(total_stock or 0),
            out_of_stock_count=out_of_stock or 0,
            low_stock_count=low_stock or 0,
            active_reservations=active_count or 0,
            reserved_quantity=int(reserved_quantity or 0),
        )
