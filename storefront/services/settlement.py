# storefront/services/settlement.py
"""
Settlement coordinator.

Drives a payment from initialization to a committed sale:

    initialized -> paid -> committed
    initialized -> failed | released

Gateway webhooks and polled verification both enter through the same
success / failure paths. Each step runs in its own short transaction and
re-reads the payment under a row lock, so a delivery that crashed half-way
can be replayed and resumes where it stopped.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from storefront.core.enums import (
    GATEWAY_FAILURE_STATUSES,
    GatewayEventType,
    OrderStatus,
    PaymentStatus,
    SettlementStatus,
    WebhookEventStatus,
)
from storefront.core.exceptions import ErrorKind, ServiceError
from storefront.core.utils import Clock, generate_transaction_reference, utc_now
from storefront.database import Database
from storefront.integrations.base import GatewayEvent, PaymentGateway
from storefront.integrations.paystack import load_webhook_payload
from storefront.models.order import Order
from storefront.models.payment import Payment
from storefront.models.reservation import Reservation
from storefront.models.webhook import WebhookEvent
from storefront.schemas.payments import PaymentInitResult, SettlementResult
from storefront.services.audit_logger import AuditLogger
from storefront.services.reservation_cache import ReservationCache
from storefront.services.reservation_manager import ReservationManager

logger = logging.getLogger(__name__)

# Internal decisions taken under the payment lock
_ALREADY_PROCESSED = "already_processed"
_LATE_CAPTURE = "late_capture"
_AMOUNT_MISMATCH = "amount_mismatch"
_COMMIT = "commit"


class SettlementCoordinator:
    def __init__(
        self,
        db: Database,
        gateway: PaymentGateway,
        reservations: ReservationManager,
        cache: Optional[ReservationCache] = None,
        audit: Optional[AuditLogger] = None,
        currency: str = "NGN",
        intent_ttl_seconds: int = 1200,
        processing_timeout_seconds: int = 300,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.gateway = gateway
        self.reservations = reservations
        self.cache = cache or ReservationCache(None)
        self.audit = audit
        self.currency = currency
        self.intent_ttl_seconds = intent_ttl_seconds
        self.processing_timeout = timedelta(seconds=processing_timeout_seconds)
        self.clock = clock

    async def _audit(self, action: str, entity: str, entity_id: str, changes: Dict[str, Any]) -> None:
        if self.audit is not None:
            await self.audit.record(None, action, entity, entity_id, changes)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize_payment(
        self,
        order_id: str,
        amount: Decimal,
        email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentInitResult:
        """
        Open a payment intent with the gateway for a pending order.

        The gateway is called before anything is written, so a gateway
        failure leaves no payment row behind.

        Raises:
            ServiceError(VALIDATION) for a non-positive amount or a non-pending order
            ServiceError(NOT_FOUND) for an unknown order
            ServiceError(EXTERNAL_SERVICE) when the gateway is unavailable
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ServiceError.validation("Amount must be greater than zero", amount=str(amount))

        async with self.db.session() as session:
            order = await session.get(Order, order_id)
        if order is None:
            raise ServiceError.not_found("Order", order_id)
        if order.status != OrderStatus.PENDING.value:
            raise ServiceError.validation(
                f"Order {order_id} is not awaiting payment", order_id=order_id, status=order.status
            )

        reference = generate_transaction_reference(prefix=order_id)
        gateway_metadata = dict(metadata or {})
        gateway_metadata["order_id"] = order_id

        init = await self.gateway.initialize_transaction(amount, reference, gateway_metadata, email=email)

        async with self.db.transaction() as session:
            payment = Payment(
                order_id=order_id,
                gateway=self.gateway.name,
                reference=reference,
                amount=amount,
                currency=self.currency,
                status=PaymentStatus.INITIALIZED.value,
                authorization_url=init.authorization_url,
                raw_response=init.raw_response,
                created_at=self.clock(),
            )
            session.add(payment)

        logger.info(f"Payment {reference} initialized for order {order_id}, amount {amount} {self.currency}")

        await self.cache.set_payment_intent(
            reference,
            {
                "payment_id": payment.id,
                "order_id": order_id,
                "amount": str(amount),
                "currency": self.currency,
                "authorization_url": init.authorization_url,
            },
            self.intent_ttl_seconds,
        )

        return PaymentInitResult(
            payment_id=payment.id,
            order_id=order_id,
            reference=reference,
            authorization_url=init.authorization_url,
            access_code=init.access_code,
            amount=amount,
            currency=self.currency,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_gateway_event(self, raw_body: bytes, signature: Optional[str]) -> SettlementResult:
        """
        Process one webhook delivery.

        Unsigned or unreadable deliveries are acknowledged as ``rejected``
        and nothing else happens. Every verified event is recorded once by
        event_id; repeats come back as ``duplicate`` unless the earlier
        attempt failed or its claim went stale.
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.error("Rejected webhook: invalid or missing signature")
            return SettlementResult(status=SettlementStatus.REJECTED, message="Invalid signature")

        try:
            payload = load_webhook_payload(raw_body)
        except ValueError as e:
            logger.error(f"Rejected webhook: unreadable body ({str(e)})")
            return SettlementResult(status=SettlementStatus.REJECTED, message="Malformed payload")

        event = self.gateway.parse_webhook_event(payload)
        logger.info(f"Webhook {event.event} received for reference {event.reference}")

        if not await self._claim_event(event):
            logger.info(f"Duplicate webhook {event.event_id} ignored")
            return SettlementResult(
                status=SettlementStatus.DUPLICATE,
                event_id=event.event_id,
                message="Event already received",
            )

        try:
            if event.event == GatewayEventType.CHARGE_SUCCESS.value:
                result = await self._settle_success(event.reference, event.amount)
            elif event.event == GatewayEventType.CHARGE_FAILED.value:
                result = await self._settle_failure(event.reference)
            else:
                logger.info(f"No handler for webhook event {event.event}, recording only")
                result = SettlementResult(status=SettlementStatus.SUCCESS, message="Event recorded")
        except Exception as e:
            logger.error(f"Webhook {event.event_id} failed: {str(e)}", exc_info=True)
            await self._finish_event(event.event_id, WebhookEventStatus.FAILED, str(e))
            raise

        await self._finish_event(event.event_id, WebhookEventStatus.PROCESSED)
        result.event_id = event.event_id
        return result

    async def _claim_event(self, event: GatewayEvent) -> bool:
        """Insert or re-open the event row. False means someone else owns it."""
        claimed = False
        try:
            async with self.db.transaction() as session:
                now = self.clock()
                existing = (
                    await session.execute(
                        select(WebhookEvent).where(WebhookEvent.event_id == event.event_id).with_for_update()
                    )
                ).scalar_one_or_none()

                if existing is None:
                    session.add(
                        WebhookEvent(
                            gateway=self.gateway.name,
                            event_id=event.event_id,
                            event_type=event.event,
                            reference=event.reference,
                            payload=event.payload,
                            status=WebhookEventStatus.PROCESSING.value,
                            claimed_at=now,
                            created_at=now,
                        )
                    )
                    claimed = True
                elif existing.status == WebhookEventStatus.FAILED.value or self._claim_is_stale(existing, now):
                    if existing.status == WebhookEventStatus.PROCESSING.value:
                        logger.warning(
                            f"Reclaiming webhook {event.event_id} left processing since {existing.claimed_at}"
                        )
                    existing.status = WebhookEventStatus.PROCESSING.value
                    existing.retry_count = (existing.retry_count or 0) + 1
                    existing.error_message = None
                    existing.claimed_at = now
                    logger.info(f"Retrying webhook {event.event_id} (attempt {existing.retry_count + 1})")
                    claimed = True
        except IntegrityError:
            # Concurrent delivery inserted the same event_id first
            return False
        return claimed

    def _claim_is_stale(self, row: WebhookEvent, now: datetime) -> bool:
        # A claim that never finished means the worker died mid-delivery
        if row.status != WebhookEventStatus.PROCESSING.value:
            return False
        claimed_at = row.claimed_at or row.created_at
        return claimed_at is not None and now - claimed_at >= self.processing_timeout

    async def _finish_event(self, event_id: str, status: WebhookEventStatus, error: Optional[str] = None) -> None:
        async with self.db.transaction() as session:
            row = (
                await session.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id))
            ).scalar_one_or_none()
            if row is None:
                return
            row.status = status.value
            row.error_message = error
            if status == WebhookEventStatus.PROCESSED:
                row.processed_at = self.clock()

    # ------------------------------------------------------------------
    # Polled verification
    # ------------------------------------------------------------------

    async def verify_payment(self, reference: str) -> SettlementResult:
        """
        Ask the gateway for the outcome of a payment and settle accordingly.

        Raises:
            ServiceError(NOT_FOUND) for an unknown reference
            ServiceError(PAYMENT) when the gateway reports the payment as not completed
            ServiceError(EXTERNAL_SERVICE) when the gateway is unavailable
        """
        async with self.db.session() as session:
            exists = await session.scalar(select(Payment.id).where(Payment.reference == reference))
        if exists is None:
            raise ServiceError.not_found("Payment", reference)

        verification = await self.gateway.verify_transaction(reference)
        status = (verification.status or "").lower()

        if status == "success":
            return await self._settle_success(reference, verification.amount)
        if status in GATEWAY_FAILURE_STATUSES:
            return await self._settle_failure(reference)

        raise ServiceError.payment(
            f"Payment {reference} has not completed (gateway status: {status or 'unknown'})",
            reference=reference,
            gateway_status=status,
        )

    # ------------------------------------------------------------------
    # Success / failure paths
    # ------------------------------------------------------------------

    async def _settle_success(self, reference: Optional[str], amount: Optional[Decimal]) -> SettlementResult:
        decision, payment = await self._mark_paid(reference, amount)
        order_id = payment.order_id

        if decision == _ALREADY_PROCESSED:
            logger.info(f"Payment {reference} already settled")
            return SettlementResult(
                status=SettlementStatus.ALREADY_PROCESSED, order_id=order_id, payment_id=payment.id
            )

        if decision in (_LATE_CAPTURE, _AMOUNT_MISMATCH):
            logger.warning(f"Payment {reference} flagged for reconciliation: {decision}")
            await self._audit(
                "reconciliation_required",
                "payment",
                payment.id,
                {"reference": reference, "reason": decision, "amount": str(amount) if amount is not None else None},
            )
            return SettlementResult(
                status=SettlementStatus.SUCCESS,
                order_id=order_id,
                payment_id=payment.id,
                reconciliation_required=True,
                message=decision,
            )

        note = None
        try:
            commit = await self.reservations.commit_reservation(order_id)
            if commit.committed_count == 0:
                settled_by = await self._other_settled_payment(order_id, payment.id)
                if settled_by is not None:
                    note = f"Duplicate capture: order already settled by payment {settled_by}"
                elif not await self.reservations.has_committed(order_id):
                    note = "Payment captured but the order's reservations had already expired"
        except ServiceError as e:
            if e.kind != ErrorKind.CONFLICT:
                raise
            note = f"Payment captured but stock could not be committed: {e.message}"

        if note is not None:
            await self._flag_reconciliation(payment.id, order_id, note)
            logger.warning(f"Order {order_id} requires reconciliation: {note}")
            await self._audit("reconciliation_required", "order", order_id, {"reference": reference, "note": note})
            return SettlementResult(
                status=SettlementStatus.SUCCESS,
                order_id=order_id,
                payment_id=payment.id,
                reconciliation_required=True,
                message=note,
            )

        await self._finalize(payment.id, order_id)
        logger.info(f"Payment {reference} settled, order {order_id} paid")
        await self._audit("payment_settled", "payment", payment.id, {"reference": reference, "order_id": order_id})
        return SettlementResult(status=SettlementStatus.SUCCESS, order_id=order_id, payment_id=payment.id)

    async def _mark_paid(self, reference: Optional[str], amount: Optional[Decimal]) -> Tuple[str, Payment]:
        async with self.db.transaction() as session:
            payment = await self._lock_payment(session, reference)
            order = await session.get(Order, payment.order_id, with_for_update=True)
            status = PaymentStatus(payment.status)

            if status == PaymentStatus.COMMITTED:
                return _ALREADY_PROCESSED, payment

            if status in (PaymentStatus.FAILED, PaymentStatus.RELEASED):
                decision = _LATE_CAPTURE
                note = f"Payment {reference} captured after it was {status.value}"
            elif amount is not None and Decimal(amount) != Decimal(payment.amount):
                decision = _AMOUNT_MISMATCH
                note = f"Captured amount {amount} does not match expected {payment.amount}"
            else:
                if status == PaymentStatus.INITIALIZED:
                    payment.status = PaymentStatus.PAID.value
                    payment.settled_at = self.clock()
                return _COMMIT, payment

            payment.requires_reconciliation = True
            if order is not None:
                order.requires_reconciliation = True
                order.reconciliation_note = note
            return decision, payment

    async def _other_settled_payment(self, order_id: str, payment_id: str) -> Optional[str]:
        """Reference of another paid or committed payment of the order, if any."""
        async with self.db.session() as session:
            return await session.scalar(
                select(Payment.reference)
                .where(
                    Payment.order_id == order_id,
                    Payment.id != payment_id,
                    Payment.status.in_([PaymentStatus.PAID.value, PaymentStatus.COMMITTED.value]),
                )
                .order_by(Payment.created_at)
                .limit(1)
            )

    async def _lock_payment(self, session, reference: Optional[str]) -> Payment:
        payment = (
            await session.execute(select(Payment).where(Payment.reference == reference).with_for_update())
        ).scalar_one_or_none()
        if payment is None:
            raise ServiceError.not_found("Payment", reference)
        return payment

    async def _finalize(self, payment_id: str, order_id: str) -> None:
        async with self.db.transaction() as session:
            payment = await session.get(Payment, payment_id, with_for_update=True)
            payment.status = PaymentStatus.COMMITTED.value
            order = await session.get(Order, order_id, with_for_update=True)
            if order is not None:
                order.status = OrderStatus.PAID.value

    async def _flag_reconciliation(self, payment_id: str, order_id: str, note: str) -> None:
        async with self.db.transaction() as session:
            payment = await session.get(Payment, payment_id, with_for_update=True)
            payment.requires_reconciliation = True
            order = await session.get(Order, order_id, with_for_update=True)
            if order is not None:
                order.requires_reconciliation = True
                order.reconciliation_note = note

    async def _settle_failure(self, reference: Optional[str]) -> SettlementResult:
        async with self.db.transaction() as session:
            payment = await self._lock_payment(session, reference)
            proceed = payment.status == PaymentStatus.INITIALIZED.value
            if proceed:
                payment.status = PaymentStatus.FAILED.value

        if not proceed:
            logger.info(f"Ignoring failure for payment {reference} in state {payment.status}")
            return SettlementResult(
                status=SettlementStatus.ALREADY_PROCESSED, order_id=payment.order_id, payment_id=payment.id
            )

        released = await self.reservations.release_reservation(payment.order_id)

        async with self.db.transaction() as session:
            order = await session.get(Order, payment.order_id, with_for_update=True)
            if order is not None and order.status == OrderStatus.PENDING.value:
                order.status = OrderStatus.PAYMENT_FAILED.value

        logger.info(
            f"Payment {reference} failed, released {released.released_count} reservation(s) "
            f"for order {payment.order_id}"
        )
        await self._audit(
            "payment_failed",
            "payment",
            payment.id,
            {"reference": reference, "released_count": released.released_count},
        )
        return SettlementResult(status=SettlementStatus.SUCCESS, order_id=payment.order_id, payment_id=payment.id)

    # ------------------------------------------------------------------
    # Expiry follow-up
    # ------------------------------------------------------------------

    async def cancel_expired_orders(self, order_ids: Iterable[str]) -> int:
        """
        Cancel pending orders whose reservations expired before payment.

        Open payments of those orders are released so a late capture is
        flagged for reconciliation instead of settling. Orders that already
        hold a paid payment, or that still hold active reservations, are left
        alone.
        """
        cancelled = 0
        for order_id in sorted(set(order_ids)):
            released_refs = []
            order_cancelled = False

            async with self.db.transaction() as session:
                now = self.clock()
                still_held = await session.scalar(
                    select(Reservation.id)
                    .where(
                        Reservation.order_id == order_id,
                        Reservation.released_at.is_(None),
                        Reservation.reserved_until > now,
                    )
                    .limit(1)
                )
                if still_held is not None:
                    continue

                payments = (
                    await session.execute(
                        select(Payment).where(Payment.order_id == order_id).with_for_update()
                    )
                ).scalars().all()
                settled = any(
                    p.status in (PaymentStatus.PAID.value, PaymentStatus.COMMITTED.value) for p in payments
                )

                for payment in payments:
                    if payment.status == PaymentStatus.INITIALIZED.value:
                        payment.status = PaymentStatus.RELEASED.value
                        released_refs.append(payment.reference)

                order = await session.get(Order, order_id, with_for_update=True)
                if order is not None and not settled and order.status == OrderStatus.PENDING.value:
                    order.status = OrderStatus.CANCELLED.value
                    order_cancelled = True

            if order_cancelled:
                cancelled += 1
                logger.info(f"Cancelled order {order_id} after reservation expiry")
                await self._audit(
                    "order_cancelled",
                    "order",
                    order_id,
                    {"reason": "reservation_expired", "released_payments": released_refs},
                )
            elif released_refs:
                logger.info(f"Released {len(released_refs)} open payment(s) for order {order_id}")

        return cancelled
