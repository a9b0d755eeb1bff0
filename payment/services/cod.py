import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from account.models import User
from notifications.fanout import PaymentOutcome, notify_payment
from order.exceptions import Conflict, InvalidTransition, PartialSuccess, Unauthorized, Upstream
from order.models import Order
from order.resolution import OrderResolver
from payment.models import Transaction

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CodReconciliation:
    order: Order
    transaction: Transaction
    created: bool


def compute_fee(amount) -> Decimal:
    rate = Decimal(str(settings.COD_TRANSACTION_FEE_RATE))
    return (Decimal(amount) * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_reference(prefix: str = "TXN") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _validate_amount(amount) -> Optional[Decimal]:
    if amount is None:
        return None
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidTransition("Amount must be a number") from exc
    if value <= 0:
        raise InvalidTransition("Amount must be greater than zero")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _mark_order_paid(order) -> int:
    return Order.objects.filter(
        pk=order.pk,
        status=Order.Status.DELIVERED,
        payment_status=Order.PaymentStatus.PENDING,
    ).update(
        payment_status=Order.PaymentStatus.PAID,
        updated_at=timezone.now(),
    )


def _ensure_paid(order, ledger) -> bool:
    """Second step of reconciliation; safe to repeat.

    Returns True only for the call that moved the order from pending to paid.
    """
    if order.payment_status == Order.PaymentStatus.PAID:
        return False
    try:
        with transaction.atomic():
            flipped = _mark_order_paid(order) > 0
    except DatabaseError as exc:
        logger.exception("Ledger entry %s recorded but order=%s could not be marked paid", ledger.id, order.id)
        raise PartialSuccess(
            "Payment was recorded but the order is not marked paid yet. Retry to finish.",
            transaction_id=str(ledger.id),
            order_id=str(order.id),
        ) from exc
    order.payment_status = Order.PaymentStatus.PAID
    return flipped


def _announce_payment(order, ledger) -> None:
    notify_payment(order, PaymentOutcome.SUCCESS, order.retailer, amount=ledger.amount)
    notify_payment(order, PaymentOutcome.SUCCESS, order.wholesaler, amount=ledger.amount)


def mark_payment_received(order_id, actor, amount=None) -> CodReconciliation:
    """Record cash collected on delivery for an order.

    The ledger insert and the payment status flip commit separately. A call
    that finds an existing ledger entry only finishes the flip, so callers
    can retry after a timeout or a ``PartialSuccess``.
    """
    if actor.role not in (User.Role.WHOLESALER, User.Role.ADMIN):
        raise Unauthorized("Only the wholesaler or an operator can mark a payment as received")

    order = OrderResolver(strategies=OrderResolver.EXACT_STRATEGIES).resolve(order_id).order
    if actor.role == User.Role.WHOLESALER and order.wholesaler_id != actor.id:
        raise Unauthorized("Only the wholesaler for this order can mark its payment as received")
    if order.status != Order.Status.DELIVERED:
        raise InvalidTransition("Order must be delivered before marking payment as received")
    if order.payment_method != Order.PaymentMethod.COD:
        raise InvalidTransition("Only cash-on-delivery orders can be marked as received here")
    value = _validate_amount(amount)

    try:
        existing = Transaction.objects.filter(order=order).first()
    except DatabaseError as exc:
        logger.exception("Could not read the payment ledger for order=%s", order.id)
        raise Upstream("Payment ledger is unavailable. Run database migrations and retry.") from exc

    if existing is not None:
        logger.info("COD for order=%s already recorded as %s", order.id, existing.reference)
        if _ensure_paid(order, existing):
            _announce_payment(order, existing)
        return CodReconciliation(order=order, transaction=existing, created=False)

    if order.payment_status == Order.PaymentStatus.PAID:
        raise Conflict("Order is already marked as paid but has no ledger entry")

    value = value if value is not None else order.total_amount
    created = True
    try:
        with transaction.atomic():
            ledger = Transaction.objects.create(
                reference=generate_reference(),
                order=order,
                amount=value,
                currency=settings.ORDER_CURRENCY,
                payment_method=Order.PaymentMethod.COD,
                status=Transaction.Status.COMPLETED,
                transaction_fee=compute_fee(value),
                recorded_by=actor,
            )
    except IntegrityError:
        ledger = Transaction.objects.filter(order=order).first()
        if ledger is None:
            raise
        created = False
        logger.info("Concurrent COD reconciliation for order=%s already wrote %s", order.id, ledger.reference)
    except DatabaseError as exc:
        logger.exception("Could not write the payment ledger for order=%s", order.id)
        raise Upstream("Payment ledger is unavailable. Run database migrations and retry.") from exc

    if created:
        logger.info(
            "COD received for order=%s amount=%s fee=%s by user=%s",
            order.id,
            ledger.amount,
            ledger.transaction_fee,
            actor.id,
        )
    if _ensure_paid(order, ledger):
        _announce_payment(order, ledger)
    return CodReconciliation(order=order, transaction=ledger, created=created)


def payment_status(order) -> Dict[str, Any]:
    ledger = Transaction.objects.filter(order=order).first()
    return {
        "order_id": str(order.id),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "order_status": order.status,
        "total_amount": order.total_amount,
        "transaction": ledger,
    }


def transactions_for(user):
    queryset = Transaction.objects.select_related("order")
    if user.is_operator:
        return queryset
    if user.role == User.Role.WHOLESALER:
        return queryset.filter(order__wholesaler=user)
    if user.role == User.Role.RETAILER:
        return queryset.filter(order__retailer=user)
    return queryset.none()
