"""Order status transitions.

``order.status`` is the single source of truth for where an order is. Every
write is a compare-and-swap on the status the caller last saw, so two actors
racing on the same order cannot silently overwrite each other.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from account.models import DeliveryPartner, User
from notifications.fanout import Audience, FanoutReport, notify_order_status

from .exceptions import Conflict, InvalidTransition, NotFound, Unauthorized
from .models import Order

logger = logging.getLogger(__name__)

Status = Order.Status

WHOLESALER_TRANSITIONS = {
    ("placed", "confirmed"),
    ("placed", "rejected"),
    ("confirmed", "rejected"),
    ("confirmed", "dispatched"),
}

DELIVERY_TRANSITIONS = {
    ("dispatched", "delivered"),
}

ALLOWED_EXTRA_FIELDS = {
    "dispatched": {"delivery_partner", "delivery_instructions", "estimated_delivery"},
    "rejected": {"rejection_reason"},
}


@dataclass
class TransitionResult:
    order: Order
    previous_status: str
    fanout: FanoutReport


def is_order_wholesaler(order, user) -> bool:
    return user.role == User.Role.WHOLESALER and order.wholesaler_id == user.id


def is_assigned_delivery_partner(order, user) -> bool:
    if user.role != User.Role.DELIVERY_PARTNER or order.delivery_partner_id is None:
        return False
    return DeliveryPartner.objects.filter(id=order.delivery_partner_id, user_id=user.id).exists()


def can_view_order(order, user) -> bool:
    if user.is_operator:
        return True
    if user.id in (order.retailer_id, order.wholesaler_id):
        return True
    return is_assigned_delivery_partner(order, user)


def check_transition(order, target_status, actor, via_delivery_pipeline=False) -> None:
    """Raise if ``actor`` may not move ``order`` to ``target_status``."""
    if target_status not in Status.values:
        raise InvalidTransition(f"Unknown order status '{target_status}'")
    if order.is_terminal:
        raise InvalidTransition(
            f"Order #{order.short_id} is already {order.status}; its status can no longer change"
        )

    pair = (str(order.status), str(target_status))
    if pair in WHOLESALER_TRANSITIONS:
        if not is_order_wholesaler(order, actor):
            raise Unauthorized(f"Only the wholesaler for this order can mark it {target_status}")
    elif pair in DELIVERY_TRANSITIONS:
        if not via_delivery_pipeline:
            raise InvalidTransition("Delivered status is recorded by the delivery partner through the delivery pipeline")
        if not (actor.is_operator or is_assigned_delivery_partner(order, actor)):
            raise Unauthorized("Only the assigned delivery partner can mark this order delivered")
    else:
        raise InvalidTransition(f"Cannot move an order from '{order.status}' to '{target_status}'")


def _check_extra_fields(target_status, extra_fields: Dict[str, Any]) -> None:
    unknown = set(extra_fields) - ALLOWED_EXTRA_FIELDS.get(str(target_status), set())
    if unknown:
        raise InvalidTransition(
            f"Field(s) {', '.join(sorted(unknown))} cannot be set when marking an order {target_status}"
        )
    partner = extra_fields.get("delivery_partner")
    if partner is not None and not partner.is_active:
        raise InvalidTransition(f"Delivery partner {partner.name} is not active")


def compare_and_swap(order, expected_status, target_status, fields: Optional[Dict[str, Any]] = None) -> Order:
    """Write ``target_status`` only if the stored status is still ``expected_status``.

    The in-memory ``order`` is updated to match what was written.
    """
    fields = dict(fields or {})
    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, status=expected_status).update(
        status=target_status, updated_at=now, **fields
    )
    if not updated:
        current = Order.objects.filter(pk=order.pk).values_list("status", flat=True).first()
        if current is None:
            raise NotFound(f"Order {order.pk} no longer exists")
        raise Conflict(
            f"Order #{order.short_id} is now {current}; it was {expected_status} when this change was requested",
            current_status=current,
        )

    order.status = target_status
    order.updated_at = now
    for name, value in fields.items():
        setattr(order, name, value)
    return order


@transaction.atomic
def transition(
    order,
    target_status,
    actor,
    extra_fields: Optional[Dict[str, Any]] = None,
    via_delivery_pipeline: bool = False,
) -> TransitionResult:
    extra_fields = dict(extra_fields or {})
    check_transition(order, target_status, actor, via_delivery_pipeline=via_delivery_pipeline)
    _check_extra_fields(target_status, extra_fields)

    previous = str(order.status)
    compare_and_swap(order, previous, target_status, extra_fields)
    logger.info("Order %s moved %s -> %s by user=%s", order.id, previous, target_status, actor.id)

    report = notify_order_status(order, target_status, Audience.ALL)
    return TransitionResult(order=order, previous_status=previous, fanout=report)
